import asyncio
import logging
from typing import Optional

from lifo_queue.db.session import SessionFactory, unit_of_work
from lifo_queue.scheduler.ticker import run_maintenance
from lifo_queue.settings import settings

logger = logging.getLogger(__name__)

class ExpirySweeper:
    """
    Background loop that removes expired tasks on a fixed interval.

    Purging is idempotent, so several instances may run side by side.
    """
    def __init__(
        self,
        interval: float = settings.SWEEP_INTERVAL_SECONDS,
        lease_timeout_seconds: Optional[int] = settings.LEASE_TIMEOUT_SECONDS,
        session_factory: Optional[SessionFactory] = None,
    ):
        self.interval = interval
        self.lease_timeout_seconds = lease_timeout_seconds
        self.session_factory = session_factory
        self._running = False
        self._task = None

    async def start(self):
        self._running = True
        self._task = asyncio.create_task(self._loop())
        logger.info("Expiry sweeper started.")

    async def stop(self):
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        logger.info("Expiry sweeper stopped.")

    async def sweep_once(self) -> dict[str, int]:
        async with unit_of_work(self.session_factory) as session:
            return await run_maintenance(session, lease_timeout_seconds=self.lease_timeout_seconds)

    async def _loop(self):
        while self._running:
            try:
                await self.sweep_once()
            except Exception as e:
                logger.error(f"Error in expiry sweeper: {e}", exc_info=True)

            await asyncio.sleep(self.interval)
