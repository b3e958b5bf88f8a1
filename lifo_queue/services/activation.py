import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional

from lifo_queue.api.v1.metrics import ACTIVATIONS_TOTAL
from lifo_queue.settings import settings

logger = logging.getLogger(__name__)

Activate = Callable[[], Awaitable[Any]]

class ActivationService:
    """
    Invocation layer for worker activations.

    Requests go through a bounded channel drained by `concurrency`
    consumers (fixed at 1), so at most one activation runs at a time and a
    hand-off only starts after the activation that sent it has returned.
    """
    def __init__(
        self,
        activate: Activate,
        concurrency: int = settings.WORKER_CONCURRENCY,
        dispatch_retries: int = settings.TRIGGER_DISPATCH_RETRIES,
        queue_size: int = settings.ACTIVATION_QUEUE_SIZE,
        retry_delay: float = 0.1,
    ):
        self.activate = activate
        self.concurrency = concurrency
        self.dispatch_retries = dispatch_retries
        self.retry_delay = retry_delay
        self.running = False
        self._queue: asyncio.Queue[str] = asyncio.Queue(maxsize=queue_size)
        self._tasks: list[asyncio.Task] = []

    async def dispatch(self, reason: str = "trigger") -> bool:
        """
        Requests one activation. Fire-and-forget: returns once the request
        is queued. A full channel is retried `dispatch_retries` times.
        """
        for attempt in range(self.dispatch_retries + 1):
            try:
                self._queue.put_nowait(reason)
                return True
            except asyncio.QueueFull:
                if attempt < self.dispatch_retries:
                    logger.warning("Activation channel full, retrying dispatch (%s)", reason)
                    await asyncio.sleep(self.retry_delay)

        logger.error("CALL_FUNCTION_ERROR reason=%s error=activation channel full", reason)
        return False

    async def start(self):
        self.running = True
        self._tasks = [asyncio.create_task(self._consume()) for _ in range(self.concurrency)]
        logger.info("Activation service started (concurrency=%s).", self.concurrency)

    async def stop(self):
        self.running = False
        for task in self._tasks:
            task.cancel()
        for task in self._tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._tasks = []
        logger.info("Activation service stopped.")

    async def _consume(self):
        while self.running:
            reason = await self._queue.get()
            try:
                await self.run_once(reason)
            finally:
                self._queue.task_done()

    async def run_once(self, reason: Optional[str] = None):
        """Runs one activation; anything it raises ends that activation only."""
        logger.info("PROCESS_TASKS_START reason=%s", reason)
        try:
            result = await self.activate()
        except Exception as e:
            ACTIVATIONS_TOTAL.labels(exit="error").inc()
            logger.error("PROCESS_TASKS_ERROR error=%s", e, exc_info=True)
            return None
        logger.info("PROCESS_TASKS_END reason=%s", reason)
        return result

    async def join(self):
        """Waits until every queued activation has finished."""
        await self._queue.join()

    def pending(self) -> int:
        return self._queue.qsize()
