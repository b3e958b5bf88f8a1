import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Optional

from lifo_queue.api.v1.metrics import ACTIVATIONS_TOTAL, BATCH_SIZE, HANDOFFS_TOTAL, TASK_RUNNER_OUTCOMES
from lifo_queue.commands.select_tasks import get_pending_batch, has_pending_tasks
from lifo_queue.commands.transition_task import transition_task
from lifo_queue.db.session import SessionFactory, unit_of_work
from lifo_queue.domain.errors import TaskStoreError
from lifo_queue.domain.models import TaskDomain
from lifo_queue.domain.signals import Signal
from lifo_queue.domain.states import ActivationExit, RUNNER_OUTCOMES, TaskStatus
from lifo_queue.services.transport import SignalPublisher
from lifo_queue.settings import settings
from lifo_queue.worker.runner import TaskRunner

logger = logging.getLogger(__name__)

@dataclass
class WorkerConfig:
    page_limit: int = 10
    max_active_seconds: float = 59.0
    batch_delay: float = 0.5
    task_delay: float = 0.2

    @classmethod
    def from_settings(cls) -> "WorkerConfig":
        return cls(
            page_limit=settings.PAGE_LIMIT,
            max_active_seconds=settings.MAX_ACTIVE_SECONDS,
            batch_delay=settings.BATCH_DELAY_SECONDS,
            task_delay=settings.TASK_DELAY_SECONDS,
        )

@dataclass
class ActivationResult:
    exit: ActivationExit = ActivationExit.IDLE_EXIT
    batches: list[list[str]] = field(default_factory=list)
    handed_off: bool = False
    elapsed: float = 0.0

class Worker:
    """
    Drives one activation: select a LIFO batch, process all of it, repeat.

    The activation stops when a batch comes back empty, or when the active
    time budget is spent. In the second case, if PENDING work remains, it
    publishes a single hand-off signal so a fresh activation continues.
    """
    def __init__(
        self,
        runner: TaskRunner,
        transport: Optional[SignalPublisher] = None,
        config: Optional[WorkerConfig] = None,
        session_factory: Optional[SessionFactory] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.runner = runner
        self.transport = transport
        self.config = config or WorkerConfig.from_settings()
        self.session_factory = session_factory
        self.clock = clock

    async def run_activation(self) -> ActivationResult:
        start = self.clock()
        result = ActivationResult()

        while True:
            tasks = await self._fetch_batch()
            if not tasks:
                break

            await self.process_batch(tasks)
            result.batches.append([t.task_id for t in tasks])

            elapsed = self.clock() - start
            if elapsed >= self.config.max_active_seconds:
                if await self._has_pending():
                    logger.info(
                        "TAIL_CALL_TRIGGER active_time=%.3f batches=%s",
                        elapsed, len(result.batches),
                    )
                    result.exit = ActivationExit.TIME_EXIT
                    result.handed_off = await self._hand_off()
                break

            await asyncio.sleep(self.config.batch_delay)

        result.elapsed = self.clock() - start
        ACTIVATIONS_TOTAL.labels(exit=result.exit).inc()
        logger.info(
            "ACTIVATION_END exit=%s batches=%s handed_off=%s elapsed=%.3f",
            result.exit, len(result.batches), result.handed_off, result.elapsed,
        )
        return result

    async def process_batch(self, tasks: list[TaskDomain]):
        """
        Processes every task of the batch concurrently, task i starting
        (i + 1) * task_delay seconds in. Returns once all have settled.
        """
        logger.info("PROCESS_TASK_BATCH task_count=%s", len(tasks))
        BATCH_SIZE.observe(len(tasks))

        results = await asyncio.gather(
            *(self._process_after(task, (i + 1) * self.config.task_delay) for i, task in enumerate(tasks)),
            return_exceptions=True,
        )
        for task, res in zip(tasks, results):
            if isinstance(res, Exception):
                logger.error("PROCESS_TASK_ERROR task=%s error=%s", task.task_id, res, exc_info=res)
        return results

    async def _process_after(self, task: TaskDomain, delay: float) -> Optional[TaskStatus]:
        if delay > 0:
            await asyncio.sleep(delay)
        return await self.process_task(task)

    async def process_task(self, task: TaskDomain) -> Optional[TaskStatus]:
        """
        Lease, run, conclude. Returns the outcome, or None if the lease was
        not acquired.
        """
        if not await self._transition(task, TaskStatus.PENDING, TaskStatus.TAKEN):
            return None

        outcome = await self._run(task)
        await self._transition(task, TaskStatus.TAKEN, outcome)
        return outcome

    async def _run(self, task: TaskDomain) -> TaskStatus:
        try:
            outcome = await self.runner(task)
        except Exception as e:
            TASK_RUNNER_OUTCOMES.labels(outcome="error").inc()
            logger.error("PROCESS_TASK_ERROR task=%s error=%s", task.task_id, e, exc_info=True)
            return TaskStatus.PENDING

        try:
            outcome = TaskStatus(outcome.lower())
        except (AttributeError, ValueError):
            outcome = None

        if outcome not in RUNNER_OUTCOMES:
            TASK_RUNNER_OUTCOMES.labels(outcome="error").inc()
            logger.error("PROCESS_TASK_ERROR task=%s error=invalid runner outcome", task.task_id)
            return TaskStatus.PENDING

        TASK_RUNNER_OUTCOMES.labels(outcome=outcome).inc()
        return outcome

    async def _transition(self, task: TaskDomain, from_status: TaskStatus, to_status: TaskStatus) -> bool:
        try:
            async with unit_of_work(self.session_factory) as session:
                return await transition_task(session, task.task_id, from_status, to_status)
        except TaskStoreError as e:
            logger.error(
                "TRANSITION_TASK_ERROR task=%s from=%s to=%s error=%s",
                task.task_id, from_status, to_status, e,
            )
            return False

    async def _fetch_batch(self) -> list[TaskDomain]:
        try:
            async with unit_of_work(self.session_factory) as session:
                return await get_pending_batch(session, self.config.page_limit)
        except TaskStoreError as e:
            logger.error("GET_PENDING_TASK_BATCH_ERROR error=%s", e)
            return []

    async def _has_pending(self) -> bool:
        try:
            async with unit_of_work(self.session_factory) as session:
                return await has_pending_tasks(session)
        except TaskStoreError as e:
            # Hand off anyway; the next activation re-checks the store.
            logger.error("HAS_PENDING_TASKS_ERROR error=%s", e)
            return True

    async def _hand_off(self) -> bool:
        if self.transport is None:
            logger.warning("No transport configured, cannot hand off remaining work")
            return False

        published = await self.transport.publish(Signal.handoff())
        if published:
            HANDOFFS_TOTAL.inc()
        return published
