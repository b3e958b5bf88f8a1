import asyncio
import logging
from typing import Awaitable, Callable, Optional, Union

import httpx

from lifo_queue.domain.models import TaskDomain
from lifo_queue.domain.states import TaskStatus
from lifo_queue.settings import settings

logger = logging.getLogger(__name__)

TaskRunner = Callable[[TaskDomain], Awaitable[Union[TaskStatus, str]]]

class FakeTaskRunner:
    """
    Simulates a throughput-constrained downstream system (e.g. a blocking
    HTTP call).

    At most `max_active_tasks` tasks run at once, each taking `duration`
    seconds. When every slot is busy the task is rejected and goes back to
    the queue as PENDING. The slots are an injected semaphore, so separate
    runners (and tests) never share state unless they share the semaphore.
    """
    def __init__(
        self,
        limiter: Optional[asyncio.Semaphore] = None,
        max_active_tasks: int = 3,
        duration: float = 15.0,
    ):
        self.limiter = limiter or asyncio.Semaphore(max_active_tasks)
        self.duration = duration
        self.active = 0

    async def __call__(self, task: TaskDomain) -> TaskStatus:
        if self.limiter.locked():
            logger.info("TASK_RUN_SKIP task=%s active=%s", task.task_id, self.active)
            return TaskStatus.PENDING

        async with self.limiter:
            self.active += 1
            logger.info("TASK_RUN_START task=%s active=%s", task.task_id, self.active)
            try:
                await asyncio.sleep(self.duration)
            finally:
                self.active -= 1
            logger.info("TASK_RUN_COMPLETE task=%s active=%s", task.task_id, self.active)

        return TaskStatus.SUCCESS

class HttpTaskRunner:
    """
    Hands the task to a downstream HTTP service.

    2xx is SUCCESS, 429/503 mean the service is saturated (PENDING, retry
    later), any other status is a permanent FAILURE. Connection errors are
    raised; the worker requeues the task.
    """
    RETRY_LATER = frozenset({429, 503})

    def __init__(self, url: str, client: Optional[httpx.AsyncClient] = None, timeout: float = 30.0):
        self.url = url
        self.client = client or httpx.AsyncClient(timeout=timeout)

    async def __call__(self, task: TaskDomain) -> TaskStatus:
        resp = await self.client.post(self.url, json={
            "task_id": task.task_id,
            "created_at": task.created_at,
            "payload": task.payload,
        })

        if resp.is_success:
            return TaskStatus.SUCCESS

        if resp.status_code in self.RETRY_LATER:
            logger.info("TASK_RUN_SKIP task=%s status=%s", task.task_id, resp.status_code)
            return TaskStatus.PENDING

        logger.warning("TASK_RUN_FAILED task=%s status=%s", task.task_id, resp.status_code)
        return TaskStatus.FAILURE

    async def close(self):
        await self.client.aclose()

def build_task_runner() -> TaskRunner:
    if settings.TASK_RUNNER_URL:
        return HttpTaskRunner(settings.TASK_RUNNER_URL, timeout=settings.TASK_RUNNER_TIMEOUT_SECONDS)
    return FakeTaskRunner(
        max_active_tasks=settings.FAKE_MAX_ACTIVE_TASKS,
        duration=settings.FAKE_TASK_DURATION_SECONDS,
    )
