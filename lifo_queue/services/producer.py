import asyncio
import logging
import time
from typing import Any, Callable, Optional

from lifo_queue.commands.create_task import create_task
from lifo_queue.db.session import SessionFactory, unit_of_work
from lifo_queue.domain.errors import TaskAlreadyExistsError, TaskStoreError
from lifo_queue.domain.models import TaskDomain
from lifo_queue.domain.signals import Signal
from lifo_queue.services.transport import SignalPublisher
from lifo_queue.settings import settings

logger = logging.getLogger(__name__)

PayloadFactory = Callable[[int], dict[str, Any]]

async def create_and_announce(
    transport: Optional[SignalPublisher] = None,
    payload: Optional[dict[str, Any]] = None,
    task_id: Optional[str] = None,
    session_factory: Optional[SessionFactory] = None,
) -> Optional[TaskDomain]:
    """
    Inserts one PENDING task and, once committed, publishes an INSERT
    notification. Returns None if the insert failed.
    """
    try:
        async with unit_of_work(session_factory) as session:
            task = await create_task(session, task_id=task_id, payload=payload)
    except (TaskAlreadyExistsError, TaskStoreError) as e:
        logger.error("CREATE_TASK_ERROR task=%s error=%s", task_id, e)
        return None

    if transport is not None:
        await transport.publish(Signal.insert([task.task_id]))
    return task

async def create_tasks(
    transport: Optional[SignalPublisher] = None,
    session_factory: Optional[SessionFactory] = None,
    interval: float = settings.PRODUCER_INTERVAL_SECONDS,
    active_seconds: float = settings.PRODUCER_ACTIVE_SECONDS,
    payload_factory: Optional[PayloadFactory] = None,
    clock: Callable[[], float] = time.monotonic,
) -> list[str]:
    """
    Creates a task every `interval` seconds until `active_seconds` have
    passed. Failed inserts are logged and skipped. Returns created ids.
    """
    start = clock()
    created: list[str] = []
    logger.info("CREATE_TASKS_START interval=%s active_seconds=%s", interval, active_seconds)

    while True:
        payload = payload_factory(len(created)) if payload_factory else {}
        task = await create_and_announce(transport, payload=payload, session_factory=session_factory)
        if task:
            created.append(task.task_id)

        if clock() - start >= active_seconds:
            break
        await asyncio.sleep(interval)

    logger.info("CREATE_TASKS_END created=%s", len(created))
    return created
