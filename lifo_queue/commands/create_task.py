import logging
from typing import Any, Optional
from uuid import uuid4

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from lifo_queue.db.models import TaskRecord
from lifo_queue.domain.errors import TaskAlreadyExistsError
from lifo_queue.domain.models import TaskDomain
from lifo_queue.domain.states import TaskStatus
from lifo_queue.api.v1.metrics import TASKS_CREATED_TOTAL
from lifo_queue.settings import settings
from lifo_queue.utils.clock import resolve_now

logger = logging.getLogger(__name__)

async def create_task(
    session: AsyncSession,
    task_id: Optional[str] = None,
    payload: Optional[dict[str, Any]] = None,
    now: Optional[int] = None,
    ttl_seconds: Optional[int] = None,
) -> TaskDomain:
    """
    Inserts a new PENDING task.

    created_at and updated_at are both `now`; expires_at is `now` plus the
    expiry horizon. Old tasks are dropped once the horizon passes, which
    bounds the backlog under insurmountable load.

    Raises TaskAlreadyExistsError if the id is taken. Callers should
    generate a new id rather than retry with the same one.
    """
    now = resolve_now(now)
    ttl = settings.TASK_TTL_SECONDS if ttl_seconds is None else ttl_seconds
    task_id = task_id or str(uuid4())

    record = TaskRecord(
        task_id=task_id,
        status=TaskStatus.PENDING,
        created_at=now,
        updated_at=now,
        expires_at=now + ttl * 1000,
        payload=payload or {},
    )
    session.add(record)
    try:
        await session.flush()
    except IntegrityError as e:
        await session.rollback()
        logger.warning("CREATE_TASK_COLLISION task=%s", task_id)
        raise TaskAlreadyExistsError(task_id) from e

    TASKS_CREATED_TOTAL.inc()
    logger.info("CREATE_TASK task=%s expires_at=%s", task_id, record.expires_at)
    return TaskDomain.from_record(record)
