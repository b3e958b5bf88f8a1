import logging
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from lifo_queue.db.models import TaskRecord
from lifo_queue.domain.errors import TaskNotFoundError
from lifo_queue.domain.models import TaskDomain
from lifo_queue.domain.states import TaskStatus
from lifo_queue.utils.clock import resolve_now

logger = logging.getLogger(__name__)

async def query_by_status(
    session: AsyncSession,
    status: TaskStatus,
    limit: int,
    now: Optional[int] = None,
) -> list[TaskDomain]:
    """
    Returns up to `limit` live tasks in `status`, newest `created_at` first.

    Served by ix_tasks_status_created, so the cost depends on `limit` and
    not on how large the backlog is. Expired rows are excluded even if the
    sweeper has not removed them yet. Order among equal `created_at` values
    is whatever the database returns.
    """
    now = resolve_now(now)
    stmt = (
        select(TaskRecord)
        .where(
            TaskRecord.status == status,
            TaskRecord.expires_at > now,
        )
        .order_by(TaskRecord.created_at.desc())
        .limit(limit)
    )
    result = await session.execute(stmt)
    return [TaskDomain.from_record(r) for r in result.scalars().all()]

async def get_pending_batch(
    session: AsyncSession,
    limit: int,
    now: Optional[int] = None,
) -> list[TaskDomain]:
    """A page of PENDING tasks in LIFO order."""
    tasks = await query_by_status(session, TaskStatus.PENDING, limit, now=now)
    logger.info("GET_PENDING_TASK_BATCH task_count=%s", len(tasks))
    return tasks

async def has_pending_tasks(session: AsyncSession, now: Optional[int] = None) -> bool:
    return bool(await query_by_status(session, TaskStatus.PENDING, 1, now=now))

async def get_task(session: AsyncSession, task_id: str) -> TaskDomain:
    record = await session.get(TaskRecord, task_id)
    if not record:
        raise TaskNotFoundError(task_id)
    return TaskDomain.from_record(record)
