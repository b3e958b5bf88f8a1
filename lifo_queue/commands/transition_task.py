import logging
from typing import Optional

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from lifo_queue.db.models import TaskRecord
from lifo_queue.domain.errors import InvalidTransitionError
from lifo_queue.domain.states import ALLOWED_TRANSITIONS, TaskStatus
from lifo_queue.api.v1.metrics import TASK_TRANSITIONS_TOTAL, TASK_AGE_AT_LEASE
from lifo_queue.utils.clock import resolve_now

logger = logging.getLogger(__name__)

async def transition_task(
    session: AsyncSession,
    task_id: str,
    from_status: TaskStatus,
    to_status: TaskStatus,
    now: Optional[int] = None,
) -> bool:
    """
    Moves a task from one status to another, only if it is currently in
    `from_status`.

    The status check and the write are a single UPDATE, so concurrent
    callers cannot both win. Returns False when the condition does not hold
    (lost race, already moved, or the row expired and was purged). That is
    an expected outcome, not an error.

    Driver failures propagate as SQLAlchemyError; `unit_of_work` turns them
    into TaskStoreError.
    """
    from_status, to_status = TaskStatus(from_status), TaskStatus(to_status)
    if (from_status, to_status) not in ALLOWED_TRANSITIONS:
        raise InvalidTransitionError(from_status, to_status)

    now = resolve_now(now)

    # UPDATE tasks SET status=:to, updated_at=:now WHERE task_id=:id AND status=:from RETURNING created_at
    stmt = (
        update(TaskRecord)
        .where(
            TaskRecord.task_id == task_id,
            TaskRecord.status == from_status,
        )
        .values(status=to_status, updated_at=now)
        .returning(TaskRecord.created_at)
        .execution_options(synchronize_session=False)
    )
    result = await session.execute(stmt)
    created_at = result.scalar_one_or_none()

    if created_at is None:
        TASK_TRANSITIONS_TOTAL.labels(from_status=from_status, to_status=to_status, result="conflict").inc()
        logger.info(
            "TRANSITION_TASK_FAILED task=%s from=%s to=%s",
            task_id, from_status, to_status,
        )
        return False

    task_age = now - created_at
    TASK_TRANSITIONS_TOTAL.labels(from_status=from_status, to_status=to_status, result="ok").inc()
    if to_status == TaskStatus.TAKEN:
        TASK_AGE_AT_LEASE.observe(max(task_age, 0) / 1000)

    logger.info(
        "TRANSITION_TASK task=%s from=%s to=%s age_ms=%s",
        task_id, from_status, to_status, task_age,
    )
    return True
