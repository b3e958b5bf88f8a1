import logging
from typing import Optional

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from lifo_queue.db.models import TaskRecord
from lifo_queue.api.v1.metrics import TASKS_PURGED_TOTAL
from lifo_queue.utils.clock import resolve_now

logger = logging.getLogger(__name__)

async def purge_expired_tasks(
    session: AsyncSession,
    now: Optional[int] = None,
    limit: Optional[int] = None,
) -> int:
    """
    Deletes every task whose expires_at has passed, whatever its status.
    Returns number of tasks removed.

    A worker holding one of these tasks will see its next conditional
    transition fail, which it already treats as a skip.
    """
    now = resolve_now(now)

    condition = TaskRecord.expires_at <= now
    if limit is not None:
        # DELETE has no portable LIMIT; bound it through the primary key.
        ids = select(TaskRecord.task_id).where(condition).limit(limit)
        condition = TaskRecord.task_id.in_(ids.scalar_subquery())

    stmt = delete(TaskRecord).where(condition).execution_options(synchronize_session=False)
    result = await session.execute(stmt)
    count = result.rowcount or 0

    if count > 0:
        TASKS_PURGED_TOTAL.inc(count)
        logger.info("PURGE_EXPIRED_TASKS count=%s", count)

    return count
