import logging
from typing import Optional

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from lifo_queue.db.models import TaskRecord
from lifo_queue.domain.states import TaskStatus
from lifo_queue.api.v1.metrics import LEASES_RECLAIMED_TOTAL
from lifo_queue.utils.clock import resolve_now

logger = logging.getLogger(__name__)

async def reclaim_stale_leases(
    session: AsyncSession,
    older_than_seconds: int,
    now: Optional[int] = None,
) -> list[str]:
    """
    Returns TAKEN tasks whose lease is older than `older_than_seconds` to
    PENDING. Returns ids of reclaimed tasks.

    This heals tasks stranded by an activation that was killed mid-batch.
    It is a single conditional UPDATE: a task that concludes concurrently is
    no longer TAKEN and is left alone. created_at is untouched, so a
    reclaimed task keeps its original (lower) priority.
    """
    now = resolve_now(now)
    cutoff = now - older_than_seconds * 1000

    stmt = (
        update(TaskRecord)
        .where(
            TaskRecord.status == TaskStatus.TAKEN,
            TaskRecord.updated_at <= cutoff,
        )
        .values(status=TaskStatus.PENDING, updated_at=now)
        .returning(TaskRecord.task_id)
        .execution_options(synchronize_session=False)
    )
    result = await session.execute(stmt)
    reclaimed = list(result.scalars().all())

    if reclaimed:
        LEASES_RECLAIMED_TOTAL.inc(len(reclaimed))
        logger.warning("RECLAIM_STALE_LEASES count=%s tasks=%s", len(reclaimed), reclaimed)

    return reclaimed
