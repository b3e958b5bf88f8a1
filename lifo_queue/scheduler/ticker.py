import logging
from typing import Optional

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from lifo_queue.db.models import TaskRecord
from lifo_queue.domain.states import TaskStatus
from lifo_queue.commands.purge_expired import purge_expired_tasks
from lifo_queue.commands.reclaim_stale import reclaim_stale_leases
from lifo_queue.api.v1.metrics import QUEUE_DEPTH
from lifo_queue.utils.clock import resolve_now

logger = logging.getLogger(__name__)

async def run_maintenance(
    session: AsyncSession,
    lease_timeout_seconds: Optional[int] = None,
    now: Optional[int] = None,
) -> dict[str, int]:
    """
    Periodic maintenance:
    1. Purge expired tasks (load shedding)
    2. Reclaim stale leases, when a lease timeout is configured
    3. Refresh queue depth gauges
    """
    now = resolve_now(now)

    purged = await purge_expired_tasks(session, now=now)

    reclaimed = 0
    if lease_timeout_seconds:
        reclaimed = len(await reclaim_stale_leases(session, lease_timeout_seconds, now=now))

    await refresh_queue_depth(session, now=now)

    return {"purged": purged, "reclaimed": reclaimed}

async def refresh_queue_depth(session: AsyncSession, now: Optional[int] = None):
    # Absolute counts, never inc/dec
    now = resolve_now(now)
    q_depth = (
        select(TaskRecord.status, func.count(TaskRecord.task_id))
        .where(TaskRecord.expires_at > now)
        .group_by(TaskRecord.status)
    )
    rows = dict((await session.execute(q_depth)).all())

    for status in TaskStatus:
        QUEUE_DEPTH.labels(status=status.value).set(rows.get(status.value, 0))
