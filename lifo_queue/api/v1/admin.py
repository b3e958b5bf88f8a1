from typing import Optional

from fastapi import APIRouter, Query

from lifo_queue.api.deps import DbSession
from lifo_queue.commands.purge_expired import purge_expired_tasks
from lifo_queue.commands.reclaim_stale import reclaim_stale_leases
from lifo_queue.settings import settings

router = APIRouter()

DEFAULT_RECLAIM_SECONDS = 300

@router.post("/purge_expired")
async def trigger_purge_expired(session: DbSession):
    count = await purge_expired_tasks(session)
    await session.commit()
    return {"purged_count": count}

@router.post("/reclaim_stale")
async def trigger_reclaim_stale(
    session: DbSession,
    older_than_seconds: Optional[int] = Query(default=None, ge=0),
):
    threshold = older_than_seconds
    if threshold is None:
        threshold = settings.LEASE_TIMEOUT_SECONDS or DEFAULT_RECLAIM_SECONDS
    reclaimed = await reclaim_stale_leases(session, threshold)
    await session.commit()
    return {"reclaimed_count": len(reclaimed), "task_ids": reclaimed}
