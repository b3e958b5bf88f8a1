import logging

from fastapi import APIRouter, Depends, Request

from lifo_queue.api.deps import Relay
from lifo_queue.auth.security import SignatureVerifier

logger = logging.getLogger(__name__)

router = APIRouter()

@router.post("", dependencies=[Depends(SignatureVerifier())])
async def trigger(request: Request, relay: Relay):
    """
    Transport webhook. Any JSON body is accepted; the relay decides whether
    it warrants a worker invocation.
    """
    try:
        raw = await request.json()
    except ValueError:
        raw = None
    dispatched = await relay.handle(raw)
    return {"dispatched": dispatched}
