from typing import Annotated, Optional

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from lifo_queue.db.session import get_db_session
from lifo_queue.services.relay import TriggerRelay
from lifo_queue.services.transport import SignalPublisher

# Dependency for DB session
DbSession = Annotated[AsyncSession, Depends(get_db_session)]

def get_relay(request: Request) -> TriggerRelay:
    return request.app.state.relay

def get_transport(request: Request) -> Optional[SignalPublisher]:
    return getattr(request.app.state, "transport", None)

Relay = Annotated[TriggerRelay, Depends(get_relay)]
SignalTransport = Annotated[Optional[SignalPublisher], Depends(get_transport)]
