from typing import Any, Optional

from fastapi import APIRouter, HTTPException, Query, status
from pydantic import BaseModel, ConfigDict, Field

from lifo_queue.api.deps import DbSession, SignalTransport
from lifo_queue.commands.create_task import create_task
from lifo_queue.commands.select_tasks import get_task, query_by_status
from lifo_queue.domain.errors import TaskAlreadyExistsError, TaskNotFoundError
from lifo_queue.domain.signals import Signal
from lifo_queue.domain.states import TaskStatus

router = APIRouter()

class TaskCreate(BaseModel):
    task_id: Optional[str] = Field(default=None, min_length=1, max_length=128)
    payload: dict[str, Any] = Field(default_factory=dict)

class TaskResponse(BaseModel):
    task_id: str
    status: TaskStatus
    created_at: int
    updated_at: int
    expires_at: int
    payload: dict[str, Any]
    model_config = ConfigDict(from_attributes=True)

@router.post("", response_model=TaskResponse, status_code=status.HTTP_201_CREATED)
async def create_task_endpoint(body: TaskCreate, session: DbSession, transport: SignalTransport):
    try:
        task = await create_task(session, task_id=body.task_id, payload=body.payload)
    except TaskAlreadyExistsError as e:
        raise HTTPException(status_code=409, detail=str(e))
    await session.commit()

    # Only announce once the row is visible to workers
    if transport is not None:
        await transport.publish(Signal.insert([task.task_id]))
    return task

@router.get("", response_model=list[TaskResponse])
async def list_tasks(
    session: DbSession,
    task_status: TaskStatus = Query(default=TaskStatus.PENDING, alias="status"),
    limit: int = Query(default=10, ge=1, le=100),
):
    """Newest first, same ordering workers see."""
    return await query_by_status(session, task_status, limit)

@router.get("/{task_id}", response_model=TaskResponse)
async def get_task_endpoint(task_id: str, session: DbSession):
    try:
        return await get_task(session, task_id)
    except TaskNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
