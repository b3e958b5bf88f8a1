from dataclasses import dataclass, field
from typing import Any

from lifo_queue.domain.states import TaskStatus

@dataclass
class TaskDomain:
    task_id: str
    status: TaskStatus
    created_at: int
    updated_at: int
    expires_at: int
    payload: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_record(cls, record) -> "TaskDomain":
        return cls(
            task_id=record.task_id,
            status=TaskStatus(record.status),
            created_at=record.created_at,
            updated_at=record.updated_at,
            expires_at=record.expires_at,
            payload=dict(record.payload or {}),
        )
