from typing import Any

from sqlalchemy import BigInteger, Index, JSON, String
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from lifo_queue.db.session import Base
from lifo_queue.domain.states import TaskStatus

class TaskRecord(Base):
    __tablename__ = "tasks"

    task_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    status: Mapped[TaskStatus] = mapped_column(String(16), nullable=False, default=TaskStatus.PENDING)

    # Milliseconds since the epoch. created_at is the LIFO key and is never updated.
    created_at: Mapped[int] = mapped_column(BigInteger, nullable=False)
    updated_at: Mapped[int] = mapped_column(BigInteger, nullable=False)
    expires_at: Mapped[int] = mapped_column(BigInteger, nullable=False, index=True)

    payload: Mapped[dict[str, Any]] = mapped_column(
        JSON().with_variant(JSONB(), "postgresql"), default=dict
    )

    __table_args__ = (
        # Batch selection: status = :status ORDER BY created_at DESC LIMIT n
        Index("ix_tasks_status_created", "status", "created_at"),
    )
