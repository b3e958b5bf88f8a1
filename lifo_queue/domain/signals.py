from typing import Any, Iterable, Optional

from pydantic import BaseModel, Field, ValidationError, field_validator

from lifo_queue.domain.states import SignalEvent, SignalSource

class SignalRecord(BaseModel):
    source: SignalSource
    event: SignalEvent
    task_id: Optional[str] = None

class Signal(BaseModel):
    """
    Normalized wake-up message carried by a transport.

    Store notifications arrive in small batches of records; a hand-off is a
    single CONTINUE record. Records of a kind we do not know (another event
    type, another source) are dropped one by one, so they never hide an
    INSERT sitting in the same batch. Only a malformed envelope is rejected.
    """
    records: list[SignalRecord] = Field(default_factory=list)

    @field_validator("records", mode="before")
    @classmethod
    def _drop_unknown_records(cls, value: Any) -> Any:
        if not isinstance(value, list):
            return value

        known = []
        for raw in value:
            try:
                known.append(SignalRecord.model_validate(raw))
            except ValidationError:
                continue
        return known

    @classmethod
    def insert(cls, task_ids: Iterable[str]) -> "Signal":
        return cls(records=[
            SignalRecord(source=SignalSource.STORE, event=SignalEvent.INSERT, task_id=task_id)
            for task_id in task_ids
        ])

    @classmethod
    def handoff(cls) -> "Signal":
        return cls(records=[SignalRecord(source=SignalSource.HANDOFF, event=SignalEvent.CONTINUE)])

    @property
    def has_insert(self) -> bool:
        return any(
            r.source == SignalSource.STORE and r.event == SignalEvent.INSERT
            for r in self.records
        )

    @property
    def has_handoff(self) -> bool:
        return any(r.source == SignalSource.HANDOFF for r in self.records)
