from enum import StrEnum, auto

class TaskStatus(StrEnum):
    PENDING = auto()  # Eligible for selection
    TAKEN = auto()    # Leased to exactly one worker
    SUCCESS = auto()  # Completed
    FAILURE = auto()  # Failed permanently

class SignalSource(StrEnum):
    STORE = auto()    # Change notification from the task store
    HANDOFF = auto()  # Worker asked for a fresh activation

class SignalEvent(StrEnum):
    INSERT = "INSERT"
    MODIFY = "MODIFY"
    REMOVE = "REMOVE"
    CONTINUE = "CONTINUE"

class ActivationExit(StrEnum):
    IDLE_EXIT = auto()  # Nothing left to do
    TIME_EXIT = auto()  # Budget spent, work handed off

# Every mutation after insert must follow one of these edges.
ALLOWED_TRANSITIONS: frozenset[tuple[TaskStatus, TaskStatus]] = frozenset({
    (TaskStatus.PENDING, TaskStatus.TAKEN),
    (TaskStatus.TAKEN, TaskStatus.SUCCESS),
    (TaskStatus.TAKEN, TaskStatus.FAILURE),
    (TaskStatus.TAKEN, TaskStatus.PENDING),
})

# Outcomes a task runner may report.
RUNNER_OUTCOMES: frozenset[TaskStatus] = frozenset({
    TaskStatus.SUCCESS,
    TaskStatus.FAILURE,
    TaskStatus.PENDING,
})
