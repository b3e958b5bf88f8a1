class QueueError(Exception):
    """Base exception for task queue errors."""
    pass

class TaskNotFoundError(QueueError):
    def __init__(self, task_id):
        super().__init__(f"Task {task_id} not found")

class TaskAlreadyExistsError(QueueError):
    def __init__(self, task_id):
        super().__init__(f"Task {task_id} already exists")
        self.task_id = task_id

class InvalidTransitionError(QueueError):
    def __init__(self, from_status, to_status):
        super().__init__(f"Cannot transition from {from_status} to {to_status}")

class TaskStoreError(QueueError):
    """The store itself failed (connection, timeout, driver error)."""
    pass
