"""
Error taxonomy for board operations.

Every failure raised by the reindexer, service, importer, or client derives
from TaskBoardError so transports can map them onto their own error shapes.
"""


class TaskBoardError(Exception):
    """Base class for board errors."""


class TaskValidationError(TaskBoardError):
    """Malformed input: blank title, unknown status, bad position."""


class InvalidPositionError(TaskValidationError):
    """Target position lies outside the destination column's valid range."""

    def __init__(self, position: int, max_position: int, status: str):
        self.position = position
        self.max_position = max_position
        self.status = status
        super().__init__(
            f"Position {position} out of range for column '{status}' (expected 0..{max_position})"
        )


class TaskNotFoundError(TaskBoardError):
    """Referenced task id does not exist."""

    def __init__(self, task_id: int):
        self.task_id = task_id
        super().__init__(f"Task with id {task_id} not found")


class StoreFailureError(TaskBoardError):
    """Persistence unavailable or transaction aborted; nothing was committed."""
