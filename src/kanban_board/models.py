"""
Pydantic models for Kanban Board API request/response validation.

Provides the Task record, input models for each board operation, the
field-mask patch used by updates, and the standard error/success envelopes.
"""

from typing import Optional, List, Dict, Any
from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator


class TaskStatus(str, Enum):
    """Board columns. Declaration order is the column order used by list()."""

    TODO = "todo"
    IN_PROGRESS = "in_progress"
    DONE = "done"

    @property
    def order(self) -> int:
        return STATUS_ORDER[self]


STATUS_ORDER: Dict[TaskStatus, int] = {status: index for index, status in enumerate(TaskStatus)}


class Task(BaseModel):
    """Persisted task record."""

    id: int
    title: str
    description: Optional[str] = None
    status: TaskStatus
    position: int = Field(ge=0)
    created_at: datetime
    updated_at: datetime

    def sort_key(self):
        return (self.status.order, self.position)


def _require_title(v: Optional[str]) -> Optional[str]:
    if v is None:
        return v
    if not v.strip():
        raise ValueError("Title is required")
    return v.strip()


class CreateTaskInput(BaseModel):
    """Request model for creating a task."""

    title: str = Field(description="Task title, must not be blank")
    description: Optional[str] = Field(None, description="Optional task details")
    status: TaskStatus = Field(TaskStatus.TODO, description="Target column")

    @field_validator("title")
    @classmethod
    def validate_title(cls, v):
        """Reject blank titles."""
        return _require_title(v)


class UpdateTaskInput(BaseModel):
    """
    Request model for patching a task.

    Field presence, not value, decides what gets written: an omitted field is
    left untouched, while ``description: null`` clears the description.
    """

    title: Optional[str] = None
    description: Optional[str] = None
    status: Optional[TaskStatus] = None
    position: Optional[int] = Field(None, ge=0)

    @field_validator("title")
    @classmethod
    def validate_title(cls, v):
        return _require_title(v)

    @field_validator("status", "position", "title")
    @classmethod
    def reject_explicit_null(cls, v, info):
        # Only description may be explicitly cleared
        if v is None:
            raise ValueError(f"{info.field_name} cannot be null")
        return v

    def to_patch(self) -> "TaskPatch":
        return TaskPatch(**{name: getattr(self, name) for name in self.model_fields_set})


class TaskPatch(BaseModel):
    """
    Field mask for task updates.

    ``fields`` holds only the names that were explicitly provided, so
    ``TaskPatch(description=None)`` sets the description to NULL while
    ``TaskPatch()`` touches nothing but ``updated_at``.
    """

    model_config = ConfigDict(frozen=True)

    title: Optional[str] = None
    description: Optional[str] = None
    status: Optional[TaskStatus] = None
    position: Optional[int] = None

    @property
    def fields(self) -> set:
        return set(self.model_fields_set)

    def has(self, name: str) -> bool:
        return name in self.model_fields_set


class ReorderTasksInput(BaseModel):
    """Request model for the move operation (camelCase on the wire)."""

    model_config = ConfigDict(populate_by_name=True)

    task_id: int = Field(alias="taskId")
    new_status: TaskStatus = Field(alias="newStatus")
    new_position: int = Field(alias="newPosition", ge=0)


class DeleteTaskResponse(BaseModel):
    """Response model for delete; never an error for unknown ids."""

    success: bool


class HealthResponse(BaseModel):
    """Response model for health check endpoint."""

    status: str
    database_connected: bool
    timestamp: str


class ErrorResponse(BaseModel):
    """Standard error response model."""

    success: bool = False
    error: str
    code: Optional[int] = None
    details: Optional[Dict[str, Any]] = None


class BoardColumns(BaseModel):
    """Tasks grouped by column, used by the CLI board listing."""

    todo: List[Task] = Field(default_factory=list)
    in_progress: List[Task] = Field(default_factory=list)
    done: List[Task] = Field(default_factory=list)

    @classmethod
    def from_tasks(cls, tasks: List[Task]) -> "BoardColumns":
        columns = cls()
        for task in sorted(tasks, key=Task.sort_key):
            getattr(columns, task.status.value).append(task)
        return columns


# Utility function to create consistent error responses
def create_error_response(
    message: str, code: Optional[int] = None, details: Optional[Dict[str, Any]] = None
) -> Dict[str, Any]:
    """Create a standardized error response dictionary."""
    return {"success": False, "error": message, "code": code, "details": details}


# Utility function to create consistent success responses
def create_success_response(message: str, data: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """Create a standardized success response dictionary."""
    return {"success": True, "message": message, "data": data}
