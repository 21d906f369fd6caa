"""
Task Service

The only mutation surface over TaskDatabase. Every mutating operation runs in
a single store transaction so the per-column density invariant holds before
and after each call, and a failure leaves nothing partially written.
"""

import logging
import sqlite3
from typing import Any, Dict, List, Optional, Union

from .config import BoardSettings
from .database import TaskDatabase
from .errors import StoreFailureError, TaskNotFoundError, TaskValidationError
from .models import Task, TaskPatch, TaskStatus
from .reindexer import check_density, compute_delete_shifts, compute_shifts

logger = logging.getLogger(__name__)


def _coerce_status(value: Union[str, TaskStatus, None]) -> TaskStatus:
    try:
        return TaskStatus(value)
    except ValueError:
        valid = [s.value for s in TaskStatus]
        raise TaskValidationError(f"Status must be one of: {valid}, got {value!r}")


def _clean_title(title: Optional[str]) -> str:
    if title is None or not str(title).strip():
        raise TaskValidationError("Title is required")
    return str(title).strip()


def _coerce_position(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise TaskValidationError(f"Position must be an integer, got {value!r}")
    if value < 0:
        raise TaskValidationError(f"Position must be non-negative, got {value}")
    return value


class TaskService:
    """
    Create, list, update, move, and delete tasks atop a TaskDatabase.

    Store errors are logged, rolled back, and surfaced as StoreFailureError.
    Validation happens before a transaction is opened.
    """

    def __init__(self, database: TaskDatabase, settings: Optional[BoardSettings] = None):
        self.db = database
        self.settings = settings or BoardSettings()

    def _store_failure(self, operation: str, error: sqlite3.Error) -> StoreFailureError:
        logger.error(f"Database error during {operation}: {error}")
        return StoreFailureError(f"Failed to {operation}: {error}")

    def create(
        self,
        title: str,
        description: Optional[str] = None,
        status: Union[str, TaskStatus] = TaskStatus.TODO,
    ) -> Task:
        """
        Append a new task to the end of its column.

        Raises:
            TaskValidationError: blank title or unknown status
        """
        title = _clean_title(title)
        status = _coerce_status(status)

        try:
            with self.db.transaction() as cursor:
                position = self.db.count_tasks_in_status(status, cursor)
                task = self.db.insert_task(cursor, title, description, status, position, self.db.now())
        except sqlite3.Error as e:
            raise self._store_failure("create task", e) from e

        logger.info(f"Task {task.id} created in {status.value} at position {position}")
        return task

    def list(self) -> List[Task]:
        """All tasks ordered by column (todo, in_progress, done) then position."""
        try:
            return self.db.get_all_tasks()
        except sqlite3.Error as e:
            raise self._store_failure("list tasks", e) from e

    def get(self, task_id: int) -> Task:
        try:
            task = self.db.get_task_by_id(task_id)
        except sqlite3.Error as e:
            raise self._store_failure("get task", e) from e
        if task is None:
            raise TaskNotFoundError(task_id)
        return task

    def update(self, task_id: int, patch: TaskPatch) -> Task:
        """
        Patch the fields present in the mask and refresh updated_at.

        status/position changes are written directly unless
        ``settings.reindex_on_update`` is enabled, in which case they go
        through the same shift computation as move().

        Raises:
            TaskNotFoundError: task_id does not exist
            TaskValidationError: blank title, unknown status, negative position
        """
        fields: Dict[str, Any] = {}
        if patch.has("title"):
            fields["title"] = _clean_title(patch.title)
        if patch.has("description"):
            fields["description"] = patch.description
        if patch.has("status"):
            fields["status"] = _coerce_status(patch.status)
        if patch.has("position"):
            fields["position"] = _coerce_position(patch.position)

        try:
            with self.db.transaction() as cursor:
                current = self.db.get_task_by_id(task_id, cursor)
                if current is None:
                    raise TaskNotFoundError(task_id)

                timestamp = self.db.now()
                if "status" in fields or "position" in fields:
                    if self.settings.reindex_on_update:
                        self._reindex_for_update(cursor, current, fields, timestamp)
                    else:
                        logger.warning(
                            f"Task {task_id} status/position patched without reindexing; "
                            "use reorder to keep columns dense"
                        )

                self.db.update_task_fields(cursor, task_id, fields, timestamp)
                updated = self.db.get_task_by_id(task_id, cursor)
        except sqlite3.Error as e:
            raise self._store_failure(f"update task {task_id}", e) from e

        logger.info(f"Task {task_id} updated: {sorted(patch.fields)}")
        return updated

    def _reindex_for_update(self, cursor, current: Task, fields: Dict[str, Any], timestamp) -> None:
        target_status = fields.get("status", current.status)
        if "position" in fields:
            target_position = fields["position"]
        elif target_status != current.status:
            target_position = self.db.count_tasks_in_status(target_status, cursor)
        else:
            target_position = current.position

        snapshot = self.db.get_all_tasks(cursor)
        shifts = compute_shifts(snapshot, current.id, target_status, target_position)
        self.db.apply_position_shifts(cursor, shifts, timestamp)
        fields["status"] = target_status
        fields["position"] = target_position

    def move(
        self,
        task_id: int,
        new_status: Union[str, TaskStatus],
        new_position: int,
    ) -> List[Task]:
        """
        Move a task to (new_status, new_position) and reindex both columns.

        Shifts and the moved task's write commit together. Moving a task onto
        its current slot writes nothing.

        Returns:
            Full task list in list() order, read inside the same transaction

        Raises:
            TaskNotFoundError: task_id does not exist
            InvalidPositionError: target outside the destination's range
        """
        new_status = _coerce_status(new_status)
        new_position = _coerce_position(new_position)

        try:
            with self.db.transaction() as cursor:
                snapshot = self.db.get_all_tasks(cursor)
                moved = next((t for t in snapshot if t.id == task_id), None)
                if moved is None:
                    raise TaskNotFoundError(task_id)

                if moved.status == new_status and moved.position == new_position:
                    logger.info(f"Task {task_id} already at {new_status.value}[{new_position}]")
                    return snapshot

                shifts = compute_shifts(snapshot, task_id, new_status, new_position)
                timestamp = self.db.now()
                self.db.apply_position_shifts(cursor, shifts, timestamp)
                self.db.update_task_fields(
                    cursor,
                    task_id,
                    {"status": new_status, "position": new_position},
                    timestamp,
                )
                result = self.db.get_all_tasks(cursor)
        except sqlite3.Error as e:
            raise self._store_failure(f"move task {task_id}", e) from e

        logger.info(
            f"Task {task_id} moved {moved.status.value}[{moved.position}] -> "
            f"{new_status.value}[{new_position}], {len(shifts)} tasks shifted"
        )
        return result

    def delete(self, task_id: int) -> bool:
        """
        Delete a task and close the gap in its former column.

        Returns:
            True if the task existed, False otherwise (never raises NotFound)
        """
        try:
            with self.db.transaction() as cursor:
                snapshot = self.db.get_all_tasks(cursor)
                if not any(t.id == task_id for t in snapshot):
                    logger.info(f"Delete requested for missing task {task_id}")
                    return False

                shifts = compute_delete_shifts(snapshot, task_id)
                self.db.delete_task_row(cursor, task_id)
                self.db.apply_position_shifts(cursor, shifts, self.db.now())
        except sqlite3.Error as e:
            raise self._store_failure(f"delete task {task_id}", e) from e

        logger.info(f"Task {task_id} deleted, {len(shifts)} tasks shifted")
        return True

    def verify_density(self) -> Dict[str, List[int]]:
        """Columns whose positions are not exactly 0..k-1, keyed by status value."""
        return {status.value: positions for status, positions in check_density(self.list()).items()}
