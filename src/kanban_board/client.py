"""
Board client and optimistic drag-and-drop controller.

This module provides:
- BoardApiClient: async httpx client for the REST surface, decoding records
  into Task models so timestamps arrive as datetime values
- OptimisticBoardController: predicts a move locally, renders it, then either
  adopts the server's authoritative list or restores the pre-drag snapshot
"""

import asyncio
import logging
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Union

import httpx

from .config import BoardSettings
from .errors import StoreFailureError, TaskBoardError, TaskNotFoundError, TaskValidationError
from .models import Task, TaskPatch, TaskStatus
from .reindexer import apply_move, apply_shifts, compute_delete_shifts, sort_tasks

logger = logging.getLogger(__name__)


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or f"HTTP {response.status_code}"
    if isinstance(body, dict):
        return str(body.get("error") or body.get("detail") or body)
    return str(body)


class BoardApiClient:
    """Async client for the board REST API."""

    def __init__(
        self,
        base_url: str = "http://localhost:2022",
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    @classmethod
    def from_settings(cls, settings: Optional[BoardSettings] = None) -> "BoardApiClient":
        """Build a client from KANBAN_API_URL and KANBAN_CLIENT_TIMEOUT."""
        settings = settings or BoardSettings.from_env()
        return cls(base_url=settings.api_url, timeout=settings.client_timeout)

    async def _request(
        self,
        method: str,
        path: str,
        json: Optional[Dict[str, Any]] = None,
        task_id: Optional[int] = None,
    ) -> Any:
        async with httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout,
            transport=self._transport,
        ) as client:
            try:
                response = await client.request(method, path, json=json)
            except httpx.TimeoutException as e:
                logger.error(f"Timed out calling {method} {path}: {e}")
                raise StoreFailureError(f"Request timed out: {method} {path}") from e
            except httpx.HTTPError as e:
                logger.error(f"HTTP error calling {method} {path}: {e}")
                raise StoreFailureError(f"Request failed: {e}") from e

        if response.status_code == 404 and task_id is not None:
            raise TaskNotFoundError(task_id)
        if response.status_code in (400, 422):
            raise TaskValidationError(_error_message(response))
        if response.status_code >= 400:
            raise StoreFailureError(f"HTTP {response.status_code}: {_error_message(response)}")
        return response.json()

    async def healthcheck(self) -> Dict[str, Any]:
        return await self._request("GET", "/healthz")

    async def get_tasks(self) -> List[Task]:
        data = await self._request("GET", "/api/tasks")
        return [Task.model_validate(item) for item in data]

    async def create_task(
        self,
        title: str,
        description: Optional[str] = None,
        status: Union[str, TaskStatus] = TaskStatus.TODO,
    ) -> Task:
        payload = {"title": title, "description": description, "status": TaskStatus(status).value}
        return Task.model_validate(await self._request("POST", "/api/tasks", json=payload))

    async def update_task(self, task_id: int, patch: TaskPatch) -> Task:
        payload = patch.model_dump(mode="json", include=patch.fields)
        data = await self._request("PATCH", f"/api/tasks/{task_id}", json=payload, task_id=task_id)
        return Task.model_validate(data)

    async def delete_task(self, task_id: int) -> bool:
        data = await self._request("DELETE", f"/api/tasks/{task_id}")
        return bool(data.get("success"))

    async def reorder_tasks(
        self,
        task_id: int,
        new_status: Union[str, TaskStatus],
        new_position: int,
    ) -> List[Task]:
        payload = {
            "taskId": task_id,
            "newStatus": TaskStatus(new_status).value,
            "newPosition": new_position,
        }
        data = await self._request("POST", "/api/tasks/reorder", json=payload, task_id=task_id)
        return [Task.model_validate(item) for item in data]


class ControllerState(str, Enum):
    """Drag lifecycle states."""

    IDLE = "idle"
    DRAGGING = "dragging"
    AWAITING_SERVER = "awaiting_server"
    RECONCILED = "reconciled"


class DragInProgressError(TaskBoardError):
    """A drag was started while a previous move is still awaiting the server."""


class OptimisticBoardController:
    """
    Client-side owner of the board list and the drag state machine.

    Transitions:
        idle/reconciled --start_drag--> dragging
        dragging --drop (same slot)--> idle
        dragging --drop--> awaiting_server --success--> reconciled
                                           --failure--> idle (snapshot restored)

    The local list is disposable: every server response replaces it verbatim.
    """

    def __init__(self, api: BoardApiClient, on_error: Optional[Callable[[Exception], None]] = None):
        self.api = api
        self.tasks: List[Task] = []
        self.state = ControllerState.IDLE
        self.dragging_task_id: Optional[int] = None
        self.last_error: Optional[Exception] = None
        self._on_error = on_error
        self._listeners: List[Callable[[List[Task]], None]] = []

    def on_change(self, callback: Callable[[List[Task]], None]) -> None:
        """Register a listener called with the current list after every change."""
        self._listeners.append(callback)

    def _publish(self, tasks: List[Task]) -> None:
        self.tasks = list(tasks)
        for callback in self._listeners:
            callback(self.tasks)

    def _report(self, operation: str, error: Exception) -> None:
        logger.error(f"Failed to {operation}: {error}")
        self.last_error = error
        if self._on_error is not None:
            self._on_error(error)

    def column(self, status: Union[str, TaskStatus]) -> List[Task]:
        status = TaskStatus(status)
        return [t for t in sort_tasks(self.tasks) if t.status == status]

    def _find(self, task_id: int) -> Optional[Task]:
        return next((t for t in self.tasks if t.id == task_id), None)

    async def load(self) -> List[Task]:
        """Replace the local list with the server's."""
        try:
            tasks = await self.api.get_tasks()
        except Exception as e:
            self._report("load tasks", e)
            raise
        self._publish(tasks)
        return self.tasks

    async def create(
        self,
        title: str,
        description: Optional[str] = None,
        status: Union[str, TaskStatus] = TaskStatus.TODO,
    ) -> Task:
        try:
            task = await self.api.create_task(title, description, status)
        except Exception as e:
            self._report("create task", e)
            raise
        self._publish(sort_tasks([*self.tasks, task]))
        return task

    async def update(self, task_id: int, patch: TaskPatch) -> Task:
        try:
            updated = await self.api.update_task(task_id, patch)
        except Exception as e:
            self._report(f"update task {task_id}", e)
            raise
        self._publish(sort_tasks(updated if t.id == task_id else t for t in self.tasks))
        return updated

    async def delete(self, task_id: int) -> bool:
        """
        Delete task_id, then reload the server's list.

        The task is dropped locally (with its column's gap closed) as soon as
        the delete succeeds, so a failed reload never leaves it on the board.
        """
        try:
            deleted = await self.api.delete_task(task_id)
        except Exception as e:
            self._report(f"delete task {task_id}", e)
            raise

        if self._find(task_id) is not None:
            shifts = compute_delete_shifts(self.tasks, task_id)
            self._publish([t for t in apply_shifts(self.tasks, shifts) if t.id != task_id])

        try:
            # Server closed the gap in the column; take its positions
            tasks = await self.api.get_tasks()
        except Exception as e:
            self._report(f"reload tasks after deleting task {task_id}", e)
            raise
        self._publish(tasks)
        return deleted

    def start_drag(self, task_id: int) -> None:
        """
        Mark task_id as in flight.

        Raises:
            DragInProgressError: a previous move has not resolved yet
            TaskNotFoundError: task_id is not on the local board
        """
        if self.state == ControllerState.AWAITING_SERVER:
            raise DragInProgressError(
                f"Cannot drag task {task_id} while task {self.dragging_task_id} is awaiting the server"
            )
        if self._find(task_id) is None:
            raise TaskNotFoundError(task_id)
        self.dragging_task_id = task_id
        self.state = ControllerState.DRAGGING

    def cancel_drag(self) -> None:
        if self.state == ControllerState.DRAGGING:
            self._clear_drag(ControllerState.IDLE)

    def _clear_drag(self, state: ControllerState) -> None:
        self.dragging_task_id = None
        self.state = state

    async def drop(self, new_status: Union[str, TaskStatus], new_position: int) -> bool:
        """
        Finish the current drag at (new_status, new_position).

        Returns:
            True if the server accepted the move, False for a no-op drop or a
            failed move (in which case the pre-drag list is restored)
        """
        if self.state != ControllerState.DRAGGING or self.dragging_task_id is None:
            raise TaskBoardError("drop() called without an active drag")

        task_id = self.dragging_task_id
        new_status = TaskStatus(new_status)
        task = self._find(task_id)
        if task is None or (task.status == new_status and task.position == new_position):
            self._clear_drag(ControllerState.IDLE)
            return False
        snapshot = list(self.tasks)
        try:
            prediction = apply_move(snapshot, task_id, new_status, new_position)
        except TaskBoardError as e:
            # Prediction is best effort; the server decides
            logger.warning(f"Local prediction for task {task_id} failed: {e}")
            prediction = snapshot
        self._publish(prediction)
        self.state = ControllerState.AWAITING_SERVER

        try:
            authoritative = await self.api.reorder_tasks(task_id, new_status, new_position)
        except asyncio.CancelledError:
            # Caller timed out or cancelled; roll back before propagating
            self._publish(snapshot)
            self._clear_drag(ControllerState.IDLE)
            raise
        except Exception as e:
            self._publish(snapshot)
            self._report(f"move task {task_id}", e)
            self._clear_drag(ControllerState.IDLE)
            return False

        self._publish(authoritative)
        self.last_error = None
        self._clear_drag(ControllerState.RECONCILED)
        return True

    async def move(self, task_id: int, new_status: Union[str, TaskStatus], new_position: int) -> bool:
        """start_drag + drop in one call."""
        self.start_drag(task_id)
        return await self.drop(new_status, new_position)
