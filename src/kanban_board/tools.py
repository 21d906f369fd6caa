"""
MCP Tools Implementation for the Kanban Board

Provides Model Context Protocol (MCP) tools so AI agents can work the board
through the same TaskService the REST API uses.

Key Features:
- BaseTool abstract class with service integration and JSON envelopes
- GetTasksTool: full board in column/position order
- CreateTaskTool: append a task to a column
- UpdateTaskTool: field-mask patch of a task
- DeleteTaskTool: delete with gap closing, success=false for unknown ids
- ReorderTasksTool: move a task and return the authoritative board
"""

import json
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Type, Union

from .errors import TaskBoardError, TaskNotFoundError
from .models import Task, TaskPatch, TaskStatus
from .service import TaskService

logger = logging.getLogger(__name__)


class BaseTool(ABC):
    """
    Abstract base class for MCP tools with service integration.

    Every tool returns a JSON string with a ``success`` flag and ``message``;
    board errors are converted into error envelopes rather than raised so
    the agent always gets a parseable answer.
    """

    def __init__(self, service: TaskService):
        """
        Args:
            service: TaskService shared with the REST API
        """
        self.service = service

    @abstractmethod
    async def apply(self, **kwargs) -> str:
        """
        Apply the tool operation with provided parameters.

        Returns:
            JSON string with operation results or error information
        """
        pass

    def _format_success_response(self, message: str, **kwargs) -> str:
        response = {
            "success": True,
            "message": message,
            **kwargs
        }
        return json.dumps(response)

    def _format_error_response(self, message: str, **kwargs) -> str:
        response = {
            "success": False,
            "message": message,
            **kwargs
        }
        return json.dumps(response)

    @staticmethod
    def _serialize_tasks(tasks: List[Task]) -> List[Dict[str, Any]]:
        return [task.model_dump(mode="json") for task in tasks]

    @staticmethod
    def _parse_task_id(task_id: Union[str, int]) -> int:
        """Accept ids as strings or ints, as MCP clients send both."""
        try:
            value = int(task_id)
        except (ValueError, TypeError):
            raise ValueError("Task ID must be a valid integer")
        if value <= 0:
            raise ValueError("Task ID must be a positive integer")
        return value


class GetTasksTool(BaseTool):
    """MCP tool returning every task ordered by column then position."""

    async def apply(self, status: Optional[str] = None) -> str:
        try:
            tasks = self.service.list()
            if status:
                wanted = TaskStatus(status)
                tasks = [t for t in tasks if t.status == wanted]
            return self._format_success_response(
                f"Retrieved {len(tasks)} tasks",
                tasks=self._serialize_tasks(tasks),
                count=len(tasks),
            )
        except ValueError:
            valid = [s.value for s in TaskStatus]
            return self._format_error_response(f"Status must be one of: {valid}")
        except TaskBoardError as e:
            logger.error(f"Error listing tasks: {e}")
            return self._format_error_response(f"Failed to list tasks: {e}")


class CreateTaskTool(BaseTool):
    """MCP tool creating a task at the end of a column."""

    async def apply(self, title: str, description: Optional[str] = None, status: str = "todo") -> str:
        try:
            task = self.service.create(title, description, status)
            return self._format_success_response(
                f"Created task '{task.title}' in {task.status.value}",
                task=task.model_dump(mode="json"),
            )
        except TaskBoardError as e:
            logger.error(f"Error creating task: {e}")
            return self._format_error_response(str(e))


class UpdateTaskTool(BaseTool):
    """
    MCP tool patching task fields.

    MCP arguments cannot tell "absent" from "null", so clearing the
    description uses the explicit ``clear_description`` flag.
    """

    async def apply(
        self,
        task_id: Union[str, int],
        title: Optional[str] = None,
        description: Optional[str] = None,
        status: Optional[str] = None,
        position: Optional[int] = None,
        clear_description: bool = False,
    ) -> str:
        try:
            task_id_int = self._parse_task_id(task_id)
        except ValueError as e:
            return self._format_error_response(str(e))

        fields: Dict[str, Any] = {}
        if title is not None:
            fields["title"] = title
        if clear_description:
            fields["description"] = None
        elif description is not None:
            fields["description"] = description
        if status is not None:
            fields["status"] = status
        if position is not None:
            fields["position"] = position

        try:
            task = self.service.update(task_id_int, TaskPatch(**fields))
            return self._format_success_response(
                f"Updated task {task_id_int}",
                task=task.model_dump(mode="json"),
                updated_fields=sorted(fields),
            )
        except TaskNotFoundError as e:
            return self._format_error_response(str(e), task_id=task_id_int)
        except (TaskBoardError, ValueError) as e:
            logger.error(f"Error updating task {task_id_int}: {e}")
            return self._format_error_response(str(e), task_id=task_id_int)


class DeleteTaskTool(BaseTool):
    """MCP tool deleting a task; unknown ids answer success=false."""

    async def apply(self, task_id: Union[str, int]) -> str:
        try:
            task_id_int = self._parse_task_id(task_id)
        except ValueError as e:
            return self._format_error_response(str(e))

        try:
            deleted = self.service.delete(task_id_int)
        except TaskBoardError as e:
            logger.error(f"Error deleting task {task_id_int}: {e}")
            return self._format_error_response(f"Failed to delete task: {e}")

        if not deleted:
            return self._format_error_response(f"Task {task_id_int} not found", task_id=task_id_int)
        return self._format_success_response(f"Deleted task {task_id_int}", task_id=task_id_int)


class ReorderTasksTool(BaseTool):
    """MCP tool moving a task within or across columns."""

    async def apply(self, task_id: Union[str, int], new_status: str, new_position: int) -> str:
        try:
            task_id_int = self._parse_task_id(task_id)
        except ValueError as e:
            return self._format_error_response(str(e))

        try:
            tasks = self.service.move(task_id_int, new_status, int(new_position))
            return self._format_success_response(
                f"Moved task {task_id_int} to {new_status}[{new_position}]",
                tasks=self._serialize_tasks(tasks),
            )
        except (TaskBoardError, ValueError) as e:
            logger.error(f"Error moving task {task_id_int}: {e}")
            return self._format_error_response(str(e), task_id=task_id_int)


AVAILABLE_TOOLS: Dict[str, Type[BaseTool]] = {
    "get_tasks": GetTasksTool,
    "create_task": CreateTaskTool,
    "update_task": UpdateTaskTool,
    "delete_task": DeleteTaskTool,
    "reorder_tasks": ReorderTasksTool,
}


def create_tool_instance(tool_name: str, service: TaskService) -> BaseTool:
    """
    Factory function to create tool instances with dependencies.

    Raises:
        KeyError: If tool_name is not found in AVAILABLE_TOOLS
    """
    if tool_name not in AVAILABLE_TOOLS:
        raise KeyError(f"Unknown tool '{tool_name}'. Available tools: {list(AVAILABLE_TOOLS.keys())}")

    tool_class = AVAILABLE_TOOLS[tool_name]
    return tool_class(service)
