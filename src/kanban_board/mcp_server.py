"""
FastMCP Server for the Kanban Board

Registers the board tools on a FastMCP server and runs it over stdio, SSE,
or streamable HTTP.
"""

import logging
from typing import Any, Dict, Optional, Union

from fastmcp import FastMCP

from .service import TaskService
from .tools import AVAILABLE_TOOLS, create_tool_instance

logger = logging.getLogger(__name__)

SUPPORTED_TRANSPORTS = ("stdio", "sse", "http")


class KanbanBoardMCPServer:
    """
    FastMCP server wrapper with tool registration.

    The FastMCP instance is built lazily so that tests can inspect the
    wrapper without starting a transport.
    """

    def __init__(
        self,
        service: TaskService,
        server_name: str = "Kanban Board MCP",
        server_version: str = "1.0.0",
    ):
        self.service = service
        self.server_name = server_name
        self.server_version = server_version
        self.mcp_server: Optional[FastMCP] = None
        self._server_instructions = (
            f"{server_name} manages a three-column task board (todo, in_progress, done). "
            "Use reorder_tasks to move tasks between or within columns; it keeps every "
            "column's positions dense and returns the full board."
        )

    def create_server(self) -> FastMCP:
        """Create the FastMCP instance and register every board tool."""
        mcp = FastMCP(name=self.server_name, version=self.server_version, instructions=self._server_instructions)

        get_tasks_tool = create_tool_instance("get_tasks", self.service)
        create_task_tool = create_tool_instance("create_task", self.service)
        update_task_tool = create_tool_instance("update_task", self.service)
        delete_task_tool = create_tool_instance("delete_task", self.service)
        reorder_tasks_tool = create_tool_instance("reorder_tasks", self.service)

        @mcp.tool
        async def get_tasks(status: Optional[str] = None) -> str:
            """
            Get all tasks ordered by column (todo, in_progress, done) then position.

            Args:
                status: Optional column to filter by
            """
            return await get_tasks_tool.apply(status=status)

        @mcp.tool
        async def create_task(title: str, description: Optional[str] = None, status: str = "todo") -> str:
            """
            Create a task at the end of a column.

            Args:
                title: Non-empty task title
                description: Optional details
                status: Column to add the task to (todo, in_progress, done)
            """
            return await create_task_tool.apply(title=title, description=description, status=status)

        @mcp.tool
        async def update_task(
            task_id: Union[str, int],
            title: Optional[str] = None,
            description: Optional[str] = None,
            status: Optional[str] = None,
            position: Optional[int] = None,
            clear_description: bool = False,
        ) -> str:
            """
            Patch task fields. Omitted fields are left untouched.

            Args:
                task_id: Task to update
                title: New title
                description: New description
                status: New column (written directly, prefer reorder_tasks)
                position: New position (written directly, prefer reorder_tasks)
                clear_description: Set the description to null
            """
            return await update_task_tool.apply(
                task_id=task_id,
                title=title,
                description=description,
                status=status,
                position=position,
                clear_description=clear_description,
            )

        @mcp.tool
        async def delete_task(task_id: Union[str, int]) -> str:
            """
            Delete a task and close the gap in its column.

            Args:
                task_id: Task to delete
            """
            return await delete_task_tool.apply(task_id=task_id)

        @mcp.tool
        async def reorder_tasks(task_id: Union[str, int], new_status: str, new_position: int) -> str:
            """
            Move a task to a column and position, shifting the other tasks.

            Args:
                task_id: Task to move
                new_status: Destination column
                new_position: Zero-based destination slot
            """
            return await reorder_tasks_tool.apply(
                task_id=task_id, new_status=new_status, new_position=new_position
            )

        logger.info(f"FastMCP server '{self.server_name}' created with {len(AVAILABLE_TOOLS)} registered tools")
        self.mcp_server = mcp
        return mcp

    def run(self, transport: str = "stdio", host: str = "127.0.0.1", port: int = 8000, **kwargs) -> None:
        """
        Run the server; FastMCP owns the event loop.

        Raises:
            ValueError: Unsupported transport
        """
        transport = transport.lower()
        if transport not in SUPPORTED_TRANSPORTS:
            raise ValueError(f"Unsupported transport mode: {transport}. Supported: {', '.join(SUPPORTED_TRANSPORTS)}")

        if not self.mcp_server:
            self.create_server()

        logger.info(f"Starting FastMCP server with {transport} transport")
        if transport == "stdio":
            self.mcp_server.run()
        else:
            kwargs.setdefault("path", "/sse" if transport == "sse" else "/mcp")
            self.mcp_server.run(transport=transport, host=host, port=port, **kwargs)

    def get_server_info(self) -> Dict[str, Any]:
        return {
            "name": self.server_name,
            "version": self.server_version,
            "instructions": self._server_instructions,
            "registered_tools": list(AVAILABLE_TOOLS),
            "server_created": self.mcp_server is not None,
        }


def create_mcp_server(
    service: TaskService,
    server_name: str = "Kanban Board MCP",
    server_version: str = "1.0.0",
) -> KanbanBoardMCPServer:
    """Factory function to create a configured KanbanBoardMCPServer."""
    return KanbanBoardMCPServer(service=service, server_name=server_name, server_version=server_version)
