"""
Tests for BoardApiClient and OptimisticBoardController.

The happy paths run against the real FastAPI app through httpx's ASGI
transport; failure paths use httpx.MockTransport to simulate network and
server errors.
"""

import asyncio
import json

import httpx
import pytest

from conftest import layout_of, make_task, seed_board

from kanban_board.api import app
from kanban_board.client import (
    BoardApiClient,
    ControllerState,
    DragInProgressError,
    OptimisticBoardController,
)
from kanban_board.errors import StoreFailureError, TaskNotFoundError, TaskValidationError
from kanban_board.models import TaskPatch, TaskStatus


@pytest.fixture
def live_api(api_client):
    """BoardApiClient talking to the app in-process (dependency overrides active)."""
    return BoardApiClient(base_url="http://testserver", transport=httpx.ASGITransport(app=app))


def task_json(task):
    return task.model_dump(mode="json")


def mock_api(handler):
    return BoardApiClient(base_url="http://testserver", transport=httpx.MockTransport(handler))


class TestBoardApiClient:

    def test_from_settings(self):
        from kanban_board.config import BoardSettings

        api = BoardApiClient.from_settings(BoardSettings(api_url="http://board:2022/", client_timeout=2.5))
        assert api.base_url == "http://board:2022"
        assert api.timeout == 2.5

    @pytest.mark.asyncio
    async def test_healthcheck(self, live_api):
        assert (await live_api.healthcheck())["status"] == "ok"

    @pytest.mark.asyncio
    async def test_create_and_get_tasks_decode_datetimes(self, live_api):
        created = await live_api.create_task("Write docs", "soon", "in_progress")
        tasks = await live_api.get_tasks()

        assert tasks == [created]
        assert created.status == TaskStatus.IN_PROGRESS
        assert created.created_at.tzinfo is not None

    @pytest.mark.asyncio
    async def test_update_sends_only_masked_fields(self, live_api, service):
        task = service.create("t", "details")
        updated = await live_api.update_task(task.id, TaskPatch(title="renamed"))
        assert (updated.title, updated.description) == ("renamed", "details")

        cleared = await live_api.update_task(task.id, TaskPatch(description=None))
        assert cleared.description is None

    @pytest.mark.asyncio
    async def test_update_missing_raises_not_found(self, live_api):
        with pytest.raises(TaskNotFoundError):
            await live_api.update_task(9999, TaskPatch(title="x"))

    @pytest.mark.asyncio
    async def test_create_blank_title_raises_validation(self, live_api):
        with pytest.raises(TaskValidationError):
            await live_api.create_task("")

    @pytest.mark.asyncio
    async def test_delete_and_reorder(self, live_api, service):
        ids = seed_board(service, {"todo": ["A", "B", "C"]})

        assert await live_api.delete_task(ids["B"]) is True
        assert await live_api.delete_task(ids["B"]) is False

        tasks = await live_api.reorder_tasks(ids["C"], "todo", 0)
        assert [(t.title, t.position) for t in tasks] == [("C", 0), ("A", 1)]

    @pytest.mark.asyncio
    async def test_reorder_out_of_range_raises_validation(self, live_api, service):
        ids = seed_board(service, {"todo": ["A"]})
        with pytest.raises(TaskValidationError, match="out of range"):
            await live_api.reorder_tasks(ids["A"], "todo", 3)

    @pytest.mark.asyncio
    async def test_network_error_becomes_store_failure(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(StoreFailureError, match="Request failed"):
            await mock_api(handler).get_tasks()

    @pytest.mark.asyncio
    async def test_timeout_becomes_store_failure(self):
        def handler(request):
            raise httpx.ReadTimeout("too slow", request=request)

        with pytest.raises(StoreFailureError, match="timed out"):
            await mock_api(handler).get_tasks()

    @pytest.mark.asyncio
    async def test_server_error_becomes_store_failure(self):
        def handler(request):
            return httpx.Response(503, json={"success": False, "error": "Database not available", "code": 503})

        with pytest.raises(StoreFailureError, match="Database not available"):
            await mock_api(handler).get_tasks()


def board_handler(tasks, reorder_response=None, reorder_error=None, seen=None):
    """
    MockTransport handler serving a fixed board.

    ``seen`` collects the parsed JSON body of each reorder request.
    """
    def handler(request):
        if request.method == "GET" and request.url.path == "/api/tasks":
            return httpx.Response(200, json=[task_json(t) for t in tasks])
        if request.method == "POST" and request.url.path == "/api/tasks/reorder":
            if seen is not None:
                seen.append(json.loads(request.content))
            if reorder_error is not None:
                raise reorder_error(request)
            return httpx.Response(200, json=[task_json(t) for t in reorder_response])
        return httpx.Response(404, json={"success": False, "error": "no route", "code": 404})

    return handler


@pytest.fixture
def server_board():
    return [
        make_task(1, "todo", 0, "T1"),
        make_task(2, "todo", 1, "T2"),
        make_task(3, "todo", 2, "T3"),
        make_task(4, "in_progress", 0, "T4"),
        make_task(5, "in_progress", 1, "T5"),
    ]


class TestOptimisticBoardController:

    @pytest.mark.asyncio
    async def test_successful_drop_adopts_server_list(self, server_board):
        authoritative = [
            make_task(2, "todo", 0, "T2"),
            make_task(3, "todo", 1, "T3"),
            make_task(4, "in_progress", 0, "T4"),
            make_task(1, "in_progress", 1, "T1"),
            make_task(5, "in_progress", 2, "T5"),
        ]
        seen = []
        controller = OptimisticBoardController(
            mock_api(board_handler(server_board, reorder_response=authoritative, seen=seen))
        )
        await controller.load()

        assert await controller.move(1, "in_progress", 1) is True
        assert controller.tasks == authoritative
        assert controller.state == ControllerState.RECONCILED
        assert controller.dragging_task_id is None
        assert seen == [{"taskId": 1, "newStatus": "in_progress", "newPosition": 1}]

    @pytest.mark.asyncio
    async def test_prediction_is_rendered_before_server_answers(self, server_board):
        renders = []
        controller = OptimisticBoardController(
            mock_api(board_handler(server_board, reorder_response=server_board))
        )
        await controller.load()
        controller.on_change(lambda tasks: renders.append(layout_of(tasks)))

        await controller.move(1, "in_progress", 1)

        assert renders[0] == {"todo": ["T2", "T3"], "in_progress": ["T4", "T1", "T5"], "done": []}
        # Server list replaces the prediction verbatim, even when it disagrees
        assert renders[-1] == layout_of(server_board)

    @pytest.mark.asyncio
    async def test_failed_drop_restores_snapshot(self, server_board):
        errors = []
        controller = OptimisticBoardController(
            mock_api(board_handler(
                server_board,
                reorder_error=lambda request: httpx.ConnectError("network down", request=request),
            )),
            on_error=errors.append,
        )
        await controller.load()
        snapshot = list(controller.tasks)

        assert await controller.move(1, "in_progress", 1) is False

        assert controller.tasks == snapshot
        assert controller.state == ControllerState.IDLE
        assert isinstance(controller.last_error, StoreFailureError)
        assert errors == [controller.last_error]

    @pytest.mark.asyncio
    async def test_no_op_drop_skips_server(self, server_board):
        seen = []
        controller = OptimisticBoardController(
            mock_api(board_handler(server_board, reorder_response=server_board, seen=seen))
        )
        await controller.load()

        controller.start_drag(2)
        assert controller.state == ControllerState.DRAGGING
        assert await controller.drop("todo", 1) is False

        assert seen == []
        assert controller.state == ControllerState.IDLE

    @pytest.mark.asyncio
    async def test_second_drag_rejected_while_awaiting_server(self, server_board):
        controller = None
        attempts = []

        def handler(request):
            if request.url.path == "/api/tasks/reorder":
                with pytest.raises(DragInProgressError):
                    controller.start_drag(2)
                attempts.append(controller.state)
                return httpx.Response(200, json=[task_json(t) for t in server_board])
            return httpx.Response(200, json=[task_json(t) for t in server_board])

        controller = OptimisticBoardController(mock_api(handler))
        await controller.load()
        await controller.move(1, "done", 0)

        assert attempts == [ControllerState.AWAITING_SERVER]
        assert controller.state == ControllerState.RECONCILED

    @pytest.mark.asyncio
    async def test_start_drag_unknown_task(self, server_board):
        controller = OptimisticBoardController(mock_api(board_handler(server_board)))
        await controller.load()
        with pytest.raises(TaskNotFoundError):
            controller.start_drag(42)

    @pytest.mark.asyncio
    async def test_cancel_drag(self, server_board):
        controller = OptimisticBoardController(mock_api(board_handler(server_board)))
        await controller.load()
        controller.start_drag(1)
        controller.cancel_drag()
        assert controller.state == ControllerState.IDLE
        assert controller.dragging_task_id is None

    @pytest.mark.asyncio
    async def test_crud_helpers_against_live_api(self, live_api):
        controller = OptimisticBoardController(live_api)
        await controller.load()

        first = await controller.create("First")
        second = await controller.create("Second")
        assert [t.title for t in controller.column("todo")] == ["First", "Second"]

        await controller.update(second.id, TaskPatch(title="Renamed"))
        assert controller.column(TaskStatus.TODO)[1].title == "Renamed"

        assert await controller.delete(first.id) is True
        assert [(t.title, t.position) for t in controller.tasks] == [("Renamed", 0)]

    @pytest.mark.asyncio
    async def test_load_failure_is_reported_and_raised(self):
        def handler(request):
            raise httpx.ConnectError("down", request=request)

        errors = []
        controller = OptimisticBoardController(mock_api(handler), on_error=errors.append)
        with pytest.raises(StoreFailureError):
            await controller.load()
        assert len(errors) == 1

    @pytest.mark.asyncio
    async def test_timed_out_drop_restores_snapshot_and_unlocks_drag(self, server_board):
        async def handler(request):
            if request.url.path == "/api/tasks/reorder":
                await asyncio.sleep(5)
            return httpx.Response(200, json=[task_json(t) for t in server_board])

        controller = OptimisticBoardController(mock_api(handler))
        await controller.load()
        snapshot = list(controller.tasks)

        with pytest.raises(asyncio.TimeoutError):
            await asyncio.wait_for(controller.move(1, "in_progress", 0), 0.05)

        assert controller.tasks == snapshot
        assert controller.state == ControllerState.IDLE
        assert controller.dragging_task_id is None
        controller.start_drag(2)
        assert controller.state == ControllerState.DRAGGING

    @pytest.mark.asyncio
    async def test_delete_with_failed_reload_drops_task_locally(self, server_board):
        loads = []

        def handler(request):
            if request.method == "DELETE":
                return httpx.Response(200, json={"success": True})
            loads.append(request)
            if len(loads) > 1:
                raise httpx.ConnectError("network down", request=request)
            return httpx.Response(200, json=[task_json(t) for t in server_board])

        errors = []
        controller = OptimisticBoardController(mock_api(handler), on_error=errors.append)
        await controller.load()

        with pytest.raises(StoreFailureError):
            await controller.delete(1)

        assert layout_of(controller.tasks)["todo"] == ["T2", "T3"]
        assert [t.position for t in controller.column("todo")] == [0, 1]
        assert len(errors) == 1
