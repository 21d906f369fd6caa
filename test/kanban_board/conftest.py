"""
Shared fixtures for the Kanban Board test suite.

Provides isolated temporary SQLite databases, a TaskService over them, a
FastAPI TestClient wired through dependency overrides, and helpers for
building boards in a known layout.
"""

import os
import sys
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List

import pytest
from fastapi.testclient import TestClient

project_root = Path(__file__).parent.parent.parent / "src"
sys.path.insert(0, str(project_root))

from kanban_board.api import app, get_database, get_service
from kanban_board.config import BoardSettings
from kanban_board.database import TaskDatabase
from kanban_board.models import Task, TaskStatus
from kanban_board.service import TaskService


@pytest.fixture
def temp_db_path():
    """Path to a throwaway database file, removed with its WAL side files."""
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as tmp:
        path = tmp.name
    yield path
    for suffix in ("", "-wal", "-shm"):
        try:
            os.unlink(path + suffix)
        except FileNotFoundError:
            pass


@pytest.fixture
def database(temp_db_path):
    db = TaskDatabase(temp_db_path)
    yield db
    db.close()


@pytest.fixture
def service(database):
    return TaskService(database, BoardSettings(database_path=database._raw_path))


@pytest.fixture
def reindexing_service(database):
    """Service whose update() routes status/position changes through the reindexer."""
    return TaskService(database, BoardSettings(database_path=database._raw_path, reindex_on_update=True))


@pytest.fixture
def api_client(database, service):
    """TestClient bound to the temp database without running the app lifespan."""
    app.dependency_overrides[get_database] = lambda: database
    app.dependency_overrides[get_service] = lambda: service
    client = TestClient(app)
    yield client
    app.dependency_overrides.clear()


def seed_board(service: TaskService, layout: Dict[str, List[str]]) -> Dict[str, int]:
    """
    Create tasks column by column.

    Returns:
        Mapping of title to task id
    """
    ids = {}
    for status, titles in layout.items():
        for title in titles:
            ids[title] = service.create(title, status=status).id
    return ids


def layout_of(tasks: List[Task]) -> Dict[str, List[str]]:
    """Titles per column in position order."""
    columns = {status.value: [] for status in TaskStatus}
    for task in sorted(tasks, key=lambda t: (t.sort_key(), t.id)):
        columns[task.status.value].append(task.title)
    return columns


def make_task(task_id: int, status: str, position: int, title: str = None) -> Task:
    """In-memory Task for pure reindexer and controller tests."""
    stamp = datetime(2024, 1, 1, tzinfo=timezone.utc)
    return Task(
        id=task_id,
        title=title or f"task-{task_id}",
        status=TaskStatus(status),
        position=position,
        created_at=stamp,
        updated_at=stamp,
    )
