"""
YAML Board Importer

Seeds a board from a YAML file of the form::

    columns:
      todo:
        - title: Write docs
          description: optional
      in_progress:
        - title: Fix bug
      done: []

Tasks are appended to the end of their column in file order. The whole file
is validated before anything is written and the inserts share one
transaction, so a bad entry leaves the board untouched.
"""

import logging
import sqlite3
from typing import Any, Dict, List, Tuple

import yaml

from .database import TaskDatabase
from .errors import StoreFailureError, TaskValidationError
from .models import TaskStatus

logger = logging.getLogger(__name__)


def _parse_columns(yaml_data: Dict[str, Any]) -> List[Tuple[TaskStatus, str, Any]]:
    """Flatten the columns mapping into (status, title, description) entries."""
    columns = yaml_data.get("columns")
    if columns is None:
        raise TaskValidationError("YAML board must have a 'columns' mapping")
    if not isinstance(columns, dict):
        raise TaskValidationError("YAML 'columns' must be a mapping of status to task list")

    valid = [s.value for s in TaskStatus]
    unknown = sorted(set(map(str, columns)) - set(valid))
    if unknown:
        raise TaskValidationError(f"Unknown columns {unknown}; expected any of {valid}")

    entries = []
    # Iterate in column order so ids follow the board's reading order
    for status in TaskStatus:
        if status.value not in columns:
            continue
        tasks = columns[status.value] or []
        if not isinstance(tasks, list):
            raise TaskValidationError(f"Column '{status.value}' must be a list")
        for index, task_data in enumerate(tasks):
            if not isinstance(task_data, dict):
                raise TaskValidationError(f"{status.value}[{index}]: task must be a mapping")
            title = task_data.get("title")
            if title is None or not str(title).strip():
                raise TaskValidationError(f"{status.value}[{index}]: title is required")
            description = task_data.get("description")
            entries.append((status, str(title).strip(), None if description is None else str(description)))

    return entries


def import_board(db: TaskDatabase, yaml_data: Dict[str, Any]) -> Dict[str, Any]:
    """
    Import tasks from parsed YAML into the board.

    Args:
        db: TaskDatabase instance
        yaml_data: Parsed YAML board structure

    Returns:
        Dict with ``tasks_created`` and per-column counts

    Raises:
        TaskValidationError: Unknown column, malformed entry, or blank title
        StoreFailureError: Database failure; nothing was committed
    """
    entries = _parse_columns(yaml_data)
    stats: Dict[str, Any] = {
        "tasks_created": 0,
        "columns": {status.value: 0 for status in TaskStatus},
    }

    try:
        with db.transaction() as cursor:
            timestamp = db.now()
            next_position = {status: db.count_tasks_in_status(status, cursor) for status in TaskStatus}
            for status, title, description in entries:
                db.insert_task(cursor, title, description, status, next_position[status], timestamp)
                next_position[status] += 1
                stats["tasks_created"] += 1
                stats["columns"][status.value] += 1
    except sqlite3.Error as e:
        logger.error(f"Board import failed: {e}")
        raise StoreFailureError(f"Import transaction failed: {e}") from e

    logger.info(f"Imported {stats['tasks_created']} tasks: {stats['columns']}")
    return stats


def import_board_from_file(db: TaskDatabase, yaml_file_path: str) -> Dict[str, Any]:
    """
    Import a board from a YAML file.

    Raises:
        FileNotFoundError: File does not exist
        TaskValidationError: Invalid YAML or board structure
    """
    try:
        with open(yaml_file_path, "r", encoding="utf-8") as f:
            yaml_data = yaml.safe_load(f)
    except FileNotFoundError:
        raise FileNotFoundError(f"YAML file not found: {yaml_file_path}")
    except yaml.YAMLError as e:
        raise TaskValidationError(f"Invalid YAML format: {e}") from e

    if not isinstance(yaml_data, dict):
        raise TaskValidationError("YAML file must contain a dictionary at root level")

    return import_board(db, yaml_data)
