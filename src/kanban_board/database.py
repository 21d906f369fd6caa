"""
Task Store backed by SQLite

Provides keyed storage of task records with WAL mode for concurrent readers
and explicit transactions so that a move (all position shifts plus the moved
task's own write) or a delete (removal plus gap closing) commits as one unit.
The store performs no validation of its own; TaskService is its only writer.
"""

import logging
import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Optional

from .models import STATUS_ORDER, Task, TaskStatus
from .reindexer import PositionShift

logger = logging.getLogger(__name__)

_TASK_COLUMNS = "id, title, description, status, position, created_at, updated_at"

# CASE expression so SQLite sorts columns in enum order rather than alphabetically
_STATUS_ORDER_SQL = "CASE status " + " ".join(
    f"WHEN '{status.value}' THEN {order}" for status, order in STATUS_ORDER.items()
) + " END"


class TaskDatabase:
    """
    SQLite task store with explicit transaction control.

    Features:
    - WAL mode so readers observe either the pre- or post-state of a write
    - Single shared connection guarded by a re-entrant lock
    - ``transaction()`` context manager with BEGIN/COMMIT/ROLLBACK
    """

    def __init__(self, db_path: str):
        """
        Initialize TaskDatabase with SQLite WAL mode configuration.

        Args:
            db_path: Path to SQLite database file (":memory:" is accepted)
        """
        self.db_path = Path(db_path) if db_path != ":memory:" else None
        self._raw_path = db_path
        self._connection_lock = threading.RLock()
        self._connection: Optional[sqlite3.Connection] = None

        if self.db_path is not None:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)

        self._initialize_database()

    def _initialize_database(self, drop_existing: bool = False) -> None:
        """Open the connection, configure pragmas, and create the schema.

        Args:
            drop_existing: If True, drops existing tables for a clean slate
        """
        try:
            # Autocommit mode; transaction boundaries are explicit via transaction()
            self._connection = sqlite3.connect(
                self._raw_path,
                isolation_level=None,
                check_same_thread=False,
            )

            cursor = self._connection.cursor()
            cursor.execute("PRAGMA journal_mode=WAL")
            cursor.execute("PRAGMA synchronous=NORMAL")
            cursor.execute("PRAGMA busy_timeout=5000")

            if drop_existing:
                self._drop_existing_tables()

            self._create_schema()

        except sqlite3.Error as e:
            raise RuntimeError(f"Failed to initialize database at {self._raw_path}: {e}")

    def _create_schema(self) -> None:
        """Create the tasks table and its column/position index."""
        cursor = self._connection.cursor()
        statuses = ", ".join(f"'{status.value}'" for status in TaskStatus)

        # No UNIQUE(status, position): shifts are applied row by row inside a
        # transaction and pass through transient duplicates
        cursor.execute(f"""
            CREATE TABLE IF NOT EXISTS tasks (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                title TEXT NOT NULL,
                description TEXT,
                status TEXT NOT NULL DEFAULT 'todo',
                position INTEGER NOT NULL,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL,
                CONSTRAINT status_vocabulary CHECK (status IN ({statuses})),
                CONSTRAINT position_non_negative CHECK (position >= 0)
            )
        """)

        cursor.execute("""
            CREATE INDEX IF NOT EXISTS idx_tasks_status_position
            ON tasks (status, position)
        """)

    def _drop_existing_tables(self) -> None:
        cursor = self._connection.cursor()
        cursor.execute("DROP INDEX IF EXISTS idx_tasks_status_position")
        cursor.execute("DROP TABLE IF EXISTS tasks")

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Cursor]:
        """
        Run a block as one atomic unit.

        Holds the connection lock for the whole block, so concurrent callers
        are serialised and never interleave their writes.
        """
        with self._connection_lock:
            cursor = self._connection.cursor()
            cursor.execute("BEGIN IMMEDIATE")
            try:
                yield cursor
            except BaseException:
                cursor.execute("ROLLBACK")
                raise
            else:
                cursor.execute("COMMIT")

    @staticmethod
    def now() -> datetime:
        """Current UTC time, the single clock used for created_at/updated_at."""
        return datetime.now(timezone.utc)

    @staticmethod
    def _row_to_task(row: tuple) -> Task:
        return Task(
            id=row[0],
            title=row[1],
            description=row[2],
            status=TaskStatus(row[3]),
            position=row[4],
            created_at=datetime.fromisoformat(row[5]),
            updated_at=datetime.fromisoformat(row[6]),
        )

    @contextmanager
    def _reader(self, cursor: Optional[sqlite3.Cursor]) -> Iterator[sqlite3.Cursor]:
        # Reuse the caller's transaction cursor, otherwise read under the lock
        if cursor is not None:
            yield cursor
            return
        with self._connection_lock:
            yield self._connection.cursor()

    def get_all_tasks(self, cursor: Optional[sqlite3.Cursor] = None) -> List[Task]:
        """Return every task ordered by column order then position."""
        with self._reader(cursor) as cur:
            cur.execute(f"""
                SELECT {_TASK_COLUMNS}
                FROM tasks
                ORDER BY {_STATUS_ORDER_SQL}, position ASC, id ASC
            """)
            return [self._row_to_task(row) for row in cur.fetchall()]

    def get_task_by_id(self, task_id: int, cursor: Optional[sqlite3.Cursor] = None) -> Optional[Task]:
        """
        Get a single task by ID.

        Returns:
            Task, or None if not found
        """
        with self._reader(cursor) as cur:
            cur.execute(f"SELECT {_TASK_COLUMNS} FROM tasks WHERE id = ?", (task_id,))
            row = cur.fetchone()
            return self._row_to_task(row) if row else None

    def count_tasks_in_status(self, status: TaskStatus, cursor: Optional[sqlite3.Cursor] = None) -> int:
        with self._reader(cursor) as cur:
            cur.execute("SELECT COUNT(*) FROM tasks WHERE status = ?", (TaskStatus(status).value,))
            return cur.fetchone()[0] or 0

    def insert_task(
        self,
        cursor: sqlite3.Cursor,
        title: str,
        description: Optional[str],
        status: TaskStatus,
        position: int,
        timestamp: datetime,
    ) -> Task:
        """Insert a task row and return the stored record."""
        stamp = timestamp.isoformat()
        cursor.execute(
            """
            INSERT INTO tasks (title, description, status, position, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (title, description, TaskStatus(status).value, position, stamp, stamp),
        )
        return self.get_task_by_id(cursor.lastrowid, cursor)

    def update_task_fields(
        self,
        cursor: sqlite3.Cursor,
        task_id: int,
        fields: Dict[str, Any],
        timestamp: datetime,
    ) -> bool:
        """
        Write the given columns and refresh updated_at.

        Args:
            fields: Column name to value; only title, description, status,
                position are accepted

        Returns:
            True if a row was updated
        """
        allowed = ("title", "description", "status", "position")
        unknown = set(fields) - set(allowed)
        if unknown:
            raise ValueError(f"Unknown task columns: {sorted(unknown)}")

        assignments = []
        params: List[Any] = []
        for name in allowed:
            if name in fields:
                value = fields[name]
                if name == "status":
                    value = TaskStatus(value).value
                assignments.append(f"{name} = ?")
                params.append(value)
        assignments.append("updated_at = ?")
        params.append(timestamp.isoformat())
        params.append(task_id)

        cursor.execute(f"UPDATE tasks SET {', '.join(assignments)} WHERE id = ?", params)
        return cursor.rowcount > 0

    def apply_position_shifts(
        self,
        cursor: sqlite3.Cursor,
        shifts: Iterable[PositionShift],
        timestamp: datetime,
    ) -> int:
        """
        Apply reindexer output; every shifted task gets a fresh updated_at.

        Returns:
            Number of rows shifted
        """
        stamp = timestamp.isoformat()
        rows = [(shift.delta, stamp, shift.task_id) for shift in shifts]
        if not rows:
            return 0
        cursor.executemany(
            "UPDATE tasks SET position = position + ?, updated_at = ? WHERE id = ?",
            rows,
        )
        return len(rows)

    def delete_task_row(self, cursor: sqlite3.Cursor, task_id: int) -> bool:
        cursor.execute("DELETE FROM tasks WHERE id = ?", (task_id,))
        return cursor.rowcount > 0

    def ping(self) -> bool:
        """Cheap connectivity probe used by the health check."""
        with self._connection_lock:
            self._connection.execute("SELECT 1").fetchone()
        return True

    def close(self):
        """Close database connection."""
        if self._connection:
            self._connection.close()
            self._connection = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def initialize_fresh(self) -> None:
        """
        Drop and recreate the schema.

        Used by ``kanban-board init-db --fresh`` and by tests needing a clean slate.
        """
        if self._connection:
            self.close()
        self._initialize_database(drop_existing=True)
        logger.info(f"Database reinitialized: {self._raw_path}")
