"""
Position reindexing for board columns.

Pure functions over a snapshot of tasks. Given a move (or delete) they return
the position deltas other tasks need so that every column stays a dense,
zero-based sequence. The moved task's own final slot is never part of the
output; the caller writes it directly.

Both the server (TaskService.move) and the optimistic client prediction run
the same rules from this module.
"""

from typing import Dict, Iterable, List, NamedTuple, Sequence

from .errors import InvalidPositionError, TaskNotFoundError
from .models import Task, TaskStatus


class PositionShift(NamedTuple):
    """Position adjustment for a single task."""

    task_id: int
    delta: int


def _find(tasks: Sequence[Task], task_id: int) -> Task:
    for task in tasks:
        if task.id == task_id:
            return task
    raise TaskNotFoundError(task_id)


def _column(tasks: Iterable[Task], status: TaskStatus, exclude_id: int) -> List[Task]:
    return [t for t in tasks if t.status == status and t.id != exclude_id]


def max_target_position(tasks: Sequence[Task], task_id: int, new_status: TaskStatus) -> int:
    """
    Highest valid target position for moving task_id into new_status.

    Same column: the last existing slot (column size minus one).
    Other column: one past the last slot, i.e. appending.
    Both equal the number of tasks in new_status other than the moved one.
    """
    moved = _find(tasks, task_id)
    return len(_column(tasks, new_status, moved.id))


def compute_shifts(
    tasks: Sequence[Task],
    task_id: int,
    new_status: TaskStatus,
    new_position: int,
) -> List[PositionShift]:
    """
    Compute the shifts required to move task_id to (new_status, new_position).

    Args:
        tasks: Consistent snapshot of every task on the board
        task_id: Task being moved
        new_status: Destination column
        new_position: Destination slot within that column

    Returns:
        Shifts sorted by column order then current position. Empty for a no-op.

    Raises:
        TaskNotFoundError: task_id is not in the snapshot
        InvalidPositionError: new_position outside the destination's range
    """
    new_status = TaskStatus(new_status)
    moved = _find(tasks, task_id)
    old_status, old_position = moved.status, moved.position

    if new_status == old_status and new_position == old_position:
        return []

    max_position = max_target_position(tasks, task_id, new_status)
    if new_position < 0 or new_position > max_position:
        raise InvalidPositionError(new_position, max_position, new_status.value)

    shifts: List[PositionShift] = []
    if new_status == old_status:
        for task in _column(tasks, old_status, moved.id):
            if old_position < new_position and old_position < task.position <= new_position:
                # Moving down: close ranks behind the moved task
                shifts.append(PositionShift(task.id, -1))
            elif old_position > new_position and new_position <= task.position < old_position:
                # Moving up: make room in front of the moved task
                shifts.append(PositionShift(task.id, 1))
    else:
        for task in _column(tasks, old_status, moved.id):
            if task.position > old_position:
                shifts.append(PositionShift(task.id, -1))
        for task in _column(tasks, new_status, moved.id):
            if task.position >= new_position:
                shifts.append(PositionShift(task.id, 1))

    return _sorted_shifts(tasks, shifts)


def compute_delete_shifts(tasks: Sequence[Task], task_id: int) -> List[PositionShift]:
    """Shifts that close the gap left by removing task_id from its column."""
    removed = _find(tasks, task_id)
    shifts = [
        PositionShift(task.id, -1)
        for task in _column(tasks, removed.status, removed.id)
        if task.position > removed.position
    ]
    return _sorted_shifts(tasks, shifts)


def _sorted_shifts(tasks: Sequence[Task], shifts: List[PositionShift]) -> List[PositionShift]:
    by_id = {t.id: t for t in tasks}
    return sorted(shifts, key=lambda s: (by_id[s.task_id].sort_key(), s.task_id))


def apply_shifts(tasks: Sequence[Task], shifts: Iterable[PositionShift]) -> List[Task]:
    """Return copies of tasks with the given deltas applied to their positions."""
    deltas: Dict[int, int] = {}
    for shift in shifts:
        deltas[shift.task_id] = deltas.get(shift.task_id, 0) + shift.delta
    return [
        t.model_copy(update={"position": t.position + deltas[t.id]}) if t.id in deltas else t
        for t in tasks
    ]


def apply_move(
    tasks: Sequence[Task],
    task_id: int,
    new_status: TaskStatus,
    new_position: int,
) -> List[Task]:
    """
    Predict the board after a move without touching storage.

    Timestamps are left as they are; the authoritative list from the server
    carries the real updated_at values.
    """
    new_status = TaskStatus(new_status)
    moved = _find(tasks, task_id)
    if moved.status == new_status and moved.position == new_position:
        return sort_tasks(tasks)
    shifts = compute_shifts(tasks, task_id, new_status, new_position)

    result = []
    for task in apply_shifts(tasks, shifts):
        if task.id == task_id:
            task = task.model_copy(update={"status": new_status, "position": new_position})
        result.append(task)
    return sort_tasks(result)


def sort_tasks(tasks: Iterable[Task]) -> List[Task]:
    """Order tasks by column order then position."""
    return sorted(tasks, key=lambda t: (t.sort_key(), t.id))


def check_density(tasks: Iterable[Task]) -> Dict[TaskStatus, List[int]]:
    """
    Report columns whose positions are not exactly 0..k-1.

    Returns:
        Mapping of status to its sorted positions, only for broken columns.
    """
    positions: Dict[TaskStatus, List[int]] = {}
    for task in tasks:
        positions.setdefault(task.status, []).append(task.position)

    broken = {}
    for status, values in positions.items():
        values.sort()
        if values != list(range(len(values))):
            broken[status] = values
    return broken
