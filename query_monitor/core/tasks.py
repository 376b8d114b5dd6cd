"""
Task classification and ordering.

Contains:
- TaskFilter: state-based task classification (one active per stage view)
- compare_task_ids / task_sort_key: natural hierarchical task-id ordering
- task_display_mode: split vs driver counters for a stage's task table
- small helpers for task rows (id suffixes, host/port, elapsed time)
"""

from __future__ import annotations

import logging
import re
from datetime import UTC, datetime
from enum import Enum
from typing import Iterable, Optional, Sequence
from urllib.parse import urlsplit

from query_monitor.models.snapshot import TaskRecord, TaskState
from query_monitor.core.units import duration_or_zero

logger = logging.getLogger(__name__)

_LEADING_DIGITS = re.compile(r"^\s*(\d+)")

FAILED_GROUP: frozenset[TaskState] = frozenset(
    {TaskState.FAILED, TaskState.ABORTED, TaskState.CANCELED}
)


class TaskFilter(str, Enum):
    """Task classification offered by a stage's task table."""

    ALL = "ALL"
    PLANNED = "PLANNED"
    RUNNING = "RUNNING"
    FINISHED = "FINISHED"
    FAILED = "FAILED"

    @property
    def text(self) -> str:
        return _FILTER_TEXT[self]

    def matches(self, state: TaskState) -> bool:
        if self is TaskFilter.ALL:
            return True
        if self is TaskFilter.FAILED:
            return state in FAILED_GROUP
        return state.value == self.value


_FILTER_TEXT = {
    TaskFilter.ALL: "All",
    TaskFilter.PLANNED: "Planned",
    TaskFilter.RUNNING: "Running",
    TaskFilter.FINISHED: "Finished",
    TaskFilter.FAILED: "Aborted/Canceled/Failed",
}


class TaskDisplayMode(str, Enum):
    SPLITS = "splits"
    DRIVERS = "drivers"


def filter_tasks(
    tasks: Iterable[TaskRecord], task_filter: TaskFilter = TaskFilter.ALL
) -> list[TaskRecord]:
    return [task for task in tasks if task_filter.matches(task.task_status.state)]


# =============================================================================
# Ordering
# =============================================================================


def remove_query_id(task_id: str) -> str:
    """Drop the leading ``<queryId>.`` segment."""
    _, sep, rest = task_id.partition(".")
    return rest if sep else task_id


def _segment_value(segment: str) -> int:
    match = _LEADING_DIGITS.match(segment)
    if match is None:
        return -1
    return int(match.group(1))


def task_id_path(task_id: str) -> tuple[int, ...]:
    """Integer path of a task id with the query id stripped (``q.1.10`` -> (1, 10))."""
    return tuple(_segment_value(part) for part in remove_query_id(task_id).split("."))


def task_sort_key(task_id: str) -> tuple[int, tuple[int, ...]]:
    """Shorter paths first, then numeric segment-by-segment comparison."""
    path = task_id_path(task_id)
    return len(path), path


def compare_task_ids(task_id_a: str, task_id_b: str) -> int:
    """
    Natural hierarchical comparison of two task ids.

    Returns:
        -1, 0 or 1. ``q.0.9`` sorts before ``q.0.10``; ``q.1.2`` sorts before
        ``q.0.0.1`` because shorter paths always come first.
    """
    key_a = task_sort_key(task_id_a)
    key_b = task_sort_key(task_id_b)
    if key_a == key_b:
        return 0
    return -1 if key_a < key_b else 1


def sort_tasks(tasks: Iterable[TaskRecord]) -> list[TaskRecord]:
    return sorted(tasks, key=lambda task: task_sort_key(task.task_id))


def get_task_id_suffix(task_id: str) -> str:
    """Everything after ``<queryId>.<stage>.`` (the task and attempt)."""
    parts = task_id.split(".", 2)
    if len(parts) < 3:
        return task_id
    return parts[2]


def get_task_number(task_id: str) -> int:
    return _segment_value(get_task_id_suffix(task_id).split(".")[0])


def sort_by_task_number(tasks: Iterable[TaskRecord]) -> list[TaskRecord]:
    return sorted(tasks, key=lambda task: get_task_number(task.task_id))


# =============================================================================
# Display
# =============================================================================


def task_display_mode(tasks: Sequence[TaskRecord]) -> TaskDisplayMode:
    """Show split counters when any task reports them, driver counters otherwise."""
    if any(task.stats.completed_splits is not None for task in tasks):
        return TaskDisplayMode.SPLITS
    return TaskDisplayMode.DRIVERS


def format_task_state(state: TaskState, fully_blocked: bool) -> str:
    if fully_blocked and state is TaskState.RUNNING:
        return "BLOCKED"
    return state.value


def task_host_port(task: TaskRecord) -> tuple[Optional[str], Optional[int]]:
    if not task.task_status.self_uri:
        return None, None
    try:
        parts = urlsplit(task.task_status.self_uri)
        return parts.hostname, parts.port
    except ValueError:
        return None, None


def show_port_numbers(tasks: Iterable[TaskRecord]) -> bool:
    """True when some host runs tasks on more than one port."""
    host_to_port: dict[str, Optional[int]] = {}
    for task in tasks:
        host, port = task_host_port(task)
        if host is None:
            continue
        if host in host_to_port and host_to_port[host] != port:
            return True
        host_to_port[host] = port
    return False


def task_elapsed_ms(task: TaskRecord, now: Optional[datetime] = None) -> float:
    """
    Elapsed wall time of a task in milliseconds.

    Tasks that have not reported elapsed time yet fall back to the time since
    ``createTime``.
    """
    elapsed = duration_or_zero(task.stats.elapsed_time_in_nanos)
    if elapsed != 0 or not task.stats.create_time:
        return elapsed
    try:
        created = datetime.fromisoformat(task.stats.create_time.replace("Z", "+00:00"))
    except ValueError:
        logger.debug("Unparseable task createTime: %s", task.stats.create_time)
        return 0.0
    if created.tzinfo is None:
        created = created.replace(tzinfo=UTC)
    now = now or datetime.now(UTC)
    return max(0.0, (now - created).total_seconds() * 1000.0)


def count_tasks_by_state(tasks: Sequence[TaskRecord]) -> dict[str, int]:
    """Planned/running/blocked/total counts shown in a stage summary."""
    return {
        "planned": sum(1 for t in tasks if t.task_status.state is TaskState.PLANNED),
        "running": sum(1 for t in tasks if t.task_status.state is TaskState.RUNNING),
        "blocked": sum(1 for t in tasks if t.stats.fully_blocked),
        "total": len(tasks),
    }
