"""Presentation helpers: status filtering and empty states over the synchronized list."""

from collections.abc import Iterable
from typing import Literal

from pydantic import BaseModel

from tasksync.core.errors import ErrorResponse
from tasksync.domain.task import Task
from tasksync.services.sync_service import TaskSynchronizer


StatusFilter = Literal["all", "pending", "in-progress", "completed"]


class TaskView(BaseModel):
    """What the task list screen shows."""

    filter: StatusFilter
    tasks: list[Task]
    total: int
    loading: bool
    empty_message: str | None = None
    error: ErrorResponse | None = None


def filter_tasks(tasks: Iterable[Task], status_filter: StatusFilter = "all") -> list[Task]:
    """Keep the tasks matching the status filter, preserving order."""
    if status_filter == "all":
        return list(tasks)
    return [task for task in tasks if task.status == status_filter]


def empty_message(*, total: int, shown: int, status_filter: StatusFilter) -> str | None:
    """Text for an empty list, or None when something is shown."""
    if total == 0:
        return "No tasks yet"
    if shown == 0:
        label = f"{status_filter} " if status_filter != "all" else ""
        return f"No {label}tasks found."
    return None


def build_view(synchronizer: TaskSynchronizer, status_filter: StatusFilter = "all") -> TaskView:
    """Render the synchronizer's current list through a status filter."""
    all_tasks = synchronizer.tasks
    shown = filter_tasks(all_tasks, status_filter)
    return TaskView(
        filter=status_filter,
        tasks=shown,
        total=len(all_tasks),
        loading=synchronizer.is_loading,
        empty_message=empty_message(total=len(all_tasks), shown=len(shown), status_filter=status_filter),
        error=synchronizer.error,
    )
