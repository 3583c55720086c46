"""Domain models and DTOs."""

from tasksync.domain.create_models import TaskCreate
from tasksync.domain.events import ChangeAction, ChangeEvent
from tasksync.domain.task import Task, TaskPriority, TaskStatus, next_toggle_status
from tasksync.domain.update_models import TaskUpdate


__all__ = [
    "ChangeAction",
    "ChangeEvent",
    "Task",
    "TaskCreate",
    "TaskPriority",
    "TaskStatus",
    "TaskUpdate",
    "next_toggle_status",
]
