"""Task domain models and enums."""

from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class TaskPriority(StrEnum):
    """How urgent a task is."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class TaskStatus(StrEnum):
    """Task progress. Any status may follow any other."""

    PENDING = "pending"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"


class Task(BaseModel):
    """Task record as mirrored from the remote collection."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="Unique task ID assigned by the remote service")
    title: str = Field(..., description="Task title")
    description: str | None = Field(default=None, description="Optional details")
    priority: TaskPriority = Field(default=TaskPriority.MEDIUM, description="low, medium or high")
    status: TaskStatus = Field(default=TaskStatus.PENDING, description="pending, in-progress or completed")
    owner: str = Field(..., description="Identity of the user the task belongs to")
    created: str = Field(default="", description="Creation timestamp (ISO format)")
    updated: str = Field(default="", description="Last update timestamp (ISO format)")

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> "Task":
        """Build a task from a remote payload, ignoring backend bookkeeping fields."""
        known = {name: record[name] for name in cls.model_fields if name in record}
        if known.get("description") == "":
            known["description"] = None
        # Unset select fields come back as empty strings
        for select_field in ("priority", "status"):
            if known.get(select_field) == "":
                del known[select_field]
        return cls.model_validate(known)


def next_toggle_status(current: TaskStatus) -> TaskStatus:
    """Status requested by the "toggle complete" affordance."""
    if current == TaskStatus.COMPLETED:
        return TaskStatus.PENDING
    return TaskStatus.COMPLETED
