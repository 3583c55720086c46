"""Update models for task edits."""

from enum import StrEnum

from pydantic import BaseModel, ConfigDict, field_validator

from tasksync.domain.create_models import normalize_description
from tasksync.domain.task import TaskPriority, TaskStatus


class TaskUpdate(BaseModel):
    """Partial update payload. Only explicitly set fields are sent."""

    model_config = ConfigDict(extra="forbid")

    title: str | None = None
    description: str | None = None
    priority: TaskPriority | None = None
    status: TaskStatus | None = None

    @field_validator("title")
    @classmethod
    def validate_title(cls, v: str | None) -> str:
        """Reject an explicit blank title."""
        if v is None or not v.strip():
            msg = "Title is required"
            raise ValueError(msg)
        return v.strip()

    @field_validator("description")
    @classmethod
    def validate_description(cls, v: str | None) -> str | None:
        """Normalize the optional description."""
        return normalize_description(v)

    @field_validator("priority", "status")
    @classmethod
    def validate_not_null(cls, v: StrEnum | None) -> StrEnum:
        """Select fields cannot be cleared."""
        if v is None:
            msg = "Field cannot be null"
            raise ValueError(msg)
        return v
