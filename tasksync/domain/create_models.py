"""Pydantic models for creating task records."""

from pydantic import BaseModel, Field, field_validator

from tasksync.domain.task import TaskPriority, TaskStatus


def normalize_description(v: str | None) -> str | None:
    """Store blank descriptions as null."""
    if v is None:
        return None
    return v.strip() or None


class TaskCreate(BaseModel):
    """Pydantic model for creating a task record."""

    title: str = Field(..., description="Task title")
    description: str | None = Field(default=None, description="Optional details")
    priority: TaskPriority = Field(default=TaskPriority.MEDIUM, description="Task priority")
    status: TaskStatus = Field(default=TaskStatus.PENDING, description="Initial status")

    @field_validator("title")
    @classmethod
    def validate_title(cls, v: str) -> str:
        """Validate the title is not blank."""
        stripped = v.strip()
        if not stripped:
            msg = "Title is required"
            raise ValueError(msg)
        return stripped

    @field_validator("description")
    @classmethod
    def validate_description(cls, v: str | None) -> str | None:
        """Normalize the optional description."""
        return normalize_description(v)
