"""Change events delivered by the remote collection."""

from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field


class ChangeAction(StrEnum):
    """Kind of mutation applied to the remote collection."""

    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"


class ChangeEvent(BaseModel):
    """One mutation of the remote collection.

    `record` carries the full record for inserts, a full or partial record for
    updates, and at least the id for deletes.
    """

    action: ChangeAction = Field(..., description="insert, update or delete")
    record: dict[str, Any] = Field(..., description="Record payload as sent by the remote service")

    @property
    def record_id(self) -> str:
        """Id of the affected record."""
        return str(self.record["id"])

    @property
    def owner(self) -> str | None:
        """Owner of the affected record, when the payload carries it."""
        owner = self.record.get("owner")
        return str(owner) if owner else None
