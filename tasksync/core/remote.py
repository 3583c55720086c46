"""Interface of the remote collection service consumed by tasksync.

The service owns the durable task records. Every call is scoped to an owner
identity; implementations are expected to enforce that scope on the server
side (see `tasksync.core.schema.verify_owner_rules` for PocketBase).
"""

from typing import Any, Protocol

from tasksync.core.channel import Subscription


class RemoteCollectionService(Protocol):
    """Request/response and subscribe/notify access to the task collection."""

    async def list_records(self, *, owner: str, sort: str = "-created") -> list[dict[str, Any]]:
        """Return every record of the owner, ordered by `sort` ("-field" is descending)."""
        ...

    async def create_record(self, *, data: dict[str, Any]) -> dict[str, Any]:
        """Insert a record and return it as stored."""
        ...

    async def update_record(self, *, record_id: str, owner: str, data: dict[str, Any]) -> dict[str, Any]:
        """Apply a partial update. Raises RecordNotFoundError if not visible to the owner."""
        ...

    async def delete_record(self, *, record_id: str, owner: str) -> None:
        """Delete a record. Raises RecordNotFoundError if not visible to the owner."""
        ...

    async def subscribe(self, *, owner: str) -> Subscription:
        """Open a change subscription scoped to the owner's records."""
        ...

    async def aclose(self) -> None:
        """Release connections and close open subscriptions."""
        ...
