"""Embedded SQLite collection service with in-process change notifications."""

import asyncio
import logging
import re
import secrets
import string
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import aiosqlite

from tasksync.core.channel import ChangeChannel, Subscription
from tasksync.core.config import constants, settings
from tasksync.core.errors import RecordNotFoundError, RemoteError
from tasksync.domain.events import ChangeAction, ChangeEvent


logger = logging.getLogger(__name__)

_ID_ALPHABET = string.ascii_lowercase + string.digits

# Columns a client may write after creation; id, owner and created are immutable
_UPDATABLE_COLUMNS = frozenset({"title", "description", "priority", "status", "updated"})
_CREATE_COLUMNS = frozenset({"title", "description", "priority", "status", "owner"})
_SORTABLE_COLUMNS = frozenset({"created", "updated", "title", "priority", "status"})


def _validate_collection_name(collection: str) -> None:
    """Validate that a collection name contains only alphanumeric characters and underscores."""
    if not re.match(r"^[a-zA-Z_][a-zA-Z0-9_]*$", collection):
        msg = f"Invalid collection name: {collection}. Only alphanumeric characters and underscores are allowed."
        raise ValueError(msg)


def _now() -> str:
    return datetime.now(UTC).isoformat().replace("+00:00", "Z")


def generate_record_id() -> str:
    """Generate a PocketBase-style 15 character record id."""
    return "".join(secrets.choice(_ID_ALPHABET) for _ in range(constants.RECORD_ID_LENGTH))


def parse_sort(sort: str) -> str:
    """Translate "-created" style sort syntax into an ORDER BY clause."""
    field = sort.strip()
    direction = "ASC"
    if field.startswith("-"):
        field, direction = field[1:], "DESC"
    elif field.startswith("+"):
        field = field[1:]

    if field not in _SORTABLE_COLUMNS:
        logger.warning("Invalid sort parameter, using default", extra={"sort": sort})
        field, direction = "created", "DESC"

    # rowid breaks ties between records created within the same microsecond
    return f"{field} {direction}, rowid {direction}"


class SQLiteCollectionService:
    """Local implementation of the remote collection service backed by aiosqlite.

    Ownership is enforced in every statement, and each committed write is
    published to subscribers in commit order.
    """

    def __init__(self, *, db_path: str | None = None, collection: str | None = None) -> None:
        self._db_path = Path(db_path or settings.sqlite_db_path)
        self._collection = collection or settings.tasks_collection
        _validate_collection_name(self._collection)
        self._conn: aiosqlite.Connection | None = None
        self._lock = asyncio.Lock()
        # Held from execute through commit or rollback; all writes share one connection
        self._write_lock = asyncio.Lock()
        self.channel = ChangeChannel()

    async def _connection(self) -> aiosqlite.Connection:
        if self._conn is not None:
            return self._conn

        async with self._lock:
            if self._conn is not None:
                return self._conn
            if str(self._db_path) != ":memory:":
                self._db_path.parent.mkdir(parents=True, exist_ok=True)
            conn = await aiosqlite.connect(str(self._db_path))
            conn.row_factory = aiosqlite.Row
            await conn.execute("PRAGMA journal_mode = WAL")
            await conn.execute(
                f"""
                CREATE TABLE IF NOT EXISTS {self._collection} (
                    id TEXT PRIMARY KEY,
                    title TEXT NOT NULL,
                    description TEXT,
                    priority TEXT NOT NULL DEFAULT 'medium',
                    status TEXT NOT NULL DEFAULT 'pending',
                    owner TEXT NOT NULL,
                    created TEXT NOT NULL,
                    updated TEXT NOT NULL
                )
                """
            )
            await conn.execute(
                f"CREATE INDEX IF NOT EXISTS idx_{self._collection}_owner ON {self._collection} (owner, created)"
            )
            await conn.commit()
            self._conn = conn
            logger.info("Opened SQLite collection", extra={"db_path": str(self._db_path)})
            return conn

    async def _fetch_one(self, conn: aiosqlite.Connection, record_id: str, owner: str) -> dict[str, Any]:
        query = f"SELECT * FROM {self._collection} WHERE id = ? AND owner = ?"  # noqa: S608 - collection is validated
        cursor = await conn.execute(query, (record_id, owner))
        row = await cursor.fetchone()
        if row is None:
            msg = f"Record not found in {self._collection}: {record_id}"
            raise RecordNotFoundError(msg, status_code=constants.HTTP_NOT_FOUND)
        return dict(row)

    async def list_records(self, *, owner: str, sort: str = "-created") -> list[dict[str, Any]]:
        """List every record of the owner."""
        try:
            conn = await self._connection()
            query = f"SELECT * FROM {self._collection} WHERE owner = ? ORDER BY {parse_sort(sort)}"  # noqa: S608
            cursor = await conn.execute(query, (owner,))
            rows = await cursor.fetchall()
        except aiosqlite.Error as e:
            logger.error("list_records_failed", extra={"collection": self._collection, "error": str(e)})
            msg = f"Failed to list records from {self._collection}: {e}"
            raise RemoteError(msg) from e

        records = [dict(row) for row in rows]
        logger.info("Listed records", extra={"collection": self._collection, "count": len(records)})
        return records

    async def create_record(self, *, data: dict[str, Any]) -> dict[str, Any]:
        """Insert a new record and publish an insert event."""
        unknown = set(data) - _CREATE_COLUMNS
        if unknown or not data.get("owner"):
            msg = f"Invalid create payload for {self._collection}: unknown={sorted(unknown)}"
            raise RemoteError(msg, status_code=400)

        now = _now()
        record = {
            "id": generate_record_id(),
            "description": None,
            "priority": "medium",
            "status": "pending",
            **data,
            "created": now,
            "updated": now,
        }
        columns = list(record)
        placeholders = ", ".join("?" for _ in columns)
        query = f"INSERT INTO {self._collection} ({', '.join(columns)}) VALUES ({placeholders})"  # noqa: S608

        try:
            conn = await self._connection()
            async with self._write_lock:
                await conn.execute(query, [record[c] for c in columns])
                await conn.commit()
                self.channel.publish(ChangeEvent(action=ChangeAction.INSERT, record=record))
        except aiosqlite.Error as e:
            logger.error("create_record_failed", extra={"collection": self._collection, "error": str(e)})
            msg = f"Failed to create record in {self._collection}: {e}"
            raise RemoteError(msg) from e

        logger.info("Created record", extra={"collection": self._collection, "record_id": record["id"]})
        return record

    async def update_record(self, *, record_id: str, owner: str, data: dict[str, Any]) -> dict[str, Any]:
        """Apply a partial update to one of the owner's records and publish an update event."""
        if not data:
            msg = "Empty update payload"
            raise ValueError(msg)
        unknown = set(data) - _UPDATABLE_COLUMNS
        if unknown:
            msg = f"Fields cannot be updated: {sorted(unknown)}"
            raise RemoteError(msg, status_code=400)

        payload = {"updated": _now(), **data}
        set_clause = ", ".join(f"{key} = ?" for key in payload)
        query = f"UPDATE {self._collection} SET {set_clause} WHERE id = ? AND owner = ?"  # noqa: S608

        try:
            conn = await self._connection()
            async with self._write_lock:
                cursor = await conn.execute(query, [*payload.values(), record_id, owner])
                if cursor.rowcount == 0:
                    await conn.rollback()
                    msg = f"Record not found in {self._collection}: {record_id}"
                    raise RecordNotFoundError(msg, status_code=constants.HTTP_NOT_FOUND)
                await conn.commit()
                record = await self._fetch_one(conn, record_id, owner)
                self.channel.publish(ChangeEvent(action=ChangeAction.UPDATE, record=record))
        except aiosqlite.Error as e:
            logger.error(
                "update_record_failed",
                extra={"collection": self._collection, "record_id": record_id, "error": str(e)},
            )
            msg = f"Failed to update record in {self._collection}: {e}"
            raise RemoteError(msg) from e

        logger.info("Updated record", extra={"collection": self._collection, "record_id": record_id})
        return record

    async def delete_record(self, *, record_id: str, owner: str) -> None:
        """Delete one of the owner's records and publish a delete event."""
        query = f"DELETE FROM {self._collection} WHERE id = ? AND owner = ?"  # noqa: S608
        try:
            conn = await self._connection()
            async with self._write_lock:
                cursor = await conn.execute(query, (record_id, owner))
                await conn.commit()
                if cursor.rowcount:
                    self.channel.publish(
                        ChangeEvent(action=ChangeAction.DELETE, record={"id": record_id, "owner": owner})
                    )
        except aiosqlite.Error as e:
            logger.error(
                "delete_record_failed",
                extra={"collection": self._collection, "record_id": record_id, "error": str(e)},
            )
            msg = f"Failed to delete record from {self._collection}: {e}"
            raise RemoteError(msg) from e

        if cursor.rowcount == 0:
            msg = f"Record not found in {self._collection}: {record_id}"
            raise RecordNotFoundError(msg, status_code=constants.HTTP_NOT_FOUND)

        logger.info("Deleted record", extra={"collection": self._collection, "record_id": record_id})

    async def subscribe(self, *, owner: str) -> Subscription:
        """Open a change subscription for the owner's records."""
        return self.channel.subscribe(owner=owner)

    async def aclose(self) -> None:
        """Close subscriptions and the database connection."""
        self.channel.close()
        if self._conn is not None:
            await self._conn.close()
            self._conn = None
            logger.info("Closed SQLite collection", extra={"db_path": str(self._db_path)})
