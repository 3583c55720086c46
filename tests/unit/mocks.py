"""In-memory and HTTP-level fakes of the remote collection service for unit testing."""

import asyncio
import copy
import itertools
import json
from collections.abc import AsyncIterator, Callable
from datetime import UTC, datetime
from typing import Any

import httpx

from tasksync.core.channel import ChangeChannel, Subscription
from tasksync.core.errors import ChannelError, RecordNotFoundError
from tasksync.domain.events import ChangeAction, ChangeEvent


class InMemoryCollectionService:
    """In-memory stand-in for the remote collection service.

    Records every call in `calls`, publishes change events on `channel` after
    each write (unless `auto_publish` is off), and can be told to fail the
    next calls of a given operation.
    """

    def __init__(self, *, auto_publish: bool = True) -> None:
        """Initialize an empty collection."""
        self._records: dict[str, dict[str, Any]] = {}
        self._id_counter = itertools.count(1000)
        self._failures: dict[str, list[Exception]] = {}
        self.auto_publish = auto_publish
        self.channel = ChangeChannel()
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self.subscriptions: list[Subscription] = []

    def fail_next(self, operation: str, error: Exception) -> None:
        """Make the next call of `operation` raise `error`."""
        self._failures.setdefault(operation, []).append(error)

    def _record_call(self, operation: str, **kwargs: Any) -> None:
        self.calls.append((operation, copy.deepcopy(kwargs)))
        pending = self._failures.get(operation)
        if pending:
            raise pending.pop(0)

    def calls_for(self, operation: str) -> list[dict[str, Any]]:
        """Arguments of every call of one operation."""
        return [kwargs for name, kwargs in self.calls if name == operation]

    def seed(self, *records: dict[str, Any]) -> None:
        """Insert records directly without publishing events."""
        for record in records:
            self._records[record["id"]] = copy.deepcopy(record)

    def publish(self, event: ChangeEvent) -> int:
        """Publish a synthetic change event."""
        return self.channel.publish(event)

    async def list_records(self, *, owner: str, sort: str = "-created") -> list[dict[str, Any]]:
        self._record_call("list_records", owner=owner, sort=sort)
        records = [copy.deepcopy(r) for r in self._records.values() if r.get("owner") == owner]
        field = sort.lstrip("+-")
        return sorted(records, key=lambda r: r.get(field, ""), reverse=sort.startswith("-"))

    async def create_record(self, *, data: dict[str, Any]) -> dict[str, Any]:
        self._record_call("create_record", data=data)
        now = datetime.now(UTC).isoformat().replace("+00:00", "Z")
        record = {"id": str(next(self._id_counter)), "created": now, "updated": now, **data}
        self._records[record["id"]] = record
        if self.auto_publish:
            self.channel.publish(ChangeEvent(action=ChangeAction.INSERT, record=copy.deepcopy(record)))
        return copy.deepcopy(record)

    async def update_record(self, *, record_id: str, owner: str, data: dict[str, Any]) -> dict[str, Any]:
        self._record_call("update_record", record_id=record_id, owner=owner, data=data)
        record = self._records.get(record_id)
        if record is None or record.get("owner") != owner:
            raise RecordNotFoundError(f"Record not found: {record_id}", status_code=404)
        record.update(data)
        if self.auto_publish:
            self.channel.publish(ChangeEvent(action=ChangeAction.UPDATE, record=copy.deepcopy(record)))
        return copy.deepcopy(record)

    async def delete_record(self, *, record_id: str, owner: str) -> None:
        self._record_call("delete_record", record_id=record_id, owner=owner)
        record = self._records.get(record_id)
        if record is None or record.get("owner") != owner:
            raise RecordNotFoundError(f"Record not found: {record_id}", status_code=404)
        del self._records[record_id]
        if self.auto_publish:
            self.channel.publish(ChangeEvent(action=ChangeAction.DELETE, record={"id": record_id, "owner": owner}))

    async def subscribe(self, *, owner: str) -> Subscription:
        self._record_call("subscribe", owner=owner)
        subscription = self.channel.subscribe(owner=owner)
        self.subscriptions.append(subscription)
        return subscription

    async def aclose(self) -> None:
        self.channel.close()


def drop_channel(remote: InMemoryCollectionService) -> None:
    """Simulate the change channel dropping for every subscriber."""
    remote.channel.fail_all(ChannelError("connection reset"))


async def wait_until(predicate: Callable[[], bool], *, timeout: float = 1.0) -> None:
    """Yield to the event loop until `predicate` holds or fail after `timeout` seconds."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("Condition not met before timeout")
        await asyncio.sleep(0.001)


def make_record(
    record_id: str,
    *,
    owner: str = "user_1",
    title: str = "Task",
    status: str = "pending",
    priority: str = "medium",
    created: str = "2025-01-01T00:00:00Z",
    description: str | None = None,
) -> dict[str, Any]:
    """Build a full task record payload."""
    return {
        "id": record_id,
        "title": title,
        "description": description,
        "priority": priority,
        "status": status,
        "owner": owner,
        "created": created,
        "updated": created,
    }


class FakePocketBase:
    """Just enough of the PocketBase REST and realtime API for the service."""

    def __init__(self, *, page_size: int = 2) -> None:
        self.records: dict[str, dict[str, Any]] = {}
        self.requests: list[httpx.Request] = []
        self.realtime_subscriptions: list[dict[str, Any]] = []
        self.page_size = page_size
        self.realtime_status = 200
        self._streams: list[asyncio.Queue[bytes | None]] = []
        self._next_id = 1

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    def push(self, action: str, record: dict[str, Any], *, topic: str = "tasks/*") -> None:
        """Send a realtime message to every open stream."""
        message = f"event:{topic}\ndata:{json.dumps({'action': action, 'record': record})}\n\n"
        for queue in self._streams:
            queue.put_nowait(message.encode())

    def end_streams(self) -> None:
        for queue in self._streams:
            queue.put_nowait(None)

    async def _sse(self, queue: asyncio.Queue[bytes | None]) -> AsyncIterator[bytes]:
        yield b': connected\n\nid:client_1\nevent:PB_CONNECT\ndata:{"clientId":"client_1"}\n\n'
        while True:
            chunk = await queue.get()
            if chunk is None:
                return
            yield chunk

    async def handle(self, request: httpx.Request) -> httpx.Response:  # noqa: PLR0911
        self.requests.append(request)
        path = request.url.path

        if path == "/api/collections/users/auth-with-password":
            body = json.loads(request.content)
            if body["password"] != "secret":
                return httpx.Response(400, json={"message": "Failed to authenticate."})
            return httpx.Response(
                200, json={"token": "jwt_1", "record": {"id": "user_1", "email": body["identity"]}}
            )

        if path == "/api/realtime" and request.method == "GET":
            if self.realtime_status != 200:
                return httpx.Response(self.realtime_status, json={"message": "unavailable"})
            queue: asyncio.Queue[bytes | None] = asyncio.Queue()
            self._streams.append(queue)
            return httpx.Response(200, headers={"content-type": "text/event-stream"}, content=self._sse(queue))

        if path == "/api/realtime" and request.method == "POST":
            self.realtime_subscriptions.append(json.loads(request.content))
            return httpx.Response(204)

        if path == "/api/collections/tasks/records":
            if request.method == "GET":
                return self._list(request)
            data = json.loads(request.content)
            record = {"id": f"rec{self._next_id}", "created": "2025-01-01T00:00:00Z", **data}
            self._next_id += 1
            self.records[record["id"]] = record
            return httpx.Response(200, json=record)

        if path.startswith("/api/collections/tasks/records/"):
            record_id = path.rsplit("/", 1)[-1]
            if record_id == "forbidden":
                return httpx.Response(403, json={"message": "Only superusers can perform this action."})
            if record_id == "broken":
                return httpx.Response(500, json={"message": "Something went wrong."})
            if record_id not in self.records:
                return httpx.Response(404, json={"message": "The requested resource wasn't found."})
            if request.method == "DELETE":
                del self.records[record_id]
                return httpx.Response(204)
            self.records[record_id].update(json.loads(request.content))
            return httpx.Response(200, json=self.records[record_id])

        return httpx.Response(404, json={"message": "Not found."})

    def _list(self, request: httpx.Request) -> httpx.Response:
        page = int(request.url.params["page"])
        owner = request.url.params["filter"].split('"')[1]
        items = [r for r in self.records.values() if r.get("owner") == owner]
        total_pages = max(1, -(-len(items) // self.page_size))
        start = (page - 1) * self.page_size
        return httpx.Response(
            200,
            json={
                "page": page,
                "perPage": self.page_size,
                "totalItems": len(items),
                "totalPages": total_pages,
                "items": items[start : start + self.page_size],
            },
        )

