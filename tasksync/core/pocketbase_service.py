"""PocketBase collection service over httpx (REST records API + realtime SSE)."""

import asyncio
import contextlib
import json
import logging
from collections.abc import AsyncIterator
from dataclasses import dataclass
from typing import Any

import httpx

from tasksync.core.channel import Subscription
from tasksync.core.config import constants, settings
from tasksync.core.errors import AuthError, ChannelError, RecordNotFoundError, RemoteError
from tasksync.core.session import SessionContext
from tasksync.domain.events import ChangeAction, ChangeEvent


logger = logging.getLogger(__name__)

_ACTIONS = {
    "create": ChangeAction.INSERT,
    "update": ChangeAction.UPDATE,
    "delete": ChangeAction.DELETE,
}


def sanitize_param(value: str | int | float | bool | None) -> str:
    """Escape a value for safe embedding in PocketBase filter expressions via json.dumps."""
    return json.dumps(str(value))[1:-1]


@dataclass
class ServerSentEvent:
    """One dispatched server-sent event."""

    event: str = "message"
    data: str = ""
    id: str | None = None


async def iter_sse(response: httpx.Response) -> AsyncIterator[ServerSentEvent]:
    """Parse a text/event-stream response into events."""
    event = ServerSentEvent()
    data_lines: list[str] = []

    async for line in response.aiter_lines():
        if not line:
            if data_lines or event.event != "message":
                event.data = "\n".join(data_lines)
                yield event
            event = ServerSentEvent()
            data_lines = []
            continue
        if line.startswith(":"):
            continue

        name, _, value = line.partition(":")
        value = value.removeprefix(" ")
        if name == "event":
            event.event = value
        elif name == "data":
            data_lines.append(value)
        elif name == "id":
            event.id = value


def to_change_event(payload: dict[str, Any]) -> ChangeEvent | None:
    """Map a PocketBase realtime message to a ChangeEvent, or None for unknown actions."""
    action = _ACTIONS.get(payload.get("action", ""))
    record = payload.get("record")
    if action is None or not isinstance(record, dict) or "id" not in record:
        return None
    return ChangeEvent(action=action, record=record)


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or response.reason_phrase
    if isinstance(body, dict) and body.get("message"):
        return str(body["message"])
    return response.reason_phrase


def raise_for_status(response: httpx.Response, *, context: str) -> None:
    """Translate a PocketBase error response into the tasksync error taxonomy."""
    if response.is_success:
        return

    message = f"{context}: {_error_message(response)}"
    status = response.status_code
    if status == constants.HTTP_NOT_FOUND:
        raise RecordNotFoundError(message, status_code=status)
    if status in (constants.HTTP_UNAUTHORIZED, constants.HTTP_FORBIDDEN):
        raise AuthError(message)
    raise RemoteError(message, status_code=status)


class PocketBaseCollectionService:
    """Remote collection service backed by a PocketBase server.

    Owner scoping for reads is expressed as a filter; writes rely on the
    collection's API rules (`owner = @request.auth.id`) on the server.
    """

    def __init__(
        self,
        *,
        base_url: str | None = None,
        collection: str | None = None,
        users_collection: str | None = None,
        token: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._collection = collection or settings.tasks_collection
        self._users_collection = users_collection or settings.users_collection
        self._timeout = timeout or settings.request_timeout_seconds
        self._client = httpx.AsyncClient(
            base_url=base_url or settings.pocketbase_url,
            timeout=self._timeout,
            transport=transport,
        )
        self._token = token
        self._realtime_tasks: dict[Subscription, asyncio.Task[None]] = {}

    @property
    def records_path(self) -> str:
        """REST path of the task records."""
        return f"/api/collections/{self._collection}/records"

    @property
    def realtime_topic(self) -> str:
        """Realtime topic covering every record of the collection."""
        return f"{self._collection}/*"

    def set_token(self, token: str | None) -> None:
        """Use a new auth token for subsequent requests (None signs out)."""
        self._token = token

    def _headers(self) -> dict[str, str]:
        return {"Authorization": self._token} if self._token else {}

    async def _request(self, method: str, path: str, *, context: str, **kwargs: Any) -> httpx.Response:
        try:
            response = await self._client.request(method, path, headers=self._headers(), **kwargs)
        except httpx.HTTPError as e:
            logger.error("pocketbase_request_failed", extra={"method": method, "path": path, "error": str(e)})
            msg = f"{context}: {e}"
            raise RemoteError(msg) from e

        raise_for_status(response, context=context)
        return response

    async def auth_with_password(
        self, *, email: str, password: str, session: SessionContext | None = None
    ) -> SessionContext:
        """Authenticate a user and open the given (or a new) session for them."""
        path = f"/api/collections/{self._users_collection}/auth-with-password"
        try:
            response = await self._request(
                "POST",
                path,
                context="Authentication failed",
                json={"identity": email, "password": password},
            )
        except RemoteError as e:
            # PocketBase answers bad credentials with 400
            if e.status_code == httpx.codes.BAD_REQUEST:
                msg = "Invalid email or password"
                raise AuthError(msg) from e
            raise

        data = response.json()
        token = data["token"]
        record = data["record"]
        self._token = token

        session = session or SessionContext()
        session.open(identity=record["id"], token=token, email=record.get("email"))
        logger.info("Authenticated with PocketBase", extra={"user_id": record["id"]})
        return session

    async def list_records(self, *, owner: str, sort: str = "-created") -> list[dict[str, Any]]:
        """Fetch every page of the owner's records."""
        records: list[dict[str, Any]] = []
        page = 1
        while True:
            response = await self._request(
                "GET",
                self.records_path,
                context=f"Failed to list records from {self._collection}",
                params={
                    "page": page,
                    "perPage": constants.DEFAULT_PER_PAGE_LIMIT,
                    "sort": sort,
                    "filter": f'owner = "{sanitize_param(owner)}"',
                },
            )
            body = response.json()
            records.extend(body.get("items", []))
            if page >= body.get("totalPages", 1):
                break
            page += 1

        logger.info("Listed records", extra={"collection": self._collection, "count": len(records)})
        return records

    async def create_record(self, *, data: dict[str, Any]) -> dict[str, Any]:
        """Create a record; the server assigns id and created."""
        response = await self._request(
            "POST",
            self.records_path,
            context=f"Failed to create record in {self._collection}",
            json=data,
        )
        record = response.json()
        logger.info("Created record", extra={"collection": self._collection, "record_id": record.get("id")})
        return record

    async def update_record(self, *, record_id: str, owner: str, data: dict[str, Any]) -> dict[str, Any]:
        """Patch a record. Records the caller does not own are reported as not found by the server."""
        if not data:
            msg = "Empty update payload"
            raise ValueError(msg)

        response = await self._request(
            "PATCH",
            f"{self.records_path}/{record_id}",
            context=f"Failed to update record in {self._collection}",
            json=data,
        )
        logger.info("Updated record", extra={"collection": self._collection, "record_id": record_id, "owner": owner})
        return response.json()

    async def delete_record(self, *, record_id: str, owner: str) -> None:
        """Delete a record."""
        await self._request(
            "DELETE",
            f"{self.records_path}/{record_id}",
            context=f"Failed to delete record from {self._collection}",
        )
        logger.info("Deleted record", extra={"collection": self._collection, "record_id": record_id, "owner": owner})

    async def subscribe(self, *, owner: str) -> Subscription:
        """Open the realtime stream and subscribe to the collection topic.

        Returns once the server confirmed the subscription, so no event
        committed afterwards is missed.

        Raises:
            ChannelError: If the stream cannot be opened or subscribed in time
        """
        subscription = Subscription(owner=owner, on_close=self._release_subscription)
        ready: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        self._realtime_tasks[subscription] = asyncio.create_task(self._realtime_loop(subscription, ready))

        try:
            await asyncio.wait_for(ready, timeout=self._timeout)
        except TimeoutError as e:
            subscription.close()
            msg = "Timed out waiting for the realtime connection"
            raise ChannelError(msg) from e
        except ChannelError:
            subscription.close()
            raise

        logger.info("Subscribed to realtime topic", extra={"topic": self.realtime_topic, "owner": owner})
        return subscription

    async def _realtime_loop(self, subscription: Subscription, ready: asyncio.Future[None]) -> None:
        error = ChannelError("Realtime stream closed by server")
        try:
            async with self._client.stream(
                "GET",
                "/api/realtime",
                headers={"Accept": "text/event-stream"},
                timeout=httpx.Timeout(self._timeout, read=None),
            ) as response:
                raise_for_status(response, context="Failed to open realtime stream")
                async for sse in iter_sse(response):
                    if sse.event == "PB_CONNECT":
                        client_id = json.loads(sse.data)["clientId"]
                        await self._request(
                            "POST",
                            "/api/realtime",
                            context="Failed to subscribe to realtime topic",
                            json={"clientId": client_id, "subscriptions": [self.realtime_topic]},
                        )
                        if not ready.done():
                            ready.set_result(None)
                        continue

                    if sse.event != self.realtime_topic:
                        continue

                    event = to_change_event(json.loads(sse.data))
                    if event is None:
                        logger.warning("Ignoring unknown realtime message", extra={"topic": sse.event})
                        continue
                    subscription.deliver(event)
        except asyncio.CancelledError:
            raise
        except (httpx.HTTPError, RemoteError, AuthError, ValueError, KeyError) as e:
            error = ChannelError(f"Realtime stream failed: {e}")

        logger.warning("Realtime stream ended", extra={"topic": self.realtime_topic, "error": str(error)})
        if not ready.done():
            ready.set_exception(error)
        subscription.fail(error)

    def _release_subscription(self, subscription: Subscription) -> None:
        task = self._realtime_tasks.pop(subscription, None)
        if task is None:
            return
        current = None
        with contextlib.suppress(RuntimeError):
            current = asyncio.current_task()
        if task is not current:
            task.cancel()

    async def aclose(self) -> None:
        """Close every realtime subscription and the HTTP client."""
        tasks = list(self._realtime_tasks.values())
        for subscription in list(self._realtime_tasks):
            subscription.close()
        for task in tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task
        await self._client.aclose()
