"""Synchronization layer: mirrors the owner's remote task collection into a local list.

The local list is a projection of server-confirmed state. It is only written
by `apply_event` and by bulk loads; commands never touch it, so UI latency for
a local action is one round trip of request, commit and change event.
"""

import asyncio
import contextlib
import logging

from pydantic import ValidationError as PydanticValidationError

from tasksync.core.channel import Subscription
from tasksync.core.config import settings
from tasksync.core.errors import AuthError, ChannelError, ErrorResponse, RemoteError, classify_error_with_response
from tasksync.core.logging import span
from tasksync.core.remote import RemoteCollectionService
from tasksync.core.session import SessionContext
from tasksync.domain.events import ChangeAction, ChangeEvent
from tasksync.domain.task import Task


logger = logging.getLogger(__name__)


class TaskSynchronizer:
    """Ordered, newest-first local view over one owner's tasks."""

    def __init__(
        self,
        *,
        remote: RemoteCollectionService,
        session: SessionContext,
        resubscribe_max_attempts: int | None = None,
        resubscribe_base_delay: float | None = None,
    ) -> None:
        self._remote = remote
        self._session = session
        self._max_attempts = (
            settings.resubscribe_max_attempts if resubscribe_max_attempts is None else resubscribe_max_attempts
        )
        self._base_delay = (
            settings.resubscribe_base_delay_seconds if resubscribe_base_delay is None else resubscribe_base_delay
        )

        self._tasks: list[Task] = []
        self._error: ErrorResponse | None = None
        self._owner: str | None = None
        self._subscription: Subscription | None = None
        self._consumer: asyncio.Task[None] | None = None
        self._active = False
        self._loading = False
        # Bumped on every initialize/teardown; results of older generations are discarded
        self._generation = 0

    @property
    def tasks(self) -> tuple[Task, ...]:
        """Snapshot of the local list, newest first."""
        return tuple(self._tasks)

    @property
    def error(self) -> ErrorResponse | None:
        """Last surfaced error, until dismissed."""
        return self._error

    @property
    def is_active(self) -> bool:
        """True between initialize() and teardown()."""
        return self._active

    @property
    def is_loading(self) -> bool:
        """True while a bulk read is in flight."""
        return self._loading

    def clear_error(self) -> None:
        """Dismiss the error state."""
        self._error = None

    def _set_error(self, error: Exception) -> None:
        self._error = classify_error_with_response(error)

    async def initialize(self) -> None:
        """Subscribe to changes, load the owner's tasks and start applying events.

        The subscription is opened before the bulk read so no change committed
        in between is lost; replayed inserts of already loaded records replace
        them in place.

        Raises:
            AuthError: If the session has no identity
            RuntimeError: If already initialized
        """
        if self._active:
            msg = "Synchronizer already initialized; call teardown() first"
            raise RuntimeError(msg)

        owner = self._session.require_identity()
        with span("sync_service.initialize"):
            self._generation += 1
            generation = self._generation
            self._active = True
            self._owner = owner
            self._tasks = []
            self._error = None

            subscription: Subscription | None = None
            try:
                subscription = await self._remote.subscribe(owner=owner)
            except (ChannelError, RemoteError, AuthError) as e:
                logger.warning("Initial change subscription failed", extra={"owner": owner, "error": str(e)})

            if generation != self._generation:
                if subscription is not None:
                    subscription.close()
                return
            self._subscription = subscription

            await self._load(generation)
            if generation != self._generation:
                return

            self._consumer = asyncio.create_task(self._consume(generation))
            logger.info("Synchronizer initialized", extra={"owner": owner, "count": len(self._tasks)})

    async def _load(self, generation: int) -> bool:
        """Replace the local list with a bulk read. Prior state is kept on failure."""
        owner = self._owner
        assert owner is not None
        self._loading = True
        try:
            records = await self._remote.list_records(owner=owner, sort="-created")
        except (RemoteError, AuthError) as e:
            logger.error("Error fetching tasks", extra={"owner": owner, "error": str(e)})
            if generation == self._generation:
                self._set_error(e)
            return False
        finally:
            if generation == self._generation:
                self._loading = False

        if generation != self._generation:
            return False

        tasks = []
        for record in records:
            try:
                tasks.append(Task.from_record(record))
            except PydanticValidationError as e:
                logger.warning("Skipping malformed task record", extra={"record_id": record.get("id"), "error": str(e)})
        self._tasks = tasks
        return True

    async def _consume(self, generation: int) -> None:
        """Apply events one at a time, in arrival order, resubscribing on drops."""
        while generation == self._generation:
            subscription = self._subscription
            if subscription is None:
                if not await self._resubscribe(generation):
                    return
                continue

            try:
                async for event in subscription:
                    self.apply_event(event)
            except ChannelError as e:
                logger.warning("Change channel dropped", extra={"owner": self._owner, "error": str(e)})
                if generation == self._generation:
                    self._subscription = None
                continue
            return

    async def _resubscribe(self, generation: int) -> bool:
        """Reopen the subscription and resync the full list, with exponential backoff."""
        owner = self._owner
        assert owner is not None
        last_error: Exception = ChannelError("Change channel unavailable")

        for attempt in range(self._max_attempts):
            await asyncio.sleep(self._base_delay * (2**attempt))
            if generation != self._generation:
                return False

            try:
                subscription = await self._remote.subscribe(owner=owner)
            except (ChannelError, RemoteError, AuthError) as e:
                last_error = e
                logger.warning(
                    "Resubscribe failed (attempt %d/%d): %s",
                    attempt + 1,
                    self._max_attempts,
                    e,
                )
                continue

            if generation != self._generation:
                subscription.close()
                return False

            self._subscription = subscription
            if await self._load(generation):
                logger.info("Resubscribed and resynced", extra={"owner": owner, "count": len(self._tasks)})
            return True

        logger.error("Giving up on change channel after %d attempts: %s", self._max_attempts, last_error)
        if generation == self._generation:
            self._set_error(ChannelError(str(last_error)))
        return False

    def apply_event(self, event: ChangeEvent) -> bool:
        """Apply one change event to the local list. Returns True if the list changed."""
        if not self._active:
            logger.debug("Dropping change event after teardown", extra={"record_id": event.record.get("id")})
            return False
        if event.owner is not None and event.owner != self._owner:
            return False

        index = self._index_of(event.record_id)

        try:
            if event.action == ChangeAction.INSERT:
                # Owner-filtered above; insert payloads may omit owner
                task = Task.from_record({"owner": self._owner, **event.record})
                if index is None:
                    self._tasks.insert(0, task)
                else:
                    self._tasks[index] = task
                return True

            if index is None:
                return False

            if event.action == ChangeAction.UPDATE:
                merged = {**self._tasks[index].model_dump(), **event.record}
                self._tasks[index] = Task.from_record(merged)
                return True

            del self._tasks[index]
            return True
        except PydanticValidationError as e:
            logger.warning(
                "Ignoring malformed change event",
                extra={"action": event.action, "record_id": event.record_id, "error": str(e)},
            )
            return False

    def _index_of(self, task_id: str) -> int | None:
        for index, task in enumerate(self._tasks):
            if task.id == task_id:
                return index
        return None

    async def teardown(self) -> None:
        """Release the change subscription and discard the local list. Safe to call twice."""
        if not self._active:
            return

        self._active = False
        self._generation += 1
        if self._subscription is not None:
            self._subscription.close()
            self._subscription = None
        if self._consumer is not None:
            self._consumer.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._consumer
            self._consumer = None

        self._tasks = []
        self._loading = False
        logger.info("Synchronizer torn down", extra={"owner": self._owner})
        self._owner = None
