"""Message-passing channel for remote change events.

A `Subscription` is the consuming end: an async iterator of `ChangeEvent`
that stops when closed and raises `ChannelError` when the producer reports a
drop. A `ChangeChannel` fans published events out to every open subscription
scoped to the event's owner.

Usage:
    channel = ChangeChannel()
    subscription = channel.subscribe(owner="user_1")
    channel.publish(ChangeEvent(action=ChangeAction.INSERT, record={...}))
    async for event in subscription:
        ...
    subscription.close()
"""

import asyncio
import logging
from collections.abc import Callable

from tasksync.core.config import constants
from tasksync.core.errors import ChannelError
from tasksync.domain.events import ChangeEvent


logger = logging.getLogger(__name__)

_STOP = object()


class Subscription:
    """Receiving end of a change subscription for one owner."""

    def __init__(
        self,
        *,
        owner: str,
        maxsize: int = constants.CHANNEL_QUEUE_MAXSIZE,
        on_close: Callable[["Subscription"], None] | None = None,
    ) -> None:
        self.owner = owner
        self._queue: asyncio.Queue[object] = asyncio.Queue(maxsize=maxsize)
        self._on_close = on_close
        self._closed = False

    @property
    def closed(self) -> bool:
        """True once closed by the consumer or failed by the producer."""
        return self._closed

    def accepts(self, event: ChangeEvent) -> bool:
        """Whether the event belongs to this subscription's owner scope."""
        return event.owner is None or event.owner == self.owner

    def deliver(self, event: ChangeEvent) -> bool:
        """Queue an event for the consumer. Returns False if it was not queued."""
        if self._closed or not self.accepts(event):
            return False
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            self.fail(ChannelError("Subscription fell behind and dropped events"))
            return False
        return True

    def fail(self, error: ChannelError) -> None:
        """Terminate delivery with an error the consumer will see."""
        if self._closed:
            return
        logger.warning("Change subscription failed", extra={"owner": self.owner, "error": str(error)})
        # Events queued before the failure are still delivered, unless the queue overflowed
        self._terminate(error, discard_pending=self._queue.full())

    def close(self) -> None:
        """Stop delivery. Pending events are discarded."""
        if self._closed:
            return
        self._terminate(_STOP, discard_pending=True)

    def _terminate(self, marker: object, *, discard_pending: bool) -> None:
        self._closed = True
        if discard_pending:
            while not self._queue.empty():
                self._queue.get_nowait()
        self._queue.put_nowait(marker)
        if self._on_close is not None:
            self._on_close(self)

    def __aiter__(self) -> "Subscription":
        return self

    async def __anext__(self) -> ChangeEvent:
        item = await self._queue.get()
        if item is _STOP:
            # Keep the marker so further iteration also stops
            self._queue.put_nowait(_STOP)
            raise StopAsyncIteration
        if isinstance(item, ChannelError):
            self._queue.put_nowait(_STOP)
            raise item
        assert isinstance(item, ChangeEvent)
        return item


class ChangeChannel:
    """In-process broadcaster of change events to owner-scoped subscriptions."""

    def __init__(self, *, maxsize: int = constants.CHANNEL_QUEUE_MAXSIZE) -> None:
        self._maxsize = maxsize
        self._subscriptions: set[Subscription] = set()

    @property
    def subscriber_count(self) -> int:
        """Number of open subscriptions."""
        return len(self._subscriptions)

    def subscribe(self, *, owner: str) -> Subscription:
        """Open a subscription for one owner's records."""
        subscription = Subscription(owner=owner, maxsize=self._maxsize, on_close=self._subscriptions.discard)
        self._subscriptions.add(subscription)
        logger.debug("Opened change subscription", extra={"owner": owner})
        return subscription

    def publish(self, event: ChangeEvent) -> int:
        """Deliver an event to every matching subscription. Returns the delivery count."""
        delivered = 0
        for subscription in list(self._subscriptions):
            if subscription.deliver(event):
                delivered += 1
        return delivered

    def fail_all(self, error: ChannelError) -> None:
        """Report a transport drop to every subscriber."""
        for subscription in list(self._subscriptions):
            subscription.fail(error)

    def close(self) -> None:
        """Close every open subscription."""
        for subscription in list(self._subscriptions):
            subscription.close()
