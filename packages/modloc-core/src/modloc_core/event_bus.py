"""In-process event bus with explicit subscription handles."""

from __future__ import annotations

import asyncio
from collections.abc import Iterable
from typing import Self

from modloc_core.ports.sinks import EventSinkProtocol
from modloc_schemas.events import BatchEvent, BatchEventKind
from modloc_schemas.primitives import BatchId, EventId

_CLOSED = object()


class EventSubscription:
    """A filtered, deduplicated view of the bus.

    Subscriptions are async iterators and async context managers. Each one
    drops events whose id it has already delivered. Iteration ends once the
    subscription is closed and its buffer is drained.
    """

    def __init__(
        self,
        bus: EventBus,
        kinds: frozenset[BatchEventKind] | None,
        batch_id: BatchId | None,
    ) -> None:
        """Initialize the subscription.

        Args:
            bus: Owning event bus.
            kinds: Event kinds to receive, None for all.
            batch_id: Batch to receive events for, None for all.
        """
        self._bus = bus
        self._kinds = kinds
        self._batch_id = batch_id
        self._queue: asyncio.Queue[object] = asyncio.Queue()
        self._seen: set[EventId] = set()
        self._closed = False

    @property
    def closed(self) -> bool:
        """Whether the subscription stopped receiving events."""
        return self._closed

    def matches(self, event: BatchEvent) -> bool:
        """Check whether an event passes the subscription filters.

        Args:
            event: Candidate event.

        Returns:
            bool: True when the event should be delivered.
        """
        if self._batch_id is not None and event.batch_id != self._batch_id:
            return False
        return self._kinds is None or event.kind in self._kinds

    def deliver(self, event: BatchEvent) -> bool:
        """Buffer an event unless closed or already delivered.

        Args:
            event: Event to buffer.

        Returns:
            bool: True when the event was buffered.
        """
        if self._closed or event.event_id in self._seen:
            return False
        self._seen.add(event.event_id)
        self._queue.put_nowait(event)
        return True

    def drain(self) -> list[BatchEvent]:
        """Return buffered events without waiting.

        Returns:
            list[BatchEvent]: Events buffered so far, in delivery order.
        """
        events: list[BatchEvent] = []
        while not self._queue.empty():
            item = self._queue.get_nowait()
            if item is _CLOSED:
                # Keep the marker so a pending iteration still terminates.
                self._queue.put_nowait(_CLOSED)
                break
            events.append(item)  # type: ignore[arg-type]
        return events

    def close(self) -> None:
        """Stop receiving events and end iteration after the buffer drains."""
        if self._closed:
            return
        self._closed = True
        self._bus.unsubscribe(self)
        self._queue.put_nowait(_CLOSED)

    def __aiter__(self) -> Self:
        """Return the subscription as its own iterator."""
        return self

    async def __anext__(self) -> BatchEvent:
        """Wait for the next event.

        Returns:
            BatchEvent: Next delivered event.

        Raises:
            StopAsyncIteration: If the subscription is closed and drained.
        """
        item = await self._queue.get()
        if item is _CLOSED:
            self._queue.put_nowait(_CLOSED)
            raise StopAsyncIteration
        return item  # type: ignore[return-value]

    async def __aenter__(self) -> Self:
        """Enter the subscription context."""
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        """Close the subscription on context exit."""
        self.close()


class EventBus(EventSinkProtocol):
    """Fan batch lifecycle events out to subscriptions.

    Events for one batch are delivered in emission order. Delivery is
    at-least-once from the emitter's side; each subscription deduplicates by
    event id.
    """

    def __init__(self) -> None:
        """Initialize an empty bus."""
        self._subscriptions: list[EventSubscription] = []

    @property
    def subscriber_count(self) -> int:
        """Number of open subscriptions."""
        return len(self._subscriptions)

    def subscribe(
        self,
        kinds: Iterable[BatchEventKind] | None = None,
        batch_id: BatchId | None = None,
    ) -> EventSubscription:
        """Open a subscription.

        Args:
            kinds: Event kinds to receive, None for all.
            batch_id: Restrict delivery to one batch.

        Returns:
            EventSubscription: Handle the caller must close.
        """
        subscription = EventSubscription(
            self,
            frozenset(BatchEventKind(kind) for kind in kinds)
            if kinds is not None
            else None,
            batch_id,
        )
        self._subscriptions.append(subscription)
        return subscription

    def unsubscribe(self, subscription: EventSubscription) -> None:
        """Detach a subscription from the bus.

        Args:
            subscription: Subscription to remove.
        """
        if subscription in self._subscriptions:
            self._subscriptions.remove(subscription)

    async def emit_event(self, event: BatchEvent) -> None:
        """Deliver an event to every matching subscription."""
        for subscription in list(self._subscriptions):
            if subscription.matches(event):
                subscription.deliver(event)

    def close(self) -> None:
        """Close every open subscription."""
        for subscription in list(self._subscriptions):
            subscription.close()
