"""Event sink adapters for batch lifecycle events."""

from __future__ import annotations

import asyncio
from collections.abc import Iterable
from pathlib import Path

from modloc_core.ports.sinks import EventSinkProtocol
from modloc_schemas.events import BatchEvent, parse_batch_event
from modloc_schemas.primitives import BatchId

from modloc_io.storage.jsonl import append_jsonl, read_jsonl_lines


class FileSystemEventSink(EventSinkProtocol):
    """Event sink that appends JSONL events to a file."""

    def __init__(self, path: Path | str) -> None:
        """Initialize the event sink with a file path."""
        self._path = Path(path)

    async def emit_event(self, event: BatchEvent) -> None:
        """Append an event to the JSONL file."""
        await asyncio.to_thread(append_jsonl, self._path, event)

    async def load_events(self) -> list[BatchEvent]:
        """Read back every event written to the file.

        Returns:
            list[BatchEvent]: Parsed events in write order.
        """
        lines = await asyncio.to_thread(read_jsonl_lines, self._path)
        return [parse_batch_event(line) for line in lines]


class InMemoryEventSink(EventSinkProtocol):
    """Event sink that stores events in memory."""

    def __init__(self) -> None:
        """Initialize the in-memory event sink."""
        self._events: list[BatchEvent] = []

    @property
    def events(self) -> list[BatchEvent]:
        """Return a copy of stored events."""
        return list(self._events)

    def for_batch(self, batch_id: BatchId) -> list[BatchEvent]:
        """Return stored events of one batch in emission order.

        Args:
            batch_id: Batch identifier.

        Returns:
            list[BatchEvent]: Events correlated to the batch.
        """
        return [event for event in self._events if event.batch_id == batch_id]

    async def emit_event(self, event: BatchEvent) -> None:
        """Store an event in memory."""
        self._events.append(event)


class CompositeEventSink(EventSinkProtocol):
    """Event sink that forwards events to multiple sinks."""

    def __init__(self, sinks: Iterable[EventSinkProtocol]) -> None:
        """Initialize the composite event sink."""
        self._sinks = list(sinks)

    async def emit_event(self, event: BatchEvent) -> None:
        """Forward events to each sink."""
        for sink in self._sinks:
            await sink.emit_event(event)
