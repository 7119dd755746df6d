"""Protocol definitions for log and event sinks."""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from modloc_schemas.events import BatchEvent
from modloc_schemas.logs import LogEntry


@runtime_checkable
class LogSinkProtocol(Protocol):
    """Protocol for emitting JSONL log entries."""

    async def emit_log(self, entry: LogEntry) -> None:
        """Emit a log entry."""
        raise NotImplementedError


@runtime_checkable
class EventSinkProtocol(Protocol):
    """Protocol for emitting batch lifecycle events.

    Delivery is at-least-once; consumers deduplicate by ``event_id``.
    """

    async def emit_event(self, event: BatchEvent) -> None:
        """Emit a batch lifecycle event."""
        raise NotImplementedError
