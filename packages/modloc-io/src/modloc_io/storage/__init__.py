"""Storage adapters for logs and lifecycle events."""

from modloc_io.storage.event_sink import (
    CompositeEventSink,
    FileSystemEventSink,
    InMemoryEventSink,
)
from modloc_io.storage.log_sink import (
    CompositeLogSink,
    ConsoleLogSink,
    FileLogSink,
    InMemoryLogSink,
    NoopLogSink,
    build_log_sink,
)

__all__ = [
    "CompositeEventSink",
    "CompositeLogSink",
    "ConsoleLogSink",
    "FileLogSink",
    "FileSystemEventSink",
    "InMemoryEventSink",
    "InMemoryLogSink",
    "NoopLogSink",
    "build_log_sink",
]
