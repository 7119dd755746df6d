"""Log sink adapters for engine events."""

from __future__ import annotations

import asyncio
import sys
from collections.abc import Iterable
from pathlib import Path
from typing import TextIO

from modloc_core.ports.sinks import LogSinkProtocol
from modloc_schemas.config import LoggingConfig
from modloc_schemas.logs import LogEntry
from modloc_schemas.primitives import LogSinkType

from modloc_io.storage.jsonl import append_jsonl


class FileLogSink(LogSinkProtocol):
    """Log sink that appends JSONL entries to a file."""

    def __init__(self, path: Path | str) -> None:
        """Initialize the file log sink.

        Args:
            path: JSONL file to append to.
        """
        self._path = Path(path)

    @property
    def path(self) -> Path:
        """Destination file."""
        return self._path

    async def emit_log(self, entry: LogEntry) -> None:
        """Append a log entry to the JSONL file."""
        await asyncio.to_thread(append_jsonl, self._path, entry)


class CompositeLogSink(LogSinkProtocol):
    """Log sink that forwards entries to multiple sinks."""

    def __init__(self, sinks: Iterable[LogSinkProtocol]) -> None:
        """Initialize the composite log sink."""
        self._sinks = list(sinks)

    async def emit_log(self, entry: LogEntry) -> None:
        """Forward log entries to each sink."""
        for sink in self._sinks:
            await sink.emit_log(entry)


class ConsoleLogSink(LogSinkProtocol):
    """Log sink that writes JSONL entries to stderr."""

    def __init__(self, stream: TextIO | None = None) -> None:
        """Initialize the console log sink.

        Args:
            stream: Output stream to write JSONL log entries.
        """
        self._stream = stream or sys.stderr

    async def emit_log(self, entry: LogEntry) -> None:
        """Write log entry JSONL to the output stream."""
        payload = entry.model_dump_json(exclude_none=False)
        self._stream.write(payload + "\n")
        self._stream.flush()


class NoopLogSink(LogSinkProtocol):
    """Log sink that drops all log entries."""

    async def emit_log(self, entry: LogEntry) -> None:
        """Ignore log entries."""
        return None


class InMemoryLogSink(LogSinkProtocol):
    """Log sink that keeps entries in memory."""

    def __init__(self) -> None:
        """Initialize the in-memory log sink."""
        self._entries: list[LogEntry] = []

    @property
    def entries(self) -> list[LogEntry]:
        """Return a copy of stored log entries."""
        return list(self._entries)

    async def emit_log(self, entry: LogEntry) -> None:
        """Store a log entry in memory."""
        self._entries.append(entry)


def build_log_sink(
    logging_config: LoggingConfig,
    *,
    stream: TextIO | None = None,
) -> LogSinkProtocol:
    """Build a log sink from configuration.

    Args:
        logging_config: Logging configuration for the engine.
        stream: Optional stream for console logging.

    Returns:
        LogSinkProtocol: Configured log sink.

    Raises:
        ValueError: If an unsupported log sink type is configured.
    """
    sinks: list[LogSinkProtocol] = []
    for sink_config in logging_config.sinks:
        if sink_config.type == LogSinkType.FILE:
            if logging_config.file_path is None:
                raise ValueError("file log sink requires logging.file_path")
            sinks.append(FileLogSink(logging_config.file_path))
        elif sink_config.type == LogSinkType.CONSOLE:
            sinks.append(ConsoleLogSink(stream=stream))
        elif sink_config.type == LogSinkType.NOOP:
            sinks.append(NoopLogSink())
        else:
            raise ValueError(f"Unsupported log sink type: {sink_config.type}")

    if len(sinks) == 1:
        return sinks[0]
    return CompositeLogSink(sinks)
