"""modloc-io: Adapters for the translation batch engine."""

from modloc_io.memory import (
    InMemoryBatchRepository,
    InMemoryBatchUnitRepository,
    InMemoryGlossaryRepository,
    InMemoryLanguageRepository,
    InMemoryProjectLanguageRepository,
    InMemoryProjectRepository,
    InMemoryTranslationMemory,
    InMemoryUnitRepository,
    ScriptedTranslationProvider,
)
from modloc_io.storage import (
    CompositeEventSink,
    CompositeLogSink,
    ConsoleLogSink,
    FileLogSink,
    FileSystemEventSink,
    InMemoryEventSink,
    InMemoryLogSink,
    NoopLogSink,
    build_log_sink,
)

__version__ = "0.1.0"

__all__ = [
    "CompositeEventSink",
    "CompositeLogSink",
    "ConsoleLogSink",
    "FileLogSink",
    "FileSystemEventSink",
    "InMemoryBatchRepository",
    "InMemoryBatchUnitRepository",
    "InMemoryEventSink",
    "InMemoryGlossaryRepository",
    "InMemoryLanguageRepository",
    "InMemoryLogSink",
    "InMemoryProjectLanguageRepository",
    "InMemoryProjectRepository",
    "InMemoryTranslationMemory",
    "InMemoryUnitRepository",
    "NoopLogSink",
    "ScriptedTranslationProvider",
    "build_log_sink",
]
