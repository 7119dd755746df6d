"""In-memory adapters for repositories, translation memory and providers."""

from modloc_io.memory.provider import ScriptedTranslationProvider
from modloc_io.memory.repositories import (
    InMemoryBatchRepository,
    InMemoryBatchUnitRepository,
    InMemoryGlossaryRepository,
    InMemoryLanguageRepository,
    InMemoryProjectLanguageRepository,
    InMemoryProjectRepository,
    InMemoryUnitRepository,
)
from modloc_io.memory.translation_memory import InMemoryTranslationMemory

__all__ = [
    "InMemoryBatchRepository",
    "InMemoryBatchUnitRepository",
    "InMemoryGlossaryRepository",
    "InMemoryLanguageRepository",
    "InMemoryProjectLanguageRepository",
    "InMemoryProjectRepository",
    "InMemoryTranslationMemory",
    "InMemoryUnitRepository",
    "ScriptedTranslationProvider",
]
