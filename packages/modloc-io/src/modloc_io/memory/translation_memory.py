"""In-memory exact-match translation memory."""

from __future__ import annotations

from modloc_core.ports.provider import TranslationMemoryProtocol
from modloc_schemas.primitives import LanguageCode, normalize_language_code


class InMemoryTranslationMemory(TranslationMemoryProtocol):
    """Translation memory keyed by source text and language pair."""

    def __init__(self) -> None:
        """Initialize an empty translation memory."""
        self._entries: dict[tuple[str, str, str], str] = {}
        self.lookups = 0

    def add(
        self,
        source_text: str,
        target_text: str,
        *,
        source_language: LanguageCode = "EN",
        target_language: LanguageCode,
    ) -> None:
        """Store a translation pair.

        Args:
            source_text: Source text.
            target_text: Stored translation.
            source_language: Source language code.
            target_language: Target language code.
        """
        self._entries[_key(source_text, source_language, target_language)] = target_text

    async def lookup(
        self,
        source_text: str,
        source_language: LanguageCode,
        target_language: LanguageCode,
    ) -> str | None:
        """Return a stored translation for the source text if one exists."""
        self.lookups += 1
        return self._entries.get(_key(source_text, source_language, target_language))


def _key(
    source_text: str, source_language: str, target_language: str
) -> tuple[str, str, str]:
    return (
        source_text,
        normalize_language_code(source_language),
        normalize_language_code(target_language),
    )
