"""Context builder: assembles the immutable request envelope for a batch run."""

from __future__ import annotations

import re
from collections.abc import Callable
from uuid import uuid7

from modloc_core.ports.repositories import (
    GlossaryRepositoryProtocol,
    LanguageRepositoryProtocol,
    ProjectLanguageRepositoryProtocol,
    ProjectRepositoryProtocol,
)
from modloc_core.ports.sinks import LogSinkProtocol
from modloc_schemas.context import GlossaryTerm, TranslationContext
from modloc_schemas.events import ContextLogEvent
from modloc_schemas.logs import LogEntry
from modloc_schemas.primitives import (
    DEFAULT_TARGET_LANGUAGE,
    LANGUAGE_CODE_PATTERN,
    MAX_PARALLEL_BATCH_LIMIT,
    GlossaryId,
    JsonValue,
    LogLevel,
    ModelId,
    ProjectId,
    ProjectLanguageId,
    ProviderId,
    Timestamp,
    normalize_language_code,
    utc_timestamp,
)
from modloc_schemas.storage import GlossaryRecord


class ContextBuilder:
    """Build translation contexts from project, language and glossary lookups.

    ``build`` never raises. Lookup failures are logged as warnings and degrade
    to an English target without glossary terms.
    """

    def __init__(
        self,
        project_repository: ProjectRepositoryProtocol,
        project_language_repository: ProjectLanguageRepositoryProtocol,
        language_repository: LanguageRepositoryProtocol,
        glossary_repository: GlossaryRepositoryProtocol,
        log_sink: LogSinkProtocol | None = None,
        clock: Callable[[], Timestamp] | None = None,
    ) -> None:
        """Initialize the context builder.

        Args:
            project_repository: Project lookups.
            project_language_repository: Project-language lookups.
            language_repository: Language lookups.
            glossary_repository: Glossary and term lookups.
            log_sink: Optional log sink for degraded lookups.
            clock: Optional timestamp provider.
        """
        self._projects = project_repository
        self._project_languages = project_language_repository
        self._languages = language_repository
        self._glossaries = glossary_repository
        self._log_sink = log_sink
        self._clock = clock or utc_timestamp

    async def build(
        self,
        project_id: ProjectId,
        project_language_id: ProjectLanguageId,
        provider_id: ProviderId,
        *,
        model_id: ModelId | None = None,
        units_per_batch: int | None = None,
        parallel_batches: int | None = None,
        skip_translation_memory: bool = False,
    ) -> TranslationContext:
        """Build the context for one translation request.

        Args:
            project_id: Project identifier.
            project_language_id: Target project-language.
            provider_id: Provider that will receive the units.
            model_id: Optional provider model.
            units_per_batch: Units per provider request, 0 or None for auto.
            parallel_batches: Batches to run concurrently, clamped to 1..20.
            skip_translation_memory: Skip translation-memory lookups.

        Returns:
            TranslationContext: Assembled context, degraded on lookup failure.
        """
        sizing = {
            "units_per_batch": max(units_per_batch or 0, 0),
            "parallel_batches": min(
                max(parallel_batches or 1, 1), MAX_PARALLEL_BATCH_LIMIT
            ),
            "skip_translation_memory": skip_translation_memory,
        }
        try:
            return await self._build(
                project_id, project_language_id, provider_id, model_id, sizing
            )
        except Exception as exc:
            await self._log(
                LogLevel.ERROR,
                ContextLogEvent.FALLBACK,
                project_language_id,
                "Failed to build translation context, using defaults",
                {"error": str(exc), "error_type": type(exc).__name__},
            )
            return self._context(
                project_id,
                project_language_id,
                provider_id,
                model_id,
                sizing,
                target_language=DEFAULT_TARGET_LANGUAGE,
            )

    async def _build(
        self,
        project_id: ProjectId,
        project_language_id: ProjectLanguageId,
        provider_id: ProviderId,
        model_id: ModelId | None,
        sizing: dict[str, int | bool],
    ) -> TranslationContext:
        project_found = True
        game_installation_id: str | None = None
        try:
            project = await self._projects.get_project(project_id)
            game_installation_id = project.game_installation_id
        except Exception as exc:
            project_found = False
            await self._lookup_failed(project_language_id, "project", project_id, exc)

        target_language = await self._resolve_target_language(project_language_id)

        glossary_id: GlossaryId | None = None
        terms: list[GlossaryTerm] = []
        if project_found and target_language is not None:
            glossary_id, terms = await self._load_glossary(
                project_language_id, game_installation_id, target_language
            )

        context = self._context(
            project_id,
            project_language_id,
            provider_id,
            model_id,
            sizing,
            target_language=target_language or DEFAULT_TARGET_LANGUAGE,
            glossary_id=glossary_id,
            glossary_terms=terms,
        )
        await self._log(
            LogLevel.DEBUG,
            ContextLogEvent.BUILT,
            project_language_id,
            "Translation context built",
            {
                "context_id": str(context.id),
                "provider_id": provider_id,
                "model_id": model_id,
                "target_language": context.target_language,
                "glossary_id": glossary_id,
            },
        )
        return context

    async def _resolve_target_language(
        self, project_language_id: ProjectLanguageId
    ) -> str | None:
        try:
            project_language = await self._project_languages.get_project_language(
                project_language_id
            )
        except Exception as exc:
            await self._lookup_failed(
                project_language_id, "project_language", project_language_id, exc
            )
            return None
        try:
            language = await self._languages.get_language(project_language.language_id)
        except Exception as exc:
            await self._lookup_failed(
                project_language_id, "language", project_language.language_id, exc
            )
            return None
        code = normalize_language_code(language.code)
        if re.fullmatch(LANGUAGE_CODE_PATTERN, code) is None:
            await self._log(
                LogLevel.WARN,
                ContextLogEvent.LOOKUP_FAILED,
                project_language_id,
                f"Language code {language.code!r} is not usable",
                {"entity": "language", "entity_id": language.id},
            )
            return None
        return code

    async def _load_glossary(
        self,
        project_language_id: ProjectLanguageId,
        game_installation_id: str | None,
        target_language: str,
    ) -> tuple[GlossaryId | None, list[GlossaryTerm]]:
        try:
            records = await self._glossaries.list_glossaries(
                game_installation_id, include_universal=True
            )
            glossaries = _select_glossaries(
                records, game_installation_id, target_language
            )
            terms: list[GlossaryTerm] = []
            for glossary in glossaries:
                terms.extend(await self._glossaries.get_terms(glossary.id))
        except Exception as exc:
            await self._lookup_failed(
                project_language_id, "glossary", game_installation_id or "*", exc
            )
            return None, []
        if not glossaries:
            return None, []
        if terms:
            await self._log(
                LogLevel.INFO,
                ContextLogEvent.GLOSSARY_LOADED,
                project_language_id,
                "Loaded glossary entries with variants",
                {
                    "glossary_ids": [glossary.id for glossary in glossaries],
                    "term_count": len(terms),
                    "variant_count": sum(term.variant_count for term in terms),
                },
            )
        return glossaries[0].id, terms

    def _context(
        self,
        project_id: ProjectId,
        project_language_id: ProjectLanguageId,
        provider_id: ProviderId,
        model_id: ModelId | None,
        sizing: dict[str, int | bool],
        *,
        target_language: str,
        glossary_id: GlossaryId | None = None,
        glossary_terms: list[GlossaryTerm] | None = None,
    ) -> TranslationContext:
        now = self._clock()
        return TranslationContext(
            id=uuid7(),
            project_id=project_id,
            project_language_id=project_language_id,
            provider_id=provider_id,
            model_id=model_id,
            target_language=target_language,
            glossary_id=glossary_id,
            glossary_terms=glossary_terms or [],
            units_per_batch=int(sizing["units_per_batch"]),
            parallel_batches=int(sizing["parallel_batches"]),
            skip_translation_memory=bool(sizing["skip_translation_memory"]),
            created_at=now,
            updated_at=now,
        )

    async def _lookup_failed(
        self,
        project_language_id: ProjectLanguageId,
        entity: str,
        entity_id: str,
        exc: Exception,
    ) -> None:
        await self._log(
            LogLevel.WARN,
            ContextLogEvent.LOOKUP_FAILED,
            project_language_id,
            f"Failed to get {entity} for translation context",
            {"entity": entity, "entity_id": entity_id, "error": str(exc)},
        )

    async def _log(
        self,
        level: LogLevel,
        event: ContextLogEvent,
        project_language_id: ProjectLanguageId,
        message: str,
        data: dict[str, JsonValue],
    ) -> None:
        if self._log_sink is None:
            return
        await self._log_sink.emit_log(
            LogEntry(
                timestamp=self._clock(),
                level=level,
                event=event,
                project_language_id=project_language_id,
                message=message,
                data=data,
            )
        )


def _select_glossaries(
    records: list[GlossaryRecord],
    game_installation_id: str | None,
    target_language: str,
) -> list[GlossaryRecord]:
    """Order applicable glossaries with game-specific ones first.

    Returns:
        list[GlossaryRecord]: Applicable glossaries, primary first.
    """
    applicable = [
        record
        for record in records
        if (record.is_universal or record.game_installation_id == game_installation_id)
        and (
            record.target_language_code is None
            or normalize_language_code(record.target_language_code) == target_language
        )
    ]
    game_specific = [record for record in applicable if not record.is_universal]
    universal = [record for record in applicable if record.is_universal]
    return game_specific + universal
