"""In-memory repository adapters for local runs and tests."""

from __future__ import annotations

from collections.abc import Iterable, Sequence

from modloc_core.ports.repositories import (
    BatchRepositoryProtocol,
    BatchUnitRepositoryProtocol,
    GlossaryRepositoryProtocol,
    LanguageRepositoryProtocol,
    ProjectLanguageRepositoryProtocol,
    ProjectRepositoryProtocol,
    RepositoryError,
    RepositoryErrorCode,
    RepositoryErrorDetails,
    RepositoryErrorInfo,
    UnitRepositoryProtocol,
    not_found,
)
from modloc_schemas.batch import TranslationBatch, TranslationBatchUnit
from modloc_schemas.context import GlossaryTerm
from modloc_schemas.primitives import (
    BatchId,
    BatchUnitId,
    GlossaryId,
    OpaqueId,
    ProjectId,
    ProjectLanguageId,
    UnitId,
)
from modloc_schemas.storage import (
    GlossaryRecord,
    LanguageRecord,
    ProjectLanguageRecord,
    ProjectRecord,
)
from modloc_schemas.translation import SourceUnit, UnitTranslation


def _conflict(entity: str, entity_id: str, operation: str) -> RepositoryError:
    return RepositoryError(
        RepositoryErrorInfo(
            code=RepositoryErrorCode.CONFLICT,
            message=f"{entity} {entity_id} already exists",
            details=RepositoryErrorDetails(
                entity=entity, entity_id=entity_id, operation=operation
            ),
        )
    )


class InMemoryUnitRepository(UnitRepositoryProtocol):
    """Source units and their translations held in memory."""

    def __init__(self, units: Iterable[SourceUnit] = ()) -> None:
        """Initialize the repository.

        Args:
            units: Source units in their natural order.
        """
        self._units: dict[UnitId, SourceUnit] = {unit.unit_id: unit for unit in units}
        self._translations: dict[tuple[ProjectLanguageId, UnitId], UnitTranslation] = {}

    def add_unit(self, unit: SourceUnit) -> None:
        """Register a source unit."""
        self._units[unit.unit_id] = unit

    def get_translation(
        self, project_language_id: ProjectLanguageId, unit_id: UnitId
    ) -> UnitTranslation | None:
        """Return the stored translation of a unit if any."""
        return self._translations.get((project_language_id, unit_id))

    @property
    def translations(self) -> list[UnitTranslation]:
        """Return every stored translation."""
        return list(self._translations.values())

    async def get_untranslated_ids(
        self, project_language_id: ProjectLanguageId
    ) -> list[UnitId]:
        """List every unit still untranslated for a project-language."""
        return [
            unit_id
            for unit_id in self._units
            if (project_language_id, unit_id) not in self._translations
        ]

    async def filter_untranslated_ids(
        self, unit_ids: Sequence[UnitId], project_language_id: ProjectLanguageId
    ) -> list[UnitId]:
        """Narrow candidate ids to those still untranslated, keeping order."""
        return [
            unit_id
            for unit_id in unit_ids
            if unit_id in self._units
            and (project_language_id, unit_id) not in self._translations
        ]

    async def get_source_units(self, unit_ids: Sequence[UnitId]) -> list[SourceUnit]:
        """Load source units for the given ids."""
        return [self._units[unit_id] for unit_id in unit_ids if unit_id in self._units]

    async def save_translations(self, translations: Sequence[UnitTranslation]) -> None:
        """Persist translated text for units."""
        for translation in translations:
            key = (translation.project_language_id, translation.unit_id)
            self._translations[key] = translation


class InMemoryBatchRepository(BatchRepositoryProtocol):
    """Batch header rows held in memory."""

    def __init__(self) -> None:
        """Initialize an empty repository."""
        self._batches: dict[BatchId, TranslationBatch] = {}

    async def get(self, batch_id: BatchId) -> TranslationBatch | None:
        """Load a batch by id if present."""
        return self._batches.get(batch_id)

    async def get_by_project_language(
        self, project_language_id: ProjectLanguageId
    ) -> list[TranslationBatch]:
        """List all batches of a project-language ordered by number."""
        return sorted(
            (
                batch
                for batch in self._batches.values()
                if batch.project_language_id == project_language_id
            ),
            key=lambda batch: batch.batch_number,
        )

    async def insert(self, batch: TranslationBatch) -> None:
        """Insert a new batch row.

        Raises:
            RepositoryError: If the batch id already exists.
        """
        if batch.id in self._batches:
            raise _conflict("batch", str(batch.id), "insert")
        self._batches[batch.id] = batch

    async def update(self, batch: TranslationBatch) -> None:
        """Replace an existing batch row.

        Raises:
            RepositoryError: If the batch does not exist.
        """
        if batch.id not in self._batches:
            raise not_found("batch", str(batch.id))
        self._batches[batch.id] = batch


class InMemoryBatchUnitRepository(BatchUnitRepositoryProtocol):
    """Batch unit rows held in memory, grouped by batch."""

    def __init__(self) -> None:
        """Initialize an empty repository."""
        self._rows: dict[BatchId, dict[BatchUnitId, TranslationBatchUnit]] = {}

    async def insert_batch(self, units: Sequence[TranslationBatchUnit]) -> None:
        """Insert unit rows all at once or not at all.

        Raises:
            RepositoryError: If any row id already exists.
        """
        for unit in units:
            if unit.id in self._rows.get(unit.batch_id, {}):
                raise _conflict("batch_unit", str(unit.id), "insert_batch")
        for unit in units:
            self._rows.setdefault(unit.batch_id, {})[unit.id] = unit

    async def get_by_batch(self, batch_id: BatchId) -> list[TranslationBatchUnit]:
        """List unit rows of a batch in insertion order."""
        return list(self._rows.get(batch_id, {}).values())

    async def update_many(self, units: Sequence[TranslationBatchUnit]) -> None:
        """Replace existing unit rows all at once or not at all.

        Raises:
            RepositoryError: If any row does not exist.
        """
        for unit in units:
            if unit.id not in self._rows.get(unit.batch_id, {}):
                raise not_found("batch_unit", str(unit.id))
        for unit in units:
            self._rows[unit.batch_id][unit.id] = unit


class InMemoryProjectRepository(ProjectRepositoryProtocol):
    """Projects held in memory."""

    def __init__(self, projects: Iterable[ProjectRecord] = ()) -> None:
        """Initialize the repository with projects."""
        self._projects = {project.id: project for project in projects}

    async def get_project(self, project_id: ProjectId) -> ProjectRecord:
        """Load a project or raise RepositoryError(NOT_FOUND)."""
        project = self._projects.get(project_id)
        if project is None:
            raise not_found("project", project_id)
        return project


class InMemoryProjectLanguageRepository(ProjectLanguageRepositoryProtocol):
    """Project-languages held in memory."""

    def __init__(self, project_languages: Iterable[ProjectLanguageRecord] = ()) -> None:
        """Initialize the repository with project-languages."""
        self._project_languages = {record.id: record for record in project_languages}

    async def get_project_language(
        self, project_language_id: ProjectLanguageId
    ) -> ProjectLanguageRecord:
        """Load a project-language or raise RepositoryError(NOT_FOUND)."""
        record = self._project_languages.get(project_language_id)
        if record is None:
            raise not_found("project_language", project_language_id)
        return record


class InMemoryLanguageRepository(LanguageRepositoryProtocol):
    """Languages held in memory."""

    def __init__(self, languages: Iterable[LanguageRecord] = ()) -> None:
        """Initialize the repository with languages."""
        self._languages = {language.id: language for language in languages}

    async def get_language(self, language_id: OpaqueId) -> LanguageRecord:
        """Load a language or raise RepositoryError(NOT_FOUND)."""
        language = self._languages.get(language_id)
        if language is None:
            raise not_found("language", language_id)
        return language


class InMemoryGlossaryRepository(GlossaryRepositoryProtocol):
    """Glossaries and their terms held in memory."""

    def __init__(
        self,
        glossaries: Iterable[GlossaryRecord] = (),
        terms: Iterable[GlossaryTerm] = (),
    ) -> None:
        """Initialize the repository.

        Args:
            glossaries: Glossary header rows.
            terms: Terms, each tagged with its glossary id.
        """
        self._glossaries = {glossary.id: glossary for glossary in glossaries}
        self._terms: dict[GlossaryId, list[GlossaryTerm]] = {}
        for term in terms:
            self._terms.setdefault(term.glossary_id, []).append(term)

    async def list_glossaries(
        self, game_installation_id: OpaqueId | None, *, include_universal: bool = True
    ) -> list[GlossaryRecord]:
        """List game-specific glossaries and optionally universal ones."""
        return [
            glossary
            for glossary in sorted(self._glossaries.values(), key=lambda g: g.name)
            if (
                game_installation_id is not None
                and glossary.game_installation_id == game_installation_id
            )
            or (include_universal and glossary.is_universal)
        ]

    async def get_terms(self, glossary_id: GlossaryId) -> list[GlossaryTerm]:
        """Load every term of a glossary with its variants."""
        if glossary_id not in self._glossaries:
            raise not_found("glossary", glossary_id)
        return list(self._terms.get(glossary_id, []))
