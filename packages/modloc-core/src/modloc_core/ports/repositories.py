"""Protocol definitions and errors for persistence collaborators."""

from __future__ import annotations

from collections.abc import Sequence
from enum import StrEnum
from typing import Protocol, runtime_checkable

from pydantic import Field

from modloc_schemas.base import BaseSchema
from modloc_schemas.batch import TranslationBatch, TranslationBatchUnit
from modloc_schemas.context import GlossaryTerm
from modloc_schemas.primitives import (
    BatchId,
    GlossaryId,
    OpaqueId,
    ProjectId,
    ProjectLanguageId,
    UnitId,
)
from modloc_schemas.responses import ErrorDetails, ErrorResponse
from modloc_schemas.storage import (
    GlossaryRecord,
    LanguageRecord,
    ProjectLanguageRecord,
    ProjectRecord,
)
from modloc_schemas.translation import SourceUnit, UnitTranslation


class RepositoryErrorCode(StrEnum):
    """Categorized error codes for repository operations."""

    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    IO_ERROR = "io_error"


class RepositoryErrorDetails(BaseSchema):
    """Detailed repository error context."""

    entity: str | None = Field(None, description="Entity kind")
    entity_id: str | None = Field(None, description="Entity identifier")
    operation: str | None = Field(None, description="Repository operation")
    reason: str | None = Field(None, description="Additional error context")


class RepositoryErrorInfo(BaseSchema):
    """Structured repository error data."""

    code: RepositoryErrorCode = Field(..., description="Repository error code")
    message: str = Field(..., min_length=1, description="Error message")
    details: RepositoryErrorDetails | None = Field(None, description="Error details")

    def to_error_response(self) -> ErrorResponse:
        """Convert repository error info to the standard error response schema.

        Returns:
            ErrorResponse: Standard response error payload.
        """
        details: ErrorDetails | None = None
        if self.details is not None:
            details = ErrorDetails(
                field=self.details.entity,
                provided=self.details.entity_id,
                valid_options=None,
            )
        return ErrorResponse(code=str(self.code), message=self.message, details=details)


class RepositoryError(Exception):
    """Repository error with structured details."""

    def __init__(self, info: RepositoryErrorInfo) -> None:
        """Initialize the repository error.

        Args:
            info: Structured repository error information.
        """
        super().__init__(info.message)
        self.info = info


def not_found(entity: str, entity_id: str) -> RepositoryError:
    """Build a not-found repository error.

    Args:
        entity: Entity kind.
        entity_id: Identifier that was looked up.

    Returns:
        RepositoryError: Error ready to raise.
    """
    return RepositoryError(
        RepositoryErrorInfo(
            code=RepositoryErrorCode.NOT_FOUND,
            message=f"{entity} {entity_id} not found",
            details=RepositoryErrorDetails(entity=entity, entity_id=entity_id),
        )
    )


@runtime_checkable
class UnitRepositoryProtocol(Protocol):
    """Protocol for translatable unit lookups and translation writes."""

    async def get_untranslated_ids(
        self, project_language_id: ProjectLanguageId
    ) -> list[UnitId]:
        """List every unit still untranslated for a project-language."""
        raise NotImplementedError

    async def filter_untranslated_ids(
        self, unit_ids: Sequence[UnitId], project_language_id: ProjectLanguageId
    ) -> list[UnitId]:
        """Narrow candidate ids to those still untranslated, keeping order."""
        raise NotImplementedError

    async def get_source_units(self, unit_ids: Sequence[UnitId]) -> list[SourceUnit]:
        """Load source units for the given ids."""
        raise NotImplementedError

    async def save_translations(self, translations: Sequence[UnitTranslation]) -> None:
        """Persist translated text for units."""
        raise NotImplementedError


@runtime_checkable
class BatchRepositoryProtocol(Protocol):
    """Protocol for persisting batch header rows."""

    async def get(self, batch_id: BatchId) -> TranslationBatch | None:
        """Load a batch by id if present."""
        raise NotImplementedError

    async def get_by_project_language(
        self, project_language_id: ProjectLanguageId
    ) -> list[TranslationBatch]:
        """List all batches of a project-language."""
        raise NotImplementedError

    async def insert(self, batch: TranslationBatch) -> None:
        """Insert a new batch row."""
        raise NotImplementedError

    async def update(self, batch: TranslationBatch) -> None:
        """Replace an existing batch row."""
        raise NotImplementedError


@runtime_checkable
class BatchUnitRepositoryProtocol(Protocol):
    """Protocol for persisting batch unit rows."""

    async def insert_batch(self, units: Sequence[TranslationBatchUnit]) -> None:
        """Insert all unit rows of a batch in one atomic write."""
        raise NotImplementedError

    async def get_by_batch(self, batch_id: BatchId) -> list[TranslationBatchUnit]:
        """List unit rows of a batch."""
        raise NotImplementedError

    async def update_many(self, units: Sequence[TranslationBatchUnit]) -> None:
        """Replace existing unit rows."""
        raise NotImplementedError


@runtime_checkable
class ProjectRepositoryProtocol(Protocol):
    """Protocol for project lookups."""

    async def get_project(self, project_id: ProjectId) -> ProjectRecord:
        """Load a project or raise RepositoryError(NOT_FOUND)."""
        raise NotImplementedError


@runtime_checkable
class ProjectLanguageRepositoryProtocol(Protocol):
    """Protocol for project-language lookups."""

    async def get_project_language(
        self, project_language_id: ProjectLanguageId
    ) -> ProjectLanguageRecord:
        """Load a project-language or raise RepositoryError(NOT_FOUND)."""
        raise NotImplementedError


@runtime_checkable
class LanguageRepositoryProtocol(Protocol):
    """Protocol for language lookups."""

    async def get_language(self, language_id: OpaqueId) -> LanguageRecord:
        """Load a language or raise RepositoryError(NOT_FOUND)."""
        raise NotImplementedError


@runtime_checkable
class GlossaryRepositoryProtocol(Protocol):
    """Protocol for glossary lookups."""

    async def list_glossaries(
        self, game_installation_id: OpaqueId | None, *, include_universal: bool = True
    ) -> list[GlossaryRecord]:
        """List game-specific glossaries and optionally universal ones."""
        raise NotImplementedError

    async def get_terms(self, glossary_id: GlossaryId) -> list[GlossaryTerm]:
        """Load every term of a glossary with its variants."""
        raise NotImplementedError
