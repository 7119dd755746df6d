"""Source units and translation results exchanged with providers."""

from __future__ import annotations

from pydantic import Field

from modloc_schemas.base import BaseSchema
from modloc_schemas.primitives import (
    BatchId,
    ModelId,
    ProjectLanguageId,
    ProviderId,
    Timestamp,
    UnitId,
)


class SourceUnit(BaseSchema):
    """Translatable content unit handed to a provider."""

    unit_id: UnitId = Field(..., description="Unit identifier")
    key: str = Field(..., min_length=1, description="Stable localization key")
    source_text: str = Field(..., description="Source language text")


class ProviderTranslation(BaseSchema):
    """Per-unit outcome returned by a provider call."""

    unit_id: UnitId = Field(..., description="Unit identifier")
    translated_text: str | None = Field(None, description="Translated text")
    error_message: str | None = Field(
        None, description="Unit-local rejection reason"
    )

    @property
    def is_success(self) -> bool:
        """Whether the provider produced non-empty text for the unit."""
        return self.error_message is None and bool(self.translated_text)


class UnitTranslation(BaseSchema):
    """Translation persisted for a unit after a successful attempt."""

    unit_id: UnitId = Field(..., description="Unit identifier")
    project_language_id: ProjectLanguageId = Field(
        ..., description="Target project-language"
    )
    batch_id: BatchId = Field(..., description="Batch that produced it")
    provider_id: ProviderId = Field(..., description="Producing provider")
    model_id: ModelId | None = Field(None, description="Producing model")
    translated_text: str = Field(..., min_length=1, description="Translated text")
    from_translation_memory: bool = Field(
        False, description="Whether the text came from translation memory"
    )
    created_at: Timestamp = Field(..., description="Creation timestamp")
