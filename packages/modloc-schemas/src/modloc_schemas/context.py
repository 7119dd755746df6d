"""Translation request context shared by every unit of a batch run."""

from __future__ import annotations

from pydantic import Field, model_validator

from modloc_schemas.base import FrozenSchema
from modloc_schemas.primitives import (
    MAX_PARALLEL_BATCH_LIMIT,
    SOURCE_LANGUAGE,
    ContextId,
    GlossaryId,
    LanguageCode,
    ModelId,
    ProjectId,
    ProjectLanguageId,
    ProviderId,
    Timestamp,
)


class GlossaryTermVariant(FrozenSchema):
    """An inflected or alternate surface form of a glossary term."""

    source_form: str = Field(..., min_length=1, description="Source surface form")
    target_form: str = Field(..., min_length=1, description="Target surface form")


class GlossaryTerm(FrozenSchema):
    """Controlled source to target vocabulary entry."""

    glossary_id: GlossaryId = Field(..., description="Glossary owning the term")
    source_term: str = Field(..., min_length=1, description="Source term")
    target_term: str = Field(..., min_length=1, description="Target term")
    variants: list[GlossaryTermVariant] = Field(
        default_factory=list, description="Lexical variants of the term"
    )
    case_sensitive: bool = Field(False, description="Match case when filtering")

    @property
    def variant_count(self) -> int:
        """Number of lexical variants."""
        return len(self.variants)


class TranslationContext(FrozenSchema):
    """Immutable request envelope for one batch run."""

    id: ContextId = Field(..., description="Context identifier")
    project_id: ProjectId = Field(..., description="Project identifier")
    project_language_id: ProjectLanguageId = Field(
        ..., description="Project-language identifier"
    )
    provider_id: ProviderId = Field(..., description="Translation provider id")
    model_id: ModelId | None = Field(None, description="Provider model id")
    source_language: LanguageCode = Field(
        SOURCE_LANGUAGE, description="Source language code"
    )
    target_language: LanguageCode = Field(..., description="Target language code")
    glossary_id: GlossaryId | None = Field(
        None, description="Primary glossary for single-glossary providers"
    )
    glossary_terms: list[GlossaryTerm] = Field(
        default_factory=list, description="Glossary terms with variants"
    )
    units_per_batch: int = Field(
        0, ge=0, description="Units per provider request, 0 selects automatically"
    )
    parallel_batches: int = Field(
        1,
        ge=1,
        le=MAX_PARALLEL_BATCH_LIMIT,
        description="Batches executed concurrently",
    )
    skip_translation_memory: bool = Field(
        False, description="Skip translation-memory lookups"
    )
    created_at: Timestamp = Field(..., description="Creation timestamp")
    updated_at: Timestamp = Field(..., description="Update timestamp")

    @model_validator(mode="after")
    def _validate_glossary(self) -> TranslationContext:
        if self.glossary_id is None and self.glossary_terms:
            raise ValueError("glossary_terms require a primary glossary_id")
        return self

    @property
    def has_glossary(self) -> bool:
        """Whether any glossary terms were loaded."""
        return bool(self.glossary_terms)

    @property
    def variant_count(self) -> int:
        """Total number of variants across all glossary terms."""
        return sum(term.variant_count for term in self.glossary_terms)

    def same_request(self, other: TranslationContext) -> bool:
        """Compare two contexts ignoring identity and timestamps.

        Args:
            other: Context to compare against.

        Returns:
            bool: True when both contexts describe the same request.
        """
        ignored = {"id", "created_at", "updated_at"}
        return self.model_dump(exclude=ignored) == other.model_dump(exclude=ignored)
