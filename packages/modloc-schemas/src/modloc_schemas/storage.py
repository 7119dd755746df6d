"""Records returned by the repository collaborators."""

from __future__ import annotations

from pydantic import Field

from modloc_schemas.base import BaseSchema
from modloc_schemas.primitives import (
    GlossaryId,
    OpaqueId,
    ProjectId,
    ProjectLanguageId,
)


class ProjectRecord(BaseSchema):
    """Project row needed for context assembly."""

    id: ProjectId = Field(..., description="Project identifier")
    name: str | None = Field(None, description="Display name")
    game_installation_id: OpaqueId | None = Field(
        None, description="Game installation the project belongs to"
    )


class ProjectLanguageRecord(BaseSchema):
    """Target language attached to a project."""

    id: ProjectLanguageId = Field(..., description="Project-language identifier")
    project_id: ProjectId = Field(..., description="Owning project")
    language_id: OpaqueId = Field(..., description="Language reference")


class LanguageRecord(BaseSchema):
    """Language row."""

    id: OpaqueId = Field(..., description="Language identifier")
    code: str = Field(..., min_length=2, description="Language code, any case")
    name: str | None = Field(None, description="Display name")


class GlossaryRecord(BaseSchema):
    """Glossary header row."""

    id: GlossaryId = Field(..., description="Glossary identifier")
    name: str = Field(..., min_length=1, description="Glossary name")
    game_installation_id: OpaqueId | None = Field(
        None, description="Owning game installation, None for universal"
    )
    target_language_code: str | None = Field(
        None, description="Restrict to one target language, None for any"
    )

    @property
    def is_universal(self) -> bool:
        """Whether the glossary applies to every game installation."""
        return self.game_installation_id is None
