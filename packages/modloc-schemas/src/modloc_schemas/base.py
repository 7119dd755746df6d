"""Base schema configuration for modloc Pydantic models."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict


class BaseSchema(BaseModel):
    """Base schema with strict validation defaults.

    Note: extra="ignore" lets repository adapters hand back rows that carry
    storage-only columns without failing validation. Required fields are still
    validated.
    """

    model_config = ConfigDict(
        extra="ignore",
        validate_assignment=True,
        validate_default=True,
        str_strip_whitespace=True,
        use_enum_values=True,
        strict=True,
    )


class FrozenSchema(BaseSchema):
    """Immutable schema variant for value objects and events."""

    model_config = ConfigDict(frozen=True)
