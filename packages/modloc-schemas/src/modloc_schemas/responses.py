"""Error response envelope shared by engine error types."""

from __future__ import annotations

from pydantic import Field

from modloc_schemas.base import BaseSchema


class ErrorDetails(BaseSchema):
    """Detailed error context for responses."""

    field: str | None = Field(None, description="Field name if applicable")
    provided: str | None = Field(None, description="Provided value")
    valid_options: list[str] | None = Field(
        None, description="Valid options if applicable"
    )


class ErrorResponse(BaseSchema):
    """Error information surfaced to UI layers."""

    code: str = Field(..., min_length=1, description="Error code")
    message: str = Field(..., min_length=1, description="Error message")
    details: ErrorDetails | None = Field(None, description="Optional error details")
