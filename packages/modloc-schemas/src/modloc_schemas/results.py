"""Execution results and in-flight progress snapshots for batches."""

from __future__ import annotations

from pydantic import Field, field_validator

from modloc_schemas.base import BaseSchema
from modloc_schemas.primitives import (
    BatchId,
    BatchStatus,
    ProjectLanguageId,
    Timestamp,
)


def _as_batch_status(value: object) -> BatchStatus:
    if isinstance(value, str) and not isinstance(value, BatchStatus):
        return BatchStatus(value)
    return value  # type: ignore[return-value]


class BatchProgressSnapshot(BaseSchema):
    """Running counters for an active batch."""

    batch_id: BatchId = Field(..., description="Batch identifier")
    project_language_id: ProjectLanguageId = Field(
        ..., description="Owning project-language"
    )
    status: BatchStatus = Field(..., description="Current batch status")
    total_units: int = Field(..., ge=0, description="Units in the batch")
    completed_units: int = Field(..., ge=0, description="Units translated")
    failed_units: int = Field(..., ge=0, description="Units that failed")
    updated_at: Timestamp = Field(..., description="Last counter update")

    @field_validator("status", mode="before")
    @classmethod
    def _coerce_status(cls, value: object) -> BatchStatus:
        return _as_batch_status(value)

    @property
    def progress_percent(self) -> float:
        """Completed units as a percentage of the total."""
        if self.total_units == 0:
            return 0.0
        return self.completed_units / self.total_units * 100

    @property
    def remaining_units(self) -> int:
        """Units neither completed nor failed."""
        return self.total_units - self.completed_units - self.failed_units


class BatchRunResult(BaseSchema):
    """Outcome of one batch execution."""

    batch_id: BatchId = Field(..., description="Batch identifier")
    project_language_id: ProjectLanguageId = Field(
        ..., description="Owning project-language"
    )
    batch_number: int = Field(..., ge=1, description="Batch number")
    status: BatchStatus = Field(..., description="Terminal batch status")
    total_units: int = Field(..., ge=0, description="Units in the batch")
    completed_units: int = Field(..., ge=0, description="Units translated")
    failed_units: int = Field(..., ge=0, description="Units that failed")
    retry_count: int = Field(..., ge=0, description="Retries performed")
    error_message: str | None = Field(None, description="Batch-level error")
    can_retry: bool = Field(False, description="Whether a retry is allowed")

    @field_validator("status", mode="before")
    @classmethod
    def _coerce_status(cls, value: object) -> BatchStatus:
        return _as_batch_status(value)

    @property
    def has_failures(self) -> bool:
        """Whether any unit failed."""
        return self.failed_units > 0
