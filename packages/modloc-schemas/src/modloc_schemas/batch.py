"""Translation batch and batch unit models with their transition tables."""

from __future__ import annotations

from typing import Any

from pydantic import Field, field_validator

from modloc_schemas.base import BaseSchema
from modloc_schemas.primitives import (
    MAX_BATCH_RETRIES,
    TERMINAL_BATCH_STATUSES,
    BatchId,
    BatchStatus,
    BatchUnitId,
    BatchUnitStatus,
    ProjectLanguageId,
    ProviderId,
    Timestamp,
    UnitId,
)

BATCH_TRANSITIONS: dict[BatchStatus, frozenset[BatchStatus]] = {
    BatchStatus.PENDING: frozenset({BatchStatus.TRANSLATING, BatchStatus.CANCELLED}),
    BatchStatus.TRANSLATING: frozenset({
        BatchStatus.PAUSED,
        BatchStatus.COMPLETED,
        BatchStatus.FAILED,
        BatchStatus.CANCELLED,
    }),
    BatchStatus.PAUSED: frozenset({
        BatchStatus.TRANSLATING,
        BatchStatus.FAILED,
        BatchStatus.CANCELLED,
    }),
    # A failed batch only re-enters translating through a retry.
    BatchStatus.FAILED: frozenset({BatchStatus.TRANSLATING}),
    BatchStatus.COMPLETED: frozenset(),
    BatchStatus.CANCELLED: frozenset(),
}

UNIT_TRANSITIONS: dict[BatchUnitStatus, frozenset[BatchUnitStatus]] = {
    BatchUnitStatus.PENDING: frozenset({
        BatchUnitStatus.COMPLETED,
        BatchUnitStatus.FAILED,
    }),
    BatchUnitStatus.COMPLETED: frozenset(),
    BatchUnitStatus.FAILED: frozenset(),
}


class InvalidTransitionError(ValueError):
    """Raised when a status change is not allowed by a transition table."""

    def __init__(self, entity: str, current: str, target: str) -> None:
        """Initialize the transition error.

        Args:
            entity: Entity kind (batch or unit).
            current: Current status value.
            target: Requested status value.
        """
        super().__init__(f"{entity} cannot move from {current} to {target}")
        self.entity = entity
        self.current = current
        self.target = target


class TranslationBatch(BaseSchema):
    """One execution grouping of units for a project-language."""

    id: BatchId = Field(..., description="Batch identifier")
    project_language_id: ProjectLanguageId = Field(
        ..., description="Owning project-language"
    )
    provider_id: ProviderId = Field(..., description="Translation provider id")
    batch_number: int = Field(
        ..., ge=1, description="Sequential number within the project-language"
    )
    units_count: int = Field(0, ge=0, description="Units assigned to the batch")
    units_completed: int = Field(0, ge=0, description="Units translated")
    units_failed: int = Field(0, ge=0, description="Units that failed")
    status: BatchStatus = Field(BatchStatus.PENDING, description="Batch status")
    retry_count: int = Field(0, ge=0, description="Batch-level retries performed")
    started_at: Timestamp | None = Field(None, description="Execution start time")
    completed_at: Timestamp | None = Field(None, description="Terminal time")
    error_message: str | None = Field(None, description="Batch-level error")
    error_fatal: bool = Field(
        False, description="Whether the last batch-level error is non-retryable"
    )

    @field_validator("status", mode="before")
    @classmethod
    def _coerce_status(cls, value: object) -> BatchStatus:
        if isinstance(value, str) and not isinstance(value, BatchStatus):
            return BatchStatus(value)
        return value  # type: ignore[return-value]

    @property
    def is_terminal(self) -> bool:
        """Whether the batch reached completed, failed or cancelled."""
        return self.status in TERMINAL_BATCH_STATUSES

    @property
    def is_active(self) -> bool:
        """Whether the batch is pending, translating or paused."""
        return not self.is_terminal

    @property
    def progress_percent(self) -> float:
        """Completed units as a percentage of the batch size."""
        if self.units_count == 0:
            return 0.0
        return self.units_completed / self.units_count * 100

    @property
    def remaining_units(self) -> int:
        """Units neither completed nor failed."""
        return max(self.units_count - self.units_completed - self.units_failed, 0)

    @property
    def has_failures(self) -> bool:
        """Whether any unit failed."""
        return self.units_failed > 0

    @property
    def can_retry(self) -> bool:
        """Whether a failed batch may run a follow-on execution."""
        return (
            self.status == BatchStatus.FAILED
            and not self.error_fatal
            and self.retry_count < MAX_BATCH_RETRIES
        )


class TranslationBatchUnit(BaseSchema):
    """One content unit's assignment within a batch."""

    id: BatchUnitId = Field(..., description="Batch unit row identifier")
    batch_id: BatchId = Field(..., description="Owning batch")
    unit_id: UnitId = Field(..., description="Translatable unit reference")
    processing_order: int = Field(..., ge=0, description="Dispatch position")
    status: BatchUnitStatus = Field(
        BatchUnitStatus.PENDING, description="Unit status"
    )
    error_message: str | None = Field(None, description="Unit-level error")

    @field_validator("status", mode="before")
    @classmethod
    def _coerce_status(cls, value: object) -> BatchUnitStatus:
        if isinstance(value, str) and not isinstance(value, BatchUnitStatus):
            return BatchUnitStatus(value)
        return value  # type: ignore[return-value]

    @property
    def is_terminal(self) -> bool:
        """Whether the unit reached completed or failed."""
        return self.status != BatchUnitStatus.PENDING


def transition_batch(
    batch: TranslationBatch, status: BatchStatus, **changes: Any
) -> TranslationBatch:
    """Return a copy of the batch moved to a new status.

    Args:
        batch: Current batch.
        status: Target status.
        **changes: Additional field updates applied with the transition.

    Returns:
        TranslationBatch: Updated batch.

    Raises:
        InvalidTransitionError: If the transition is not allowed.
    """
    current = BatchStatus(batch.status)
    if status not in BATCH_TRANSITIONS[current]:
        raise InvalidTransitionError("batch", current.value, status.value)
    return batch.model_copy(update={**changes, "status": status.value})


def transition_unit(
    unit: TranslationBatchUnit,
    status: BatchUnitStatus,
    error_message: str | None = None,
) -> TranslationBatchUnit:
    """Return a copy of the unit moved to a terminal status.

    Args:
        unit: Current unit row.
        status: Target status.
        error_message: Failure reason for failed units.

    Returns:
        TranslationBatchUnit: Updated unit row.

    Raises:
        InvalidTransitionError: If the transition is not allowed.
    """
    current = BatchUnitStatus(unit.status)
    if status not in UNIT_TRANSITIONS[current]:
        raise InvalidTransitionError("unit", current.value, status.value)
    return unit.model_copy(
        update={"status": status.value, "error_message": error_message}
    )


def reopen_unit(unit: TranslationBatchUnit) -> TranslationBatchUnit:
    """Reset a failed unit to pending for a batch retry.

    Args:
        unit: Failed unit row.

    Returns:
        TranslationBatchUnit: Pending copy of the unit.

    Raises:
        InvalidTransitionError: If the unit is not failed.
    """
    if unit.status != BatchUnitStatus.FAILED:
        raise InvalidTransitionError(
            "unit", str(unit.status), BatchUnitStatus.PENDING.value
        )
    return unit.model_copy(
        update={"status": BatchUnitStatus.PENDING.value, "error_message": None}
    )
