"""Batch lifecycle events and log event names."""

from __future__ import annotations

from enum import StrEnum
from typing import Annotated, Literal
from uuid import uuid7

from pydantic import Field, TypeAdapter, computed_field

from modloc_schemas.base import FrozenSchema
from modloc_schemas.primitives import (
    MAX_BATCH_RETRIES,
    BatchId,
    EventId,
    ProjectLanguageId,
    ProviderId,
    Timestamp,
    utc_timestamp,
)


class BatchEventKind(StrEnum):
    """Discriminator values for batch lifecycle events."""

    STARTED = "batch_started"
    PROGRESS = "batch_progress"
    COMPLETED = "batch_completed"
    FAILED = "batch_failed"
    PAUSED = "batch_paused"
    RESUMED = "batch_resumed"
    CANCELLED = "batch_cancelled"


TERMINAL_EVENT_KINDS = frozenset({
    BatchEventKind.COMPLETED,
    BatchEventKind.FAILED,
    BatchEventKind.CANCELLED,
})


class BatchLogEvent(StrEnum):
    """Log event names emitted by the execution controller."""

    STARTED = "batch_started"
    CHUNK_DISPATCHED = "batch_chunk_dispatched"
    UNIT_FAILED = "batch_unit_failed"
    TM_HIT = "batch_tm_hit"
    TM_LOOKUP_FAILED = "batch_tm_lookup_failed"
    PAUSED = "batch_paused"
    RESUMED = "batch_resumed"
    CANCELLED = "batch_cancelled"
    COMPLETED = "batch_completed"
    FAILED = "batch_failed"
    RETRY_SCHEDULED = "batch_retry_scheduled"
    PERSIST_FAILED = "batch_persist_failed"


class PlanningLogEvent(StrEnum):
    """Log event names emitted by the batch planner."""

    BATCH_CREATED = "planning_batch_created"
    NO_UNITS = "planning_no_units"
    FAILED = "planning_failed"


class ContextLogEvent(StrEnum):
    """Log event names emitted by the context builder."""

    BUILT = "context_built"
    GLOSSARY_LOADED = "context_glossary_loaded"
    LOOKUP_FAILED = "context_lookup_failed"
    FALLBACK = "context_fallback"


class _BatchEventBase(FrozenSchema):
    """Fields shared by every batch lifecycle event."""

    event_id: EventId = Field(
        default_factory=uuid7, description="Unique event identifier"
    )
    timestamp: Timestamp = Field(
        default_factory=utc_timestamp, description="ISO-8601 emission time"
    )
    batch_id: BatchId = Field(..., description="Correlated batch")


class BatchStarted(_BatchEventBase):
    """Emitted once when a batch execution begins."""

    kind: Literal["batch_started"] = "batch_started"
    project_language_id: ProjectLanguageId = Field(
        ..., description="Owning project-language"
    )
    provider_id: ProviderId = Field(..., description="Translation provider id")
    batch_number: int = Field(..., ge=1, description="Batch number")
    total_units: int = Field(..., ge=0, description="Units in the batch")


class BatchProgress(_BatchEventBase):
    """Emitted after each chunk resolves."""

    kind: Literal["batch_progress"] = "batch_progress"
    total_units: int = Field(..., ge=0, description="Units in the batch")
    completed_units: int = Field(..., ge=0, description="Units translated")
    failed_units: int = Field(..., ge=0, description="Units that failed")

    @computed_field  # type: ignore[prop-decorator]
    @property
    def progress_percent(self) -> float:
        """Completed units as a percentage of the total."""
        if self.total_units == 0:
            return 0.0
        return self.completed_units / self.total_units * 100

    @computed_field  # type: ignore[prop-decorator]
    @property
    def remaining_units(self) -> int:
        """Units neither completed nor failed."""
        return self.total_units - self.completed_units - self.failed_units


class BatchCompleted(_BatchEventBase):
    """Emitted when every unit reached a terminal status."""

    kind: Literal["batch_completed"] = "batch_completed"
    project_language_id: ProjectLanguageId = Field(
        ..., description="Owning project-language"
    )
    batch_number: int = Field(..., ge=1, description="Batch number")
    total_units: int = Field(..., ge=0, description="Units in the batch")
    completed_units: int = Field(..., ge=0, description="Units translated")
    failed_units: int = Field(..., ge=0, description="Units that failed")
    processing_duration_s: float = Field(
        ..., ge=0, description="Wall time of the execution in seconds"
    )

    @computed_field  # type: ignore[prop-decorator]
    @property
    def success_rate(self) -> float:
        """Completed units as a percentage of the total."""
        if self.total_units == 0:
            return 0.0
        return self.completed_units / self.total_units * 100

    @computed_field  # type: ignore[prop-decorator]
    @property
    def has_failures(self) -> bool:
        """Whether any unit failed."""
        return self.failed_units > 0


class BatchFailed(_BatchEventBase):
    """Emitted when a batch-level error ends an execution."""

    kind: Literal["batch_failed"] = "batch_failed"
    project_language_id: ProjectLanguageId = Field(
        ..., description="Owning project-language"
    )
    batch_number: int = Field(..., ge=1, description="Batch number")
    error_message: str = Field(..., min_length=1, description="Failure reason")
    completed_before_failure: int = Field(
        ..., ge=0, description="Units translated before the failure"
    )
    total_units: int = Field(..., ge=0, description="Units in the batch")
    retry_count: int = Field(..., ge=0, description="Retries performed so far")
    fatal: bool = Field(False, description="Whether the error cannot be retried")

    @computed_field  # type: ignore[prop-decorator]
    @property
    def can_retry(self) -> bool:
        """Whether another follow-on execution is allowed."""
        return not self.fatal and self.retry_count < MAX_BATCH_RETRIES


class BatchPaused(_BatchEventBase):
    """Emitted when a running batch is paused."""

    kind: Literal["batch_paused"] = "batch_paused"
    project_language_id: ProjectLanguageId = Field(
        ..., description="Owning project-language"
    )
    completed_units: int = Field(..., ge=0, description="Units translated")
    total_units: int = Field(..., ge=0, description="Units in the batch")


class BatchResumed(_BatchEventBase):
    """Emitted when a paused batch resumes."""

    kind: Literal["batch_resumed"] = "batch_resumed"
    project_language_id: ProjectLanguageId = Field(
        ..., description="Owning project-language"
    )
    completed_units: int = Field(..., ge=0, description="Units translated")
    total_units: int = Field(..., ge=0, description="Units in the batch")


class BatchCancelled(_BatchEventBase):
    """Emitted once when cancellation ends a batch."""

    kind: Literal["batch_cancelled"] = "batch_cancelled"
    project_language_id: ProjectLanguageId = Field(
        ..., description="Owning project-language"
    )
    completed_units: int = Field(..., ge=0, description="Units translated")
    total_units: int = Field(..., ge=0, description="Units in the batch")
    reason: str = Field(..., min_length=1, description="Cancellation reason")


BatchEvent = Annotated[
    BatchStarted
    | BatchProgress
    | BatchCompleted
    | BatchFailed
    | BatchPaused
    | BatchResumed
    | BatchCancelled,
    Field(discriminator="kind"),
]

BATCH_EVENT_ADAPTER: TypeAdapter[BatchEvent] = TypeAdapter(BatchEvent)


def parse_batch_event(payload: str | bytes) -> BatchEvent:
    """Parse a JSON-encoded batch event into its concrete model.

    Args:
        payload: JSON document produced by ``model_dump_json``.

    Returns:
        BatchEvent: Concrete event model selected by ``kind``.
    """
    return BATCH_EVENT_ADAPTER.validate_json(payload)
