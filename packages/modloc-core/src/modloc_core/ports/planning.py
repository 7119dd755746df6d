"""Errors and log helpers for batch planning."""

from __future__ import annotations

from enum import StrEnum

from pydantic import Field

from modloc_schemas.base import BaseSchema
from modloc_schemas.events import PlanningLogEvent
from modloc_schemas.logs import LogEntry
from modloc_schemas.primitives import (
    BatchId,
    LogLevel,
    ProjectLanguageId,
    Timestamp,
)
from modloc_schemas.responses import ErrorDetails, ErrorResponse


class PlanningErrorCode(StrEnum):
    """Categorized error codes for batch planning failures."""

    NO_UNITS = "no_units"
    LOOKUP_FAILED = "lookup_failed"
    HEADER_INSERT_FAILED = "header_insert_failed"
    UNITS_INSERT_FAILED = "units_insert_failed"


class PlanningErrorDetails(BaseSchema):
    """Detailed planning error context."""

    project_language_id: ProjectLanguageId | None = Field(
        None, description="Project-language being planned"
    )
    batch_id: BatchId | None = Field(
        None, description="Header row left behind by a failed unit insert"
    )
    reason: str | None = Field(None, description="Additional error context")


class PlanningErrorInfo(BaseSchema):
    """Structured planning error data."""

    code: PlanningErrorCode = Field(..., description="Planning error code")
    message: str = Field(..., min_length=1, description="Error message")
    details: PlanningErrorDetails | None = Field(None, description="Error details")

    def to_error_response(self) -> ErrorResponse:
        """Convert planning error info to the standard error response schema.

        Returns:
            ErrorResponse: Standard response error payload.
        """
        details: ErrorDetails | None = None
        if self.details is not None and self.details.project_language_id is not None:
            details = ErrorDetails(
                field="project_language_id",
                provided=self.details.project_language_id,
                valid_options=None,
            )
        return ErrorResponse(code=str(self.code), message=self.message, details=details)


class PlanningError(Exception):
    """Planning error with structured details."""

    def __init__(self, info: PlanningErrorInfo) -> None:
        """Initialize the planning error.

        Args:
            info: Structured planning error information.
        """
        super().__init__(info.message)
        self.info = info


def build_batch_created_log(
    timestamp: Timestamp,
    project_language_id: ProjectLanguageId,
    batch_id: BatchId,
    batch_number: int,
    units_count: int,
) -> LogEntry:
    """Build a log entry for a newly planned batch.

    Args:
        timestamp: ISO-8601 timestamp.
        project_language_id: Owning project-language.
        batch_id: Created batch identifier.
        batch_number: Assigned batch number.
        units_count: Units assigned to the batch.

    Returns:
        LogEntry: Structured planning log entry.
    """
    return LogEntry(
        timestamp=timestamp,
        level=LogLevel.INFO,
        event=PlanningLogEvent.BATCH_CREATED,
        batch_id=batch_id,
        project_language_id=project_language_id,
        message=f"Batch {batch_number} created",
        data={"batch_number": batch_number, "units_count": units_count},
    )


def build_planning_failed_log(
    timestamp: Timestamp,
    project_language_id: ProjectLanguageId,
    info: PlanningErrorInfo,
) -> LogEntry:
    """Build a log entry for a planning failure.

    Args:
        timestamp: ISO-8601 timestamp.
        project_language_id: Project-language being planned.
        info: Planning error information.

    Returns:
        LogEntry: Structured planning failure log entry.
    """
    event = (
        PlanningLogEvent.NO_UNITS
        if info.code == PlanningErrorCode.NO_UNITS
        else PlanningLogEvent.FAILED
    )
    data: dict[str, str | None] = {"error_code": str(info.code)}
    if info.details is not None:
        if info.details.batch_id is not None:
            data["batch_id"] = str(info.details.batch_id)
        data["reason"] = info.details.reason
    return LogEntry(
        timestamp=timestamp,
        level=LogLevel.WARN
        if info.code == PlanningErrorCode.NO_UNITS
        else LogLevel.ERROR,
        event=event,
        batch_id=None,
        project_language_id=project_language_id,
        message=info.message,
        data=data,
    )
