"""Errors and log helpers for the unit ledger and execution controller."""

from __future__ import annotations

from enum import StrEnum

from pydantic import Field

from modloc_schemas.base import BaseSchema
from modloc_schemas.batch import TranslationBatch
from modloc_schemas.events import BatchLogEvent
from modloc_schemas.logs import LogEntry
from modloc_schemas.primitives import (
    BatchId,
    BatchStatus,
    JsonValue,
    LogLevel,
    Timestamp,
)
from modloc_schemas.responses import ErrorDetails, ErrorResponse


class LedgerErrorCode(StrEnum):
    """Categorized error codes for ledger operations."""

    NOT_FOUND = "not_found"
    INVALID_TRANSITION = "invalid_transition"
    INCOMPLETE_BATCH = "incomplete_batch"


class LedgerErrorDetails(BaseSchema):
    """Detailed ledger error context."""

    batch_id: BatchId | None = Field(None, description="Batch identifier")
    unit_row_id: str | None = Field(None, description="Batch unit row identifier")
    reason: str | None = Field(None, description="Additional error context")


class LedgerErrorInfo(BaseSchema):
    """Structured ledger error data."""

    code: LedgerErrorCode = Field(..., description="Ledger error code")
    message: str = Field(..., min_length=1, description="Error message")
    details: LedgerErrorDetails | None = Field(None, description="Error details")

    def to_error_response(self) -> ErrorResponse:
        """Convert ledger error info to the standard error response schema.

        Returns:
            ErrorResponse: Standard response error payload.
        """
        details: ErrorDetails | None = None
        if self.details is not None and self.details.batch_id is not None:
            details = ErrorDetails(
                field="batch_id",
                provided=str(self.details.batch_id),
                valid_options=None,
            )
        return ErrorResponse(code=str(self.code), message=self.message, details=details)


class LedgerError(Exception):
    """Ledger error with structured details."""

    def __init__(self, info: LedgerErrorInfo) -> None:
        """Initialize the ledger error.

        Args:
            info: Structured ledger error information.
        """
        super().__init__(info.message)
        self.info = info


class ExecutionErrorCode(StrEnum):
    """Categorized error codes for caller errors raised by the controller."""

    BATCH_NOT_FOUND = "batch_not_found"
    INVALID_STATE = "invalid_state"
    RETRY_EXHAUSTED = "retry_exhausted"
    NOT_RETRYABLE = "not_retryable"
    INCOMPLETE_BATCH = "incomplete_batch"
    CONTEXT_MISMATCH = "context_mismatch"


class ExecutionErrorDetails(BaseSchema):
    """Detailed execution error context."""

    batch_id: BatchId | None = Field(None, description="Batch identifier")
    status: BatchStatus | None = Field(None, description="Batch status observed")
    valid_statuses: list[BatchStatus] | None = Field(
        None, description="Statuses the operation accepts"
    )
    reason: str | None = Field(None, description="Additional error context")


class ExecutionErrorInfo(BaseSchema):
    """Structured execution error data."""

    code: ExecutionErrorCode = Field(..., description="Execution error code")
    message: str = Field(..., min_length=1, description="Error message")
    details: ExecutionErrorDetails | None = Field(None, description="Error details")

    def to_error_response(self) -> ErrorResponse:
        """Convert execution error info to the standard error response schema.

        Returns:
            ErrorResponse: Standard response error payload.
        """
        details: ErrorDetails | None = None
        if self.details is not None and self.details.status is not None:
            valid_options = None
            if self.details.valid_statuses is not None:
                valid_options = [str(status) for status in self.details.valid_statuses]
            details = ErrorDetails(
                field="status",
                provided=str(self.details.status),
                valid_options=valid_options,
            )
        return ErrorResponse(code=str(self.code), message=self.message, details=details)


class ExecutionError(Exception):
    """Execution error with structured details."""

    def __init__(self, info: ExecutionErrorInfo) -> None:
        """Initialize the execution error.

        Args:
            info: Structured execution error information.
        """
        super().__init__(info.message)
        self.info = info


def build_batch_log(
    timestamp: Timestamp,
    batch: TranslationBatch,
    event: BatchLogEvent,
    message: str,
    *,
    level: LogLevel = LogLevel.INFO,
    data: dict[str, JsonValue] | None = None,
) -> LogEntry:
    """Build a log entry correlated to a batch.

    Args:
        timestamp: ISO-8601 timestamp.
        batch: Batch the entry describes.
        event: Batch log event name.
        message: Log message.
        level: Log level.
        data: Structured event data.

    Returns:
        LogEntry: Structured batch log entry.
    """
    payload: dict[str, JsonValue] = {
        "batch_number": batch.batch_number,
        "status": str(batch.status),
    }
    if data:
        payload.update(data)
    return LogEntry(
        timestamp=timestamp,
        level=level,
        event=event,
        batch_id=batch.id,
        project_language_id=batch.project_language_id,
        message=message,
        data=payload,
    )


def build_batch_failed_log(
    timestamp: Timestamp,
    batch: TranslationBatch,
    error_code: str,
    *,
    fatal: bool,
) -> LogEntry:
    """Build a log entry for a batch-level failure.

    Args:
        timestamp: ISO-8601 timestamp.
        batch: Failed batch.
        error_code: Error code describing the failure.
        fatal: Whether the failure cannot be retried.

    Returns:
        LogEntry: Structured batch failure log entry.
    """
    return build_batch_log(
        timestamp,
        batch,
        BatchLogEvent.FAILED,
        batch.error_message or "Batch failed",
        level=LogLevel.ERROR,
        data={
            "error_code": error_code,
            "fatal": fatal,
            "retry_count": batch.retry_count,
            "units_completed": batch.units_completed,
            "units_failed": batch.units_failed,
        },
    )
