"""JSONL log entry schema for engine events."""

from __future__ import annotations

from pydantic import Field

from modloc_schemas.base import BaseSchema
from modloc_schemas.primitives import (
    BatchId,
    EventName,
    JsonValue,
    LogLevel,
    ProjectLanguageId,
    Timestamp,
)


class LogEntry(BaseSchema):
    """Single log line in JSONL format."""

    timestamp: Timestamp = Field(
        ..., description="ISO-8601 timestamp for the log entry"
    )
    level: LogLevel = Field(..., description="Log level")
    event: EventName = Field(..., description="Event name")
    batch_id: BatchId | None = Field(None, description="Batch if applicable")
    project_language_id: ProjectLanguageId | None = Field(
        None, description="Project-language if applicable"
    )
    message: str = Field(..., min_length=1, description="Log message")
    data: dict[str, JsonValue] | None = Field(None, description="Structured event data")
