"""Primitive types and enums shared across modloc schemas."""

from __future__ import annotations

from datetime import UTC, datetime
from enum import StrEnum
from typing import Annotated
from uuid import UUID

from pydantic import AfterValidator, Field

ISO_8601_PATTERN = (
    r"^\d{4}-\d{2}-\d{2}T"
    r"\d{2}:\d{2}:\d{2}"
    r"(?:\.\d+)?"
    r"(?:Z|[+-]\d{2}:\d{2})$"
)
LANGUAGE_CODE_PATTERN = r"^[A-Z]{2,3}(?:-[A-Z0-9]{2,4})?$"
EVENT_NAME_PATTERN = r"^[a-z][a-z0-9_]*$"

SOURCE_LANGUAGE = "EN"
DEFAULT_TARGET_LANGUAGE = "EN"
MAX_BATCH_RETRIES = 3
MAX_PARALLEL_BATCH_LIMIT = 20


def _validate_uuid7(value: UUID) -> UUID:
    """Ensure UUID values are version 7.

    Args:
        value: Parsed UUID value.

    Returns:
        UUID: The validated UUIDv7 value.

    Raises:
        ValueError: If the UUID is not version 7.
    """
    if value.version != 7:
        raise ValueError("UUID must be version 7")
    return value


type Uuid7 = Annotated[UUID, AfterValidator(_validate_uuid7)]
type OpaqueId = Annotated[str, Field(min_length=1)]

type BatchId = Uuid7
type BatchUnitId = Uuid7
type ContextId = Uuid7
type EventId = Uuid7
type ProjectId = OpaqueId
type ProjectLanguageId = OpaqueId
type UnitId = OpaqueId
type ProviderId = OpaqueId
type ModelId = OpaqueId
type GlossaryId = OpaqueId
type Timestamp = Annotated[str, Field(pattern=ISO_8601_PATTERN)]
type LanguageCode = Annotated[str, Field(pattern=LANGUAGE_CODE_PATTERN)]
type EventName = Annotated[str, Field(pattern=EVENT_NAME_PATTERN)]

type JsonPrimitive = str | int | float | bool | None
type JsonValue = JsonPrimitive | list["JsonValue"] | dict[str, "JsonValue"]


class BatchStatus(StrEnum):
    """Translation batch status values."""

    PENDING = "pending"
    TRANSLATING = "translating"
    PAUSED = "paused"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


TERMINAL_BATCH_STATUSES = frozenset({
    BatchStatus.COMPLETED,
    BatchStatus.FAILED,
    BatchStatus.CANCELLED,
})


class BatchUnitStatus(StrEnum):
    """Per-unit status values inside a batch."""

    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class LogLevel(StrEnum):
    """Log level values for JSONL logs."""

    DEBUG = "debug"
    INFO = "info"
    WARN = "warn"
    ERROR = "error"


class LogSinkType(StrEnum):
    """Supported log sink types."""

    CONSOLE = "console"
    FILE = "file"
    NOOP = "noop"


def normalize_language_code(value: str) -> str:
    """Normalize a language code to the upper-cased form providers expect.

    Args:
        value: Raw language code such as ``de`` or ``pt_br``.

    Returns:
        str: Upper-cased code with ``-`` as the region separator.
    """
    return value.strip().replace("_", "-").upper()


def utc_timestamp() -> str:
    """Return the current UTC time as an ISO-8601 string with a Z suffix.

    Returns:
        str: Timestamp string.
    """
    value = datetime.now(tz=UTC).isoformat()
    return value.replace("+00:00", "Z")
