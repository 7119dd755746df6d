"""modloc-schemas: Data models for the translation batch engine."""

from modloc_schemas.base import BaseSchema, FrozenSchema
from modloc_schemas.batch import (
    BATCH_TRANSITIONS,
    UNIT_TRANSITIONS,
    InvalidTransitionError,
    TranslationBatch,
    TranslationBatchUnit,
    reopen_unit,
    transition_batch,
    transition_unit,
)
from modloc_schemas.config import (
    ChunkingConfig,
    ConcurrencyConfig,
    EngineConfig,
    LoggingConfig,
    LogSinkConfig,
    PlanningConfig,
    RetryConfig,
)
from modloc_schemas.context import (
    GlossaryTerm,
    GlossaryTermVariant,
    TranslationContext,
)
from modloc_schemas.events import (
    BATCH_EVENT_ADAPTER,
    TERMINAL_EVENT_KINDS,
    BatchCancelled,
    BatchCompleted,
    BatchEvent,
    BatchEventKind,
    BatchFailed,
    BatchLogEvent,
    BatchPaused,
    BatchProgress,
    BatchResumed,
    BatchStarted,
    ContextLogEvent,
    PlanningLogEvent,
    parse_batch_event,
)
from modloc_schemas.logs import LogEntry
from modloc_schemas.primitives import (
    DEFAULT_TARGET_LANGUAGE,
    MAX_BATCH_RETRIES,
    MAX_PARALLEL_BATCH_LIMIT,
    SOURCE_LANGUAGE,
    TERMINAL_BATCH_STATUSES,
    BatchStatus,
    BatchUnitStatus,
    LogLevel,
    LogSinkType,
    normalize_language_code,
    utc_timestamp,
)
from modloc_schemas.responses import ErrorDetails, ErrorResponse
from modloc_schemas.results import BatchProgressSnapshot, BatchRunResult
from modloc_schemas.storage import (
    GlossaryRecord,
    LanguageRecord,
    ProjectLanguageRecord,
    ProjectRecord,
)
from modloc_schemas.translation import (
    ProviderTranslation,
    SourceUnit,
    UnitTranslation,
)
from modloc_schemas.validation import (
    validate_engine_config,
    validate_event_sequence,
    validate_progress_monotonic,
)

__version__ = "0.1.0"

__all__ = [
    "BATCH_EVENT_ADAPTER",
    "BATCH_TRANSITIONS",
    "DEFAULT_TARGET_LANGUAGE",
    "MAX_BATCH_RETRIES",
    "MAX_PARALLEL_BATCH_LIMIT",
    "SOURCE_LANGUAGE",
    "TERMINAL_BATCH_STATUSES",
    "TERMINAL_EVENT_KINDS",
    "UNIT_TRANSITIONS",
    "BaseSchema",
    "BatchCancelled",
    "BatchCompleted",
    "BatchEvent",
    "BatchEventKind",
    "BatchFailed",
    "BatchLogEvent",
    "BatchPaused",
    "BatchProgress",
    "BatchProgressSnapshot",
    "BatchResumed",
    "BatchRunResult",
    "BatchStarted",
    "BatchStatus",
    "BatchUnitStatus",
    "ChunkingConfig",
    "ConcurrencyConfig",
    "ContextLogEvent",
    "EngineConfig",
    "ErrorDetails",
    "ErrorResponse",
    "FrozenSchema",
    "GlossaryRecord",
    "GlossaryTerm",
    "GlossaryTermVariant",
    "InvalidTransitionError",
    "LanguageRecord",
    "LogEntry",
    "LogLevel",
    "LogSinkConfig",
    "LogSinkType",
    "LoggingConfig",
    "PlanningConfig",
    "PlanningLogEvent",
    "ProjectLanguageRecord",
    "ProjectRecord",
    "ProviderTranslation",
    "RetryConfig",
    "SourceUnit",
    "TranslationBatch",
    "TranslationBatchUnit",
    "TranslationContext",
    "UnitTranslation",
    "normalize_language_code",
    "parse_batch_event",
    "reopen_unit",
    "transition_batch",
    "transition_unit",
    "utc_timestamp",
    "validate_engine_config",
    "validate_event_sequence",
    "validate_progress_monotonic",
]
