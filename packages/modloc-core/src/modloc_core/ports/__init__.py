"""Ports: protocols and structured errors for engine collaborators."""

from modloc_core.ports.execution import (
    ExecutionError,
    ExecutionErrorCode,
    ExecutionErrorDetails,
    ExecutionErrorInfo,
    LedgerError,
    LedgerErrorCode,
    LedgerErrorDetails,
    LedgerErrorInfo,
    build_batch_failed_log,
    build_batch_log,
)
from modloc_core.ports.planning import (
    PlanningError,
    PlanningErrorCode,
    PlanningErrorDetails,
    PlanningErrorInfo,
    build_batch_created_log,
    build_planning_failed_log,
)
from modloc_core.ports.provider import (
    FATAL_ERROR_CODES,
    RETRYABLE_ERROR_CODES,
    UNIT_LOCAL_ERROR_CODES,
    ProviderError,
    ProviderErrorCode,
    ProviderErrorDetails,
    ProviderErrorInfo,
    TranslationMemoryProtocol,
    TranslationProviderProtocol,
)
from modloc_core.ports.repositories import (
    BatchRepositoryProtocol,
    BatchUnitRepositoryProtocol,
    GlossaryRepositoryProtocol,
    LanguageRepositoryProtocol,
    ProjectLanguageRepositoryProtocol,
    ProjectRepositoryProtocol,
    RepositoryError,
    RepositoryErrorCode,
    RepositoryErrorDetails,
    RepositoryErrorInfo,
    UnitRepositoryProtocol,
    not_found,
)
from modloc_core.ports.sinks import EventSinkProtocol, LogSinkProtocol

__all__ = [
    "FATAL_ERROR_CODES",
    "RETRYABLE_ERROR_CODES",
    "UNIT_LOCAL_ERROR_CODES",
    "BatchRepositoryProtocol",
    "BatchUnitRepositoryProtocol",
    "EventSinkProtocol",
    "ExecutionError",
    "ExecutionErrorCode",
    "ExecutionErrorDetails",
    "ExecutionErrorInfo",
    "GlossaryRepositoryProtocol",
    "LanguageRepositoryProtocol",
    "LedgerError",
    "LedgerErrorCode",
    "LedgerErrorDetails",
    "LedgerErrorInfo",
    "LogSinkProtocol",
    "PlanningError",
    "PlanningErrorCode",
    "PlanningErrorDetails",
    "PlanningErrorInfo",
    "ProjectLanguageRepositoryProtocol",
    "ProjectRepositoryProtocol",
    "ProviderError",
    "ProviderErrorCode",
    "ProviderErrorDetails",
    "ProviderErrorInfo",
    "RepositoryError",
    "RepositoryErrorCode",
    "RepositoryErrorDetails",
    "RepositoryErrorInfo",
    "TranslationMemoryProtocol",
    "TranslationProviderProtocol",
    "UnitRepositoryProtocol",
    "build_batch_created_log",
    "build_batch_failed_log",
    "build_batch_log",
    "build_planning_failed_log",
    "not_found",
]
