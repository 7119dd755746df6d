"""modloc-core: Translation batch orchestration engine."""

from modloc_core.config import ConfigError, load_engine_config, load_engine_config_async
from modloc_core.context_builder import ContextBuilder
from modloc_core.controller import BatchExecutionController
from modloc_core.event_bus import EventBus, EventSubscription
from modloc_core.ledger import BatchUnitLedger
from modloc_core.planner import BatchPlanner, PlannedBatch
from modloc_core.ports import (
    ExecutionError,
    ExecutionErrorCode,
    LedgerError,
    LedgerErrorCode,
    PlanningError,
    PlanningErrorCode,
    ProviderError,
    ProviderErrorCode,
    ProviderErrorInfo,
    RepositoryError,
    RepositoryErrorCode,
)

__version__ = "0.1.0"

__all__ = [
    "BatchExecutionController",
    "BatchPlanner",
    "BatchUnitLedger",
    "ConfigError",
    "ContextBuilder",
    "EventBus",
    "EventSubscription",
    "ExecutionError",
    "ExecutionErrorCode",
    "LedgerError",
    "LedgerErrorCode",
    "PlannedBatch",
    "PlanningError",
    "PlanningErrorCode",
    "ProviderError",
    "ProviderErrorCode",
    "ProviderErrorInfo",
    "RepositoryError",
    "RepositoryErrorCode",
    "load_engine_config",
    "load_engine_config_async",
]
