"""Configuration schemas for the batch orchestration engine."""

from __future__ import annotations

from pydantic import Field, field_validator, model_validator

from modloc_schemas.base import BaseSchema
from modloc_schemas.primitives import (
    MAX_BATCH_RETRIES,
    MAX_PARALLEL_BATCH_LIMIT,
    LogSinkType,
)


class LogSinkConfig(BaseSchema):
    """Configuration for a single log sink."""

    type: LogSinkType = Field(..., description="Log sink type (console|file|noop)")

    @field_validator("type", mode="before")
    @classmethod
    def _coerce_type(cls, value: object) -> LogSinkType:
        if isinstance(value, LogSinkType):
            return value
        if isinstance(value, str):
            return LogSinkType(value)
        return value  # type: ignore[return-value]


class LoggingConfig(BaseSchema):
    """Logging configuration for engine runs."""

    sinks: list[LogSinkConfig] = Field(
        default_factory=lambda: [LogSinkConfig(type=LogSinkType.CONSOLE)],
        min_length=1,
        description="Log sinks to enable",
    )
    file_path: str | None = Field(
        None, min_length=1, description="JSONL log path for the file sink"
    )

    @model_validator(mode="after")
    def validate_sinks(self) -> LoggingConfig:
        """Ensure log sink types are unique and the file sink has a path.

        Returns:
            LoggingConfig: Validated logging configuration.

        Raises:
            ValueError: If sink types are duplicated or a file path is missing.
        """
        sink_types = [sink.type for sink in self.sinks]
        if len(set(sink_types)) != len(sink_types):
            raise ValueError("log sinks must not contain duplicates")
        if LogSinkType.FILE in sink_types and self.file_path is None:
            raise ValueError("file log sink requires logging.file_path")
        return self


class RetryConfig(BaseSchema):
    """Batch-level retry policy."""

    max_retries: int = Field(
        MAX_BATCH_RETRIES,
        ge=0,
        le=MAX_BATCH_RETRIES,
        description="Maximum follow-on executions per batch",
    )
    auto_retry: bool = Field(
        False, description="Retry retryable batch failures automatically"
    )
    backoff_s: float = Field(0.1, gt=0, description="Initial backoff in seconds")
    max_backoff_s: float = Field(
        10.0, gt=0, description="Maximum backoff delay in seconds"
    )

    @model_validator(mode="after")
    def validate_backoff(self) -> RetryConfig:
        """Ensure the backoff cap is not below the initial delay.

        Returns:
            RetryConfig: Validated retry configuration.

        Raises:
            ValueError: If max_backoff_s is lower than backoff_s.
        """
        if self.max_backoff_s < self.backoff_s:
            raise ValueError("max_backoff_s must be >= backoff_s")
        return self


class ConcurrencyConfig(BaseSchema):
    """Concurrency settings for parallel batch execution."""

    default_parallel_batches: int = Field(
        1,
        ge=1,
        le=MAX_PARALLEL_BATCH_LIMIT,
        description="Parallel batches when a request does not say",
    )
    max_parallel_batches_limit: int = Field(
        MAX_PARALLEL_BATCH_LIMIT,
        ge=1,
        le=MAX_PARALLEL_BATCH_LIMIT,
        description="Upper bound applied to requested parallelism",
    )


class ChunkingConfig(BaseSchema):
    """Provider request sizing."""

    default_units_per_batch: int = Field(
        0, ge=0, description="Units per request when a request does not say"
    )
    max_chunk_size: int = Field(
        50, ge=1, description="Hard cap on units per provider request"
    )
    max_chars_per_request: int | None = Field(
        None, ge=1, description="Character budget per provider request"
    )
    payload_safety_margin: float = Field(
        0.7, gt=0, le=1, description="Share of the budget usable by one request"
    )


class PlanningConfig(BaseSchema):
    """Batch partitioning settings."""

    max_units_per_batch: int | None = Field(
        None, ge=1, description="Split selections into batches of this size"
    )


class EngineConfig(BaseSchema):
    """Top-level engine configuration."""

    concurrency: ConcurrencyConfig = Field(
        default_factory=ConcurrencyConfig, description="Concurrency settings"
    )
    chunking: ChunkingConfig = Field(
        default_factory=ChunkingConfig, description="Request sizing"
    )
    retry: RetryConfig = Field(
        default_factory=RetryConfig, description="Retry policy"
    )
    planning: PlanningConfig = Field(
        default_factory=PlanningConfig, description="Planning settings"
    )
    logging: LoggingConfig = Field(
        default_factory=LoggingConfig, description="Logging configuration"
    )

    @model_validator(mode="after")
    def validate_parallelism(self) -> EngineConfig:
        """Ensure the default parallelism fits under the configured limit.

        Returns:
            EngineConfig: Validated engine configuration.

        Raises:
            ValueError: If the default exceeds the limit.
        """
        if (
            self.concurrency.default_parallel_batches
            > self.concurrency.max_parallel_batches_limit
        ):
            raise ValueError(
                "default_parallel_batches must not exceed max_parallel_batches_limit"
            )
        return self
