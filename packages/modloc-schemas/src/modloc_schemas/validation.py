"""Validation entry points for payloads and event streams."""

from __future__ import annotations

from collections.abc import Sequence

from modloc_schemas.config import EngineConfig
from modloc_schemas.events import (
    TERMINAL_EVENT_KINDS,
    BatchEvent,
    BatchEventKind,
    BatchProgress,
    BatchStarted,
)
from modloc_schemas.primitives import JsonValue


def validate_engine_config(payload: dict[str, JsonValue]) -> EngineConfig:
    """Validate engine configuration payload.

    Args:
        payload: Raw engine configuration payload.

    Returns:
        EngineConfig: Validated engine configuration.
    """
    return EngineConfig.model_validate(payload, strict=False)


def validate_progress_monotonic(
    previous: BatchProgress,
    current: BatchProgress,
) -> None:
    """Validate that progress never regresses between two updates.

    Args:
        previous: Earlier progress event.
        current: Later progress event for the same batch.

    Raises:
        ValueError: If the events disagree on batch or progress regressed.
    """
    if previous.batch_id != current.batch_id:
        raise ValueError("progress events belong to different batches")
    previous_done = previous.completed_units + previous.failed_units
    current_done = current.completed_units + current.failed_units
    if current_done < previous_done:
        raise ValueError("batch progress regressed")
    if current.remaining_units < 0:
        raise ValueError("remaining_units must not be negative")


def validate_event_sequence(events: Sequence[BatchEvent]) -> None:
    """Validate one execution's event stream against the batch state machine.

    The sequence must open with a single started event, carry monotonic
    progress, keep paused/resumed events paired and alternating, and end with
    exactly one terminal event.

    Args:
        events: Events of a single batch execution in emission order.

    Raises:
        ValueError: If the sequence violates the lifecycle ordering.
    """
    if not events:
        raise ValueError("event sequence is empty")
    if not isinstance(events[0], BatchStarted):
        raise ValueError("event sequence must start with batch_started")
    batch_id = events[0].batch_id
    last_progress: BatchProgress | None = None
    paused = False
    for index, event in enumerate(events):
        if event.batch_id != batch_id:
            raise ValueError("event sequence mixes batches")
        if index > 0 and event.kind == BatchEventKind.STARTED:
            raise ValueError("batch_started emitted more than once")
        if event.kind in TERMINAL_EVENT_KINDS and index != len(events) - 1:
            raise ValueError("terminal event must be last")
        if isinstance(event, BatchProgress):
            if last_progress is not None:
                validate_progress_monotonic(last_progress, event)
            last_progress = event
        elif event.kind == BatchEventKind.PAUSED:
            if paused:
                raise ValueError("batch_paused emitted twice without resume")
            paused = True
        elif event.kind == BatchEventKind.RESUMED:
            if not paused:
                raise ValueError("batch_resumed emitted without pause")
            paused = False
    if events[-1].kind not in TERMINAL_EVENT_KINDS:
        raise ValueError("event sequence must end with a terminal event")
