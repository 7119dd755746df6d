"""Unit tests for the batch execution controller."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Sequence
from uuid import uuid7

import pytest

from modloc_core.controller import BatchExecutionController
from modloc_core.event_bus import EventBus
from modloc_core.ledger import BatchUnitLedger
from modloc_core.planner import BatchPlanner, PlannedBatch
from modloc_core.ports.execution import ExecutionError, ExecutionErrorCode
from modloc_core.ports.provider import ProviderErrorCode
from modloc_io.memory import (
    InMemoryBatchRepository,
    InMemoryBatchUnitRepository,
    InMemoryTranslationMemory,
    InMemoryUnitRepository,
    ScriptedTranslationProvider,
)
from modloc_io.storage import InMemoryEventSink, InMemoryLogSink
from modloc_schemas.batch import TranslationBatch, TranslationBatchUnit
from modloc_schemas.config import ChunkingConfig, EngineConfig, RetryConfig
from modloc_schemas.context import GlossaryTerm, TranslationContext
from modloc_schemas.events import (
    BatchCancelled,
    BatchCompleted,
    BatchEvent,
    BatchFailed,
    BatchLogEvent,
    BatchProgress,
)
from modloc_schemas.primitives import (
    BatchId,
    BatchStatus,
    BatchUnitStatus,
    LanguageCode,
    LogLevel,
)
from modloc_schemas.results import BatchProgressSnapshot
from modloc_schemas.translation import ProviderTranslation, SourceUnit
from modloc_schemas.validation import validate_event_sequence
from tests.helpers.engine import (
    FIXED_TIMESTAMP,
    PROJECT_LANGUAGE_ID,
    PROVIDER_ID,
    EngineHarness,
    build_harness,
    fixed_clock,
    kinds,
    make_context,
    provider_error,
    source_units,
)


class _YieldingProvider(ScriptedTranslationProvider):
    """Scripted provider that yields to the loop before answering."""

    async def translate(
        self, context: TranslationContext, units: Sequence[SourceUnit]
    ) -> list[ProviderTranslation]:
        await asyncio.sleep(0)
        return await super().translate(context, units)


class _BrokenMemory(InMemoryTranslationMemory):
    async def lookup(
        self,
        source_text: str,
        source_language: LanguageCode,
        target_language: LanguageCode,
    ) -> str | None:
        raise RuntimeError("memory offline")


class _FlakyBatchRepository(InMemoryBatchRepository):
    """Batch repository whose updates fail once a budget is spent."""

    def __init__(self) -> None:
        super().__init__()
        self.allowed_updates: int | None = None

    async def update(self, batch: TranslationBatch) -> None:
        if self.allowed_updates is not None:
            if self.allowed_updates <= 0:
                raise RuntimeError("write failed")
            self.allowed_updates -= 1
        await super().update(batch)


class _VanishingBatchRepository(InMemoryBatchRepository):
    """Batch repository that stops finding a batch after some reads."""

    def __init__(self) -> None:
        super().__init__()
        self.visible_reads: dict[BatchId, int] = {}

    async def get(self, batch_id: BatchId) -> TranslationBatch | None:
        remaining = self.visible_reads.get(batch_id)
        if remaining is not None:
            if remaining <= 0:
                return None
            self.visible_reads[batch_id] = remaining - 1
        return await super().get(batch_id)


class _GatedBatchUnitRepository(InMemoryBatchUnitRepository):
    """Batch unit repository whose reads wait on a gate once it is armed."""

    def __init__(self) -> None:
        super().__init__()
        self.gate: asyncio.Event | None = None
        self.entered = asyncio.Event()

    async def get_by_batch(self, batch_id: BatchId) -> list[TranslationBatchUnit]:
        if self.gate is not None and not self.gate.is_set():
            self.entered.set()
            await self.gate.wait()
        return await super().get_by_batch(batch_id)


class _HookedProvider(_YieldingProvider):
    """Yielding provider that runs a hook with the request context first."""

    def __init__(
        self, on_translate: Callable[[TranslationContext], Awaitable[None]]
    ) -> None:
        super().__init__()
        self._on_translate = on_translate

    async def translate(
        self, context: TranslationContext, units: Sequence[SourceUnit]
    ) -> list[ProviderTranslation]:
        await self._on_translate(context)
        return await super().translate(context, units)


async def _plan_one(harness: EngineHarness, units: int | None = None) -> PlannedBatch:
    candidates = None if units is None else [f"u{i}" for i in range(1, units + 1)]
    [planned] = await harness.planner.plan(
        PROJECT_LANGUAGE_ID, PROVIDER_ID, candidate_unit_ids=candidates
    )
    return planned


def _span(events: Sequence[BatchEvent], batch_id: BatchId) -> tuple[int, int]:
    indexes = [index for index, event in enumerate(events) if event.batch_id == batch_id]
    return indexes[0], indexes[-1]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_execute_translates_every_unit() -> None:
    harness = build_harness(source_units(5))
    planned = await _plan_one(harness)
    provider = ScriptedTranslationProvider()
    controller = harness.controller(provider)

    result = await controller.execute(planned.batch_id, make_context(units_per_batch=2))

    assert result.status == BatchStatus.COMPLETED
    assert (result.completed_units, result.failed_units) == (5, 0)
    assert result.retry_count == 0
    assert not result.can_retry
    assert provider.calls == [["u1", "u2"], ["u3", "u4"], ["u5"]]
    events = harness.events.for_batch(planned.batch_id)
    validate_event_sequence(events)
    assert kinds(events) == [
        "batch_started",
        "batch_progress",
        "batch_progress",
        "batch_progress",
        "batch_completed",
    ]
    progress = [event for event in events if isinstance(event, BatchProgress)]
    assert [event.completed_units for event in progress] == [2, 4, 5]
    translation = harness.units.get_translation(PROJECT_LANGUAGE_ID, "u1")
    assert translation is not None
    assert translation.translated_text == "[DE] Line 1"
    assert translation.batch_id == planned.batch_id
    stored = await harness.batches.get(planned.batch_id)
    assert stored is not None
    assert stored.status == BatchStatus.COMPLETED
    assert stored.started_at == FIXED_TIMESTAMP
    assert stored.completed_at == FIXED_TIMESTAMP
    counts = await harness.ledger.count_by_status(planned.batch_id)
    assert counts[BatchUnitStatus.COMPLETED] == 5
    assert controller.get_progress(planned.batch_id) is None


@pytest.mark.unit
@pytest.mark.asyncio
async def test_unit_failure_completes_batch_with_failures() -> None:
    harness = build_harness(source_units(5))
    planned = await _plan_one(harness)
    provider = ScriptedTranslationProvider(unit_errors={"u3": "rejected by provider"})

    result = await harness.controller(provider).execute(
        planned.batch_id, make_context()
    )

    assert result.status == BatchStatus.COMPLETED
    assert result.has_failures
    completed = harness.events.for_batch(planned.batch_id)[-1]
    assert isinstance(completed, BatchCompleted)
    assert (completed.completed_units, completed.failed_units) == (4, 1)
    assert completed.has_failures
    units = await harness.ledger.fetch_units(planned.batch_id)
    failed = [unit for unit in units if unit.status == BatchUnitStatus.FAILED]
    assert [(unit.unit_id, unit.error_message) for unit in failed] == [
        ("u3", "rejected by provider")
    ]
    warnings = [
        entry
        for entry in harness.logs.entries
        if entry.event == BatchLogEvent.UNIT_FAILED
    ]
    assert len(warnings) == 1
    assert warnings[0].level == LogLevel.WARN


@pytest.mark.unit
@pytest.mark.asyncio
async def test_empty_translation_fails_the_unit() -> None:
    harness = build_harness(source_units(3))
    planned = await _plan_one(harness)
    provider = ScriptedTranslationProvider(empty_units=["u2"])

    result = await harness.controller(provider).execute(
        planned.batch_id, make_context(units_per_batch=3)
    )

    assert (result.completed_units, result.failed_units) == (2, 1)
    assert harness.units.get_translation(PROJECT_LANGUAGE_ID, "u2") is None


@pytest.mark.unit
@pytest.mark.asyncio
async def test_missing_source_fails_the_unit() -> None:
    harness = build_harness(source_units(1))
    planned = await harness.planner.create_batch(
        PROJECT_LANGUAGE_ID, PROVIDER_ID, ["u1", "ghost"]
    )
    provider = ScriptedTranslationProvider()

    result = await harness.controller(provider).execute(
        planned.batch_id, make_context(units_per_batch=2)
    )

    assert (result.completed_units, result.failed_units) == (1, 1)
    assert provider.calls == [["u1"]]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_unit_local_provider_error_fails_only_that_chunk() -> None:
    harness = build_harness(source_units(4))
    planned = await _plan_one(harness)
    provider = ScriptedTranslationProvider(
        call_errors={1: provider_error(ProviderErrorCode.REJECTED, "content policy")}
    )

    result = await harness.controller(provider).execute(
        planned.batch_id, make_context(units_per_batch=2)
    )

    assert result.status == BatchStatus.COMPLETED
    assert (result.completed_units, result.failed_units) == (2, 2)
    units = await harness.ledger.fetch_units(planned.batch_id)
    assert [unit.error_message for unit in units[:2]] == [
        "content policy",
        "content policy",
    ]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_cancel_stops_at_next_chunk_boundary() -> None:
    harness = build_harness(source_units(5))
    planned = await _plan_one(harness)
    accepted: list[bool] = []

    async def before_call(call_number: int, units: Sequence[SourceUnit]) -> None:
        if call_number == 2:
            accepted.append(
                await controller.cancel(planned.batch_id, "Operator stopped the batch")
            )
            accepted.append(await controller.cancel(planned.batch_id))

    provider = ScriptedTranslationProvider(before_call=before_call)
    controller = harness.controller(provider)

    result = await controller.execute(planned.batch_id, make_context())

    assert accepted == [True, False]
    assert result.status == BatchStatus.CANCELLED
    assert result.completed_units == 2
    assert len(provider.calls) == 2
    events = harness.events.for_batch(planned.batch_id)
    validate_event_sequence(events)
    cancelled = [event for event in events if isinstance(event, BatchCancelled)]
    assert len(cancelled) == 1
    assert cancelled[0].completed_units == 2
    assert cancelled[0].reason == "Operator stopped the batch"
    units = await harness.ledger.fetch_units(planned.batch_id)
    assert [str(unit.status) for unit in units] == [
        "completed",
        "completed",
        "pending",
        "pending",
        "pending",
    ]
    assert not await controller.cancel(planned.batch_id)


@pytest.mark.unit
@pytest.mark.asyncio
async def test_pause_and_resume_are_idempotent() -> None:
    harness = build_harness(source_units(5))
    planned = await _plan_one(harness)
    paused = asyncio.Event()
    pause_results: list[bool] = []

    async def before_call(call_number: int, units: Sequence[SourceUnit]) -> None:
        if call_number == 2:
            pause_results.append(await controller.pause(planned.batch_id))
            pause_results.append(await controller.pause(planned.batch_id))
            paused.set()

    controller = harness.controller(ScriptedTranslationProvider(before_call=before_call))
    task = asyncio.create_task(controller.execute(planned.batch_id, make_context()))

    await paused.wait()
    snapshot = controller.get_progress(planned.batch_id)
    assert snapshot is not None
    assert snapshot.status == BatchStatus.PAUSED
    stored = await harness.batches.get(planned.batch_id)
    assert stored is not None
    assert stored.status == BatchStatus.PAUSED
    assert await controller.resume(planned.batch_id)
    assert not await controller.resume(planned.batch_id)
    result = await asyncio.wait_for(task, timeout=5)

    assert pause_results == [True, False]
    assert result.status == BatchStatus.COMPLETED
    assert result.completed_units == 5
    events = harness.events.for_batch(planned.batch_id)
    validate_event_sequence(events)
    assert kinds(events).count("batch_paused") == 1
    assert kinds(events).count("batch_resumed") == 1


@pytest.mark.unit
@pytest.mark.asyncio
async def test_cancel_while_paused_ends_cancelled() -> None:
    harness = build_harness(source_units(4))
    planned = await _plan_one(harness)
    paused = asyncio.Event()

    async def before_call(call_number: int, units: Sequence[SourceUnit]) -> None:
        if call_number == 2:
            await controller.pause(planned.batch_id)
            paused.set()

    controller = harness.controller(ScriptedTranslationProvider(before_call=before_call))
    task = asyncio.create_task(controller.execute(planned.batch_id, make_context()))

    await paused.wait()
    assert await controller.cancel(planned.batch_id)
    result = await asyncio.wait_for(task, timeout=5)

    assert result.status == BatchStatus.CANCELLED
    assert result.completed_units == 2
    events = harness.events.for_batch(planned.batch_id)
    validate_event_sequence(events)
    assert kinds(events)[-2:] == ["batch_progress", "batch_cancelled"]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_pause_and_resume_require_a_running_batch() -> None:
    harness = build_harness(source_units(1))
    planned = await _plan_one(harness)
    controller = harness.controller(ScriptedTranslationProvider())

    with pytest.raises(ExecutionError) as pause_error:
        await controller.pause(planned.batch_id)
    with pytest.raises(ExecutionError) as resume_error:
        await controller.resume(planned.batch_id)

    assert pause_error.value.info.code == ExecutionErrorCode.INVALID_STATE
    assert resume_error.value.info.code == ExecutionErrorCode.INVALID_STATE


@pytest.mark.unit
@pytest.mark.asyncio
async def test_cancel_pending_batch_without_running_it() -> None:
    harness = build_harness(source_units(3))
    planned = await _plan_one(harness)
    controller = harness.controller(ScriptedTranslationProvider())

    assert await controller.cancel(planned.batch_id, "No longer needed")
    assert not await controller.cancel(planned.batch_id)

    stored = await harness.batches.get(planned.batch_id)
    assert stored is not None
    assert stored.status == BatchStatus.CANCELLED
    events = harness.events.for_batch(planned.batch_id)
    assert len(events) == 1
    assert isinstance(events[0], BatchCancelled)
    assert events[0].completed_units == 0
    with pytest.raises(ExecutionError) as exc_info:
        await controller.execute(planned.batch_id, make_context())
    assert exc_info.value.info.code == ExecutionErrorCode.INVALID_STATE


@pytest.mark.unit
@pytest.mark.asyncio
async def test_batch_level_error_then_retry_resumes_from_pending_units() -> None:
    harness = build_harness(source_units(3))
    planned = await _plan_one(harness)
    provider = ScriptedTranslationProvider(
        call_errors={2: provider_error(ProviderErrorCode.NETWORK, "connection reset")}
    )
    controller = harness.controller(provider)
    context = make_context()

    failed = await controller.execute(planned.batch_id, context)

    assert failed.status == BatchStatus.FAILED
    assert failed.error_message == "connection reset"
    assert failed.can_retry
    failure = harness.events.for_batch(planned.batch_id)[-1]
    assert isinstance(failure, BatchFailed)
    assert failure.completed_before_failure == 1
    assert failure.can_retry

    retried = await controller.retry(planned.batch_id, context)

    assert retried.status == BatchStatus.COMPLETED
    assert retried.retry_count == 1
    assert retried.completed_units == 3
    assert retried.error_message is None
    assert provider.calls == [["u1"], ["u2"], ["u2"], ["u3"]]
    events = harness.events.for_batch(planned.batch_id)
    assert kinds(events) == [
        "batch_started",
        "batch_progress",
        "batch_failed",
        "batch_started",
        "batch_progress",
        "batch_progress",
        "batch_completed",
    ]
    validate_event_sequence(events[3:])
    assert any(
        entry.event == BatchLogEvent.RETRY_SCHEDULED for entry in harness.logs.entries
    )


@pytest.mark.unit
@pytest.mark.asyncio
async def test_retry_reopens_failed_units() -> None:
    harness = build_harness(source_units(3))
    planned = await _plan_one(harness)
    context = make_context()
    flaky = ScriptedTranslationProvider(
        unit_errors={"u1": "rejected"},
        call_errors={2: provider_error(ProviderErrorCode.TIMEOUT, "timed out")},
    )
    first = await harness.controller(flaky).execute(planned.batch_id, context)
    assert first.status == BatchStatus.FAILED
    assert (first.completed_units, first.failed_units) == (0, 1)

    healthy = ScriptedTranslationProvider()
    retried = await harness.controller(healthy).retry(planned.batch_id, context)

    assert retried.status == BatchStatus.COMPLETED
    assert (retried.completed_units, retried.failed_units) == (3, 0)
    assert healthy.calls == [["u1"], ["u2"], ["u3"]]
    scheduled = [
        entry
        for entry in harness.logs.entries
        if entry.event == BatchLogEvent.RETRY_SCHEDULED
    ]
    assert scheduled[0].data is not None
    assert scheduled[0].data["reopened_units"] == 1


@pytest.mark.unit
@pytest.mark.asyncio
async def test_retry_budget_is_enforced() -> None:
    harness = build_harness(source_units(2))
    planned = await _plan_one(harness)
    provider = ScriptedTranslationProvider(
        call_errors={
            call: provider_error(ProviderErrorCode.UNAVAILABLE, "service unavailable")
            for call in range(1, 5)
        }
    )
    controller = harness.controller(provider)
    context = make_context()

    result = await controller.execute(planned.batch_id, context)
    assert result.status == BatchStatus.FAILED
    for expected in (1, 2, 3):
        result = await controller.retry(planned.batch_id, context)
        assert result.status == BatchStatus.FAILED
        assert result.retry_count == expected

    assert not result.can_retry
    failures = [
        event
        for event in harness.events.for_batch(planned.batch_id)
        if isinstance(event, BatchFailed)
    ]
    assert [event.retry_count for event in failures] == [0, 1, 2, 3]
    assert [event.can_retry for event in failures] == [True, True, True, False]
    with pytest.raises(ExecutionError) as exc_info:
        await controller.retry(planned.batch_id, context)
    assert exc_info.value.info.code == ExecutionErrorCode.RETRY_EXHAUSTED
    assert len(provider.calls) == 4


@pytest.mark.unit
@pytest.mark.asyncio
async def test_fatal_error_is_not_retryable() -> None:
    harness = build_harness(source_units(2))
    planned = await _plan_one(harness)
    provider = ScriptedTranslationProvider(
        call_errors={1: provider_error(ProviderErrorCode.AUTHENTICATION, "bad key")}
    )
    controller = harness.controller(provider)

    result = await controller.execute(planned.batch_id, make_context())

    assert result.status == BatchStatus.FAILED
    assert not result.can_retry
    failure = harness.events.for_batch(planned.batch_id)[-1]
    assert isinstance(failure, BatchFailed)
    assert failure.fatal
    assert not failure.can_retry
    failed_logs = [
        entry for entry in harness.logs.entries if entry.event == BatchLogEvent.FAILED
    ]
    assert failed_logs[-1].data is not None
    assert failed_logs[-1].data["error_code"] == "authentication"
    with pytest.raises(ExecutionError) as exc_info:
        await controller.retry(planned.batch_id, make_context())
    assert exc_info.value.info.code == ExecutionErrorCode.NOT_RETRYABLE


@pytest.mark.unit
@pytest.mark.asyncio
async def test_auto_retry_recovers_from_transient_failure() -> None:
    harness = build_harness(source_units(2))
    planned = await _plan_one(harness)
    provider = ScriptedTranslationProvider(
        call_errors={1: provider_error(ProviderErrorCode.RATE_LIMITED, "slow down")}
    )
    config = EngineConfig(
        retry=RetryConfig(auto_retry=True, backoff_s=0.001, max_backoff_s=0.001)
    )

    result = await harness.controller(provider, config=config).execute(
        planned.batch_id, make_context()
    )

    assert result.status == BatchStatus.COMPLETED
    assert result.retry_count == 1
    assert kinds(harness.events.for_batch(planned.batch_id)) == [
        "batch_started",
        "batch_failed",
        "batch_started",
        "batch_progress",
        "batch_progress",
        "batch_completed",
    ]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_translation_memory_hits_skip_the_provider() -> None:
    harness = build_harness(source_units(3))
    planned = await _plan_one(harness)
    memory = InMemoryTranslationMemory()
    memory.add("Line 1", "Zeile 1", target_language="DE")
    provider = ScriptedTranslationProvider()

    result = await harness.controller(provider, translation_memory=memory).execute(
        planned.batch_id, make_context(units_per_batch=2)
    )

    assert result.completed_units == 3
    assert provider.calls == [["u2"], ["u3"]]
    hit = harness.units.get_translation(PROJECT_LANGUAGE_ID, "u1")
    assert hit is not None
    assert hit.translated_text == "Zeile 1"
    assert hit.from_translation_memory
    miss = harness.units.get_translation(PROJECT_LANGUAGE_ID, "u2")
    assert miss is not None
    assert not miss.from_translation_memory
    assert any(entry.event == BatchLogEvent.TM_HIT for entry in harness.logs.entries)


@pytest.mark.unit
@pytest.mark.asyncio
async def test_skip_translation_memory_flag() -> None:
    harness = build_harness(source_units(2))
    planned = await _plan_one(harness)
    memory = InMemoryTranslationMemory()
    memory.add("Line 1", "Zeile 1", target_language="DE")
    provider = ScriptedTranslationProvider()

    await harness.controller(provider, translation_memory=memory).execute(
        planned.batch_id, make_context(units_per_batch=2, skip_translation_memory=True)
    )

    assert provider.calls == [["u1", "u2"]]
    assert memory.lookups == 0


@pytest.mark.unit
@pytest.mark.asyncio
async def test_translation_memory_failure_counts_as_miss() -> None:
    harness = build_harness(source_units(2))
    planned = await _plan_one(harness)
    provider = ScriptedTranslationProvider()

    result = await harness.controller(
        provider, translation_memory=_BrokenMemory()
    ).execute(planned.batch_id, make_context(units_per_batch=2))

    assert result.completed_units == 2
    assert provider.calls == [["u1", "u2"]]
    lookups_failed = [
        entry
        for entry in harness.logs.entries
        if entry.event == BatchLogEvent.TM_LOOKUP_FAILED
    ]
    assert len(lookups_failed) == 2


@pytest.mark.unit
@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("units_per_batch", "default_units", "max_chunk", "advertised", "sizes"),
    [
        (2, 4, 50, 3, [2, 2, 1]),
        (0, 3, 50, 4, [3, 2]),
        (0, 0, 50, 4, [4, 1]),
        (0, 0, 2, 100, [2, 2, 1]),
        (0, 0, 50, None, [1, 1, 1, 1, 1]),
    ],
)
async def test_chunk_size_resolution(
    units_per_batch: int,
    default_units: int,
    max_chunk: int,
    advertised: int | None,
    sizes: list[int],
) -> None:
    harness = build_harness(source_units(5))
    planned = await _plan_one(harness)
    provider = ScriptedTranslationProvider(max_units_per_request=advertised)
    config = EngineConfig(
        chunking=ChunkingConfig(
            default_units_per_batch=default_units, max_chunk_size=max_chunk
        )
    )

    await harness.controller(provider, config=config).execute(
        planned.batch_id, make_context(units_per_batch=units_per_batch)
    )

    assert [len(call) for call in provider.calls] == sizes


@pytest.mark.unit
@pytest.mark.asyncio
async def test_get_progress_reports_running_counters() -> None:
    harness = build_harness(source_units(3))
    planned = await _plan_one(harness)
    snapshots: list[BatchProgressSnapshot | None] = []
    active: list[list[BatchId]] = []

    async def before_call(call_number: int, units: Sequence[SourceUnit]) -> None:
        if call_number == 2:
            snapshots.append(controller.get_progress(planned.batch_id))
            active.append(controller.active_batch_ids())

    controller = harness.controller(ScriptedTranslationProvider(before_call=before_call))
    await controller.execute(planned.batch_id, make_context())

    [snapshot] = snapshots
    assert snapshot is not None
    assert snapshot.status == BatchStatus.TRANSLATING
    assert (snapshot.completed_units, snapshot.total_units) == (1, 3)
    assert snapshot.remaining_units == 2
    assert active == [[planned.batch_id]]
    assert controller.active_batch_ids() == []


@pytest.mark.unit
@pytest.mark.asyncio
async def test_execute_rejects_invalid_requests() -> None:
    harness = build_harness(source_units(2))
    planned = await _plan_one(harness)
    controller = harness.controller(ScriptedTranslationProvider())

    with pytest.raises(ExecutionError) as missing:
        await controller.execute(uuid7(), make_context())
    with pytest.raises(ExecutionError) as mismatch:
        await controller.execute(planned.batch_id, make_context("pl-fr"))
    await controller.execute(planned.batch_id, make_context())
    with pytest.raises(ExecutionError) as finished:
        await controller.execute(planned.batch_id, make_context())

    assert missing.value.info.code == ExecutionErrorCode.BATCH_NOT_FOUND
    assert mismatch.value.info.code == ExecutionErrorCode.CONTEXT_MISMATCH
    assert finished.value.info.code == ExecutionErrorCode.INVALID_STATE
    response = finished.value.info.to_error_response()
    assert response.details is not None
    assert response.details.provided == "completed"


@pytest.mark.unit
@pytest.mark.asyncio
async def test_execute_rejects_incomplete_batch() -> None:
    harness = build_harness(source_units(2))
    batch = TranslationBatch(
        id=uuid7(),
        project_language_id=PROJECT_LANGUAGE_ID,
        provider_id=PROVIDER_ID,
        batch_number=1,
        units_count=2,
    )
    await harness.batches.insert(batch)
    await harness.batch_units.insert_batch([
        TranslationBatchUnit(
            id=uuid7(), batch_id=batch.id, unit_id="u1", processing_order=0
        )
    ])
    provider = ScriptedTranslationProvider()

    with pytest.raises(ExecutionError) as exc_info:
        await harness.controller(provider).execute(batch.id, make_context())

    assert exc_info.value.info.code == ExecutionErrorCode.INCOMPLETE_BATCH
    assert provider.calls == []
    stored = await harness.batches.get(batch.id)
    assert stored is not None
    assert stored.status == BatchStatus.PENDING


@pytest.mark.unit
@pytest.mark.asyncio
async def test_persistence_failure_is_reported_as_batch_failure() -> None:
    units = InMemoryUnitRepository(source_units(2))
    batches = _FlakyBatchRepository()
    batch_units = InMemoryBatchUnitRepository()
    [planned] = await BatchPlanner(units, batches, batch_units).plan(
        PROJECT_LANGUAGE_ID, PROVIDER_ID
    )
    events = InMemoryEventSink()
    logs = InMemoryLogSink()
    controller = BatchExecutionController(
        batches,
        BatchUnitLedger(batch_units),
        units,
        ScriptedTranslationProvider(),
        event_sink=events,
        log_sink=logs,
        clock=fixed_clock,
    )
    batches.allowed_updates = 1

    result = await controller.execute(planned.batch_id, make_context())

    assert result.status == BatchStatus.FAILED
    assert result.error_message == "write failed"
    assert kinds(events.events) == ["batch_started", "batch_failed"]
    logged = {entry.event for entry in logs.entries}
    assert BatchLogEvent.PERSIST_FAILED in logged
    assert BatchLogEvent.FAILED in logged


@pytest.mark.unit
@pytest.mark.asyncio
async def test_execute_many_serializes_batches_per_project_language() -> None:
    harness = build_harness(source_units(4))
    german = await harness.planner.plan("pl-de", PROVIDER_ID, max_units_per_batch=2)
    [french] = await harness.planner.plan("pl-fr", PROVIDER_ID)
    batch_ids = [german[0].batch_id, french.batch_id, german[1].batch_id]
    contexts = {
        "pl-de": make_context("pl-de", parallel_batches=3),
        "pl-fr": make_context("pl-fr", target_language="FR"),
    }
    controller = harness.controller(_YieldingProvider())

    results = await controller.execute_many(batch_ids, contexts)

    assert [result.batch_id for result in results] == batch_ids
    assert all(result.status == BatchStatus.COMPLETED for result in results)
    events = harness.events.events
    first, second = _span(events, batch_ids[0]), _span(events, batch_ids[2])
    assert first[1] < second[0] or second[1] < first[0]
    for batch_id in batch_ids:
        validate_event_sequence(harness.events.for_batch(batch_id))
    french_text = harness.units.get_translation("pl-fr", "u1")
    assert french_text is not None
    assert french_text.translated_text == "[FR] Line 1"


@pytest.mark.unit
@pytest.mark.asyncio
async def test_execute_many_validates_before_starting() -> None:
    harness = build_harness(source_units(2))
    planned = await _plan_one(harness)
    provider = ScriptedTranslationProvider()
    controller = harness.controller(provider)

    with pytest.raises(ExecutionError) as duplicate:
        await controller.execute_many(
            [planned.batch_id, planned.batch_id], make_context()
        )
    with pytest.raises(ExecutionError) as no_context:
        await controller.execute_many([planned.batch_id], {"pl-fr": make_context("pl-fr")})

    assert duplicate.value.info.code == ExecutionErrorCode.INVALID_STATE
    assert no_context.value.info.code == ExecutionErrorCode.CONTEXT_MISMATCH
    assert provider.calls == []
    assert await controller.execute_many([], make_context()) == []


@pytest.mark.unit
@pytest.mark.asyncio
async def test_events_reach_bus_subscribers() -> None:
    harness = build_harness(source_units(2))
    planned = await _plan_one(harness)
    bus = EventBus()
    controller = BatchExecutionController(
        harness.batches,
        harness.ledger,
        harness.units,
        ScriptedTranslationProvider(),
        event_sink=bus,
        clock=fixed_clock,
    )

    async with bus.subscribe(batch_id=planned.batch_id) as subscription:
        await controller.execute(planned.batch_id, make_context())
        received = subscription.drain()

    validate_event_sequence(received)
    assert kinds(received)[-1] == "batch_completed"


@pytest.mark.unit
@pytest.mark.asyncio
async def test_execute_many_rejects_incomplete_sibling_before_starting() -> None:
    harness = build_harness(source_units(2))
    german = await _plan_one(harness)
    header_only = TranslationBatch(
        id=uuid7(),
        project_language_id="pl-fr",
        provider_id=PROVIDER_ID,
        batch_number=1,
        units_count=2,
    )
    await harness.batches.insert(header_only)
    provider = _YieldingProvider()
    contexts = {
        "pl-de": make_context("pl-de", parallel_batches=2),
        "pl-fr": make_context("pl-fr", target_language="FR"),
    }

    with pytest.raises(ExecutionError) as exc_info:
        await harness.controller(provider).execute_many(
            [german.batch_id, header_only.id], contexts
        )

    assert exc_info.value.info.code == ExecutionErrorCode.INCOMPLETE_BATCH
    assert provider.calls == []
    assert harness.events.events == []
    stored = await harness.batches.get(german.batch_id)
    assert stored is not None
    assert stored.status == BatchStatus.PENDING


@pytest.mark.unit
@pytest.mark.asyncio
async def test_execute_many_error_in_one_batch_does_not_interrupt_others() -> None:
    batches = _VanishingBatchRepository()
    harness = build_harness(source_units(3), batches=batches)
    german = await _plan_one(harness)
    [french] = await harness.planner.plan("pl-fr", PROVIDER_ID)
    batches.visible_reads[french.batch_id] = 1
    contexts = {
        "pl-de": make_context("pl-de", parallel_batches=2),
        "pl-fr": make_context("pl-fr", target_language="FR"),
    }
    controller = harness.controller(_YieldingProvider())

    with pytest.raises(ExecutionError) as exc_info:
        await controller.execute_many([german.batch_id, french.batch_id], contexts)

    assert exc_info.value.info.code == ExecutionErrorCode.BATCH_NOT_FOUND
    events = harness.events.for_batch(german.batch_id)
    validate_event_sequence(events)
    assert kinds(events)[-1] == "batch_completed"
    assert harness.events.for_batch(french.batch_id) == []
    stored = await harness.batches.get(german.batch_id)
    assert stored is not None
    assert stored.status == BatchStatus.COMPLETED
    assert controller.active_batch_ids() == []


@pytest.mark.unit
@pytest.mark.asyncio
async def test_cancelling_one_batch_leaves_running_sibling_untouched() -> None:
    harness = build_harness(source_units(3))
    german = await _plan_one(harness)
    [french] = await harness.planner.plan("pl-fr", PROVIDER_ID)
    accepted: list[bool] = []

    async def on_translate(context: TranslationContext) -> None:
        if context.project_language_id == "pl-fr" and not accepted:
            accepted.append(await controller.cancel(french.batch_id, "Dropped"))

    controller = harness.controller(_HookedProvider(on_translate))
    contexts = {
        "pl-de": make_context("pl-de", parallel_batches=2),
        "pl-fr": make_context("pl-fr", target_language="FR"),
    }

    german_result, french_result = await controller.execute_many(
        [german.batch_id, french.batch_id], contexts
    )

    assert accepted == [True]
    assert german_result.status == BatchStatus.COMPLETED
    assert german_result.completed_units == 3
    assert french_result.status == BatchStatus.CANCELLED
    assert french_result.completed_units == 1
    for batch_id in (german.batch_id, french.batch_id):
        validate_event_sequence(harness.events.for_batch(batch_id))
    assert kinds(harness.events.for_batch(french.batch_id))[-1] == "batch_cancelled"


@pytest.mark.unit
@pytest.mark.asyncio
async def test_failing_one_batch_leaves_running_sibling_untouched() -> None:
    harness = build_harness(source_units(3))
    german = await _plan_one(harness)
    [french] = await harness.planner.plan("pl-fr", PROVIDER_ID)

    async def on_translate(context: TranslationContext) -> None:
        if context.project_language_id == "pl-fr":
            raise provider_error(ProviderErrorCode.AUTHENTICATION, "bad key")

    controller = harness.controller(_HookedProvider(on_translate))
    contexts = {
        "pl-de": make_context("pl-de", parallel_batches=2),
        "pl-fr": make_context("pl-fr", target_language="FR"),
    }

    german_result, french_result = await controller.execute_many(
        [german.batch_id, french.batch_id], contexts
    )

    assert german_result.status == BatchStatus.COMPLETED
    assert german_result.completed_units == 3
    assert french_result.status == BatchStatus.FAILED
    assert french_result.error_message == "bad key"
    for batch_id in (german.batch_id, french.batch_id):
        validate_event_sequence(harness.events.for_batch(batch_id))


@pytest.mark.unit
@pytest.mark.asyncio
async def test_cancel_before_run_starts_emits_one_terminal_event() -> None:
    batch_units = _GatedBatchUnitRepository()
    harness = build_harness(source_units(2), batch_units=batch_units)
    planned = await _plan_one(harness)
    provider = ScriptedTranslationProvider()
    controller = harness.controller(provider)
    batch_units.gate = asyncio.Event()

    task = asyncio.create_task(controller.execute(planned.batch_id, make_context()))
    await batch_units.entered.wait()

    assert controller.active_batch_ids() == [planned.batch_id]
    with pytest.raises(ExecutionError) as pause_error:
        await controller.pause(planned.batch_id)
    assert await controller.cancel(planned.batch_id, "Operator stopped the batch")
    assert not await controller.cancel(planned.batch_id)
    batch_units.gate.set()
    result = await asyncio.wait_for(task, timeout=5)

    assert pause_error.value.info.code == ExecutionErrorCode.INVALID_STATE
    assert result.status == BatchStatus.CANCELLED
    assert provider.calls == []
    events = harness.events.for_batch(planned.batch_id)
    assert kinds(events) == ["batch_cancelled"]
    assert isinstance(events[0], BatchCancelled)
    assert events[0].reason == "Operator stopped the batch"
    stored = await harness.batches.get(planned.batch_id)
    assert stored is not None
    assert stored.status == BatchStatus.CANCELLED
    assert controller.active_batch_ids() == []


@pytest.mark.unit
@pytest.mark.asyncio
async def test_interrupted_execution_leaves_cancelled_record() -> None:
    harness = build_harness(source_units(3))
    planned = await _plan_one(harness)
    reached = asyncio.Event()

    async def before_call(call_number: int, units: Sequence[SourceUnit]) -> None:
        if call_number == 2:
            reached.set()
            await asyncio.Event().wait()

    controller = harness.controller(ScriptedTranslationProvider(before_call=before_call))
    task = asyncio.create_task(controller.execute(planned.batch_id, make_context()))
    await reached.wait()
    task.cancel()

    with pytest.raises(asyncio.CancelledError):
        await task

    events = harness.events.for_batch(planned.batch_id)
    validate_event_sequence(events)
    assert kinds(events) == ["batch_started", "batch_progress", "batch_cancelled"]
    cancelled = events[-1]
    assert isinstance(cancelled, BatchCancelled)
    assert cancelled.reason == "Execution interrupted"
    assert cancelled.completed_units == 1
    stored = await harness.batches.get(planned.batch_id)
    assert stored is not None
    assert stored.status == BatchStatus.CANCELLED
    assert controller.active_batch_ids() == []


@pytest.mark.unit
@pytest.mark.asyncio
async def test_pause_and_cancel_are_refused_once_last_chunk_is_dispatched() -> None:
    harness = build_harness(source_units(3))
    planned = await _plan_one(harness)
    outcomes: list[bool] = []

    async def before_call(call_number: int, units: Sequence[SourceUnit]) -> None:
        if call_number == 3:
            outcomes.append(await controller.pause(planned.batch_id))
            outcomes.append(await controller.cancel(planned.batch_id))

    controller = harness.controller(ScriptedTranslationProvider(before_call=before_call))

    result = await controller.execute(planned.batch_id, make_context())

    assert outcomes == [False, False]
    assert result.status == BatchStatus.COMPLETED
    assert result.completed_units == 3
    events = harness.events.for_batch(planned.batch_id)
    validate_event_sequence(events)
    assert "batch_paused" not in kinds(events)
    assert kinds(events)[-1] == "batch_completed"


@pytest.mark.unit
@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("advertised", "configured", "margin", "sizes"),
    [
        (100, None, 0.7, [3, 2]),
        (None, 60, 1.0, [3, 2]),
        (100, 40, 1.0, [2, 2, 1]),
        (None, None, 0.7, [5]),
    ],
)
async def test_payload_budget_splits_chunks(
    advertised: int | None,
    configured: int | None,
    margin: float,
    sizes: list[int],
) -> None:
    harness = build_harness(source_units(5))
    planned = await _plan_one(harness)
    provider = ScriptedTranslationProvider(max_chars_per_request=advertised)
    config = EngineConfig(
        chunking=ChunkingConfig(
            max_chars_per_request=configured, payload_safety_margin=margin
        )
    )

    result = await harness.controller(provider, config=config).execute(
        planned.batch_id, make_context(units_per_batch=10)
    )

    assert result.completed_units == 5
    assert [len(call) for call in provider.calls] == sizes


@pytest.mark.unit
@pytest.mark.asyncio
async def test_unit_larger_than_payload_budget_fails_without_dispatch() -> None:
    long_line = SourceUnit(unit_id="u3", key="line.3", source_text="x" * 40)
    harness = build_harness([*source_units(2), long_line])
    planned = await _plan_one(harness)
    provider = ScriptedTranslationProvider(max_chars_per_request=100)

    result = await harness.controller(provider).execute(
        planned.batch_id, make_context(units_per_batch=10)
    )

    assert result.status == BatchStatus.COMPLETED
    assert (result.completed_units, result.failed_units) == (2, 1)
    assert provider.calls == [["u1", "u2"]]
    units = await harness.ledger.fetch_units(planned.batch_id)
    assert units[2].error_message == "Source text exceeds the request payload budget"


@pytest.mark.unit
@pytest.mark.asyncio
async def test_glossary_overhead_beyond_budget_is_fatal() -> None:
    harness = build_harness(source_units(2))
    planned = await _plan_one(harness)
    provider = ScriptedTranslationProvider(max_chars_per_request=100)
    term = GlossaryTerm(glossary_id="g-1", source_term="a" * 40, target_term="b" * 30)

    result = await harness.controller(provider).execute(
        planned.batch_id, make_context(glossary_terms=[term])
    )

    assert result.status == BatchStatus.FAILED
    assert result.error_message == "Request overhead exceeds the provider payload budget"
    assert not result.can_retry
    assert provider.calls == []
    failure = harness.events.for_batch(planned.batch_id)[-1]
    assert isinstance(failure, BatchFailed)
    assert failure.fatal
    stored = await harness.batches.get(planned.batch_id)
    assert stored is not None
    assert stored.error_fatal


@pytest.mark.unit
@pytest.mark.asyncio
async def test_identical_source_texts_are_translated_once() -> None:
    texts = ["Hello", "Hello", "Bye", "Hello"]
    harness = build_harness([
        SourceUnit(unit_id=f"u{index}", key=f"line.{index}", source_text=text)
        for index, text in enumerate(texts, start=1)
    ])
    planned = await _plan_one(harness)
    provider = ScriptedTranslationProvider()

    result = await harness.controller(provider).execute(
        planned.batch_id, make_context(units_per_batch=2)
    )

    assert result.status == BatchStatus.COMPLETED
    assert result.completed_units == 4
    assert provider.calls == [["u1"], ["u3"]]
    for unit_id in ("u2", "u4"):
        translation = harness.units.get_translation(PROJECT_LANGUAGE_ID, unit_id)
        assert translation is not None
        assert translation.translated_text == "[DE] Hello"
        assert not translation.from_translation_memory
    dispatched = [
        entry.data
        for entry in harness.logs.entries
        if entry.event == BatchLogEvent.CHUNK_DISPATCHED
    ]
    assert dispatched == [
        {"units": 1, "duplicates": 1},
        {"units": 1, "duplicates": 0},
    ]
