"""Batch execution controller: state machine and concurrency coordinator."""

from __future__ import annotations

import asyncio
import math
import time
from collections import defaultdict
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field

from modloc_core.chunking import plan_chunks, request_overhead
from modloc_core.ledger import BatchUnitLedger
from modloc_core.ports.execution import (
    ExecutionError,
    ExecutionErrorCode,
    ExecutionErrorDetails,
    ExecutionErrorInfo,
    LedgerError,
    build_batch_failed_log,
    build_batch_log,
)
from modloc_core.ports.provider import (
    ProviderError,
    ProviderErrorCode,
    ProviderErrorDetails,
    ProviderErrorInfo,
    TranslationMemoryProtocol,
    TranslationProviderProtocol,
)
from modloc_core.ports.repositories import (
    BatchRepositoryProtocol,
    UnitRepositoryProtocol,
)
from modloc_core.ports.sinks import EventSinkProtocol, LogSinkProtocol
from modloc_schemas.batch import (
    TranslationBatch,
    TranslationBatchUnit,
    transition_batch,
)
from modloc_schemas.config import EngineConfig
from modloc_schemas.context import TranslationContext
from modloc_schemas.events import (
    BatchCancelled,
    BatchCompleted,
    BatchEvent,
    BatchFailed,
    BatchLogEvent,
    BatchPaused,
    BatchProgress,
    BatchResumed,
    BatchStarted,
)
from modloc_schemas.logs import LogEntry
from modloc_schemas.primitives import (
    BatchId,
    BatchStatus,
    BatchUnitId,
    BatchUnitStatus,
    LogLevel,
    ProjectLanguageId,
    Timestamp,
    UnitId,
    utc_timestamp,
)
from modloc_schemas.results import BatchProgressSnapshot, BatchRunResult
from modloc_schemas.translation import SourceUnit, UnitTranslation

_UNEXPECTED_ERROR = "unexpected_error"
_DEFAULT_CANCEL_REASON = "User cancelled"
_INTERRUPTED_REASON = "Execution interrupted"

type ContextSource = TranslationContext | Mapping[ProjectLanguageId, TranslationContext]


@dataclass(slots=True)
class _BatchRun:
    """Mutable bookkeeping for one in-flight batch execution.

    A run is registered before its first await so control requests always
    find it. ``active`` turns on once the batch is translating and
    ``finishing`` once its last chunk is dispatched.
    """

    batch: TranslationBatch
    context: TranslationContext
    completed: int
    failed: int
    updated_at: Timestamp
    started: float = field(default_factory=time.monotonic)
    active: bool = False
    finishing: bool = False
    paused: bool = False
    cancel_requested: bool = False
    cancel_reason: str | None = None
    translated: dict[str, str] = field(default_factory=dict)
    resume: asyncio.Event = field(default_factory=asyncio.Event)
    emit_lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    control_lock: asyncio.Lock = field(default_factory=asyncio.Lock)


@dataclass(slots=True)
class _ChunkOutcome:
    successes: list[tuple[TranslationBatchUnit, str, bool]] = field(
        default_factory=list
    )
    failures: list[tuple[TranslationBatchUnit, str]] = field(default_factory=list)


class BatchExecutionController:
    """Drive planned batches through the provider to a terminal state.

    Within a batch, units are dispatched sequentially in chunks. Pause and
    cancel requests are honoured between chunks. Batch-level failures are
    persisted and reported as ``BatchFailed`` events, never raised.
    """

    def __init__(
        self,
        batch_repository: BatchRepositoryProtocol,
        ledger: BatchUnitLedger,
        unit_repository: UnitRepositoryProtocol,
        provider: TranslationProviderProtocol,
        *,
        event_sink: EventSinkProtocol | None = None,
        log_sink: LogSinkProtocol | None = None,
        translation_memory: TranslationMemoryProtocol | None = None,
        config: EngineConfig | None = None,
        clock: Callable[[], Timestamp] | None = None,
    ) -> None:
        """Initialize the controller.

        Args:
            batch_repository: Batch header persistence.
            ledger: Batch unit ledger.
            unit_repository: Source unit lookups and translation writes.
            provider: Translation provider.
            event_sink: Optional sink for lifecycle events.
            log_sink: Optional sink for structured logs.
            translation_memory: Optional exact-match translation memory.
            config: Engine configuration, defaults when omitted.
            clock: Optional timestamp provider.
        """
        self._batches = batch_repository
        self._ledger = ledger
        self._units = unit_repository
        self._provider = provider
        self._event_sink = event_sink
        self._log_sink = log_sink
        self._translation_memory = translation_memory
        self._config = config or EngineConfig()
        self._clock = clock or utc_timestamp
        self._runs: dict[BatchId, _BatchRun] = {}
        self._language_locks: defaultdict[str, asyncio.Lock] = defaultdict(
            asyncio.Lock
        )

    async def execute(
        self, batch_id: BatchId, context: TranslationContext
    ) -> BatchRunResult:
        """Run a pending batch to a terminal state.

        Args:
            batch_id: Batch to execute.
            context: Request context shared by every unit.

        Returns:
            BatchRunResult: Outcome of the execution.

        Raises:
            ExecutionError: If the batch is unknown, not pending, does not
                match the context, or has invalid unit rows.
        """
        batch = await self._require_batch(batch_id)
        self._require_status(batch, {BatchStatus.PENDING}, "execute")
        self._require_context(batch, context)
        async with self._language_locks[batch.project_language_id]:
            if batch.id in self._runs:
                raise self._invalid_state(batch, {BatchStatus.PENDING}, "execute")
            result = await self._drive(self._register(batch, context))
            return await self._auto_retry(result, context)

    async def execute_many(
        self,
        batch_ids: Sequence[BatchId],
        context: ContextSource,
        *,
        parallel_batches: int | None = None,
    ) -> list[BatchRunResult]:
        """Run several pending batches concurrently.

        Batches of the same project-language never run at the same time.
        Every batch, unit rows included, is validated before any starts. A
        batch that fails validation after the others started does not
        interrupt them; its error is raised once they finish.

        Args:
            batch_ids: Batches to execute.
            context: One context, or contexts keyed by project-language.
            parallel_batches: Optional override of the context parallelism.

        Returns:
            list[BatchRunResult]: Results aligned to ``batch_ids``.

        Raises:
            ExecutionError: If any batch fails validation.
        """
        if not batch_ids:
            return []
        if len(set(batch_ids)) != len(batch_ids):
            raise ExecutionError(
                ExecutionErrorInfo(
                    code=ExecutionErrorCode.INVALID_STATE,
                    message="Batch ids must be unique",
                )
            )
        contexts: list[TranslationContext] = []
        for batch_id in batch_ids:
            batch = await self._require_batch(batch_id)
            self._require_status(batch, {BatchStatus.PENDING}, "execute")
            batch_context = _context_for(batch, context)
            self._require_context(batch, batch_context)
            await self._verify(batch)
            contexts.append(batch_context)

        requested = parallel_batches or max(ctx.parallel_batches for ctx in contexts)
        limit = max(
            1,
            min(requested, self._config.concurrency.max_parallel_batches_limit),
        )
        semaphore = asyncio.Semaphore(limit)
        results: list[BatchRunResult | None] = [None] * len(batch_ids)
        errors: list[ExecutionError] = []

        async def _run(index: int, batch_id: BatchId) -> None:
            async with semaphore:
                try:
                    results[index] = await self.execute(batch_id, contexts[index])
                except ExecutionError as exc:
                    errors.append(exc)

        async with asyncio.TaskGroup() as group:
            for index, batch_id in enumerate(batch_ids):
                group.create_task(_run(index, batch_id))

        if errors:
            raise errors[0]
        return [result for result in results if result is not None]

    async def retry(
        self, batch_id: BatchId, context: TranslationContext
    ) -> BatchRunResult:
        """Run a follow-on execution of a failed batch.

        Failed units are reopened and execution resumes from the first unit
        that is not completed.

        Args:
            batch_id: Failed batch to retry.
            context: Request context for the follow-on execution.

        Returns:
            BatchRunResult: Outcome of the follow-on execution.

        Raises:
            ExecutionError: If the batch is not failed, the failure is fatal,
                or the retry budget is exhausted.
        """
        batch = await self._require_batch(batch_id)
        self._require_retryable(batch)
        self._require_context(batch, context)
        async with self._language_locks[batch.project_language_id]:
            if batch.id in self._runs:
                raise self._invalid_state(batch, {BatchStatus.FAILED}, "retry")
            result = await self._drive(self._register(batch, context), retry=True)
            return await self._auto_retry(result, context)

    async def pause(self, batch_id: BatchId) -> bool:
        """Pause a running batch; dispatch halts at the next chunk boundary.

        Args:
            batch_id: Batch to pause.

        Returns:
            bool: False when the batch was already paused or is finishing.

        Raises:
            ExecutionError: If the batch is not running.
        """
        run = self._runs.get(batch_id)
        if run is None:
            batch = await self._require_batch(batch_id)
            if batch.status == BatchStatus.PAUSED:
                return False
            raise self._invalid_state(batch, {BatchStatus.TRANSLATING}, "pause")
        if not run.active:
            raise self._invalid_state(run.batch, {BatchStatus.TRANSLATING}, "pause")
        async with run.control_lock:
            if (
                run.paused
                or run.cancel_requested
                or run.finishing
                or run.batch.is_terminal
            ):
                return False
            run.paused = True
            run.resume.clear()
            run.batch = transition_batch(run.batch, BatchStatus.PAUSED)
            await self._save_quietly(run.batch)
            await self._emit(
                run,
                BatchPaused(
                    batch_id=run.batch.id,
                    project_language_id=run.batch.project_language_id,
                    completed_units=run.completed,
                    total_units=run.batch.units_count,
                ),
            )
        await self._log(
            build_batch_log(
                self._clock(), run.batch, BatchLogEvent.PAUSED, "Batch paused"
            )
        )
        return True

    async def resume(self, batch_id: BatchId) -> bool:
        """Resume a paused batch.

        Args:
            batch_id: Batch to resume.

        Returns:
            bool: False when the batch was already running.

        Raises:
            ExecutionError: If the batch is neither running nor paused here.
        """
        run = self._runs.get(batch_id)
        if run is None:
            batch = await self._require_batch(batch_id)
            if batch.status == BatchStatus.TRANSLATING:
                return False
            raise self._invalid_state(batch, {BatchStatus.PAUSED}, "resume")
        if not run.active:
            raise self._invalid_state(run.batch, {BatchStatus.PAUSED}, "resume")
        async with run.control_lock:
            if not run.paused or run.cancel_requested or run.batch.is_terminal:
                return False
            run.batch = transition_batch(run.batch, BatchStatus.TRANSLATING)
            await self._save_quietly(run.batch)
            await self._emit(
                run,
                BatchResumed(
                    batch_id=run.batch.id,
                    project_language_id=run.batch.project_language_id,
                    completed_units=run.completed,
                    total_units=run.batch.units_count,
                ),
            )
            run.paused = False
            run.resume.set()
        await self._log(
            build_batch_log(
                self._clock(), run.batch, BatchLogEvent.RESUMED, "Batch resumed"
            )
        )
        return True

    async def cancel(
        self, batch_id: BatchId, reason: str = _DEFAULT_CANCEL_REASON
    ) -> bool:
        """Cancel a batch.

        A running batch stops before its next chunk. A batch that is not
        running is cancelled immediately. Terminal batches, and batches whose
        last chunk is already dispatched, are left alone.

        Args:
            batch_id: Batch to cancel.
            reason: Cancellation reason carried by the event.

        Returns:
            bool: True when the cancellation request was accepted.

        Raises:
            ExecutionError: If the batch does not exist.
        """
        run = self._runs.get(batch_id)
        if run is not None:
            if run.cancel_requested or run.finishing or run.batch.is_terminal:
                return False
            run.cancel_requested = True
            run.cancel_reason = reason
            run.resume.set()
            return True

        batch = await self._require_batch(batch_id)
        if batch.is_terminal:
            return False
        await self._cancel_idle(batch, reason)
        return True

    def get_progress(self, batch_id: BatchId) -> BatchProgressSnapshot | None:
        """Return running counters for an active batch.

        Args:
            batch_id: Batch identifier.

        Returns:
            BatchProgressSnapshot | None: Snapshot, or None when not running.
        """
        run = self._runs.get(batch_id)
        if run is None:
            return None
        return BatchProgressSnapshot(
            batch_id=run.batch.id,
            project_language_id=run.batch.project_language_id,
            status=run.batch.status,
            total_units=run.batch.units_count,
            completed_units=run.completed,
            failed_units=run.failed,
            updated_at=run.updated_at,
        )

    def active_batch_ids(self) -> list[BatchId]:
        """Return the ids of batches currently executing.

        Returns:
            list[BatchId]: Active batch ids in start order.
        """
        return list(self._runs)

    def _register(
        self, batch: TranslationBatch, context: TranslationContext
    ) -> _BatchRun:
        run = _BatchRun(
            batch=batch,
            context=context,
            completed=batch.units_completed,
            failed=batch.units_failed,
            updated_at=self._clock(),
        )
        self._runs[batch.id] = run
        return run

    async def _cancel_idle(
        self, batch: TranslationBatch, reason: str
    ) -> TranslationBatch:
        batch = transition_batch(
            batch, BatchStatus.CANCELLED, completed_at=self._clock()
        )
        await self._save_quietly(batch)
        if self._event_sink is not None:
            await self._event_sink.emit_event(
                BatchCancelled(
                    batch_id=batch.id,
                    project_language_id=batch.project_language_id,
                    completed_units=batch.units_completed,
                    total_units=batch.units_count,
                    reason=reason,
                )
            )
        await self._log(
            build_batch_log(
                self._clock(),
                batch,
                BatchLogEvent.CANCELLED,
                "Batch cancelled before execution",
                data={"reason": reason},
            )
        )
        return batch

    async def _auto_retry(
        self, result: BatchRunResult, context: TranslationContext
    ) -> BatchRunResult:
        retry_config = self._config.retry
        while (
            retry_config.auto_retry
            and result.status == BatchStatus.FAILED
            and result.can_retry
        ):
            delay = min(
                retry_config.backoff_s * 2**result.retry_count,
                retry_config.max_backoff_s,
            )
            await asyncio.sleep(delay)
            batch = await self._require_batch(result.batch_id)
            if batch.status != BatchStatus.FAILED:
                return self._result(batch)
            result = await self._drive(self._register(batch, context), retry=True)
        return result

    async def _drive(self, run: _BatchRun, *, retry: bool = False) -> BatchRunResult:
        expected = run.batch.status
        try:
            batch = await self._require_batch(run.batch.id)
            if batch.status != expected:
                if batch.is_terminal:
                    # Cancelled while waiting for the project-language slot.
                    return self._result(batch)
                raise self._invalid_state(
                    batch, {BatchStatus(expected)}, "retry" if retry else "execute"
                )
            if retry:
                self._require_retry_budget(batch)
            run.batch = batch
            retry_count = batch.retry_count + 1 if retry else batch.retry_count
            try:
                await self._verify(batch)
            except ExecutionError:
                if run.cancel_requested:
                    run.batch = await self._cancel_idle(
                        batch, run.cancel_reason or _DEFAULT_CANCEL_REASON
                    )
                raise
            if retry:
                reopened = await self._ledger.reopen_failed(batch.id)
                await self._log(
                    build_batch_log(
                        self._clock(),
                        batch,
                        BatchLogEvent.RETRY_SCHEDULED,
                        "Batch retry started",
                        data={"retry_count": retry_count, "reopened_units": reopened},
                    )
                )
            counts = await self._ledger.count_by_status(batch.id)
            if run.cancel_requested:
                run.batch = await self._cancel_idle(
                    batch, run.cancel_reason or _DEFAULT_CANCEL_REASON
                )
                return self._result(run.batch)
            now = self._clock()
            batch = transition_batch(
                batch,
                BatchStatus.TRANSLATING,
                started_at=now,
                completed_at=None,
                error_message=None,
                error_fatal=False,
                retry_count=retry_count,
                units_completed=counts[BatchUnitStatus.COMPLETED],
                units_failed=counts[BatchUnitStatus.FAILED],
            )
            run.batch = batch
            run.completed = batch.units_completed
            run.failed = batch.units_failed
            run.updated_at = now
            run.started = time.monotonic()
            run.active = True
            await self._emit(
                run,
                BatchStarted(
                    batch_id=batch.id,
                    project_language_id=batch.project_language_id,
                    provider_id=batch.provider_id,
                    batch_number=batch.batch_number,
                    total_units=batch.units_count,
                ),
            )
            await self._log(
                build_batch_log(
                    now,
                    batch,
                    BatchLogEvent.STARTED,
                    f"Batch {batch.batch_number} started",
                    data={"retry_count": retry_count, "provider_id": batch.provider_id},
                )
            )
            try:
                await self._batches.update(run.batch)
                finished = await self._process(run)
            except ProviderError as exc:
                await self._fail(
                    run, exc.info.message, str(exc.info.code), fatal=exc.info.is_fatal
                )
            except Exception as exc:
                await self._fail(run, str(exc) or type(exc).__name__, _UNEXPECTED_ERROR)
            except asyncio.CancelledError:
                # The owning task was torn down; leave a terminal record behind.
                await self._cancelled(run, _INTERRUPTED_REASON)
                raise
            else:
                if finished:
                    await self._complete(run)
                else:
                    await self._cancelled(run)
        finally:
            if self._runs.get(run.batch.id) is run:
                del self._runs[run.batch.id]
        return self._result(run.batch)

    async def _process(self, run: _BatchRun) -> bool:
        units = [
            unit
            for unit in await self._ledger.fetch_units(run.batch.id)
            if unit.status == BatchUnitStatus.PENDING
        ]
        if not units:
            return True
        sources = {
            source.unit_id: source
            for source in await self._units.get_source_units(
                [unit.unit_id for unit in units]
            )
        }
        plan = plan_chunks(
            units,
            sources,
            max_units=self._chunk_size(run.context),
            available_chars=self._payload_budget(run.context),
        )
        last = len(plan.chunks) - 1
        for index, chunk in enumerate(plan.chunks):
            if not await self._checkpoint(run):
                return False
            # The last chunk always completes the batch; pause and cancel are refused.
            run.finishing = index == last
            await self._process_chunk(run, chunk, sources, plan.oversized)
        return True

    async def _checkpoint(self, run: _BatchRun) -> bool:
        while run.paused and not run.cancel_requested:
            await run.resume.wait()
        return not run.cancel_requested

    async def _process_chunk(
        self,
        run: _BatchRun,
        chunk: list[TranslationBatchUnit],
        sources: dict[UnitId, SourceUnit],
        oversized: frozenset[BatchUnitId] = frozenset(),
    ) -> None:
        context = run.context
        outcome = _ChunkOutcome()
        dispatch: list[tuple[TranslationBatchUnit, SourceUnit]] = []
        for unit in chunk:
            source = sources.get(unit.unit_id)
            if source is None:
                outcome.failures.append((unit, "Source unit not found"))
                continue
            if unit.id in oversized:
                outcome.failures.append(
                    (unit, "Source text exceeds the request payload budget")
                )
                continue
            reused = run.translated.get(source.source_text)
            if reused is not None:
                outcome.successes.append((unit, reused, False))
                continue
            hit = await self._lookup_memory(run, source)
            if hit:
                run.translated[source.source_text] = hit
                outcome.successes.append((unit, hit, True))
            else:
                dispatch.append((unit, source))

        if dispatch:
            # Identical source texts are translated once per request.
            representatives: dict[str, SourceUnit] = {}
            for _, source in dispatch:
                representatives.setdefault(source.source_text, source)
            request = list(representatives.values())
            await self._log(
                build_batch_log(
                    self._clock(),
                    run.batch,
                    BatchLogEvent.CHUNK_DISPATCHED,
                    f"Dispatching {len(request)} units",
                    level=LogLevel.DEBUG,
                    data={
                        "units": len(request),
                        "duplicates": len(dispatch) - len(request),
                    },
                )
            )
            try:
                responses = await self._provider.translate(context, request)
            except ProviderError as exc:
                if not exc.info.is_unit_local:
                    await self._record(run, outcome)
                    raise
                outcome.failures.extend(
                    (unit, exc.info.message) for unit, _ in dispatch
                )
            else:
                by_unit = {response.unit_id: response for response in responses}
                for unit, source in dispatch:
                    response = by_unit.get(
                        representatives[source.source_text].unit_id
                    )
                    if response is None:
                        outcome.failures.append(
                            (unit, "Provider returned no result for unit")
                        )
                    elif response.error_message:
                        outcome.failures.append((unit, response.error_message))
                    elif not response.translated_text:
                        outcome.failures.append(
                            (unit, "Provider returned an empty translation")
                        )
                    else:
                        run.translated[source.source_text] = response.translated_text
                        outcome.successes.append(
                            (unit, response.translated_text, False)
                        )
        await self._record(run, outcome)

    async def _lookup_memory(self, run: _BatchRun, source: SourceUnit) -> str | None:
        if self._translation_memory is None or run.context.skip_translation_memory:
            return None
        try:
            hit = await self._translation_memory.lookup(
                source.source_text,
                run.context.source_language,
                run.context.target_language,
            )
        except Exception as exc:
            await self._log(
                build_batch_log(
                    self._clock(),
                    run.batch,
                    BatchLogEvent.TM_LOOKUP_FAILED,
                    "Translation memory lookup failed",
                    level=LogLevel.WARN,
                    data={"unit_id": source.unit_id, "error": str(exc)},
                )
            )
            return None
        if hit:
            await self._log(
                build_batch_log(
                    self._clock(),
                    run.batch,
                    BatchLogEvent.TM_HIT,
                    "Translation memory hit",
                    level=LogLevel.DEBUG,
                    data={"unit_id": source.unit_id},
                )
            )
        return hit

    async def _record(self, run: _BatchRun, outcome: _ChunkOutcome) -> None:
        if not outcome.successes and not outcome.failures:
            return
        batch_id = run.batch.id
        if outcome.successes:
            now = self._clock()
            await self._units.save_translations([
                UnitTranslation(
                    unit_id=unit.unit_id,
                    project_language_id=run.batch.project_language_id,
                    batch_id=batch_id,
                    provider_id=run.context.provider_id,
                    model_id=run.context.model_id,
                    translated_text=text,
                    from_translation_memory=from_memory,
                    created_at=now,
                )
                for unit, text, from_memory in outcome.successes
            ])
            await self._ledger.update_statuses(
                batch_id,
                [unit.id for unit, _, _ in outcome.successes],
                BatchUnitStatus.COMPLETED,
            )
        failures_by_message: dict[str, list[TranslationBatchUnit]] = defaultdict(list)
        for unit, message in outcome.failures:
            failures_by_message[message].append(unit)
        for message, units in failures_by_message.items():
            await self._ledger.update_statuses(
                batch_id, [unit.id for unit in units], BatchUnitStatus.FAILED, message
            )
            for unit in units:
                await self._log(
                    build_batch_log(
                        self._clock(),
                        run.batch,
                        BatchLogEvent.UNIT_FAILED,
                        message,
                        level=LogLevel.WARN,
                        data={"unit_id": unit.unit_id},
                    )
                )

        run.completed += len(outcome.successes)
        run.failed += len(outcome.failures)
        run.updated_at = self._clock()
        run.batch = run.batch.model_copy(
            update={"units_completed": run.completed, "units_failed": run.failed}
        )
        await self._batches.update(run.batch)
        await self._emit(
            run,
            BatchProgress(
                batch_id=batch_id,
                total_units=run.batch.units_count,
                completed_units=run.completed,
                failed_units=run.failed,
            ),
        )

    async def _complete(self, run: _BatchRun) -> None:
        run.batch = transition_batch(
            run.batch, BatchStatus.COMPLETED, completed_at=self._clock()
        )
        await self._save_quietly(run.batch)
        await self._emit(
            run,
            BatchCompleted(
                batch_id=run.batch.id,
                project_language_id=run.batch.project_language_id,
                batch_number=run.batch.batch_number,
                total_units=run.batch.units_count,
                completed_units=run.completed,
                failed_units=run.failed,
                processing_duration_s=time.monotonic() - run.started,
            ),
        )
        await self._log(
            build_batch_log(
                self._clock(),
                run.batch,
                BatchLogEvent.COMPLETED,
                f"Batch {run.batch.batch_number} completed",
                data={
                    "units_completed": run.completed,
                    "units_failed": run.failed,
                },
            )
        )

    async def _cancelled(self, run: _BatchRun, reason: str | None = None) -> None:
        reason = reason or run.cancel_reason or _DEFAULT_CANCEL_REASON
        run.batch = transition_batch(
            run.batch, BatchStatus.CANCELLED, completed_at=self._clock()
        )
        await self._save_quietly(run.batch)
        await self._emit(
            run,
            BatchCancelled(
                batch_id=run.batch.id,
                project_language_id=run.batch.project_language_id,
                completed_units=run.completed,
                total_units=run.batch.units_count,
                reason=reason,
            ),
        )
        await self._log(
            build_batch_log(
                self._clock(),
                run.batch,
                BatchLogEvent.CANCELLED,
                f"Batch {run.batch.batch_number} cancelled",
                data={"reason": reason, "units_completed": run.completed},
            )
        )

    async def _fail(
        self, run: _BatchRun, message: str, error_code: str, *, fatal: bool
    ) -> None:
        run.batch = transition_batch(
            run.batch,
            BatchStatus.FAILED,
            completed_at=self._clock(),
            error_message=message,
            error_fatal=fatal,
            units_completed=run.completed,
            units_failed=run.failed,
        )
        await self._save_quietly(run.batch)
        await self._emit(
            run,
            BatchFailed(
                batch_id=run.batch.id,
                project_language_id=run.batch.project_language_id,
                batch_number=run.batch.batch_number,
                error_message=message,
                completed_before_failure=run.completed,
                total_units=run.batch.units_count,
                retry_count=run.batch.retry_count,
                fatal=fatal,
            ),
        )
        await self._log(
            build_batch_failed_log(self._clock(), run.batch, error_code, fatal=fatal)
        )

    def _chunk_size(self, context: TranslationContext) -> int:
        if context.units_per_batch > 0:
            return context.units_per_batch
        chunking = self._config.chunking
        if chunking.default_units_per_batch > 0:
            return chunking.default_units_per_batch
        advertised = self._provider.max_units_per_request
        if advertised is None or advertised <= 0:
            return 1
        return min(advertised, chunking.max_chunk_size)

    def _payload_budget(self, context: TranslationContext) -> int | None:
        chunking = self._config.chunking
        limits = [
            limit
            for limit in (
                chunking.max_chars_per_request,
                self._provider.max_chars_per_request,
            )
            if limit is not None and limit > 0
        ]
        if not limits:
            return None
        overhead = request_overhead(context)
        available = math.floor(min(limits) * chunking.payload_safety_margin) - overhead
        if available <= 0:
            raise ProviderError(
                ProviderErrorInfo(
                    code=ProviderErrorCode.CONFIGURATION,
                    message="Request overhead exceeds the provider payload budget",
                    details=ProviderErrorDetails(
                        provider_id=context.provider_id,
                        reason=f"overhead {overhead} chars, budget {min(limits)}",
                    ),
                )
            )
        return available

    async def _verify(self, batch: TranslationBatch) -> None:
        try:
            await self._ledger.verify(batch)
        except LedgerError as exc:
            raise ExecutionError(
                ExecutionErrorInfo(
                    code=ExecutionErrorCode.INCOMPLETE_BATCH,
                    message=exc.info.message,
                    details=ExecutionErrorDetails(
                        batch_id=batch.id,
                        reason=exc.info.details.reason
                        if exc.info.details is not None
                        else None,
                    ),
                )
            ) from exc

    async def _require_batch(self, batch_id: BatchId) -> TranslationBatch:
        batch = await self._batches.get(batch_id)
        if batch is None:
            raise ExecutionError(
                ExecutionErrorInfo(
                    code=ExecutionErrorCode.BATCH_NOT_FOUND,
                    message=f"Batch {batch_id} not found",
                    details=ExecutionErrorDetails(batch_id=batch_id),
                )
            )
        return batch

    def _require_status(
        self,
        batch: TranslationBatch,
        allowed: set[BatchStatus],
        operation: str,
    ) -> None:
        if batch.status not in allowed or batch.id in self._runs:
            raise self._invalid_state(batch, allowed, operation)

    def _require_retryable(self, batch: TranslationBatch) -> None:
        self._require_status(batch, {BatchStatus.FAILED}, "retry")
        self._require_retry_budget(batch)

    def _require_retry_budget(self, batch: TranslationBatch) -> None:
        if batch.error_fatal:
            code = ExecutionErrorCode.NOT_RETRYABLE
            message = f"Batch {batch.batch_number} failed with a fatal error"
        elif batch.retry_count >= self._config.retry.max_retries:
            code = ExecutionErrorCode.RETRY_EXHAUSTED
            message = (
                f"Batch {batch.batch_number} exhausted "
                f"{self._config.retry.max_retries} retries"
            )
        else:
            return
        raise ExecutionError(
            ExecutionErrorInfo(
                code=code,
                message=message,
                details=ExecutionErrorDetails(
                    batch_id=batch.id,
                    status=BatchStatus(batch.status),
                    reason=batch.error_message,
                ),
            )
        )

    @staticmethod
    def _require_context(
        batch: TranslationBatch, context: TranslationContext
    ) -> None:
        if context.project_language_id != batch.project_language_id:
            raise ExecutionError(
                ExecutionErrorInfo(
                    code=ExecutionErrorCode.CONTEXT_MISMATCH,
                    message=(
                        f"Context targets {context.project_language_id}, "
                        f"batch belongs to {batch.project_language_id}"
                    ),
                    details=ExecutionErrorDetails(batch_id=batch.id),
                )
            )

    def _invalid_state(
        self,
        batch: TranslationBatch,
        allowed: set[BatchStatus],
        operation: str,
    ) -> ExecutionError:
        running = " (already running)" if batch.id in self._runs else ""
        return ExecutionError(
            ExecutionErrorInfo(
                code=ExecutionErrorCode.INVALID_STATE,
                message=(
                    f"Cannot {operation} batch {batch.batch_number} "
                    f"in status {batch.status}{running}"
                ),
                details=ExecutionErrorDetails(
                    batch_id=batch.id,
                    status=BatchStatus(batch.status),
                    valid_statuses=sorted(allowed),
                ),
            )
        )

    def _result(self, batch: TranslationBatch) -> BatchRunResult:
        return BatchRunResult(
            batch_id=batch.id,
            project_language_id=batch.project_language_id,
            batch_number=batch.batch_number,
            status=batch.status,
            total_units=batch.units_count,
            completed_units=batch.units_completed,
            failed_units=batch.units_failed,
            retry_count=batch.retry_count,
            error_message=batch.error_message,
            can_retry=batch.can_retry
            and batch.retry_count < self._config.retry.max_retries,
        )

    async def _save_quietly(self, batch: TranslationBatch) -> None:
        try:
            await self._batches.update(batch)
        except Exception as exc:
            await self._log(
                build_batch_log(
                    self._clock(),
                    batch,
                    BatchLogEvent.PERSIST_FAILED,
                    "Failed to persist batch status",
                    level=LogLevel.ERROR,
                    data={"error": str(exc)},
                )
            )

    async def _emit(self, run: _BatchRun, event: BatchEvent) -> None:
        if self._event_sink is None:
            return
        async with run.emit_lock:
            await self._event_sink.emit_event(event)

    async def _log(self, entry: LogEntry) -> None:
        if self._log_sink is not None:
            await self._log_sink.emit_log(entry)


def _context_for(batch: TranslationBatch, source: ContextSource) -> TranslationContext:
    if isinstance(source, TranslationContext):
        return source
    context = source.get(batch.project_language_id)
    if context is None:
        raise ExecutionError(
            ExecutionErrorInfo(
                code=ExecutionErrorCode.CONTEXT_MISMATCH,
                message=f"No context for project-language {batch.project_language_id}",
                details=ExecutionErrorDetails(batch_id=batch.id),
            )
        )
    return context

