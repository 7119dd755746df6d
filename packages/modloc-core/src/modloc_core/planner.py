"""Batch planner: selects untranslated units and creates numbered batches."""

from __future__ import annotations

import asyncio
from collections import defaultdict
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass
from uuid import uuid7

from modloc_core.ports.planning import (
    PlanningError,
    PlanningErrorCode,
    PlanningErrorDetails,
    PlanningErrorInfo,
    build_batch_created_log,
    build_planning_failed_log,
)
from modloc_core.ports.repositories import (
    BatchRepositoryProtocol,
    BatchUnitRepositoryProtocol,
    UnitRepositoryProtocol,
)
from modloc_core.ports.sinks import LogSinkProtocol
from modloc_schemas.batch import TranslationBatch, TranslationBatchUnit
from modloc_schemas.primitives import (
    BatchId,
    ProjectLanguageId,
    ProviderId,
    Timestamp,
    UnitId,
    utc_timestamp,
)


@dataclass(frozen=True, slots=True)
class PlannedBatch:
    """A persisted batch header together with its unit rows."""

    batch: TranslationBatch
    units: list[TranslationBatchUnit]

    @property
    def batch_id(self) -> BatchId:
        """Identifier of the planned batch."""
        return self.batch.id


class BatchPlanner:
    """Create batches and their ledger rows for a project-language."""

    def __init__(
        self,
        unit_repository: UnitRepositoryProtocol,
        batch_repository: BatchRepositoryProtocol,
        batch_unit_repository: BatchUnitRepositoryProtocol,
        log_sink: LogSinkProtocol | None = None,
        clock: Callable[[], Timestamp] | None = None,
    ) -> None:
        """Initialize the planner.

        Args:
            unit_repository: Untranslated unit lookups.
            batch_repository: Batch header persistence.
            batch_unit_repository: Batch unit persistence.
            log_sink: Optional log sink for planning events.
            clock: Optional timestamp provider.
        """
        self._unit_repository = unit_repository
        self._batch_repository = batch_repository
        self._batch_unit_repository = batch_unit_repository
        self._log_sink = log_sink
        self._clock = clock or utc_timestamp
        # Numbering reads max(existing) and inserts; both must happen under one lock.
        self._numbering_locks: defaultdict[str, asyncio.Lock] = defaultdict(
            asyncio.Lock
        )

    async def select_units(
        self,
        project_language_id: ProjectLanguageId,
        candidate_unit_ids: Sequence[UnitId] | None = None,
    ) -> list[UnitId]:
        """Determine which units still need translation.

        Args:
            project_language_id: Project-language to plan for.
            candidate_unit_ids: Optional caller-filtered candidates.

        Returns:
            list[UnitId]: Untranslated unit ids, duplicates removed.

        Raises:
            PlanningError: If the unit lookup fails.
        """
        try:
            if candidate_unit_ids is None:
                unit_ids = await self._unit_repository.get_untranslated_ids(
                    project_language_id
                )
            else:
                unit_ids = await self._unit_repository.filter_untranslated_ids(
                    _unique(candidate_unit_ids), project_language_id
                )
        except Exception as exc:
            raise await self._fail(
                project_language_id,
                PlanningErrorCode.LOOKUP_FAILED,
                "Untranslated unit lookup failed",
                reason=str(exc),
            ) from exc
        return _unique(unit_ids)

    async def create_batch(
        self,
        project_language_id: ProjectLanguageId,
        provider_id: ProviderId,
        unit_ids: Sequence[UnitId],
    ) -> PlannedBatch:
        """Create one batch whose processing order follows ``unit_ids``.

        Args:
            project_language_id: Owning project-language.
            provider_id: Provider the batch will be dispatched to.
            unit_ids: Units in dispatch order.

        Returns:
            PlannedBatch: Persisted batch header and unit rows.

        Raises:
            PlanningError: If there are no units, the batch number cannot be
                determined, or an insert fails.
        """
        ordered = _unique(unit_ids)
        if not ordered:
            raise await self._fail(
                project_language_id,
                PlanningErrorCode.NO_UNITS,
                "No untranslated units to plan",
            )
        async with self._numbering_locks[project_language_id]:
            batch_number = await self._next_batch_number(project_language_id)
            batch = TranslationBatch(
                id=uuid7(),
                project_language_id=project_language_id,
                provider_id=provider_id,
                batch_number=batch_number,
                units_count=len(ordered),
            )
            try:
                await self._batch_repository.insert(batch)
            except Exception as exc:
                raise await self._fail(
                    project_language_id,
                    PlanningErrorCode.HEADER_INSERT_FAILED,
                    f"Batch {batch_number} header insert failed",
                    reason=str(exc),
                ) from exc

        units = [
            TranslationBatchUnit(
                id=uuid7(),
                batch_id=batch.id,
                unit_id=unit_id,
                processing_order=index,
            )
            for index, unit_id in enumerate(ordered)
        ]
        try:
            await self._batch_unit_repository.insert_batch(units)
        except Exception as exc:
            raise await self._fail(
                project_language_id,
                PlanningErrorCode.UNITS_INSERT_FAILED,
                f"Batch {batch_number} unit insert failed; do not execute it",
                batch_id=batch.id,
                reason=str(exc),
            ) from exc

        if self._log_sink is not None:
            await self._log_sink.emit_log(
                build_batch_created_log(
                    self._clock(),
                    project_language_id,
                    batch.id,
                    batch_number,
                    len(units),
                )
            )
        return PlannedBatch(batch=batch, units=units)

    async def plan(
        self,
        project_language_id: ProjectLanguageId,
        provider_id: ProviderId,
        *,
        candidate_unit_ids: Sequence[UnitId] | None = None,
        max_units_per_batch: int | None = None,
    ) -> list[PlannedBatch]:
        """Select untranslated units and split them into numbered batches.

        Args:
            project_language_id: Owning project-language.
            provider_id: Provider the batches will be dispatched to.
            candidate_unit_ids: Optional caller-filtered candidates.
            max_units_per_batch: Optional upper bound on batch size.

        Returns:
            list[PlannedBatch]: Batches in ascending batch number order.

        Raises:
            ValueError: If max_units_per_batch is not positive.
            PlanningError: If selection or creation fails.
        """
        if max_units_per_batch is not None and max_units_per_batch <= 0:
            raise ValueError("max_units_per_batch must be positive")
        unit_ids = await self.select_units(project_language_id, candidate_unit_ids)
        if not unit_ids:
            raise await self._fail(
                project_language_id,
                PlanningErrorCode.NO_UNITS,
                "No untranslated units to plan",
            )
        size = max_units_per_batch or len(unit_ids)
        planned: list[PlannedBatch] = []
        for start in range(0, len(unit_ids), size):
            planned.append(
                await self.create_batch(
                    project_language_id,
                    provider_id,
                    unit_ids[start : start + size],
                )
            )
        return planned

    async def _next_batch_number(self, project_language_id: ProjectLanguageId) -> int:
        try:
            existing = await self._batch_repository.get_by_project_language(
                project_language_id
            )
        except Exception as exc:
            raise await self._fail(
                project_language_id,
                PlanningErrorCode.LOOKUP_FAILED,
                "Existing batch lookup failed",
                reason=str(exc),
            ) from exc
        return max((batch.batch_number for batch in existing), default=0) + 1

    async def _fail(
        self,
        project_language_id: ProjectLanguageId,
        code: PlanningErrorCode,
        message: str,
        *,
        batch_id: BatchId | None = None,
        reason: str | None = None,
    ) -> PlanningError:
        info = PlanningErrorInfo(
            code=code,
            message=message,
            details=PlanningErrorDetails(
                project_language_id=project_language_id,
                batch_id=batch_id,
                reason=reason,
            ),
        )
        if self._log_sink is not None:
            await self._log_sink.emit_log(
                build_planning_failed_log(self._clock(), project_language_id, info)
            )
        return PlanningError(info)


def _unique(unit_ids: Iterable[UnitId]) -> list[UnitId]:
    return list(dict.fromkeys(unit_ids))
