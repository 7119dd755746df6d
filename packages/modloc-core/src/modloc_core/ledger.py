"""Batch unit ledger: per-unit status record with monotonic transitions."""

from __future__ import annotations

from collections import Counter
from collections.abc import Sequence

from modloc_core.ports.execution import (
    LedgerError,
    LedgerErrorCode,
    LedgerErrorDetails,
    LedgerErrorInfo,
)
from modloc_core.ports.repositories import BatchUnitRepositoryProtocol
from modloc_schemas.batch import (
    InvalidTransitionError,
    TranslationBatch,
    TranslationBatchUnit,
    reopen_unit,
    transition_unit,
)
from modloc_schemas.primitives import BatchId, BatchUnitId, BatchUnitStatus


class BatchUnitLedger:
    """Addressable record of unit status within batches.

    The ledger owns the transition rules: a unit moves from pending to
    completed or failed exactly once. ``reopen_failed`` is the only path back
    to pending and exists for batch retries.
    """

    def __init__(self, repository: BatchUnitRepositoryProtocol) -> None:
        """Initialize the ledger.

        Args:
            repository: Batch unit persistence.
        """
        self._repository = repository

    async def fetch_units(self, batch_id: BatchId) -> list[TranslationBatchUnit]:
        """Return the units of a batch sorted by processing order.

        Args:
            batch_id: Batch identifier.

        Returns:
            list[TranslationBatchUnit]: Unit rows in dispatch order.
        """
        units = await self._repository.get_by_batch(batch_id)
        return sorted(units, key=lambda unit: unit.processing_order)

    async def update_status(
        self,
        batch_id: BatchId,
        unit_row_id: BatchUnitId,
        status: BatchUnitStatus,
        error_message: str | None = None,
    ) -> TranslationBatchUnit:
        """Move a single unit to a terminal status.

        Args:
            batch_id: Owning batch.
            unit_row_id: Batch unit row identifier.
            status: Target status.
            error_message: Failure reason for failed units.

        Returns:
            TranslationBatchUnit: Updated unit row.
        """
        updated = await self.update_statuses(
            batch_id, [unit_row_id], status, error_message
        )
        return updated[0]

    async def update_statuses(
        self,
        batch_id: BatchId,
        unit_row_ids: Sequence[BatchUnitId],
        status: BatchUnitStatus,
        error_message: str | None = None,
    ) -> list[TranslationBatchUnit]:
        """Move several units of one batch to the same terminal status.

        Args:
            batch_id: Owning batch.
            unit_row_ids: Batch unit row identifiers.
            status: Target status.
            error_message: Failure reason for failed units.

        Returns:
            list[TranslationBatchUnit]: Updated unit rows.

        Raises:
            LedgerError: If a row is unknown or the transition is not allowed.
        """
        if not unit_row_ids:
            return []
        rows = {unit.id: unit for unit in await self._repository.get_by_batch(batch_id)}
        updated: list[TranslationBatchUnit] = []
        for row_id in unit_row_ids:
            unit = rows.get(row_id)
            if unit is None:
                raise LedgerError(
                    LedgerErrorInfo(
                        code=LedgerErrorCode.NOT_FOUND,
                        message=f"Batch unit {row_id} not found",
                        details=LedgerErrorDetails(
                            batch_id=batch_id, unit_row_id=str(row_id)
                        ),
                    )
                )
            try:
                updated.append(transition_unit(unit, status, error_message))
            except InvalidTransitionError as exc:
                raise LedgerError(
                    LedgerErrorInfo(
                        code=LedgerErrorCode.INVALID_TRANSITION,
                        message=str(exc),
                        details=LedgerErrorDetails(
                            batch_id=batch_id,
                            unit_row_id=str(row_id),
                            reason=f"{exc.current} -> {exc.target}",
                        ),
                    )
                ) from exc
        await self._repository.update_many(updated)
        return updated

    async def count_by_status(self, batch_id: BatchId) -> dict[BatchUnitStatus, int]:
        """Count units of a batch per status.

        Args:
            batch_id: Batch identifier.

        Returns:
            dict[BatchUnitStatus, int]: Count for every status, zero included.
        """
        counts = Counter(
            BatchUnitStatus(unit.status)
            for unit in await self._repository.get_by_batch(batch_id)
        )
        return {status: counts.get(status, 0) for status in BatchUnitStatus}

    async def verify(self, batch: TranslationBatch) -> list[TranslationBatchUnit]:
        """Check that a batch's unit rows are complete and well formed.

        Args:
            batch: Batch header row.

        Returns:
            list[TranslationBatchUnit]: Unit rows in dispatch order.

        Raises:
            LedgerError: If rows are missing, misnumbered or duplicated.
        """
        units = await self.fetch_units(batch.id)
        reason: str | None = None
        if not units:
            reason = "batch has no unit rows"
        elif len(units) != batch.units_count:
            reason = f"expected {batch.units_count} unit rows, found {len(units)}"
        elif [unit.processing_order for unit in units] != list(range(len(units))):
            reason = "processing order is not a permutation of 0..K-1"
        elif len({unit.unit_id for unit in units}) != len(units):
            reason = "unit ids are duplicated within the batch"
        if reason is not None:
            raise LedgerError(
                LedgerErrorInfo(
                    code=LedgerErrorCode.INCOMPLETE_BATCH,
                    message=f"Batch {batch.batch_number} unit rows are invalid",
                    details=LedgerErrorDetails(batch_id=batch.id, reason=reason),
                )
            )
        return units

    async def reopen_failed(self, batch_id: BatchId) -> int:
        """Reset the failed units of a batch to pending ahead of a retry.

        Args:
            batch_id: Batch identifier.

        Returns:
            int: Number of units reopened.
        """
        reopened = [
            reopen_unit(unit)
            for unit in await self._repository.get_by_batch(batch_id)
            if unit.status == BatchUnitStatus.FAILED
        ]
        if reopened:
            await self._repository.update_many(reopened)
        return len(reopened)
