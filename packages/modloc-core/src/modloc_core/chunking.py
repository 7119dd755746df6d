"""Request sizing: group a batch's units into provider-sized chunks."""

from __future__ import annotations

import math
from collections.abc import Mapping, Sequence
from dataclasses import dataclass

from modloc_schemas.batch import TranslationBatchUnit
from modloc_schemas.context import TranslationContext
from modloc_schemas.primitives import BatchUnitId, UnitId
from modloc_schemas.translation import SourceUnit

STRUCTURE_OVERHEAD_RATIO = 1.05
OUTPUT_ESTIMATE_RATIO = 1.0


@dataclass(frozen=True, slots=True)
class ChunkPlan:
    """Units grouped into provider requests, in processing order.

    Units listed in ``oversized`` cannot fit any request on their own. They
    stay in their chunk so ordering is kept, but are never sent.
    """

    chunks: list[list[TranslationBatchUnit]]
    oversized: frozenset[BatchUnitId] = frozenset()


def request_overhead(context: TranslationContext) -> int:
    """Estimate the characters every request spends on shared context.

    Args:
        context: Request context sent with each chunk.

    Returns:
        int: Estimated overhead in characters.
    """
    chars = 0
    for term in context.glossary_terms:
        chars += len(term.source_term) + len(term.target_term)
        chars += sum(
            len(variant.source_form) + len(variant.target_form)
            for variant in term.variants
        )
    return math.ceil(chars * STRUCTURE_OVERHEAD_RATIO)


def unit_cost(source: SourceUnit) -> int:
    """Estimate the characters one unit adds to a request and its response.

    Args:
        source: Source unit.

    Returns:
        int: Key, source text and expected output length.
    """
    text = len(source.source_text)
    return len(source.key) + text + math.ceil(text * OUTPUT_ESTIMATE_RATIO)


def plan_chunks(
    units: Sequence[TranslationBatchUnit],
    sources: Mapping[UnitId, SourceUnit],
    *,
    max_units: int,
    available_chars: int | None = None,
) -> ChunkPlan:
    """Split units into chunks bounded by unit count and payload size.

    Args:
        units: Units in processing order.
        sources: Source units by unit id; missing sources cost nothing.
        max_units: Largest number of units per chunk.
        available_chars: Payload budget per chunk, None for no limit.

    Returns:
        ChunkPlan: Chunks in processing order.

    Raises:
        ValueError: If max_units or available_chars is not positive.
    """
    if max_units <= 0:
        raise ValueError("max_units must be positive")
    if available_chars is not None and available_chars <= 0:
        raise ValueError("available_chars must be positive")
    if available_chars is None:
        return ChunkPlan(
            chunks=[
                list(units[start : start + max_units])
                for start in range(0, len(units), max_units)
            ]
        )

    chunks: list[list[TranslationBatchUnit]] = []
    oversized: set[BatchUnitId] = set()
    current: list[TranslationBatchUnit] = []
    used = 0
    for unit in units:
        source = sources.get(unit.unit_id)
        cost = unit_cost(source) if source is not None else 0
        if cost > available_chars:
            oversized.add(unit.id)
            cost = 0
        if current and (len(current) >= max_units or used + cost > available_chars):
            chunks.append(current)
            current = []
            used = 0
        current.append(unit)
        used += cost
    if current:
        chunks.append(current)
    return ChunkPlan(chunks=chunks, oversized=frozenset(oversized))
