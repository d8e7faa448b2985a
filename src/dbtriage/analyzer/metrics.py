"""
Small numeric helpers shared by evaluators and inspection reports.

Percentages are on a 0-100 scale and rounded to two decimals only where
they are presented; threshold comparisons use the unrounded values.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from dbtriage.catalog.models import TableIORow

_SIZE_UNITS = ("bytes", "kB", "MB", "GB", "TB", "PB")


def percent(part: float, whole: float, empty: float = 0.0) -> float:
    """``100 * part / whole``, or ``empty`` when whole is zero."""
    if whole <= 0:
        return empty
    return part / whole * 100


def bloat_percentage(live: int, dead: int) -> float:
    """Dead tuples as a percentage of all tuples, rounded to 2 places."""
    return round(percent(dead, live + dead), 2)


def bloat_label(pct: float) -> str:
    """Classify a dead-tuple percentage."""
    if pct > 20:
        return "High"
    if pct > 10:
        return "Moderate"
    return "Low"


@dataclass(frozen=True)
class CacheHitRatios:
    """Buffer cache hit percentages across user tables."""

    overall: float
    heap: float
    index: float

    def rounded(self) -> CacheHitRatios:
        return CacheHitRatios(
            overall=round(self.overall, 2),
            heap=round(self.heap, 2),
            index=round(self.index, 2),
        )


def cache_hit_ratios(rows: Iterable[TableIORow]) -> CacheHitRatios:
    """
    Aggregate heap and index cache hit ratios.

    A ratio with no reads at all is reported as 100 (nothing missed).
    """
    heap_read = heap_hit = idx_read = idx_hit = 0
    for row in rows:
        heap_read += row.heap_blks_read
        heap_hit += row.heap_blks_hit
        idx_read += row.idx_blks_read
        idx_hit += row.idx_blks_hit

    total_heap = heap_read + heap_hit
    total_idx = idx_read + idx_hit
    return CacheHitRatios(
        overall=percent(heap_hit + idx_hit, total_heap + total_idx, empty=100.0),
        heap=percent(heap_hit, total_heap, empty=100.0),
        index=percent(idx_hit, total_idx, empty=100.0),
    )


def heap_cache_hit_ratio(row: TableIORow) -> float:
    """Heap-only hit ratio for one table (0 when the table was never read)."""
    return round(percent(row.heap_blks_hit, row.heap_blks_read + row.heap_blks_hit), 2)


def pretty_size(num_bytes: int | float | None) -> str:
    """Human-readable size in the style of pg_size_pretty."""
    if num_bytes is None:
        return "0 bytes"
    value = float(num_bytes)
    for unit in _SIZE_UNITS:
        if abs(value) < 10 * 1024 or unit == _SIZE_UNITS[-1]:
            return f"{int(round(value))} {unit}"
        value /= 1024
    return f"{int(round(value))} {_SIZE_UNITS[-1]}"
