"""
Snapshot collection: fetch every category an analysis needs, up front.

The analyzer never streams. It is fed one complete, immutable snapshot
per run. Collection can run categories concurrently (each fetch is an
independent read against the provider), but aggregation only starts
once every batch has arrived.

Failure semantics:
- Optional category unavailable → recorded in ``unavailable``, run continues
- Anything else fails → pending fetches are cancelled and the error propagates
"""

from __future__ import annotations

import logging
import time
from concurrent.futures import FIRST_EXCEPTION, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from typing import Iterable, Mapping

from dbtriage.catalog.models import StatCategory, StatRow
from dbtriage.catalog.provider import CatalogProvider
from dbtriage.exceptions import DataFetchError, DataUnavailableError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CatalogSnapshot:
    """
    Rows for a set of categories, captured for one analysis run.

    Attributes:
        rows: Category → rows, for every category that was fetched.
        unavailable: Optional category → reason it could not be read.
    """

    rows: Mapping[StatCategory, tuple[StatRow, ...]] = field(default_factory=dict)
    unavailable: Mapping[StatCategory, str] = field(default_factory=dict)

    def get(self, category: StatCategory) -> tuple[StatRow, ...]:
        """Rows for a category (empty when unavailable or not fetched)."""
        return self.rows.get(category, ())

    def is_available(self, category: StatCategory) -> bool:
        return category in self.rows

    def first(self, category: StatCategory) -> StatRow | None:
        rows = self.get(category)
        return rows[0] if rows else None


def _fetch_one(
    provider: CatalogProvider,
    category: StatCategory,
    schema: str | None,
    table: str | None,
) -> tuple[StatCategory, tuple[StatRow, ...] | None, str | None]:
    start_time = time.perf_counter()
    try:
        rows = provider.fetch(category, schema=schema, table=table)
    except DataUnavailableError as e:
        if not category.is_optional:
            raise DataFetchError(
                f"Required statistics source {category.value!r} is unavailable: {e.message}",
                category=category.value,
                original_error=e,
            ) from e
        logger.info("Optional source %s unavailable: %s", category.value, e.message)
        return category, None, e.message

    duration = time.perf_counter() - start_time
    logger.debug("Fetched %d %s rows in %.3fs", len(rows), category.value, duration)
    return category, tuple(rows), None


def collect_snapshot(
    provider: CatalogProvider,
    categories: Iterable[StatCategory],
    schema: str | None = None,
    table: str | None = None,
    max_workers: int = 1,
) -> CatalogSnapshot:
    """
    Fetch every requested category into one snapshot.

    Args:
        provider: Data source to read from.
        categories: Categories the caller needs.
        schema: Optional scope for table-scoped categories.
        table: Optional scope for table-scoped categories.
        max_workers: Values above 1 fetch categories concurrently.

    Returns:
        CatalogSnapshot containing every category (or its unavailability).

    Raises:
        DataFetchError: A mandatory fetch failed; no partial snapshot is returned.
    """
    ordered = list(dict.fromkeys(categories))
    results: list[tuple[StatCategory, tuple[StatRow, ...] | None, str | None]] = []

    if max_workers <= 1 or len(ordered) <= 1:
        for category in ordered:
            results.append(_fetch_one(provider, category, schema, table))
    else:
        executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="dbtriage-fetch")
        try:
            futures = [
                executor.submit(_fetch_one, provider, category, schema, table)
                for category in ordered
            ]
            done, pending = wait(futures, return_when=FIRST_EXCEPTION)
            for future in futures:
                if future in done and future.exception() is not None:
                    for other in pending:
                        other.cancel()
                    raise future.exception()  # type: ignore[misc]
            results = [future.result() for future in futures]
        finally:
            executor.shutdown(wait=True, cancel_futures=True)

    rows: dict[StatCategory, tuple[StatRow, ...]] = {}
    unavailable: dict[StatCategory, str] = {}
    for category, category_rows, reason in results:
        if category_rows is None:
            unavailable[category] = reason or "unavailable"
        else:
            rows[category] = category_rows

    return CatalogSnapshot(rows=rows, unavailable=unavailable)
