"""
Catalog provider interface and the in-memory implementation.

A catalog provider is the only thing that talks to the database. Given a
statistic category (and optionally a schema/table scope) it returns a
fully materialized list of typed rows, or fails with:

- DataUnavailableError: an optional source does not exist (no
  pg_stat_statements, no replication). Callers degrade gracefully.
- DataFetchError: the query failed. Callers abort the run.

Design principle: providers are fact providers
- They never interpret counters; evaluators do that
- They hold no state shared between fetches
- They are passed explicitly into the service (no global connection)

Usage:
    from dbtriage.catalog import InMemoryCatalogProvider, load_snapshot

    provider = load_snapshot("snapshot.json")
    rows = provider.fetch(StatCategory.TABLE_ACTIVITY)
"""

from __future__ import annotations

import json
import logging
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping, Protocol, Sequence

import yaml
from pydantic import ValidationError

from dbtriage.catalog.models import ROW_TYPES, StatCategory, StatRow, TableScoped
from dbtriage.exceptions import DataFetchError, DataUnavailableError, SnapshotError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class QueryResult:
    """Result of a free-form read-only statement."""

    columns: tuple[str, ...]
    rows: tuple[dict[str, Any], ...] = ()

    @property
    def row_count(self) -> int:
        return len(self.rows)


class CatalogProvider(Protocol):
    """
    Protocol for catalog provider implementations.

    All methods are synchronous and read-only.
    """

    def fetch(
        self,
        category: StatCategory,
        schema: str | None = None,
        table: str | None = None,
    ) -> list[StatRow]:
        """Return the rows of one statistic category, optionally scoped to a table."""
        ...

    def run_query(self, statement: str) -> QueryResult:
        """Run a free-form statement that already passed the read-only gate."""
        ...

    def explain(self, statement: str) -> list[dict[str, Any]]:
        """Return the planner's EXPLAIN (FORMAT JSON) output without executing."""
        ...

    def close(self) -> None:
        """Release any resources held by the provider."""
        ...


def _matches_scope(row: StatRow, schema: str | None, table: str | None) -> bool:
    if not isinstance(row, TableScoped):
        return True
    if schema is not None and row.schema_name != schema:
        return False
    if table is not None and row.table_name != table:
        return False
    return True


@dataclass
class InMemoryCatalogProvider:
    """
    Provider backed by already-captured rows.

    Used for offline analysis of snapshot files and for tests.

    A category missing from ``data`` is treated as:
    - unavailable, when the category is optional (replication, statements)
    - empty, otherwise

    ``failures`` simulates sources that reject the query.
    """

    data: Mapping[StatCategory, Sequence[StatRow]] = field(default_factory=dict)
    failures: Mapping[StatCategory, str] = field(default_factory=dict)
    query_results: Mapping[str, QueryResult] = field(default_factory=dict)
    plans: Mapping[str, list[dict[str, Any]]] = field(default_factory=dict)
    fetch_count: int = 0
    _lock: threading.Lock = field(
        default_factory=threading.Lock, init=False, repr=False, compare=False
    )

    def fetch(
        self,
        category: StatCategory,
        schema: str | None = None,
        table: str | None = None,
    ) -> list[StatRow]:
        with self._lock:
            self.fetch_count += 1

        if category in self.failures:
            raise DataFetchError(
                f"Query execution failed: {self.failures[category]}",
                category=category.value,
            )

        if category not in self.data:
            if category.is_optional:
                raise DataUnavailableError(
                    f"{category.value} statistics are not available",
                    category=category.value,
                )
            return []

        return [row for row in self.data[category] if _matches_scope(row, schema, table)]

    def run_query(self, statement: str) -> QueryResult:
        key = statement.strip()
        if key not in self.query_results:
            raise DataFetchError(f"Query execution failed: no result recorded for {key!r}")
        return self.query_results[key]

    def explain(self, statement: str) -> list[dict[str, Any]]:
        key = statement.strip()
        if key not in self.plans:
            raise DataFetchError(f"Failed to analyze query: no plan recorded for {key!r}")
        return self.plans[key]

    def close(self) -> None:
        pass


def parse_snapshot(data: Mapping[str, Any], source: str | None = None) -> InMemoryCatalogProvider:
    """
    Build an in-memory provider from a snapshot mapping.

    Keys are category names (``table_activity``, ``index_usage``, ...).
    An optional category given as ``null`` is recorded as unavailable.

    Raises:
        SnapshotError: Unknown category or malformed row.
    """
    if not isinstance(data, Mapping):
        raise SnapshotError("Snapshot must be a mapping of category name to rows", source=source)

    rows: dict[StatCategory, list[StatRow]] = {}
    for key, raw_rows in data.items():
        try:
            category = StatCategory(key)
        except ValueError:
            raise SnapshotError(f"Unknown statistic category: {key!r}", source=source) from None

        if raw_rows is None:
            continue
        if not isinstance(raw_rows, list):
            raise SnapshotError(f"Category {key!r} must be a list of rows", source=source)

        row_type = ROW_TYPES[category]
        try:
            rows[category] = [row_type.model_validate(raw) for raw in raw_rows]
        except ValidationError as e:
            raise SnapshotError(f"Invalid row in {key!r}: {e}", source=source) from e

    logger.debug("Loaded snapshot with %d categories from %s", len(rows), source or "mapping")
    return InMemoryCatalogProvider(data=rows)


def load_snapshot(path: str | Path) -> InMemoryCatalogProvider:
    """
    Load a JSON or YAML snapshot file into an in-memory provider.

    Raises:
        SnapshotError: File missing, unreadable, or malformed.
    """
    path = Path(path)
    if not path.exists():
        raise SnapshotError(f"Snapshot file not found: {path}", source=str(path))

    try:
        text = path.read_text()
    except OSError as e:
        raise SnapshotError(f"Cannot read snapshot file: {e}", source=str(path)) from e

    try:
        if path.suffix in (".yaml", ".yml"):
            data = yaml.safe_load(text)
        else:
            data = json.loads(text)
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        raise SnapshotError(f"Snapshot file is not valid: {e}", source=str(path)) from e

    return parse_snapshot(data, source=str(path))
