"""
Per-table inspection reports and table listings.

Each builder is a pure function of a snapshot scoped to one table (the
service fetches with schema/table filters). Rows are filtered again here
so an unscoped snapshot gives the same answer.

A table that does not exist raises InvalidTargetError rather than
producing an empty report.
"""

from __future__ import annotations

import math
from collections import defaultdict
from typing import Sequence, TypeVar

from dbtriage.analyzer.evaluators import UnusedIndex
from dbtriage.analyzer.index_relationships import find_index_relationships
from dbtriage.analyzer.metrics import (
    bloat_label,
    bloat_percentage,
    heap_cache_hit_ratio,
    percent,
    pretty_size,
)
from dbtriage.catalog.models import (
    ColumnProfileRow,
    ColumnRow,
    ConstraintRow,
    ForeignKeyRow,
    IndexUsageRow,
    StatCategory,
    TableActivityRow,
    TableIORow,
    TableListingRow,
    TableScoped,
)
from dbtriage.catalog.snapshot import CatalogSnapshot
from dbtriage.exceptions import InvalidTargetError
from dbtriage.reports.models import (
    BloatAnalysis,
    BloatEstimate,
    ColumnAnalysis,
    DataTypeIssue,
    DatabaseMetadataReport,
    ForeignKeyAnalysis,
    IndexingContext,
    IndexingStrategiesReport,
    IndexStatistics,
    IndexUsageStats,
    IOStatistics,
    MetadataConstraint,
    MetadataIndex,
    MetadataSchema,
    MetadataTable,
    QueryStatisticsReport,
    SchemaOptimizationsReport,
    TableColumn,
    TableConstraint,
    TableCounters,
    TableIndex,
    TableInfoReport,
    TableListingItem,
    TableListReport,
    TableScanAnalysis,
    UnindexedForeignKey,
    UnusedIndexInfo,
)

QUERY_STATISTICS_CATEGORIES = (
    StatCategory.TABLE_ACTIVITY,
    StatCategory.TABLE_IO,
    StatCategory.INDEX_USAGE,
)
INDEXING_CATEGORIES = (
    StatCategory.TABLE_ACTIVITY,
    StatCategory.INDEX_USAGE,
    StatCategory.FOREIGN_KEYS,
)
SCHEMA_CATEGORIES = (
    StatCategory.COLUMNS,
    StatCategory.COLUMN_PROFILE,
    StatCategory.FOREIGN_KEYS,
    StatCategory.TABLE_ACTIVITY,
)
TABLE_INFO_CATEGORIES = (
    StatCategory.TABLES,
    StatCategory.COLUMNS,
    StatCategory.INDEX_USAGE,
    StatCategory.CONSTRAINTS,
)
DATABASE_METADATA_CATEGORIES = TABLE_INFO_CATEGORIES + (StatCategory.FOREIGN_KEYS,)

# Scan analysis: more than half the scans sequential, over enough scans to matter
SEQ_SCAN_PERCENT_THRESHOLD = 50
MIN_TOTAL_SCANS = 100

# Column profile heuristics
LOW_CARDINALITY_MAX = 50
MIN_SAMPLE_SIZE = 100
VARCHAR_OVERSIZE_FACTOR = 3
VARCHAR_SUGGESTED_FACTOR = 1.5
HIGH_NULL_RATE_PERCENT = 50

T = TypeVar("T", bound=TableScoped)


def _for_table(
    snapshot: CatalogSnapshot,
    category: StatCategory,
    schema: str,
    table: str,
) -> list[T]:
    rows: Sequence[T] = snapshot.get(category)  # type: ignore[assignment]
    return [r for r in rows if r.schema_name == schema and r.table_name == table]


def _activity(snapshot: CatalogSnapshot, schema: str, table: str, detail: str | None = None) -> TableActivityRow:
    rows: list[TableActivityRow] = _for_table(snapshot, StatCategory.TABLE_ACTIVITY, schema, table)
    if not rows:
        raise InvalidTargetError(schema, table, detail)
    return rows[0]


def _megabytes(num_bytes: int) -> str:
    return f"{num_bytes / 1024 / 1024:.2f} MB" if num_bytes > 0 else "0 bytes"


# ── Query statistics ─────────────────────────────────────────────────────


def build_query_statistics(snapshot: CatalogSnapshot, schema: str, table: str) -> QueryStatisticsReport:
    """
    Counters, I/O and per-index usage for one table, plus a bloat estimate.

    Raises:
        InvalidTargetError: "Table schema.table not found in statistics"
    """
    activity = _activity(snapshot, schema, table, detail="in statistics")

    io_rows: list[TableIORow] = _for_table(snapshot, StatCategory.TABLE_IO, schema, table)
    io = io_rows[0] if io_rows else TableIORow(schema_name=schema, table_name=table)

    indexes: list[IndexUsageRow] = _for_table(snapshot, StatCategory.INDEX_USAGE, schema, table)
    indexes.sort(key=lambda idx: (-idx.scans, idx.index_name))

    dead_pct = bloat_percentage(activity.n_live_tup, activity.n_dead_tup)

    return QueryStatisticsReport(
        schema_name=schema,
        table_name=table,
        table_statistics=TableCounters.model_validate(activity.model_dump()),
        io_statistics=IOStatistics(
            **io.model_dump(exclude={"schema_name", "table_name"}),
            cache_hit_ratio=heap_cache_hit_ratio(io),
        ),
        index_statistics=tuple(
            IndexStatistics(
                index_name=idx.index_name,
                idx_scan=idx.scans,
                idx_tup_read=idx.tuples_read,
                idx_tup_fetch=idx.tuples_fetched,
                idx_blks_read=idx.blks_read,
                idx_blks_hit=idx.blks_hit,
                size=pretty_size(idx.size_bytes),
            )
            for idx in indexes
        ),
        bloat_estimate=BloatEstimate(
            dead_tuple_percent=dead_pct,
            estimated_bloat=bloat_label(dead_pct),
        ),
    )


# ── Indexing strategies ──────────────────────────────────────────────────


def scan_analysis(activity: TableActivityRow) -> TableScanAnalysis:
    total = activity.seq_scan + activity.idx_scan
    pct = round(percent(activity.seq_scan, total), 2)
    return TableScanAnalysis(
        seq_scan=activity.seq_scan,
        seq_tup_read=activity.seq_tup_read,
        idx_scan=activity.idx_scan,
        idx_tup_fetch=activity.idx_tup_fetch,
        high_seq_scan_ratio=pct > SEQ_SCAN_PERCENT_THRESHOLD and total > MIN_TOTAL_SCANS,
        seq_scan_percentage=pct,
    )


def build_indexing_strategies(
    snapshot: CatalogSnapshot,
    schema: str,
    table: str,
    unused_evaluator: UnusedIndex | None = None,
) -> IndexingStrategiesReport:
    """
    Index usage, unused and redundant indexes, and unindexed foreign keys.

    Unused indexes use the same rule as the UNUSED_INDEX evaluator, so
    primary key and unique indexes are never reported.

    Raises:
        InvalidTargetError: The table has no statistics row.
    """
    activity = _activity(snapshot, schema, table)
    indexes: list[IndexUsageRow] = _for_table(snapshot, StatCategory.INDEX_USAGE, schema, table)
    fks: list[ForeignKeyRow] = _for_table(snapshot, StatCategory.FOREIGN_KEYS, schema, table)

    evaluator = unused_evaluator or UnusedIndex()
    unused_ids = {f.object_id for f in evaluator.evaluate(indexes)}

    total_index_bytes = sum(idx.size_bytes for idx in indexes)

    return IndexingStrategiesReport(
        schema_name=schema,
        table_name=table,
        index_usage_stats=tuple(
            IndexUsageStats(
                index_name=idx.index_name,
                columns=idx.columns,
                index_type=idx.index_type,
                is_unique=idx.is_unique,
                is_primary=idx.is_primary,
                size=pretty_size(idx.size_bytes),
                scans=idx.scans,
                tuples_read=idx.tuples_read,
                tuples_fetched=idx.tuples_fetched,
                size_bytes=idx.size_bytes,
            )
            for idx in indexes
        ),
        unused_indexes=tuple(
            UnusedIndexInfo(
                index_name=idx.index_name,
                columns=idx.columns,
                size=pretty_size(idx.size_bytes),
                reason="Index has never been scanned",
            )
            for idx in indexes
            if idx.qualified_name in unused_ids
        ),
        unindexed_fk_columns=tuple(
            UnindexedForeignKey(
                constraint_name=fk.constraint_name,
                column_name=fk.column_name,
                foreign_table=fk.foreign_table,
                foreign_column=fk.foreign_column,
            )
            for fk in fks
            if not fk.has_index
        ),
        duplicate_indexes=tuple(find_index_relationships(indexes)),
        table_scan_analysis=scan_analysis(activity),
        recommendations_context=IndexingContext(
            total_indexes=len(indexes),
            total_index_size=_megabytes(total_index_bytes),
            table_size=pretty_size(activity.table_size_bytes),
            row_count=activity.n_live_tup,
        ),
    )


# ── Schema optimizations ─────────────────────────────────────────────────


def _analyze_column(column: ColumnRow, profile: ColumnProfileRow | None) -> ColumnAnalysis:
    sample = profile.sample_size if profile else 0
    nulls = profile.null_count if profile else 0
    return ColumnAnalysis(
        column_name=column.column_name,
        data_type=column.data_type,
        character_maximum_length=column.character_maximum_length,
        nullability_rate=round(percent(nulls, sample), 2),
        cardinality=profile.distinct_count if profile else 0,
        avg_width=round(profile.avg_width) if profile else 0,
        is_indexed=column.is_indexed,
        is_foreign_key=column.is_foreign_key,
        distinct_sample_size=sample,
    )


def data_type_issues(column: ColumnAnalysis) -> list[DataTypeIssue]:
    """Heuristic data-type suggestions for one profiled column."""
    issues: list[DataTypeIssue] = []

    if (
        column.data_type == "text"
        and 0 < column.cardinality < LOW_CARDINALITY_MAX
        and column.distinct_sample_size > MIN_SAMPLE_SIZE
    ):
        issues.append(DataTypeIssue(
            column_name=column.column_name,
            current_type=column.data_type,
            issue=f"Low cardinality ({column.cardinality} distinct values)",
            suggestion="Consider using ENUM type or smaller VARCHAR",
        ))

    max_length = column.character_maximum_length
    if column.data_type == "character varying" and max_length and column.avg_width > 0:
        if max_length > column.avg_width * VARCHAR_OVERSIZE_FACTOR:
            issues.append(DataTypeIssue(
                column_name=column.column_name,
                current_type=f"varchar({max_length})",
                issue=f"Max length {max_length} much larger than avg width {column.avg_width}",
                suggestion=(
                    "Consider reducing to "
                    f"varchar({math.ceil(column.avg_width * VARCHAR_SUGGESTED_FACTOR)})"
                ),
            ))

    if (
        column.nullability_rate > HIGH_NULL_RATE_PERCENT
        and column.distinct_sample_size > MIN_SAMPLE_SIZE
    ):
        issues.append(DataTypeIssue(
            column_name=column.column_name,
            current_type=column.data_type,
            issue=f"High null rate: {column.nullability_rate:.1f}%",
            suggestion="Consider if this should be a separate optional table or has default value",
        ))

    return issues


def build_schema_optimizations(snapshot: CatalogSnapshot, schema: str, table: str) -> SchemaOptimizationsReport:
    """
    Column profiles, foreign keys, bloat and data-type suggestions.

    Raises:
        InvalidTargetError: The table has no columns.
    """
    columns: list[ColumnRow] = _for_table(snapshot, StatCategory.COLUMNS, schema, table)
    if not columns:
        raise InvalidTargetError(schema, table)
    columns.sort(key=lambda c: c.ordinal_position)

    profiles: list[ColumnProfileRow] = _for_table(snapshot, StatCategory.COLUMN_PROFILE, schema, table)
    profile_by_name = {p.column_name: p for p in profiles}
    analysis = [_analyze_column(c, profile_by_name.get(c.column_name)) for c in columns]

    issues: list[DataTypeIssue] = []
    for column in analysis:
        issues.extend(data_type_issues(column))

    fks: list[ForeignKeyRow] = _for_table(snapshot, StatCategory.FOREIGN_KEYS, schema, table)
    activity_rows: list[TableActivityRow] = _for_table(snapshot, StatCategory.TABLE_ACTIVITY, schema, table)
    activity = activity_rows[0] if activity_rows else None

    if activity is not None:
        bloat = BloatAnalysis(
            n_live_tup=activity.n_live_tup,
            n_dead_tup=activity.n_dead_tup,
            bloat_percentage=bloat_percentage(activity.n_live_tup, activity.n_dead_tup),
            last_vacuum=activity.last_vacuum,
            last_autovacuum=activity.last_autovacuum,
            last_analyze=activity.last_analyze,
        )
    else:
        # Views have columns but no activity counters
        bloat = BloatAnalysis()

    return SchemaOptimizationsReport(
        schema_name=schema,
        table_name=table,
        column_analysis=tuple(analysis),
        foreign_keys=tuple(
            ForeignKeyAnalysis(
                constraint_name=fk.constraint_name,
                column_name=fk.column_name,
                foreign_table=fk.foreign_table,
                foreign_column=fk.foreign_column,
                has_index=fk.has_index,
            )
            for fk in fks
        ),
        bloat_analysis=bloat,
        data_type_issues=tuple(issues),
        total_size=pretty_size(activity.table_size_bytes if activity else 0),
        row_count=activity.n_live_tup if activity else 0,
    )


# ── Table listing and info ───────────────────────────────────────────────


def build_table_list(snapshot: CatalogSnapshot, schema: str | None = None) -> TableListReport:
    rows: Sequence[TableListingRow] = snapshot.get(StatCategory.TABLES)  # type: ignore[assignment]
    items = [
        TableListingItem(
            schema_name=row.schema_name,
            table_name=row.table_name,
            table_type=row.table_type,
            row_count=row.row_count,
            size=pretty_size(row.size_bytes) if row.size_bytes is not None else None,
        )
        for row in rows
        if schema is None or row.schema_name == schema
    ]
    items.sort(key=lambda item: (item.schema_name, item.table_name))
    return TableListReport(tables=tuple(items), total_count=len(items))


def _table_column(column: ColumnRow) -> TableColumn:
    return TableColumn(
        name=column.column_name,
        type=column.data_type,
        nullable=column.is_nullable,
        default=column.column_default,
        character_maximum_length=column.character_maximum_length,
        numeric_precision=column.numeric_precision,
        numeric_scale=column.numeric_scale,
    )


def build_table_info(snapshot: CatalogSnapshot, schema: str, table: str) -> TableInfoReport:
    """
    Columns, indexes, constraints and size of one table or view.

    Raises:
        InvalidTargetError: Not in the table listing.
    """
    listing: list[TableListingRow] = _for_table(snapshot, StatCategory.TABLES, schema, table)
    if not listing:
        raise InvalidTargetError(schema, table)
    entry = listing[0]

    columns: list[ColumnRow] = _for_table(snapshot, StatCategory.COLUMNS, schema, table)
    columns.sort(key=lambda c: c.ordinal_position)
    indexes: list[IndexUsageRow] = _for_table(snapshot, StatCategory.INDEX_USAGE, schema, table)
    constraints: list[ConstraintRow] = _for_table(snapshot, StatCategory.CONSTRAINTS, schema, table)

    size_bytes = entry.size_bytes or 0
    return TableInfoReport(
        schema_name=schema,
        table_name=table,
        columns=tuple(_table_column(c) for c in columns),
        row_count=entry.row_count or 0,
        size_bytes=size_bytes,
        size_pretty=pretty_size(size_bytes),
        indexes=tuple(
            TableIndex(
                name=idx.index_name,
                columns=idx.columns,
                unique=idx.is_unique,
                size=pretty_size(idx.size_bytes),
                scans=idx.scans,
                tuples_read=idx.tuples_read,
                tuples_fetched=idx.tuples_fetched,
            )
            for idx in indexes
        ),
        constraints=tuple(
            TableConstraint(name=c.constraint_name, type=c.constraint_type, definition=c.definition)
            for c in constraints
        ),
        table_type=entry.table_type,
    )


# ── Database metadata ────────────────────────────────────────────────────


def _grouped(snapshot: CatalogSnapshot, category: StatCategory) -> dict[tuple[str, str], list]:
    groups: dict[tuple[str, str], list] = defaultdict(list)
    for row in snapshot.get(category):
        groups[(row.schema_name, row.table_name)].append(row)  # type: ignore[attr-defined]
    return groups


def _metadata_constraint(
    constraint: ConstraintRow,
    references: Sequence[ForeignKeyRow],
) -> MetadataConstraint:
    if not references:
        return MetadataConstraint(
            name=constraint.constraint_name,
            type=constraint.constraint_type,
            columns=constraint.columns,
        )
    return MetadataConstraint(
        name=constraint.constraint_name,
        type=constraint.constraint_type,
        columns=constraint.columns or tuple(fk.column_name for fk in references),
        foreign_schema=references[0].foreign_schema,
        foreign_table=references[0].foreign_table,
        foreign_columns=tuple(fk.foreign_column for fk in references),
    )


def build_database_metadata(
    snapshot: CatalogSnapshot,
    schema: str | None = None,
) -> DatabaseMetadataReport:
    """
    Structure of every listed table and view, grouped by schema.

    Schemas and tables are sorted by name, columns by ordinal position,
    indexes and constraints by name. Foreign key constraints carry the
    referenced schema, table and columns. Schemas without any table or
    view are not listed.
    """
    listing: Sequence[TableListingRow] = snapshot.get(StatCategory.TABLES)  # type: ignore[assignment]
    columns = _grouped(snapshot, StatCategory.COLUMNS)
    indexes = _grouped(snapshot, StatCategory.INDEX_USAGE)
    constraints = _grouped(snapshot, StatCategory.CONSTRAINTS)

    references: dict[tuple[str, str, str], list[ForeignKeyRow]] = defaultdict(list)
    for fk in snapshot.get(StatCategory.FOREIGN_KEYS):
        references[(fk.schema_name, fk.table_name, fk.constraint_name)].append(fk)  # type: ignore[attr-defined]

    by_schema: dict[str, list[MetadataTable]] = defaultdict(list)
    for entry in sorted(listing, key=lambda row: (row.schema_name, row.table_name)):
        if schema is not None and entry.schema_name != schema:
            continue
        key = (entry.schema_name, entry.table_name)
        table_columns: list[ColumnRow] = sorted(columns[key], key=lambda c: c.ordinal_position)
        table_indexes: list[IndexUsageRow] = sorted(indexes[key], key=lambda i: i.index_name)
        table_constraints: list[ConstraintRow] = sorted(
            constraints[key], key=lambda c: c.constraint_name
        )
        by_schema[entry.schema_name].append(MetadataTable(
            name=entry.table_name,
            type=entry.table_type,
            columns=tuple(_table_column(c) for c in table_columns),
            indexes=tuple(
                MetadataIndex(
                    name=idx.index_name,
                    columns=idx.columns,
                    unique=idx.is_unique,
                    primary=idx.is_primary,
                    type=idx.index_type,
                )
                for idx in table_indexes
            ),
            constraints=tuple(
                _metadata_constraint(
                    c,
                    references.get((c.schema_name, c.table_name, c.constraint_name), ()),
                )
                for c in table_constraints
            ),
        ))

    schemas = tuple(
        MetadataSchema(name=name, tables=tuple(tables))
        for name, tables in by_schema.items()
    )
    return DatabaseMetadataReport(
        schemas=schemas,
        total_tables=sum(len(s.tables) for s in schemas),
    )
