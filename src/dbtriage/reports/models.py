"""
Report models for the per-target inspections.

One top-level model per inspection; all frozen and JSON-serializable.
Sizes are reported both as bytes (for machines) and pretty strings
(for people) where the source has both.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from dbtriage.analyzer.index_relationships import IndexRelationship


class ReportModel(BaseModel):
    """Base class for inspection reports."""

    model_config = ConfigDict(frozen=True)

    def to_json(self, indent: int | None = 2) -> str:
        return self.model_dump_json(indent=indent)


# ── Database health ──────────────────────────────────────────────────────


class DatabaseSizeInfo(ReportModel):
    total_size: str
    total_size_bytes: int


class CachePerformance(ReportModel):
    """Hit percentages across all user tables (100 when nothing was read)."""

    cache_hit_ratio: float
    buffer_cache_hit_ratio: float
    index_cache_hit_ratio: float


class TableHealthStatistics(ReportModel):
    total_tables: int
    tables_never_vacuumed: int
    tables_never_analyzed: int
    tables_with_high_bloat: int


class IndexHealthStatistics(ReportModel):
    total_indexes: int
    unused_indexes: int
    total_index_size: str


class ConnectionInfo(ReportModel):
    max_connections: int
    current_connections: int
    connection_utilization_percent: float
    idle_connections: int
    active_connections: int


class ReplicationHealth(ReportModel):
    is_primary: bool
    replication_slots: int
    active_replicas: int
    max_lag_bytes: int | None = None
    max_lag_seconds: float | None = None


class InvalidConstraintDetail(ReportModel):
    schema_name: str
    table_name: str
    constraint_name: str
    constraint_type: str


class ConstraintHealth(ReportModel):
    total_constraints: int
    invalid_constraints: int
    invalid_constraint_details: tuple[InvalidConstraintDetail, ...] = ()


class SequenceRiskDetail(ReportModel):
    schema_name: str
    sequence_name: str
    current_value: int
    max_value: int
    percent_used: float


class SequenceHealth(ReportModel):
    total_sequences: int
    sequences_at_risk: int
    at_risk_details: tuple[SequenceRiskDetail, ...] = ()


class DatabaseHealthReport(ReportModel):
    """
    System-wide health: cache, vacuum state, indexes, connections,
    replication, constraints and sequences.

    ``replication_health`` is None when replication statistics could not
    be read; ``data_notes`` says why.
    """

    database_size: DatabaseSizeInfo
    cache_performance: CachePerformance
    table_statistics: TableHealthStatistics
    index_statistics: IndexHealthStatistics
    connection_info: ConnectionInfo
    replication_health: ReplicationHealth | None = None
    constraint_health: ConstraintHealth
    sequence_health: SequenceHealth
    performance_issues: tuple[str, ...] = ()
    recommendations: tuple[str, ...] = ()
    data_notes: tuple[str, ...] = ()


# ── Query statistics (one table) ─────────────────────────────────────────


class TableCounters(ReportModel):
    seq_scan: int
    seq_tup_read: int
    idx_scan: int
    idx_tup_fetch: int
    n_tup_ins: int
    n_tup_upd: int
    n_tup_del: int
    n_tup_hot_upd: int
    n_live_tup: int
    n_dead_tup: int
    last_vacuum: datetime | None = None
    last_autovacuum: datetime | None = None
    last_analyze: datetime | None = None
    last_autoanalyze: datetime | None = None
    vacuum_count: int
    autovacuum_count: int
    analyze_count: int
    autoanalyze_count: int


class IOStatistics(ReportModel):
    heap_blks_read: int = 0
    heap_blks_hit: int = 0
    idx_blks_read: int = 0
    idx_blks_hit: int = 0
    toast_blks_read: int = 0
    toast_blks_hit: int = 0
    tidx_blks_read: int = 0
    tidx_blks_hit: int = 0
    cache_hit_ratio: float = 0.0


class IndexStatistics(ReportModel):
    index_name: str
    idx_scan: int
    idx_tup_read: int
    idx_tup_fetch: int
    idx_blks_read: int
    idx_blks_hit: int
    size: str


class BloatEstimate(ReportModel):
    dead_tuple_percent: float
    estimated_bloat: str = Field(..., description="High, Moderate or Low")


class QueryStatisticsReport(ReportModel):
    schema_name: str
    table_name: str
    table_statistics: TableCounters
    io_statistics: IOStatistics
    index_statistics: tuple[IndexStatistics, ...] = ()
    bloat_estimate: BloatEstimate


# ── Indexing strategies (one table) ──────────────────────────────────────


class IndexUsageStats(ReportModel):
    index_name: str
    columns: tuple[str, ...]
    index_type: str
    is_unique: bool
    is_primary: bool
    size: str
    scans: int
    tuples_read: int
    tuples_fetched: int
    size_bytes: int


class UnusedIndexInfo(ReportModel):
    index_name: str
    columns: tuple[str, ...]
    size: str
    reason: str


class UnindexedForeignKey(ReportModel):
    constraint_name: str
    column_name: str
    foreign_table: str
    foreign_column: str


class TableScanAnalysis(ReportModel):
    seq_scan: int
    seq_tup_read: int
    idx_scan: int
    idx_tup_fetch: int
    high_seq_scan_ratio: bool
    seq_scan_percentage: float


class IndexingContext(ReportModel):
    total_indexes: int
    total_index_size: str
    table_size: str
    row_count: int


class IndexingStrategiesReport(ReportModel):
    schema_name: str
    table_name: str
    index_usage_stats: tuple[IndexUsageStats, ...] = ()
    unused_indexes: tuple[UnusedIndexInfo, ...] = ()
    unindexed_fk_columns: tuple[UnindexedForeignKey, ...] = ()
    duplicate_indexes: tuple[IndexRelationship, ...] = ()
    table_scan_analysis: TableScanAnalysis
    recommendations_context: IndexingContext


# ── Schema optimizations (one table) ─────────────────────────────────────


class ColumnAnalysis(ReportModel):
    column_name: str
    data_type: str
    character_maximum_length: int | None = None
    nullability_rate: float
    cardinality: int
    avg_width: int
    is_indexed: bool
    is_foreign_key: bool
    distinct_sample_size: int


class ForeignKeyAnalysis(ReportModel):
    constraint_name: str
    column_name: str
    foreign_table: str
    foreign_column: str
    has_index: bool


class BloatAnalysis(ReportModel):
    n_live_tup: int = 0
    n_dead_tup: int = 0
    bloat_percentage: float = 0.0
    last_vacuum: datetime | None = None
    last_autovacuum: datetime | None = None
    last_analyze: datetime | None = None


class DataTypeIssue(ReportModel):
    column_name: str
    current_type: str
    issue: str
    suggestion: str


class SchemaOptimizationsReport(ReportModel):
    schema_name: str
    table_name: str
    column_analysis: tuple[ColumnAnalysis, ...] = ()
    foreign_keys: tuple[ForeignKeyAnalysis, ...] = ()
    bloat_analysis: BloatAnalysis
    data_type_issues: tuple[DataTypeIssue, ...] = ()
    total_size: str
    row_count: int


# ── Query performance and free-form queries ──────────────────────────────


class SlowQuery(ReportModel):
    query: str
    calls: int
    total_time_ms: float
    mean_time_ms: float
    max_time_ms: float
    rows: int
    shared_blks_hit: int
    shared_blks_read: int
    cache_hit_ratio: float


class QueryPlan(ReportModel):
    query: str
    plan: list[dict[str, Any]]


class QueryPerformanceReport(ReportModel):
    has_pg_stat_statements: bool
    slow_queries: tuple[SlowQuery, ...] | None = None
    query_plan: QueryPlan | None = None
    recommendations: tuple[str, ...] = ()


class QueryExecutionReport(ReportModel):
    columns: tuple[str, ...]
    rows: tuple[dict[str, Any], ...] = ()
    row_count: int
    execution_time_ms: float
    warning: str | None = None


# ── Table listing and table info ─────────────────────────────────────────


class TableListingItem(ReportModel):
    schema_name: str
    table_name: str
    table_type: str
    row_count: int | None = None
    size: str | None = None


class TableListReport(ReportModel):
    tables: tuple[TableListingItem, ...] = ()
    total_count: int


class TableColumn(ReportModel):
    name: str
    type: str
    nullable: bool
    default: str | None = None
    character_maximum_length: int | None = None
    numeric_precision: int | None = None
    numeric_scale: int | None = None


class TableIndex(ReportModel):
    name: str
    columns: tuple[str, ...]
    unique: bool
    size: str
    scans: int
    tuples_read: int
    tuples_fetched: int


class TableConstraint(ReportModel):
    name: str
    type: str
    definition: str


class TableInfoReport(ReportModel):
    schema_name: str
    table_name: str
    columns: tuple[TableColumn, ...] = ()
    row_count: int
    size_bytes: int
    size_pretty: str
    indexes: tuple[TableIndex, ...] = ()
    constraints: tuple[TableConstraint, ...] = ()
    table_type: str


# ── Database metadata ────────────────────────────────────────────────────


class MetadataIndex(ReportModel):
    name: str
    columns: tuple[str, ...]
    unique: bool
    primary: bool
    type: str


class MetadataConstraint(ReportModel):
    """A constraint; foreign keys also carry the referenced table and columns."""

    name: str
    type: str
    columns: tuple[str, ...] = ()
    foreign_schema: str | None = None
    foreign_table: str | None = None
    foreign_columns: tuple[str, ...] = ()


class MetadataTable(ReportModel):
    name: str
    type: str
    columns: tuple[TableColumn, ...] = ()
    indexes: tuple[MetadataIndex, ...] = ()
    constraints: tuple[MetadataConstraint, ...] = ()


class MetadataSchema(ReportModel):
    name: str
    tables: tuple[MetadataTable, ...] = ()


class DatabaseMetadataReport(ReportModel):
    """Structure of every user schema: tables, columns, indexes and constraints."""

    schemas: tuple[MetadataSchema, ...] = ()
    total_tables: int = 0
