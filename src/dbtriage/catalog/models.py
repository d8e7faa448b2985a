"""
Typed rows returned by catalog providers.

Each statistic category maps to one row model. Rows are immutable once
read: the analyzer never mutates them, and two runs over the same rows
produce the same report.

Numeric fields arrive already parsed (the provider does the coercion);
timestamp fields are always nullable.

Reference: https://www.postgresql.org/docs/current/monitoring-stats.html
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class StatCategory(str, Enum):
    """Statistic views a catalog provider can be asked for."""

    DATABASE_SIZE = "database_size"
    TABLE_ACTIVITY = "table_activity"
    INDEX_USAGE = "index_usage"
    TABLE_IO = "table_io"
    FOREIGN_KEYS = "foreign_keys"
    CONSTRAINTS = "constraints"
    SEQUENCES = "sequences"
    CONNECTIONS = "connections"
    REPLICATION = "replication"
    STATEMENTS = "statements"
    COLUMNS = "columns"
    COLUMN_PROFILE = "column_profile"
    TABLES = "tables"

    @property
    def is_optional(self) -> bool:
        """Whether a missing source is tolerated instead of failing the run."""
        return self in OPTIONAL_CATEGORIES


OPTIONAL_CATEGORIES = frozenset({StatCategory.REPLICATION, StatCategory.STATEMENTS})


class StatRow(BaseModel):
    """Base class for all catalog rows."""

    model_config = ConfigDict(frozen=True, extra="ignore")


class TableScoped(StatRow):
    """Row that belongs to one table."""

    schema_name: str = Field(..., description="Schema the table lives in")
    table_name: str = Field(..., description="Table name")

    @property
    def qualified_name(self) -> str:
        return f"{self.schema_name}.{self.table_name}"


class DatabaseSizeRow(StatRow):
    """Size of the current database and number of user tables."""

    total_size_bytes: int = 0
    total_tables: int = 0


class TableActivityRow(TableScoped):
    """One row of pg_stat_user_tables."""

    seq_scan: int = 0
    seq_tup_read: int = 0
    idx_scan: int = 0
    idx_tup_fetch: int = 0
    n_tup_ins: int = 0
    n_tup_upd: int = 0
    n_tup_del: int = 0
    n_tup_hot_upd: int = 0
    n_live_tup: int = 0
    n_dead_tup: int = 0
    last_vacuum: datetime | None = None
    last_autovacuum: datetime | None = None
    last_analyze: datetime | None = None
    last_autoanalyze: datetime | None = None
    vacuum_count: int = 0
    autovacuum_count: int = 0
    analyze_count: int = 0
    autoanalyze_count: int = 0
    table_size_bytes: int = 0

    @property
    def total_tuples(self) -> int:
        return self.n_live_tup + self.n_dead_tup

    @property
    def never_analyzed(self) -> bool:
        return self.last_analyze is None and self.last_autoanalyze is None

    @property
    def never_vacuumed(self) -> bool:
        return self.last_vacuum is None and self.last_autovacuum is None


class IndexUsageRow(TableScoped):
    """
    One index with its column list and usage counters.

    ``columns`` holds key columns only; INCLUDE columns and expressions
    are left out.

    Combines pg_index / pg_indexes (definition) with pg_stat_user_indexes
    and pg_statio_user_indexes (usage).
    """

    index_name: str
    columns: tuple[str, ...] = ()
    index_type: str = "btree"
    is_unique: bool = False
    is_primary: bool = False
    is_partial: bool = False
    has_expressions: bool = False
    scans: int = 0
    tuples_read: int = 0
    tuples_fetched: int = 0
    size_bytes: int = 0
    blks_read: int = 0
    blks_hit: int = 0

    @property
    def qualified_name(self) -> str:
        return f"{self.schema_name}.{self.table_name}.{self.index_name}"

    @property
    def backs_constraint(self) -> bool:
        """Primary key and unique indexes enforce constraints."""
        return self.is_primary or self.is_unique


class TableIORow(TableScoped):
    """One row of pg_statio_user_tables."""

    heap_blks_read: int = 0
    heap_blks_hit: int = 0
    idx_blks_read: int = 0
    idx_blks_hit: int = 0
    toast_blks_read: int = 0
    toast_blks_hit: int = 0
    tidx_blks_read: int = 0
    tidx_blks_hit: int = 0


class ForeignKeyRow(TableScoped):
    """A foreign key column and whether an index leads with it."""

    constraint_name: str
    column_name: str
    foreign_schema: str
    foreign_table: str
    foreign_column: str
    has_index: bool = False

    @property
    def foreign_qualified_name(self) -> str:
        return f"{self.foreign_schema}.{self.foreign_table}"


class ConstraintRow(TableScoped):
    """A table constraint from pg_constraint."""

    constraint_name: str
    constraint_type: str
    columns: tuple[str, ...] = ()
    validated: bool = True
    definition: str = ""


class SequenceRow(StatRow):
    """A sequence with its current and maximum value."""

    schema_name: str
    sequence_name: str
    last_value: int | None = None
    max_value: int

    @property
    def qualified_name(self) -> str:
        return f"{self.schema_name}.{self.sequence_name}"


class ConnectionRow(StatRow):
    """Connection counts from pg_stat_activity and max_connections."""

    max_connections: int
    total: int = 0
    idle: int = 0
    active: int = 0


class ReplicationRow(StatRow):
    """Replication role, slots and lag."""

    is_primary: bool
    replication_slots: int = 0
    active_replicas: int = 0
    max_lag_bytes: int | None = None
    max_lag_seconds: float | None = None


class StatementRow(StatRow):
    """One statement from the statement-statistics view."""

    query: str
    calls: int = 0
    total_time_ms: float = 0.0
    mean_time_ms: float = 0.0
    max_time_ms: float = 0.0
    rows: int = 0
    shared_blks_hit: int = 0
    shared_blks_read: int = 0


class ColumnRow(TableScoped):
    """A column definition from information_schema.columns."""

    column_name: str
    data_type: str
    ordinal_position: int = 0
    is_nullable: bool = True
    column_default: str | None = None
    character_maximum_length: int | None = None
    numeric_precision: int | None = None
    numeric_scale: int | None = None
    is_indexed: bool = False
    is_foreign_key: bool = False


class ColumnProfileRow(TableScoped):
    """Sampled value distribution for one column."""

    column_name: str
    sample_size: int = 0
    null_count: int = 0
    distinct_count: int = 0
    avg_width: float = 0.0


class TableListingRow(TableScoped):
    """A table or view with its estimated size."""

    table_type: str = "BASE TABLE"
    row_count: int | None = None
    size_bytes: int | None = None


ROW_TYPES: dict[StatCategory, type[StatRow]] = {
    StatCategory.DATABASE_SIZE: DatabaseSizeRow,
    StatCategory.TABLE_ACTIVITY: TableActivityRow,
    StatCategory.INDEX_USAGE: IndexUsageRow,
    StatCategory.TABLE_IO: TableIORow,
    StatCategory.FOREIGN_KEYS: ForeignKeyRow,
    StatCategory.CONSTRAINTS: ConstraintRow,
    StatCategory.SEQUENCES: SequenceRow,
    StatCategory.CONNECTIONS: ConnectionRow,
    StatCategory.REPLICATION: ReplicationRow,
    StatCategory.STATEMENTS: StatementRow,
    StatCategory.COLUMNS: ColumnRow,
    StatCategory.COLUMN_PROFILE: ColumnProfileRow,
    StatCategory.TABLES: TableListingRow,
}
