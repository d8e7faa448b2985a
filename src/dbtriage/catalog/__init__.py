"""
Catalog access: typed statistic rows and the providers that produce them.

Providers are the only code that touches the database. Everything
downstream (evaluators, aggregator, reports) works on materialized rows.

The PostgreSQL provider lives in dbtriage.catalog.postgres and is imported
only when a live connection is opened.
"""

from dbtriage.catalog.models import (
    OPTIONAL_CATEGORIES,
    ROW_TYPES,
    ColumnProfileRow,
    ColumnRow,
    ConnectionRow,
    ConstraintRow,
    DatabaseSizeRow,
    ForeignKeyRow,
    IndexUsageRow,
    ReplicationRow,
    SequenceRow,
    StatCategory,
    StatementRow,
    StatRow,
    TableActivityRow,
    TableIORow,
    TableListingRow,
    TableScoped,
)
from dbtriage.catalog.provider import (
    CatalogProvider,
    InMemoryCatalogProvider,
    QueryResult,
    load_snapshot,
    parse_snapshot,
)
from dbtriage.catalog.snapshot import CatalogSnapshot, collect_snapshot

__all__ = [
    "OPTIONAL_CATEGORIES",
    "ROW_TYPES",
    "CatalogProvider",
    "CatalogSnapshot",
    "ColumnProfileRow",
    "ColumnRow",
    "ConnectionRow",
    "ConstraintRow",
    "DatabaseSizeRow",
    "ForeignKeyRow",
    "InMemoryCatalogProvider",
    "IndexUsageRow",
    "QueryResult",
    "ReplicationRow",
    "SequenceRow",
    "StatCategory",
    "StatRow",
    "StatementRow",
    "TableActivityRow",
    "TableIORow",
    "TableListingRow",
    "TableScoped",
    "collect_snapshot",
    "load_snapshot",
    "parse_snapshot",
]
