"""
Per-target inspection reports built from catalog snapshots.
"""

from dbtriage.reports.health import HEALTH_CATEGORIES, build_health_report
from dbtriage.reports.models import (
    DatabaseHealthReport,
    DatabaseMetadataReport,
    IndexingStrategiesReport,
    QueryExecutionReport,
    QueryPerformanceReport,
    QueryStatisticsReport,
    ReportModel,
    SchemaOptimizationsReport,
    TableInfoReport,
    TableListReport,
)
from dbtriage.reports.queries import build_query_execution, build_query_performance
from dbtriage.reports.tables import (
    DATABASE_METADATA_CATEGORIES,
    INDEXING_CATEGORIES,
    QUERY_STATISTICS_CATEGORIES,
    SCHEMA_CATEGORIES,
    TABLE_INFO_CATEGORIES,
    build_database_metadata,
    build_indexing_strategies,
    build_query_statistics,
    build_schema_optimizations,
    build_table_info,
    build_table_list,
)

__all__ = [
    "DATABASE_METADATA_CATEGORIES",
    "HEALTH_CATEGORIES",
    "INDEXING_CATEGORIES",
    "QUERY_STATISTICS_CATEGORIES",
    "SCHEMA_CATEGORIES",
    "TABLE_INFO_CATEGORIES",
    "DatabaseHealthReport",
    "DatabaseMetadataReport",
    "IndexingStrategiesReport",
    "QueryExecutionReport",
    "QueryPerformanceReport",
    "QueryStatisticsReport",
    "ReportModel",
    "SchemaOptimizationsReport",
    "TableInfoReport",
    "TableListReport",
    "build_database_metadata",
    "build_health_report",
    "build_indexing_strategies",
    "build_query_execution",
    "build_query_performance",
    "build_query_statistics",
    "build_schema_optimizations",
    "build_table_info",
    "build_table_list",
]
