"""
DiagnosticService - orchestration layer for dbtriage.

The single entry point for every inspection. The CLI (and any other
delivery mechanism) stays a thin adapter around this service.

Design principle: Ports & Adapters
- The catalog provider is injected; there is no global connection
- Every operation collects one complete snapshot, then hands it to a
  pure builder (analyzer or report)
- Identifiers and free-form statements are validated before any query

Usage:
    from dbtriage.engine import DiagnosticService

    with DiagnosticService.connect(config) as service:
        report = service.comprehensive_analysis()
        stats = service.query_statistics("public", "orders")
"""

from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING, Iterable

from dbtriage.analyzer.analyzer import DiagnosticAnalyzer
from dbtriage.analyzer.evaluators import UnusedIndex
from dbtriage.analyzer.models import DatabaseReport
from dbtriage.catalog.models import StatCategory
from dbtriage.catalog.snapshot import CatalogSnapshot, collect_snapshot
from dbtriage.exceptions import ConfigurationError
from dbtriage.logging_config import mask_dsn
from dbtriage.reports import (
    DATABASE_METADATA_CATEGORIES,
    HEALTH_CATEGORIES,
    INDEXING_CATEGORIES,
    QUERY_STATISTICS_CATEGORIES,
    SCHEMA_CATEGORIES,
    TABLE_INFO_CATEGORIES,
    build_database_metadata,
    build_health_report,
    build_indexing_strategies,
    build_query_execution,
    build_query_performance,
    build_query_statistics,
    build_schema_optimizations,
    build_table_info,
    build_table_list,
)
from dbtriage.reports.models import (
    DatabaseHealthReport,
    DatabaseMetadataReport,
    IndexingStrategiesReport,
    QueryExecutionReport,
    QueryPerformanceReport,
    QueryStatisticsReport,
    SchemaOptimizationsReport,
    TableInfoReport,
    TableListReport,
)
from dbtriage.reports.queries import DEFAULT_TOP_N
from dbtriage.safety import ReadOnlyQueryGate, apply_row_limit, validate_identifier

if TYPE_CHECKING:
    from dbtriage.catalog.provider import CatalogProvider
    from dbtriage.config import Config

logger = logging.getLogger(__name__)


class DiagnosticService:
    """
    Runs diagnostic operations against one catalog provider.

    Example:
        from dbtriage.catalog import load_snapshot

        service = DiagnosticService(load_snapshot("snapshot.json"))
        report = service.comprehensive_analysis()
        print(report.health_score)
    """

    def __init__(
        self,
        provider: CatalogProvider,
        config: Config | None = None,
        analyzer: DiagnosticAnalyzer | None = None,
    ) -> None:
        """
        Initialize the service.

        Args:
            provider: Data source; owned by the caller unless created by connect()
            config: Configuration (if None, uses get_config())
            analyzer: Pre-built analyzer (if None, built from config)
        """
        if config is None:
            from dbtriage.config import get_config
            config = get_config()
        self.provider = provider
        self.config = config
        self.analyzer = analyzer or DiagnosticAnalyzer(config=config)
        self.gate = ReadOnlyQueryGate()

    @classmethod
    def connect(cls, config: Config) -> DiagnosticService:
        """
        Build a service backed by PostgreSQL from configuration.

        Raises:
            ConfigurationError: No DSN configured.
        """
        if not config.dsn:
            raise ConfigurationError(
                "No database connection configured: set DBTRIAGE_DSN or DATABASE_URL",
                config_key="dsn",
            )

        from dbtriage.catalog.postgres import PostgresCatalogProvider

        logger.info("Connecting to %s", mask_dsn(config.dsn))
        provider = PostgresCatalogProvider(
            config.dsn,
            statement_timeout_ms=config.statement_timeout_ms,
            connect_timeout_seconds=config.connect_timeout_seconds,
            application_name=config.application_name,
        )
        provider.verify_read_only()
        return cls(provider, config=config)

    def __enter__(self) -> DiagnosticService:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def close(self) -> None:
        self.provider.close()

    def _snapshot(
        self,
        categories: Iterable[StatCategory],
        schema: str | None = None,
        table: str | None = None,
    ) -> CatalogSnapshot:
        return collect_snapshot(
            self.provider,
            categories,
            schema=schema,
            table=table,
            max_workers=self.config.fetch_workers,
        )

    @staticmethod
    def _validate_target(schema: str, table: str) -> None:
        validate_identifier(schema)
        validate_identifier(table)

    # ── Whole-database operations ─────────────────────────────────────────

    def comprehensive_analysis(self) -> DatabaseReport:
        """Run every enabled evaluator and return the prioritized report."""
        snapshot = self._snapshot(self.analyzer.required_categories)
        return self.analyzer.analyze(snapshot)

    def database_health(self) -> DatabaseHealthReport:
        evaluators = {e.evaluator_id: e for e in self.analyzer.evaluators}
        snapshot = self._snapshot(HEALTH_CATEGORIES)
        return build_health_report(snapshot, evaluators)

    # ── Table-scoped operations ───────────────────────────────────────────

    def query_statistics(self, schema: str, table: str) -> QueryStatisticsReport:
        self._validate_target(schema, table)
        snapshot = self._snapshot(QUERY_STATISTICS_CATEGORIES, schema, table)
        return build_query_statistics(snapshot, schema, table)

    def indexing_strategies(self, schema: str, table: str) -> IndexingStrategiesReport:
        self._validate_target(schema, table)
        unused = next(
            (e for e in self.analyzer.evaluators if isinstance(e, UnusedIndex)),
            None,
        )
        snapshot = self._snapshot(INDEXING_CATEGORIES, schema, table)
        return build_indexing_strategies(snapshot, schema, table, unused_evaluator=unused)

    def schema_optimizations(self, schema: str, table: str) -> SchemaOptimizationsReport:
        self._validate_target(schema, table)
        snapshot = self._snapshot(SCHEMA_CATEGORIES, schema, table)
        return build_schema_optimizations(snapshot, schema, table)

    def table_info(self, schema: str, table: str) -> TableInfoReport:
        self._validate_target(schema, table)
        snapshot = self._snapshot(TABLE_INFO_CATEGORIES, schema, table)
        return build_table_info(snapshot, schema, table)

    def list_tables(self, schema: str | None = None) -> TableListReport:
        if schema is not None:
            validate_identifier(schema)
        snapshot = self._snapshot((StatCategory.TABLES,), schema=schema)
        return build_table_list(snapshot, schema)

    def database_metadata(self, schema: str | None = None) -> DatabaseMetadataReport:
        """Structure of every user schema, or of one schema when given."""
        if schema is not None:
            validate_identifier(schema)
        snapshot = self._snapshot(DATABASE_METADATA_CATEGORIES, schema=schema)
        return build_database_metadata(snapshot, schema)

    # ── Statement operations ──────────────────────────────────────────────

    def query_performance(
        self,
        statement: str | None = None,
        top_n: int = DEFAULT_TOP_N,
    ) -> QueryPerformanceReport:
        """
        Review slow statements, or the plan of one SELECT statement.

        Raises:
            UnsafeQueryError: The statement is not a SELECT/WITH query.
        """
        plan = None
        if statement is not None:
            statement = self.gate.check_explainable(statement)
            plan = self.provider.explain(statement)
        snapshot = self._snapshot((StatCategory.STATEMENTS,))
        return build_query_performance(snapshot, statement=statement, plan=plan, top_n=top_n)

    def execute_query(self, statement: str, max_rows: int | None = None) -> QueryExecutionReport:
        """
        Run a gated read-only statement, appending a LIMIT when it has none.

        Raises:
            UnsafeQueryError: Rejected by the read-only gate.
            DataFetchError: The database refused or failed the statement.
        """
        statement = self.gate.check(statement)
        statement, warning = apply_row_limit(statement, max_rows or self.config.max_rows)

        start_time = time.perf_counter()
        result = self.provider.run_query(statement)
        elapsed_ms = (time.perf_counter() - start_time) * 1000

        logger.debug("Query returned %d rows in %.1fms", result.row_count, elapsed_ms)
        return build_query_execution(result, elapsed_ms, warning)
