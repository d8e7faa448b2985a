"""Tests for DiagnosticService orchestration."""

import pytest

from dbtriage.catalog import InMemoryCatalogProvider, QueryResult, StatementRow, StatCategory
from dbtriage.config import Config, EvaluatorSettings
from dbtriage.engine import DiagnosticService
from dbtriage.exceptions import (
    ConfigurationError,
    DataFetchError,
    InvalidIdentifierError,
    InvalidTargetError,
    UnsafeQueryError,
)


@pytest.fixture
def service(sample_provider, config) -> DiagnosticService:
    return DiagnosticService(sample_provider, config=config)


class TestDiagnosticService:
    """Tests for the whole-database and table-scoped operations."""

    def test_comprehensive_analysis(self, service):
        report = service.comprehensive_analysis()

        assert report.health_score == 15
        assert len(report.issues) == 7

    def test_database_health(self, service):
        report = service.database_health()
        assert report.index_statistics.unused_indexes == 1

    def test_health_respects_disabled_evaluator(self, sample_provider):
        config = Config(evaluators={"SEQUENCE_NEAR_MAX": EvaluatorSettings(enabled=False)})
        service = DiagnosticService(sample_provider, config=config)

        report = service.database_health()
        assert report.sequence_health.sequences_at_risk == 0

    def test_table_operations(self, service):
        assert service.query_statistics("public", "orders").table_name == "orders"
        assert service.indexing_strategies("public", "orders").unused_indexes
        assert service.schema_optimizations("public", "orders").data_type_issues
        assert service.table_info("public", "orders").table_type == "BASE TABLE"

    def test_list_tables(self, service):
        assert service.list_tables().total_count == 4
        assert service.list_tables("public").total_count == 4

    def test_database_metadata(self, service):
        report = service.database_metadata()

        assert report.total_tables == 4
        assert service.database_metadata("public").total_tables == 4

    def test_database_metadata_invalid_schema(self, service, sample_provider):
        with pytest.raises(InvalidIdentifierError):
            service.database_metadata("public; DROP SCHEMA public")
        assert sample_provider.fetch_count == 0

    def test_unknown_table(self, service):
        with pytest.raises(InvalidTargetError):
            service.indexing_strategies("public", "nope")

    def test_invalid_identifier_rejected_before_fetch(self, service, sample_provider):
        with pytest.raises(InvalidIdentifierError):
            service.query_statistics("public", "orders; DROP TABLE orders")
        assert sample_provider.fetch_count == 0

    def test_concurrent_fetch(self, sample_provider):
        service = DiagnosticService(
            sample_provider,
            config=Config(concurrent_fetch=True, max_workers=4),
        )
        assert service.comprehensive_analysis().health_score == 15

    def test_mandatory_fetch_failure(self):
        provider = InMemoryCatalogProvider(failures={StatCategory.INDEX_USAGE: "permission denied"})
        service = DiagnosticService(provider, config=Config())

        with pytest.raises(DataFetchError):
            service.comprehensive_analysis()

    def test_context_manager_closes_provider(self, sample_provider, config):
        closed = []
        sample_provider.close = lambda: closed.append(True)  # type: ignore[method-assign]

        with DiagnosticService(sample_provider, config=config):
            pass
        assert closed == [True]

    def test_connect_without_dsn(self, config):
        with pytest.raises(ConfigurationError) as exc_info:
            DiagnosticService.connect(config)
        assert exc_info.value.config_key == "dsn"


class TestStatementOperations:
    """Tests for free-form queries and plan review."""

    def test_execute_adds_limit(self):
        provider = InMemoryCatalogProvider(query_results={
            "SELECT id FROM orders LIMIT 100": QueryResult(columns=("id",), rows=({"id": 1},)),
        })
        service = DiagnosticService(provider, config=Config())

        report = service.execute_query("SELECT id FROM orders;")

        assert report.row_count == 1
        assert report.warning.startswith("Added LIMIT 100")

    def test_execute_limit_not_swallowed_by_comment(self):
        provider = InMemoryCatalogProvider(query_results={
            "SELECT id FROM orders LIMIT 100": QueryResult(columns=("id",)),
        })
        service = DiagnosticService(provider, config=Config())

        report = service.execute_query("SELECT id FROM orders -- latest")
        assert report.warning.startswith("Added LIMIT 100")

    def test_execute_custom_max_rows(self):
        provider = InMemoryCatalogProvider(query_results={
            "SELECT id FROM orders LIMIT 5": QueryResult(columns=("id",)),
        })
        service = DiagnosticService(provider, config=Config())

        assert service.execute_query("SELECT id FROM orders", max_rows=5).row_count == 0

    def test_execute_existing_limit(self):
        provider = InMemoryCatalogProvider(query_results={
            "SELECT id FROM orders LIMIT 3": QueryResult(columns=("id",)),
        })
        service = DiagnosticService(provider, config=Config())

        assert service.execute_query("SELECT id FROM orders LIMIT 3").warning is None

    def test_execute_rejects_writes(self, service):
        with pytest.raises(UnsafeQueryError):
            service.execute_query("DELETE FROM orders")

    def test_explain(self):
        plan = [{"Plan": {"Node Type": "Seq Scan", "Plan Rows": 5}}]
        provider = InMemoryCatalogProvider(plans={"SELECT * FROM orders": plan})
        service = DiagnosticService(provider, config=Config())

        report = service.query_performance("SELECT * FROM orders")

        assert report.query_plan.plan == plan
        assert report.has_pg_stat_statements is False
        assert len(report.recommendations) == 1

    def test_explain_rejects_non_select(self, service):
        with pytest.raises(UnsafeQueryError):
            service.query_performance("SHOW work_mem")

    def test_slow_statements(self):
        provider = InMemoryCatalogProvider(data={
            StatCategory.STATEMENTS: [
                StatementRow(query="SELECT 1", total_time_ms=5.0),
                StatementRow(query="SELECT 2", total_time_ms=50.0),
            ],
        })
        service = DiagnosticService(provider, config=Config())

        report = service.query_performance(top_n=1)
        assert [q.query for q in report.slow_queries] == ["SELECT 2"]
