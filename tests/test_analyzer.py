"""End-to-end tests for DiagnosticAnalyzer over the sample snapshot."""

import pytest

from dbtriage.analyzer import HEALTHY_MESSAGE, DatabaseReport, DiagnosticAnalyzer
from dbtriage.analyzer.evaluators import HighBloat
from dbtriage.analyzer.models import FindingCategory, Severity, Tool
from dbtriage.catalog import CatalogSnapshot, StatCategory, TableActivityRow, collect_snapshot
from dbtriage.config import Config, EvaluatorSettings
from dbtriage.exceptions import ConfigurationError


@pytest.fixture
def analyzer(config) -> DiagnosticAnalyzer:
    return DiagnosticAnalyzer(config=config)


@pytest.fixture
def report(analyzer, sample_provider) -> DatabaseReport:
    snapshot = collect_snapshot(sample_provider, analyzer.required_categories)
    return analyzer.analyze(snapshot)


class TestComprehensiveReport:
    """Tests for the report produced from the sample snapshot."""

    def test_issue_categories_in_order(self, report):
        assert [i.category for i in report.issues] == [
            FindingCategory.UNUSED_INDEX,
            FindingCategory.HIGH_SEQ_SCAN,
            FindingCategory.FK_MISSING_INDEX,
            FindingCategory.HIGH_BLOAT,
            FindingCategory.NEVER_ANALYZED,
            FindingCategory.INVALID_CONSTRAINT,
            FindingCategory.SEQUENCE_NEAR_MAX,
        ]

    def test_health_score(self, report):
        """Two critical, four high and one medium issue."""
        assert report.health_score == 100 - 2 * 20 - 4 * 10 - 5
        assert report.summary.health_score == report.health_score

    def test_summary(self, report):
        assert report.summary.total_tables == 3
        assert report.summary.total_size == "50 MB"
        assert report.summary.critical_issues == 2
        assert report.summary.warnings == 5
        assert report.summary.advisories == 1

    def test_unique_key_constraint_not_unused(self, report):
        unused = report.issues[0]
        assert unused.affected_objects == ("public.orders.orders_status_idx",)

    def test_tables_requiring_attention(self, report):
        entries = {e.qualified_name: e for e in report.tables_requiring_attention}

        assert list(entries) == ["public.orders", "public.events", "public.customers"]
        assert entries["public.orders"].priority == Severity.CRITICAL
        assert entries["public.events"].priority == Severity.CRITICAL
        assert entries["public.customers"].priority == Severity.HIGH
        assert entries["public.events"].reasons == (
            "Unindexed foreign key: events_order_id_fkey (order_id)",
            "High bloat: 15.0%",
            "Invalid constraint: events_order_id_fkey (FOREIGN KEY)",
        )

    def test_workflow(self, report):
        """Three flagged tables give 2 + 3*3 steps."""
        assert len(report.workflow) == 11
        assert [s.step for s in report.workflow] == list(range(1, 12))
        per_table = [s.parameters["table"] for s in report.workflow if s.tool == Tool.QUERY_STATISTICS]
        assert per_table == ["orders", "events", "customers"]

    def test_quick_wins_and_long_term(self, report):
        assert report.quick_wins == (
            "Drop 1 unused indexes to save 64 kB and improve write performance",
            "Add indexes to 1 foreign key columns for immediate JOIN performance improvement",
            "Run ANALYZE on 1 tables that have never been analyzed to give the planner statistics",
        )
        assert report.long_term_improvements == (
            "Consider using BIGINT for sequence columns or resetting sequences",
            "Consider connection pooling with shorter idle timeouts",
        )

    def test_recommendations_deduplicated(self, report):
        assert len(report.recommendations) == len(set(report.recommendations))
        assert report.recommendations[0] == report.issues[0].recommended_action
        assert HEALTHY_MESSAGE not in report.recommendations

    def test_missing_replication_is_a_note(self, report):
        assert report.data_notes == (
            "Replication statistics unavailable: replication statistics are not available",
        )

    def test_deterministic_json(self, analyzer, sample_provider):
        """Two runs over the same snapshot serialize identically."""
        snapshot = collect_snapshot(sample_provider, analyzer.required_categories)
        assert analyzer.analyze(snapshot).to_json() == analyzer.analyze(snapshot).to_json()

    def test_json_round_trip(self, report):
        assert DatabaseReport.from_json(report.to_json()) == report


class TestHealthyDatabase:
    """Tests for a database with nothing to report."""

    def test_no_issues(self, analyzer):
        snapshot = CatalogSnapshot(
            rows={category: () for category in analyzer.required_categories},
        )
        report = analyzer.analyze(snapshot)

        assert report.health_score == 100
        assert report.issues == ()
        assert report.recommendations == (HEALTHY_MESSAGE,)
        assert len(report.workflow) == 2

    def test_size_falls_back_to_table_count(self, analyzer):
        rows = {category: () for category in analyzer.required_categories}
        rows[StatCategory.TABLE_ACTIVITY] = (
            TableActivityRow(schema_name="public", table_name="a", last_analyze="2024-01-01T00:00:00"),
            TableActivityRow(schema_name="public", table_name="b", last_analyze="2024-01-01T00:00:00"),
        )
        report = analyzer.analyze(CatalogSnapshot(rows=rows))

        assert report.summary.total_tables == 2
        assert report.summary.total_size == "0 bytes"


class TestAnalyzerConfiguration:
    """Tests for evaluator selection and threshold overrides."""

    def test_disabled_evaluator(self):
        config = Config(evaluators={"HIGH_BLOAT": EvaluatorSettings(enabled=False)})
        analyzer = DiagnosticAnalyzer(config=config)
        assert "HIGH_BLOAT" not in {e.evaluator_id for e in analyzer.evaluators}

    def test_exclude_evaluators(self, config):
        analyzer = DiagnosticAnalyzer(config=config, exclude_evaluators={"REPLICATION_LAG"})
        ids = {e.evaluator_id for e in analyzer.evaluators}
        assert "REPLICATION_LAG" not in ids
        assert "INACTIVE_REPLICATION_SLOTS" in ids

    def test_include_evaluators_limits_categories(self, config):
        analyzer = DiagnosticAnalyzer(config=config, include_evaluators={"HIGH_BLOAT"})
        assert analyzer.required_categories == [
            StatCategory.DATABASE_SIZE,
            StatCategory.TABLE_ACTIVITY,
        ]

    def test_threshold_override(self, sample_provider):
        """Raising the bloat threshold to 20% clears the events finding."""
        config = Config(
            evaluators={"HIGH_BLOAT": EvaluatorSettings(thresholds={"dead_tuple_ratio": 0.2})}
        )
        analyzer = DiagnosticAnalyzer(config=config)
        report = analyzer.analyze(collect_snapshot(sample_provider, analyzer.required_categories))

        assert FindingCategory.HIGH_BLOAT not in {i.category for i in report.issues}

    def test_invalid_threshold(self):
        config = Config(evaluators={"HIGH_BLOAT": EvaluatorSettings(thresholds={"dead_tuple_ratio": 5})})
        with pytest.raises(ConfigurationError) as exc_info:
            DiagnosticAnalyzer(config=config)
        assert exc_info.value.config_key == "evaluators.HIGH_BLOAT"

    def test_explicit_evaluators(self, config):
        analyzer = DiagnosticAnalyzer(config=config, evaluators=[HighBloat()])
        assert [e.evaluator_id for e in analyzer.list_evaluators()] == ["HIGH_BLOAT"]

    def test_top_tables_from_config(self, sample_provider):
        analyzer = DiagnosticAnalyzer(config=Config(top_tables=1))
        report = analyzer.analyze(collect_snapshot(sample_provider, analyzer.required_categories))

        # 2 global steps, one table, one overflow step
        assert len(report.workflow) == 6
        assert report.workflow[-1].description == "Repeat steps for remaining 2 tables"
