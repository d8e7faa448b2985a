"""Tests for text, JSON and Markdown rendering."""

import json

import pytest

from dbtriage.analyzer import DatabaseReport, DiagnosticAnalyzer
from dbtriage.catalog import collect_snapshot
from dbtriage.output import OutputFormat, render_json, render_markdown, render_report, render_text
from dbtriage.reports import QUERY_STATISTICS_CATEGORIES, build_query_statistics


@pytest.fixture
def report(sample_provider, config) -> DatabaseReport:
    analyzer = DiagnosticAnalyzer(config=config)
    return analyzer.analyze(collect_snapshot(sample_provider, analyzer.required_categories))


@pytest.fixture
def stats_report(sample_provider):
    snapshot = collect_snapshot(sample_provider, QUERY_STATISTICS_CATEGORIES)
    return build_query_statistics(snapshot, "public", "orders")


class TestRenderJson:
    """Tests for JSON output."""

    def test_loads_back(self, report):
        data = json.loads(render_json(report))

        assert data["health_score"] == 15
        assert len(data["issues"]) == 7
        assert DatabaseReport.model_validate(data) == report

    def test_inspection_report(self, stats_report):
        data = json.loads(render_report(stats_report, OutputFormat.JSON))
        assert data["bloat_estimate"]["estimated_bloat"] == "Low"


class TestRenderText:
    """Tests for terminal output."""

    def test_database_report(self, report):
        text = render_text(report)

        assert "dbtriage Database Report" in text
        assert "Health Score: 15/100" in text
        assert "TABLES REQUIRING ATTENTION" in text
        assert "public.orders.orders_status_idx" in text
        assert " 11. " in text

    def test_inspection_report(self, stats_report):
        text = render_text(stats_report)

        assert "Query Statistics Report" in text
        assert "Table name: orders" in text
        assert "Estimated bloat: Low" in text
        assert "orders_customer_created_idx" in text


class TestRenderMarkdown:
    """Tests for Markdown output."""

    def test_database_report(self, report):
        md = render_markdown(report)

        assert md.startswith("# dbtriage Database Report")
        assert "🔴 **Critical issues found**" in md
        assert "| Health Score | 15 |" in md
        assert md.endswith("*Generated by dbtriage*")

    def test_inspection_report_tables(self, stats_report):
        md = render_markdown(stats_report)

        assert md.startswith("# Query Statistics Report")
        assert "## Index statistics" in md
        assert "| Index name | Idx scan |" in md


class TestRenderDispatch:
    """Tests for format dispatch."""

    @pytest.mark.parametrize("fmt", list(OutputFormat))
    def test_every_format(self, report, fmt):
        assert render_report(report, fmt)

    def test_unknown_format(self, report):
        with pytest.raises(ValueError, match="Unknown format"):
            render_report(report, "xml")  # type: ignore[arg-type]
