"""Tests for issue aggregation, health scoring and workflow planning."""

import itertools

import pytest

from dbtriage.analyzer.aggregator import IssueAggregator
from dbtriage.analyzer.models import (
    Finding,
    FindingCategory,
    Issue,
    Severity,
    TableAttentionEntry,
    TableRef,
    Tool,
)
from dbtriage.analyzer.scoring import compute_health_score
from dbtriage.analyzer.workflow import plan_workflow


def make_finding(
    category: FindingCategory,
    severity: Severity,
    table: str | None = None,
    obj: str | None = None,
    **kwargs,
) -> Finding:
    """Create a finding; a table name makes it table-scoped."""
    ref = TableRef(schema_name="public", table_name=table) if table else None
    affected = (obj or (f"public.{table}" if table else "server"),)
    return Finding(
        evaluator_id=category.value.upper(),
        category=category,
        severity=severity,
        description=f"{category.value} on {affected[0]}",
        affected_objects=affected,
        table=ref,
        **kwargs,
    )


def make_issue(severity: Severity, category: FindingCategory, objects=("public.t",)) -> Issue:
    return Issue(
        severity=severity,
        category=category,
        description="issue",
        affected_objects=tuple(objects),
        recommended_tool=Tool.DATABASE_HEALTH,
        recommended_action="act",
    )


def make_entry(name: str, priority: Severity) -> TableAttentionEntry:
    return TableAttentionEntry(
        schema_name="public",
        table_name=name,
        reasons=(f"reason for {name}",),
        priority=priority,
    )


class TestIssueAggregator:
    """Tests for findings → issues and attention entries."""

    def test_one_issue_per_category(self):
        findings = [
            make_finding(FindingCategory.HIGH_SEQ_SCAN, Severity.CRITICAL, table="orders"),
            make_finding(FindingCategory.HIGH_SEQ_SCAN, Severity.CRITICAL, table="events"),
        ]
        result = IssueAggregator().aggregate(findings)

        assert len(result.issues) == 1
        issue = result.issues[0]
        assert issue.description == "2 tables have excessive sequential scans"
        assert issue.affected_objects == ("public.orders", "public.events")
        assert issue.recommended_tool == Tool.INDEXING_STRATEGIES
        assert issue.suggested_parameters is None

    def test_fixed_category_order(self):
        """Issues follow the category order, not the finding order."""
        findings = [
            make_finding(FindingCategory.SEQUENCE_NEAR_MAX, Severity.MEDIUM, obj="public.s"),
            make_finding(FindingCategory.HIGH_BLOAT, Severity.HIGH, table="events"),
            make_finding(
                FindingCategory.UNUSED_INDEX,
                Severity.HIGH,
                obj="public.orders.idx",
                metrics={"size_bytes": 65536},
            ),
        ]
        result = IssueAggregator().aggregate(findings)

        assert [i.category for i in result.issues] == [
            FindingCategory.UNUSED_INDEX,
            FindingCategory.HIGH_BLOAT,
            FindingCategory.SEQUENCE_NEAR_MAX,
        ]

    def test_one_attention_entry_per_table(self):
        """Findings on the same table merge; priority is the strongest severity."""
        findings = [
            make_finding(
                FindingCategory.HIGH_BLOAT,
                Severity.HIGH,
                table="events",
                attention_reason="High bloat: 15.0%",
            ),
            make_finding(
                FindingCategory.FK_MISSING_INDEX,
                Severity.CRITICAL,
                table="events",
                attention_reason="Unindexed foreign key: fk (order_id)",
            ),
        ]
        result = IssueAggregator().aggregate(findings)

        assert len(result.tables_requiring_attention) == 1
        entry = result.tables_requiring_attention[0]
        assert entry.priority == Severity.CRITICAL
        # FK category comes before bloat
        assert entry.reasons == ("Unindexed foreign key: fk (order_id)", "High bloat: 15.0%")
        assert entry.suggested_tools == (
            Tool.INDEXING_STRATEGIES,
            Tool.QUERY_STATISTICS,
            Tool.SCHEMA_OPTIMIZATIONS,
        )

    def test_single_table_issue_gets_parameters(self):
        findings = [make_finding(FindingCategory.NEVER_ANALYZED, Severity.HIGH, table="customers")]
        issue = IssueAggregator().aggregate(findings).issues[0]
        assert issue.suggested_parameters == {"schema": "public", "table": "customers"}

    def test_unused_indexes_are_database_wide(self):
        """Unused indexes produce an issue and a quick win but no attention entry."""
        findings = [
            make_finding(
                FindingCategory.UNUSED_INDEX,
                Severity.HIGH,
                obj="public.orders.orders_status_idx",
                metrics={"size_bytes": 65536},
            ),
        ]
        result = IssueAggregator().aggregate(findings)

        assert result.tables_requiring_attention == ()
        assert result.issues[0].description == "1 unused indexes wasting 64 kB"
        assert result.quick_wins == (
            "Drop 1 unused indexes to save 64 kB and improve write performance",
        )

    def test_quick_wins(self):
        findings = [
            make_finding(FindingCategory.FK_MISSING_INDEX, Severity.CRITICAL, table="events"),
            make_finding(FindingCategory.NEVER_ANALYZED, Severity.HIGH, table="customers"),
            make_finding(FindingCategory.NEVER_ANALYZED, Severity.HIGH, table="orders"),
        ]
        result = IssueAggregator().aggregate(findings)

        assert result.quick_wins == (
            "Add indexes to 1 foreign key columns for immediate JOIN performance improvement",
            "Run ANALYZE on 2 tables that have never been analyzed to give the planner statistics",
        )

    def test_advisories_become_long_term_improvements(self):
        findings = [
            make_finding(
                FindingCategory.LOW_CACHE_HIT_RATIO,
                Severity.MEDIUM,
                advisory=True,
                suggestion="Consider increasing shared_buffers and effective_cache_size",
            ),
        ]
        result = IssueAggregator().aggregate(findings)

        assert result.issues == ()
        assert len(result.advisories) == 1
        assert result.long_term_improvements == (
            "Consider increasing shared_buffers and effective_cache_size",
        )

    def test_sequence_risk_is_long_term(self):
        findings = [make_finding(FindingCategory.SEQUENCE_NEAR_MAX, Severity.MEDIUM, obj="public.s")]
        result = IssueAggregator().aggregate(findings)

        assert result.issues[0].recommended_tool == Tool.DATABASE_HEALTH
        assert result.long_term_improvements == (
            "Consider using BIGINT for sequence columns or resetting sequences",
        )

    def test_no_findings(self):
        result = IssueAggregator().aggregate([])
        assert result.issues == ()
        assert result.tables_requiring_attention == ()
        assert result.quick_wins == ()


class TestHealthScore:
    """Tests for the penalty-based health score."""

    def test_no_issues(self):
        assert compute_health_score([]) == 100

    def test_penalties(self):
        issues = [
            make_issue(Severity.CRITICAL, FindingCategory.HIGH_SEQ_SCAN),
            make_issue(Severity.HIGH, FindingCategory.HIGH_BLOAT),
            make_issue(Severity.MEDIUM, FindingCategory.SEQUENCE_NEAR_MAX),
            make_issue(Severity.LOW, FindingCategory.IDLE_CONNECTIONS),
        ]
        assert compute_health_score(issues) == 100 - 20 - 10 - 5

    def test_clamped_at_zero(self):
        issues = [
            make_issue(Severity.CRITICAL, FindingCategory.HIGH_SEQ_SCAN, objects=(f"public.t{i}",))
            for i in range(6)
        ]
        assert compute_health_score(issues) == 0

    def test_permutation_invariant(self):
        issues = [
            make_issue(Severity.CRITICAL, FindingCategory.FK_MISSING_INDEX),
            make_issue(Severity.HIGH, FindingCategory.NEVER_ANALYZED),
            make_issue(Severity.MEDIUM, FindingCategory.SEQUENCE_NEAR_MAX),
        ]
        scores = {compute_health_score(list(p)) for p in itertools.permutations(issues)}
        assert scores == {65}

    def test_duplicate_issue_counted_once(self):
        issue = make_issue(Severity.HIGH, FindingCategory.HIGH_BLOAT)
        assert compute_health_score([issue, issue]) == 90


class TestWorkflowPlanner:
    """Tests for the remediation plan."""

    def test_no_tables(self):
        steps = plan_workflow([])

        assert [s.step for s in steps] == [1, 2]
        assert steps[0].tool == Tool.DATABASE_HEALTH
        assert steps[1].tool == Tool.QUERY_PERFORMANCE

    def test_three_steps_per_table(self):
        steps = plan_workflow([make_entry("orders", Severity.CRITICAL)])

        assert len(steps) == 5
        assert [s.tool for s in steps[2:]] == [
            Tool.QUERY_STATISTICS,
            Tool.INDEXING_STRATEGIES,
            Tool.SCHEMA_OPTIMIZATIONS,
        ]
        assert steps[2].parameters == {"schema": "public", "table": "orders"}
        assert steps[2].description == "Analyze public.orders - reason for orders"

    def test_seven_tables_give_eighteen_steps(self):
        """2 global + 5 tables x 3 + 1 overflow step."""
        entries = [make_entry(f"t{i}", Severity.HIGH) for i in range(7)]
        steps = plan_workflow(entries)

        assert len(steps) == 18
        assert [s.step for s in steps] == list(range(1, 19))
        overflow = steps[-1]
        assert overflow.description == "Repeat steps for remaining 2 tables"
        assert overflow.tool == Tool.MULTIPLE
        assert overflow.parameters is None

    def test_priority_then_discovery_order(self):
        entries = [
            make_entry("low", Severity.MEDIUM),
            make_entry("first_critical", Severity.CRITICAL),
            make_entry("high", Severity.HIGH),
            make_entry("second_critical", Severity.CRITICAL),
        ]
        steps = plan_workflow(entries)
        tables = [s.parameters["table"] for s in steps if s.tool == Tool.QUERY_STATISTICS]

        assert tables == ["first_critical", "second_critical", "high", "low"]

    @pytest.mark.parametrize("top_n,expected", [(0, 3), (2, 9)])
    def test_custom_top_n(self, top_n, expected):
        entries = [make_entry(f"t{i}", Severity.HIGH) for i in range(3)]
        assert len(plan_workflow(entries, top_n=top_n)) == expected
