"""
Issue aggregation: findings → issues, attention entries and quick wins.

The aggregator walks scored categories in a fixed order so that two runs
over the same findings always produce the same report:

    unused indexes → high seq scan → unindexed FK → bloat →
    never analyzed → invalid constraints → sequence risk

Each category with at least one finding becomes exactly one Issue.
Table-scoped findings also upsert a TableAttentionEntry for their table;
entries keep discovery order and their priority only ever rises.

Advisory findings (cache, connections, replication) are never turned
into Issues. Their suggestions become long-term improvements.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Iterable, NamedTuple

from dbtriage.analyzer.metrics import pretty_size
from dbtriage.analyzer.models import (
    Finding,
    FindingCategory,
    Issue,
    Severity,
    TableAttentionEntry,
    TableRef,
    Tool,
)

logger = logging.getLogger(__name__)


class CategoryRule(NamedTuple):
    """How one finding category is promoted into the report."""

    describe: Callable[[list[Finding]], str]
    tool: Tool
    action: str
    attention_tools: tuple[Tool, ...] = ()
    quick_win: Callable[[list[Finding]], str] | None = None


def _total_size(findings: list[Finding]) -> str:
    return pretty_size(sum(int(f.metrics.get("size_bytes", 0)) for f in findings))


# ── Category order and wording ───────────────────────────────────────────

CATEGORY_RULES: dict[FindingCategory, CategoryRule] = {
    FindingCategory.UNUSED_INDEX: CategoryRule(
        describe=lambda fs: f"{len(fs)} unused indexes wasting {_total_size(fs)}",
        tool=Tool.INDEXING_STRATEGIES,
        action="Analyze each table with suggest_indexing_strategies, then drop unused indexes",
        quick_win=lambda fs: (
            f"Drop {len(fs)} unused indexes to save {_total_size(fs)} "
            "and improve write performance"
        ),
    ),
    FindingCategory.HIGH_SEQ_SCAN: CategoryRule(
        describe=lambda fs: f"{len(fs)} tables have excessive sequential scans",
        tool=Tool.INDEXING_STRATEGIES,
        action="Add indexes to reduce sequential scans",
        attention_tools=(Tool.QUERY_STATISTICS, Tool.INDEXING_STRATEGIES),
    ),
    FindingCategory.FK_MISSING_INDEX: CategoryRule(
        describe=lambda fs: f"{len(fs)} foreign keys without indexes (causes slow JOINs)",
        tool=Tool.INDEXING_STRATEGIES,
        action="Create indexes on all foreign key columns for better JOIN performance",
        attention_tools=(Tool.INDEXING_STRATEGIES,),
        quick_win=lambda fs: (
            f"Add indexes to {len(fs)} foreign key columns "
            "for immediate JOIN performance improvement"
        ),
    ),
    FindingCategory.HIGH_BLOAT: CategoryRule(
        describe=lambda fs: f"{len(fs)} tables have >10% bloat",
        tool=Tool.QUERY_STATISTICS,
        action="Run VACUUM on bloated tables during maintenance window",
        attention_tools=(Tool.QUERY_STATISTICS, Tool.SCHEMA_OPTIMIZATIONS),
    ),
    FindingCategory.NEVER_ANALYZED: CategoryRule(
        describe=lambda fs: (
            f"{len(fs)} tables have never been analyzed (query planner lacks statistics)"
        ),
        tool=Tool.QUERY_STATISTICS,
        action="Run ANALYZE on these tables immediately",
        attention_tools=(Tool.QUERY_STATISTICS,),
        quick_win=lambda fs: (
            f"Run ANALYZE on {len(fs)} tables that have never been analyzed "
            "to give the planner statistics"
        ),
    ),
    FindingCategory.INVALID_CONSTRAINT: CategoryRule(
        describe=lambda fs: f"{len(fs)} invalid constraints found",
        tool=Tool.SCHEMA_OPTIMIZATIONS,
        action="Validate invalid constraints or drop them if they are no longer needed",
        attention_tools=(Tool.SCHEMA_OPTIMIZATIONS,),
    ),
    FindingCategory.SEQUENCE_NEAR_MAX: CategoryRule(
        describe=lambda fs: f"{len(fs)} sequences are at risk of reaching their maximum value",
        tool=Tool.DATABASE_HEALTH,
        action="Consider using BIGINT for sequence columns or resetting sequences",
    ),
}


@dataclass(frozen=True)
class AggregationResult:
    """Everything the aggregator derives from one run's findings."""

    issues: tuple[Issue, ...]
    tables_requiring_attention: tuple[TableAttentionEntry, ...]
    quick_wins: tuple[str, ...]
    long_term_improvements: tuple[str, ...]
    advisories: tuple[Finding, ...]


def _dedupe(items: Iterable[str]) -> tuple[str, ...]:
    return tuple(dict.fromkeys(items))


class IssueAggregator:
    """
    Merge findings into issues and per-table attention entries.

    Example:
        result = IssueAggregator().aggregate(findings)
        for entry in result.tables_requiring_attention:
            print(entry.qualified_name, entry.priority)
    """

    def __init__(self, rules: dict[FindingCategory, CategoryRule] | None = None) -> None:
        self.rules = rules if rules is not None else CATEGORY_RULES

    def aggregate(self, findings: Iterable[Finding]) -> AggregationResult:
        by_category: dict[FindingCategory, list[Finding]] = {}
        advisories: list[Finding] = []
        for finding in findings:
            if finding.advisory:
                advisories.append(finding)
            elif finding.category in self.rules:
                by_category.setdefault(finding.category, []).append(finding)
            else:
                logger.warning(
                    "No aggregation rule for category %s, finding dropped",
                    finding.category.value,
                )

        issues: dict[tuple[FindingCategory, frozenset[str]], Issue] = {}
        attention: dict[str, TableAttentionEntry] = {}
        quick_wins: list[str] = []
        long_term: list[str] = []

        for category, rule in self.rules.items():
            category_findings = by_category.get(category)
            if not category_findings:
                continue

            issue = self._build_issue(category, rule, category_findings)
            if issue.key in issues:
                logger.debug("Duplicate issue for %s skipped", category.value)
            else:
                issues[issue.key] = issue

            for finding in category_findings:
                if finding.table is not None:
                    self._upsert(attention, finding, rule.attention_tools)

            if rule.quick_win is not None:
                quick_wins.append(rule.quick_win(category_findings))
            if category == FindingCategory.SEQUENCE_NEAR_MAX:
                long_term.append(rule.action)

        for finding in advisories:
            if finding.suggestion:
                long_term.append(finding.suggestion)

        return AggregationResult(
            issues=tuple(issues.values()),
            tables_requiring_attention=tuple(attention.values()),
            quick_wins=_dedupe(quick_wins),
            long_term_improvements=_dedupe(long_term),
            advisories=tuple(advisories),
        )

    @staticmethod
    def _build_issue(
        category: FindingCategory,
        rule: CategoryRule,
        findings: list[Finding],
    ) -> Issue:
        severity = findings[0].severity
        for finding in findings[1:]:
            severity = severity.stronger(finding.severity)

        affected: list[str] = []
        for finding in findings:
            affected.extend(finding.affected_objects)

        tables = {f.table for f in findings if f.table is not None}
        parameters = None
        if len(tables) == 1 and all(f.table is not None for f in findings):
            parameters = next(iter(tables)).as_parameters()

        return Issue(
            severity=severity,
            category=category,
            description=rule.describe(findings),
            affected_objects=tuple(dict.fromkeys(affected)),
            recommended_tool=rule.tool,
            recommended_action=rule.action,
            suggested_parameters=parameters,
        )

    @staticmethod
    def _upsert(
        attention: dict[str, TableAttentionEntry],
        finding: Finding,
        tools: tuple[Tool, ...],
    ) -> None:
        table: TableRef = finding.table  # type: ignore[assignment]
        reason = finding.attention_reason or finding.description
        entry = attention.get(table.qualified_name)
        if entry is None:
            entry = TableAttentionEntry(
                schema_name=table.schema_name,
                table_name=table.table_name,
                priority=Severity.LOW,
            )
        attention[table.qualified_name] = entry.merged(reason, finding.severity, tools)
