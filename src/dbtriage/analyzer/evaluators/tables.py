"""
Table activity evaluators: scan patterns, bloat and planner statistics.

All three read pg_stat_user_tables counters:
- HIGH_SEQ_SCAN: large tables read mostly by sequential scans
- HIGH_BLOAT: dead tuples making up more than a tenth of a table
- NEVER_ANALYZED: tables the planner has no statistics for
"""

from __future__ import annotations

from typing import Sequence

from pydantic import Field

from dbtriage.analyzer.evaluators.base import Evaluator, EvaluatorConfig
from dbtriage.analyzer.metrics import bloat_percentage
from dbtriage.analyzer.models import Finding, FindingCategory, Severity, TableRef
from dbtriage.analyzer.registry import register_evaluator
from dbtriage.catalog.models import StatCategory, StatRow, TableActivityRow


def _table_ref(row: TableActivityRow) -> TableRef:
    return TableRef(schema_name=row.schema_name, table_name=row.table_name)


class HighSeqScanConfig(EvaluatorConfig):
    """Thresholds for sequential scan detection."""

    min_seq_scans: int = Field(default=100, ge=0, description="Sequential scans above which to flag")
    seq_to_index_ratio: float = Field(
        default=2.0,
        gt=0,
        description="Flag when seq_scan exceeds this multiple of idx_scan",
    )
    min_live_rows: int = Field(default=1000, ge=0, description="Ignore tables this small")


@register_evaluator
class HighSeqScan(Evaluator):
    """
    Detect tables read mostly through sequential scans.

    A table is flagged when it has had more than 100 sequential scans,
    either no index scans or fewer than half as many, and more than 1000
    live rows. Small tables are cheap to scan and are left alone.
    """

    evaluator_id = "HIGH_SEQ_SCAN"
    category = FindingCategory.HIGH_SEQ_SCAN
    source = StatCategory.TABLE_ACTIVITY
    severity = Severity.CRITICAL
    description = "Table has excessive sequential scans"
    config_schema = HighSeqScanConfig

    def evaluate(self, rows: Sequence[StatRow]) -> list[Finding]:
        config: HighSeqScanConfig = self.config  # type: ignore[assignment]
        table_rows: Sequence[TableActivityRow] = rows  # type: ignore[assignment]
        findings: list[Finding] = []

        for row in table_rows:
            if row.seq_scan <= config.min_seq_scans:
                continue
            if row.idx_scan != 0 and row.seq_scan <= config.seq_to_index_ratio * row.idx_scan:
                continue
            if row.n_live_tup <= config.min_live_rows:
                continue

            findings.append(self.make_finding(
                description=(
                    f"{row.qualified_name} has {row.seq_scan:,} sequential scans "
                    f"vs {row.idx_scan:,} index scans over {row.n_live_tup:,} live rows"
                ),
                affected_objects=(row.qualified_name,),
                magnitude=float(row.seq_scan),
                table=_table_ref(row),
                metrics={
                    "seq_scan": row.seq_scan,
                    "idx_scan": row.idx_scan,
                    "n_live_tup": row.n_live_tup,
                },
                suggestion="Add indexes on the columns this table is filtered by",
                attention_reason=(
                    f"High sequential scans: {row.seq_scan}, index scans: {row.idx_scan}"
                ),
            ))
        return findings


class HighBloatConfig(EvaluatorConfig):
    """Thresholds for bloat detection."""

    dead_tuple_ratio: float = Field(
        default=0.10,
        gt=0,
        lt=1,
        description="dead / (live + dead) above which a table is bloated",
    )
    min_total_tuples: int = Field(default=1000, ge=0, description="Ignore tables this small")


@register_evaluator
class HighBloat(Evaluator):
    """
    Detect tables where dead tuples exceed 10% of all tuples.

    Dead tuples are left behind by UPDATE and DELETE until VACUUM reclaims
    them. They inflate every sequential scan and waste cache.

    Fix: VACUUM (ANALYZE) schema.table;
    """

    evaluator_id = "HIGH_BLOAT"
    category = FindingCategory.HIGH_BLOAT
    source = StatCategory.TABLE_ACTIVITY
    severity = Severity.HIGH
    description = "Table has a high share of dead tuples"
    config_schema = HighBloatConfig

    def evaluate(self, rows: Sequence[StatRow]) -> list[Finding]:
        config: HighBloatConfig = self.config  # type: ignore[assignment]
        table_rows: Sequence[TableActivityRow] = rows  # type: ignore[assignment]
        findings: list[Finding] = []

        for row in table_rows:
            total = row.total_tuples
            if total <= config.min_total_tuples:
                continue
            if row.n_dead_tup / total <= config.dead_tuple_ratio:
                continue

            pct = bloat_percentage(row.n_live_tup, row.n_dead_tup)
            findings.append(self.make_finding(
                description=f"{row.qualified_name} ({pct}% bloat)",
                affected_objects=(row.qualified_name,),
                magnitude=float(row.n_dead_tup),
                table=_table_ref(row),
                metrics={
                    "n_live_tup": row.n_live_tup,
                    "n_dead_tup": row.n_dead_tup,
                    "bloat_percentage": pct,
                },
                suggestion=f"VACUUM (ANALYZE) {row.qualified_name};",
                attention_reason=f"High bloat: {pct}%",
            ))
        return findings


class NeverAnalyzedConfig(EvaluatorConfig):
    """Thresholds for missing planner statistics."""

    min_live_rows: int = Field(default=100, ge=0, description="Ignore tables this small")


@register_evaluator
class NeverAnalyzed(Evaluator):
    """
    Detect tables that have never been analyzed, manually or by autovacuum.

    Without statistics the planner guesses row counts, which leads to bad
    join orders and scan choices.

    Fix: ANALYZE schema.table;
    """

    evaluator_id = "NEVER_ANALYZED"
    category = FindingCategory.NEVER_ANALYZED
    source = StatCategory.TABLE_ACTIVITY
    severity = Severity.HIGH
    description = "Table has never been analyzed"
    config_schema = NeverAnalyzedConfig

    def evaluate(self, rows: Sequence[StatRow]) -> list[Finding]:
        config: NeverAnalyzedConfig = self.config  # type: ignore[assignment]
        table_rows: Sequence[TableActivityRow] = rows  # type: ignore[assignment]
        findings: list[Finding] = []

        for row in table_rows:
            if not row.never_analyzed or row.n_live_tup <= config.min_live_rows:
                continue
            findings.append(self.make_finding(
                description=f"{row.qualified_name} has never been analyzed",
                affected_objects=(row.qualified_name,),
                magnitude=float(row.n_live_tup),
                table=_table_ref(row),
                metrics={"n_live_tup": row.n_live_tup},
                suggestion=f"ANALYZE {row.qualified_name};",
                attention_reason=f"Never analyzed ({row.n_live_tup} live rows)",
            ))
        return findings
