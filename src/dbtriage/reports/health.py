"""
Database-wide health report.

Reuses the signal evaluators for every check they already cover, so the
health report and the comprehensive analysis never disagree about what
counts as an unused index or a sequence at risk. The report wording
follows the checks in this order:

    cache → vacuum/analyze/bloat → unused indexes → connections →
    large seq-scanned tables → replication → constraints → sequences
"""

from __future__ import annotations

import logging
from typing import Mapping, Sequence

from dbtriage.analyzer.analyzer import HEALTHY_MESSAGE
from dbtriage.analyzer.evaluators import (
    ConnectionUtilization,
    IdleConnections,
    InactiveReplicationSlots,
    InvalidConstraint,
    LowCacheHitRatio,
    ReplicationLag,
    SequenceNearMax,
    UnusedIndex,
)
from dbtriage.analyzer.evaluators.base import Evaluator
from dbtriage.analyzer.metrics import cache_hit_ratios, percent, pretty_size
from dbtriage.analyzer.models import Finding
from dbtriage.catalog.models import (
    ConnectionRow,
    ConstraintRow,
    DatabaseSizeRow,
    IndexUsageRow,
    ReplicationRow,
    StatCategory,
    TableActivityRow,
    TableIORow,
)
from dbtriage.catalog.snapshot import CatalogSnapshot
from dbtriage.reports.models import (
    CachePerformance,
    ConnectionInfo,
    ConstraintHealth,
    DatabaseHealthReport,
    DatabaseSizeInfo,
    IndexHealthStatistics,
    InvalidConstraintDetail,
    ReplicationHealth,
    SequenceHealth,
    SequenceRiskDetail,
    TableHealthStatistics,
)

logger = logging.getLogger(__name__)

HEALTH_CATEGORIES = (
    StatCategory.DATABASE_SIZE,
    StatCategory.TABLE_IO,
    StatCategory.TABLE_ACTIVITY,
    StatCategory.INDEX_USAGE,
    StatCategory.CONNECTIONS,
    StatCategory.REPLICATION,
    StatCategory.CONSTRAINTS,
    StatCategory.SEQUENCES,
)

# Health-report bloat cut-off; stricter than the HIGH_BLOAT evaluator
HIGH_BLOAT_FRACTION = 0.2

# "Large tables with more sequential than index scans"
LARGE_TABLE_MIN_SEQ_SCANS = 1000
LARGE_TABLE_MIN_LIVE_ROWS = 10_000

_HEALTH_EVALUATORS: tuple[type[Evaluator], ...] = (
    LowCacheHitRatio,
    UnusedIndex,
    ConnectionUtilization,
    IdleConnections,
    ReplicationLag,
    InactiveReplicationSlots,
    InvalidConstraint,
    SequenceNearMax,
)


def default_health_evaluators() -> dict[str, Evaluator]:
    return {cls.evaluator_id: cls() for cls in _HEALTH_EVALUATORS}


class _Collector:
    """Accumulates issue/recommendation pairs in check order."""

    def __init__(self) -> None:
        self.issues: list[str] = []
        self.recommendations: list[str] = []

    def add(self, issue: str, recommendation: str | None) -> None:
        self.issues.append(issue)
        if recommendation and recommendation not in self.recommendations:
            self.recommendations.append(recommendation)

    def add_findings(self, findings: Sequence[Finding]) -> None:
        for finding in findings:
            self.add(finding.description, finding.suggestion)


def _run(
    evaluators: Mapping[str, Evaluator],
    evaluator_id: str,
    snapshot: CatalogSnapshot,
    notes: list[str],
) -> list[Finding]:
    evaluator = evaluators.get(evaluator_id)
    if evaluator is None:
        return []
    result = evaluator.run(snapshot)
    if result.note and result.note not in notes:
        notes.append(result.note)
    return list(result.findings)


def build_health_report(
    snapshot: CatalogSnapshot,
    evaluators: Mapping[str, Evaluator] | None = None,
) -> DatabaseHealthReport:
    """
    Assemble the health report from a snapshot of HEALTH_CATEGORIES.

    Args:
        snapshot: Must contain every mandatory category in HEALTH_CATEGORIES.
        evaluators: Configured evaluators by ID. A missing ID disables
            that check. Defaults to every health evaluator with default
            thresholds.
    """
    if evaluators is None:
        evaluators = default_health_evaluators()

    collector = _Collector()
    notes: list[str] = []

    # Database size
    size_row = snapshot.first(StatCategory.DATABASE_SIZE)
    total_bytes = size_row.total_size_bytes if isinstance(size_row, DatabaseSizeRow) else 0
    database_size = DatabaseSizeInfo(
        total_size=pretty_size(total_bytes),
        total_size_bytes=total_bytes,
    )

    # Cache performance
    io_rows: Sequence[TableIORow] = snapshot.get(StatCategory.TABLE_IO)  # type: ignore[assignment]
    ratios = cache_hit_ratios(io_rows).rounded()
    cache_performance = CachePerformance(
        cache_hit_ratio=ratios.overall,
        buffer_cache_hit_ratio=ratios.heap,
        index_cache_hit_ratio=ratios.index,
    )
    collector.add_findings(_run(evaluators, "LOW_CACHE_HIT_RATIO", snapshot, notes))

    # Table statistics
    tables: Sequence[TableActivityRow] = snapshot.get(StatCategory.TABLE_ACTIVITY)  # type: ignore[assignment]
    table_statistics = TableHealthStatistics(
        total_tables=len(tables),
        tables_never_vacuumed=sum(1 for t in tables if t.never_vacuumed),
        tables_never_analyzed=sum(1 for t in tables if t.never_analyzed),
        tables_with_high_bloat=sum(
            1 for t in tables
            if t.total_tuples > 0 and t.n_dead_tup / t.total_tuples > HIGH_BLOAT_FRACTION
        ),
    )
    if table_statistics.tables_never_vacuumed:
        collector.add(
            f"{table_statistics.tables_never_vacuumed} tables have never been vacuumed",
            "Enable autovacuum or manually vacuum tables",
        )
    if table_statistics.tables_never_analyzed:
        collector.add(
            f"{table_statistics.tables_never_analyzed} tables have never been analyzed",
            "Run ANALYZE on tables to update statistics for the query planner",
        )
    if table_statistics.tables_with_high_bloat:
        collector.add(
            f"{table_statistics.tables_with_high_bloat} tables have high bloat (>20% dead tuples)",
            "Consider running VACUUM FULL on bloated tables during maintenance window",
        )

    # Index statistics
    indexes: Sequence[IndexUsageRow] = snapshot.get(StatCategory.INDEX_USAGE)  # type: ignore[assignment]
    unused = _run(evaluators, "UNUSED_INDEX", snapshot, notes)
    index_statistics = IndexHealthStatistics(
        total_indexes=len(indexes),
        unused_indexes=len(unused),
        total_index_size=pretty_size(sum(i.size_bytes for i in indexes)),
    )
    if unused:
        collector.add(
            f"{len(unused)} indexes are never used",
            "Drop unused indexes to save disk space and improve write performance",
        )

    # Connections
    conn_row = snapshot.first(StatCategory.CONNECTIONS)
    if isinstance(conn_row, ConnectionRow):
        connection_info = ConnectionInfo(
            max_connections=conn_row.max_connections,
            current_connections=conn_row.total,
            connection_utilization_percent=round(
                percent(conn_row.total, conn_row.max_connections), 2
            ),
            idle_connections=conn_row.idle,
            active_connections=conn_row.active,
        )
    else:
        connection_info = ConnectionInfo(
            max_connections=0,
            current_connections=0,
            connection_utilization_percent=0.0,
            idle_connections=0,
            active_connections=0,
        )
    collector.add_findings(_run(evaluators, "CONNECTION_UTILIZATION", snapshot, notes))
    collector.add_findings(_run(evaluators, "IDLE_CONNECTIONS", snapshot, notes))

    # Large tables read mostly sequentially
    large_seq = sum(
        1 for t in tables
        if t.seq_scan > LARGE_TABLE_MIN_SEQ_SCANS
        and t.idx_scan < t.seq_scan
        and t.n_live_tup > LARGE_TABLE_MIN_LIVE_ROWS
    )
    if large_seq:
        collector.add(
            f"{large_seq} large tables have more sequential scans than index scans",
            "Analyze these tables with suggest_indexing_strategies tool",
        )

    # Replication (optional source)
    replication_health = None
    repl_row = snapshot.first(StatCategory.REPLICATION)
    if isinstance(repl_row, ReplicationRow):
        has_lag = repl_row.is_primary and repl_row.active_replicas > 0
        replication_health = ReplicationHealth(
            is_primary=repl_row.is_primary,
            replication_slots=repl_row.replication_slots,
            active_replicas=repl_row.active_replicas,
            max_lag_bytes=(repl_row.max_lag_bytes or 0) if has_lag else None,
            max_lag_seconds=(repl_row.max_lag_seconds or 0.0) if has_lag else None,
        )
    collector.add_findings(_run(evaluators, "REPLICATION_LAG", snapshot, notes))
    collector.add_findings(_run(evaluators, "INACTIVE_REPLICATION_SLOTS", snapshot, notes))

    # Constraints
    constraints: Sequence[ConstraintRow] = snapshot.get(StatCategory.CONSTRAINTS)  # type: ignore[assignment]
    invalid = _run(evaluators, "INVALID_CONSTRAINT", snapshot, notes)
    invalid_names = {f.object_id for f in invalid}
    invalid_details = tuple(
        InvalidConstraintDetail(
            schema_name=c.schema_name,
            table_name=c.table_name,
            constraint_name=c.constraint_name,
            constraint_type=c.constraint_type,
        )
        for c in constraints
        if f"{c.qualified_name}.{c.constraint_name}" in invalid_names
    )
    constraint_health = ConstraintHealth(
        total_constraints=len(constraints),
        invalid_constraints=len(invalid_details),
        invalid_constraint_details=invalid_details,
    )
    if invalid_details:
        collector.add(
            f"{len(invalid_details)} invalid constraints found",
            "Validate invalid constraints or drop them if they are no longer needed",
        )

    # Sequences
    at_risk = _run(evaluators, "SEQUENCE_NEAR_MAX", snapshot, notes)
    at_risk_details = []
    for finding in sorted(at_risk, key=lambda f: f.object_id):
        schema_name, _, sequence_name = finding.object_id.partition(".")
        at_risk_details.append(SequenceRiskDetail(
            schema_name=schema_name,
            sequence_name=sequence_name,
            current_value=int(finding.metrics["current_value"]),
            max_value=int(finding.metrics["max_value"]),
            percent_used=float(finding.metrics["percent_used"]),
        ))
    sequence_health = SequenceHealth(
        total_sequences=len(snapshot.get(StatCategory.SEQUENCES)),
        sequences_at_risk=len(at_risk_details),
        at_risk_details=tuple(at_risk_details),
    )
    if at_risk_details:
        collector.add(
            f"{len(at_risk_details)} sequences are at risk of reaching their maximum value",
            "Consider using BIGINT for sequence columns or resetting sequences",
        )

    if not collector.issues:
        collector.recommendations.append(HEALTHY_MESSAGE)

    logger.debug("Health report: %d performance issues", len(collector.issues))

    return DatabaseHealthReport(
        database_size=database_size,
        cache_performance=cache_performance,
        table_statistics=table_statistics,
        index_statistics=index_statistics,
        connection_info=connection_info,
        replication_health=replication_health,
        constraint_health=constraint_health,
        sequence_health=sequence_health,
        performance_issues=tuple(collector.issues),
        recommendations=tuple(collector.recommendations),
        data_notes=tuple(notes),
    )
