"""
Server-wide advisory evaluators: cache, connections and replication.

These findings describe the instance rather than a table. They are
reported as long-term improvements and do not lower the health score.
Replication statistics are an optional source; when they cannot be read
the evaluators contribute a note instead of findings.
"""

from __future__ import annotations

from typing import Sequence

from pydantic import Field

from dbtriage.analyzer.evaluators.base import Evaluator, EvaluatorConfig
from dbtriage.analyzer.metrics import cache_hit_ratios, percent
from dbtriage.analyzer.models import Finding, FindingCategory, Severity
from dbtriage.analyzer.registry import register_evaluator
from dbtriage.catalog.models import (
    ConnectionRow,
    ReplicationRow,
    StatCategory,
    StatRow,
    TableIORow,
)

MIB = 1024 * 1024


class LowCacheHitRatioConfig(EvaluatorConfig):
    min_hit_ratio: float = Field(default=0.90, gt=0, le=1)


@register_evaluator
class LowCacheHitRatio(Evaluator):
    """Detect a buffer cache hit ratio below 90% across all user tables."""

    evaluator_id = "LOW_CACHE_HIT_RATIO"
    category = FindingCategory.LOW_CACHE_HIT_RATIO
    source = StatCategory.TABLE_IO
    severity = Severity.MEDIUM
    advisory = True
    description = "Buffer cache hit ratio is low"
    config_schema = LowCacheHitRatioConfig

    def evaluate(self, rows: Sequence[StatRow]) -> list[Finding]:
        config: LowCacheHitRatioConfig = self.config  # type: ignore[assignment]
        io_rows: Sequence[TableIORow] = rows  # type: ignore[assignment]

        ratios = cache_hit_ratios(io_rows)
        if ratios.overall / 100 >= config.min_hit_ratio:
            return []

        return [self.make_finding(
            description=f"Low overall cache hit ratio: {ratios.overall:.1f}%",
            magnitude=round(ratios.overall, 2),
            metrics={
                "cache_hit_ratio": round(ratios.overall, 2),
                "heap_hit_ratio": round(ratios.heap, 2),
                "index_hit_ratio": round(ratios.index, 2),
            },
            suggestion="Consider increasing shared_buffers and effective_cache_size",
        )]


class IdleConnectionsConfig(EvaluatorConfig):
    max_idle_fraction: float = Field(default=0.5, gt=0, lt=1)
    min_connections: int = Field(default=20, ge=0)


@register_evaluator
class IdleConnections(Evaluator):
    """Detect more than half of over 20 connections sitting idle."""

    evaluator_id = "IDLE_CONNECTIONS"
    category = FindingCategory.IDLE_CONNECTIONS
    source = StatCategory.CONNECTIONS
    severity = Severity.LOW
    advisory = True
    description = "Many connections are idle"
    config_schema = IdleConnectionsConfig

    def evaluate(self, rows: Sequence[StatRow]) -> list[Finding]:
        config: IdleConnectionsConfig = self.config  # type: ignore[assignment]
        conn_rows: Sequence[ConnectionRow] = rows  # type: ignore[assignment]
        findings: list[Finding] = []

        for row in conn_rows:
            if row.idle <= row.total * config.max_idle_fraction:
                continue
            if row.total <= config.min_connections:
                continue
            idle_pct = percent(row.idle, row.total)
            findings.append(self.make_finding(
                description=f"High number of idle connections: {row.idle} ({idle_pct:.1f}%)",
                magnitude=float(row.idle),
                metrics={"idle": row.idle, "total": row.total},
                suggestion="Consider connection pooling with shorter idle timeouts",
            ))
        return findings


class ConnectionUtilizationConfig(EvaluatorConfig):
    max_utilization: float = Field(default=0.80, gt=0, le=1)


@register_evaluator
class ConnectionUtilization(Evaluator):
    """Detect more than 80% of max_connections in use."""

    evaluator_id = "CONNECTION_UTILIZATION"
    category = FindingCategory.HIGH_CONNECTION_UTILIZATION
    source = StatCategory.CONNECTIONS
    severity = Severity.MEDIUM
    advisory = True
    description = "Connection slots are nearly exhausted"
    config_schema = ConnectionUtilizationConfig

    def evaluate(self, rows: Sequence[StatRow]) -> list[Finding]:
        config: ConnectionUtilizationConfig = self.config  # type: ignore[assignment]
        conn_rows: Sequence[ConnectionRow] = rows  # type: ignore[assignment]
        findings: list[Finding] = []

        for row in conn_rows:
            utilization = percent(row.total, row.max_connections)
            if row.max_connections <= 0 or row.total / row.max_connections <= config.max_utilization:
                continue
            findings.append(self.make_finding(
                description=f"High connection utilization: {utilization:.1f}%",
                magnitude=round(utilization, 2),
                metrics={"total": row.total, "max_connections": row.max_connections},
                suggestion="Consider increasing max_connections or implementing connection pooling",
            ))
        return findings


class ReplicationLagConfig(EvaluatorConfig):
    max_lag_bytes: int = Field(default=100 * MIB, ge=0)


@register_evaluator
class ReplicationLag(Evaluator):
    """Detect a replica more than 100 MiB of WAL behind the primary."""

    evaluator_id = "REPLICATION_LAG"
    category = FindingCategory.REPLICATION_LAG
    source = StatCategory.REPLICATION
    severity = Severity.HIGH
    advisory = True
    description = "Replica is lagging behind the primary"
    config_schema = ReplicationLagConfig

    def evaluate(self, rows: Sequence[StatRow]) -> list[Finding]:
        config: ReplicationLagConfig = self.config  # type: ignore[assignment]
        repl_rows: Sequence[ReplicationRow] = rows  # type: ignore[assignment]
        findings: list[Finding] = []

        for row in repl_rows:
            if not row.is_primary or row.active_replicas <= 0:
                continue
            lag = row.max_lag_bytes or 0
            if lag <= config.max_lag_bytes:
                continue
            findings.append(self.make_finding(
                description=f"High replication lag: {lag / MIB:.2f} MB",
                magnitude=float(lag),
                metrics={"max_lag_bytes": lag, "max_lag_seconds": row.max_lag_seconds or 0.0},
                suggestion=(
                    "Investigate replication lag - check network, replica resources, "
                    "or increase wal_sender_timeout"
                ),
            ))
        return findings


@register_evaluator
class InactiveReplicationSlots(Evaluator):
    """Detect replication slots with no replica attached; they pin WAL on disk."""

    evaluator_id = "INACTIVE_REPLICATION_SLOTS"
    category = FindingCategory.INACTIVE_REPLICATION_SLOTS
    source = StatCategory.REPLICATION
    severity = Severity.MEDIUM
    advisory = True
    description = "Replication slots without an active replica"

    def evaluate(self, rows: Sequence[StatRow]) -> list[Finding]:
        repl_rows: Sequence[ReplicationRow] = rows  # type: ignore[assignment]
        findings: list[Finding] = []

        for row in repl_rows:
            if not row.is_primary or row.active_replicas <= 0:
                continue
            inactive = row.replication_slots - row.active_replicas
            if inactive <= 0:
                continue
            findings.append(self.make_finding(
                description=f"Inactive replication slots detected: {inactive}",
                magnitude=float(inactive),
                metrics={
                    "replication_slots": row.replication_slots,
                    "active_replicas": row.active_replicas,
                },
                suggestion="Drop inactive replication slots to prevent WAL accumulation",
            ))
        return findings
