"""Tests for the signal evaluators and the numeric helpers they share."""

import pytest
from pydantic import ValidationError

from dbtriage.analyzer.evaluators import (
    ConnectionUtilization,
    EvaluationStatus,
    ForeignKeyMissingIndex,
    HighBloat,
    HighSeqScan,
    IdleConnections,
    InactiveReplicationSlots,
    InvalidConstraint,
    LowCacheHitRatio,
    NeverAnalyzed,
    ReplicationLag,
    SequenceNearMax,
    UnusedIndex,
)
from dbtriage.analyzer.metrics import bloat_label, bloat_percentage, cache_hit_ratios, pretty_size
from dbtriage.analyzer.models import FindingCategory, Severity
from dbtriage.catalog import (
    CatalogSnapshot,
    ConnectionRow,
    ConstraintRow,
    ForeignKeyRow,
    IndexUsageRow,
    ReplicationRow,
    SequenceRow,
    StatCategory,
    TableActivityRow,
    TableIORow,
)
from dbtriage.exceptions import DataFetchError


def make_table(name: str = "orders", **counters) -> TableActivityRow:
    """Create a table activity row; analyzed and vacuumed unless overridden."""
    counters.setdefault("last_analyze", "2024-03-01T00:00:00+00:00")
    counters.setdefault("last_vacuum", "2024-03-01T00:00:00+00:00")
    return TableActivityRow(schema_name="public", table_name=name, **counters)


def make_index(name: str, scans: int = 0, size_bytes: int = 8192, **kwargs) -> IndexUsageRow:
    return IndexUsageRow(
        schema_name="public",
        table_name=kwargs.pop("table_name", "orders"),
        index_name=name,
        scans=scans,
        size_bytes=size_bytes,
        **kwargs,
    )


def make_snapshot(**rows) -> CatalogSnapshot:
    """Build a snapshot from keyword arguments named after StatCategory values."""
    return CatalogSnapshot(rows={StatCategory(key): tuple(value) for key, value in rows.items()})


class TestMetrics:
    """Tests for bloat, cache and size helpers."""

    def test_bloat_percentage_moderate(self):
        """dead=150, live=850 is 15% and labelled Moderate."""
        pct = bloat_percentage(live=850, dead=150)
        assert pct == 15.0
        assert bloat_label(pct) == "Moderate"

    def test_bloat_percentage_high(self):
        """dead=250, live=750 is labelled High."""
        assert bloat_label(bloat_percentage(live=750, dead=250)) == "High"

    def test_bloat_percentage_empty_table(self):
        """An empty table has no bloat rather than a division error."""
        assert bloat_percentage(0, 0) == 0
        assert bloat_label(0) == "Low"

    def test_bloat_label_boundaries(self):
        """Labels use strict greater-than comparisons."""
        assert bloat_label(10.0) == "Low"
        assert bloat_label(20.0) == "Moderate"
        assert bloat_label(20.01) == "High"

    def test_cache_hit_ratios_without_reads(self):
        """No block reads at all counts as a perfect cache."""
        ratios = cache_hit_ratios([])
        assert ratios.overall == 100.0
        assert ratios.heap == 100.0
        assert ratios.index == 100.0

    def test_cache_hit_ratios_aggregate(self):
        """Overall ratio pools heap and index blocks across tables."""
        rows = [
            TableIORow(schema_name="public", table_name="a", heap_blks_read=10, heap_blks_hit=90),
            TableIORow(schema_name="public", table_name="b", idx_blks_read=0, idx_blks_hit=100),
        ]
        ratios = cache_hit_ratios(rows)
        assert ratios.heap == pytest.approx(90.0)
        assert ratios.index == pytest.approx(100.0)
        assert ratios.overall == pytest.approx(95.0)

    @pytest.mark.parametrize(
        "num_bytes,expected",
        [
            (None, "0 bytes"),
            (0, "0 bytes"),
            (8192, "8192 bytes"),
            (65536, "64 kB"),
            (52428800, "50 MB"),
        ],
    )
    def test_pretty_size(self, num_bytes, expected):
        """Sizes follow pg_size_pretty's 10x unit switch."""
        assert pretty_size(num_bytes) == expected


class TestHighSeqScan:
    """Tests for sequential scan detection."""

    def test_detects_seq_scan_heavy_table(self):
        """seq_scan=500, idx_scan=10, live=5000 is critical."""
        findings = HighSeqScan().evaluate([make_table(seq_scan=500, idx_scan=10, n_live_tup=5000)])

        assert len(findings) == 1
        assert findings[0].category == FindingCategory.HIGH_SEQ_SCAN
        assert findings[0].severity == Severity.CRITICAL
        assert findings[0].table is not None
        assert findings[0].table.qualified_name == "public.orders"
        assert findings[0].attention_reason == "High sequential scans: 500, index scans: 10"

    def test_ignores_few_seq_scans(self):
        """seq_scan=50 is below the threshold."""
        findings = HighSeqScan().evaluate([make_table(seq_scan=50, idx_scan=10, n_live_tup=5000)])
        assert findings == []

    def test_flags_table_without_index_scans(self):
        """A table never read by index is flagged whatever the ratio."""
        findings = HighSeqScan().evaluate([make_table(seq_scan=101, idx_scan=0, n_live_tup=1001)])
        assert len(findings) == 1

    def test_ignores_balanced_scans(self):
        """seq_scan must exceed twice idx_scan."""
        findings = HighSeqScan().evaluate([make_table(seq_scan=400, idx_scan=200, n_live_tup=5000)])
        assert findings == []

    def test_ignores_small_tables(self):
        """Tables with 1000 live rows or fewer are cheap to scan."""
        findings = HighSeqScan().evaluate([make_table(seq_scan=500, idx_scan=0, n_live_tup=1000)])
        assert findings == []

    def test_threshold_override(self):
        """Thresholds come from the evaluator config."""
        evaluator = HighSeqScan({"min_seq_scans": 1000})
        findings = evaluator.evaluate([make_table(seq_scan=500, idx_scan=10, n_live_tup=5000)])
        assert findings == []

    def test_unknown_threshold_rejected(self):
        """Misspelled thresholds fail loudly instead of being ignored."""
        with pytest.raises(ValidationError):
            HighSeqScan({"min_seqscans": 10})


class TestHighBloat:
    """Tests for dead tuple detection."""

    def test_detects_bloated_table(self):
        """15% dead tuples over 10000 tuples is high bloat."""
        findings = HighBloat().evaluate([make_table(n_live_tup=8500, n_dead_tup=1500)])

        assert len(findings) == 1
        assert findings[0].severity == Severity.HIGH
        assert findings[0].metrics["bloat_percentage"] == 15.0
        assert findings[0].attention_reason == "High bloat: 15.0%"

    def test_ignores_small_tables(self):
        """1000 tuples in total is not enough to matter."""
        findings = HighBloat().evaluate([make_table(n_live_tup=850, n_dead_tup=150)])
        assert findings == []

    def test_ratio_must_exceed_threshold(self):
        """Exactly 10% dead is not flagged."""
        findings = HighBloat().evaluate([make_table(n_live_tup=9000, n_dead_tup=1000)])
        assert findings == []


class TestNeverAnalyzed:
    """Tests for missing planner statistics."""

    def test_detects_never_analyzed(self):
        """No manual or automatic ANALYZE with more than 100 rows."""
        row = make_table(n_live_tup=101, last_analyze=None, last_autoanalyze=None)
        findings = NeverAnalyzed().evaluate([row])

        assert len(findings) == 1
        assert findings[0].suggestion == "ANALYZE public.orders;"

    def test_autoanalyze_counts(self):
        """An autoanalyze run is enough."""
        row = make_table(
            n_live_tup=5000,
            last_analyze=None,
            last_autoanalyze="2024-03-01T00:00:00+00:00",
        )
        assert NeverAnalyzed().evaluate([row]) == []

    def test_ignores_tiny_tables(self):
        row = make_table(n_live_tup=100, last_analyze=None, last_autoanalyze=None)
        assert NeverAnalyzed().evaluate([row]) == []


class TestUnusedIndex:
    """Tests for never-scanned index detection."""

    def test_detects_unused_index(self):
        findings = UnusedIndex().evaluate([make_index("orders_status_idx", scans=0)])

        assert len(findings) == 1
        assert findings[0].affected_objects == ("public.orders.orders_status_idx",)
        assert findings[0].table is None
        assert findings[0].severity == Severity.HIGH

    def test_constraint_indexes_exempt(self):
        """Primary key and unique indexes enforce constraints, so they stay."""
        rows = [
            make_index("orders_pkey", scans=0, is_primary=True, is_unique=True),
            make_index("orders_email_key", scans=0, is_unique=True),
        ]
        assert UnusedIndex().evaluate(rows) == []

    def test_used_index_ignored(self):
        assert UnusedIndex().evaluate([make_index("orders_status_idx", scans=1)]) == []

    def test_run_orders_by_size(self):
        """run() puts the largest unused index first, then by name."""
        rows = [
            make_index("b_idx", size_bytes=8192),
            make_index("a_idx", size_bytes=8192),
            make_index("c_idx", size_bytes=65536),
        ]
        result = UnusedIndex().run(make_snapshot(index_usage=rows))

        assert [f.object_id for f in result.findings] == [
            "public.orders.c_idx",
            "public.orders.a_idx",
            "public.orders.b_idx",
        ]


class TestForeignKeyMissingIndex:
    """Tests for foreign keys without a leading index."""

    def test_detects_unindexed_fk(self):
        row = ForeignKeyRow(
            schema_name="public",
            table_name="events",
            constraint_name="events_order_id_fkey",
            column_name="order_id",
            foreign_schema="public",
            foreign_table="orders",
            foreign_column="id",
            has_index=False,
        )
        findings = ForeignKeyMissingIndex().evaluate([row])

        assert len(findings) == 1
        assert findings[0].severity == Severity.CRITICAL
        assert findings[0].affected_objects == ("public.events.order_id",)
        assert "CREATE INDEX CONCURRENTLY ON public.events (order_id);" == findings[0].suggestion

    def test_indexed_fk_ignored(self):
        row = ForeignKeyRow(
            schema_name="public",
            table_name="orders",
            constraint_name="orders_customer_id_fkey",
            column_name="customer_id",
            foreign_schema="public",
            foreign_table="customers",
            foreign_column="id",
            has_index=True,
        )
        assert ForeignKeyMissingIndex().evaluate([row]) == []


class TestIntegrityEvaluators:
    """Tests for constraint and sequence evaluators."""

    def test_invalid_constraint(self):
        row = ConstraintRow(
            schema_name="public",
            table_name="events",
            constraint_name="events_amount_check",
            constraint_type="CHECK",
            validated=False,
        )
        findings = InvalidConstraint().evaluate([row])

        assert len(findings) == 1
        assert findings[0].affected_objects == ("public.events.events_amount_check",)
        assert findings[0].attention_reason == "Invalid constraint: events_amount_check (CHECK)"

    def test_validated_constraint_ignored(self):
        row = ConstraintRow(
            schema_name="public",
            table_name="events",
            constraint_name="events_pkey",
            constraint_type="PRIMARY KEY",
        )
        assert InvalidConstraint().evaluate([row]) == []

    def test_sequence_near_max(self):
        row = SequenceRow(schema_name="public", sequence_name="orders_id_seq", last_value=80, max_value=100)
        findings = SequenceNearMax().evaluate([row])

        assert len(findings) == 1
        assert findings[0].severity == Severity.MEDIUM
        assert findings[0].metrics["percent_used"] == 80.0

    def test_sequence_at_threshold_ignored(self):
        """Exactly 75% used is not yet at risk."""
        row = SequenceRow(schema_name="public", sequence_name="s", last_value=75, max_value=100)
        assert SequenceNearMax().evaluate([row]) == []

    def test_unused_sequence_ignored(self):
        row = SequenceRow(schema_name="public", sequence_name="s", last_value=None, max_value=100)
        assert SequenceNearMax().evaluate([row]) == []


class TestAdvisoryEvaluators:
    """Tests for cache, connection and replication advisories."""

    def test_low_cache_hit_ratio(self):
        rows = [TableIORow(schema_name="public", table_name="a", heap_blks_read=20, heap_blks_hit=80)]
        findings = LowCacheHitRatio().evaluate(rows)

        assert len(findings) == 1
        assert findings[0].advisory is True
        assert findings[0].description == "Low overall cache hit ratio: 80.0%"

    def test_good_cache_hit_ratio(self):
        rows = [TableIORow(schema_name="public", table_name="a", heap_blks_read=5, heap_blks_hit=95)]
        assert LowCacheHitRatio().evaluate(rows) == []

    def test_idle_connections(self):
        findings = IdleConnections().evaluate([ConnectionRow(max_connections=100, total=30, idle=20)])

        assert len(findings) == 1
        assert findings[0].severity == Severity.LOW

    def test_idle_connections_needs_enough_connections(self):
        assert IdleConnections().evaluate([ConnectionRow(max_connections=100, total=20, idle=15)]) == []

    def test_connection_utilization(self):
        assert len(ConnectionUtilization().evaluate([ConnectionRow(max_connections=100, total=81)])) == 1
        assert ConnectionUtilization().evaluate([ConnectionRow(max_connections=100, total=80)]) == []

    def test_replication_lag(self):
        row = ReplicationRow(
            is_primary=True,
            replication_slots=1,
            active_replicas=1,
            max_lag_bytes=200 * 1024 * 1024,
        )
        findings = ReplicationLag().evaluate([row])

        assert len(findings) == 1
        assert findings[0].description == "High replication lag: 200.00 MB"

    def test_replication_lag_ignored_on_standby(self):
        row = ReplicationRow(is_primary=False, active_replicas=1, max_lag_bytes=10**10)
        assert ReplicationLag().evaluate([row]) == []

    def test_inactive_replication_slots(self):
        row = ReplicationRow(is_primary=True, replication_slots=3, active_replicas=1)
        findings = InactiveReplicationSlots().evaluate([row])

        assert len(findings) == 1
        assert findings[0].metrics["replication_slots"] == 3


class TestEvaluatorRun:
    """Tests for availability handling shared by all evaluators."""

    def test_optional_source_unavailable(self):
        """A missing optional source yields a note and no findings."""
        snapshot = CatalogSnapshot(unavailable={StatCategory.REPLICATION: "permission denied"})
        result = ReplicationLag().run(snapshot)

        assert result.status == EvaluationStatus.SKIP
        assert result.findings == ()
        assert result.note == "Replication statistics unavailable: permission denied"

    def test_mandatory_source_missing(self):
        """A mandatory source that was never collected fails the run."""
        with pytest.raises(DataFetchError):
            HighBloat().run(CatalogSnapshot())

    def test_available_source(self):
        snapshot = make_snapshot(table_activity=[make_table(n_live_tup=8500, n_dead_tup=1500)])
        result = HighBloat().run(snapshot)

        assert result.status == EvaluationStatus.PASS
        assert len(result.findings) == 1
        assert result.note is None
