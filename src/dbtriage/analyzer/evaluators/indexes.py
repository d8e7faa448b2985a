"""
Index evaluators: unused indexes and foreign keys without an index.

Unused indexes cost disk space and slow every write, yet serve no reads.
Primary key and unique indexes are exempt: they enforce constraints even
when no query scans them.

A foreign key column that is not the leading column of any index forces
a sequential scan of the child table on every JOIN and on every
cascading DELETE or UPDATE of the parent.
"""

from __future__ import annotations

from typing import Sequence

from dbtriage.analyzer.evaluators.base import Evaluator
from dbtriage.analyzer.metrics import pretty_size
from dbtriage.analyzer.models import Finding, FindingCategory, Severity, TableRef
from dbtriage.analyzer.registry import register_evaluator
from dbtriage.catalog.models import ForeignKeyRow, IndexUsageRow, StatCategory, StatRow


@register_evaluator
class UnusedIndex(Evaluator):
    """
    Detect indexes that have never been scanned.

    Findings are database-wide: they feed one Issue and the quick wins,
    not the per-table attention list.

    Fix: DROP INDEX CONCURRENTLY schema.index_name;
    """

    evaluator_id = "UNUSED_INDEX"
    category = FindingCategory.UNUSED_INDEX
    source = StatCategory.INDEX_USAGE
    severity = Severity.HIGH
    description = "Index has never been scanned"

    def evaluate(self, rows: Sequence[StatRow]) -> list[Finding]:
        findings: list[Finding] = []
        index_rows: Sequence[IndexUsageRow] = rows  # type: ignore[assignment]
        for row in index_rows:
            if row.scans != 0 or row.backs_constraint:
                continue
            findings.append(self.make_finding(
                description=(
                    f"Index {row.qualified_name} has never been scanned "
                    f"({pretty_size(row.size_bytes)})"
                ),
                affected_objects=(row.qualified_name,),
                magnitude=float(row.size_bytes),
                metrics={"size_bytes": row.size_bytes, "scans": row.scans},
                suggestion=f"DROP INDEX CONCURRENTLY {row.schema_name}.{row.index_name};",
            ))
        return findings


@register_evaluator
class ForeignKeyMissingIndex(Evaluator):
    """
    Detect foreign key columns with no index leading on them.

    Fix: CREATE INDEX CONCURRENTLY ON child_table (fk_column);
    """

    evaluator_id = "FK_MISSING_INDEX"
    category = FindingCategory.FK_MISSING_INDEX
    source = StatCategory.FOREIGN_KEYS
    severity = Severity.CRITICAL
    description = "Foreign key column has no supporting index"

    def evaluate(self, rows: Sequence[StatRow]) -> list[Finding]:
        findings: list[Finding] = []
        fk_rows: Sequence[ForeignKeyRow] = rows  # type: ignore[assignment]
        for row in fk_rows:
            if row.has_index:
                continue
            findings.append(self.make_finding(
                description=(
                    f"Foreign key {row.constraint_name} on {row.qualified_name}"
                    f"({row.column_name}) references "
                    f"{row.foreign_qualified_name}({row.foreign_column}) without an index"
                ),
                affected_objects=(f"{row.qualified_name}.{row.column_name}",),
                table=TableRef(schema_name=row.schema_name, table_name=row.table_name),
                suggestion=(
                    f"CREATE INDEX CONCURRENTLY ON {row.qualified_name} ({row.column_name});"
                ),
                attention_reason=(
                    f"Unindexed foreign key: {row.constraint_name} ({row.column_name})"
                ),
            ))
        return findings
