"""
Integrity evaluators: unvalidated constraints and sequences close to exhaustion.
"""

from __future__ import annotations

from typing import Sequence

from pydantic import Field

from dbtriage.analyzer.evaluators.base import Evaluator, EvaluatorConfig
from dbtriage.analyzer.models import Finding, FindingCategory, Severity, TableRef
from dbtriage.analyzer.registry import register_evaluator
from dbtriage.catalog.models import ConstraintRow, SequenceRow, StatCategory, StatRow


@register_evaluator
class InvalidConstraint(Evaluator):
    """
    Detect constraints added with NOT VALID and never validated.

    Existing rows were never checked against them, so the data may
    violate the rule the schema claims to enforce.

    Fix: ALTER TABLE schema.table VALIDATE CONSTRAINT name;
    """

    evaluator_id = "INVALID_CONSTRAINT"
    category = FindingCategory.INVALID_CONSTRAINT
    source = StatCategory.CONSTRAINTS
    severity = Severity.HIGH
    description = "Constraint has not been validated"

    def evaluate(self, rows: Sequence[StatRow]) -> list[Finding]:
        constraint_rows: Sequence[ConstraintRow] = rows  # type: ignore[assignment]
        findings: list[Finding] = []

        for row in constraint_rows:
            if row.validated:
                continue
            findings.append(self.make_finding(
                description=(
                    f"{row.constraint_type} constraint {row.constraint_name} "
                    f"on {row.qualified_name} is not validated"
                ),
                affected_objects=(f"{row.qualified_name}.{row.constraint_name}",),
                table=TableRef(schema_name=row.schema_name, table_name=row.table_name),
                suggestion=(
                    f"ALTER TABLE {row.qualified_name} VALIDATE CONSTRAINT {row.constraint_name};"
                ),
                attention_reason=(
                    f"Invalid constraint: {row.constraint_name} ({row.constraint_type})"
                ),
            ))
        return findings


class SequenceNearMaxConfig(EvaluatorConfig):
    """Thresholds for sequence exhaustion."""

    max_used_fraction: float = Field(
        default=0.75,
        gt=0,
        lt=1,
        description="last_value / max_value above which a sequence is at risk",
    )


@register_evaluator
class SequenceNearMax(Evaluator):
    """
    Detect sequences that have used more than 75% of their range.

    An exhausted sequence makes every INSERT into its table fail. The
    usual culprit is an INTEGER serial on a table that outgrew it.
    """

    evaluator_id = "SEQUENCE_NEAR_MAX"
    category = FindingCategory.SEQUENCE_NEAR_MAX
    source = StatCategory.SEQUENCES
    severity = Severity.MEDIUM
    description = "Sequence is close to its maximum value"
    config_schema = SequenceNearMaxConfig

    def evaluate(self, rows: Sequence[StatRow]) -> list[Finding]:
        config: SequenceNearMaxConfig = self.config  # type: ignore[assignment]
        sequence_rows: Sequence[SequenceRow] = rows  # type: ignore[assignment]
        findings: list[Finding] = []

        for row in sequence_rows:
            # Never called: no value yet
            if row.last_value is None or row.max_value <= 0:
                continue
            used = row.last_value / row.max_value
            if used <= config.max_used_fraction:
                continue

            percent_used = round(used * 100, 2)
            findings.append(self.make_finding(
                description=(
                    f"Sequence {row.qualified_name} is {percent_used}% used "
                    f"({row.last_value:,} of {row.max_value:,})"
                ),
                affected_objects=(row.qualified_name,),
                magnitude=percent_used,
                metrics={
                    "current_value": row.last_value,
                    "max_value": row.max_value,
                    "percent_used": percent_used,
                },
                suggestion="Consider using BIGINT for sequence columns or resetting sequences",
            ))
        return findings
