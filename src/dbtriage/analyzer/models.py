"""
Data models for the diagnostic analyzer.

These models represent everything one analysis run produces, from the
atomic Finding up to the final DatabaseReport. They're designed to be:
- Immutable (frozen=True): nothing changes after creation
- Serializable: the report round-trips through JSON unchanged
- Deterministic: two runs over the same snapshot compare equal
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class Severity(str, Enum):
    """
    Severity levels for findings and issues.

    CRITICAL: Actively hurting the workload (missing indexes on hot paths)
    HIGH: Significant waste or risk that should be scheduled soon
    MEDIUM: Worth fixing, not urgent
    LOW: Informational
    """

    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def rank(self) -> int:
        """Numeric strength, higher is more severe."""
        return _SEVERITY_RANK[self]

    def stronger(self, other: Severity) -> Severity:
        """Return the more severe of two severities."""
        return self if self.rank >= other.rank else other


_SEVERITY_RANK = {
    Severity.LOW: 0,
    Severity.MEDIUM: 1,
    Severity.HIGH: 2,
    Severity.CRITICAL: 3,
}


class FindingCategory(str, Enum):
    """What kind of problem a finding describes."""

    UNUSED_INDEX = "unused_index"
    HIGH_SEQ_SCAN = "high_seq_scan"
    FK_MISSING_INDEX = "fk_missing_index"
    HIGH_BLOAT = "high_bloat"
    NEVER_ANALYZED = "never_analyzed"
    INVALID_CONSTRAINT = "invalid_constraint"
    SEQUENCE_NEAR_MAX = "sequence_near_max"
    LOW_CACHE_HIT_RATIO = "low_cache_hit_ratio"
    IDLE_CONNECTIONS = "idle_connections"
    HIGH_CONNECTION_UTILIZATION = "high_connection_utilization"
    REPLICATION_LAG = "replication_lag"
    INACTIVE_REPLICATION_SLOTS = "inactive_replication_slots"


class Tool(str, Enum):
    """Follow-up inspections a plan can recommend."""

    DATABASE_HEALTH = "get_database_health"
    QUERY_PERFORMANCE = "analyze_query_performance"
    QUERY_STATISTICS = "get_query_statistics"
    INDEXING_STRATEGIES = "suggest_indexing_strategies"
    SCHEMA_OPTIMIZATIONS = "suggest_schema_optimizations"
    MULTIPLE = "Multiple tools"


class TableRef(BaseModel):
    """A schema-qualified table."""

    model_config = ConfigDict(frozen=True)

    schema_name: str
    table_name: str

    @property
    def qualified_name(self) -> str:
        return f"{self.schema_name}.{self.table_name}"

    def as_parameters(self) -> dict[str, str]:
        return {"schema": self.schema_name, "table": self.table_name}


class Finding(BaseModel):
    """
    The atomic output of one evaluator.

    Attributes:
        evaluator_id: Evaluator that produced this finding (UPPER_SNAKE_CASE).
        category: What kind of problem this is.
        severity: How serious the problem is.
        description: Human-readable one-line summary.
        affected_objects: ``schema.table`` or ``schema.table.index`` identifiers.
        magnitude: Percentage or count used to order findings within a category.
        table: The table this finding is about, if it is table-scoped.
        metrics: Raw numbers behind the finding.
        advisory: Reported in long-term improvements instead of being scored.
        suggestion: Actionable recommendation text.
        attention_reason: Reason recorded on the table's attention entry.
    """

    model_config = ConfigDict(frozen=True)

    evaluator_id: str = Field(..., description="Evaluator that produced the finding")
    category: FindingCategory
    severity: Severity
    description: str = Field(..., min_length=1)
    affected_objects: tuple[str, ...] = ()
    magnitude: float | None = None
    table: TableRef | None = None
    metrics: dict[str, int | float] = Field(default_factory=dict)
    advisory: bool = False
    suggestion: str | None = None
    attention_reason: str | None = None

    @property
    def object_id(self) -> str:
        """Primary identifier, used as the ordering tie-break."""
        return self.affected_objects[0] if self.affected_objects else ""


class Issue(BaseModel):
    """
    One category of findings promoted into the report.

    Issues are unique per (category, affected_objects) within a report.
    """

    model_config = ConfigDict(frozen=True)

    severity: Severity
    category: FindingCategory
    description: str
    affected_objects: tuple[str, ...] = ()
    recommended_tool: Tool
    recommended_action: str
    suggested_parameters: dict[str, str] | None = None

    @property
    def key(self) -> tuple[FindingCategory, frozenset[str]]:
        return (self.category, frozenset(self.affected_objects))


class TableAttentionEntry(BaseModel):
    """
    One table that at least one issue points at.

    ``priority`` is the strongest severity among the reasons; ``suggested_tools``
    is an insertion-ordered union.
    """

    model_config = ConfigDict(frozen=True)

    schema_name: str
    table_name: str
    reasons: tuple[str, ...] = ()
    priority: Severity = Severity.LOW
    suggested_tools: tuple[Tool, ...] = ()

    @property
    def qualified_name(self) -> str:
        return f"{self.schema_name}.{self.table_name}"

    @property
    def table(self) -> TableRef:
        return TableRef(schema_name=self.schema_name, table_name=self.table_name)

    def merged(self, reason: str, severity: Severity, tools: tuple[Tool, ...]) -> TableAttentionEntry:
        """Return a copy with one more reason; priority never drops."""
        new_tools = list(self.suggested_tools)
        for tool in tools:
            if tool not in new_tools:
                new_tools.append(tool)
        return self.model_copy(
            update={
                "reasons": (*self.reasons, reason),
                "priority": self.priority.stronger(severity),
                "suggested_tools": tuple(new_tools),
            }
        )


class WorkflowStep(BaseModel):
    """One step of the remediation plan."""

    model_config = ConfigDict(frozen=True)

    step: int = Field(..., ge=1)
    description: str
    tool: Tool
    parameters: dict[str, str] | None = None
    rationale: str


class ReportSummary(BaseModel):
    """Headline numbers for a report."""

    model_config = ConfigDict(frozen=True)

    total_tables: int = 0
    total_size: str = "0 bytes"
    total_size_bytes: int = 0
    health_score: int = 100
    critical_issues: int = 0
    warnings: int = 0
    advisories: int = 0


class DatabaseReport(BaseModel):
    """
    The complete, prioritized result of one analysis run.

    A pure function of the snapshot and thresholds it was computed from.
    """

    model_config = ConfigDict(frozen=True)

    health_score: int = Field(..., ge=0, le=100)
    summary: ReportSummary
    issues: tuple[Issue, ...] = ()
    tables_requiring_attention: tuple[TableAttentionEntry, ...] = ()
    workflow: tuple[WorkflowStep, ...] = ()
    quick_wins: tuple[str, ...] = ()
    long_term_improvements: tuple[str, ...] = ()
    recommendations: tuple[str, ...] = ()
    data_notes: tuple[str, ...] = ()

    def to_json(self, indent: int | None = 2) -> str:
        return self.model_dump_json(indent=indent)

    @classmethod
    def from_json(cls, data: str) -> DatabaseReport:
        return cls.model_validate_json(data)
