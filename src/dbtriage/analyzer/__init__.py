"""
Diagnostic signal aggregation and prioritization.

Public API:
    DiagnosticAnalyzer: Snapshot in, DatabaseReport out
    IssueAggregator: Findings to issues and per-table attention entries
    compute_health_score: Penalty-based 0-100 score
    plan_workflow: Ordered remediation steps
    find_index_relationships: Duplicate and prefix index pairs
"""

from dbtriage.analyzer.aggregator import AggregationResult, IssueAggregator
from dbtriage.analyzer.analyzer import HEALTHY_MESSAGE, DiagnosticAnalyzer
from dbtriage.analyzer.index_relationships import (
    IndexRelationship,
    RelationshipKind,
    find_index_relationships,
)
from dbtriage.analyzer.metrics import bloat_label, bloat_percentage, cache_hit_ratios
from dbtriage.analyzer.models import (
    DatabaseReport,
    Finding,
    FindingCategory,
    Issue,
    ReportSummary,
    Severity,
    TableAttentionEntry,
    TableRef,
    Tool,
    WorkflowStep,
)
from dbtriage.analyzer.registry import get_registry, register_evaluator
from dbtriage.analyzer.scoring import PENALTIES, compute_health_score
from dbtriage.analyzer.workflow import plan_workflow

__all__ = [
    "AggregationResult",
    "DatabaseReport",
    "DiagnosticAnalyzer",
    "Finding",
    "FindingCategory",
    "HEALTHY_MESSAGE",
    "IndexRelationship",
    "Issue",
    "IssueAggregator",
    "PENALTIES",
    "RelationshipKind",
    "ReportSummary",
    "Severity",
    "TableAttentionEntry",
    "TableRef",
    "Tool",
    "WorkflowStep",
    "bloat_label",
    "bloat_percentage",
    "cache_hit_ratios",
    "compute_health_score",
    "find_index_relationships",
    "get_registry",
    "plan_workflow",
    "register_evaluator",
]
