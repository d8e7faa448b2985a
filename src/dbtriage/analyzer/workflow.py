"""
Workflow planning: turn attention entries into a numbered action plan.

Shape of the plan:

    1   get_database_health
    2   analyze_query_performance
    3+  for each of the top N tables, three contiguous steps:
        get_query_statistics → suggest_indexing_strategies →
        suggest_schema_optimizations
    …   one overflow step when more than N tables need attention

Tables are taken by priority (strongest first); tables with equal
priority keep the order in which they were discovered.
"""

from __future__ import annotations

from typing import Sequence

from dbtriage.analyzer.models import TableAttentionEntry, Tool, WorkflowStep

DEFAULT_TOP_N = 5


def rank_entries(entries: Sequence[TableAttentionEntry]) -> list[TableAttentionEntry]:
    """Priority descending; sorted() is stable so discovery order breaks ties."""
    return sorted(entries, key=lambda entry: -entry.priority.rank)


def _table_steps(entry: TableAttentionEntry, first_step: int) -> list[WorkflowStep]:
    params = entry.table.as_parameters()
    name = entry.qualified_name
    return [
        WorkflowStep(
            step=first_step,
            description=f"Analyze {name} - {', '.join(entry.reasons)}",
            tool=Tool.QUERY_STATISTICS,
            parameters=params,
            rationale="Get detailed I/O statistics, cache performance, and bloat metrics",
        ),
        WorkflowStep(
            step=first_step + 1,
            description=f"Get indexing analysis for {name}",
            tool=Tool.INDEXING_STRATEGIES,
            parameters=params,
            rationale="Identify missing, unused, or duplicate indexes",
        ),
        WorkflowStep(
            step=first_step + 2,
            description=f"Get schema optimization suggestions for {name}",
            tool=Tool.SCHEMA_OPTIMIZATIONS,
            parameters=params,
            rationale="Analyze data types, foreign keys, and column statistics",
        ),
    ]


def plan_workflow(
    entries: Sequence[TableAttentionEntry],
    top_n: int = DEFAULT_TOP_N,
) -> list[WorkflowStep]:
    """
    Build the ordered remediation plan.

    Args:
        entries: Tables requiring attention, in discovery order.
        top_n: How many tables get their own three steps.

    Returns:
        Steps numbered from 1 without gaps. With 7 flagged tables and the
        default top_n this is 2 + 5*3 + 1 = 18 steps.
    """
    steps = [
        WorkflowStep(
            step=1,
            description="Get overall database health assessment",
            tool=Tool.DATABASE_HEALTH,
            rationale="Identifies system-wide issues: cache performance, replication, constraints, sequences",
        ),
        WorkflowStep(
            step=2,
            description="Identify slow queries if pg_stat_statements is available",
            tool=Tool.QUERY_PERFORMANCE,
            rationale="Find the most expensive queries that need optimization",
        ),
    ]

    ranked = rank_entries(entries)
    for entry in ranked[:top_n]:
        steps.extend(_table_steps(entry, first_step=len(steps) + 1))

    remaining = len(ranked) - top_n
    if remaining > 0:
        steps.append(WorkflowStep(
            step=steps[-1].step + 1,
            description=f"Repeat steps for remaining {remaining} tables",
            tool=Tool.MULTIPLE,
            rationale="Ensure all problematic tables are analyzed",
        ))

    return steps
