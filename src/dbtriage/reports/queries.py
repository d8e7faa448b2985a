"""
Statement-level reports: slow statements, EXPLAIN plans and free-form
read-only queries.
"""

from __future__ import annotations

from typing import Any, Iterator, Sequence

from dbtriage.analyzer.metrics import percent
from dbtriage.catalog.models import StatCategory, StatementRow
from dbtriage.catalog.provider import QueryResult
from dbtriage.catalog.snapshot import CatalogSnapshot
from dbtriage.reports.models import (
    QueryExecutionReport,
    QueryPerformanceReport,
    QueryPlan,
    SlowQuery,
)

DEFAULT_TOP_N = 10

LOW_CACHE_HIT_PERCENT = 90
SLOW_MEAN_TIME_MS = 100
LARGE_RESULT_ROWS = 10_000

INSTALL_PG_STAT_STATEMENTS = (
    "Install pg_stat_statements extension for detailed query performance analysis: "
    "CREATE EXTENSION pg_stat_statements;"
)


def _slow_query(row: StatementRow) -> SlowQuery:
    total_blocks = row.shared_blks_hit + row.shared_blks_read
    return SlowQuery(
        query=row.query,
        calls=row.calls,
        total_time_ms=row.total_time_ms,
        mean_time_ms=row.mean_time_ms,
        max_time_ms=row.max_time_ms,
        rows=row.rows,
        shared_blks_hit=row.shared_blks_hit,
        shared_blks_read=row.shared_blks_read,
        cache_hit_ratio=round(percent(row.shared_blks_hit, total_blocks), 2),
    )


def statement_recommendations(queries: Sequence[SlowQuery]) -> list[str]:
    if not queries:
        return []
    recommendations: list[str] = []

    avg_cache_hit = sum(q.cache_hit_ratio for q in queries) / len(queries)
    if avg_cache_hit < LOW_CACHE_HIT_PERCENT:
        recommendations.append(
            f"Low cache hit ratio ({avg_cache_hit:.1f}%) - "
            "consider increasing shared_buffers or adding indexes"
        )

    slow_count = sum(1 for q in queries if q.mean_time_ms > SLOW_MEAN_TIME_MS)
    if slow_count:
        recommendations.append(
            f"{slow_count} queries have mean execution time > {SLOW_MEAN_TIME_MS}ms "
            "- investigate and optimize"
        )
    return recommendations


def _plan_nodes(node: dict[str, Any]) -> Iterator[dict[str, Any]]:
    yield node
    for child in node.get("Plans", ()):
        yield from _plan_nodes(child)


def plan_recommendations(plan: list[dict[str, Any]]) -> list[str]:
    """
    Inspect EXPLAIN (FORMAT JSON) output.

    Flags any sequential scan node, and a root row estimate above 10,000.
    """
    recommendations: list[str] = []
    roots = [entry["Plan"] for entry in plan if isinstance(entry, dict) and "Plan" in entry]

    if any(node.get("Node Type") == "Seq Scan" for root in roots for node in _plan_nodes(root)):
        recommendations.append(
            "Query uses sequential scan - consider adding indexes on filter columns"
        )
    if any(root.get("Plan Rows", 0) > LARGE_RESULT_ROWS for root in roots):
        recommendations.append(
            "Query returns many rows - consider adding LIMIT or more specific filters"
        )
    return recommendations


def build_query_performance(
    snapshot: CatalogSnapshot,
    statement: str | None = None,
    plan: list[dict[str, Any]] | None = None,
    top_n: int = DEFAULT_TOP_N,
) -> QueryPerformanceReport:
    """
    Slow statements from the statement-statistics view, or a plan review.

    With a statement (and its plan) the report reviews that plan.
    Without one it lists the ``top_n`` statements by total time when the
    view is available, and recommends installing it otherwise.
    """
    has_statements = snapshot.is_available(StatCategory.STATEMENTS)

    if statement is not None:
        plan = plan or []
        return QueryPerformanceReport(
            has_pg_stat_statements=has_statements,
            query_plan=QueryPlan(query=statement, plan=plan),
            recommendations=tuple(plan_recommendations(plan)),
        )

    if not has_statements:
        return QueryPerformanceReport(
            has_pg_stat_statements=False,
            recommendations=(INSTALL_PG_STAT_STATEMENTS,),
        )

    rows: Sequence[StatementRow] = snapshot.get(StatCategory.STATEMENTS)  # type: ignore[assignment]
    ordered = sorted(rows, key=lambda r: -r.total_time_ms)[:top_n]
    queries = [_slow_query(row) for row in ordered]
    return QueryPerformanceReport(
        has_pg_stat_statements=True,
        slow_queries=tuple(queries),
        recommendations=tuple(statement_recommendations(queries)),
    )


def build_query_execution(
    result: QueryResult,
    execution_time_ms: float,
    warning: str | None = None,
) -> QueryExecutionReport:
    return QueryExecutionReport(
        columns=result.columns,
        rows=result.rows,
        row_count=result.row_count,
        execution_time_ms=round(execution_time_ms, 2),
        warning=warning,
    )
