"""
Health scoring.

    score = clamp(100 - Σ penalty(issue.severity), 0, 100)

Each Issue is counted once, no matter how many tables it affects, so
one category cannot sink the score on its own. The sum is commutative,
which makes the score independent of issue order.
"""

from __future__ import annotations

from typing import Iterable

from dbtriage.analyzer.models import Issue, Severity

PENALTIES: dict[Severity, int] = {
    Severity.CRITICAL: 20,
    Severity.HIGH: 10,
    Severity.MEDIUM: 5,
    Severity.LOW: 0,
}

MAX_SCORE = 100


def compute_health_score(issues: Iterable[Issue]) -> int:
    """Score a set of issues; duplicates (same category and objects) count once."""
    seen: set[tuple[object, frozenset[str]]] = set()
    penalty = 0
    for issue in issues:
        if issue.key in seen:
            continue
        seen.add(issue.key)
        penalty += PENALTIES[issue.severity]
    return max(0, min(MAX_SCORE, MAX_SCORE - penalty))
