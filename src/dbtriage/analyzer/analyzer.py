"""
DiagnosticAnalyzer - signal evaluators to prioritized report.

Runs every enabled evaluator over one complete snapshot and feeds the
findings through aggregation, scoring and workflow planning:

    snapshot → evaluators → IssueAggregator → compute_health_score
             → plan_workflow → DatabaseReport

Design Principles:
- Deterministic core: same snapshot + thresholds → byte-identical JSON
- Observable failure: optional sources that were missing show up as
  data notes, mandatory ones abort the run
- Config is not code: thresholds come from Config, not hardcoded
"""

from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING, Sequence

from pydantic import ValidationError

from dbtriage.analyzer import evaluators as _evaluators  # noqa: F401  (registers evaluators)
from dbtriage.analyzer.aggregator import IssueAggregator
from dbtriage.analyzer.evaluators.base import Evaluator
from dbtriage.analyzer.metrics import pretty_size
from dbtriage.analyzer.models import DatabaseReport, Finding, ReportSummary, Severity
from dbtriage.analyzer.registry import get_registry
from dbtriage.analyzer.scoring import compute_health_score
from dbtriage.analyzer.workflow import plan_workflow
from dbtriage.catalog.models import DatabaseSizeRow, StatCategory
from dbtriage.exceptions import ConfigurationError

if TYPE_CHECKING:
    from dbtriage.catalog.snapshot import CatalogSnapshot
    from dbtriage.config import Config

logger = logging.getLogger(__name__)

HEALTHY_MESSAGE = "Database health looks good! Continue monitoring regularly."

# Always fetched for the report summary, whatever evaluators are enabled
SUMMARY_CATEGORIES = (StatCategory.DATABASE_SIZE, StatCategory.TABLE_ACTIVITY)


class DiagnosticAnalyzer:
    """
    Evaluate a catalog snapshot and produce a DatabaseReport.

    Example:
        from dbtriage.catalog import collect_snapshot, load_snapshot

        analyzer = DiagnosticAnalyzer()
        provider = load_snapshot("snapshot.json")
        snapshot = collect_snapshot(provider, analyzer.required_categories)
        report = analyzer.analyze(snapshot)
        print(report.health_score)
    """

    def __init__(
        self,
        config: Config | None = None,
        evaluators: list[Evaluator] | None = None,
        include_evaluators: set[str] | None = None,
        exclude_evaluators: set[str] | None = None,
    ) -> None:
        """
        Initialize the analyzer.

        Args:
            config: Configuration (if None, uses get_config())
            evaluators: Ready-made evaluators (if None, built from the registry)
            include_evaluators: Only run these evaluator IDs
            exclude_evaluators: Skip these evaluator IDs

        Raises:
            ConfigurationError: A configured threshold is invalid for its evaluator.
        """
        if config is None:
            from dbtriage.config import get_config
            config = get_config()
        self.config = config

        if evaluators is not None:
            self.evaluators = list(evaluators)
        else:
            self.evaluators = self._build_evaluators(include_evaluators, exclude_evaluators)

        self.evaluators = [
            e for e in self.evaluators
            if e.enabled and self.config.is_evaluator_enabled(e.evaluator_id)
        ]
        self.aggregator = IssueAggregator()

    def _build_evaluators(
        self,
        include: set[str] | None,
        exclude: set[str] | None,
    ) -> list[Evaluator]:
        built: list[Evaluator] = []
        for evaluator_cls in get_registry().filter(include=include, exclude=exclude):
            overrides = self.config.evaluator_overrides(evaluator_cls.evaluator_id)
            try:
                built.append(evaluator_cls(overrides or None))
            except ValidationError as e:
                raise ConfigurationError(
                    f"Invalid thresholds for {evaluator_cls.evaluator_id}: {e}",
                    config_key=f"evaluators.{evaluator_cls.evaluator_id}",
                ) from e
        return built

    @property
    def required_categories(self) -> list[StatCategory]:
        """Categories a snapshot must contain for analyze(), in a stable order."""
        categories = list(SUMMARY_CATEGORIES)
        for evaluator in self.evaluators:
            if evaluator.source not in categories:
                categories.append(evaluator.source)
        return categories

    @property
    def top_tables(self) -> int:
        return self.config.top_tables

    def analyze(self, snapshot: CatalogSnapshot) -> DatabaseReport:
        """
        Produce the prioritized report for one snapshot.

        Raises:
            DataFetchError: A mandatory category is missing from the snapshot.
        """
        start_time = time.perf_counter()

        findings: list[Finding] = []
        notes: list[str] = []
        for evaluator in self.evaluators:
            result = evaluator.run(snapshot)
            findings.extend(result.findings)
            if result.note and result.note not in notes:
                notes.append(result.note)
            logger.debug(
                "%s: %s, %d findings",
                evaluator.evaluator_id,
                result.status.value,
                len(result.findings),
            )

        aggregated = self.aggregator.aggregate(findings)
        score = compute_health_score(aggregated.issues)
        workflow = plan_workflow(aggregated.tables_requiring_attention, top_n=self.top_tables)

        critical = sum(1 for i in aggregated.issues if i.severity == Severity.CRITICAL)
        warnings = sum(
            1 for i in aggregated.issues if i.severity in (Severity.HIGH, Severity.MEDIUM)
        )

        recommendations = [issue.recommended_action for issue in aggregated.issues]
        recommendations.extend(aggregated.long_term_improvements)
        if not recommendations:
            recommendations.append(HEALTHY_MESSAGE)

        total_bytes, total_tables = self._database_size(snapshot)
        report = DatabaseReport(
            health_score=score,
            summary=ReportSummary(
                total_tables=total_tables,
                total_size=pretty_size(total_bytes),
                total_size_bytes=total_bytes,
                health_score=score,
                critical_issues=critical,
                warnings=warnings,
                advisories=len(aggregated.advisories),
            ),
            issues=aggregated.issues,
            tables_requiring_attention=aggregated.tables_requiring_attention,
            workflow=tuple(workflow),
            quick_wins=aggregated.quick_wins,
            long_term_improvements=aggregated.long_term_improvements,
            recommendations=tuple(dict.fromkeys(recommendations)),
            data_notes=tuple(notes),
        )

        logger.info(
            "Analysis complete: score=%d, %d issues, %d tables need attention (%.3fs)",
            score,
            len(report.issues),
            len(report.tables_requiring_attention),
            time.perf_counter() - start_time,
        )
        return report

    @staticmethod
    def _database_size(snapshot: CatalogSnapshot) -> tuple[int, int]:
        row = snapshot.first(StatCategory.DATABASE_SIZE)
        if isinstance(row, DatabaseSizeRow):
            return row.total_size_bytes, row.total_tables
        # Offline snapshots may omit the size query
        return 0, len(snapshot.get(StatCategory.TABLE_ACTIVITY))

    def list_evaluators(self) -> Sequence[Evaluator]:
        return tuple(self.evaluators)
