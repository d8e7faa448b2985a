"""
Base class for signal evaluators.

An evaluator turns one statistic category into zero or more Findings.
All evaluators inherit from Evaluator and implement evaluate(); run()
wraps it with the availability handling every evaluator shares:

- Source available → evaluate() over its rows, findings put in canonical order
- Optional source unavailable → zero findings plus one explanatory note
- Mandatory source missing → DataFetchError (never silently skipped)
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any, Sequence

from pydantic import BaseModel, ConfigDict

from dbtriage.analyzer.models import Finding, FindingCategory, Severity
from dbtriage.catalog.models import StatCategory, StatRow
from dbtriage.exceptions import DataFetchError

if TYPE_CHECKING:
    from dbtriage.catalog.snapshot import CatalogSnapshot


class EvaluatorConfig(BaseModel):
    """
    Base configuration for all evaluators.

    Evaluators define their thresholds by subclassing this. All configs
    support 'enabled' to allow switching an evaluator off.

    Example:
        class HighBloatConfig(EvaluatorConfig):
            dead_tuple_ratio: float = 0.10
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    enabled: bool = True


class EvaluationStatus(str, Enum):
    """Whether an evaluator actually looked at data."""

    PASS = "pass"
    SKIP = "skip"


@dataclass(frozen=True)
class EvaluationResult:
    """Findings from one evaluator plus an optional note on missing data."""

    evaluator_id: str
    status: EvaluationStatus
    findings: tuple[Finding, ...] = ()
    note: str | None = None


_SOURCE_LABELS = {
    StatCategory.REPLICATION: "Replication statistics",
    StatCategory.STATEMENTS: "Statement statistics (pg_stat_statements)",
}


def order_findings(findings: Sequence[Finding]) -> list[Finding]:
    """Descending magnitude, then object identifier."""
    return sorted(findings, key=lambda f: (-(f.magnitude or 0.0), f.object_id))


class Evaluator(ABC):
    """
    Abstract base class for signal evaluators.

    Evaluators should be:
    - Pure: Same rows and thresholds always produce the same findings
    - Independent: One category in, no knowledge of other evaluators
    - Focused: One evaluator, one signal

    Attributes:
        evaluator_id: Unique identifier, UPPER_SNAKE_CASE (e.g., "HIGH_BLOAT")
        version: Semver string, bump when detection logic changes
        category: FindingCategory of the findings produced
        source: StatCategory consumed
        severity: Severity of findings from this evaluator
        advisory: Findings go to long-term improvements and are not scored
        description: One-line description for documentation
        config_schema: Pydantic model for thresholds (default: EvaluatorConfig)
    """

    evaluator_id: str
    version: str = "1.0.0"
    category: FindingCategory
    source: StatCategory
    severity: Severity
    advisory: bool = False
    description: str = ""

    config_schema: type[EvaluatorConfig] = EvaluatorConfig

    def __init__(self, config: EvaluatorConfig | dict[str, Any] | None = None) -> None:
        """
        Initialize the evaluator with configuration.

        Args:
            config: EvaluatorConfig instance, dict, or None for defaults.
                    A dict is validated against config_schema.
        """
        if config is None:
            self.config = self.config_schema()
        elif isinstance(config, dict):
            self.config = self.config_schema(**config)
        else:
            self.config = config

    @property
    def enabled(self) -> bool:
        return self.config.enabled

    @abstractmethod
    def evaluate(self, rows: Sequence[StatRow]) -> list[Finding]:
        """
        Turn the rows of one category into findings.

        Args:
            rows: Every row of ``self.source`` in the snapshot.

        Returns:
            List of findings, or empty list if nothing crossed a threshold.
        """

    def run(self, snapshot: CatalogSnapshot) -> EvaluationResult:
        """Evaluate against a snapshot, handling unavailable sources."""
        if not snapshot.is_available(self.source):
            reason = snapshot.unavailable.get(self.source)
            if reason is None or not self.source.is_optional:
                raise DataFetchError(
                    f"Statistics for {self.source.value!r} were not collected",
                    category=self.source.value,
                )
            label = _SOURCE_LABELS.get(self.source, self.source.value)
            return EvaluationResult(
                evaluator_id=self.evaluator_id,
                status=EvaluationStatus.SKIP,
                note=f"{label} unavailable: {reason}",
            )

        findings = order_findings(self.evaluate(snapshot.get(self.source)))
        return EvaluationResult(
            evaluator_id=self.evaluator_id,
            status=EvaluationStatus.PASS,
            findings=tuple(findings),
        )

    def make_finding(self, **kwargs: Any) -> Finding:
        """Build a Finding pre-filled with this evaluator's identity."""
        kwargs.setdefault("severity", self.severity)
        kwargs.setdefault("advisory", self.advisory)
        return Finding(evaluator_id=self.evaluator_id, category=self.category, **kwargs)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(evaluator_id={self.evaluator_id!r})"
