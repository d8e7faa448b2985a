"""Signal evaluators - one statistic category in, findings out."""

from dbtriage.analyzer.evaluators.base import (
    EvaluationResult,
    EvaluationStatus,
    Evaluator,
    EvaluatorConfig,
    order_findings,
)
from dbtriage.analyzer.evaluators.indexes import ForeignKeyMissingIndex, UnusedIndex
from dbtriage.analyzer.evaluators.integrity import InvalidConstraint, SequenceNearMax
from dbtriage.analyzer.evaluators.system import (
    ConnectionUtilization,
    IdleConnections,
    InactiveReplicationSlots,
    LowCacheHitRatio,
    ReplicationLag,
)
from dbtriage.analyzer.evaluators.tables import HighBloat, HighSeqScan, NeverAnalyzed

__all__ = [
    "EvaluationResult",
    "EvaluationStatus",
    "Evaluator",
    "EvaluatorConfig",
    "order_findings",
    # Individual evaluators
    "ConnectionUtilization",
    "ForeignKeyMissingIndex",
    "HighBloat",
    "HighSeqScan",
    "IdleConnections",
    "InactiveReplicationSlots",
    "InvalidConstraint",
    "LowCacheHitRatio",
    "NeverAnalyzed",
    "ReplicationLag",
    "SequenceNearMax",
    "UnusedIndex",
]
