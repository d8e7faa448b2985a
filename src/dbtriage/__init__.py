"""dbtriage - Diagnostic triage for PostgreSQL: health score, prioritized issues, remediation plan."""

__version__ = "0.3.0"
__license__ = "MIT"

# Exception hierarchy (import first so other modules can use it)
from dbtriage.exceptions import (
    DBTriageError,
    CatalogError,
    DataUnavailableError,
    DataFetchError,
    InvalidTargetError,
    InvalidIdentifierError,
    UnsafeQueryError,
    SnapshotError,
    ConfigurationError,
)

# Statistics sources
from dbtriage.catalog import (
    CatalogProvider,
    CatalogSnapshot,
    InMemoryCatalogProvider,
    StatCategory,
    collect_snapshot,
    load_snapshot,
)

# Analysis
from dbtriage.analyzer import (
    DatabaseReport,
    DiagnosticAnalyzer,
    Finding,
    Issue,
    Severity,
    TableAttentionEntry,
    WorkflowStep,
    compute_health_score,
    find_index_relationships,
    plan_workflow,
)

# Orchestration
from dbtriage.config import Config, get_config
from dbtriage.engine import DiagnosticService

__all__ = [
    "__version__",
    # Exceptions
    "DBTriageError",
    "CatalogError",
    "DataUnavailableError",
    "DataFetchError",
    "InvalidTargetError",
    "InvalidIdentifierError",
    "UnsafeQueryError",
    "SnapshotError",
    "ConfigurationError",
    # Catalog
    "CatalogProvider",
    "CatalogSnapshot",
    "InMemoryCatalogProvider",
    "StatCategory",
    "collect_snapshot",
    "load_snapshot",
    # Analysis
    "DatabaseReport",
    "DiagnosticAnalyzer",
    "Finding",
    "Issue",
    "Severity",
    "TableAttentionEntry",
    "WorkflowStep",
    "compute_health_score",
    "find_index_relationships",
    "plan_workflow",
    # Orchestration
    "Config",
    "get_config",
    "DiagnosticService",
]
