"""
Package-level exception hierarchy for dbtriage.

All exceptions inherit from DBTriageError, enabling:
- Catching all dbtriage errors with a single except clause
- Rich context fields for debugging (category, object name, config key, etc.)
- Structured serialization via to_dict() for JSON error responses

Hierarchy:
    DBTriageError
    ├── CatalogError               – Errors talking to the statistics source
    │   ├── DataUnavailableError   – An optional statistics source is missing
    │   └── DataFetchError         – A catalog query failed or timed out
    ├── InvalidTargetError         – The requested schema.table does not exist
    ├── InvalidIdentifierError     – An identifier failed the safety pattern
    ├── UnsafeQueryError           – A free-form statement was rejected
    ├── SnapshotError              – A snapshot file could not be loaded
    └── ConfigurationError         – Invalid configuration
"""

from __future__ import annotations

from typing import Any


class DBTriageError(Exception):
    """
    Base exception for all dbtriage errors.

    Attributes:
        message: Human-readable error description.
    """

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary for JSON error responses."""
        return {
            "error_type": type(self).__name__,
            "message": self.message,
        }


# ── Catalog Errors ───────────────────────────────────────────────────────


class CatalogError(DBTriageError):
    """
    Errors raised by a catalog provider.

    Attributes:
        category: The statistic category being fetched (if known).
    """

    def __init__(self, message: str, category: str | None = None) -> None:
        self.category = category
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result["category"] = self.category
        return result


class DataUnavailableError(CatalogError):
    """
    An optional statistics source does not exist on this server.

    Examples: pg_stat_statements is not installed, or the node has no
    replication configured. Evaluators treat this as "zero findings plus
    an explanatory note", never as a run failure.
    """
    pass


class DataFetchError(CatalogError):
    """
    A mandatory catalog query was rejected or timed out.

    Aborts the whole analysis run; no partial report is produced.

    Attributes:
        original_error: The underlying driver exception, if any.
    """

    def __init__(
        self,
        message: str,
        category: str | None = None,
        original_error: Exception | None = None,
    ) -> None:
        self.original_error = original_error
        super().__init__(message, category=category)

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        if self.original_error is not None:
            result["original_error_type"] = self.original_error.__class__.__name__
            result["original_error_message"] = str(self.original_error)
        return result


# ── Target Errors ────────────────────────────────────────────────────────


class InvalidTargetError(DBTriageError):
    """
    A table-scoped operation named a table that does not exist.

    Attributes:
        schema: Schema name that was requested.
        table: Table name that was requested.
    """

    def __init__(self, schema: str, table: str, detail: str | None = None) -> None:
        self.schema = schema
        self.table = table
        message = f"Table {schema}.{table} not found"
        if detail:
            message += f" {detail}"
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result["schema"] = self.schema
        result["table"] = self.table
        return result


class InvalidIdentifierError(DBTriageError):
    """
    An identifier failed the basic safety pattern.

    Raised before any query is issued.

    Attributes:
        identifier: The rejected identifier.
    """

    def __init__(self, identifier: str) -> None:
        self.identifier = identifier
        super().__init__(f"Invalid schema or table name: {identifier!r}")

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result["identifier"] = self.identifier
        return result


class UnsafeQueryError(DBTriageError):
    """
    A free-form statement was rejected by the read-only gate.

    Attributes:
        keyword: The prohibited keyword that matched, if any.
    """

    def __init__(self, message: str, keyword: str | None = None) -> None:
        self.keyword = keyword
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result["keyword"] = self.keyword
        return result


# ── Input Errors ─────────────────────────────────────────────────────────


class SnapshotError(DBTriageError):
    """
    A statistics snapshot file could not be read or parsed.

    Attributes:
        source: Description of the input source (file path, "stdin", etc.).
    """

    def __init__(self, message: str, source: str | None = None) -> None:
        self.source = source
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result["source"] = self.source
        return result


class ConfigurationError(DBTriageError):
    """
    Error in configuration.

    Attributes:
        config_key: The configuration key that caused the error (if known).
    """

    def __init__(self, message: str, config_key: str | None = None) -> None:
        self.config_key = config_key
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result["config_key"] = self.config_key
        return result
