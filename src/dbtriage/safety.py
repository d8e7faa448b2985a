"""
Read-only safety checks for free-form statements and identifiers.

The database session itself is read-only (default_transaction_read_only),
so these checks are a second line: they reject obviously unsafe input
before it is ever sent, with a message the user can act on.

Keywords are matched on word boundaries, so a column called
``updated_at`` or an ``OFFSET`` clause is not mistaken for UPDATE or SET.
"""

from __future__ import annotations

import logging
import re
from typing import Pattern

from dbtriage.exceptions import InvalidIdentifierError, UnsafeQueryError

logger = logging.getLogger(__name__)

ALLOWED_PREFIXES = ("SELECT", "WITH", "EXPLAIN", "SHOW", "TABLE", "VALUES")

PROHIBITED_KEYWORDS = (
    "INSERT",
    "UPDATE",
    "DELETE",
    "DROP",
    "CREATE",
    "ALTER",
    "TRUNCATE",
    "GRANT",
    "REVOKE",
    "COMMIT",
    "ROLLBACK",
    "BEGIN",
    "START TRANSACTION",
    "SET",
    "COPY",
)

# Statements whose result set a trailing LIMIT applies to
_LIMITABLE_PREFIXES = ("SELECT", "WITH", "TABLE", "VALUES")
_EXPLAINABLE_PREFIXES = ("SELECT", "WITH")

_IDENTIFIER = re.compile(r"^[A-Za-z0-9_.\-]{1,255}$")
_LIMIT_CLAUSE = re.compile(r"\blimit\b", re.IGNORECASE)

# Quoted text is matched first so comment markers inside it are left alone
_SQL_TEXT = re.compile(
    r"""
    (?P<literal>
        '(?:[^']|'')*'
      | "(?:[^"]|"")*"
      | \$(?P<tag>[A-Za-z_]\w*|)\$.*?\$(?P=tag)\$
    )
    | (?P<comment>--[^\n]*|/\*.*?(?:\*/|\Z))
    """,
    re.VERBOSE | re.DOTALL,
)


def strip_sql_comments(statement: str) -> str:
    """Remove ``--`` and ``/* */`` comments, leaving quoted text intact."""
    return _SQL_TEXT.sub(
        lambda m: " " if m.group("comment") is not None else m.group(0),
        statement,
    )


def _mask_literals(statement: str) -> str:
    return _SQL_TEXT.sub(
        lambda m: "''" if m.group("literal") is not None else " ",
        statement,
    )


def _keyword_pattern(keyword: str) -> Pattern[str]:
    words = r"\s+".join(re.escape(w) for w in keyword.split())
    return re.compile(rf"\b{words}\b", re.IGNORECASE)


def _leading_keyword(statement: str) -> str:
    match = re.match(r"\s*([A-Za-z]+)", statement)
    return match.group(1).upper() if match else ""


class ReadOnlyQueryGate:
    """
    Admit only read-only statements.

    A statement passes when it starts with one of SELECT, WITH, EXPLAIN,
    SHOW, TABLE or VALUES followed by whitespace, and contains none of
    the prohibited keywords anywhere.

    Example:
        gate = ReadOnlyQueryGate()
        gate.check("SELECT * FROM users")          # OK
        gate.check("DELETE FROM users")            # raises UnsafeQueryError
    """

    def __init__(self, prohibited: tuple[str, ...] = PROHIBITED_KEYWORDS) -> None:
        self._patterns = [(kw, _keyword_pattern(kw)) for kw in prohibited]
        self._start = re.compile(
            rf"^\s*({'|'.join(ALLOWED_PREFIXES)})\s",
            re.IGNORECASE,
        )

    def check(self, statement: str) -> str:
        """
        Validate a statement and return it stripped.

        Raises:
            UnsafeQueryError: Prohibited keyword or disallowed leading keyword.
        """
        for keyword, pattern in self._patterns:
            if pattern.search(statement):
                logger.warning("Rejected statement containing %s", keyword)
                raise UnsafeQueryError(
                    f'Query contains prohibited keyword: "{keyword}". '
                    "This tool only supports SELECT queries.",
                    keyword=keyword,
                )

        if not self._start.match(statement.strip()):
            raise UnsafeQueryError(
                "Query must start with SELECT, WITH, EXPLAIN, SHOW, TABLE, or VALUES"
            )

        return statement.strip()

    def check_explainable(self, statement: str) -> str:
        """Only SELECT and WITH statements may be handed to EXPLAIN."""
        statement = self.check(statement)
        if _leading_keyword(statement) not in _EXPLAINABLE_PREFIXES:
            raise UnsafeQueryError("Only SELECT queries can be analyzed for security reasons")
        return statement


def apply_row_limit(statement: str, max_rows: int) -> tuple[str, str | None]:
    """
    Append ``LIMIT max_rows`` to a row-returning statement that has none.

    Comments are removed first, so a trailing ``--`` comment cannot swallow
    the added clause. A ``limit`` inside a comment or string literal does
    not count as an existing LIMIT.

    Returns:
        (statement, warning) where warning is None when nothing was added.
    """
    statement = strip_sql_comments(statement).strip().rstrip(";").rstrip()
    if _leading_keyword(statement) not in _LIMITABLE_PREFIXES:
        return statement, None
    if _LIMIT_CLAUSE.search(_mask_literals(statement)):
        return statement, None

    warning = (
        f"Added LIMIT {max_rows} to prevent excessive results. "
        "Specify LIMIT in your query to override."
    )
    return f"{statement} LIMIT {max_rows}", warning


def validate_identifier(identifier: str) -> str:
    """
    Check a schema or table name against ``^[A-Za-z0-9_.-]{1,255}$``.

    Raises:
        InvalidIdentifierError: Before any query is issued.
    """
    if not isinstance(identifier, str) or not _IDENTIFIER.match(identifier):
        raise InvalidIdentifierError(str(identifier))
    return identifier
