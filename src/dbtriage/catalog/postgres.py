"""
PostgreSQL catalog provider (psycopg 3).

Every fetch opens its own short-lived connection, so concurrent fetches
from ``collect_snapshot`` share nothing. Sessions are read-only at the
connection level:

    options=-c default_transaction_read_only=on -c statement_timeout=<ms>

The read-only gate in ``dbtriage.safety`` is only defense in depth; this
session setting is what actually prevents writes.

Optional sources:
- STATEMENTS requires the pg_stat_statements extension
- REPLICATION may be denied to unprivileged roles
Both raise DataUnavailableError instead of DataFetchError.
"""

from __future__ import annotations

import logging
import time
from contextlib import contextmanager
from typing import Any, Iterator

import psycopg
from psycopg import sql
from psycopg.rows import dict_row

from dbtriage.catalog.models import (
    ROW_TYPES,
    ColumnProfileRow,
    StatCategory,
    StatRow,
)
from dbtriage.catalog.provider import QueryResult
from dbtriage.exceptions import DataFetchError, DataUnavailableError

logger = logging.getLogger(__name__)

_USER_SCHEMAS = "NOT IN ('pg_catalog', 'information_schema') AND {col} !~ '^pg_toast'"

# Rows sampled per column when profiling value distributions
PROFILE_SAMPLE_ROWS = 10_000


# ── Catalog queries ──────────────────────────────────────────────────────
# Each query exposes its scope columns so _scoped() can narrow it to one
# schema or table. Column aliases match the row model field names.

_QUERIES: dict[StatCategory, tuple[str, str | None, str | None]] = {
    StatCategory.DATABASE_SIZE: (
        """
        SELECT
            pg_database_size(current_database()) AS total_size_bytes,
            (SELECT COUNT(*) FROM information_schema.tables
             WHERE table_schema NOT IN ('pg_catalog', 'information_schema')) AS total_tables
        """,
        None,
        None,
    ),
    StatCategory.TABLE_ACTIVITY: (
        """
        SELECT
            s.schemaname AS schema_name,
            s.relname AS table_name,
            COALESCE(s.seq_scan, 0) AS seq_scan,
            COALESCE(s.seq_tup_read, 0) AS seq_tup_read,
            COALESCE(s.idx_scan, 0) AS idx_scan,
            COALESCE(s.idx_tup_fetch, 0) AS idx_tup_fetch,
            COALESCE(s.n_tup_ins, 0) AS n_tup_ins,
            COALESCE(s.n_tup_upd, 0) AS n_tup_upd,
            COALESCE(s.n_tup_del, 0) AS n_tup_del,
            COALESCE(s.n_tup_hot_upd, 0) AS n_tup_hot_upd,
            COALESCE(s.n_live_tup, 0) AS n_live_tup,
            COALESCE(s.n_dead_tup, 0) AS n_dead_tup,
            s.last_vacuum,
            s.last_autovacuum,
            s.last_analyze,
            s.last_autoanalyze,
            COALESCE(s.vacuum_count, 0) AS vacuum_count,
            COALESCE(s.autovacuum_count, 0) AS autovacuum_count,
            COALESCE(s.analyze_count, 0) AS analyze_count,
            COALESCE(s.autoanalyze_count, 0) AS autoanalyze_count,
            pg_total_relation_size(s.relid) AS table_size_bytes
        FROM pg_stat_user_tables s
        WHERE TRUE {scope}
        ORDER BY s.schemaname, s.relname
        """,
        "s.schemaname",
        "s.relname",
    ),
    StatCategory.INDEX_USAGE: (
        """
        SELECT
            n.nspname AS schema_name,
            t.relname AS table_name,
            i.relname AS index_name,
            ARRAY(
                SELECT a.attname
                FROM unnest((ix.indkey::int2[])[0:ix.indnkeyatts - 1])
                    WITH ORDINALITY AS k(attnum, ord)
                JOIN pg_attribute a ON a.attrelid = t.oid AND a.attnum = k.attnum
                ORDER BY k.ord
            ) AS columns,
            am.amname AS index_type,
            ix.indisunique AS is_unique,
            ix.indisprimary AS is_primary,
            ix.indpred IS NOT NULL AS is_partial,
            ix.indexprs IS NOT NULL AS has_expressions,
            COALESCE(s.idx_scan, 0) AS scans,
            COALESCE(s.idx_tup_read, 0) AS tuples_read,
            COALESCE(s.idx_tup_fetch, 0) AS tuples_fetched,
            pg_relation_size(i.oid) AS size_bytes,
            COALESCE(io.idx_blks_read, 0) AS blks_read,
            COALESCE(io.idx_blks_hit, 0) AS blks_hit
        FROM pg_index ix
        JOIN pg_class i ON i.oid = ix.indexrelid
        JOIN pg_class t ON t.oid = ix.indrelid
        JOIN pg_namespace n ON n.oid = t.relnamespace
        JOIN pg_am am ON am.oid = i.relam
        LEFT JOIN pg_stat_user_indexes s ON s.indexrelid = ix.indexrelid
        LEFT JOIN pg_statio_user_indexes io ON io.indexrelid = ix.indexrelid
        WHERE n.nspname """ + _USER_SCHEMAS.format(col="n.nspname") + """ {scope}
        ORDER BY n.nspname, t.relname, i.relname
        """,
        "n.nspname",
        "t.relname",
    ),
    StatCategory.TABLE_IO: (
        """
        SELECT
            schemaname AS schema_name,
            relname AS table_name,
            COALESCE(heap_blks_read, 0) AS heap_blks_read,
            COALESCE(heap_blks_hit, 0) AS heap_blks_hit,
            COALESCE(idx_blks_read, 0) AS idx_blks_read,
            COALESCE(idx_blks_hit, 0) AS idx_blks_hit,
            COALESCE(toast_blks_read, 0) AS toast_blks_read,
            COALESCE(toast_blks_hit, 0) AS toast_blks_hit,
            COALESCE(tidx_blks_read, 0) AS tidx_blks_read,
            COALESCE(tidx_blks_hit, 0) AS tidx_blks_hit
        FROM pg_statio_user_tables
        WHERE TRUE {scope}
        ORDER BY schemaname, relname
        """,
        "schemaname",
        "relname",
    ),
    StatCategory.FOREIGN_KEYS: (
        """
        SELECT
            n.nspname AS schema_name,
            c.relname AS table_name,
            con.conname AS constraint_name,
            a.attname AS column_name,
            fn.nspname AS foreign_schema,
            fc.relname AS foreign_table,
            fa.attname AS foreign_column,
            EXISTS (
                SELECT 1 FROM pg_index ix
                WHERE ix.indrelid = con.conrelid AND ix.indkey[0] = k.attnum
            ) AS has_index
        FROM pg_constraint con
        CROSS JOIN LATERAL unnest(con.conkey, con.confkey) AS k(attnum, fattnum)
        JOIN pg_class c ON c.oid = con.conrelid
        JOIN pg_namespace n ON n.oid = c.relnamespace
        JOIN pg_attribute a ON a.attrelid = con.conrelid AND a.attnum = k.attnum
        JOIN pg_class fc ON fc.oid = con.confrelid
        JOIN pg_namespace fn ON fn.oid = fc.relnamespace
        JOIN pg_attribute fa ON fa.attrelid = con.confrelid AND fa.attnum = k.fattnum
        WHERE con.contype = 'f' {scope}
        ORDER BY n.nspname, c.relname, con.conname, a.attname
        """,
        "n.nspname",
        "c.relname",
    ),
    StatCategory.CONSTRAINTS: (
        """
        SELECT
            n.nspname AS schema_name,
            c.relname AS table_name,
            con.conname AS constraint_name,
            CASE con.contype
                WHEN 'f' THEN 'FOREIGN KEY'
                WHEN 'c' THEN 'CHECK'
                WHEN 'u' THEN 'UNIQUE'
                WHEN 'p' THEN 'PRIMARY KEY'
                WHEN 'x' THEN 'EXCLUSION'
            END AS constraint_type,
            con.convalidated AS validated,
            ARRAY(
                SELECT a.attname
                FROM unnest(con.conkey) WITH ORDINALITY AS k(attnum, ord)
                JOIN pg_attribute a ON a.attrelid = con.conrelid AND a.attnum = k.attnum
                ORDER BY k.ord
            ) AS columns,
            pg_get_constraintdef(con.oid) AS definition
        FROM pg_constraint con
        JOIN pg_class c ON c.oid = con.conrelid
        JOIN pg_namespace n ON n.oid = c.relnamespace
        WHERE con.contype IN ('f', 'c', 'u', 'p', 'x')
          AND n.nspname """ + _USER_SCHEMAS.format(col="n.nspname") + """ {scope}
        ORDER BY n.nspname, c.relname, con.conname
        """,
        "n.nspname",
        "c.relname",
    ),
    StatCategory.SEQUENCES: (
        """
        SELECT
            schemaname AS schema_name,
            sequencename AS sequence_name,
            last_value,
            max_value
        FROM pg_sequences
        WHERE schemaname NOT IN ('pg_catalog', 'information_schema') {scope}
        ORDER BY schemaname, sequencename
        """,
        "schemaname",
        None,
    ),
    StatCategory.CONNECTIONS: (
        """
        SELECT
            current_setting('max_connections')::int AS max_connections,
            COUNT(*) AS total,
            COUNT(*) FILTER (WHERE state = 'idle') AS idle,
            COUNT(*) FILTER (WHERE state = 'active') AS active
        FROM pg_stat_activity
        """,
        None,
        None,
    ),
    StatCategory.COLUMNS: (
        """
        SELECT
            c.table_schema AS schema_name,
            c.table_name,
            c.column_name,
            c.data_type,
            c.ordinal_position,
            c.is_nullable = 'YES' AS is_nullable,
            c.column_default,
            c.character_maximum_length,
            c.numeric_precision,
            c.numeric_scale,
            EXISTS (
                SELECT 1
                FROM pg_index ix
                JOIN pg_class t ON t.oid = ix.indrelid
                JOIN pg_namespace tn ON tn.oid = t.relnamespace
                JOIN pg_attribute a ON a.attrelid = t.oid AND a.attnum = ANY(ix.indkey)
                WHERE tn.nspname = c.table_schema
                  AND t.relname = c.table_name
                  AND a.attname = c.column_name
            ) AS is_indexed,
            EXISTS (
                SELECT 1
                FROM information_schema.table_constraints tc
                JOIN information_schema.key_column_usage kcu
                  ON tc.constraint_name = kcu.constraint_name
                 AND tc.constraint_schema = kcu.constraint_schema
                WHERE tc.constraint_type = 'FOREIGN KEY'
                  AND kcu.table_schema = c.table_schema
                  AND kcu.table_name = c.table_name
                  AND kcu.column_name = c.column_name
            ) AS is_foreign_key
        FROM information_schema.columns c
        WHERE c.table_schema NOT IN ('pg_catalog', 'information_schema') {scope}
        ORDER BY c.table_schema, c.table_name, c.ordinal_position
        """,
        "c.table_schema",
        "c.table_name",
    ),
    StatCategory.TABLES: (
        """
        SELECT
            t.table_schema AS schema_name,
            t.table_name,
            t.table_type,
            COALESCE(s.n_live_tup, 0) AS row_count,
            pg_total_relation_size(c.oid) AS size_bytes
        FROM information_schema.tables t
        JOIN pg_namespace n ON n.nspname = t.table_schema
        JOIN pg_class c ON c.relnamespace = n.oid AND c.relname = t.table_name
        LEFT JOIN pg_stat_user_tables s ON s.relid = c.oid
        WHERE t.table_schema NOT IN ('pg_catalog', 'information_schema') {scope}
        ORDER BY t.table_schema, t.table_name
        """,
        "t.table_schema",
        "t.table_name",
    ),
}

_STATEMENTS_QUERY = """
    SELECT
        query,
        calls,
        total_exec_time AS total_time_ms,
        mean_exec_time AS mean_time_ms,
        max_exec_time AS max_time_ms,
        rows,
        shared_blks_hit,
        shared_blks_read
    FROM pg_stat_statements
    WHERE query !~* 'pg_stat_statements'
      AND query !~* 'information_schema'
    ORDER BY total_exec_time DESC
    LIMIT 100
"""

_REPLICATION_QUERY = """
    SELECT
        NOT pg_is_in_recovery() AS is_primary,
        (SELECT COUNT(*) FROM pg_replication_slots) AS replication_slots,
        (SELECT COUNT(*) FROM pg_stat_replication) AS active_replicas
"""

_REPLICATION_LAG_QUERY = """
    SELECT
        MAX(pg_wal_lsn_diff(pg_current_wal_lsn(), replay_lsn))::bigint AS max_lag_bytes,
        MAX(EXTRACT(EPOCH FROM replay_lag))::float AS max_lag_seconds
    FROM pg_stat_replication
"""


def _scoped(
    template: str,
    schema_col: str | None,
    table_col: str | None,
    schema: str | None,
    table: str | None,
) -> tuple[sql.Composable, list[Any]]:
    """Fill the ``{scope}`` slot of a catalog query with schema/table filters."""
    conditions: list[sql.Composable] = []
    params: list[Any] = []
    if schema is not None and schema_col is not None:
        conditions.append(sql.SQL("AND {} = %s").format(sql.SQL(schema_col)))
        params.append(schema)
    if table is not None and table_col is not None:
        conditions.append(sql.SQL("AND {} = %s").format(sql.SQL(table_col)))
        params.append(table)
    query = sql.SQL(template).format(scope=sql.SQL(" ").join(conditions))
    return query, params


class PostgresCatalogProvider:
    """
    Catalog provider reading live statistics from PostgreSQL.

    Example:
        provider = PostgresCatalogProvider("postgresql://user@localhost/app")
        rows = provider.fetch(StatCategory.TABLE_ACTIVITY, schema="public")
    """

    def __init__(
        self,
        dsn: str,
        statement_timeout_ms: int = 30_000,
        connect_timeout_seconds: int = 10,
        application_name: str = "dbtriage",
    ) -> None:
        self.dsn = dsn
        self.statement_timeout_ms = statement_timeout_ms
        self.connect_timeout_seconds = connect_timeout_seconds
        self.application_name = application_name

    @contextmanager
    def _connect(self) -> Iterator[psycopg.Connection[dict[str, Any]]]:
        options = (
            "-c default_transaction_read_only=on "
            f"-c statement_timeout={int(self.statement_timeout_ms)}"
        )
        try:
            conn = psycopg.connect(
                self.dsn,
                options=options,
                application_name=self.application_name,
                connect_timeout=self.connect_timeout_seconds,
                autocommit=True,
                row_factory=dict_row,
            )
        except psycopg.Error as e:
            raise DataFetchError(f"Database connection failed: {e}", original_error=e) from e
        with conn:
            yield conn

    def _rows(
        self,
        conn: psycopg.Connection[dict[str, Any]],
        query: sql.Composable | str,
        params: list[Any] | None = None,
    ) -> list[dict[str, Any]]:
        with conn.cursor() as cur:
            cur.execute(query, params)
            return cur.fetchall()

    def fetch(
        self,
        category: StatCategory,
        schema: str | None = None,
        table: str | None = None,
    ) -> list[StatRow]:
        start_time = time.perf_counter()
        try:
            with self._connect() as conn:
                if category is StatCategory.STATEMENTS:
                    raw = self._fetch_statements(conn)
                elif category is StatCategory.REPLICATION:
                    raw = self._fetch_replication(conn)
                elif category is StatCategory.COLUMN_PROFILE:
                    raw = self._fetch_column_profile(conn, schema, table)
                else:
                    template, schema_col, table_col = _QUERIES[category]
                    query, params = _scoped(template, schema_col, table_col, schema, table)
                    raw = self._rows(conn, query, params)
        except psycopg.Error as e:
            raise DataFetchError(
                f"Query execution failed: {e}",
                category=category.value,
                original_error=e,
            ) from e

        row_type = ROW_TYPES[category]
        rows = [row_type.model_validate(r) for r in raw]
        logger.debug(
            "Catalog query %s returned %d rows in %.3fs",
            category.value,
            len(rows),
            time.perf_counter() - start_time,
        )
        return rows

    def _fetch_statements(self, conn: psycopg.Connection[dict[str, Any]]) -> list[dict[str, Any]]:
        installed = self._rows(
            conn,
            "SELECT EXISTS (SELECT 1 FROM pg_extension WHERE extname = 'pg_stat_statements') AS installed",
        )
        if not installed or not installed[0]["installed"]:
            raise DataUnavailableError(
                "pg_stat_statements extension is not installed",
                category=StatCategory.STATEMENTS.value,
            )
        return self._rows(conn, _STATEMENTS_QUERY)

    def _fetch_replication(self, conn: psycopg.Connection[dict[str, Any]]) -> list[dict[str, Any]]:
        try:
            rows = self._rows(conn, _REPLICATION_QUERY)
            if not rows:
                return []
            row = dict(rows[0])
            if row["is_primary"] and row["active_replicas"] > 0:
                lag = self._rows(conn, _REPLICATION_LAG_QUERY)
                if lag:
                    row.update(lag[0])
            return [row]
        except psycopg.errors.InsufficientPrivilege as e:
            raise DataUnavailableError(
                f"Replication statistics are not readable: {e}",
                category=StatCategory.REPLICATION.value,
            ) from e

    def _fetch_column_profile(
        self,
        conn: psycopg.Connection[dict[str, Any]],
        schema: str | None,
        table: str | None,
    ) -> list[dict[str, Any]]:
        if schema is None or table is None:
            return []

        columns = self._rows(
            conn,
            """
            SELECT column_name FROM information_schema.columns
            WHERE table_schema = %s AND table_name = %s
            ORDER BY ordinal_position
            """,
            [schema, table],
        )

        profiles: list[dict[str, Any]] = []
        for col in columns:
            name = col["column_name"]
            query = sql.SQL(
                """
                SELECT
                    COUNT(*) AS sample_size,
                    COUNT(*) FILTER (WHERE {col} IS NULL) AS null_count,
                    COUNT(DISTINCT {col}) AS distinct_count,
                    COALESCE(AVG(LENGTH({col}::text)), 0)::float AS avg_width
                FROM (SELECT {col} FROM {tbl} LIMIT {limit}) AS sample
                """
            ).format(
                col=sql.Identifier(name),
                tbl=sql.Identifier(schema, table),
                limit=sql.Literal(PROFILE_SAMPLE_ROWS),
            )
            try:
                stats = self._rows(conn, query)[0]
            except (psycopg.errors.DataError, psycopg.errors.UndefinedFunction) as e:
                # Types without equality or a text cast still get a row
                logger.warning("Could not profile column %s.%s.%s: %s", schema, table, name, e)
                stats = ColumnProfileRow(schema_name=schema, table_name=table, column_name=name).model_dump()
            profiles.append({"schema_name": schema, "table_name": table, "column_name": name, **stats})
        return profiles

    def run_query(self, statement: str) -> QueryResult:
        try:
            with self._connect() as conn, conn.cursor() as cur:
                cur.execute(sql.SQL(statement))
                if cur.description is None:
                    return QueryResult(columns=())
                columns = tuple(col.name for col in cur.description)
                return QueryResult(columns=columns, rows=tuple(cur.fetchall()))
        except psycopg.errors.ReadOnlySqlTransaction as e:
            raise DataFetchError(
                "Query rejected: database session is read-only. Cannot execute "
                f"INSERT, UPDATE, DELETE, or DDL statements. Original error: {e}",
                original_error=e,
            ) from e
        except psycopg.Error as e:
            raise DataFetchError(f"Query execution failed: {e}", original_error=e) from e

    def explain(self, statement: str) -> list[dict[str, Any]]:
        query = sql.SQL("EXPLAIN (FORMAT JSON) ") + sql.SQL(statement)
        try:
            with self._connect() as conn:
                rows = self._rows(conn, query)
        except psycopg.Error as e:
            raise DataFetchError(f"Failed to analyze query: {e}", original_error=e) from e
        if not rows:
            return []
        plan = rows[0]["QUERY PLAN"]
        return list(plan) if isinstance(plan, list) else [plan]

    def verify_read_only(self) -> bool:
        """
        Check that sessions really are read-only.

        Logs a warning (rather than failing) when the server ignored the
        session option.
        """
        try:
            with self._connect() as conn:
                rows = self._rows(
                    conn,
                    "SELECT current_setting('default_transaction_read_only') AS readonly_mode",
                )
        except psycopg.Error as e:
            raise DataFetchError(f"Connection test failed: {e}", original_error=e) from e
        read_only = bool(rows) and rows[0]["readonly_mode"] == "on"
        if not read_only:
            logger.warning("Database connection is not in read-only mode")
        return read_only

    def close(self) -> None:
        # Connections are per-fetch; nothing is pooled.
        pass
