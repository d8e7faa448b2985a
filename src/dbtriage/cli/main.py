"""
dbtriage CLI - PostgreSQL diagnostic triage.

Works against a live database (--dsn, DBTRIAGE_DSN or DATABASE_URL) or
an offline statistics snapshot (--snapshot).

Usage:
    dbtriage analyze --dsn postgresql://app@localhost/prod
    dbtriage health --snapshot snapshot.json --format markdown
    dbtriage indexes orders --schema sales
    dbtriage --help
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Annotated, Iterator, NoReturn, Optional

import typer
from rich.console import Console
from rich.table import Table

from dbtriage import __version__
from dbtriage.config import Config, get_config
from dbtriage.engine import DiagnosticService
from dbtriage.exceptions import DBTriageError
from dbtriage.logging_config import configure_logging
from dbtriage.output import OutputFormat, render_report

logger = logging.getLogger(__name__)

app = typer.Typer(
    name="dbtriage",
    help="PostgreSQL diagnostic triage: health score, prioritized issues and a remediation plan",
    no_args_is_help=True,
)

console = Console()
error_console = Console(stderr=True)


# ── Shared options ────────────────────────────────────────────────────────

DsnOption = Annotated[
    Optional[str],
    typer.Option("--dsn", "-d", help="PostgreSQL connection string (default: DBTRIAGE_DSN)"),
]
SnapshotOption = Annotated[
    Optional[Path],
    typer.Option(
        "--snapshot",
        "-s",
        help="Analyze an offline JSON/YAML statistics snapshot instead of a live database",
        exists=True,
        readable=True,
        resolve_path=True,
    ),
]
FormatOption = Annotated[
    OutputFormat,
    typer.Option("--format", "-f", help="Output format"),
]
SchemaOption = Annotated[
    str,
    typer.Option("--schema", help="Schema containing the table"),
]
TableArgument = Annotated[str, typer.Argument(help="Table name")]


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"dbtriage version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        Optional[bool],
        typer.Option(
            "--version",
            "-v",
            help="Show version and exit.",
            callback=version_callback,
            is_eager=True,
        ),
    ] = None,
    log_level: Annotated[
        Optional[str],
        typer.Option("--log-level", help="Logging level (default: DBTRIAGE_LOG_LEVEL or INFO)"),
    ] = None,
) -> None:
    """dbtriage - PostgreSQL diagnostic triage."""
    try:
        config = get_config()
    except DBTriageError as e:
        _fail(e)
    configure_logging(log_level or config.log_level, config.log_file)


# ── Helpers ───────────────────────────────────────────────────────────────


def _fail(error: DBTriageError) -> NoReturn:
    error_console.print(f"[red]Error:[/red] {error.message}")
    raise typer.Exit(code=1)


@contextmanager
def _service(dsn: str | None, snapshot: Path | None) -> Iterator[DiagnosticService]:
    """
    Open a service over a snapshot file or a live connection.

    Any DBTriageError raised inside the block is printed and turned into
    exit code 1.
    """
    try:
        config: Config = get_config()
        if snapshot is not None:
            from dbtriage.catalog import load_snapshot

            service = DiagnosticService(load_snapshot(snapshot), config=config)
        else:
            if dsn:
                config = config.model_copy(update={"dsn": dsn})
            service = DiagnosticService.connect(config)

        with service:
            yield service
    except DBTriageError as e:
        logger.debug("Command failed", exc_info=True)
        _fail(e)


def _emit(report, format: OutputFormat) -> None:
    rendered = render_report(report, format)
    if format == OutputFormat.JSON:
        console.print_json(rendered)
    else:
        console.print(rendered, markup=False, highlight=False, soft_wrap=True)


# ── Whole-database commands ───────────────────────────────────────────────


@app.command()
def analyze(
    dsn: DsnOption = None,
    snapshot: SnapshotOption = None,
    format: FormatOption = OutputFormat.TEXT,
    fail_under: Annotated[
        Optional[int],
        typer.Option(
            "--fail-under",
            help="Exit with code 2 when the health score is below this value",
            min=0,
            max=100,
        ),
    ] = None,
) -> None:
    """
    Run every enabled evaluator and print the prioritized report.

    Examples:

        $ dbtriage analyze --dsn postgresql://app@localhost/prod

        $ dbtriage analyze --snapshot snapshot.json --format json > report.json
    """
    with _service(dsn, snapshot) as service:
        report = service.comprehensive_analysis()
    _emit(report, format)

    if fail_under is not None and report.health_score < fail_under:
        error_console.print(
            f"[yellow]Health score {report.health_score} is below {fail_under}[/yellow]"
        )
        raise typer.Exit(code=2)


@app.command()
def health(
    dsn: DsnOption = None,
    snapshot: SnapshotOption = None,
    format: FormatOption = OutputFormat.TEXT,
) -> None:
    """Database-wide health: cache, vacuum state, connections, replication, sequences."""
    with _service(dsn, snapshot) as service:
        report = service.database_health()
    _emit(report, format)


@app.command()
def tables(
    schema: Annotated[
        Optional[str],
        typer.Option("--schema", help="Only list tables in this schema"),
    ] = None,
    dsn: DsnOption = None,
    snapshot: SnapshotOption = None,
    format: FormatOption = OutputFormat.TEXT,
) -> None:
    """List tables and views."""
    with _service(dsn, snapshot) as service:
        report = service.list_tables(schema)
    _emit(report, format)


@app.command()
def metadata(
    schema: Annotated[
        Optional[str],
        typer.Option("--schema", help="Only describe tables in this schema"),
    ] = None,
    dsn: DsnOption = None,
    snapshot: SnapshotOption = None,
    format: FormatOption = OutputFormat.JSON,
) -> None:
    """Export schemas with their tables, columns, indexes and constraints."""
    with _service(dsn, snapshot) as service:
        report = service.database_metadata(schema)
    _emit(report, format)


# ── Table-scoped commands ─────────────────────────────────────────────────


@app.command("table-stats")
def table_stats(
    table: TableArgument,
    schema: SchemaOption = "public",
    dsn: DsnOption = None,
    snapshot: SnapshotOption = None,
    format: FormatOption = OutputFormat.TEXT,
) -> None:
    """Scan, tuple, I/O and index counters plus a bloat estimate for one table."""
    with _service(dsn, snapshot) as service:
        report = service.query_statistics(schema, table)
    _emit(report, format)


@app.command()
def indexes(
    table: TableArgument,
    schema: SchemaOption = "public",
    dsn: DsnOption = None,
    snapshot: SnapshotOption = None,
    format: FormatOption = OutputFormat.TEXT,
) -> None:
    """Indexing strategy for one table: unused, duplicate and missing FK indexes."""
    with _service(dsn, snapshot) as service:
        report = service.indexing_strategies(schema, table)
    _emit(report, format)


@app.command()
def schema(
    table: TableArgument,
    schema: SchemaOption = "public",
    dsn: DsnOption = None,
    snapshot: SnapshotOption = None,
    format: FormatOption = OutputFormat.TEXT,
) -> None:
    """Column profile, data type issues and bloat for one table."""
    with _service(dsn, snapshot) as service:
        report = service.schema_optimizations(schema, table)
    _emit(report, format)


@app.command("table-info")
def table_info(
    table: TableArgument,
    schema: SchemaOption = "public",
    dsn: DsnOption = None,
    snapshot: SnapshotOption = None,
    format: FormatOption = OutputFormat.TEXT,
) -> None:
    """Columns, indexes, constraints and size of one table."""
    with _service(dsn, snapshot) as service:
        report = service.table_info(schema, table)
    _emit(report, format)


# ── Statement commands ────────────────────────────────────────────────────


@app.command("slow-queries")
def slow_queries(
    query: Annotated[
        Optional[str],
        typer.Option("--query", "-q", help="Review the plan of this SELECT statement instead"),
    ] = None,
    top: Annotated[
        int,
        typer.Option("--top", "-n", help="Number of statements to show", min=1),
    ] = 10,
    dsn: DsnOption = None,
    snapshot: SnapshotOption = None,
    format: FormatOption = OutputFormat.TEXT,
) -> None:
    """
    Slowest statements from pg_stat_statements, or one statement's plan.

    Examples:

        $ dbtriage slow-queries --top 20

        $ dbtriage slow-queries -q "SELECT * FROM orders WHERE customer_id = 7"
    """
    with _service(dsn, snapshot) as service:
        report = service.query_performance(statement=query, top_n=top)
    _emit(report, format)


@app.command()
def query(
    statement: Annotated[str, typer.Argument(help="Read-only SQL statement")],
    max_rows: Annotated[
        Optional[int],
        typer.Option("--max-rows", help="LIMIT appended when the statement has none", min=1),
    ] = None,
    dsn: DsnOption = None,
    snapshot: SnapshotOption = None,
    format: FormatOption = OutputFormat.TEXT,
) -> None:
    """
    Run a read-only statement (SELECT, WITH, EXPLAIN, SHOW, TABLE, VALUES).

    Data-modifying statements are rejected before anything is sent.
    """
    with _service(dsn, snapshot) as service:
        report = service.execute_query(statement, max_rows=max_rows)
    if report.warning:
        error_console.print(f"[yellow]{report.warning}[/yellow]")
    _emit(report, format)


# ── Evaluators ────────────────────────────────────────────────────────────


@app.command()
def evaluators() -> None:
    """
    List all available signal evaluators.

    Shows evaluator IDs, the statistics they read, severity, and whether
    the current configuration enables them.
    """
    import dbtriage.analyzer.evaluators  # noqa: F401  (registers evaluators)
    from dbtriage.analyzer.registry import get_registry

    try:
        config = get_config()
    except DBTriageError as e:
        _fail(e)

    table = Table()
    table.add_column("Evaluator ID", style="cyan")
    table.add_column("Source")
    table.add_column("Severity")
    table.add_column("Advisory")
    table.add_column("Enabled")
    table.add_column("Description")

    for evaluator_cls in get_registry().all():
        severity = evaluator_cls.severity.value
        if severity == "critical":
            sev_style = "red bold"
        elif severity == "high":
            sev_style = "red"
        elif severity == "medium":
            sev_style = "yellow"
        else:
            sev_style = "blue"
        enabled = config.is_evaluator_enabled(evaluator_cls.evaluator_id)
        table.add_row(
            evaluator_cls.evaluator_id,
            evaluator_cls.source.value,
            f"[{sev_style}]{severity.upper()}[/{sev_style}]",
            "yes" if evaluator_cls.advisory else "no",
            "[green]yes[/green]" if enabled else "[dim]no[/dim]",
            evaluator_cls.description,
        )

    console.print(table)
    console.print(f"\n[dim]{len(get_registry())} evaluator(s) registered[/dim]")


if __name__ == "__main__":
    app()
