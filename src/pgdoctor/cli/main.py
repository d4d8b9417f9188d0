"""
pgdoctor CLI - PostgreSQL health checks.

Usage:
    pgdoctor run postgres://readonly@db.internal/app
    pgdoctor run --only performance --detail verbose
    pgdoctor list
    pgdoctor explain partition-usage
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Annotated, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from pgdoctor import __version__
from pgdoctor.check.instance import InstanceMetadata
from pgdoctor.check.models import Category, Report, Severity, max_severity
from pgdoctor.cli.output import DetailLevel, OutputFormat, render_text, reports_to_json
from pgdoctor.config import Config, get_config, load_instance_metadata
from pgdoctor.db import connect, redact_dsn
from pgdoctor.exceptions import GatewayConnectionError, PgDoctorError
from pgdoctor.registry import ALL_CHECKS, find_check
from pgdoctor.runner import all_filters, run, validate_filters

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAIL = 1
EXIT_ERROR = 2
EXIT_NO_VALID_CHECKS = 3

app = typer.Typer(
    name="pgdoctor",
    help="Read-only health checks for PostgreSQL",
    no_args_is_help=True,
)

console = Console()
error_console = Console(stderr=True)


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"pgdoctor version {__version__}")
        raise typer.Exit()


def _load_config() -> Config:
    """Load configuration, exiting with EXIT_ERROR when it is invalid."""
    try:
        return get_config()
    except PgDoctorError as e:
        error_console.print(f"[red]Error:[/red] {escape(e.message)}")
        raise typer.Exit(code=EXIT_ERROR)


def configure_logging(level: str) -> None:
    """Send log records to stderr through rich."""
    numeric_level = logging.getLevelName(level.upper())
    if not isinstance(numeric_level, int):
        numeric_level = logging.WARNING

    logging.basicConfig(
        level=numeric_level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=error_console, show_path=False)],
        force=True,
    )


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
        typer.Option(
            "--log-level",
            help="Logging level (DEBUG, INFO, WARNING, ERROR). Defaults to PGDOCTOR_LOG_LEVEL.",
        ),
    ] = None,
) -> None:
    """pgdoctor - PostgreSQL health checks."""
    configure_logging(log_level or _load_config().log_level)


def _split_filters(values: list[str] | None) -> list[str]:
    """Accept both repeated options and comma-separated lists."""
    tokens: list[str] = []
    for value in values or []:
        tokens.extend(part.strip() for part in value.split(",") if part.strip())
    return tokens


async def _run_checks(
    dsn: str,
    only: list[str],
    ignored: list[str],
    instance: InstanceMetadata | None,
    timeout: float,
) -> list[Report]:
    config = get_config()
    queries = await connect(
        dsn,
        application_name=config.application_name,
        statement_timeout_ms=config.statement_timeout_ms,
    )
    async with queries:
        return await run(
            queries, ALL_CHECKS, only, ignored, instance=instance, timeout=timeout
        )


@app.command("run")
def run_command(
    dsn: Annotated[
        Optional[str],
        typer.Argument(
            help="Connection string (libpq or URI). Defaults to PGDOCTOR_DSN.",
            show_default=False,
        ),
    ] = None,
    only: Annotated[
        Optional[list[str]],
        typer.Option("--only", help="Only run these checks or categories"),
    ] = None,
    ignore: Annotated[
        Optional[list[str]],
        typer.Option("--ignore", help="Checks or categories to skip"),
    ] = None,
    instance_metadata: Annotated[
        Optional[Path],
        typer.Option(
            "--instance-metadata",
            help="JSON or YAML file describing the instance (vCPU, memory, ...)",
            exists=True,
            dir_okay=False,
            readable=True,
        ),
    ] = None,
    timeout: Annotated[
        Optional[float],
        typer.Option("--timeout", help="Per-check timeout in seconds"),
    ] = None,
    detail: Annotated[
        Optional[DetailLevel],
        typer.Option("--detail", "-d", help="Detail level for text output"),
    ] = None,
    hide_passing: Annotated[
        bool,
        typer.Option("--hide-passing", help="Hide passing checks"),
    ] = False,
    output: Annotated[
        OutputFormat,
        typer.Option("--output", "-o", help="Output format"),
    ] = OutputFormat.text,
) -> None:
    """
    Run health checks against a PostgreSQL database.

    Exit codes: 0 healthy or warnings only, 1 at least one failing check,
    2 error or connection failure, 3 no valid --only filter.

    Examples:

        $ pgdoctor run postgres://ro@db.internal/app

        $ pgdoctor run --only partition-usage --detail debug

        $ pgdoctor run --ignore vacuum --output json | jq .
    """
    config = _load_config()

    dsn = dsn or config.dsn
    if not dsn:
        error_console.print(
            "[red]Error:[/red] connection string required: "
            "pgdoctor run <DSN> or set PGDOCTOR_DSN"
        )
        raise typer.Exit(code=EXIT_ERROR)

    only_tokens = _split_filters(only) or list(config.only)
    ignore_tokens = _split_filters(ignore) or list(config.ignored)

    valid_only, invalid_only = validate_filters(ALL_CHECKS, only_tokens)
    valid_ignored, invalid_ignored = validate_filters(ALL_CHECKS, ignore_tokens)

    invalid = invalid_only + invalid_ignored
    if invalid:
        error_console.print(
            f"[yellow]Warning:[/yellow] ignoring invalid filter(s): {escape(', '.join(invalid))}"
        )

    if only_tokens and not valid_only:
        error_console.print(
            f"[red]Error:[/red] no valid checks found for --only filter(s): "
            f"{escape(', '.join(invalid_only))}"
        )
        raise typer.Exit(code=EXIT_NO_VALID_CHECKS)

    if timeout is None:
        timeout = config.check_timeout_seconds
    elif timeout <= 0:
        error_console.print("[red]Error:[/red] --timeout must be positive")
        raise typer.Exit(code=EXIT_ERROR)

    if detail is None:
        detail = DetailLevel.brief if only_tokens else DetailLevel.summary

    try:
        instance = load_instance_metadata(instance_metadata) if instance_metadata else None
        reports = asyncio.run(
            _run_checks(dsn, valid_only, valid_ignored, instance, timeout)
        )
    except GatewayConnectionError as e:
        error_console.print(f"[red]Error:[/red] failed to connect to database: {escape(e.message)}")
        raise typer.Exit(code=EXIT_ERROR)
    except PgDoctorError as e:
        logger.debug("Run aborted: %s", e.to_dict())
        error_console.print(f"[red]Error:[/red] {escape(e.message)}")
        raise typer.Exit(code=EXIT_ERROR)

    if output == OutputFormat.json:
        console.print_json(data=reports_to_json(reports))
    else:
        render_text(console, reports, redact_dsn(dsn), detail=detail, hide_passing=hide_passing)

    if max_severity(reports) == Severity.FAIL:
        raise typer.Exit(code=EXIT_FAIL)


@app.command("list")
def list_checks(
    category: Annotated[
        Optional[Category],
        typer.Option("--category", "-c", help="Only show checks in this category"),
    ] = None,
) -> None:
    """List all available checks, grouped by category."""
    grouped: dict[str, list[tuple[str, str, str]]] = {}
    for package in ALL_CHECKS:
        meta = package.metadata()
        if category is not None and meta.category != category:
            continue
        grouped.setdefault(meta.category.value, []).append(
            (meta.check_id, meta.name, meta.description)
        )

    if not grouped:
        console.print(f"No checks in category {category.value if category else ''}")
        return

    table = Table()
    table.add_column("Category", style="bold")
    table.add_column("Check ID", style="cyan", no_wrap=True)
    table.add_column("Name")
    table.add_column("Description")

    for cat in sorted(grouped):
        for check_id, name, description in grouped[cat]:
            table.add_row(cat, check_id, name, description)

    console.print(table)


@app.command("filters")
def filters() -> None:
    """Print every valid --only/--ignore token, one per line."""
    for token in all_filters():
        typer.echo(token)


@app.command("explain")
def explain(
    check_id: Annotated[str, typer.Argument(help="Check ID, e.g. partition-usage")],
    show_sql: Annotated[
        bool,
        typer.Option("--sql/--no-sql", help="Include the SQL the check runs"),
    ] = False,
) -> None:
    """Show what a check looks for and how to fix what it reports."""
    package = find_check(check_id)
    if package is None:
        error_console.print(f"[red]Error:[/red] unknown check: {escape(check_id)}")
        error_console.print(f"[dim]Valid checks: {', '.join(p.check_id for p in ALL_CHECKS)}[/dim]")
        raise typer.Exit(code=EXIT_ERROR)

    meta = package.metadata()
    console.print(Panel(
        escape(meta.readme.strip() or meta.description),
        title=f"{escape(meta.name)} ({meta.category.value}/{meta.check_id})",
        border_style="cyan",
    ))
    if show_sql and meta.sql:
        console.print("[bold]SQL:[/bold]")
        console.print(escape(meta.sql.strip()))


if __name__ == "__main__":
    app()
