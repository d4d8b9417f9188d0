"""
Report rendering for the CLI.

Text output groups reports by category and prints them with rich;
JSON output is a list of report dicts using severity labels.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from rich.console import Console
from rich.markup import escape
from rich.table import Table as RichTable

from pgdoctor.check.models import Finding, Report, Severity, Table

MAX_ROWS_BRIEF = 10


class DetailLevel(str, Enum):
    """How much of each report the text output shows."""

    summary = "summary"
    brief = "brief"
    verbose = "verbose"
    debug = "debug"


class OutputFormat(str, Enum):
    text = "text"
    json = "json"


SEVERITY_STYLES = {
    Severity.OK: "green",
    Severity.WARN: "yellow",
    Severity.FAIL: "red bold",
}


def severity_tag(severity: Severity) -> str:
    """Rich markup for a [PASS]/[WARN]/[FAIL] tag."""
    style = SEVERITY_STYLES[severity]
    label = "PASS" if severity == Severity.OK else severity.label.upper()
    return f"[{style}]\\[{label}][/{style}]"


def reports_to_json(reports: list[Report]) -> list[dict[str, Any]]:
    return [report.to_dict() for report in reports]


def _indent(text: str, spaces: int) -> str:
    pad = " " * spaces
    return "\n".join(pad + line if line else line for line in text.split("\n"))


def _render_table(console: Console, table: Table, detail: DetailLevel) -> None:
    if not table.rows:
        return

    rows = table.rows
    truncated = detail == DetailLevel.brief and len(rows) > MAX_ROWS_BRIEF
    if truncated:
        rows = rows[:MAX_ROWS_BRIEF]

    rich_table = RichTable(show_edge=False, pad_edge=False, box=None, padding=(0, 2, 0, 2))
    for header in table.headers:
        rich_table.add_column(escape(header), style=None, no_wrap=True)
    for row in rows:
        rich_table.add_row(*(escape(cell) for cell in row.cells), style=SEVERITY_STYLES[row.severity])

    console.print(rich_table)

    if truncated:
        console.print(
            f"  [dim](showing {MAX_ROWS_BRIEF} of {len(table.rows)} rows, "
            "use --detail verbose to see all)[/dim]"
        )


def _render_finding(
    console: Console, report: Report, finding: Finding, detail: DetailLevel
) -> None:
    full_id = report.check_id
    if finding.id != report.check_id:
        full_id = f"{report.check_id}/{finding.id}"

    console.print(
        f"{severity_tag(finding.severity)} {escape(finding.name)} [dim]({escape(full_id)})[/dim]"
    )

    if finding.severity != Severity.OK and finding.details:
        console.print(escape(_indent(finding.details, 2)))

    if finding.table is not None:
        console.print()
        _render_table(console, finding.table, detail)

    if detail == DetailLevel.debug and finding.debug:
        console.print()
        console.print("  Debug:")
        console.print(escape(_indent(finding.debug, 4)))


def _render_report(console: Console, report: Report, detail: DetailLevel) -> None:
    tag = severity_tag(report.severity)

    if detail == DetailLevel.summary:
        ok_count = len(report.findings_by_severity(Severity.OK))
        console.print(
            f"{tag} {escape(report.name)} [dim]({escape(report.check_id)}) "
            f"({ok_count}/{len(report.findings)})[/dim]"
        )
        return

    # A lone finding named after the check is the check's own header.
    lone = len(report.findings) == 1 and report.findings[0].id == report.check_id
    if not lone:
        console.print(f"{tag} {escape(report.name)} [dim]({escape(report.check_id)})[/dim]")

    for finding in sorted(report.findings, key=lambda f: (f.severity, f.name)):
        _render_finding(console, report, finding, detail)

    if detail == DetailLevel.debug and report.sql:
        console.print()
        console.print("  Query:")
        console.print(escape(_indent(report.sql.strip(), 4)))


def _render_summary(console: Console, reports: list[Report]) -> None:
    counts = {severity: 0 for severity in Severity}
    for report in reports:
        counts[report.severity] += 1

    parts = []
    if counts[Severity.FAIL]:
        parts.append(f"[red bold]{counts[Severity.FAIL]} failures[/red bold]")
    if counts[Severity.WARN]:
        parts.append(f"[yellow]{counts[Severity.WARN]} warnings[/yellow]")
    if counts[Severity.OK]:
        parts.append(f"[green]{counts[Severity.OK]} passed[/green]")

    console.rule(style="dim")
    console.print(f"Summary: {', '.join(parts) if parts else 'no checks run'}")
    console.print()


def render_text(
    console: Console,
    reports: list[Report],
    target: str,
    detail: DetailLevel = DetailLevel.summary,
    hide_passing: bool = False,
) -> None:
    """Print reports grouped by category, worst first within each category."""
    console.print(f"[bold]Database Health Check:[/bold] {escape(target)}\n")

    grouped: dict[str, list[Report]] = {}
    for report in reports:
        grouped.setdefault(report.category.value, []).append(report)

    for category in sorted(grouped):
        category_reports = sorted(
            grouped[category], key=lambda r: (-r.severity, r.check_id)
        )
        visible = [
            r for r in category_reports
            if not (hide_passing and r.severity == Severity.OK)
        ]
        if not visible:
            continue

        console.print(f"[bold]{category.upper()}[/bold]")
        console.print("─" * len(category))
        for report in visible:
            _render_report(console, report, detail)
        console.print()

    _render_summary(console, reports)

    if detail == DetailLevel.summary:
        console.print("[dim]To see details: pgdoctor run ... --detail brief[/dim]")
        console.print("[dim]To see how to fix: pgdoctor explain <check-id>[/dim]")
