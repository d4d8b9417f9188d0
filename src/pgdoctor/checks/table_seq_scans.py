"""
Tables read mostly through sequential scans.

A table that already has indexes but is still scanned sequentially far
more often than through an index is usually missing the right index for
its hottest queries. Small tables are ignored: scanning them is cheap.
"""

from __future__ import annotations

from typing import Protocol

from pgdoctor.check.base import Checker
from pgdoctor.check.models import Category, CheckMetadata, Finding, Report, Severity
from pgdoctor.db.queries import HIGH_SEQ_SCAN_TABLES_SQL
from pgdoctor.db.rows import SeqScanTableRow

WARN_ROW_THRESHOLD = 10_000
WARN_RATIO_THRESHOLD = 10.0
FAIL_ROW_THRESHOLD = 50_000
FAIL_RATIO_THRESHOLD = 50.0

# Stands in for an undefined ratio (no index scans yet).
UNDEFINED_RATIO = 999_999.0

MAX_LISTED_TABLES = 10

README = """\
Compares seq_scan to idx_scan from pg_stat_user_tables for tables that
have at least one index.

- warn: >= 10,000 estimated rows and seq/idx ratio >= 10
- fail: >= 50,000 estimated rows and seq/idx ratio >= 50

Use pg_stat_statements to find the statements responsible, then
EXPLAIN them to see which predicate lacks an index.
"""


class TableSeqScansQueries(Protocol):
    async def high_seq_scan_tables(self) -> list[SeqScanTableRow]: ...


def metadata() -> CheckMetadata:
    return CheckMetadata(
        check_id="table-seq-scans",
        name="Table Sequential Scans",
        category=Category.PERFORMANCE,
        description="Identifies tables with excessive sequential scans that may benefit from indexes",
        sql=HIGH_SEQ_SCAN_TABLES_SQL,
        readme=README,
    )


class TableSeqScansChecker(Checker):
    queries: TableSeqScansQueries

    def metadata(self) -> CheckMetadata:
        return metadata()

    async def check(self) -> Report:
        report = self.new_report()
        rows = await self.queries.high_seq_scan_tables()

        if not rows:
            report.add_finding(Finding(
                id=report.check_id,
                name=report.name,
                severity=Severity.OK,
            ))
            return report

        check_high_seq_scans(rows, report)
        return report


def _describe(row: SeqScanTableRow, ratio: float) -> str:
    size_mb = row.table_size_bytes / (1024 * 1024)
    return (
        f"{row.table_name} (seq: {row.seq_scan}, idx: {row.idx_scan}, "
        f"ratio: {ratio:.1f}, rows: {row.estimated_rows}, size: {size_mb:.1f} MB)"
    )


def _details(header: str, count: int, listed: list[str]) -> str:
    details = f"Found {count} tables with {header}:\n" + "\n".join(listed)
    if count > len(listed):
        details += f"\n... and {count - len(listed)} more"
    return details


def check_high_seq_scans(rows: list[SeqScanTableRow], report: Report) -> None:
    fail_tables: list[str] = []
    warn_tables: list[str] = []
    fail_count = 0
    warn_count = 0

    for row in rows:
        if row.index_count == 0:
            continue

        ratio = row.seq_to_idx_ratio if row.seq_to_idx_ratio is not None else UNDEFINED_RATIO

        if row.estimated_rows >= FAIL_ROW_THRESHOLD and ratio >= FAIL_RATIO_THRESHOLD:
            fail_count += 1
            if len(fail_tables) < MAX_LISTED_TABLES:
                fail_tables.append(_describe(row, ratio))
        elif row.estimated_rows >= WARN_ROW_THRESHOLD and ratio >= WARN_RATIO_THRESHOLD:
            warn_count += 1
            if len(warn_tables) < MAX_LISTED_TABLES:
                warn_tables.append(_describe(row, ratio))

    if fail_count:
        report.add_finding(Finding(
            id="high-seq-scans",
            name="High Sequential Scans",
            severity=Severity.FAIL,
            details=_details("very high sequential scan ratios", fail_count, fail_tables),
        ))

    if warn_count:
        report.add_finding(Finding(
            id="moderate-seq-scans",
            name="Moderate Sequential Scans",
            severity=Severity.WARN,
            details=_details("elevated sequential scan ratios", warn_count, warn_tables),
        ))

    if not fail_count and not warn_count:
        report.add_finding(Finding(
            id="high-seq-scans",
            name="High Sequential Scans",
            severity=Severity.OK,
        ))
