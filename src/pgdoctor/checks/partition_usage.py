"""
Partition key usage.

Flags partitioned tables whose recorded workload does not filter on the
partition key, so the planner cannot prune partitions. Three analyses
share one report:

- high-seq-scan-ratio: child partitions scanned sequentially far more
  often than through an index (needs only catalog statistics)
- partition-key-unused: pg_stat_statements entries touching the table
  whose WHERE clause never mentions a key column
- join-missing-partition-key: JOINs touching the table where no key
  column appears after FROM

Query text is inspected lexically (see pgdoctor.checks.query_text).
"""

from __future__ import annotations

import logging
from typing import Protocol

from pgdoctor.check.base import Checker
from pgdoctor.check.formatting import format_duration_ms, format_number
from pgdoctor.check.models import (
    Category,
    CheckMetadata,
    Finding,
    Report,
    Severity,
    Table,
    TableRow,
)
from pgdoctor.checks.query_text import (
    query_has_join,
    query_references_table,
    query_uses_partition_key,
    query_uses_partition_key_after_from,
)
from pgdoctor.db.queries import (
    PARTITIONED_TABLES_WITH_KEYS_SQL,
    QUERY_STATS_FROM_STAT_STATEMENTS_SQL,
)
from pgdoctor.db.rows import PartitionedTable, QueryStatistic

logger = logging.getLogger(__name__)

MIN_CALLS_WARN = 100
MIN_CALLS_FAIL = 1000
TOTAL_EXEC_TIME_WARN_MS = 300_000.0  # 5 minutes
TOTAL_EXEC_TIME_FAIL_MS = 3_600_000.0  # 1 hour

MIN_SEQ_SCANS_WARN = 1000
SEQ_TO_IDX_RATIO_WARN = 10
SEQ_TO_IDX_RATIO_FAIL = 100

MAX_EXAMPLE_QUERIES = 3

FINDING_KEY_UNUSED = "partition-key-unused"
FINDING_EXTENSION_UNAVAILABLE = "extension-unavailable"
FINDING_HIGH_SEQ_SCAN_RATIO = "high-seq-scan-ratio"
FINDING_JOIN_MISSING_KEY = "join-missing-partition-key"

_KEY_USAGE_NAME = "Partition Key Usage Analysis"

README = """\
Partitioning only pays off when queries let the planner prune partitions.
A query on a partitioned table that does not constrain the partition key
scans every partition, which gets slower as partitions accumulate.

This check reads pg_stat_statements and reports, per partitioned table,
the frequent or expensive statements that do not filter or join on the
partition key. It also reports partitioned tables whose partitions are
read mostly through sequential scans.

Severity:
- warn: at least one statement with >= 100 calls or >= 5 minutes total
  execution time misses the key
- fail: missing statements add up to >= 1000 calls or >= 1 hour

The analysis is a text heuristic. Expression partition keys are skipped.
"""


class PartitionUsageQueries(Protocol):
    async def has_pg_stat_statements(self) -> bool: ...

    async def partitioned_tables_with_keys(self) -> list[PartitionedTable]: ...

    async def query_stats_from_stat_statements(self) -> list[QueryStatistic]: ...


def metadata() -> CheckMetadata:
    return CheckMetadata(
        check_id="partition-usage",
        name="Partition Key Usage",
        category=Category.PERFORMANCE,
        description="Detects queries on partitioned tables that don't use partition keys",
        sql=PARTITIONED_TABLES_WITH_KEYS_SQL + "\n" + QUERY_STATS_FROM_STAT_STATEMENTS_SQL,
        readme=README,
    )


class PartitionUsageChecker(Checker):
    """Runs the three partition analyses against one gateway."""

    queries: PartitionUsageQueries

    def metadata(self) -> CheckMetadata:
        return metadata()

    async def check(self) -> Report:
        report = self.new_report()

        tables = await self.queries.partitioned_tables_with_keys()
        if not tables:
            report.add_finding(Finding(
                id=FINDING_KEY_UNUSED,
                name=_KEY_USAGE_NAME,
                severity=Severity.OK,
                details="No partitioned tables found",
            ))
            return report

        check_sequential_scans(tables, report)

        if not await self.queries.has_pg_stat_statements():
            report.add_finding(Finding(
                id=FINDING_EXTENSION_UNAVAILABLE,
                name="pg_stat_statements Extension Not Available",
                severity=Severity.WARN,
                details=(
                    f"Found {len(tables)} partitioned table(s) but cannot analyze "
                    "query patterns without pg_stat_statements extension"
                ),
            ))
            return report

        stats = await self.queries.query_stats_from_stat_statements()
        logger.debug(
            "Analyzing %d statements against %d partitioned tables",
            len(stats),
            len(tables),
        )

        if not stats:
            report.add_finding(Finding(
                id=FINDING_KEY_UNUSED,
                name=_KEY_USAGE_NAME,
                severity=Severity.OK,
                details="No query statistics available (pg_stat_statements may be empty)",
            ))
            return report

        check_partition_key_usage(tables, stats, report)
        check_joins_missing_partition_key(tables, stats, report)
        return report


def _analyzable(table: PartitionedTable) -> bool:
    """Expression keys and unknown keys are skipped."""
    return not table.has_expression_key and bool(table.partition_key_columns)


def _is_significant(stat: QueryStatistic) -> bool:
    return stat.calls >= MIN_CALLS_WARN or stat.total_exec_time >= TOTAL_EXEC_TIME_WARN_MS


def _problem_severity(total_calls: int, total_exec_time: float) -> Severity:
    if total_calls >= MIN_CALLS_FAIL or total_exec_time >= TOTAL_EXEC_TIME_FAIL_MS:
        return Severity.FAIL
    return Severity.WARN


def _example(table: PartitionedTable, stat: QueryStatistic) -> str:
    return (
        f"Table: {table.qualified_name} (partition key: {table.partition_key_columns}, "
        f"{table.partition_count} partitions)\n"
        f"  Example query ({stat.calls} calls, {format_duration_ms(stat.total_exec_time)} total):\n"
        f"    {stat.query}"
    )


def check_partition_key_usage(
    tables: list[PartitionedTable],
    stats: list[QueryStatistic],
    report: Report,
) -> None:
    """Add the partition-key-unused finding (always emitted)."""
    rows: list[TableRow] = []
    examples: list[str] = []

    for table in tables:
        if not _analyzable(table):
            continue

        keys = table.partition_keys
        problem_count = 0
        total_calls = 0
        total_exec_time = 0.0
        example: str | None = None

        for stat in stats:
            text = stat.query.lower()
            if not query_references_table(text, table.schema_name, table.table_name):
                continue
            if query_uses_partition_key(text, keys) or not _is_significant(stat):
                continue

            problem_count += 1
            total_calls += stat.calls
            total_exec_time += stat.total_exec_time
            if example is None:
                example = _example(table, stat)

        if problem_count == 0:
            continue

        rows.append(TableRow(
            cells=(
                table.qualified_name,
                table.partition_key_columns or "",
                str(table.partition_count),
                str(problem_count),
                str(total_calls),
                format_duration_ms(total_exec_time),
            ),
            severity=_problem_severity(total_calls, total_exec_time),
        ))
        if example is not None and len(examples) < MAX_EXAMPLE_QUERIES:
            examples.append(example)

    if not rows:
        report.add_finding(Finding(
            id=FINDING_KEY_UNUSED,
            name=_KEY_USAGE_NAME,
            severity=Severity.OK,
            details=(
                f"All queries on {len(tables)} partitioned table(s) "
                "properly use partition keys"
            ),
        ))
        return

    report.add_finding(Finding(
        id=FINDING_KEY_UNUSED,
        name=_KEY_USAGE_NAME,
        severity=max(row.severity for row in rows),
        details=f"Found {len(rows)} partitioned table(s) with queries not using partition key",
        table=Table(
            headers=(
                "Table",
                "Partition Key",
                "Partitions",
                "Problem Queries",
                "Total Calls",
                "Total Time",
            ),
            rows=tuple(rows),
        ),
        debug="\n\n".join(examples),
    ))


def check_joins_missing_partition_key(
    tables: list[PartitionedTable],
    stats: list[QueryStatistic],
    report: Report,
) -> None:
    """Add the join-missing-partition-key finding, only when something is flagged."""
    rows: list[TableRow] = []

    for table in tables:
        if not _analyzable(table):
            continue

        keys = table.partition_keys
        problem_count = 0
        total_calls = 0
        total_exec_time = 0.0

        for stat in stats:
            text = stat.query.lower()
            if not query_has_join(text):
                continue
            if not query_references_table(text, table.schema_name, table.table_name):
                continue
            if query_uses_partition_key_after_from(text, keys) or not _is_significant(stat):
                continue

            problem_count += 1
            total_calls += stat.calls
            total_exec_time += stat.total_exec_time

        if problem_count == 0:
            continue

        rows.append(TableRow(
            cells=(
                table.qualified_name,
                table.partition_key_columns or "",
                str(problem_count),
                str(total_calls),
                format_duration_ms(total_exec_time),
            ),
            severity=_problem_severity(total_calls, total_exec_time),
        ))

    if not rows:
        return

    report.add_finding(Finding(
        id=FINDING_JOIN_MISSING_KEY,
        name="JOINs Missing Partition Key",
        severity=max(row.severity for row in rows),
        details=f"Found {len(rows)} partitioned table(s) with JOINs not using partition key",
        table=Table(
            headers=("Table", "Partition Key", "Problem JOINs", "Total Calls", "Total Time"),
            rows=tuple(rows),
        ),
    ))


def check_sequential_scans(tables: list[PartitionedTable], report: Report) -> None:
    """Add the high-seq-scan-ratio finding, only when something is flagged."""
    rows: list[TableRow] = []

    for table in tables:
        seq_scans = table.total_seq_scans
        idx_scans = table.total_idx_scans

        if seq_scans < MIN_SEQ_SCANS_WARN:
            continue

        # No index scans at all counts as a ratio equal to the seq scan count.
        ratio = seq_scans if idx_scans == 0 else seq_scans // idx_scans
        if ratio < SEQ_TO_IDX_RATIO_WARN:
            continue

        severity = Severity.FAIL if ratio >= SEQ_TO_IDX_RATIO_FAIL else Severity.WARN
        ratio_label = "∞ (no idx scans)" if idx_scans == 0 else f"{ratio}:1"

        rows.append(TableRow(
            cells=(
                table.qualified_name,
                format_number(seq_scans),
                format_number(idx_scans),
                ratio_label,
            ),
            severity=severity,
        ))

    if not rows:
        return

    report.add_finding(Finding(
        id=FINDING_HIGH_SEQ_SCAN_RATIO,
        name="High Sequential Scan Ratio",
        severity=max(row.severity for row in rows),
        details=f"Found {len(rows)} partitioned table(s) with high sequential scan ratio",
        table=Table(
            headers=("Table", "Seq Scans", "Idx Scans", "Ratio"),
            rows=tuple(rows),
        ),
    ))
