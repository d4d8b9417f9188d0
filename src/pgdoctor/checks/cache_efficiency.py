"""Database-wide buffer cache hit ratio."""

from __future__ import annotations

from typing import Protocol

from pgdoctor.check.base import Checker
from pgdoctor.check.formatting import format_number
from pgdoctor.check.models import Category, CheckMetadata, Finding, Report, Severity
from pgdoctor.db.queries import DATABASE_CACHE_EFFICIENCY_SQL
from pgdoctor.db.rows import CacheEfficiencyRow

CACHE_WARN_THRESHOLD = 95.0

FINDING_ID = "cache-hit-ratio"
FINDING_NAME = "Cache Hit Ratio"

README = """\
The share of block requests served from shared_buffers instead of disk.
OLTP workloads should stay above 95%. A lower ratio usually means the
working set no longer fits in memory or a few queries scan large tables.
"""


class CacheEfficiencyQueries(Protocol):
    async def database_cache_efficiency(self) -> CacheEfficiencyRow: ...


def metadata() -> CheckMetadata:
    return CheckMetadata(
        check_id="cache-efficiency",
        name="Cache Efficiency",
        category=Category.PERFORMANCE,
        description="Analyzes database-wide buffer cache hit ratio",
        sql=DATABASE_CACHE_EFFICIENCY_SQL,
        readme=README,
    )


class CacheEfficiencyChecker(Checker):
    queries: CacheEfficiencyQueries

    def metadata(self) -> CheckMetadata:
        return metadata()

    async def check(self) -> Report:
        report = self.new_report()
        row = await self.queries.database_cache_efficiency()
        report.add_finding(cache_hit_ratio_finding(row))
        return report


def cache_hit_ratio_finding(row: CacheEfficiencyRow) -> Finding:
    if row.cache_hit_ratio is None:
        return Finding(
            id=FINDING_ID,
            name=FINDING_NAME,
            severity=Severity.OK,
            details="Insufficient cache activity data (no blocks read or hit)",
        )

    ratio = row.cache_hit_ratio
    if ratio >= CACHE_WARN_THRESHOLD:
        return Finding(
            id=FINDING_ID,
            name=FINDING_NAME,
            severity=Severity.OK,
            details=f"Cache hit ratio: {ratio:.2f}% (healthy)",
        )

    return Finding(
        id=FINDING_ID,
        name=FINDING_NAME,
        severity=Severity.WARN,
        details=(
            f"Cache hit ratio: {ratio:.2f}% (below threshold)\n"
            f"Blocks hit: {format_number(row.blks_hit)}\n"
            f"Blocks read from disk: {format_number(row.blks_read)}"
        ),
    )
