"""PostgreSQL major version support status."""

from __future__ import annotations

from typing import Protocol

from pgdoctor.check.base import Checker
from pgdoctor.check.models import Category, CheckMetadata, Finding, Report, Severity
from pgdoctor.db.queries import PG_VERSION_SQL
from pgdoctor.db.rows import PGVersionRow

MIN_SUPPORTED_MAJOR = 14
RECOMMENDED_MAJOR = 15

README = """\
PostgreSQL major versions are supported for five years. Versions below 15
are approaching or past end of life and miss planner, vacuum and
partitioning improvements.

- pass: major version 15 or newer
- warn: major version 14
- fail: major version 13 or older
"""


class VersionQueries(Protocol):
    async def pg_version(self) -> PGVersionRow: ...


def metadata() -> CheckMetadata:
    return CheckMetadata(
        check_id="pg-version",
        name="PostgreSQL Version",
        category=Category.CONFIGS,
        description="Checks if PostgreSQL version is supported and up to date",
        sql=PG_VERSION_SQL,
        readme=README,
    )


class PGVersionChecker(Checker):
    queries: VersionQueries

    def metadata(self) -> CheckMetadata:
        return metadata()

    async def check(self) -> Report:
        report = self.new_report()
        version = await self.queries.pg_version()

        major = version.major
        if major <= 0 and self.instance is not None and self.instance.engine_version_major:
            major = self.instance.engine_version_major

        if major >= RECOMMENDED_MAJOR:
            report.add_finding(Finding(
                id=report.check_id,
                name=report.name,
                severity=Severity.OK,
                details=f"Running PostgreSQL {version.version}",
            ))
            return report

        severity = Severity.FAIL if major < MIN_SUPPORTED_MAJOR else Severity.WARN
        report.add_finding(Finding(
            id=report.check_id,
            name=report.name,
            severity=severity,
            details=(
                f"Running PostgreSQL {major} which is approaching end of life. "
                "Upgrade to version 17+ recommended."
            ),
        ))
        return report
