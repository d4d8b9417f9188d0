"""Indexes left invalid by a failed CREATE INDEX CONCURRENTLY or REINDEX."""

from __future__ import annotations

from typing import Protocol

from pgdoctor.check.base import Checker
from pgdoctor.check.models import Category, CheckMetadata, Finding, Report, Severity
from pgdoctor.db.queries import BROKEN_INDEXES_SQL
from pgdoctor.db.rows import BrokenIndexRow

README = """\
An index whose build failed part-way stays in the catalog with
indisvalid = false. It is still maintained on every write but never
used by the planner. Drop it and rebuild with CREATE INDEX CONCURRENTLY.
"""


class InvalidIndexesQueries(Protocol):
    async def broken_indexes(self) -> list[BrokenIndexRow]: ...


def metadata() -> CheckMetadata:
    return CheckMetadata(
        check_id="invalid-indexes",
        name="Invalid Indexes",
        category=Category.INDEXES,
        description="Identifies indexes in invalid state that need rebuilding",
        sql=BROKEN_INDEXES_SQL,
        readme=README,
    )


class InvalidIndexesChecker(Checker):
    queries: InvalidIndexesQueries

    def metadata(self) -> CheckMetadata:
        return metadata()

    async def check(self) -> Report:
        report = self.new_report()
        invalid = await self.queries.broken_indexes()

        if not invalid:
            report.add_finding(Finding(
                id=report.check_id,
                name=report.name,
                severity=Severity.OK,
            ))
            return report

        lines = [f"{idx.schema_name}.{idx.table_name}\t{idx.index_name}" for idx in invalid]
        report.add_finding(Finding(
            id=report.check_id,
            name=report.name,
            severity=Severity.WARN,
            details=f"There are {len(invalid)} invalid indexes.\n" + "\n".join(lines),
        ))
        return report
