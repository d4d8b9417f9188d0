"""
Data models for check output.

A check produces one Report; a Report holds an ordered list of Findings.
Findings are immutable (frozen=True) and serializable. A Report is built up
through add_finding() by its check and should be treated as read-only once
the check returns it.
"""

from __future__ import annotations

from enum import Enum, IntEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class Severity(IntEnum):
    """
    Health level of a finding or report.

    Totally ordered: OK < WARN < FAIL, so max() always picks the worse one.
    """

    OK = 0
    WARN = 1
    FAIL = 2

    @property
    def label(self) -> str:
        """Short label used by text and JSON output."""
        return _SEVERITY_LABELS[self]


_SEVERITY_LABELS = {
    Severity.OK: "pass",
    Severity.WARN: "warn",
    Severity.FAIL: "fail",
}


class Category(str, Enum):
    """Check categories, usable as filter tokens."""

    INDEXES = "indexes"
    CONFIGS = "configs"
    VACUUM = "vacuum"
    SCHEMA = "schema"
    PERFORMANCE = "performance"
    PATTERNS = "patterns"


class CheckMetadata(BaseModel):
    """
    Static description of a check.

    Produced by each check module's parameterless metadata() function and
    never mutated.

    Attributes:
        check_id: Unique identifier, kebab-case (e.g. "partition-usage").
        name: Human-readable name.
        category: Category the check belongs to.
        description: One-line description for listings.
        sql: Reference SQL the check runs.
        readme: Longer documentation text.
    """

    model_config = ConfigDict(frozen=True)

    check_id: str = Field(..., min_length=1, description="Unique kebab-case check ID")
    name: str = Field(..., min_length=1, description="Human-readable check name")
    category: Category = Field(..., description="Check category")
    description: str = Field(default="", description="One-line description")
    sql: str = Field(default="", description="Reference SQL used by the check")
    readme: str = Field(default="", description="Documentation text")


class TableRow(BaseModel):
    """One row of tabular finding data, with its own severity."""

    model_config = ConfigDict(frozen=True)

    cells: tuple[str, ...] = Field(default_factory=tuple)
    severity: Severity = Severity.OK


class Table(BaseModel):
    """Optional structured tabular data attached to a finding."""

    model_config = ConfigDict(frozen=True)

    headers: tuple[str, ...] = Field(default_factory=tuple)
    rows: tuple[TableRow, ...] = Field(default_factory=tuple)


class Finding(BaseModel):
    """
    One atomic observation within a check's Report.

    Keep multiple findings in one report when they are closely related and
    usually examined together.

    Attributes:
        id: Identifier of this finding, unique within its report (kebab-case).
        name: Human-readable name.
        severity: Health level of this observation.
        details: Human-readable explanation.
        table: Optional tabular data (rows carry their own severity).
        debug: Optional debug payload, shown only at the debug detail level.

    Example:
        Finding(
            id="high-seq-scan-ratio",
            name="High Sequential Scan Ratio",
            severity=Severity.WARN,
            details="Found 1 partitioned table(s) with high sequential scan ratio",
        )
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1, description="Finding ID, unique within a report")
    name: str = Field(..., min_length=1, description="Human-readable name")
    severity: Severity = Field(..., description="Severity of the finding")
    details: str = Field(default="", description="Human-readable details")
    table: Table | None = Field(default=None, description="Optional tabular data")
    debug: str = Field(default="", description="Debug payload")


class Report(BaseModel):
    """
    Full output of one check: its metadata, overall severity and findings.

    The overall severity is always the maximum severity across findings,
    OK when there are none. add_finding() is the only way to change it.
    """

    metadata: CheckMetadata
    severity: Severity = Severity.OK
    findings: list[Finding] = Field(default_factory=list)

    @classmethod
    def new(cls, metadata: CheckMetadata) -> "Report":
        """Create an empty report that starts at OK."""
        return cls(metadata=metadata)

    def add_finding(self, finding: Finding) -> None:
        """Append a finding and raise the report severity if needed."""
        self.findings.append(finding)
        if finding.severity > self.severity:
            self.severity = finding.severity

    @property
    def check_id(self) -> str:
        return self.metadata.check_id

    @property
    def name(self) -> str:
        return self.metadata.name

    @property
    def category(self) -> Category:
        return self.metadata.category

    @property
    def description(self) -> str:
        return self.metadata.description

    @property
    def sql(self) -> str:
        return self.metadata.sql

    def findings_by_severity(self, severity: Severity) -> list[Finding]:
        """Get all findings of a specific severity."""
        return [f for f in self.findings if f.severity == severity]

    def get_finding(self, finding_id: str) -> Finding | None:
        """Get the first finding with the given ID, if any."""
        for finding in self.findings:
            if finding.id == finding_id:
                return finding
        return None

    def to_dict(self) -> dict[str, Any]:
        """Serialize using severity labels, omitting empty optional fields."""
        results: list[dict[str, Any]] = []
        for finding in self.findings:
            entry: dict[str, Any] = {
                "id": finding.id,
                "name": finding.name,
                "severity": finding.severity.label,
            }
            if finding.details:
                entry["details"] = finding.details
            if finding.table is not None:
                entry["table"] = {
                    "headers": list(finding.table.headers),
                    "rows": [
                        {"cells": list(row.cells), "severity": row.severity.label}
                        for row in finding.table.rows
                    ],
                }
            results.append(entry)

        return {
            "check_id": self.check_id,
            "name": self.name,
            "category": self.category.value,
            "severity": self.severity.label,
            "results": results,
        }


def max_severity(reports: list[Report]) -> Severity:
    """Worst severity across a run, OK for an empty run."""
    return max((r.severity for r in reports), default=Severity.OK)
