"""Core check types: severities, findings, reports and the Checker base class."""

from pgdoctor.check.base import Checker
from pgdoctor.check.instance import InstanceMetadata
from pgdoctor.check.models import (
    Category,
    CheckMetadata,
    Finding,
    Report,
    Severity,
    Table,
    TableRow,
    max_severity,
)

__all__ = [
    "Category",
    "CheckMetadata",
    "Checker",
    "Finding",
    "InstanceMetadata",
    "Report",
    "Severity",
    "Table",
    "TableRow",
    "max_severity",
]
