"""Tests for report models, instance metadata, formatting and exceptions."""

import pytest
from pydantic import ValidationError

from pgdoctor.check.formatting import format_bytes, format_duration_ms, format_number
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
from pgdoctor.exceptions import (
    CheckError,
    CheckTimeoutError,
    ConfigurationError,
    PgDoctorError,
    QueryError,
)


def make_metadata(check_id: str = "demo-check") -> CheckMetadata:
    return CheckMetadata(
        check_id=check_id,
        name="Demo Check",
        category=Category.PERFORMANCE,
        description="A check used in tests",
        sql="SELECT 1",
    )


def make_finding(severity: Severity, finding_id: str = "f1", **kwargs) -> Finding:
    return Finding(id=finding_id, name="Demo finding", severity=severity, **kwargs)


class TestSeverity:
    """Tests for severity ordering and labels."""

    def test_ordering(self):
        assert Severity.OK < Severity.WARN < Severity.FAIL

    def test_labels(self):
        assert Severity.OK.label == "pass"
        assert Severity.WARN.label == "warn"
        assert Severity.FAIL.label == "fail"


class TestReport:
    """Tests for the severity aggregation of a Report."""

    def test_new_report_is_ok(self):
        report = Report.new(make_metadata())
        assert report.severity == Severity.OK
        assert report.findings == []

    def test_severity_raised_to_max(self):
        """Severity follows the worst finding regardless of order."""
        report = Report.new(make_metadata())
        report.add_finding(make_finding(Severity.WARN, "a"))
        report.add_finding(make_finding(Severity.FAIL, "b"))
        report.add_finding(make_finding(Severity.OK, "c"))

        assert report.severity == Severity.FAIL
        assert [f.id for f in report.findings] == ["a", "b", "c"]

    def test_severity_never_lowered(self):
        report = Report.new(make_metadata())
        report.add_finding(make_finding(Severity.WARN, "a"))
        report.add_finding(make_finding(Severity.OK, "b"))
        assert report.severity == Severity.WARN

    def test_metadata_accessors(self):
        report = Report.new(make_metadata())
        assert report.check_id == "demo-check"
        assert report.name == "Demo Check"
        assert report.category == Category.PERFORMANCE
        assert report.sql == "SELECT 1"

    def test_findings_by_severity_and_lookup(self):
        report = Report.new(make_metadata())
        report.add_finding(make_finding(Severity.WARN, "a"))
        report.add_finding(make_finding(Severity.OK, "b"))

        assert [f.id for f in report.findings_by_severity(Severity.WARN)] == ["a"]
        assert report.get_finding("b").severity == Severity.OK
        assert report.get_finding("missing") is None

    def test_findings_are_frozen(self):
        finding = make_finding(Severity.OK)
        with pytest.raises(ValidationError):
            finding.severity = Severity.FAIL

    def test_to_dict(self):
        """Serialization uses labels and omits empty optional fields."""
        report = Report.new(make_metadata())
        report.add_finding(make_finding(Severity.OK, "plain"))
        report.add_finding(make_finding(
            Severity.WARN,
            "tabled",
            details="one table",
            table=Table(
                headers=("Table", "Count"),
                rows=(TableRow(cells=("public.t", "3"), severity=Severity.WARN),),
            ),
            debug="not serialized",
        ))

        data = report.to_dict()
        assert data["check_id"] == "demo-check"
        assert data["category"] == "performance"
        assert data["severity"] == "warn"
        assert data["results"][0] == {"id": "plain", "name": "Demo finding", "severity": "pass"}
        assert data["results"][1]["details"] == "one table"
        assert data["results"][1]["table"] == {
            "headers": ["Table", "Count"],
            "rows": [{"cells": ["public.t", "3"], "severity": "warn"}],
        }
        assert "debug" not in data["results"][1]


class TestMaxSeverity:
    def test_empty_run_is_ok(self):
        assert max_severity([]) == Severity.OK

    def test_worst_report_wins(self):
        ok = Report.new(make_metadata("a"))
        failing = Report.new(make_metadata("b"))
        failing.add_finding(make_finding(Severity.FAIL))
        assert max_severity([ok, failing]) == Severity.FAIL


class TestInstanceMetadata:
    """Tests for engine version parsing."""

    def test_major_minor(self):
        meta = InstanceMetadata.from_engine_version("15.4", vcpu_cores=4)
        assert meta.engine_version_major == 15
        assert meta.engine_version_minor == 4
        assert meta.vcpu_cores == 4

    def test_major_only(self):
        meta = InstanceMetadata.from_engine_version("16")
        assert meta.engine_version_major == 16
        assert meta.engine_version_minor is None

    def test_unparseable(self):
        meta = InstanceMetadata.from_engine_version("aurora")
        assert meta.engine_version == "aurora"
        assert meta.engine_version_major is None

    def test_negative_memory_rejected(self):
        with pytest.raises(ValidationError):
            InstanceMetadata(memory_gb=-1)


class TestFormatting:
    """Tests for human-readable formatting helpers."""

    def test_format_number(self):
        assert format_number(1234567) == "1,234,567"
        assert format_number(12) == "12"

    @pytest.mark.parametrize(
        "n,expected",
        [(512, "512 B"), (1536, "1.5 KB"), (10 * 1024**2, "10.0 MB"), (3 * 1024**3, "3.0 GB")],
    )
    def test_format_bytes(self, n, expected):
        assert format_bytes(n) == expected

    @pytest.mark.parametrize(
        "ms,expected",
        [(250, "250ms"), (1500, "1.5s"), (300_000, "5.0m"), (5_400_000, "1.5h")],
    )
    def test_format_duration_ms(self, ms, expected):
        assert format_duration_ms(ms) == expected


class TestExceptions:
    """Tests for exception messages and chaining context."""

    def test_query_error_message(self):
        err = QueryError("pg_version", RuntimeError("boom"))
        assert err.message == "query pg_version failed: RuntimeError: boom"
        assert isinstance(err, PgDoctorError)

    def test_check_error_names_check(self):
        err = CheckError("configs", "pg-version", ValueError("bad"))
        assert "configs/pg-version" in err.message
        assert err.to_dict()["original_error_type"] == "ValueError"

    def test_timeout_error_is_check_error(self):
        err = CheckTimeoutError("vacuum", "vacuum-settings", 2.0, TimeoutError())
        assert isinstance(err, CheckError)
        assert err.message == "check vacuum/vacuum-settings timed out after 2s"
        assert err.to_dict()["timeout_seconds"] == 2.0

    def test_configuration_error_key(self):
        err = ConfigurationError("bad value", config_key="check_timeout_seconds")
        assert err.to_dict()["config_key"] == "check_timeout_seconds"
