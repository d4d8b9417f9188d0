"""Tests for filter validation, check selection and run orchestration."""

import asyncio

import pytest

from pgdoctor.check.base import Checker
from pgdoctor.check.models import Category, CheckMetadata, Finding, Report, Severity
from pgdoctor.exceptions import CheckError, CheckTimeoutError, QueryError
from pgdoctor.registry import ALL_CHECKS, CheckPackage, find_check
from pgdoctor.runner import all_filters, run, should_run_check, validate_filters


def make_package(
    check_id: str,
    category: Category = Category.PERFORMANCE,
    severity: Severity = Severity.OK,
    error: Exception | None = None,
    delay: float = 0.0,
    calls: list[str] | None = None,
) -> CheckPackage:
    """Build a CheckPackage around a scripted checker."""

    def metadata() -> CheckMetadata:
        return CheckMetadata(check_id=check_id, name=check_id.title(), category=category)

    class ScriptedChecker(Checker):
        def metadata(self) -> CheckMetadata:
            return metadata()

        async def check(self) -> Report:
            if calls is not None:
                calls.append(check_id)
            if delay:
                await asyncio.sleep(delay)
            if error is not None:
                raise error
            report = self.new_report()
            report.add_finding(Finding(id=check_id, name=check_id, severity=severity))
            return report

    return CheckPackage(metadata, ScriptedChecker)


class TestValidateFilters:
    """Tests for filter token validation."""

    def test_check_ids_and_categories(self):
        valid, invalid = validate_filters(ALL_CHECKS, ["pg-version", "performance"])
        assert valid == ["pg-version", "performance"]
        assert invalid == []

    def test_suffix_after_slash_dropped(self):
        """"check-id/anything" normalizes to the check ID."""
        valid, invalid = validate_filters(ALL_CHECKS, ["partition-usage/partition-key-unused"])
        assert valid == ["partition-usage"]
        assert invalid == []

    def test_duplicates_removed_in_order(self):
        valid, _ = validate_filters(ALL_CHECKS, ["vacuum", "pg-version/x", "vacuum", "pg-version"])
        assert valid == ["vacuum", "pg-version"]

    def test_invalid_returned_verbatim(self):
        valid, invalid = validate_filters(ALL_CHECKS, ["nope", "pg-version", "Bad/Token"])
        assert valid == ["pg-version"]
        assert invalid == ["nope", "Bad/Token"]

    def test_case_sensitive(self):
        _, invalid = validate_filters(ALL_CHECKS, ["PG-VERSION"])
        assert invalid == ["PG-VERSION"]

    def test_empty(self):
        assert validate_filters(ALL_CHECKS, []) == ([], [])


class TestAllFilters:
    def test_registry_filters(self):
        """Each check ID is followed by its category the first time it appears."""
        assert all_filters() == [
            "pg-version",
            "configs",
            "invalid-indexes",
            "indexes",
            "cache-efficiency",
            "performance",
            "table-seq-scans",
            "partition-usage",
            "vacuum-settings",
            "vacuum",
        ]

    def test_every_filter_validates(self):
        tokens = all_filters()
        valid, invalid = validate_filters(ALL_CHECKS, tokens)
        assert valid == tokens
        assert invalid == []


class TestShouldRunCheck:
    """Tests for check selection."""

    meta = CheckMetadata(check_id="pg-version", name="PG", category=Category.CONFIGS)

    def test_no_filters_selects_all(self):
        assert should_run_check(self.meta, [], [])

    def test_only_by_id_or_category(self):
        assert should_run_check(self.meta, ["pg-version"], [])
        assert should_run_check(self.meta, ["configs"], [])
        assert not should_run_check(self.meta, ["vacuum"], [])

    def test_ignored_wins_over_only(self):
        assert not should_run_check(self.meta, ["pg-version"], ["configs"])
        assert not should_run_check(self.meta, ["configs"], ["pg-version"])


class TestRegistry:
    def test_check_ids_unique(self):
        ids = [package.check_id for package in ALL_CHECKS]
        assert len(ids) == len(set(ids))

    def test_find_check(self):
        assert find_check("partition-usage").metadata().category == Category.PERFORMANCE
        assert find_check("missing") is None

    def test_packages_build_checkers(self):
        for package in ALL_CHECKS:
            checker = package.new(object(), None)
            assert checker.metadata() == package.metadata()


class TestRun:
    """Tests for the sequential, fail-fast run."""

    def test_reports_in_registry_order(self):
        checks = [
            make_package("b-check", severity=Severity.WARN),
            make_package("a-check"),
        ]
        reports = asyncio.run(run(None, checks, [], [], timeout=1.0))

        assert [r.check_id for r in reports] == ["b-check", "a-check"]
        assert reports[0].severity == Severity.WARN

    def test_only_and_ignored(self):
        calls: list[str] = []
        checks = [
            make_package("one", Category.CONFIGS, calls=calls),
            make_package("two", Category.PERFORMANCE, calls=calls),
            make_package("three", Category.PERFORMANCE, calls=calls),
        ]
        reports = asyncio.run(run(None, checks, ["performance"], ["three"], timeout=1.0))

        assert [r.check_id for r in reports] == ["two"]
        assert calls == ["two"]

    def test_nothing_selected(self):
        checks = [make_package("one")]
        assert asyncio.run(run(None, checks, ["vacuum"], [], timeout=1.0)) == []

    def test_fail_fast_wraps_error(self):
        """The first failing check aborts the run and names itself."""
        calls: list[str] = []
        original = QueryError("broken_indexes", RuntimeError("connection reset"))
        checks = [
            make_package("first", calls=calls),
            make_package("second", Category.INDEXES, error=original, calls=calls),
            make_package("third", calls=calls),
        ]

        with pytest.raises(CheckError) as exc_info:
            asyncio.run(run(None, checks, [], [], timeout=1.0))

        err = exc_info.value
        assert err.category == "indexes"
        assert err.check_id == "second"
        assert err.original_error is original
        assert err.__cause__ is original
        assert calls == ["first", "second"]

    def test_timeout(self):
        """A check exceeding its deadline raises CheckTimeoutError."""
        checks = [make_package("slow", delay=1.0)]

        with pytest.raises(CheckTimeoutError) as exc_info:
            asyncio.run(run(None, checks, [], [], timeout=0.01))

        assert exc_info.value.check_id == "slow"
        assert exc_info.value.timeout_seconds == 0.01

    def test_instance_passed_to_checker(self):
        seen = []

        def metadata() -> CheckMetadata:
            return CheckMetadata(check_id="inst", name="Inst", category=Category.CONFIGS)

        class InstanceChecker(Checker):
            def metadata(self) -> CheckMetadata:
                return metadata()

            async def check(self) -> Report:
                seen.append(self.instance)
                return self.new_report()

        marker = object()
        asyncio.run(run(None, [CheckPackage(metadata, InstanceChecker)], [], [],
                        instance=marker, timeout=1.0))
        assert seen == [marker]

    def test_timeout_raised_by_check_is_not_a_deadline(self):
        """A TimeoutError from inside the check is an ordinary check failure."""
        original = TimeoutError("socket read timed out")
        checks = [make_package("flaky", error=original)]

        with pytest.raises(CheckError) as exc_info:
            asyncio.run(run(None, checks, [], [], timeout=5.0))

        err = exc_info.value
        assert not isinstance(err, CheckTimeoutError)
        assert err.original_error is original
        assert "timed out after" not in err.message

    def test_cancellation_propagates(self):
        """Cancelling the caller surfaces CancelledError, not CheckError."""
        calls: list[str] = []
        checks = [make_package("slow", delay=10.0, calls=calls)]

        async def cancel_mid_run():
            task = asyncio.create_task(run(None, checks, [], [], timeout=30.0))
            while not calls:
                await asyncio.sleep(0)
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                return "cancelled"
            return "finished"

        assert asyncio.run(cancel_mid_run()) == "cancelled"
        assert calls == ["slow"]
