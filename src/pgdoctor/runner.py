"""
Run orchestration: filter validation, check selection and execution.

A run is strictly sequential. Each selected check is constructed fresh,
awaited under a per-check deadline, and its report collected in registry
order. The first failure aborts the whole run: no partial results.

Usage:
    from pgdoctor.registry import ALL_CHECKS
    from pgdoctor.runner import run, validate_filters

    only, invalid = validate_filters(ALL_CHECKS, ["performance", "pg-version"])
    reports = await run(queries, ALL_CHECKS, only, [], instance=instance)
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Iterable, Sequence
from typing import Any

from pgdoctor.check.base import Checker
from pgdoctor.check.instance import InstanceMetadata
from pgdoctor.check.models import CheckMetadata, Report
from pgdoctor.config import get_config
from pgdoctor.exceptions import CheckError, CheckTimeoutError
from pgdoctor.registry import ALL_CHECKS, CheckPackage

logger = logging.getLogger(__name__)


def _known_filters(checks: Sequence[CheckPackage]) -> set[str]:
    known: set[str] = set()
    for package in checks:
        meta = package.metadata()
        known.add(meta.check_id)
        known.add(meta.category.value)
    return known


def validate_filters(
    checks: Sequence[CheckPackage],
    tokens: Iterable[str],
) -> tuple[list[str], list[str]]:
    """
    Split filter tokens into valid (normalized, de-duplicated) and invalid ones.

    A token may be a check ID, a category, or "check-id/anything" (the
    suffix is dropped). Matching is exact and case-sensitive. Invalid
    tokens are returned verbatim, in input order.

    Example:
        >>> validate_filters(ALL_CHECKS, ["pg-version/x", "pg-version", "nope"])
        (['pg-version'], ['nope'])
    """
    known = _known_filters(checks)
    valid: list[str] = []
    invalid: list[str] = []

    for token in tokens:
        name = token.split("/", 1)[0]
        if name in known:
            if name not in valid:
                valid.append(name)
        else:
            invalid.append(token)

    return valid, invalid


def all_filters(checks: Sequence[CheckPackage] | None = None) -> list[str]:
    """Every valid filter token: each check ID followed by its category, de-duplicated."""
    if checks is None:
        checks = ALL_CHECKS

    seen: list[str] = []
    for package in checks:
        meta = package.metadata()
        for token in (meta.check_id, meta.category.value):
            if token not in seen:
                seen.append(token)
    return seen


def should_run_check(
    meta: CheckMetadata,
    only: Sequence[str],
    ignored: Sequence[str],
) -> bool:
    """
    Decide whether a check is selected.

    Ignored wins: a check matching any ignored filter never runs, even if
    it also matches an only filter. An empty only list selects everything.
    """
    category = meta.category.value
    if meta.check_id in ignored or category in ignored:
        return False
    if not only:
        return True
    return meta.check_id in only or category in only


async def _check_or_raise(checker: Checker, category: str, check_id: str) -> Report:
    """
    Await one check, wrapping anything it raises in CheckError.

    Only the deadline in run() can surface as a bare TimeoutError; a
    TimeoutError raised by the check itself (a socket timeout, say) is an
    ordinary check failure.
    """
    try:
        return await checker.check()
    except Exception as e:
        raise CheckError(category, check_id, e) from e


async def run(
    queries: Any,
    checks: Sequence[CheckPackage],
    only: Sequence[str],
    ignored: Sequence[str],
    *,
    instance: InstanceMetadata | None = None,
    timeout: float | None = None,
) -> list[Report]:
    """
    Run the selected checks one after another.

    Args:
        queries: Query gateway shared by every check.
        checks: Candidate checks, in the order they should run.
        only: Filters selecting checks (empty selects all).
        ignored: Filters excluding checks.
        instance: Optional instance metadata passed to every check.
        timeout: Per-check deadline in seconds. Defaults to
            Config.check_timeout_seconds.

    Returns:
        Reports of the selected checks, in the order given.

    Raises:
        CheckTimeoutError: A check exceeded its deadline.
        CheckError: A check raised; the original exception is chained.
    """
    if timeout is None:
        timeout = get_config().check_timeout_seconds

    reports: list[Report] = []

    for package in checks:
        meta = package.metadata()
        category = meta.category.value

        if not should_run_check(meta, only, ignored):
            logger.debug("Check %s/%s not selected", category, meta.check_id)
            continue

        checker = package.new(queries, instance)
        start = time.perf_counter()
        try:
            report = await asyncio.wait_for(
                _check_or_raise(checker, category, meta.check_id), timeout=timeout
            )
        except asyncio.TimeoutError as e:
            raise CheckTimeoutError(category, meta.check_id, timeout, e) from e

        logger.debug(
            "Check %s/%s finished in %.1fms: %s",
            category,
            meta.check_id,
            (time.perf_counter() - start) * 1000,
            report.severity.label,
        )
        reports.append(report)

    return reports
