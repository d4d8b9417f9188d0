"""
Static check registry.

The registry is a plain tuple of CheckPackage entries in a fixed order.
That order is the order checks run in and the order reports come back in.
There is no decorator registration or plugin discovery: adding a check
means adding one line here.

Example:
    from pgdoctor.registry import ALL_CHECKS

    for package in ALL_CHECKS:
        meta = package.metadata()
        print(meta.category.value, meta.check_id)
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Any

from pgdoctor.check.base import Checker
from pgdoctor.check.instance import InstanceMetadata
from pgdoctor.check.models import CheckMetadata
from pgdoctor.checks import (
    cache_efficiency,
    invalid_indexes,
    partition_usage,
    pg_version,
    table_seq_scans,
    vacuum_settings,
)


@dataclass(frozen=True)
class CheckPackage:
    """
    A check's metadata function paired with its constructor.

    Attributes:
        metadata: Parameterless function returning the check's metadata.
        new: Builds a fresh Checker from a gateway and optional instance metadata.
    """

    metadata: Callable[[], CheckMetadata]
    new: Callable[[Any, InstanceMetadata | None], Checker]

    @property
    def check_id(self) -> str:
        return self.metadata().check_id


ALL_CHECKS: tuple[CheckPackage, ...] = (
    CheckPackage(pg_version.metadata, pg_version.PGVersionChecker),
    CheckPackage(invalid_indexes.metadata, invalid_indexes.InvalidIndexesChecker),
    CheckPackage(cache_efficiency.metadata, cache_efficiency.CacheEfficiencyChecker),
    CheckPackage(table_seq_scans.metadata, table_seq_scans.TableSeqScansChecker),
    CheckPackage(partition_usage.metadata, partition_usage.PartitionUsageChecker),
    CheckPackage(vacuum_settings.metadata, vacuum_settings.VacuumSettingsChecker),
)


def all_checks() -> tuple[CheckPackage, ...]:
    """Return the built-in checks in registry order."""
    return ALL_CHECKS


def find_check(
    check_id: str, checks: Sequence[CheckPackage] = ALL_CHECKS
) -> CheckPackage | None:
    """Get a check package by ID, or None."""
    for package in checks:
        if package.metadata().check_id == check_id:
            return package
    return None
