"""
Autovacuum, maintenance memory and vacuum cost settings.

Most of these thresholds only make sense relative to the instance's RAM
and CPU count, so the check needs InstanceMetadata. Without it the check
emits a single warning and does not query the server.
"""

from __future__ import annotations

import logging
from typing import Protocol

from pgdoctor.check.base import Checker
from pgdoctor.check.instance import InstanceMetadata
from pgdoctor.check.models import Category, CheckMetadata, Finding, Report, Severity
from pgdoctor.db.queries import VACUUM_SETTINGS_SQL
from pgdoctor.db.rows import SettingRow

logger = logging.getLogger(__name__)

# PostgreSQL defaults, used when a setting is missing or unparseable.
DEFAULT_ANALYZE_SCALE_FACTOR = 0.1
DEFAULT_VACUUM_SCALE_FACTOR = 0.2
DEFAULT_AUTOVACUUM_MAX_WORKERS = 3
DEFAULT_MAINTENANCE_WORK_MEM_KB = 65536
DEFAULT_VACUUM_COST_DELAY_MS = 2.0
DEFAULT_VACUUM_COST_LIMIT = 200
DEFAULT_WORK_MEM_KB = 4096
DEFAULT_MAX_CONNECTIONS = 100

LARGE_INSTANCE_VCPU = 32
RECOMMENDED_WORKERS_LARGE_INSTANCE = 6
LARGE_INSTANCE_MEMORY_GB = 64
RECOMMENDED_MAINTENANCE_MEM_LARGE_MB = 1024

MAINTENANCE_BUDGET_FAIL_PERCENT = 25.0
MAINTENANCE_BUDGET_WARN_PERCENT = 12.5

README = """\
Validates the settings that decide whether autovacuum can keep up:

- autovacuum scale factors within sensible ranges
- autovacuum_max_workers not disabled, not excessive, and scaled for
  very large instances
- maintenance_work_mem large enough for one-pass vacuums, with the total
  (maintenance_work_mem x autovacuum_max_workers) kept under 25% of RAM
- vacuum cost delay and limit not throttling vacuum
- work_mem x max_connections kept well under available RAM

Requires instance metadata (vCPU count and memory) to evaluate budgets.
"""


class VacuumSettingsQueries(Protocol):
    async def vacuum_settings(self) -> list[SettingRow]: ...


def metadata() -> CheckMetadata:
    return CheckMetadata(
        check_id="vacuum-settings",
        name="PostgreSQL Vacuum & Maintenance Configs",
        category=Category.VACUUM,
        description="Validates autovacuum, maintenance memory, and vacuum cost settings",
        sql=VACUUM_SETTINGS_SQL,
        readme=README,
    )


class Settings:
    """Lookup over pg_settings rows with typed accessors and defaults."""

    def __init__(self, rows: list[SettingRow]) -> None:
        self._values = {row.name: row.setting for row in rows if row.setting is not None}

    def get(self, name: str) -> str | None:
        return self._values.get(name)

    def get_int(self, name: str, default: int) -> int:
        value = self._values.get(name)
        if value is None:
            return default
        try:
            return int(value)
        except ValueError:
            logger.debug("Setting %s=%r is not an integer, using %s", name, value, default)
            return default

    def get_float(self, name: str, default: float) -> float:
        value = self._values.get(name)
        if value is None:
            return default
        try:
            return float(value)
        except ValueError:
            logger.debug("Setting %s=%r is not a number, using %s", name, value, default)
            return default


class VacuumSettingsChecker(Checker):
    queries: VacuumSettingsQueries

    def metadata(self) -> CheckMetadata:
        return metadata()

    async def check(self) -> Report:
        report = self.new_report()

        if self.instance is None:
            report.add_finding(Finding(
                id=report.check_id,
                name=report.name,
                severity=Severity.WARN,
                details="Instance metadata not available - skipping RAM-aware vacuum settings checks",
            ))
            return report

        settings = Settings(await self.queries.vacuum_settings())

        check_autovacuum_scale_factors(settings, report)
        check_autovacuum_workers(settings, report, self.instance)
        check_maintenance_work_mem(settings, report, self.instance)
        check_vacuum_cost_settings(settings, report)
        check_work_mem(settings, report, self.instance)

        if not report.findings:
            report.add_finding(Finding(
                id=report.check_id,
                name=report.name,
                severity=Severity.OK,
            ))
        return report


def _available_ram_mb(instance: InstanceMetadata) -> int:
    return int((instance.memory_gb or 0) * 1024)


def _instance_label(instance: InstanceMetadata) -> str:
    return instance.instance_class or instance.instance_id or "this instance"


def check_autovacuum_scale_factors(settings: Settings, report: Report) -> None:
    analyze_scale = settings.get_float(
        "autovacuum_analyze_scale_factor", DEFAULT_ANALYZE_SCALE_FACTOR
    )
    if analyze_scale > 0.1:
        details = f"autovacuum_analyze_scale_factor too high: {analyze_scale:.2f} (recommend 0.05-0.1)"
    elif analyze_scale < 0.01:
        details = f"autovacuum_analyze_scale_factor too low: {analyze_scale:.2f} (may cause excessive analyze)"
    else:
        details = None
    if details:
        report.add_finding(Finding(
            id="autovacuum_analyze_scale_factor",
            name="Default autovacuum_analyze_scale_factor",
            severity=Severity.WARN,
            details=details,
        ))

    vacuum_scale = settings.get_float(
        "autovacuum_vacuum_scale_factor", DEFAULT_VACUUM_SCALE_FACTOR
    )
    if vacuum_scale > 0.2:
        details = f"autovacuum_vacuum_scale_factor too high: {vacuum_scale:.2f} (recommend 0.1-0.2)"
    elif vacuum_scale < 0.02:
        details = f"autovacuum_vacuum_scale_factor too low: {vacuum_scale:.2f} (may cause excessive vacuum)"
    else:
        details = None
    if details:
        report.add_finding(Finding(
            id="autovacuum_vacuum_scale_factor",
            name="Default autovacuum_vacuum_scale_factor",
            severity=Severity.WARN,
            details=details,
        ))


def check_autovacuum_workers(
    settings: Settings, report: Report, instance: InstanceMetadata
) -> None:
    workers = settings.get_int("autovacuum_max_workers", DEFAULT_AUTOVACUUM_MAX_WORKERS)

    if workers == 0:
        report.add_finding(Finding(
            id="autovacuum_max_workers",
            name="Autovacuum workers disabled",
            severity=Severity.FAIL,
            details=(
                "autovacuum_max_workers is 0 (autovacuum disabled)\n\n"
                "This will cause table bloat and transaction ID wraparound."
            ),
        ))
        return

    if workers == 1:
        report.add_finding(Finding(
            id="autovacuum_max_workers",
            name="Very low autovacuum workers",
            severity=Severity.WARN,
            details=(
                "autovacuum_max_workers is 1 (critically low)\n\n"
                "Single worker cannot keep up with multiple busy tables."
            ),
        ))
        return

    if workers > 10:
        report.add_finding(Finding(
            id="autovacuum_max_workers",
            name="Excessive autovacuum workers",
            severity=Severity.WARN,
            details=(
                f"autovacuum_max_workers is {workers} (unusually high)\n\n"
                "Too many workers cause I/O contention and waste resources."
            ),
        ))
        return

    vcpu = instance.vcpu_cores or 0
    if vcpu >= LARGE_INSTANCE_VCPU and workers == DEFAULT_AUTOVACUUM_MAX_WORKERS:
        report.add_finding(Finding(
            id="autovacuum_max_workers",
            name="Low autovacuum workers for large instance",
            severity=Severity.WARN,
            details=(
                f"autovacuum_max_workers is 3 on very large instance "
                f"{_instance_label(instance)} ({vcpu} vCPU)\n\n"
                f"With {vcpu} vCPU cores and likely many concurrent tables, "
                "3 workers may be a bottleneck.\n"
                f"Consider {RECOMMENDED_WORKERS_LARGE_INSTANCE} workers for better "
                "parallelism on this instance size."
            ),
        ))


def check_maintenance_work_mem(
    settings: Settings, report: Report, instance: InstanceMetadata
) -> None:
    mem_mb = settings.get_int("maintenance_work_mem", DEFAULT_MAINTENANCE_WORK_MEM_KB) // 1024
    workers = settings.get_int("autovacuum_max_workers", DEFAULT_AUTOVACUUM_MAX_WORKERS)

    if mem_mb < 32:
        report.add_finding(Finding(
            id="maintenance_work_mem",
            name="Very low maintenance_work_mem",
            severity=Severity.WARN,
            details=(
                f"maintenance_work_mem is {mem_mb}MB (below half the PostgreSQL default)\n\n"
                "May cause slow VACUUM operations requiring multiple passes."
            ),
        ))
        return

    if mem_mb > 4096:
        report.add_finding(Finding(
            id="maintenance_work_mem",
            name="Excessive maintenance_work_mem",
            severity=Severity.WARN,
            details=(
                f"maintenance_work_mem is {mem_mb}MB (unusually high)\n\n"
                "Values above 2GB show diminishing returns for VACUUM performance."
            ),
        ))
        return

    ram_mb = _available_ram_mb(instance)
    if ram_mb <= 0:
        logger.debug("Instance memory unknown, skipping maintenance_work_mem budget")
        return

    total_mb = mem_mb * workers
    budget_percent = total_mb / ram_mb * 100
    label = _instance_label(instance)
    memory_gb = instance.memory_gb or 0

    if budget_percent > MAINTENANCE_BUDGET_WARN_PERCENT:
        dangerous = budget_percent > MAINTENANCE_BUDGET_FAIL_PERCENT
        limit = "25%" if dangerous else "12.5%"
        report.add_finding(Finding(
            id="maintenance_work_mem",
            name=(
                "Dangerous maintenance_work_mem total budget"
                if dangerous
                else "High maintenance_work_mem total budget"
            ),
            severity=Severity.FAIL if dangerous else Severity.WARN,
            details=(
                f"maintenance_work_mem is {mem_mb}MB on {label} ({memory_gb:.0f}GB RAM) "
                f"with autovacuum_max_workers={workers}\n\n"
                f"Total autovacuum RAM budget: {total_mb}MB "
                f"({budget_percent:.1f}% of available RAM)\n"
                f"  {mem_mb}MB x {workers} workers = {total_mb}MB\n\n"
                f"Keep the total under {limit} of RAM."
            ),
        ))
        return

    if memory_gb >= LARGE_INSTANCE_MEMORY_GB and mem_mb == 64:
        current_percent = 64 * workers / ram_mb * 100
        recommended_total = RECOMMENDED_MAINTENANCE_MEM_LARGE_MB * workers
        recommended_percent = recommended_total / ram_mb * 100
        report.add_finding(Finding(
            id="maintenance_work_mem",
            name="Low maintenance_work_mem for large instance",
            severity=Severity.WARN,
            details=(
                f"maintenance_work_mem is 64MB on very large instance {label} "
                f"({memory_gb:.0f}GB RAM)\n\n"
                "64MB can track only ~400K dead tuples (may require multiple VACUUM passes).\n"
                f"Consider {RECOMMENDED_MAINTENANCE_MEM_LARGE_MB}MB.\n\n"
                f"Current total budget: 64MB x {workers} workers = {64 * workers}MB "
                f"({current_percent:.1f}% RAM)\n"
                f"Recommended total: {RECOMMENDED_MAINTENANCE_MEM_LARGE_MB}MB x {workers} "
                f"workers = {recommended_total}MB ({recommended_percent:.1f}% RAM)"
            ),
        ))


def check_vacuum_cost_settings(settings: Settings, report: Report) -> None:
    cost_delay = settings.get_float("vacuum_cost_delay", DEFAULT_VACUUM_COST_DELAY_MS)
    if cost_delay > 20:
        report.add_finding(Finding(
            id="vacuum_cost_delay",
            name="Default vacuum_cost_delay",
            severity=Severity.WARN,
            details=f"vacuum_cost_delay too high: {cost_delay:g}ms (may slow vacuum, recommend 0-10ms)",
        ))

    cost_limit = settings.get_int("vacuum_cost_limit", DEFAULT_VACUUM_COST_LIMIT)
    if cost_limit < 200:
        details = f"vacuum_cost_limit too low: {cost_limit} (may slow vacuum, default 200)"
    elif cost_limit > 10000:
        details = f"vacuum_cost_limit very high: {cost_limit} (may cause I/O spikes)"
    else:
        return
    report.add_finding(Finding(
        id="vacuum_cost_limit",
        name="Default vacuum_cost_limit",
        severity=Severity.WARN,
        details=details,
    ))


def check_work_mem(settings: Settings, report: Report, instance: InstanceMetadata) -> None:
    work_mem_mb = settings.get_int("work_mem", DEFAULT_WORK_MEM_KB) // 1024
    max_connections = settings.get_int("max_connections", DEFAULT_MAX_CONNECTIONS)
    active = settings.get_int("active_connections", 0)

    if work_mem_mb < 4:
        report.add_finding(Finding(
            id="work_mem",
            name="Very low work_mem",
            severity=Severity.FAIL,
            details=(
                f"work_mem is {work_mem_mb}MB (critically low)\n\n"
                "Will cause excessive temporary file usage for sorts and hash operations."
            ),
        ))
        return

    ram_mb = _available_ram_mb(instance)
    if ram_mb <= 0:
        return

    worst_mb = work_mem_mb * max_connections
    worst_percent = worst_mb / ram_mb * 100
    typical_mb = work_mem_mb * active
    typical_percent = typical_mb / ram_mb * 100
    label = _instance_label(instance)
    memory_gb = instance.memory_gb or 0

    usage = (
        f"Worst-case RAM usage: {worst_mb}MB ({worst_percent:.1f}% of available RAM)\n"
        f"Current active connections: {active} using ~{typical_mb}MB ({typical_percent:.1f}%)"
    )

    if worst_percent > 80:
        report.add_finding(Finding(
            id="work_mem",
            name="Dangerous work_mem configuration",
            severity=Severity.FAIL,
            details=(
                f"work_mem is {work_mem_mb}MB on {label} ({memory_gb:.0f}GB RAM) "
                f"with max_connections={max_connections}\n\n{usage}\n\n"
                "This configuration can cause out-of-memory errors when connections spike."
            ),
        ))
    elif worst_percent > 50:
        report.add_finding(Finding(
            id="work_mem",
            name="Risky work_mem configuration",
            severity=Severity.WARN,
            details=(
                f"work_mem is {work_mem_mb}MB on {label} ({memory_gb:.0f}GB RAM) "
                f"with max_connections={max_connections}\n\n{usage}\n\n"
                "Connection spikes could cause memory pressure."
            ),
        ))
    elif active > 0 and typical_percent > 40:
        report.add_finding(Finding(
            id="work_mem",
            name="High current work_mem usage",
            severity=Severity.WARN,
            details=(
                f"work_mem is {work_mem_mb}MB with {active} active connections on "
                f"{label} ({memory_gb:.0f}GB RAM)\n\n{usage}"
            ),
        ))
