"""
Row types returned by the query gateway.

Plain frozen dataclasses, one per gateway query. Nullable columns are
typed Optional; checks decide what a missing value means.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class PGVersionRow:
    """Server version as reported by server_version_num."""

    version: str
    major: int
    minor: int


@dataclass(frozen=True)
class BrokenIndexRow:
    """An index with indisvalid = false."""

    schema_name: str
    table_name: str
    index_name: str


@dataclass(frozen=True)
class CacheEfficiencyRow:
    """Database-wide buffer cache counters."""

    blks_hit: int = 0
    blks_read: int = 0
    cache_hit_ratio: float | None = None


@dataclass(frozen=True)
class SeqScanTableRow:
    """Sequential vs index scan activity for a user table."""

    schema_name: str
    table_name: str
    seq_scan: int = 0
    idx_scan: int = 0
    seq_to_idx_ratio: float | None = None
    estimated_rows: int = 0
    table_size_bytes: int = 0
    index_count: int = 0


@dataclass(frozen=True)
class PartitionedTable:
    """A partitioned parent table with its key and aggregated child scan counters."""

    schema_name: str
    table_name: str
    partition_strategy: str | None = None
    partition_key_columns: str | None = None
    has_expression_key: bool = False
    partition_count: int = 0
    total_size_bytes: int = 0
    estimated_rows: int = 0
    total_seq_scans: int = 0
    total_idx_scans: int = 0

    @property
    def qualified_name(self) -> str:
        return f"{self.schema_name}.{self.table_name}"

    @property
    def partition_keys(self) -> list[str]:
        """Key columns split on commas; empty when the key is unknown."""
        if not self.partition_key_columns:
            return []
        return self.partition_key_columns.split(",")


@dataclass(frozen=True)
class QueryStatistic:
    """One pg_stat_statements entry."""

    query_id: int | None
    query: str
    calls: int = 0
    total_exec_time: float = 0.0
    mean_exec_time: float = 0.0
    rows_returned: int = 0


@dataclass(frozen=True)
class SettingRow:
    """A name/setting pair from pg_settings."""

    name: str
    setting: str | None
