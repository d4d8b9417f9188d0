"""
Database gateway for pgdoctor.

Provides read-only access to the catalogs and statistics views the
checks need. Checks depend only on narrow Protocols; Queries is the
single concrete implementation.
"""

from pgdoctor.db.queries import Queries, connect, redact_dsn
from pgdoctor.db.rows import (
    BrokenIndexRow,
    CacheEfficiencyRow,
    PartitionedTable,
    PGVersionRow,
    QueryStatistic,
    SeqScanTableRow,
    SettingRow,
)

__all__ = [
    "BrokenIndexRow",
    "CacheEfficiencyRow",
    "PGVersionRow",
    "PartitionedTable",
    "Queries",
    "QueryStatistic",
    "SeqScanTableRow",
    "SettingRow",
    "connect",
    "redact_dsn",
]
