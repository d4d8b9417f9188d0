"""
Query gateway - read-only access to PostgreSQL catalogs and statistics.

Every method runs exactly one SELECT and maps rows into the frozen
dataclasses in pgdoctor.db.rows. Driver errors surface as QueryError
so checks never have to know about psycopg.

Safety requirements:
- Read-only: sessions are opened with default_transaction_read_only
- Time-bounded: optional server-side statement_timeout; the runner
  also applies a per-check deadline on the client side

Usage:
    from pgdoctor.db import connect

    async with await connect(dsn) as queries:
        version = await queries.pg_version()
"""

from __future__ import annotations

import logging
import time
from typing import Any

import psycopg
from psycopg.conninfo import conninfo_to_dict
from psycopg.rows import dict_row

from pgdoctor.db.rows import (
    BrokenIndexRow,
    CacheEfficiencyRow,
    PartitionedTable,
    PGVersionRow,
    QueryStatistic,
    SeqScanTableRow,
    SettingRow,
)
from pgdoctor.exceptions import GatewayConnectionError, QueryError

logger = logging.getLogger(__name__)


PG_VERSION_SQL = """
SELECT
    current_setting('server_version') AS version,
    current_setting('server_version_num')::int / 10000 AS major,
    current_setting('server_version_num')::int % 10000 AS minor
"""

BROKEN_INDEXES_SQL = """
SELECT
    n.nspname AS schema_name,
    t.relname AS table_name,
    i.relname AS index_name
FROM pg_index ix
JOIN pg_class i ON i.oid = ix.indexrelid
JOIN pg_class t ON t.oid = ix.indrelid
JOIN pg_namespace n ON n.oid = t.relnamespace
WHERE NOT ix.indisvalid
ORDER BY n.nspname, t.relname, i.relname
"""

DATABASE_CACHE_EFFICIENCY_SQL = """
SELECT
    blks_hit,
    blks_read,
    CASE
        WHEN blks_hit + blks_read = 0 THEN NULL
        ELSE round(100.0 * blks_hit / (blks_hit + blks_read), 2)::float8
    END AS cache_hit_ratio
FROM pg_stat_database
WHERE datname = current_database()
"""

HIGH_SEQ_SCAN_TABLES_SQL = """
SELECT
    s.schemaname AS schema_name,
    s.relname AS table_name,
    coalesce(s.seq_scan, 0) AS seq_scan,
    coalesce(s.idx_scan, 0) AS idx_scan,
    CASE
        WHEN coalesce(s.idx_scan, 0) = 0 THEN NULL
        ELSE round(s.seq_scan::numeric / s.idx_scan, 1)::float8
    END AS seq_to_idx_ratio,
    c.reltuples::bigint AS estimated_rows,
    pg_table_size(c.oid) AS table_size_bytes,
    (SELECT count(*) FROM pg_index ix WHERE ix.indrelid = c.oid) AS index_count
FROM pg_stat_user_tables s
JOIN pg_class c ON c.oid = s.relid
WHERE c.relkind = 'r'
  AND coalesce(s.seq_scan, 0) > 0
  AND c.reltuples >= 10000
ORDER BY s.seq_scan DESC
LIMIT 100
"""

PARTITIONED_TABLES_WITH_KEYS_SQL = """
SELECT
    n.nspname AS schema_name,
    c.relname AS table_name,
    CASE pt.partstrat
        WHEN 'r' THEN 'range'
        WHEN 'l' THEN 'list'
        WHEN 'h' THEN 'hash'
    END AS partition_strategy,
    (
        SELECT string_agg(a.attname, ',' ORDER BY k.ord)
        FROM unnest(pt.partattrs::int2[]) WITH ORDINALITY AS k(attnum, ord)
        JOIN pg_attribute a ON a.attrelid = c.oid AND a.attnum = k.attnum
        WHERE k.attnum <> 0
    ) AS partition_key_columns,
    0 = ANY(pt.partattrs::int2[]) AS has_expression_key,
    (SELECT count(*) FROM pg_inherits inh WHERE inh.inhparent = c.oid) AS partition_count,
    coalesce((
        SELECT sum(pg_total_relation_size(inh.inhrelid))
        FROM pg_inherits inh WHERE inh.inhparent = c.oid
    ), 0)::bigint AS total_size_bytes,
    coalesce((
        SELECT sum(greatest(ch.reltuples, 0))
        FROM pg_inherits inh JOIN pg_class ch ON ch.oid = inh.inhrelid
        WHERE inh.inhparent = c.oid
    ), 0)::bigint AS estimated_rows,
    coalesce((
        SELECT sum(st.seq_scan)
        FROM pg_inherits inh JOIN pg_stat_user_tables st ON st.relid = inh.inhrelid
        WHERE inh.inhparent = c.oid
    ), 0)::bigint AS total_seq_scans,
    coalesce((
        SELECT sum(coalesce(st.idx_scan, 0))
        FROM pg_inherits inh JOIN pg_stat_user_tables st ON st.relid = inh.inhrelid
        WHERE inh.inhparent = c.oid
    ), 0)::bigint AS total_idx_scans
FROM pg_partitioned_table pt
JOIN pg_class c ON c.oid = pt.partrelid
JOIN pg_namespace n ON n.oid = c.relnamespace
WHERE NOT c.relispartition
  AND n.nspname NOT IN ('pg_catalog', 'information_schema')
ORDER BY n.nspname, c.relname
"""

HAS_PG_STAT_STATEMENTS_SQL = """
SELECT EXISTS (
    SELECT 1 FROM pg_extension WHERE extname = 'pg_stat_statements'
) AS installed
"""

QUERY_STATS_FROM_STAT_STATEMENTS_SQL = """
SELECT
    queryid AS query_id,
    query,
    calls,
    total_exec_time,
    mean_exec_time,
    rows AS rows_returned
FROM pg_stat_statements
WHERE dbid = (SELECT oid FROM pg_database WHERE datname = current_database())
  AND calls > 0
ORDER BY total_exec_time DESC
LIMIT 1000
"""

VACUUM_SETTINGS_SQL = """
SELECT name, setting
FROM pg_settings
WHERE name IN (
    'autovacuum_analyze_scale_factor',
    'autovacuum_vacuum_scale_factor',
    'autovacuum_max_workers',
    'maintenance_work_mem',
    'vacuum_cost_delay',
    'vacuum_cost_limit',
    'work_mem',
    'max_connections'
)
UNION ALL
SELECT 'active_connections', count(*)::text
FROM pg_stat_activity
WHERE state = 'active'
"""


class Queries:
    """
    Read-only query gateway over a single psycopg async connection.

    Structurally satisfies every check's Protocol. The connection is
    shared by all checks of a run; checks run sequentially so no two
    queries are ever in flight at once.
    """

    def __init__(self, conn: psycopg.AsyncConnection[Any]) -> None:
        self._conn = conn

    @property
    def connection(self) -> psycopg.AsyncConnection[Any]:
        return self._conn

    async def _fetch(self, name: str, sql: str) -> list[dict[str, Any]]:
        """Execute a query, returning dict rows. Wraps driver errors."""
        start = time.perf_counter()
        try:
            async with self._conn.cursor(row_factory=dict_row) as cur:
                await cur.execute(sql)
                rows = await cur.fetchall()
        except psycopg.Error as e:
            logger.debug("Query %s failed: %s", name, e)
            raise QueryError(name, e) from e

        logger.debug(
            "Query %s returned %d rows in %.1fms",
            name,
            len(rows),
            (time.perf_counter() - start) * 1000,
        )
        return rows

    async def pg_version(self) -> PGVersionRow:
        rows = await self._fetch("pg_version", PG_VERSION_SQL)
        row = rows[0]
        return PGVersionRow(
            version=row["version"],
            major=int(row["major"]),
            minor=int(row["minor"]),
        )

    async def broken_indexes(self) -> list[BrokenIndexRow]:
        rows = await self._fetch("broken_indexes", BROKEN_INDEXES_SQL)
        return [
            BrokenIndexRow(
                schema_name=row["schema_name"],
                table_name=row["table_name"],
                index_name=row["index_name"],
            )
            for row in rows
        ]

    async def database_cache_efficiency(self) -> CacheEfficiencyRow:
        rows = await self._fetch("database_cache_efficiency", DATABASE_CACHE_EFFICIENCY_SQL)
        if not rows:
            return CacheEfficiencyRow()
        row = rows[0]
        return CacheEfficiencyRow(
            blks_hit=row["blks_hit"] or 0,
            blks_read=row["blks_read"] or 0,
            cache_hit_ratio=row["cache_hit_ratio"],
        )

    async def high_seq_scan_tables(self) -> list[SeqScanTableRow]:
        rows = await self._fetch("high_seq_scan_tables", HIGH_SEQ_SCAN_TABLES_SQL)
        return [
            SeqScanTableRow(
                schema_name=row["schema_name"],
                table_name=row["table_name"],
                seq_scan=row["seq_scan"] or 0,
                idx_scan=row["idx_scan"] or 0,
                seq_to_idx_ratio=row["seq_to_idx_ratio"],
                estimated_rows=row["estimated_rows"] or 0,
                table_size_bytes=row["table_size_bytes"] or 0,
                index_count=row["index_count"] or 0,
            )
            for row in rows
        ]

    async def partitioned_tables_with_keys(self) -> list[PartitionedTable]:
        rows = await self._fetch("partitioned_tables_with_keys", PARTITIONED_TABLES_WITH_KEYS_SQL)
        return [
            PartitionedTable(
                schema_name=row["schema_name"],
                table_name=row["table_name"],
                partition_strategy=row["partition_strategy"],
                partition_key_columns=row["partition_key_columns"],
                has_expression_key=bool(row["has_expression_key"]),
                partition_count=row["partition_count"] or 0,
                total_size_bytes=row["total_size_bytes"] or 0,
                estimated_rows=row["estimated_rows"] or 0,
                total_seq_scans=row["total_seq_scans"] or 0,
                total_idx_scans=row["total_idx_scans"] or 0,
            )
            for row in rows
        ]

    async def has_pg_stat_statements(self) -> bool:
        rows = await self._fetch("has_pg_stat_statements", HAS_PG_STAT_STATEMENTS_SQL)
        return bool(rows and rows[0]["installed"])

    async def query_stats_from_stat_statements(self) -> list[QueryStatistic]:
        rows = await self._fetch(
            "query_stats_from_stat_statements", QUERY_STATS_FROM_STAT_STATEMENTS_SQL
        )
        return [
            QueryStatistic(
                query_id=row["query_id"],
                query=row["query"] or "",
                calls=row["calls"] or 0,
                total_exec_time=row["total_exec_time"] or 0.0,
                mean_exec_time=row["mean_exec_time"] or 0.0,
                rows_returned=row["rows_returned"] or 0,
            )
            for row in rows
        ]

    async def vacuum_settings(self) -> list[SettingRow]:
        rows = await self._fetch("vacuum_settings", VACUUM_SETTINGS_SQL)
        return [SettingRow(name=row["name"], setting=row["setting"]) for row in rows]

    async def close(self) -> None:
        await self._conn.close()

    async def __aenter__(self) -> "Queries":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()


def redact_dsn(dsn: str) -> str:
    """Describe a connection target without its password."""
    try:
        params = conninfo_to_dict(dsn)
    except psycopg.ProgrammingError:
        return "<unparseable dsn>"
    host = params.get("host") or "localhost"
    port = params.get("port") or "5432"
    dbname = params.get("dbname") or params.get("user") or ""
    return f"{host}:{port}/{dbname}"


async def connect(
    dsn: str,
    application_name: str = "pgdoctor",
    statement_timeout_ms: int = 0,
) -> Queries:
    """
    Open a read-only, autocommit session and wrap it in a Queries gateway.

    Args:
        dsn: libpq connection string or URI.
        application_name: Reported in pg_stat_activity.
        statement_timeout_ms: Server-side statement_timeout, 0 to keep the default.

    Raises:
        GatewayConnectionError: If the connection cannot be established.
    """
    options = "-c default_transaction_read_only=on"
    if statement_timeout_ms > 0:
        options += f" -c statement_timeout={statement_timeout_ms}"

    target = redact_dsn(dsn)
    try:
        conn = await psycopg.AsyncConnection.connect(
            dsn,
            autocommit=True,
            application_name=application_name,
            options=options,
        )
    except psycopg.Error as e:
        raise GatewayConnectionError(
            f"could not connect to {target}: {e}", target=target
        ) from e

    logger.debug("Connected to %s as %s", target, application_name)
    return Queries(conn)
