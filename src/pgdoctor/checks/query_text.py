"""
Lexical helpers for reasoning about normalized query text.

These work on lower-cased pg_stat_statements text with plain substring
matching. There is no tokenizer: quoting, comments, CTEs and subqueries
are not understood. When unsure the helpers answer "uses the key", so the
partition-usage check errs toward false negatives.
"""

from __future__ import annotations

from collections.abc import Iterable

_WHERE_END_MARKERS = (
    " order by",
    " group by",
    " having",
    " limit",
    " offset",
    " for update",
    " for share",
    ";",
)


def _key_columns(partition_keys: Iterable[str]) -> list[str]:
    cols = (key.strip().lower() for key in partition_keys)
    return [col for col in cols if col]


def _key_patterns(col: str) -> tuple[str, ...]:
    return (
        col + " =", col + "=",
        col + " >", col + ">",
        col + " <", col + "<",
        col + " in", col + " between", col + " is", col + " any",
        "." + col + " ", "." + col + "=", "." + col + ">", "." + col + "<",
    )


def query_references_table(query_text: str, schema_name: str, table_name: str) -> bool:
    """
    True if the text mentions the table, qualified, bare, or double-quoted.

    The bare-name match is a substring test, so "orders" also matches
    "orders_archive".
    """
    table = table_name.lower()
    patterns = (f"{schema_name}.{table_name}".lower(), table, f'"{table}"')
    return any(p in query_text for p in patterns)


def extract_where_clause(query_text: str) -> str:
    """
    Return the text after the first " where ", cut at the first trailing clause.

    Empty string when there is no " where ".
    """
    _, sep, clause = query_text.partition(" where ")
    if not sep:
        return ""

    for marker in _WHERE_END_MARKERS:
        idx = clause.find(marker)
        if idx != -1:
            clause = clause[:idx]

    return clause.strip()


def query_uses_partition_key(query_text: str, partition_keys: Iterable[str]) -> bool:
    """True if the WHERE clause compares, ranges or tests any key column."""
    where_clause = extract_where_clause(query_text)
    if not where_clause:
        return False

    return any(
        pattern in where_clause
        for col in _key_columns(partition_keys)
        for pattern in _key_patterns(col)
    )


def query_has_join(query_text: str) -> bool:
    return " join " in query_text


def query_uses_partition_key_after_from(query_text: str, partition_keys: Iterable[str]) -> bool:
    """
    True if any key column name appears anywhere after the first " from ".

    Covers JOIN ... ON, WHERE and implicit comma joins alike.
    """
    idx = query_text.find(" from ")
    if idx == -1:
        return False

    after_from = query_text[idx:]
    return any(col in after_from for col in _key_columns(partition_keys))
