"""Human-readable formatting for numbers, sizes and durations in findings."""

from __future__ import annotations

_BYTE_UNITS = ("KB", "MB", "GB", "TB")


def format_number(n: int) -> str:
    """Format an integer with thousands separators: 1234567 -> "1,234,567"."""
    return f"{n:,}"


def format_bytes(n: int) -> str:
    """Format a byte count using binary units: 1536 -> "1.5 KB"."""
    if n < 1024:
        return f"{n} B"

    value = float(n)
    unit = "B"
    for unit in _BYTE_UNITS:
        value /= 1024
        if value < 1024:
            break
    return f"{value:.1f} {unit}"


def format_duration_ms(ms: float) -> str:
    """
    Format a duration given in milliseconds.

    Examples:
        format_duration_ms(250)        -> "250ms"
        format_duration_ms(1500)       -> "1.5s"
        format_duration_ms(300_000)    -> "5.0m"
        format_duration_ms(5_400_000)  -> "1.5h"
    """
    if ms < 1000:
        return f"{ms:.0f}ms"
    seconds = ms / 1000
    if seconds < 60:
        return f"{seconds:.1f}s"
    minutes = seconds / 60
    if minutes < 60:
        return f"{minutes:.1f}m"
    return f"{minutes / 60:.1f}h"
