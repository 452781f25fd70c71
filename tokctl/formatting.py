"""Human-friendly number, cost and time formatting."""

from __future__ import annotations

from datetime import datetime, timedelta


def fmt_num(n: int) -> str:
    """Integer with thousands separators: ``1,234,567``."""
    return f"{n:,}"


def fmt_cost(n: float) -> str:
    """Dollar amount with two decimals."""
    return f"${n:.2f}"


def fmt_tokens_short(n: int) -> str:
    """Short form for large token counts: ``340`` / ``12.0K`` / ``4.2M``."""
    if n < 1_000:
        return str(n)
    if n < 1_000_000:
        return f"{n / 1_000:.1f}K"
    return f"{n / 1_000_000:.1f}M"


def _local_date(ts: datetime) -> str:
    return ts.astimezone().strftime("%Y-%m-%d")


def relative_time(ts: datetime, now: datetime) -> str:
    """``just now``, ``3m ago``, ``2h ago``, ``yesterday``, ``3d ago`` or a date."""
    delta = now - ts
    if delta < timedelta(0):
        return _local_date(ts)
    if delta < timedelta(minutes=1):
        return "just now"
    if delta < timedelta(hours=1):
        return f"{int(delta.total_seconds() // 60)}m ago"
    if delta < timedelta(hours=24):
        return f"{int(delta.total_seconds() // 3600)}h ago"
    day_delta = (now.astimezone().date() - ts.astimezone().date()).days
    if day_delta == 1:
        return "yesterday"
    if day_delta < 7:
        return f"{day_delta}d ago"
    return _local_date(ts)