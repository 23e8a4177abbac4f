"""Display helpers shared by the analytics modules and the CLI."""

from __future__ import annotations

from datetime import timedelta


def format_tokens(n: float) -> str:
    """Format a token count for display."""
    n = int(round(n))
    if n >= 1_000_000:
        return f"{n / 1_000_000:.1f}M"
    if n >= 10_000:
        return f"{n // 1_000}K"
    if n >= 1_000:
        return f"{n / 1_000:.1f}K"
    return f"{n:,}"


def format_duration(delta: timedelta) -> str:
    """Format a duration like '2d 3h', '4h 13m', '12m' or 'Soon'.

    Days are only shown once the duration exceeds a full day.
    """
    total_minutes = max(0, int(delta.total_seconds() // 60))
    hours, minutes = divmod(total_minutes, 60)
    if hours > 24:
        days, hours = divmod(hours, 24)
        return f"{days}d {hours}h"
    if hours > 0:
        return f"{hours}h {minutes}m"
    if minutes > 0:
        return f"{minutes}m"
    return "Soon"


def format_short_duration(delta: timedelta) -> str:
    """Compact session length: '1h 5m' or '42m'."""
    total_minutes = max(0, int(delta.total_seconds() // 60))
    hours, minutes = divmod(total_minutes, 60)
    if hours > 0:
        return f"{hours}h {minutes}m"
    return f"{minutes}m"


def minutes(delta: timedelta) -> float:
    return delta.total_seconds() / 60
