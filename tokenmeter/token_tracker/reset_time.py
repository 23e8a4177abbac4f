"""Billing-cycle reset timing.

Two schedules are supported:

- ``interval``: quotas reset at fixed local hours every day
  (default 04:00, 09:00, 14:00, 18:00 and 23:00 Pacific).
- ``monthly``: quotas reset once a month on a configured day at 09:00 local.

All returned instants are UTC; the configured timezone is only used to
find the boundaries and to format them for display.
"""

from __future__ import annotations

import calendar
import logging
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, timezone, tzinfo
from typing import Literal
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from tokenmeter.token_tracker.formatting import format_duration

logger = logging.getLogger(__name__)

DEFAULT_TIMEZONE = "America/Los_Angeles"
DEFAULT_RESET_HOURS = (4, 9, 14, 18, 23)
MONTHLY_RESET_HOUR = 9

INTERVAL_CRITICAL_PCT = 80.0
MONTHLY_CRITICAL_PCT = 90.0

FALLBACK_CONFIDENCE = 30

COMMON_TIMEZONES: list[tuple[str, str]] = [
    ("Pacific Time (Los Angeles)", "America/Los_Angeles"),
    ("Mountain Time (Denver)", "America/Denver"),
    ("Central Time (Chicago)", "America/Chicago"),
    ("Eastern Time (New York)", "America/New_York"),
    ("GMT (London)", "Europe/London"),
    ("CET (Paris)", "Europe/Paris"),
    ("JST (Tokyo)", "Asia/Tokyo"),
    ("AEST (Sydney)", "Australia/Sydney"),
    ("UTC", "UTC"),
]


@dataclass
class ResetSchedule:
    type: Literal["interval", "monthly"] = "interval"
    timezone: str = DEFAULT_TIMEZONE
    reset_hours: list[int] = field(default_factory=lambda: list(DEFAULT_RESET_HOURS))
    monthly_reset_day: int = 1


@dataclass
class EnhancedResetTimeInfo:
    next_reset_time: datetime
    last_reset_time: datetime
    time_until_reset: timedelta
    time_since_last_reset: timedelta
    reset_schedule: list[int]
    timezone: str  # the zone actually used, "UTC" after a fallback
    cycle_progress: float
    is_in_critical_period: bool
    formatted_time_until_reset: str
    formatted_next_reset_time: str
    confidence: int = 100
    reason_code: str | None = None
    timezone_fallback: bool = False

    @property
    def cycle_duration(self) -> timedelta:
        return self.next_reset_time - self.last_reset_time


@dataclass
class ProgressBarData:
    percentage: float
    time_elapsed: str
    time_remaining: str
    status: Literal["normal", "warning", "critical"]


def resolve_timezone(name: str) -> tuple[tzinfo, bool]:
    """Return ``(tz, fell_back)``; unknown names resolve to UTC."""
    try:
        return ZoneInfo(name), False
    # zone directories such as "America" surface as OSError from the tz database
    except (ZoneInfoNotFoundError, ValueError, OSError):
        logger.warning("Unknown timezone %r, falling back to UTC", name)
        return timezone.utc, True


def _at(day: date, hour: int, tz: tzinfo) -> datetime:
    return datetime.combine(day, time(hour), tzinfo=tz).astimezone(timezone.utc)


def _add_months(year: int, month: int, delta: int) -> tuple[int, int]:
    index = year * 12 + (month - 1) + delta
    return index // 12, index % 12 + 1


def _monthly_reset(year: int, month: int, day: int, tz: tzinfo) -> datetime:
    # Short months clamp to their last day
    clamped = min(day, calendar.monthrange(year, month)[1])
    return _at(date(year, month, clamped), MONTHLY_RESET_HOUR, tz)


def format_reset_time(instant: datetime, tz: tzinfo) -> str:
    """'Oct 19 at 2:00 PM PDT' in the given zone."""
    local = instant.astimezone(tz)
    hour12 = local.hour % 12 or 12
    meridiem = "AM" if local.hour < 12 else "PM"
    return f"{local:%b} {local.day} at {hour12}:{local:%M} {meridiem} {local.tzname()}"


class ResetTimeService:
    def __init__(self, schedule: ResetSchedule | None = None) -> None:
        self.schedule = schedule or ResetSchedule()

    def _interval_bounds(self, now: datetime, tz: tzinfo) -> tuple[datetime, datetime]:
        hours = sorted(set(self.schedule.reset_hours)) or list(DEFAULT_RESET_HOURS)
        local = now.astimezone(tz)
        today = local.date()
        cur_h, cur_m = local.hour, local.minute

        next_reset = None
        for h in hours:
            if h > cur_h or (h == cur_h and cur_m == 0):
                next_reset = _at(today, h, tz)
                break
        if next_reset is None:
            next_reset = _at(today + timedelta(days=1), hours[0], tz)

        last_reset = None
        for h in reversed(hours):
            if h < cur_h or (h == cur_h and cur_m > 0):
                last_reset = _at(today, h, tz)
                break
        if last_reset is None:
            last_reset = _at(today - timedelta(days=1), hours[-1], tz)

        return last_reset, next_reset

    def _monthly_bounds(self, now: datetime, tz: tzinfo) -> tuple[datetime, datetime]:
        day = self.schedule.monthly_reset_day
        local = now.astimezone(tz)
        year, month = local.year, local.month

        next_reset = _monthly_reset(year, month, day, tz)
        if next_reset <= now:
            year, month = _add_months(year, month, 1)
            next_reset = _monthly_reset(year, month, day, tz)

        prev_year, prev_month = _add_months(year, month, -1)
        last_reset = _monthly_reset(prev_year, prev_month, day, tz)
        return last_reset, next_reset

    def reset_info(self, now: datetime) -> EnhancedResetTimeInfo:
        tz, fell_back = resolve_timezone(self.schedule.timezone)
        monthly = self.schedule.type == "monthly"

        if monthly:
            last_reset, next_reset = self._monthly_bounds(now, tz)
            critical_pct = MONTHLY_CRITICAL_PCT
            schedule_hours = [MONTHLY_RESET_HOUR]
        else:
            last_reset, next_reset = self._interval_bounds(now, tz)
            critical_pct = INTERVAL_CRITICAL_PCT
            schedule_hours = sorted(set(self.schedule.reset_hours)) or list(DEFAULT_RESET_HOURS)

        time_until = max(timedelta(), next_reset - now)
        time_since = max(timedelta(), now - last_reset)
        cycle = next_reset - last_reset
        if cycle > timedelta():
            progress = min(100.0, max(0.0, (now - last_reset) / cycle * 100))
        else:
            progress = 0.0

        info = EnhancedResetTimeInfo(
            next_reset_time=next_reset,
            last_reset_time=last_reset,
            time_until_reset=time_until,
            time_since_last_reset=time_since,
            reset_schedule=schedule_hours,
            timezone="UTC" if fell_back else self.schedule.timezone,
            cycle_progress=progress,
            is_in_critical_period=progress > critical_pct,
            formatted_time_until_reset=format_duration(time_until),
            formatted_next_reset_time=format_reset_time(next_reset, tz),
        )
        if fell_back:
            info.confidence = FALLBACK_CONFIDENCE
            info.reason_code = "invalid_timezone_fallback"
            info.timezone_fallback = True

        logger.debug(
            "Next reset %s (%s), cycle %.1f%%",
            info.formatted_next_reset_time, info.formatted_time_until_reset, progress,
        )
        return info

    def progress_bar_data(self, info: EnhancedResetTimeInfo) -> ProgressBarData:
        pct = info.cycle_progress
        if pct > 90:
            status = "critical"
        elif pct > 70:
            status = "warning"
        else:
            status = "normal"
        return ProgressBarData(
            percentage=pct,
            time_elapsed=format_duration(info.time_since_last_reset),
            time_remaining=info.formatted_time_until_reset,
            status=status,
        )
