"""Shared test fixtures."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from tokenmeter.token_tracker.burn_rate import BurnRateAnalytics, BurnRateTrend, classify_velocity
from tokenmeter.token_tracker.models import SessionBlock, TokenCounts
from tokenmeter.token_tracker.reset_time import EnhancedResetTimeInfo

# 09:30 Pacific (PDT) on a Monday
NOW = datetime(2026, 10, 19, 16, 30, tzinfo=timezone.utc)

_counter = 0


def make_block(
    start: datetime,
    end: datetime,
    tokens: int = 1000,
    *,
    active: bool = False,
    gap: bool = False,
    block_id: str | None = None,
    actual_end: datetime | None = None,
) -> SessionBlock:
    global _counter
    _counter += 1
    return SessionBlock(
        id=block_id or f"block-{_counter}",
        start_time=start,
        end_time=end,
        actual_end_time=actual_end,
        is_active=active,
        is_gap=gap,
        token_counts=TokenCounts(input_tokens=tokens),
        cost_usd=tokens / 1000,
    )


def make_burn(
    current: float,
    direction: str = "stable",
    percentage: float = 0.0,
    confidence: int = 80,
) -> BurnRateAnalytics:
    return BurnRateAnalytics(
        current=current,
        hourly=current * 60,
        trend=BurnRateTrend(direction=direction, percentage=percentage),  # type: ignore[arg-type]
        velocity=classify_velocity(current),
        peak_hour=None,
        confidence=confidence,
        last_calculated=NOW,
    )


def make_reset(
    minutes_until: float = 300,
    progress: float = 50.0,
    critical: bool = False,
) -> EnhancedResetTimeInfo:
    return EnhancedResetTimeInfo(
        next_reset_time=NOW + timedelta(minutes=minutes_until),
        last_reset_time=NOW - timedelta(minutes=60),
        time_until_reset=timedelta(minutes=minutes_until),
        time_since_last_reset=timedelta(minutes=60),
        reset_schedule=[4, 9, 14, 18, 23],
        timezone="UTC",
        cycle_progress=progress,
        is_in_critical_period=critical,
        formatted_time_until_reset="",
        formatted_next_reset_time="",
    )


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def block():
    """Factory for session blocks relative to explicit instants."""
    return make_block
