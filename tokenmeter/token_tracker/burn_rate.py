"""Burn rate analysis over a rolling one-hour window.

Tokens are attributed to the window in proportion to how much of each
block's duration overlaps it, so a block that straddles the window edge
only contributes its overlapping share.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone, tzinfo
from typing import Literal

from tokenmeter.token_tracker.formatting import minutes
from tokenmeter.token_tracker.models import SessionBlock

logger = logging.getLogger(__name__)

ANALYSIS_WINDOW = timedelta(hours=1)
TREND_THRESHOLD_PCT = 15.0
ACCELERATION_THRESHOLD_PCT = 20.0

# tokens/minute upper bounds, checked in order
VELOCITY_THRESHOLDS: dict[str, float] = {
    "slow": 50,
    "normal": 150,
    "fast": 300,
    "very_fast": float("inf"),
}

VELOCITY_EMOJI: dict[str, str] = {
    "slow": "🐌",
    "normal": "➡️",
    "fast": "🚀",
    "very_fast": "⚡",
}

VelocityClass = Literal["slow", "normal", "fast", "very_fast"]
TrendDirection = Literal["increasing", "decreasing", "stable"]


@dataclass
class BurnRateTrend:
    direction: TrendDirection
    percentage: float


@dataclass
class Velocity:
    classification: VelocityClass
    threshold: float  # upper bound of the bucket, tokens/minute

    @property
    def emoji(self) -> str:
        return VELOCITY_EMOJI[self.classification]


@dataclass
class BurnRateAnalytics:
    current: float  # tokens/minute
    hourly: float  # tokens/hour, always current * 60
    trend: BurnRateTrend
    velocity: Velocity
    peak_hour: int | None
    confidence: int
    last_calculated: datetime


@dataclass
class SessionOverlap:
    block_id: str
    overlap_start: datetime
    overlap_end: datetime
    overlap_minutes: float
    total_minutes: float
    tokens_in_window: float


@dataclass
class BurnRateBreakdown:
    window_start: datetime
    window_end: datetime
    sessions: list[SessionOverlap]
    total_tokens_in_window: float
    total_overlap_minutes: float


def classify_velocity(rate: float) -> Velocity:
    for name, limit in VELOCITY_THRESHOLDS.items():
        if rate < limit:
            return Velocity(classification=name, threshold=limit)  # type: ignore[arg-type]
    return Velocity(classification="very_fast", threshold=VELOCITY_THRESHOLDS["very_fast"])


def format_burn_rate(rate: float) -> str:
    """Human-readable rate: '30/hr' under 1/min, else tokens per minute."""
    if rate < 1:
        return f"{round(rate * 60)}/hr"
    if rate < 10:
        return f"{rate:.1f}/min"
    return f"{round(rate)}/min"


class BurnRateAnalyzer:
    def __init__(
        self,
        window: timedelta = ANALYSIS_WINDOW,
        trend_threshold_pct: float = TREND_THRESHOLD_PCT,
        tz: tzinfo = timezone.utc,
    ) -> None:
        self.window = window
        self.trend_threshold_pct = trend_threshold_pct
        self.tz = tz

    # ── Weighted overlap ─────────────────────────────────────────────────

    def _overlaps(
        self,
        blocks: list[SessionBlock],
        window_start: datetime,
        window_end: datetime,
        now: datetime,
    ) -> list[SessionOverlap]:
        result: list[SessionOverlap] = []
        for block in blocks:
            if block.is_gap:
                continue
            end = block.effective_end(now)
            if end < window_start or block.start_time > window_end:
                continue

            start = max(block.start_time, window_start)
            stop = min(end, window_end)
            if stop <= start:
                continue

            total_minutes = minutes(end - block.start_time)
            overlap_minutes = minutes(stop - start)
            weighted = (
                block.total_tokens * overlap_minutes / total_minutes if total_minutes > 0 else 0.0
            )
            result.append(SessionOverlap(
                block_id=block.id,
                overlap_start=start,
                overlap_end=stop,
                overlap_minutes=overlap_minutes,
                total_minutes=total_minutes,
                tokens_in_window=weighted,
            ))
        return result

    def session_overlaps(self, blocks: list[SessionBlock], now: datetime) -> list[SessionOverlap]:
        """Per-block share of the current analysis window."""
        return self._overlaps(blocks, now - self.window, now, now)

    def detailed_breakdown(self, blocks: list[SessionBlock], now: datetime) -> BurnRateBreakdown:
        overlaps = self.session_overlaps(blocks, now)
        return BurnRateBreakdown(
            window_start=now - self.window,
            window_end=now,
            sessions=overlaps,
            total_tokens_in_window=sum(o.tokens_in_window for o in overlaps),
            total_overlap_minutes=sum(o.overlap_minutes for o in overlaps),
        )

    # ── Rates ────────────────────────────────────────────────────────────

    def _rate(
        self,
        blocks: list[SessionBlock],
        window_start: datetime,
        window_end: datetime,
        now: datetime,
    ) -> float:
        tokens = sum(o.tokens_in_window for o in self._overlaps(blocks, window_start, window_end, now))
        return tokens / minutes(self.window)

    def current_rate(self, blocks: list[SessionBlock], now: datetime) -> float:
        return self._rate(blocks, now - self.window, now, now)

    def trend(self, blocks: list[SessionBlock], now: datetime) -> BurnRateTrend:
        """Compare the current window with the window immediately before it."""
        current = self.current_rate(blocks, now)
        previous = self._rate(blocks, now - 2 * self.window, now - self.window, now)

        if previous == 0:
            if current > 0:
                return BurnRateTrend(direction="increasing", percentage=100.0)
            return BurnRateTrend(direction="stable", percentage=0.0)

        pct = (current - previous) / previous * 100
        direction: TrendDirection = "stable"
        if abs(pct) > self.trend_threshold_pct:
            direction = "increasing" if pct > 0 else "decreasing"
        return BurnRateTrend(direction=direction, percentage=round(pct, 1))

    def peak_hour(self, blocks: list[SessionBlock]) -> int | None:
        """Hour of day (0-23) with the most tokens across completed blocks."""
        totals: dict[int, int] = defaultdict(int)
        for block in blocks:
            if not block.is_completed:
                continue
            totals[block.start_time.astimezone(self.tz).hour] += block.total_tokens
        if not totals:
            return None
        return max(totals, key=totals.get)  # type: ignore[arg-type]

    def confidence(self, blocks: list[SessionBlock], now: datetime) -> int:
        overlaps = self.session_overlaps(blocks, now)
        coverage = min(100.0, sum(o.overlap_minutes for o in overlaps) / minutes(self.window) * 100)
        count_score = min(100, len(overlaps) * 20)
        return max(0, min(100, round(0.7 * coverage + 0.3 * count_score)))

    def analyze(self, blocks: list[SessionBlock], now: datetime) -> BurnRateAnalytics:
        current = self.current_rate(blocks, now)
        analytics = BurnRateAnalytics(
            current=current,
            hourly=current * 60,
            trend=self.trend(blocks, now),
            velocity=classify_velocity(current),
            peak_hour=self.peak_hour(blocks),
            confidence=self.confidence(blocks, now),
            last_calculated=now,
        )
        logger.debug(
            "Burn rate %.1f tok/min (%s, trend %s %.1f%%, confidence %d)",
            analytics.current, analytics.velocity.classification,
            analytics.trend.direction, analytics.trend.percentage, analytics.confidence,
        )
        return analytics

    def is_accelerating(self, analytics: BurnRateAnalytics) -> bool:
        return (
            analytics.trend.direction == "increasing"
            and analytics.trend.percentage > ACCELERATION_THRESHOLD_PCT
        )
