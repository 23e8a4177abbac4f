"""Day-level usage rollups.

Aggregates the daily records from the usage loader into:
- Today's totals with a per-model breakdown
- Zero-filled 7- and 30-day series (oldest first)
- Daily usage trend (accelerating, steady, decelerating)
- 7- and 30-day projections

Uses simple linear regression on daily token counts.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Any, Literal

from tokenmeter.token_tracker.models import DailyUsageRecord

logger = logging.getLogger(__name__)

TREND_DAYS = 14
STEADY_SLOPE_RATIO = 0.05
WARNING_PCT = 70
CRITICAL_PCT = 90


@dataclass
class ModelTotals:
    tokens: int = 0
    cost: float = 0.0


@dataclass
class DayUsage:
    day: date
    total_tokens: int = 0
    total_cost: float = 0.0
    models: dict[str, ModelTotals] = field(default_factory=dict)


@dataclass
class DailySummary:
    today: DayUsage
    this_week: list[DayUsage]
    this_month: list[DayUsage]
    total_tokens_30d: int
    total_cost_30d: float
    avg_daily_tokens: float
    trend: str  # "accelerating" | "steady" | "decelerating" | "insufficient_data"
    trend_slope: float  # tokens/day change rate
    projected_7d_tokens: int
    projected_30d_tokens: int


def _linear_regression(xs: list[float], ys: list[float]) -> tuple[float, float]:
    """Simple OLS regression. Returns (slope, intercept)."""
    n = len(xs)
    if n < 2:
        return 0.0, (ys[0] if ys else 0.0)
    x_mean = sum(xs) / n
    y_mean = sum(ys) / n
    ss_xy = sum((x - x_mean) * (y - y_mean) for x, y in zip(xs, ys))
    ss_xx = sum((x - x_mean) ** 2 for x in xs)
    if ss_xx == 0:
        return 0.0, y_mean
    slope = ss_xy / ss_xx
    return slope, y_mean - slope * x_mean


def _rollup(day: date, records: list[DailyUsageRecord]) -> DayUsage:
    usage = DayUsage(day=day)
    for rec in records:
        usage.total_tokens += rec.total_tokens
        usage.total_cost += rec.total_cost
        for mb in rec.model_breakdowns:
            totals = usage.models.setdefault(mb.model_name, ModelTotals())
            totals.tokens += mb.total_tokens
            totals.cost += mb.cost
    return usage


def day_series(records: list[DailyUsageRecord], today: date, days: int) -> list[DayUsage]:
    """One entry per calendar day ending today, oldest first; missing days are zero."""
    by_day: dict[date, list[DailyUsageRecord]] = defaultdict(list)
    for rec in records:
        by_day[rec.day].append(rec)
    return [
        _rollup(today - timedelta(days=offset), by_day.get(today - timedelta(days=offset), []))
        for offset in range(days - 1, -1, -1)
    ]


def classify_trend(slope: float, avg_daily: float) -> str:
    if avg_daily == 0:
        return "insufficient_data"
    if abs(slope) < avg_daily * STEADY_SLOPE_RATIO:
        return "steady"
    return "accelerating" if slope > 0 else "decelerating"


def summarize_daily(records: list[DailyUsageRecord], today: date) -> DailySummary:
    month = day_series(records, today, 30)
    week = month[-7:]

    history = sorted((r for r in records if r.day <= today), key=lambda r: r.day)
    recent = history[-TREND_DAYS:]
    ys = [float(r.total_tokens) for r in recent]

    if len(ys) < 2:
        trend, slope = "insufficient_data", 0.0
        avg_daily = ys[0] if ys else 0.0
    else:
        slope, _ = _linear_regression(list(range(len(ys))), ys)
        avg_daily = sum(ys) / len(ys)
        trend = classify_trend(slope, avg_daily)

    # linear extrapolation around the midpoint of each horizon
    proj_7d = int(avg_daily * 7 + slope * 7 * 3.5)
    proj_30d = int(avg_daily * 30 + slope * 30 * 15)

    logger.debug("Daily trend %s (slope %.1f over %d days)", trend, slope, len(ys))

    return DailySummary(
        today=month[-1],
        this_week=week,
        this_month=month,
        total_tokens_30d=sum(d.total_tokens for d in month),
        total_cost_30d=round(sum(d.total_cost for d in month), 4),
        avg_daily_tokens=round(avg_daily),
        trend=trend,
        trend_slope=round(slope, 1),
        projected_7d_tokens=max(0, proj_7d),
        projected_30d_tokens=max(0, proj_30d),
    )


def usage_status(percentage_used: float) -> Literal["safe", "warning", "critical"]:
    if percentage_used >= CRITICAL_PCT:
        return "critical"
    if percentage_used >= WARNING_PCT:
        return "warning"
    return "safe"


def _day_to_dict(d: DayUsage) -> dict[str, Any]:
    return {
        "date": d.day.isoformat(),
        "total_tokens": d.total_tokens,
        "total_cost": round(d.total_cost, 4),
        "models": {name: {"tokens": m.tokens, "cost": round(m.cost, 4)} for name, m in d.models.items()},
    }


def daily_summary_to_dict(s: DailySummary) -> dict[str, Any]:
    """Serialize a DailySummary to a JSON-safe dict."""
    return {
        "today": _day_to_dict(s.today),
        "this_week": [_day_to_dict(d) for d in s.this_week],
        "this_month": [_day_to_dict(d) for d in s.this_month],
        "total_tokens_30d": s.total_tokens_30d,
        "total_cost_30d": s.total_cost_30d,
        "avg_daily_tokens": s.avg_daily_tokens,
        "trend": s.trend,
        "trend_slope": s.trend_slope,
        "projected_7d_tokens": s.projected_7d_tokens,
        "projected_30d_tokens": s.projected_30d_tokens,
    }
