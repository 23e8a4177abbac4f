"""Tests for daily usage rollups."""

from __future__ import annotations

import json
from datetime import date, timedelta

import pytest

from tokenmeter.token_tracker.daily import (
    classify_trend,
    daily_summary_to_dict,
    day_series,
    summarize_daily,
    usage_status,
)
from tokenmeter.token_tracker.models import DailyUsageRecord, ModelUsage

TODAY = date(2026, 10, 19)


def rec(days_ago: int, tokens: int, cost: float = 0.0, models=()) -> DailyUsageRecord:
    return DailyUsageRecord(
        day=TODAY - timedelta(days=days_ago),
        reported_total=tokens,
        total_cost=cost,
        model_breakdowns=list(models),
    )


def ramp(values: list[int]) -> list[DailyUsageRecord]:
    """Records ending today, oldest value first."""
    n = len(values)
    return [rec(n - 1 - i, v) for i, v in enumerate(values)]


class TestSeries:
    def test_zero_filled_oldest_first(self):
        series = day_series([rec(0, 500), rec(2, 300)], TODAY, 7)
        assert len(series) == 7
        assert series[-1].day == TODAY
        assert series[-1].total_tokens == 500
        assert series[-2].total_tokens == 0
        assert series[-3].total_tokens == 300
        assert series[0].day == TODAY - timedelta(days=6)

    def test_models_merge(self):
        models_a = [ModelUsage(model_name="opus", input_tokens=100, cost=1.0)]
        models_b = [ModelUsage(model_name="opus", output_tokens=50, cost=0.5),
                    ModelUsage(model_name="haiku", input_tokens=10, cost=0.01)]
        (day,) = day_series([rec(0, 150, 1.5, models_a), rec(0, 10, 0.01, models_b)], TODAY, 1)
        assert day.total_tokens == 160
        assert day.models["opus"].tokens == 150
        assert day.models["opus"].cost == pytest.approx(1.5)
        assert day.models["haiku"].tokens == 10


class TestTrend:
    def test_steady(self):
        s = summarize_daily(ramp([1000] * 5), TODAY)
        assert s.trend == "steady"
        assert s.trend_slope == 0.0
        assert s.avg_daily_tokens == 1000
        assert s.projected_7d_tokens == 7000
        assert s.projected_30d_tokens == 30000

    def test_accelerating(self):
        s = summarize_daily(ramp([1000, 2000, 3000, 4000]), TODAY)
        assert s.trend == "accelerating"
        assert s.trend_slope == 1000.0
        assert s.projected_7d_tokens == 42000

    def test_decelerating_never_projects_negative(self):
        s = summarize_daily(ramp([4000, 3000, 2000, 1000]), TODAY)
        assert s.trend == "decelerating"
        assert s.projected_7d_tokens == 0

    def test_single_day(self):
        s = summarize_daily([rec(0, 800)], TODAY)
        assert s.trend == "insufficient_data"
        assert s.avg_daily_tokens == 800
        assert s.projected_7d_tokens == 5600

    def test_future_records_ignored(self):
        s = summarize_daily(ramp([1000] * 3) + [rec(-1, 99999)], TODAY)
        assert s.trend == "steady"
        assert s.total_tokens_30d == 3000

    def test_classify_trend(self):
        assert classify_trend(10, 0) == "insufficient_data"
        assert classify_trend(40, 1000) == "steady"
        assert classify_trend(-60, 1000) == "decelerating"


class TestSummary:
    def test_empty(self):
        s = summarize_daily([], TODAY)
        assert s.today.total_tokens == 0
        assert len(s.this_week) == 7
        assert len(s.this_month) == 30
        assert s.trend == "insufficient_data"
        assert s.projected_30d_tokens == 0

    def test_totals(self):
        s = summarize_daily([rec(0, 100, 0.5), rec(10, 200, 1.0), rec(40, 999, 9.0)], TODAY)
        assert s.today.total_tokens == 100
        assert s.total_tokens_30d == 300
        assert s.total_cost_30d == 1.5
        assert sum(d.total_tokens for d in s.this_week) == 100

    def test_to_dict(self):
        d = daily_summary_to_dict(summarize_daily(ramp([1000] * 3), TODAY))
        json.dumps(d)
        assert d["today"]["date"] == "2026-10-19"
        assert len(d["this_week"]) == 7


class TestUsageStatus:
    @pytest.mark.parametrize(
        "pct, status",
        [(0, "safe"), (69.9, "safe"), (70, "warning"), (89.9, "warning"), (90, "critical"), (120, "critical")],
    )
    def test_thresholds(self, pct, status):
        assert usage_status(pct) == status
