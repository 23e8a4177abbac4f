"""Tests for depletion forecasting."""

from __future__ import annotations

import json
from datetime import timedelta

import pytest

from tokenmeter.token_tracker.predictive import (
    PredictionEngine,
    format_depletion_time,
    prediction_to_dict,
)
from tests.conftest import NOW, make_burn, make_reset

M = timedelta(minutes=1)


class TestScenarios:
    def test_three_scenarios(self):
        s = PredictionEngine().scenarios(600, 10.0, NOW)
        assert s.realistic == NOW + 60 * M
        assert s.optimistic == NOW + timedelta(minutes=600 / 7)
        assert s.pessimistic == NOW + timedelta(minutes=600 / 14)
        assert s.pessimistic < s.realistic < s.optimistic

    def test_no_rate_no_depletion(self):
        s = PredictionEngine().scenarios(600, 0.0, NOW)
        assert s.realistic is None and s.optimistic is None and s.pessimistic is None

    def test_nothing_remaining(self):
        assert PredictionEngine().scenarios(0, 10.0, NOW).realistic is None


class TestConfidence:
    def test_stable_slow_mid_cycle(self):
        c = PredictionEngine().confidence(make_burn(10, confidence=80), make_reset(progress=50))
        assert c == 95

    def test_volatile_fast_early_cycle(self):
        burn = make_burn(400, "increasing", 60.0, confidence=80)
        assert PredictionEngine().confidence(burn, make_reset(progress=10)) == 45

    def test_floor(self):
        burn = make_burn(400, "increasing", 60.0, confidence=20)
        assert PredictionEngine().confidence(burn, make_reset(progress=10)) == 30


class TestRisk:
    @pytest.mark.parametrize(
        "remaining, level",
        [(6000, "low"), (1200, "medium"), (600, "high"), (150, "critical")],
    )
    def test_levels(self, remaining, level):
        risk = PredictionEngine().risk_level(remaining, make_burn(10), make_reset(minutes_until=300))
        assert risk == level

    def test_increasing_trend_raises_risk(self):
        engine = PredictionEngine()
        reset = make_reset(minutes_until=300)
        assert engine.risk_level(2100, make_burn(10), reset) == "low"
        assert engine.risk_level(2100, make_burn(10, "increasing", 30.0), reset) == "medium"

    def test_decreasing_trend_lowers_risk(self):
        engine = PredictionEngine()
        reset = make_reset(minutes_until=300)
        assert engine.risk_level(1500, make_burn(10), reset) == "medium"
        assert engine.risk_level(1500, make_burn(10, "decreasing", -30.0), reset) == "low"

    def test_idle_is_low(self):
        assert PredictionEngine().risk_level(0, make_burn(0), make_reset()) == "low"


class TestOnTrack:
    def test_outlasts_reset(self):
        assert PredictionEngine().on_track_for_reset(6000, make_burn(10), make_reset(minutes_until=300))

    def test_safety_buffer(self):
        # 300 minutes of tokens for a 300 minute cycle is not enough
        assert not PredictionEngine().on_track_for_reset(3000, make_burn(10), make_reset(minutes_until=300))

    def test_idle(self):
        assert PredictionEngine().on_track_for_reset(0, make_burn(0), make_reset())


class TestRecommendations:
    def test_budget_within_a_day(self):
        r = PredictionEngine().recommendations(48000, make_burn(10), make_reset(minutes_until=300), "low")
        assert r.daily_limit == 48000
        assert r.hourly_budget == 2000
        assert r.buffer_days == 2.3
        assert r.slow_down_required is False
        assert r.suggested_pacing == "Current pace is sustainable"

    def test_budget_over_days(self):
        r = PredictionEngine().recommendations(48000, make_burn(50), make_reset(minutes_until=3 * 24 * 60), "high")
        assert r.daily_limit == 16000
        assert r.hourly_budget == 666
        assert r.slow_down_required is True
        assert r.buffer_days == 0.0
        assert r.suggested_pacing == "Reduce usage significantly"

    def test_idle_buffer(self):
        r = PredictionEngine().recommendations(1000, make_burn(0), make_reset(), "low")
        assert r.buffer_days == 30.0


class TestPredict:
    def test_full_prediction(self):
        p = PredictionEngine().predict(600, make_burn(10), make_reset(minutes_until=300), NOW)
        assert p.depletion.estimated_time == NOW + 60 * M
        assert p.risk_level == "high"
        assert p.on_track_for_reset is False
        assert p.last_calculated == NOW

    def test_to_dict_is_json_safe(self):
        p = PredictionEngine().predict(0, make_burn(0), make_reset(), NOW)
        d = prediction_to_dict(p)
        json.dumps(d)
        assert d["depletion"]["estimated_time"] is None
        assert d["risk_level"] == "low"


class TestFormatting:
    @pytest.mark.parametrize(
        "offset, expected",
        [
            (-M, "Already depleted"),
            (45 * M, "45 minutes"),
            (120 * M, "2 hours"),
            (150 * M, "2h 30m"),
            (timedelta(days=3), "3 days"),
            (timedelta(days=1, hours=5), "1d 5h"),
        ],
    )
    def test_format_depletion_time(self, offset, expected):
        assert format_depletion_time(NOW + offset, NOW) == expected

    def test_no_depletion(self):
        assert format_depletion_time(None, NOW) == "No depletion predicted"


class TestAccuracy:
    def test_historical_confidence(self):
        assert PredictionEngine.historical_confidence(50, 5, 10) == 54
        assert PredictionEngine.historical_confidence(10, 0, 60) == 30
        assert PredictionEngine.historical_confidence(95, 20, 1) == 100

    def test_analyze_accuracy(self):
        history = [
            (NOW, NOW + 60 * M),
            (NOW, NOW + 180 * M),
            (None, NOW),
        ]
        acc = PredictionEngine.analyze_prediction_accuracy(history)
        assert acc.accuracy == 50.0
        assert acc.total_predictions == 3
        assert acc.accurate_predictions == 1
        assert acc.average_error_hours == 2.0

    def test_empty_history(self):
        acc = PredictionEngine.analyze_prediction_accuracy([])
        assert acc.accuracy == 0.0
        assert acc.total_predictions == 0
