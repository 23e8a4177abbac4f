"""Depletion forecasting: scenarios, risk and pacing.

Combines the current burn rate, the reset cycle and the tokens left to
predict:
- When the quota runs out under slower / current / faster usage
- Whether the quota lasts until the next reset
- A risk level and a daily / hourly budget to stay on track

Pure arithmetic over the analyzer outputs; nothing is remembered between
calls.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Literal

from tokenmeter.token_tracker.burn_rate import BurnRateAnalytics
from tokenmeter.token_tracker.formatting import minutes
from tokenmeter.token_tracker.reset_time import EnhancedResetTimeInfo

logger = logging.getLogger(__name__)

SCENARIO_MULTIPLIERS: dict[str, float] = {
    "optimistic": 0.7,  # 30% slower usage
    "realistic": 1.0,
    "pessimistic": 1.4,  # 40% faster usage
}

MIN_CONFIDENCE = 30
SAFETY_BUFFER = 1.1  # must outlast the reset by 10%
NO_USAGE_BUFFER_DAYS = 30.0
ACCURATE_WITHIN = timedelta(hours=2)

# minimum % of the reset window the quota must cover, checked in order
RISK_THRESHOLDS: tuple[tuple[str, float], ...] = (
    ("low", 50),
    ("medium", 25),
    ("high", 10),
)

PACING: dict[str, str] = {
    "critical": "Immediate usage reduction required",
    "high": "Reduce usage significantly",
    "medium": "Moderate usage reduction recommended",
    "low": "Current pace is sustainable",
}

RISK_ICONS: dict[str, str] = {
    "low": "🟢",
    "medium": "🟡",
    "high": "🟠",
    "critical": "🔴",
}

RiskLevel = Literal["low", "medium", "high", "critical"]


@dataclass
class PredictionScenarios:
    optimistic: datetime | None = None
    realistic: datetime | None = None
    pessimistic: datetime | None = None


@dataclass
class Depletion:
    estimated_time: datetime | None
    confidence: int
    scenarios: PredictionScenarios


@dataclass
class PredictionRecommendations:
    daily_limit: int
    hourly_budget: int
    slow_down_required: bool
    buffer_days: float
    suggested_pacing: str


@dataclass
class PredictionInfo:
    depletion: Depletion
    recommendations: PredictionRecommendations
    on_track_for_reset: bool
    risk_level: RiskLevel
    last_calculated: datetime


@dataclass
class PredictionAccuracy:
    accuracy: float  # % of evaluated predictions within two hours
    total_predictions: int
    accurate_predictions: int
    average_error_hours: float


class PredictionEngine:
    def __init__(self, multipliers: dict[str, float] | None = None) -> None:
        self.multipliers = multipliers or dict(SCENARIO_MULTIPLIERS)

    def predict(
        self,
        tokens_remaining: int,
        burn_rate: BurnRateAnalytics,
        reset_info: EnhancedResetTimeInfo,
        now: datetime,
    ) -> PredictionInfo:
        scenarios = self.scenarios(tokens_remaining, burn_rate.current, now)
        risk = self.risk_level(tokens_remaining, burn_rate, reset_info)

        info = PredictionInfo(
            depletion=Depletion(
                estimated_time=scenarios.realistic,
                confidence=self.confidence(burn_rate, reset_info),
                scenarios=scenarios,
            ),
            recommendations=self.recommendations(tokens_remaining, burn_rate, reset_info, risk),
            on_track_for_reset=self.on_track_for_reset(tokens_remaining, burn_rate, reset_info),
            risk_level=risk,
            last_calculated=now,
        )
        logger.debug(
            "Prediction: risk=%s on_track=%s depletion=%s",
            risk, info.on_track_for_reset, scenarios.realistic,
        )
        return info

    def scenarios(self, tokens_remaining: int, rate: float, now: datetime) -> PredictionScenarios:
        result = PredictionScenarios()
        if tokens_remaining <= 0 or rate <= 0:
            return result
        for name, multiplier in self.multipliers.items():
            adjusted = rate * multiplier
            if adjusted > 0:
                setattr(result, name, now + timedelta(minutes=tokens_remaining / adjusted))
        return result

    def confidence(self, burn_rate: BurnRateAnalytics, reset_info: EnhancedResetTimeInfo) -> int:
        score = burn_rate.confidence

        if burn_rate.trend.direction == "stable":
            score += 10
        elif abs(burn_rate.trend.percentage) > 50:
            score -= 15

        if reset_info.cycle_progress > 75:
            score += 5
        elif reset_info.cycle_progress < 25:
            score -= 10

        velocity = burn_rate.velocity.classification
        if velocity == "slow":
            score += 5
        elif velocity == "very_fast":
            score -= 10

        return max(MIN_CONFIDENCE, min(100, round(score)))

    def on_track_for_reset(
        self,
        tokens_remaining: int,
        burn_rate: BurnRateAnalytics,
        reset_info: EnhancedResetTimeInfo,
    ) -> bool:
        if burn_rate.current <= 0:
            return True
        minutes_to_depletion = tokens_remaining / burn_rate.current
        return minutes_to_depletion / SAFETY_BUFFER > minutes(reset_info.time_until_reset)

    def risk_level(
        self,
        tokens_remaining: int,
        burn_rate: BurnRateAnalytics,
        reset_info: EnhancedResetTimeInfo,
    ) -> RiskLevel:
        if burn_rate.current <= 0:
            return "low"

        minutes_to_depletion = tokens_remaining / burn_rate.current
        minutes_until_reset = minutes(reset_info.time_until_reset)
        pct = minutes_to_depletion / minutes_until_reset * 100 if minutes_until_reset > 0 else 100.0

        if burn_rate.trend.direction == "increasing":
            pct -= 20
        elif burn_rate.trend.direction == "decreasing":
            pct += 10

        for level, threshold in RISK_THRESHOLDS:
            if pct > threshold:
                return level  # type: ignore[return-value]
        return "critical"

    def recommendations(
        self,
        tokens_remaining: int,
        burn_rate: BurnRateAnalytics,
        reset_info: EnhancedResetTimeInfo,
        risk: RiskLevel,
    ) -> PredictionRecommendations:
        hours_until_reset = reset_info.time_until_reset.total_seconds() / 3600
        days_until_reset = max(1.0, hours_until_reset / 24)

        daily_limit = math.floor(tokens_remaining / days_until_reset)
        hourly_budget = math.floor(daily_limit / 24)

        if burn_rate.current > 0:
            buffer_days = max(0.0, tokens_remaining / (burn_rate.current * 60 * 24) - days_until_reset)
        else:
            buffer_days = NO_USAGE_BUFFER_DAYS

        return PredictionRecommendations(
            daily_limit=daily_limit,
            hourly_budget=hourly_budget,
            slow_down_required=burn_rate.hourly * 24 > daily_limit,
            buffer_days=round(buffer_days, 1),
            suggested_pacing=PACING[risk],
        )

    # ── Extras ───────────────────────────────────────────────────────────

    @staticmethod
    def historical_confidence(accuracy: float, data_points: int, time_range_days: float) -> int:
        """Confidence from past accuracy, more points helping and stale data hurting."""
        score = accuracy + min(20, data_points * 2) - max(0.0, (time_range_days - 7) * 2)
        return max(MIN_CONFIDENCE, min(100, round(score)))

    @staticmethod
    def analyze_prediction_accuracy(
        history: list[tuple[datetime | None, datetime | None]],
    ) -> PredictionAccuracy:
        """Score ``(predicted, actual)`` depletion pairs; incomplete pairs are skipped."""
        errors = [
            abs(predicted - actual)
            for predicted, actual in history
            if predicted is not None and actual is not None
        ]
        accurate = sum(1 for e in errors if e <= ACCURATE_WITHIN)
        avg_hours = sum(e.total_seconds() for e in errors) / 3600 / len(errors) if errors else 0.0
        return PredictionAccuracy(
            accuracy=round(accurate / len(errors) * 100, 1) if errors else 0.0,
            total_predictions=len(history),
            accurate_predictions=accurate,
            average_error_hours=round(avg_hours, 1),
        )


def format_depletion_time(depletion: datetime | None, now: datetime) -> str:
    if depletion is None:
        return "No depletion predicted"
    diff = depletion - now
    if diff <= timedelta():
        return "Already depleted"

    total_minutes = int(diff.total_seconds() // 60)
    total_hours, mins = divmod(total_minutes, 60)
    days, hours = divmod(total_hours, 24)
    if days > 0:
        return f"{days}d {hours}h" if hours > 0 else f"{days} days"
    if total_hours > 0:
        return f"{total_hours}h {mins}m" if mins > 0 else f"{total_hours} hours"
    return f"{total_minutes} minutes"


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def prediction_to_dict(p: PredictionInfo) -> dict[str, Any]:
    """Serialize a PredictionInfo to a JSON-safe dict."""
    s = p.depletion.scenarios
    r = p.recommendations
    return {
        "depletion": {
            "estimated_time": _iso(p.depletion.estimated_time),
            "confidence": p.depletion.confidence,
            "scenarios": {
                "optimistic": _iso(s.optimistic),
                "realistic": _iso(s.realistic),
                "pessimistic": _iso(s.pessimistic),
            },
        },
        "recommendations": {
            "daily_limit": r.daily_limit,
            "hourly_budget": r.hourly_budget,
            "slow_down_required": r.slow_down_required,
            "buffer_days": r.buffer_days,
            "suggested_pacing": r.suggested_pacing,
        },
        "on_track_for_reset": p.on_track_for_reset,
        "risk_level": p.risk_level,
        "last_calculated": p.last_calculated.isoformat(),
    }
