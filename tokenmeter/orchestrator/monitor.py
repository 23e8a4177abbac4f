"""Monitoring orchestrator: one analysis per refresh cycle.

``UsageMonitor.analyze_usage`` runs the reset, burn rate, plan, limit and
prediction steps in order and bundles their outputs with an aggregate
risk assessment. The monitor owns its collaborators; build a default
graph with :meth:`UsageMonitor.from_settings`.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Literal

from tokenmeter.config import Settings
from tokenmeter.display import ProgressBars, render_bars
from tokenmeter.notifications import Notification, NotificationType
from tokenmeter.token_tracker.burn_rate import BurnRateAnalytics, BurnRateAnalyzer
from tokenmeter.token_tracker.limit_detector import (
    LimitDetectionConfig,
    TokenLimitDetection,
    TokenLimitDetector,
)
from tokenmeter.token_tracker.models import PlanType, SessionBlock
from tokenmeter.token_tracker.plan_manager import (
    PlanManager,
    PlanRecommendation,
    PlanSwitchEvent,
)
from tokenmeter.token_tracker.predictive import (
    PredictionEngine,
    PredictionInfo,
    prediction_to_dict,
)
from tokenmeter.token_tracker.reset_time import (
    EnhancedResetTimeInfo,
    ResetSchedule,
    ResetTimeService,
    resolve_timezone,
)

logger = logging.getLogger(__name__)

RiskLevel = Literal["low", "medium", "high", "critical"]

RISK_ORDER: dict[str, int] = {"low": 0, "medium": 1, "high": 2, "critical": 3}

RAPID_TREND_PCT = 25.0

LEVEL_RECOMMENDATIONS: dict[str, list[str]] = {
    "critical": [
        "Immediate action required - stop non-essential usage",
        "Consider upgrading plan if available",
    ],
    "high": ["Reduce token usage significantly", "Monitor usage closely"],
    "medium": ["Consider moderating usage pace", "Review usage patterns"],
    "low": ["Current usage is sustainable"],
}


@dataclass
class MonitoringConfig:
    enable_auto_switching: bool = True
    auto_switch_confidence: int = 80
    limit_detection_confidence: int = 75
    prediction_confidence: int = 70


@dataclass
class RiskAssessment:
    level: RiskLevel = "low"
    factors: list[str] = field(default_factory=list)
    recommendations: list[str] = field(default_factory=list)

    def escalate(self, level: RiskLevel, factor: str) -> None:
        self.factors.append(factor)
        if RISK_ORDER[level] > RISK_ORDER[self.level]:
            self.level = level


@dataclass
class AdvancedUsageAnalytics:
    reset_info: EnhancedResetTimeInfo
    burn_rate: BurnRateAnalytics
    plan_recommendation: PlanRecommendation
    prediction: PredictionInfo
    limit_detection: TokenLimitDetection
    risk_assessment: RiskAssessment
    current_plan: PlanType
    current_tokens: int
    token_limit: int
    plan_switch: PlanSwitchEvent | None
    last_updated: datetime


@dataclass
class StatusSummary:
    emoji: str
    status: str
    details: str


class UsageMonitor:
    """Composes the analytics components into one result per refresh.

    The only state carried between calls is the plan manager's
    ``PlanState``; serialise calls to :meth:`analyze_usage` on one monitor.
    """

    def __init__(
        self,
        reset_service: ResetTimeService | None = None,
        burn_rate_analyzer: BurnRateAnalyzer | None = None,
        plan_manager: PlanManager | None = None,
        limit_detector: TokenLimitDetector | None = None,
        prediction_engine: PredictionEngine | None = None,
        config: MonitoringConfig | None = None,
    ) -> None:
        self.reset_service = reset_service or ResetTimeService()
        self.burn_rate_analyzer = burn_rate_analyzer or BurnRateAnalyzer()
        self.plan_manager = plan_manager or PlanManager()
        self.limit_detector = limit_detector or TokenLimitDetector()
        self.prediction_engine = prediction_engine or PredictionEngine()
        if config is None:
            # an injected plan manager keeps its own auto-switch flag
            config = MonitoringConfig(
                enable_auto_switching=self.plan_manager.state.auto_switch_enabled,
            )
        else:
            self.plan_manager.set_auto_switch_enabled(config.enable_auto_switching)
        self.config = config

    @classmethod
    def from_settings(cls, s: Settings) -> UsageMonitor:
        """Build a monitor with every collaborator configured from ``s``."""
        schedule = ResetSchedule(
            type=s.reset_type,  # type: ignore[arg-type]
            timezone=s.reset_timezone,
            reset_hours=list(s.reset_hours),
            monthly_reset_day=s.monthly_reset_day,
        )
        tz, _ = resolve_timezone(s.reset_timezone)
        return cls(
            reset_service=ResetTimeService(schedule),
            burn_rate_analyzer=BurnRateAnalyzer(
                window=timedelta(minutes=s.analysis_window_minutes),
                trend_threshold_pct=s.trend_threshold_pct,
                tz=tz,
            ),
            limit_detector=TokenLimitDetector(LimitDetectionConfig(
                minimum_sessions=s.limit_minimum_sessions,
                confidence_threshold=s.limit_confidence_threshold,
                max_lookback_days=s.limit_max_lookback_days,
                outlier_threshold=s.limit_outlier_percentile,
            )),
            config=MonitoringConfig(
                enable_auto_switching=s.auto_switch_enabled,
                auto_switch_confidence=s.auto_switch_confidence,
                limit_detection_confidence=s.limit_detection_confidence,
                prediction_confidence=s.prediction_confidence,
            ),
        )

    # -- Analysis -------------------------------------------------------------

    def analyze_usage(
        self, blocks: list[SessionBlock], current_tokens: int, now: datetime
    ) -> AdvancedUsageAnalytics:
        reset_info = self.reset_service.reset_info(now)
        burn_rate = self.burn_rate_analyzer.analyze(blocks, now)

        recommendation = self.plan_manager.analyze(current_tokens, blocks, now)
        switched = None
        if (
            self.config.enable_auto_switching
            and recommendation.confidence >= self.config.auto_switch_confidence
        ):
            switched = self.plan_manager.auto_switch(current_tokens, recommendation, now)

        current_plan = self.plan_manager.state.current_plan
        limit_detection = self.limit_detector.detect(blocks, now, current_plan)

        token_limit = self.plan_manager.current_limit
        tokens_remaining = max(0, token_limit - current_tokens)
        prediction = self.prediction_engine.predict(tokens_remaining, burn_rate, reset_info, now)

        risk = self.assess_risk(reset_info, burn_rate, prediction, recommendation, limit_detection)

        logger.debug(
            "Analysis: plan=%s tokens=%d/%d risk=%s",
            current_plan.value, current_tokens, token_limit, risk.level,
        )
        return AdvancedUsageAnalytics(
            reset_info=reset_info,
            burn_rate=burn_rate,
            plan_recommendation=recommendation,
            prediction=prediction,
            limit_detection=limit_detection,
            risk_assessment=risk,
            current_plan=current_plan,
            current_tokens=current_tokens,
            token_limit=token_limit,
            plan_switch=switched,
            last_updated=now,
        )

    def assess_risk(
        self,
        reset_info: EnhancedResetTimeInfo,
        burn_rate: BurnRateAnalytics,
        prediction: PredictionInfo,
        recommendation: PlanRecommendation,
        limit_detection: TokenLimitDetection | None = None,
    ) -> RiskAssessment:
        risk = RiskAssessment()

        if reset_info.is_in_critical_period:
            risk.escalate("medium", "Approaching reset deadline")

        velocity = burn_rate.velocity.classification
        if velocity == "very_fast":
            risk.escalate("high", "Very high token consumption rate")
        elif velocity == "fast":
            risk.escalate("medium", "High token consumption rate")

        if burn_rate.trend.direction == "increasing" and burn_rate.trend.percentage > RAPID_TREND_PCT:
            risk.escalate("medium", "Usage rate is increasing rapidly")

        if prediction.risk_level == "critical":
            risk.escalate("critical", "Critical depletion risk")
        elif prediction.risk_level == "high":
            risk.escalate("high", "High depletion risk")

        if recommendation.urgency == "high":
            risk.escalate("high", "Plan upgrade urgently needed")

        risk.recommendations.extend(LEVEL_RECOMMENDATIONS[risk.level])

        if prediction.recommendations.slow_down_required:
            risk.recommendations.append(
                f"Recommended daily limit: {prediction.recommendations.daily_limit} tokens"
            )
        if recommendation.should_switch:
            risk.recommendations.append(
                f"Consider switching to {recommendation.recommended_plan.value} plan"
            )

        if (
            limit_detection is not None
            and limit_detection.recommendations.should_update
            and limit_detection.confidence >= self.config.limit_detection_confidence
        ):
            risk.recommendations.append(
                f"Detected session limit of {limit_detection.recommendations.suggested_limit} tokens "
                f"({limit_detection.recommendations.reason_code})"
            )
        if prediction.depletion.confidence < self.config.prediction_confidence:
            risk.recommendations.append(
                f"Low forecast confidence ({prediction.depletion.confidence}%) - treat depletion estimates as rough"
            )

        return risk

    # -- Presentation ---------------------------------------------------------

    def notification(self, analytics: AdvancedUsageAnalytics) -> Notification | None:
        risk = analytics.risk_assessment
        rec = analytics.plan_recommendation
        velocity = analytics.burn_rate.velocity

        if risk.level == "critical":
            return Notification(
                NotificationType.ERROR,
                "Critical Usage Alert",
                "Tokens will be depleted soon. Immediate action required.",
            )
        if risk.level == "high":
            return Notification(
                NotificationType.WARNING,
                "High Usage Warning",
                f"Usage rate is {velocity.emoji} {velocity.classification}. Consider reducing usage.",
            )
        if rec.should_switch and rec.urgency == "high":
            return Notification(
                NotificationType.WARNING,
                "Plan Upgrade Recommended",
                f"Consider upgrading to {rec.recommended_plan.value} plan for better limits.",
            )
        if analytics.prediction.on_track_for_reset and risk.level == "low":
            return Notification(
                NotificationType.INFO,
                "Usage On Track",
                "Current usage pace is sustainable until next reset.",
            )
        return None

    def status_summary(self, analytics: AdvancedUsageAnalytics) -> StatusSummary:
        emoji = analytics.burn_rate.velocity.emoji
        level = analytics.risk_assessment.level
        if level == "critical":
            return StatusSummary(emoji, "Critical", "Immediate attention required")
        if level == "high":
            return StatusSummary(emoji, "High Risk", "Monitor usage closely")
        if level == "medium":
            return StatusSummary(emoji, "Moderate", "Usage trending up")
        details = "On track for reset" if analytics.prediction.on_track_for_reset else "Usage within limits"
        return StatusSummary(emoji, "Stable", details)

    def progress_bars(self, analytics: AdvancedUsageAnalytics) -> ProgressBars:
        limit = analytics.token_limit
        token_pct = analytics.current_tokens / limit * 100 if limit > 0 else 0.0
        summary = self.status_summary(analytics)
        return render_bars(
            token_pct,
            analytics.reset_info.cycle_progress,
            summary.emoji,
            summary.status,
            summary.details,
        )

    # -- Plan control -----------------------------------------------------------

    def manual_plan_switch(
        self,
        to_plan: PlanType,
        current_tokens: int,
        now: datetime,
        custom_limit: int | None = None,
    ) -> PlanSwitchEvent:
        return self.plan_manager.manual_switch(to_plan, current_tokens, now, custom_limit)

    def set_auto_switching(self, enabled: bool) -> None:
        self.config.enable_auto_switching = enabled
        self.plan_manager.set_auto_switch_enabled(enabled)


# -- Serialization ----------------------------------------------------------


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def analytics_to_dict(a: AdvancedUsageAnalytics) -> dict[str, Any]:
    """Serialize an AdvancedUsageAnalytics to a JSON-safe dict."""
    r = a.reset_info
    b = a.burn_rate
    p = a.plan_recommendation
    d = a.limit_detection
    return {
        "reset_info": {
            "next_reset_time": r.next_reset_time.isoformat(),
            "last_reset_time": r.last_reset_time.isoformat(),
            "time_until_reset_seconds": int(r.time_until_reset.total_seconds()),
            "time_since_last_reset_seconds": int(r.time_since_last_reset.total_seconds()),
            "reset_schedule": r.reset_schedule,
            "timezone": r.timezone,
            "cycle_progress": round(r.cycle_progress, 1),
            "is_in_critical_period": r.is_in_critical_period,
            "formatted_time_until_reset": r.formatted_time_until_reset,
            "formatted_next_reset_time": r.formatted_next_reset_time,
            "confidence": r.confidence,
            "reason_code": r.reason_code,
            "timezone_fallback": r.timezone_fallback,
        },
        "burn_rate": {
            "current": round(b.current, 2),
            "hourly": round(b.hourly, 2),
            "trend": {"direction": b.trend.direction, "percentage": b.trend.percentage},
            "velocity": {
                "classification": b.velocity.classification,
                "threshold": b.velocity.threshold if b.velocity.threshold != float("inf") else None,
            },
            "peak_hour": b.peak_hour,
            "confidence": b.confidence,
            "last_calculated": b.last_calculated.isoformat(),
        },
        "plan_recommendation": {
            "recommended_plan": p.recommended_plan.value,
            "confidence": p.confidence,
            "reasoning": p.reasoning,
            "token_limit": p.token_limit,
            "should_switch": p.should_switch,
            "urgency": p.urgency,
        },
        "prediction": prediction_to_dict(a.prediction),
        "limit_detection": {
            "detected_limit": d.detected_limit,
            "confidence": d.confidence,
            "detection_method": d.detection_method,
            "sessions_analyzed": d.analysis_data.sessions_analyzed,
            "max_session_tokens": d.analysis_data.max_session_tokens,
            "average_session_tokens": d.analysis_data.average_session_tokens,
            "suggested_limit": d.recommendations.suggested_limit,
            "reason_code": d.recommendations.reason_code,
            "should_update": d.recommendations.should_update,
        },
        "risk_assessment": {
            "level": a.risk_assessment.level,
            "factors": a.risk_assessment.factors,
            "recommendations": a.risk_assessment.recommendations,
        },
        "current_plan": a.current_plan.value,
        "current_tokens": a.current_tokens,
        "token_limit": a.token_limit,
        "plan_switch": None if a.plan_switch is None else {
            "timestamp": a.plan_switch.timestamp.isoformat(),
            "from_plan": a.plan_switch.from_plan.value,
            "to_plan": a.plan_switch.to_plan.value,
            "trigger": a.plan_switch.trigger.value,
            "tokens_at_switch": a.plan_switch.tokens_at_switch,
            "confidence": a.plan_switch.confidence,
        },
        "last_updated": _iso(a.last_updated),
    }
