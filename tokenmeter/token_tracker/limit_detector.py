"""Infer a per-session token ceiling from historical blocks.

The detector looks at completed sessions from the lookback window, drops
the heaviest few as outliers, and either matches the remaining maximum to
a standard plan tier or derives a custom limit with a buffer on top.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Literal

from tokenmeter.token_tracker.models import PLAN_LIMITS, PlanType, SessionBlock, coerce_plan

logger = logging.getLogger(__name__)

PLAN_FIT_RATIO = 0.95
MIN_CUSTOM_BUFFER = 1_000
CUSTOM_BUFFER_RATIO = 0.10
EXCEEDED_SUGGESTION_RATIO = 1.1
FALLBACK_CONFIDENCE = 30


@dataclass
class LimitDetectionConfig:
    minimum_sessions: int = 5
    confidence_threshold: int = 80
    max_lookback_days: int = 30
    outlier_threshold: int = 95  # keep sessions below this percentile


@dataclass
class LimitAnalysisData:
    sessions_analyzed: int
    max_session_tokens: int
    average_session_tokens: int
    detection_date: datetime


@dataclass
class LimitRecommendation:
    suggested_limit: int
    reason_code: str
    should_update: bool


@dataclass
class TokenLimitDetection:
    detected_limit: int
    confidence: int
    detection_method: Literal["historical_max", "plan_standard", "user_set"]
    analysis_data: LimitAnalysisData
    recommendations: LimitRecommendation


@dataclass
class LimitValidation:
    is_valid: bool
    reason: str
    utilization_rate: float = 0.0


def recommended_plan(limit: int) -> PlanType:
    """Smallest standard tier whose ceiling covers ``limit``."""
    for plan in (PlanType.PRO, PlanType.MAX5, PlanType.MAX20):
        if limit <= PLAN_LIMITS[plan]:
            return plan
    return PlanType.CUSTOM


class TokenLimitDetector:
    def __init__(self, config: LimitDetectionConfig | None = None) -> None:
        self.config = config or LimitDetectionConfig()

    def _eligible(self, blocks: list[SessionBlock], now: datetime) -> list[SessionBlock]:
        cutoff = now - timedelta(days=self.config.max_lookback_days)
        return [
            b for b in blocks
            if b.is_completed and b.start_time >= cutoff and b.total_tokens > 0
        ]

    def _remove_outliers(self, blocks: list[SessionBlock]) -> list[SessionBlock]:
        if len(blocks) < 5:
            return blocks
        ordered = sorted(blocks, key=lambda b: b.total_tokens)
        cut = math.floor(len(ordered) * self.config.outlier_threshold / 100)
        return ordered[:cut] or ordered[:1]

    def detect(
        self,
        blocks: list[SessionBlock],
        now: datetime,
        current_plan: PlanType | str | None = None,
    ) -> TokenLimitDetection:
        plan = coerce_plan(current_plan)
        eligible = self._eligible(blocks, now)

        if len(eligible) < self.config.minimum_sessions:
            logger.debug(
                "Only %d usable sessions (need %d), using plan fallback",
                len(eligible), self.config.minimum_sessions,
            )
            return self._fallback(plan, now)

        cleaned = self._remove_outliers(eligible)
        counts = [b.total_tokens for b in cleaned]
        max_tokens = max(counts)
        avg_tokens = sum(counts) / len(counts)

        limit, method = self._select_limit(max_tokens, plan)
        confidence = self._confidence(cleaned, limit)
        recommendation = self._recommend(limit, confidence, max_tokens, plan)

        logger.debug(
            "Detected limit %d via %s from %d sessions (confidence %d)",
            limit, method, len(cleaned), confidence,
        )
        return TokenLimitDetection(
            detected_limit=limit,
            confidence=confidence,
            detection_method=method,
            analysis_data=LimitAnalysisData(
                sessions_analyzed=len(cleaned),
                max_session_tokens=max_tokens,
                average_session_tokens=round(avg_tokens),
                detection_date=now,
            ),
            recommendations=recommendation,
        )

    def _select_limit(
        self, max_tokens: int, plan: PlanType | None
    ) -> tuple[int, Literal["historical_max", "plan_standard"]]:
        if plan is not None and max_tokens <= PLAN_LIMITS[plan] * PLAN_FIT_RATIO:
            return PLAN_LIMITS[plan], "plan_standard"

        for tier in (PlanType.PRO, PlanType.MAX5, PlanType.MAX20):
            if max_tokens <= PLAN_LIMITS[tier] * PLAN_FIT_RATIO:
                return PLAN_LIMITS[tier], "plan_standard"

        buffer = max(MIN_CUSTOM_BUFFER, max_tokens * CUSTOM_BUFFER_RATIO)
        # nearest thousand
        return round((max_tokens + buffer) / 1000) * 1000, "historical_max"

    def _confidence(self, blocks: list[SessionBlock], limit: int) -> int:
        score = 50.0
        score += min(30, len(blocks) * 3)

        counts = [b.total_tokens for b in blocks]
        hi, lo = max(counts), min(counts)
        consistency = 1 - (hi - lo) / hi if lo > 0 else 0.0
        score += consistency * 20

        days = {b.start_time.date() for b in blocks}
        if len(days) > 1:
            score += min(15, len(days) * 3)

        if limit > PLAN_LIMITS[PlanType.MAX20]:
            score -= 10

        return max(20, min(100, round(score)))

    def _recommend(
        self,
        limit: int,
        confidence: int,
        max_tokens: int,
        plan: PlanType | None,
    ) -> LimitRecommendation:
        suggested: float = limit
        should_update = False

        if confidence >= self.config.confidence_threshold:
            should_update = True
            reason = "high_confidence_detection"
        elif plan is not None and max_tokens > PLAN_LIMITS[plan]:
            should_update = True
            reason = "current_plan_exceeded"
            suggested = max(limit, max_tokens * EXCEEDED_SUGGESTION_RATIO)
        else:
            reason = "low_confidence_keep_current"

        # Sessions that would fit a cheaper tier
        if plan is not None:
            fits_pro = max_tokens <= PLAN_LIMITS[PlanType.PRO] * PLAN_FIT_RATIO
            fits_max5 = max_tokens <= PLAN_LIMITS[PlanType.MAX5] * PLAN_FIT_RATIO
            if fits_pro and plan != PlanType.PRO:
                reason = "can_downgrade_to_pro"
                suggested = PLAN_LIMITS[PlanType.PRO]
                should_update = True
            elif fits_max5 and plan in (PlanType.MAX20, PlanType.CUSTOM):
                reason = "can_downgrade_to_max5"
                suggested = PLAN_LIMITS[PlanType.MAX5]
                should_update = True

        return LimitRecommendation(
            suggested_limit=round(suggested),
            reason_code=reason,
            should_update=should_update,
        )

    def _fallback(self, plan: PlanType | None, now: datetime) -> TokenLimitDetection:
        limit = PLAN_LIMITS[plan] if plan is not None else PLAN_LIMITS[PlanType.PRO]
        return TokenLimitDetection(
            detected_limit=limit,
            confidence=FALLBACK_CONFIDENCE,
            detection_method="plan_standard",
            analysis_data=LimitAnalysisData(
                sessions_analyzed=0,
                max_session_tokens=0,
                average_session_tokens=0,
                detection_date=now,
            ),
            recommendations=LimitRecommendation(
                suggested_limit=limit,
                reason_code="insufficient_data_fallback",
                should_update=False,
            ),
        )

    def recommended_plan(self, limit: int) -> PlanType:
        return recommended_plan(limit)

    def validate_limit(
        self, blocks: list[SessionBlock], proposed_limit: int, now: datetime
    ) -> LimitValidation:
        """Check a proposed limit against the largest eligible session."""
        eligible = self._eligible(blocks, now)
        if not eligible:
            return LimitValidation(is_valid=True, reason="no_data_to_validate")

        max_tokens = max(b.total_tokens for b in eligible)
        utilization = max_tokens / proposed_limit * 100 if proposed_limit > 0 else 0.0

        if proposed_limit < max_tokens:
            return LimitValidation(False, "limit_too_low_for_historical_usage", utilization)
        if utilization < 50:
            return LimitValidation(True, "limit_provides_good_buffer", utilization)
        if utilization < 80:
            return LimitValidation(True, "limit_adequate_for_usage", utilization)
        return LimitValidation(True, "limit_tight_but_sufficient", utilization)
