"""Plan tier state machine.

States are the plan ladder ``Pro -> Max5 -> Max20 -> Custom``. All state
changes go through :func:`transition`, a pure function from
``(state, event)`` to ``(new_state, applied_switch)``, so the guards can be
tested without a manager instance. :class:`PlanManager` only holds the
current state and feeds events into it.
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Literal, Union

from tokenmeter.token_tracker.models import (
    PLAN_LADDER,
    PLAN_LIMITS,
    PlanType,
    SessionBlock,
)

logger = logging.getLogger(__name__)

MAX_SWITCH_HISTORY = 10
AUTO_SWITCH_MIN_CONFIDENCE = 70
CUSTOM_USAGE_BUFFER = 1.2  # 20% above the heaviest usage seen
CUSTOM_FLOOR_RATIO = 1.1  # at least 10% above Max20

TIER_CONFIDENCE: dict[PlanType, int] = {
    PlanType.PRO: 95,
    PlanType.MAX5: 90,
    PlanType.MAX20: 85,
    PlanType.CUSTOM: 80,
}

TIER_URGENCY: dict[PlanType, Literal["low", "medium", "high"]] = {
    PlanType.PRO: "low",
    PlanType.MAX5: "medium",
    PlanType.MAX20: "high",
    PlanType.CUSTOM: "high",
}

TIER_REASONING: dict[PlanType, str] = {
    PlanType.PRO: "Usage fits within Pro plan limits",
    PlanType.MAX5: "Usage exceeds Pro but fits Max5 plan",
    PlanType.MAX20: "Usage exceeds Max5 but fits Max20 plan",
    PlanType.CUSTOM: "Usage exceeds all standard plans",
}

PLAN_INFO: dict[PlanType, tuple[str, str, str]] = {
    PlanType.PRO: ("Pro", "Standard usage limit", "#10B981"),
    PlanType.MAX5: ("Max 5K", "Enhanced usage limit", "#3B82F6"),
    PlanType.MAX20: ("Max 20K", "High usage limit", "#8B5CF6"),
    PlanType.CUSTOM: ("Custom", "Unlimited usage", "#F59E0B"),
}


class SwitchTrigger(str, Enum):
    USAGE_EXCEEDED = "usage_exceeded"
    USER_MANUAL = "user_manual"
    HISTORY_ANALYSIS = "history_analysis"


# ── State ────────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class PlanSwitchEvent:
    timestamp: datetime
    from_plan: PlanType
    to_plan: PlanType
    trigger: SwitchTrigger
    tokens_at_switch: int
    confidence: int


@dataclass(frozen=True)
class PlanState:
    current_plan: PlanType = PlanType.PRO
    detected_plan: PlanType = PlanType.PRO
    auto_switch_enabled: bool = True
    plan_limits: dict[PlanType, int] = field(default_factory=lambda: dict(PLAN_LIMITS))
    switch_history: tuple[PlanSwitchEvent, ...] = ()  # newest last
    confidence: int = 0
    last_analysis: datetime | None = None

    @property
    def current_limit(self) -> int:
        return self.plan_limits[self.current_plan]


@dataclass
class PlanRecommendation:
    recommended_plan: PlanType
    confidence: int
    reasoning: str
    token_limit: int
    should_switch: bool
    urgency: Literal["low", "medium", "high"]


@dataclass
class PlanStats:
    total_switches: int
    auto_switches: int
    manual_switches: int
    most_used_plan: PlanType
    average_confidence: float


@dataclass
class PlanInfo:
    name: str
    limit: int
    description: str
    color: str


# ── Events ───────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class AnalysisRecorded:
    recommendation: PlanRecommendation
    at: datetime


@dataclass(frozen=True)
class AutoSwitchRequested:
    recommendation: PlanRecommendation
    current_tokens: int
    at: datetime
    trigger: SwitchTrigger = SwitchTrigger.USAGE_EXCEEDED


@dataclass(frozen=True)
class ManualSwitchRequested:
    to_plan: PlanType
    current_tokens: int
    at: datetime
    custom_limit: int | None = None


@dataclass(frozen=True)
class AutoSwitchToggled:
    enabled: bool


PlanEvent = Union[AnalysisRecorded, AutoSwitchRequested, ManualSwitchRequested, AutoSwitchToggled]


def _append_history(
    history: tuple[PlanSwitchEvent, ...], event: PlanSwitchEvent
) -> tuple[PlanSwitchEvent, ...]:
    return (history + (event,))[-MAX_SWITCH_HISTORY:]


def _switch(
    state: PlanState,
    to_plan: PlanType,
    trigger: SwitchTrigger,
    tokens: int,
    confidence: int,
    at: datetime,
    custom_limit: int | None,
) -> tuple[PlanState, PlanSwitchEvent]:
    applied = PlanSwitchEvent(
        timestamp=at,
        from_plan=state.current_plan,
        to_plan=to_plan,
        trigger=trigger,
        tokens_at_switch=tokens,
        confidence=confidence,
    )
    limits = state.plan_limits
    if to_plan == PlanType.CUSTOM and custom_limit:
        limits = {**limits, PlanType.CUSTOM: custom_limit}
    new_state = replace(
        state,
        current_plan=to_plan,
        plan_limits=limits,
        switch_history=_append_history(state.switch_history, applied),
    )
    return new_state, applied


def transition(state: PlanState, event: PlanEvent) -> tuple[PlanState, PlanSwitchEvent | None]:
    """Apply one event. Returns the new state and the switch it caused, if any."""
    if isinstance(event, AnalysisRecorded):
        rec = event.recommendation
        return replace(
            state,
            detected_plan=rec.recommended_plan,
            confidence=rec.confidence,
            last_analysis=event.at,
        ), None

    if isinstance(event, AutoSwitchToggled):
        return replace(state, auto_switch_enabled=event.enabled), None

    if isinstance(event, AutoSwitchRequested):
        rec = event.recommendation
        if not state.auto_switch_enabled:
            return state, None
        if rec.confidence < AUTO_SWITCH_MIN_CONFIDENCE:
            return state, None
        custom_grow = rec.recommended_plan == PlanType.CUSTOM and rec.should_switch
        if rec.recommended_plan == state.current_plan and not custom_grow:
            return state, None
        return _switch(
            state, rec.recommended_plan, event.trigger,
            event.current_tokens, rec.confidence, event.at, rec.token_limit,
        )

    if isinstance(event, ManualSwitchRequested):
        return _switch(
            state, event.to_plan, SwitchTrigger.USER_MANUAL,
            event.current_tokens, 100, event.at, event.custom_limit,
        )

    raise TypeError(f"Unknown plan event: {event!r}")


# ── Manager ──────────────────────────────────────────────────────────────────


class PlanManager:
    """Owns the one piece of cross-call state: the current :class:`PlanState`.

    Callers must serialise access; two analyses racing on the same manager
    can interleave their switch events.
    """

    def __init__(self, state: PlanState | None = None) -> None:
        self.state = state or PlanState()

    def _apply(self, event: PlanEvent) -> PlanSwitchEvent | None:
        self.state, applied = transition(self.state, event)
        return applied

    def recommend(self, current_tokens: int, blocks: list[SessionBlock]) -> PlanRecommendation:
        """Fit the heaviest usage seen onto the plan ladder (no state change)."""
        completed = [b.total_tokens for b in blocks if b.is_completed]
        peak = max([current_tokens, *completed])

        for plan in PLAN_LADDER:
            if plan == PlanType.CUSTOM:
                break
            if peak <= PLAN_LIMITS[plan]:
                return PlanRecommendation(
                    recommended_plan=plan,
                    confidence=TIER_CONFIDENCE[plan],
                    reasoning=TIER_REASONING[plan],
                    token_limit=PLAN_LIMITS[plan],
                    should_switch=self.state.current_plan != plan,
                    urgency=TIER_URGENCY[plan],
                )

        custom_limit = round(max(
            peak * CUSTOM_USAGE_BUFFER,
            PLAN_LIMITS[PlanType.MAX20] * CUSTOM_FLOOR_RATIO,
        ))
        return PlanRecommendation(
            recommended_plan=PlanType.CUSTOM,
            confidence=TIER_CONFIDENCE[PlanType.CUSTOM],
            reasoning=TIER_REASONING[PlanType.CUSTOM],
            token_limit=custom_limit,
            should_switch=(
                self.state.current_plan != PlanType.CUSTOM
                or self.state.plan_limits[PlanType.CUSTOM] < custom_limit
            ),
            urgency=TIER_URGENCY[PlanType.CUSTOM],
        )

    def analyze(
        self, current_tokens: int, blocks: list[SessionBlock], now: datetime
    ) -> PlanRecommendation:
        rec = self.recommend(current_tokens, blocks)
        self._apply(AnalysisRecorded(recommendation=rec, at=now))
        logger.debug(
            "Plan analysis: %s (confidence %d, switch=%s)",
            rec.recommended_plan.value, rec.confidence, rec.should_switch,
        )
        return rec

    def auto_switch(
        self,
        current_tokens: int,
        recommendation: PlanRecommendation,
        now: datetime,
        trigger: SwitchTrigger = SwitchTrigger.USAGE_EXCEEDED,
    ) -> PlanSwitchEvent | None:
        applied = self._apply(AutoSwitchRequested(
            recommendation=recommendation,
            current_tokens=current_tokens,
            at=now,
            trigger=trigger,
        ))
        if applied is not None:
            logger.info(
                "Auto-switched plan %s -> %s at %d tokens",
                applied.from_plan.value, applied.to_plan.value, current_tokens,
            )
        return applied

    def manual_switch(
        self,
        to_plan: PlanType,
        current_tokens: int,
        now: datetime,
        custom_limit: int | None = None,
    ) -> PlanSwitchEvent:
        applied = self._apply(ManualSwitchRequested(
            to_plan=to_plan,
            current_tokens=current_tokens,
            at=now,
            custom_limit=custom_limit,
        ))
        if applied is None:
            raise RuntimeError(f"Manual switch to {to_plan.value} was not applied")
        logger.info("Plan manually set to %s", to_plan.value)
        return applied

    def set_auto_switch_enabled(self, enabled: bool) -> None:
        self._apply(AutoSwitchToggled(enabled=enabled))

    def reset(self) -> None:
        self.state = PlanState()

    # ── Queries ──────────────────────────────────────────────────────────

    @property
    def current_limit(self) -> int:
        return self.state.current_limit

    def is_usage_exceeded(self, current_tokens: int) -> bool:
        return current_tokens > self.current_limit

    def usage_percentage(self, current_tokens: int) -> float:
        limit = self.current_limit
        return min(100.0, current_tokens / limit * 100) if limit > 0 else 0.0

    def switch_history(self) -> list[PlanSwitchEvent]:
        return list(self.state.switch_history)

    def plan_progression(self) -> list[PlanType]:
        return list(PLAN_LADDER)

    def plan_info(self, plan: PlanType) -> PlanInfo:
        name, description, color = PLAN_INFO[plan]
        return PlanInfo(
            name=name,
            limit=self.state.plan_limits[plan] if plan == PlanType.CUSTOM else PLAN_LIMITS[plan],
            description=description,
            color=color,
        )

    def plan_stats(self) -> PlanStats:
        history = self.state.switch_history
        manual = sum(1 for e in history if e.trigger == SwitchTrigger.USER_MANUAL)
        counts = Counter(e.to_plan for e in history)
        # ties go to the lower tier
        most_used = max(PLAN_LADDER, key=lambda p: (counts[p], -PLAN_LADDER.index(p)))
        return PlanStats(
            total_switches=len(history),
            auto_switches=len(history) - manual,
            manual_switches=manual,
            most_used_plan=most_used,
            average_confidence=(
                sum(e.confidence for e in history) / len(history) if history else 0.0
            ),
        )
