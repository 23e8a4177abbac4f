"""Rolling-window session tracking.

Keeps a fixed 5-hour window of session blocks and decides which block is
the "current" one: the active block if there is one, otherwise the newest
block if it ended less than the gap threshold ago (the user is probably
still working).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Literal

from tokenmeter.token_tracker.formatting import format_short_duration, minutes
from tokenmeter.token_tracker.models import SessionBlock

logger = logging.getLogger(__name__)

WINDOW_DURATION = timedelta(hours=5)
SESSION_GAP_THRESHOLD = timedelta(minutes=10)
NOMINAL_SESSION_LENGTH = timedelta(hours=1)
TREND_THRESHOLD_PCT = 15.0
RECENT_SESSION_LIMIT = 10


@dataclass
class TrackedSession:
    """A non-gap block seen through the tracker's window."""

    block: SessionBlock
    duration: timedelta

    @property
    def id(self) -> str:
        return self.block.id

    @property
    def tokens_used(self) -> int:
        return self.block.total_tokens

    @property
    def cost_usd(self) -> float:
        return self.block.cost_usd

    @property
    def is_active(self) -> bool:
        return self.block.is_active

    @property
    def session_type(self) -> Literal["active", "completed"]:
        return "active" if self.block.is_active else "completed"


@dataclass
class SessionWindow:
    start_time: datetime
    end_time: datetime
    duration: timedelta
    sessions: list[TrackedSession] = field(default_factory=list)
    total_tokens: int = 0
    total_cost: float = 0.0


@dataclass
class SessionTracking:
    """Snapshot of the rolling window at one instant."""

    current_session: TrackedSession | None
    window: SessionWindow
    recent_sessions: list[TrackedSession]  # newest first
    sessions_in_window: int
    average_session_length: timedelta
    last_activity: datetime | None
    computed_at: datetime


@dataclass
class SessionProgress:
    window_progress: float  # % of the 5h window elapsed since its first session
    current_session_progress: float  # % of a nominal 1h session
    time_in_window: timedelta
    efficiency: float  # tokens per minute of session time


@dataclass
class SessionTrend:
    trend: Literal["increasing", "decreasing", "stable"]
    recent_average: float
    historical_average: float
    trend_percentage: float


@dataclass
class SessionSummary:
    current_status: str
    window_summary: str
    efficiency: str
    recommendation: str


class SessionTracker:
    """Derives the rolling session window from the latest block list.

    Stateless between calls: every ``track()`` rebuilds the window from
    scratch, so a later call simply supersedes an earlier one.
    """

    def __init__(
        self,
        window_duration: timedelta = WINDOW_DURATION,
        gap_threshold: timedelta = SESSION_GAP_THRESHOLD,
        trend_threshold_pct: float = TREND_THRESHOLD_PCT,
    ) -> None:
        self.window_duration = window_duration
        self.gap_threshold = gap_threshold
        self.trend_threshold_pct = trend_threshold_pct

    def track(self, blocks: list[SessionBlock], now: datetime) -> SessionTracking:
        sessions = [
            TrackedSession(block=b, duration=b.effective_end(now) - b.start_time)
            for b in blocks
            if not b.is_gap
        ]
        sessions.sort(key=lambda s: s.block.start_time, reverse=True)

        window_start = now - self.window_duration
        in_window = [s for s in sessions if s.block.start_time >= window_start]

        window = SessionWindow(
            start_time=window_start,
            end_time=now,
            duration=self.window_duration,
            sessions=in_window,
            total_tokens=sum(s.tokens_used for s in in_window),
            total_cost=sum(s.cost_usd for s in in_window),
        )

        current = self._current_session(sessions, now)
        if current is None:
            last_activity = None
        elif current.is_active:
            last_activity = now
        else:
            last_activity = current.block.effective_end(now)

        completed = [s for s in in_window if not s.is_active]
        if completed:
            average = sum((s.duration for s in completed), timedelta()) / len(completed)
        else:
            average = timedelta()

        logger.debug(
            "Tracked %d sessions in window (%d tokens), current=%s",
            len(in_window), window.total_tokens, current.id if current else None,
        )

        return SessionTracking(
            current_session=current,
            window=window,
            recent_sessions=in_window[:RECENT_SESSION_LIMIT],
            sessions_in_window=len(in_window),
            average_session_length=average,
            last_activity=last_activity,
            computed_at=now,
        )

    def _current_session(
        self, sessions: list[TrackedSession], now: datetime
    ) -> TrackedSession | None:
        active = next((s for s in sessions if s.is_active), None)
        if active is not None:
            return active
        if not sessions:
            return None
        newest = sessions[0]
        if now - newest.block.effective_end(now) < self.gap_threshold:
            return newest
        return None

    def progress(self, tracking: SessionTracking) -> SessionProgress:
        window = tracking.window
        now = tracking.computed_at

        if window.sessions:
            first_start = min(s.block.start_time for s in window.sessions)
            elapsed = now - first_start
            window_progress = min(100.0, max(0.0, elapsed / self.window_duration * 100))
        else:
            window_progress = 0.0

        current = tracking.current_session
        current_progress = (
            min(100.0, current.duration / NOMINAL_SESSION_LENGTH * 100) if current else 0.0
        )

        time_in_window = sum((s.duration for s in window.sessions), timedelta())
        total_minutes = minutes(time_in_window)
        efficiency = window.total_tokens / total_minutes if total_minutes > 0 else 0.0

        return SessionProgress(
            window_progress=window_progress,
            current_session_progress=current_progress,
            time_in_window=time_in_window,
            efficiency=efficiency,
        )

    def trend(self, tracking: SessionTracking) -> SessionTrend:
        """Compare the three newest sessions with the three before them."""
        recent = tracking.recent_sessions[:3]
        older = tracking.recent_sessions[3:6]

        recent_avg = sum(s.tokens_used for s in recent) / len(recent) if recent else 0.0
        older_avg = sum(s.tokens_used for s in older) / len(older) if older else 0.0

        direction: Literal["increasing", "decreasing", "stable"] = "stable"
        pct = 0.0
        if older_avg > 0:
            pct = (recent_avg - older_avg) / older_avg * 100
            if abs(pct) > self.trend_threshold_pct:
                direction = "increasing" if pct > 0 else "decreasing"

        return SessionTrend(
            trend=direction,
            recent_average=recent_avg,
            historical_average=older_avg,
            trend_percentage=round(pct, 1),
        )

    def summary(self, tracking: SessionTracking) -> SessionSummary:
        progress = self.progress(tracking)
        trend = self.trend(tracking)
        current = tracking.current_session

        if current:
            status = f"Active session: {format_short_duration(current.duration)}"
        else:
            status = "No active session"

        hours = int(self.window_duration.total_seconds() // 3600)
        window_summary = f"{len(tracking.window.sessions)} sessions in {hours}h window"
        efficiency = (
            f"{round(progress.efficiency)} tokens/min" if progress.efficiency > 0 else "No activity"
        )

        if trend.trend == "increasing" and trend.trend_percentage > 30:
            recommendation = "Usage increasing rapidly - consider pacing"
        elif trend.trend == "decreasing":
            recommendation = "Usage decreasing - good pacing"
        elif progress.efficiency > 50:
            recommendation = "High intensity session - monitor usage"
        else:
            recommendation = "Steady usage pattern"

        return SessionSummary(
            current_status=status,
            window_summary=window_summary,
            efficiency=efficiency,
            recommendation=recommendation,
        )
