"""Fixed-width text rendering for terminal and tray UIs."""

from __future__ import annotations

from dataclasses import dataclass

BAR_WIDTH = 30
TOKEN_ICON = "🟢"
TIME_ICON = "⏰"


@dataclass
class ProgressBars:
    token_progress_bar: str
    time_progress_bar: str
    status_line: str


def progress_bar(percentage: float, icon: str, width: int = BAR_WIDTH) -> str:
    """``🟢 [██████░░░░] 60.0%``; the percentage is clamped to 0-100."""
    pct = min(100.0, max(0.0, percentage))
    filled = round(pct / 100 * width)
    return f"{icon} [{'█' * filled}{'░' * (width - filled)}] {pct:.1f}%"


def status_line(emoji: str, status: str, details: str) -> str:
    return f"{emoji} {status} | {details}"


def render_bars(
    token_pct: float, time_pct: float, emoji: str, status: str, details: str
) -> ProgressBars:
    return ProgressBars(
        token_progress_bar=progress_bar(token_pct, TOKEN_ICON),
        time_progress_bar=progress_bar(time_pct, TIME_ICON),
        status_line=status_line(emoji, status, details),
    )
