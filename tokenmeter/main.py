"""Entry point for the tokenmeter usage monitor."""

from __future__ import annotations

import argparse
import json
import logging
import sys
import time
from dataclasses import asdict
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from tokenmeter.config import settings
from tokenmeter.notifications import NotificationGate, NotificationType, notification_to_dict
from tokenmeter.orchestrator.monitor import AdvancedUsageAnalytics, UsageMonitor, analytics_to_dict
from tokenmeter.token_tracker.burn_rate import format_burn_rate
from tokenmeter.token_tracker.daily import (
    DailySummary,
    daily_summary_to_dict,
    summarize_daily,
    usage_status,
)
from tokenmeter.token_tracker.formatting import format_tokens
from tokenmeter.token_tracker.models import SessionBlock, coerce_plan, parse_blocks, parse_daily
from tokenmeter.token_tracker.predictive import RISK_ICONS, format_depletion_time
from tokenmeter.token_tracker.session_tracker import SessionSummary, SessionTracker

console = Console()
logging.basicConfig(
    level=getattr(logging, settings.log_level, logging.INFO),
    format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
)
logger = logging.getLogger(__name__)

_NOTIFY_STYLE = {
    NotificationType.INFO: "green",
    NotificationType.WARNING: "yellow",
    NotificationType.ERROR: "bold red",
}


class InputError(Exception):
    """An input file could not be read or parsed."""


def load_json(path: str) -> Any:
    try:
        return json.loads(Path(path).read_text(encoding="utf-8"))
    except OSError as e:
        raise InputError(f"Cannot read {path}: {e.strerror or e}") from e
    except json.JSONDecodeError as e:
        raise InputError(f"{path} is not valid JSON: {e.msg} (line {e.lineno})") from e


def parse_now(value: str | None) -> datetime:
    if not value:
        return datetime.now(timezone.utc)
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError as e:
        raise InputError(f"Invalid --now timestamp {value!r}") from e
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def default_tokens(blocks: list[SessionBlock]) -> int:
    """Tokens of the active block, or 0 when nothing is running."""
    active = next((b for b in blocks if b.is_active and not b.is_gap), None)
    return active.total_tokens if active else 0


def build_session_tracker() -> SessionTracker:
    return SessionTracker(
        window_duration=timedelta(hours=settings.session_window_hours),
        gap_threshold=timedelta(minutes=settings.session_gap_minutes),
        trend_threshold_pct=settings.trend_threshold_pct,
    )


def session_summary(blocks: list[SessionBlock], now: datetime) -> SessionSummary:
    tracker = build_session_tracker()
    return tracker.summary(tracker.track(blocks, now))


# ── Rendering ────────────────────────────────────────────────────────────────


def render(
    monitor: UsageMonitor,
    a: AdvancedUsageAnalytics,
    session: SessionSummary,
    daily: DailySummary | None = None,
) -> None:
    bars = monitor.progress_bars(a)
    console.print(Panel(
        f"{bars.token_progress_bar}\n{bars.time_progress_bar}",
        title=f"tokenmeter · {a.current_plan.value} plan",
        subtitle=bars.status_line,
    ))

    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column(style="dim")
    table.add_column()
    b, r, p = a.burn_rate, a.reset_info, a.prediction
    table.add_row("Tokens", f"{format_tokens(a.current_tokens)} / {format_tokens(a.token_limit)}")
    table.add_row("Session", f"{session.current_status} ({session.window_summary}, {session.efficiency})")
    table.add_row(
        "Burn rate",
        f"{b.velocity.emoji} {format_burn_rate(b.current)} ({b.trend.direction} {b.trend.percentage:+.1f}%)",
    )
    table.add_row("Next reset", f"{r.formatted_next_reset_time} (in {r.formatted_time_until_reset})")
    table.add_row("Depletion", format_depletion_time(p.depletion.estimated_time, a.last_updated))
    table.add_row("Risk", f"{RISK_ICONS[a.risk_assessment.level]} {a.risk_assessment.level}")
    table.add_row(
        "Plan fit",
        f"{a.plan_recommendation.recommended_plan.value} ({a.plan_recommendation.confidence}%)",
    )
    table.add_row(
        "Detected limit",
        f"{format_tokens(a.limit_detection.detected_limit)} ({a.limit_detection.confidence}%)",
    )
    table.add_row("Daily budget", f"{format_tokens(p.recommendations.daily_limit)} tokens")
    console.print(table)

    if r.timezone_fallback:
        console.print(f"[yellow]Unknown timezone {settings.reset_timezone!r}; reset times shown in UTC[/yellow]")

    if a.risk_assessment.factors:
        console.print("\n[bold]Risk factors:[/bold]")
        for factor in a.risk_assessment.factors:
            console.print(f"  • {factor}")
    console.print("\n[bold]Recommendations:[/bold]")
    for rec in [*a.risk_assessment.recommendations, session.recommendation]:
        console.print(f"  • {rec}")

    if daily is not None:
        pct = daily.today.total_tokens / a.token_limit * 100 if a.token_limit else 0.0
        console.print(
            f"\n[dim]Today: {format_tokens(daily.today.total_tokens)} tokens, "
            f"${daily.today.total_cost:.2f} ({usage_status(pct)}) | "
            f"30d: {format_tokens(daily.total_tokens_30d)} | trend: {daily.trend}[/dim]"
        )


def render_notification(monitor: UsageMonitor, a: AdvancedUsageAnalytics, gate: NotificationGate) -> None:
    sent = gate.offer(monitor.notification(a), a.last_updated)
    if sent is not None:
        console.print(f"\n[{_NOTIFY_STYLE[sent.type]}]{sent.emoji} {sent.title}: {sent.message}[/]")


# ── Commands ─────────────────────────────────────────────────────────────────


def _prepare(args: argparse.Namespace) -> tuple[list[SessionBlock], DailySummary | None]:
    blocks = parse_blocks(load_json(args.file))
    daily = None
    if args.daily:
        now = parse_now(args.now)
        daily = summarize_daily(parse_daily(load_json(args.daily)), now.date())
    return blocks, daily


def run_analyze(args: argparse.Namespace, monitor: UsageMonitor) -> None:
    """One analysis of a blocks file."""
    blocks, daily = _prepare(args)
    now = parse_now(args.now)
    tokens = args.tokens if args.tokens is not None else default_tokens(blocks)

    analytics = monitor.analyze_usage(blocks, tokens, now)
    session = session_summary(blocks, now)

    if args.json:
        payload = analytics_to_dict(analytics)
        payload["session"] = asdict(session)
        payload["notification"] = notification_to_dict(monitor.notification(analytics))
        if daily is not None:
            payload["daily"] = daily_summary_to_dict(daily)
        console.print_json(data=payload)
        return

    render(monitor, analytics, session, daily)
    render_notification(monitor, analytics, NotificationGate())


def run_watch(args: argparse.Namespace, monitor: UsageMonitor) -> None:
    """Re-read the blocks file every interval and redraw."""
    gate = NotificationGate()
    interval = args.interval or settings.refresh_interval
    try:
        while True:
            blocks, daily = _prepare(args)
            now = parse_now(None)
            tokens = args.tokens if args.tokens is not None else default_tokens(blocks)
            analytics = monitor.analyze_usage(blocks, tokens, now)
            console.clear()
            render(monitor, analytics, session_summary(blocks, now), daily)
            render_notification(monitor, analytics, gate)
            console.print(f"\n[dim]Refreshing every {interval:g}s, Ctrl+C to stop[/dim]")
            time.sleep(interval)
    except KeyboardInterrupt:
        console.print("\n[dim]Stopped.[/dim]")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="tokenmeter - token usage analytics and forecasting")
    sub = parser.add_subparsers(dest="command")

    def common(p: argparse.ArgumentParser) -> None:
        p.add_argument("file", help="Session blocks JSON ({\"blocks\": [...]} or a list)")
        p.add_argument("--tokens", type=int, help="Current token count (default: active block total)")
        p.add_argument("--daily", help="Daily usage JSON for day-level rollups")
        p.add_argument("--plan", help="Start on this plan (Pro, Max5, Max20, Custom)")
        p.add_argument("--custom-limit", type=int, help="Token limit when --plan is Custom")

    analyze = sub.add_parser("analyze", help="Analyse a blocks file once")
    common(analyze)
    analyze.add_argument("--now", help="Analysis instant (ISO 8601, default: current time)")
    analyze.add_argument("--json", action="store_true", help="Print the analysis as JSON")

    watch = sub.add_parser("watch", help="Re-analyse a blocks file periodically")
    common(watch)
    watch.add_argument("--interval", type=float, help="Refresh interval in seconds")
    watch.set_defaults(now=None)

    return parser


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command not in ("analyze", "watch"):
        parser.print_help()
        sys.exit(1)

    monitor = UsageMonitor.from_settings(settings)
    try:
        if args.plan:
            plan = coerce_plan(args.plan)
            if plan is None:
                raise InputError(f"Unknown plan {args.plan!r}")
            monitor.manual_plan_switch(plan, 0, parse_now(args.now), args.custom_limit)

        if args.command == "analyze":
            run_analyze(args, monitor)
        else:
            run_watch(args, monitor)
    except InputError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
