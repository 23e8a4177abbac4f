"""Tests for the session and daily record models."""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from tokenmeter.token_tracker.models import (
    PLAN_LADDER,
    PLAN_LIMITS,
    PlanType,
    SessionBlock,
    coerce_plan,
    parse_blocks,
    parse_daily,
)
from tests.conftest import NOW

RAW_BLOCK = {
    "id": "2026-10-19T10:00:00.000Z",
    "startTime": "2026-10-19T10:00:00.000Z",
    "endTime": "2026-10-19T15:00:00.000Z",
    "actualEndTime": "2026-10-19T11:42:00.000Z",
    "isActive": False,
    "isGap": False,
    "tokenCounts": {
        "inputTokens": 1200,
        "outputTokens": 800,
        "cacheCreationInputTokens": 300,
        "cacheReadInputTokens": 200,
    },
    "costUSD": 1.25,
    "models": ["claude-sonnet-4"],
}


class TestSessionBlock:
    def test_parses_camel_case(self):
        b = SessionBlock.model_validate(RAW_BLOCK)
        assert b.start_time == datetime(2026, 10, 19, 10, tzinfo=timezone.utc)
        assert b.token_counts.cache_creation_tokens == 300
        assert b.total_tokens == 2500
        assert b.cost_usd == 1.25
        assert b.models == ["claude-sonnet-4"]

    def test_reported_total_wins(self):
        b = SessionBlock.model_validate({**RAW_BLOCK, "totalTokens": 9999})
        assert b.total_tokens == 9999

    def test_zero_reported_total_falls_back(self):
        b = SessionBlock.model_validate({**RAW_BLOCK, "totalTokens": 0})
        assert b.total_tokens == 2500

    def test_naive_timestamps_are_utc(self):
        b = SessionBlock(id="x", start_time=datetime(2026, 1, 1, 8), end_time=datetime(2026, 1, 1, 9))
        assert b.start_time.tzinfo == timezone.utc

    def test_offset_timestamps_normalized(self):
        b = SessionBlock.model_validate({**RAW_BLOCK, "startTime": "2026-10-19T03:00:00-07:00"})
        assert b.start_time == datetime(2026, 10, 19, 10, tzinfo=timezone.utc)

    def test_start_after_end_rejected(self):
        with pytest.raises(ValidationError):
            SessionBlock.model_validate({**RAW_BLOCK, "startTime": "2026-10-19T16:00:00Z"})

    def test_null_cost_is_zero(self):
        b = SessionBlock.model_validate({**RAW_BLOCK, "costUSD": None})
        assert b.cost_usd == 0.0

    def test_effective_end(self, block):
        start = NOW - timedelta(hours=2)
        active = block(start, start + timedelta(hours=5), active=True)
        closed = block(start, start + timedelta(hours=5), actual_end=start + timedelta(minutes=40))
        nominal = block(start, start + timedelta(hours=5))
        assert active.effective_end(NOW) == NOW
        assert closed.effective_end(NOW) == start + timedelta(minutes=40)
        assert nominal.effective_end(NOW) == start + timedelta(hours=5)

    def test_is_completed(self, block):
        assert block(NOW, NOW).is_completed
        assert not block(NOW, NOW, active=True).is_completed
        assert not block(NOW, NOW, gap=True).is_completed

    def test_frozen(self):
        b = SessionBlock.model_validate(RAW_BLOCK)
        with pytest.raises(ValidationError):
            b.is_active = True  # type: ignore[misc]


class TestParseBlocks:
    def test_accepts_wrapper_and_list(self):
        assert len(parse_blocks({"blocks": [RAW_BLOCK]})) == 1
        assert len(parse_blocks([RAW_BLOCK, RAW_BLOCK])) == 2

    def test_skips_malformed(self):
        blocks = parse_blocks([RAW_BLOCK, {"id": "broken"}, {**RAW_BLOCK, "startTime": "nope"}])
        assert len(blocks) == 1

    def test_non_list_is_empty(self):
        assert parse_blocks("garbage") == []
        assert parse_blocks({}) == []


class TestParseDaily:
    def test_daily_records(self):
        records = parse_daily({"daily": [{
            "date": "2026-10-19",
            "inputTokens": 100,
            "outputTokens": 50,
            "cacheCreationTokens": 10,
            "cacheReadTokens": 5,
            "totalCost": 0.42,
            "modelBreakdowns": [{"modelName": "claude-opus-4", "inputTokens": 100, "cost": 0.4}],
        }]})
        assert len(records) == 1
        rec = records[0]
        assert rec.day == date(2026, 10, 19)
        assert rec.total_tokens == 165
        assert rec.model_breakdowns[0].model_name == "claude-opus-4"
        assert rec.model_breakdowns[0].total_tokens == 100

    def test_skips_bad_dates(self):
        assert parse_daily([{"date": "yesterday"}, {"date": "2026-10-18", "totalTokens": 5}])[0].total_tokens == 5


class TestPlans:
    def test_ladder_is_ascending(self):
        limits = [PLAN_LIMITS[p] for p in PLAN_LADDER]
        assert limits == sorted(limits)

    def test_coerce_plan(self):
        assert coerce_plan("max5") is PlanType.MAX5
        assert coerce_plan(PlanType.PRO) is PlanType.PRO
        assert coerce_plan(None) is None
        assert coerce_plan("Enterprise") is None
