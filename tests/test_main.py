"""Tests for the command line entry point."""

from __future__ import annotations

import json
from datetime import timedelta

import pytest

from tokenmeter.main import InputError, default_tokens, load_json, main, parse_now
from tests.conftest import NOW, make_block

M = timedelta(minutes=1)


@pytest.fixture
def blocks_file(tmp_path):
    blocks = [
        make_block(NOW - 3 * 60 * M, NOW - 2 * 60 * M, 4000),
        make_block(NOW - 30 * M, NOW + 270 * M, 1500, active=True),
    ]
    path = tmp_path / "blocks.json"
    path.write_text(json.dumps({"blocks": [b.model_dump(mode="json", by_alias=True) for b in blocks]}))
    return path


@pytest.fixture
def daily_file(tmp_path):
    path = tmp_path / "daily.json"
    path.write_text(json.dumps({"daily": [
        {"date": "2026-10-18", "totalTokens": 3000, "totalCost": 0.3},
        {"date": "2026-10-19", "totalTokens": 1500, "totalCost": 0.15},
    ]}))
    return path


class TestHelpers:
    def test_parse_now(self):
        assert parse_now("2026-10-19T16:30:00Z") == NOW
        assert parse_now("2026-10-19T16:30:00") == NOW
        with pytest.raises(InputError):
            parse_now("later")

    def test_load_json_errors(self, tmp_path):
        with pytest.raises(InputError):
            load_json(str(tmp_path / "missing.json"))
        bad = tmp_path / "bad.json"
        bad.write_text("{nope")
        with pytest.raises(InputError):
            load_json(str(bad))

    def test_default_tokens(self):
        active = make_block(NOW - 10 * M, NOW + 4 * 60 * M, 321, active=True)
        assert default_tokens([make_block(NOW - 60 * M, NOW - 30 * M, 5), active]) == 321
        assert default_tokens([]) == 0


class TestAnalyzeCommand:
    def test_json_output(self, blocks_file, capsys):
        main(["analyze", str(blocks_file), "--now", "2026-10-19T16:30:00Z", "--json"])
        data = json.loads(capsys.readouterr().out)
        assert data["current_tokens"] == 1500
        assert data["current_plan"] == "Pro"
        assert data["burn_rate"]["current"] == 25.0
        assert data["reset_info"]["formatted_next_reset_time"] == "Oct 19 at 2:00 PM PDT"
        assert data["session"]["current_status"] == "Active session: 30m"
        assert data["session"]["window_summary"] == "2 sessions in 5h window"
        # fresh burst with no usage the hour before: rapid increase, medium risk, no alert
        assert data["burn_rate"]["trend"]["direction"] == "increasing"
        assert data["risk_assessment"]["level"] == "medium"
        assert data["notification"] is None
        assert "daily" not in data

    def test_json_notification_when_on_track(self, tmp_path, capsys):
        path = tmp_path / "idle.json"
        path.write_text(json.dumps({"blocks": []}))
        main(["analyze", str(path), "--now", "2026-10-19T16:30:00Z", "--json"])
        data = json.loads(capsys.readouterr().out)
        assert data["risk_assessment"]["level"] == "low"
        assert data["notification"] == {
            "type": "info",
            "title": "Usage On Track",
            "message": "Current usage pace is sustainable until next reset.",
        }

    def test_json_with_daily(self, blocks_file, daily_file, capsys):
        main([
            "analyze", str(blocks_file), "--now", "2026-10-19T16:30:00Z",
            "--daily", str(daily_file), "--json",
        ])
        data = json.loads(capsys.readouterr().out)
        assert data["daily"]["today"]["total_tokens"] == 1500
        assert data["daily"]["total_tokens_30d"] == 4500

    def test_plan_and_tokens(self, blocks_file, capsys):
        main([
            "analyze", str(blocks_file), "--now", "2026-10-19T16:30:00Z",
            "--plan", "max20", "--tokens", "50000", "--json",
        ])
        data = json.loads(capsys.readouterr().out)
        assert data["current_plan"] == "Max20"
        assert data["token_limit"] == 140000
        assert data["current_tokens"] == 50000

    def test_rich_output(self, blocks_file, capsys):
        main(["analyze", str(blocks_file), "--now", "2026-10-19T16:30:00Z"])
        out = capsys.readouterr().out
        assert "Pro plan" in out
        assert "Recommendations:" in out


class TestErrors:
    def test_no_command(self):
        with pytest.raises(SystemExit) as exc:
            main([])
        assert exc.value.code == 1

    def test_missing_file(self, tmp_path):
        with pytest.raises(SystemExit) as exc:
            main(["analyze", str(tmp_path / "nope.json")])
        assert exc.value.code == 1

    def test_unknown_plan(self, blocks_file):
        with pytest.raises(SystemExit) as exc:
            main(["analyze", str(blocks_file), "--plan", "Enterprise"])
        assert exc.value.code == 1
