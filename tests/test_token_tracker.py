"""Tests for TokenTracker"""
import json

from rtscom.runtime.token_tracker import TokenTracker


def test_empty_stats():
    stats = TokenTracker().get_stats()

    assert stats["last_call"] is None
    assert stats["total"] == {"calls": 0, "input": 0, "output": 0, "total": 0}
    assert stats["averages"] == {"input_per_call": 0, "output_per_call": 0}


def test_totals_and_averages():
    tracker = TokenTracker()
    tracker.record_call(100, 20, "anthropic")
    tracker.record_call(300, 40, "openai")

    stats = tracker.get_stats()

    assert stats["last_call"] == {"input": 300, "output": 40, "total": 340, "provider": "openai"}
    assert stats["per_minute"] == {"calls": 2, "total": 460}
    assert stats["total"] == {"calls": 2, "input": 400, "output": 60, "total": 460}
    assert stats["averages"] == {"input_per_call": 200, "output_per_call": 30}
    assert "TOKEN USAGE: 2 calls, 400 input, 60 output, 460 total" in tracker.get_stats_formatted()


def test_jsonl_log(tmp_path):
    log_dir = tmp_path / "logs"
    tracker = TokenTracker(str(log_dir))
    tracker.record_call(10, 5, "gemini")
    tracker.record_call(7, 3, "gemini")

    lines = (log_dir / "token_usage.jsonl").read_text(encoding="utf-8").splitlines()
    records = [json.loads(line) for line in lines]

    assert [r["call_number"] for r in records] == [1, 2]
    assert records[1]["cumulative_total"] == 25
    assert records[0]["provider"] == "gemini"
