"""
Token usage tracking

Keeps cumulative LLM token totals for a session and, when a log directory
is configured, appends one JSON line per call to token_usage.jsonl.
"""

import json
import logging
import os
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

logger = logging.getLogger('rtscom.runtime.token_tracker')


class TokenTracker:
    """
    Tracks token usage statistics
    """

    def __init__(self, log_dir: Optional[str] = None):
        """
        Initialize token tracker

        Args:
            log_dir: Directory for token_usage.jsonl, or None to keep stats in memory only
        """
        self.log_file = None
        if log_dir:
            try:
                os.makedirs(log_dir, exist_ok=True)
                self.log_file = os.path.join(log_dir, "token_usage.jsonl")
            except OSError as e:
                logger.warning("Failed to create token log directory %s: %s - keeping stats in memory", log_dir, e)

        self.total_calls = 0
        self.total_input_tokens = 0
        self.total_output_tokens = 0
        self.calls_log: List[Dict[str, Any]] = []
        self.start_time = datetime.now()

    def record_call(self, input_tokens: int, output_tokens: int, provider: str = "unknown"):
        """
        Record a single LLM API call

        Args:
            input_tokens: Number of input tokens used
            output_tokens: Number of output tokens generated
            provider: LLM provider name
        """
        self.total_calls += 1
        self.total_input_tokens += input_tokens
        self.total_output_tokens += output_tokens

        call_record = {
            "timestamp": datetime.now().isoformat(),
            "call_number": self.total_calls,
            "provider": provider,
            "input_tokens": input_tokens,
            "output_tokens": output_tokens,
            "total_tokens": input_tokens + output_tokens,
            "cumulative_total": self.total_input_tokens + self.total_output_tokens,
        }
        self.calls_log.append(call_record)

        if self.log_file:
            try:
                with open(self.log_file, 'a', encoding='utf-8') as f:
                    f.write(json.dumps(call_record) + '\n')
            except OSError as e:
                logger.error("Failed to write token usage to file: %s", e)

        logger.debug("Token usage recorded: call #%d (%s), %d input, %d output",
                     self.total_calls, provider, input_tokens, output_tokens)

    def get_stats(self) -> Dict[str, Any]:
        """
        Get token usage statistics

        Returns:
            Dictionary with last call, last-minute, total and per-call averages
        """
        now = datetime.now()
        one_minute_ago = now - timedelta(minutes=1)
        recent = [c for c in self.calls_log if datetime.fromisoformat(c['timestamp']) >= one_minute_ago]

        last_call = self.calls_log[-1] if self.calls_log else None
        calls = self.total_calls

        return {
            "last_call": {
                "input": last_call['input_tokens'],
                "output": last_call['output_tokens'],
                "total": last_call['total_tokens'],
                "provider": last_call['provider'],
            } if last_call else None,
            "per_minute": {
                "calls": len(recent),
                "total": sum(c['total_tokens'] for c in recent),
            },
            "total": {
                "calls": calls,
                "input": self.total_input_tokens,
                "output": self.total_output_tokens,
                "total": self.total_input_tokens + self.total_output_tokens,
            },
            "averages": {
                "input_per_call": self.total_input_tokens / calls if calls else 0,
                "output_per_call": self.total_output_tokens / calls if calls else 0,
            },
            "session": {
                "start_time": self.start_time.isoformat(),
                "duration_seconds": (now - self.start_time).total_seconds(),
            },
        }

    def get_stats_formatted(self) -> str:
        """Statistics as a short readable block for the log"""
        stats = self.get_stats()
        total = stats['total']
        lines = [
            "TOKEN USAGE: %d calls, %d input, %d output, %d total" % (
                total['calls'], total['input'], total['output'], total['total']),
            "  Avg per call: %.0f input, %.0f output" % (
                stats['averages']['input_per_call'], stats['averages']['output_per_call']),
        ]
        return "\n".join(lines)
