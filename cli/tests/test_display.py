"""Tests for cli/cli/display.py -- Rich output formatting.

Rendered output is captured via a Console writing to a StringIO buffer
rather than stderr.
"""

from __future__ import annotations

import io
from datetime import UTC, datetime

import pytest
from rich.console import Console

from cli.display import (
    display_health,
    display_history,
    display_privacy_status,
    display_queue_status,
    display_usage_stats,
    estimate_cost_usd,
)
from tracking_engine.models.interaction import HealthStatus, QueueStatus, UsageStats, UserInteractionRow
from tracking_engine.models.privacy import PrivacySettings, RetentionInfo


@pytest.fixture
def buf_console() -> tuple[Console, io.StringIO]:
    buf = io.StringIO()
    return Console(file=buf, force_terminal=False, width=160), buf


def _row(prompt_id: str, prompt_text: str) -> UserInteractionRow:
    return UserInteractionRow(
        user_email="dev@example.com",
        prompt_text=prompt_text,
        prompt_id=prompt_id,
        session_id="s1",
        model_name="codec-pro",
        total_token_count=42,
        interaction_timestamp=datetime(2026, 10, 1, 9, tzinfo=UTC),
    )


class TestDisplayHistory:
    def test_empty(self, buf_console) -> None:
        console, buf = buf_console
        display_history(console, [])
        assert "No interaction history found." in buf.getvalue()

    def test_redacted_prompt_not_previewed(self, buf_console) -> None:
        console, buf = buf_console
        display_history(console, [_row("p1", "[REDACTED]"), _row("p2", "add logging")])
        output = buf.getvalue()
        assert "[REDACTED]" not in output
        assert "add logging" in output
        assert "Recent Interactions (2)" in output

    def test_long_prompt_truncated(self, buf_console) -> None:
        console, buf = buf_console
        display_history(console, [_row("p1", "x" * 120)])
        output = buf.getvalue()
        assert "x" * 80 + "..." in output
        assert "x" * 81 not in output


class TestDisplayStatus:
    def test_privacy_status(self, buf_console) -> None:
        console, buf = buf_console
        display_privacy_status(
            console,
            PrivacySettings(consent_given=True, supabase_tracking_enabled=True, track_prompts=False),
            RetentionInfo(retention_days=30),
            QueueStatus(pending_count=2, is_enabled=True),
            remote_configured=True,
            user_email="dev@example.com",
        )
        output = buf.getvalue()
        assert "dev@example.com" in output
        assert "30 days" in output
        assert "Pending Interactions:" in output

    def test_queue_status_mentions_interval(self, buf_console) -> None:
        console, buf = buf_console
        display_queue_status(console, QueueStatus(pending_count=3, is_enabled=True), 5.0)
        assert "every 5 seconds" in buf.getvalue()

    def test_usage_stats(self, buf_console) -> None:
        console, buf = buf_console
        display_usage_stats(console, UsageStats(total_interactions=4, total_tokens=12000, average_tokens_per_interaction=3000))
        output = buf.getvalue()
        assert "12,000" in output
        assert "$0.0240" in output

    def test_health(self, buf_console) -> None:
        console, buf = buf_console
        display_health(console, HealthStatus(is_healthy=False, error="timeout", latency_ms=10000.0))
        assert "timeout" in buf.getvalue()


def test_estimate_cost() -> None:
    assert estimate_cost_usd(1000) == pytest.approx(0.002)
