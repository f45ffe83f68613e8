"""Tests for the per-category privacy gate."""

from __future__ import annotations

import itertools

import pytest

from tracking_engine.models.interaction import TOKEN_FIELDS, InteractionRecord, ResponseUpdate
from tracking_engine.models.privacy import PrivacySettings
from tracking_engine.telemetry.privacy import REDACTED_PROMPT, filter_record, filter_update


@pytest.fixture
def record() -> InteractionRecord:
    return InteractionRecord(
        prompt_id="p1",
        session_id="s1",
        prompt_text="refactor the parser",
        model_name="codec-pro",
        auth_type="oauth",
        input_token_count=10,
        output_token_count=20,
        total_token_count=30,
        cached_token_count=1,
        thoughts_token_count=2,
        tool_token_count=3,
        metadata={"promptLength": 19},
    )


class TestFilterRecord:
    """Verify each category is redacted independently."""

    @pytest.mark.parametrize(
        ("prompts", "tokens", "metadata"),
        list(itertools.product([True, False], repeat=3)),
    )
    def test_categories_are_independent(self, record, prompts, tokens, metadata) -> None:
        settings = PrivacySettings(track_prompts=prompts, track_tokens=tokens, track_metadata=metadata)

        filtered = filter_record(settings, record)

        assert filtered.prompt_text == (record.prompt_text if prompts else REDACTED_PROMPT)
        for field in TOKEN_FIELDS:
            assert getattr(filtered, field) == (getattr(record, field) if tokens else None)
        assert filtered.metadata == (record.metadata if metadata else None)
        assert filtered.prompt_id == "p1"
        assert filtered.session_id == "s1"
        assert filtered.model_name == "codec-pro"
        assert filtered.auth_type == "oauth"

    def test_redacted_prompt_is_not_empty(self, record) -> None:
        filtered = filter_record(PrivacySettings(track_prompts=False), record)
        assert filtered.prompt_text == "[REDACTED]"

    def test_input_is_not_mutated(self, record) -> None:
        filter_record(PrivacySettings(track_prompts=False, track_tokens=False, track_metadata=False), record)
        assert record.prompt_text == "refactor the parser"
        assert record.total_token_count == 30
        assert record.metadata == {"promptLength": 19}

    def test_output_metadata_is_a_copy(self, record) -> None:
        filtered = filter_record(PrivacySettings(), record)
        assert filtered.metadata is not None
        filtered.metadata["extra"] = True
        assert "extra" not in (record.metadata or {})


class TestFilterUpdate:
    """Verify late updates follow the token and metadata switches."""

    def test_tokens_disabled(self) -> None:
        update = ResponseUpdate(output_token_count=5, total_token_count=9, response_duration_ms=100)
        filtered = filter_update(PrivacySettings(track_tokens=False), update)
        assert filtered.output_token_count is None
        assert filtered.total_token_count is None
        assert filtered.response_duration_ms == 100

    def test_metadata_disabled(self) -> None:
        update = ResponseUpdate(output_token_count=5, metadata={"statusCode": 200})
        filtered = filter_update(PrivacySettings(track_metadata=False), update)
        assert filtered.metadata is None
        assert filtered.output_token_count == 5

    def test_everything_allowed(self) -> None:
        update = ResponseUpdate(output_token_count=5, metadata={"statusCode": 200})
        assert filter_update(PrivacySettings(), update) == update
