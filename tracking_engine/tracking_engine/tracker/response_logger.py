"""Adapters from host CLI telemetry events to tracker calls.

The host CLI already emits a "user prompt" event when a prompt is submitted
and an "API response" event when the model answers.  :class:`ResponseLogger`
turns the first into :meth:`InteractionTracker.track_prompt` and the second
into :meth:`InteractionTracker.update_with_response`.
"""

from __future__ import annotations

import logging
from typing import Any

from pydantic import BaseModel

from tracking_engine.models.interaction import ReportedNumber
from tracking_engine.tracker.interaction_tracker import InteractionTracker, SessionContext

logger = logging.getLogger(__name__)


class UserPromptEvent(BaseModel):
    prompt_id: str
    prompt: str | None = None
    prompt_length: int = 0
    auth_type: str | None = None


class ApiResponseEvent(BaseModel):
    prompt_id: str | None = None
    model: str | None = None
    status_code: int | str | None = None
    duration_ms: ReportedNumber = None
    error: str | None = None
    input_token_count: ReportedNumber = None
    output_token_count: ReportedNumber = None
    total_token_count: ReportedNumber = None
    cached_content_token_count: ReportedNumber = None
    thoughts_token_count: ReportedNumber = None
    tool_token_count: ReportedNumber = None


class ResponseLogger:
    """Forwards prompt and response events to an :class:`InteractionTracker`."""

    def __init__(self, tracker: InteractionTracker) -> None:
        self._tracker = tracker

    @property
    def tracker(self) -> InteractionTracker:
        return self._tracker

    def log_user_prompt(self, session: SessionContext, event: UserPromptEvent) -> None:
        if not self._tracker.is_enabled():
            return
        self._tracker.track_prompt(
            session,
            event.prompt or "",
            event.prompt_id,
            event.prompt_length,
            event.auth_type,
        )

    def log_api_response(self, event: ApiResponseEvent) -> None:
        if not self._tracker.is_enabled() or not event.prompt_id:
            return
        metadata: dict[str, Any] = {
            "model": event.model,
            "statusCode": event.status_code,
            "error": event.error,
        }
        self._tracker.update_with_response(
            event.prompt_id,
            {
                "output_token_count": event.output_token_count,
                "total_token_count": event.total_token_count,
                "cached_token_count": event.cached_content_token_count,
                "thoughts_token_count": event.thoughts_token_count,
                "tool_token_count": event.tool_token_count,
                "response_duration_ms": event.duration_ms,
                "metadata": metadata,
            },
        )
