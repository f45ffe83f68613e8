"""Interaction tracking entry points."""

from tracking_engine.tracker.interaction_tracker import InteractionTracker, SessionContext
from tracking_engine.tracker.response_logger import ApiResponseEvent, ResponseLogger, UserPromptEvent

__all__ = [
    "ApiResponseEvent",
    "InteractionTracker",
    "ResponseLogger",
    "SessionContext",
    "UserPromptEvent",
]
