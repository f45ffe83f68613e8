"""Privacy gate, persisted consent settings, and retention."""

from __future__ import annotations

from tracking_engine.telemetry.consent import ConsentManager, ConsentPrompt
from tracking_engine.telemetry.privacy import REDACTED_PROMPT, filter_record, filter_update
from tracking_engine.telemetry.retention import RetentionManager
from tracking_engine.telemetry.settings_store import PrivacyStore

__all__ = [
    "REDACTED_PROMPT",
    "ConsentManager",
    "ConsentPrompt",
    "PrivacyStore",
    "RetentionManager",
    "filter_record",
    "filter_update",
]
