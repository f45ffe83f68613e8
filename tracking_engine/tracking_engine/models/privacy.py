"""Persisted privacy settings for usage tracking."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class PrivacySettings(BaseModel):
    """User consent and per-category tracking switches.

    Stored on disk with camelCase keys (``consentGiven``, ``trackPrompts``)
    so that files written by earlier releases load unchanged.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    supabase_tracking_enabled: bool = False
    data_retention_days: int = Field(default=90, ge=1)
    track_prompts: bool = True
    track_tokens: bool = True
    track_metadata: bool = True
    consent_given: bool = False
    consent_date: datetime | None = None
    last_prompt_date: datetime | None = None

    @property
    def tracking_enabled(self) -> bool:
        return self.supabase_tracking_enabled and self.consent_given


class RetentionInfo(BaseModel):
    retention_days: int
    next_cleanup_date: datetime | None = None
