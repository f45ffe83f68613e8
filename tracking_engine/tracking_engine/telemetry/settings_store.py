"""Persistent privacy settings: consent, per-category switches, retention.

Settings live in a small JSON file (``~/.codec/privacy.json`` by default).
The file is read once when the store is created and rewritten in full after
every mutation.  A missing or unreadable file yields the defaults; a failed
write is logged and the in-memory settings stay authoritative for the rest
of the process.
"""

from __future__ import annotations

import json
import logging
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from tracking_engine.errors import PrivacySettingsError
from tracking_engine.models.privacy import PrivacySettings, RetentionInfo

if TYPE_CHECKING:
    from tracking_engine.sink.base import InteractionStore

logger = logging.getLogger(__name__)

_MUTABLE_FIELDS = frozenset({"track_prompts", "track_tokens", "track_metadata", "data_retention_days"})


class PrivacyStore:
    """Owns the process-wide :class:`PrivacySettings`.

    Parameters
    ----------
    path:
        Location of the JSON settings file.  Parent directories are created
        on first write.
    """

    def __init__(self, path: Path) -> None:
        self._path = path
        self._settings = self._load()

    @property
    def path(self) -> Path:
        return self._path

    @property
    def settings(self) -> PrivacySettings:
        """Return a copy of the current settings."""
        return self._settings.model_copy()

    # -- Decisions -----------------------------------------------------------

    def is_tracking_enabled(self) -> bool:
        return self._settings.tracking_enabled

    def should_track_prompts(self) -> bool:
        return self.is_tracking_enabled() and self._settings.track_prompts

    def should_track_tokens(self) -> bool:
        return self.is_tracking_enabled() and self._settings.track_tokens

    def should_track_metadata(self) -> bool:
        return self.is_tracking_enabled() and self._settings.track_metadata

    def needs_consent_prompt(self, remote_configured: bool) -> bool:
        """True when a remote store is configured but the user has not decided yet."""
        return remote_configured and not self._settings.consent_given

    # -- Mutations -----------------------------------------------------------

    def give_consent(self) -> None:
        self._settings.consent_given = True
        self._settings.consent_date = datetime.now(UTC)
        self._settings.supabase_tracking_enabled = True
        self._save()
        logger.info("Usage tracking consent given")

    def revoke_consent(self) -> None:
        self._settings.consent_given = False
        self._settings.supabase_tracking_enabled = False
        self._save()
        logger.info("Usage tracking consent revoked")

    def update_settings(self, **changes: Any) -> PrivacySettings:
        """Apply per-category toggles or a new retention window.

        Raises
        ------
        PrivacySettingsError
            If a key is not user-editable or a value fails validation.
        """
        unknown = set(changes) - _MUTABLE_FIELDS
        if unknown:
            raise PrivacySettingsError(f"Unknown privacy settings: {', '.join(sorted(unknown))}")

        merged = {**self._settings.model_dump(), **changes}
        try:
            self._settings = PrivacySettings.model_validate(merged)
        except ValidationError as exc:
            raise PrivacySettingsError(f"Invalid privacy settings: {exc.errors()[0]['msg']}") from exc
        self._save()
        return self.settings

    def update_last_prompt_date(self) -> None:
        self._settings.last_prompt_date = datetime.now(UTC)
        self._save()

    async def delete_all_data(self, store: InteractionStore) -> bool:
        """Delete the user's remote records and revoke consent on success."""
        deleted = await store.delete_all_interactions()
        if deleted:
            self.revoke_consent()
        return deleted

    # -- Reporting -----------------------------------------------------------

    def get_retention_info(self) -> RetentionInfo:
        retention_days = self._settings.data_retention_days
        next_cleanup: datetime | None = None
        if self._settings.last_prompt_date is not None:
            next_cleanup = self._settings.last_prompt_date + timedelta(days=retention_days)
        return RetentionInfo(retention_days=retention_days, next_cleanup_date=next_cleanup)

    def consent_text(self) -> str:
        s = self._settings

        def mark(flag: bool) -> str:
            return "✓" if flag else "✗"

        return (
            "Usage Tracking Consent\n\n"
            "The CLI can track your usage to help improve the service. This includes:\n\n"
            f"{mark(s.track_prompts)} Your prompts and queries\n"
            f"{mark(s.track_tokens)} Token usage statistics\n"
            f"{mark(s.track_metadata)} Session metadata (model, auth type, etc.)\n\n"
            f"Data retention: {s.data_retention_days} days\n\n"
            "Your data will be:\n"
            "- Stored in the configured Supabase project\n"
            "- Associated with your email address\n"
            f"- Automatically deleted after {s.data_retention_days} days\n"
            "- Never shared with third parties\n"
            "- Deletable at any time using `privacy delete`\n\n"
            "You can change these settings or revoke consent at any time."
        )

    # -- Persistence ---------------------------------------------------------

    def _load(self) -> PrivacySettings:
        if not self._path.exists():
            return PrivacySettings()
        try:
            raw = json.loads(self._path.read_text(encoding="utf-8"))
            return PrivacySettings.model_validate(raw)
        except (OSError, ValueError) as exc:
            logger.warning("Failed to load privacy settings from %s: %s", self._path, exc)
            return PrivacySettings()

    def _save(self) -> None:
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._path.write_text(
                self._settings.model_dump_json(by_alias=True, indent=2),
                encoding="utf-8",
            )
        except OSError as exc:
            logger.error("Failed to save privacy settings to %s: %s", self._path, exc)
