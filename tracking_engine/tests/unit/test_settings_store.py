"""Tests for the persisted privacy settings store."""

from __future__ import annotations

import json
import logging
from datetime import UTC, datetime, timedelta
from pathlib import Path
from unittest.mock import AsyncMock

import pytest

from tracking_engine.errors import PrivacySettingsError
from tracking_engine.telemetry.settings_store import PrivacyStore

# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------


class TestLoading:
    """Verify defaults and tolerance of bad files."""

    def test_missing_file_gives_defaults(self, tmp_path: Path) -> None:
        store = PrivacyStore(tmp_path / "privacy.json")
        settings = store.settings

        assert settings.consent_given is False
        assert settings.supabase_tracking_enabled is False
        assert settings.data_retention_days == 90
        assert settings.track_prompts and settings.track_tokens and settings.track_metadata
        assert store.is_tracking_enabled() is False

    def test_reads_camel_case_file(self, tmp_path: Path) -> None:
        path = tmp_path / "privacy.json"
        path.write_text(
            json.dumps(
                {
                    "supabaseTrackingEnabled": True,
                    "consentGiven": True,
                    "trackPrompts": False,
                    "dataRetentionDays": 30,
                }
            )
        )

        store = PrivacyStore(path)

        assert store.is_tracking_enabled() is True
        assert store.should_track_prompts() is False
        assert store.should_track_tokens() is True
        assert store.settings.data_retention_days == 30

    def test_corrupt_file_gives_defaults(self, tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
        path = tmp_path / "privacy.json"
        path.write_text("{not json")

        with caplog.at_level(logging.WARNING):
            store = PrivacyStore(path)

        assert store.settings.consent_given is False
        assert "Failed to load privacy settings" in caplog.text

    def test_invalid_values_give_defaults(self, tmp_path: Path) -> None:
        path = tmp_path / "privacy.json"
        path.write_text(json.dumps({"dataRetentionDays": 0}))
        assert PrivacyStore(path).settings.data_retention_days == 90

    def test_settings_returns_copy(self, tmp_path: Path) -> None:
        store = PrivacyStore(tmp_path / "privacy.json")
        store.settings.consent_given = True
        assert store.settings.consent_given is False


# ---------------------------------------------------------------------------
# Consent
# ---------------------------------------------------------------------------


class TestConsent:
    """Verify consent changes are persisted."""

    def test_give_consent_persists(self, tmp_path: Path) -> None:
        path = tmp_path / "nested" / "privacy.json"
        store = PrivacyStore(path)

        store.give_consent()

        assert store.is_tracking_enabled() is True
        data = json.loads(path.read_text())
        assert data["consentGiven"] is True
        assert data["supabaseTrackingEnabled"] is True
        assert data["consentDate"] is not None
        assert PrivacyStore(path).is_tracking_enabled() is True

    def test_revoke_consent(self, privacy_store: PrivacyStore) -> None:
        privacy_store.revoke_consent()

        assert privacy_store.is_tracking_enabled() is False
        assert privacy_store.should_track_prompts() is False
        assert PrivacyStore(privacy_store.path).settings.consent_given is False

    def test_needs_consent_prompt(self, tmp_path: Path) -> None:
        store = PrivacyStore(tmp_path / "privacy.json")
        assert store.needs_consent_prompt(remote_configured=True) is True
        assert store.needs_consent_prompt(remote_configured=False) is False
        store.give_consent()
        assert store.needs_consent_prompt(remote_configured=True) is False

    def test_consent_text_reflects_switches(self, privacy_store: PrivacyStore) -> None:
        privacy_store.update_settings(track_prompts=False, data_retention_days=14)
        text = privacy_store.consent_text()
        assert "✗ Your prompts and queries" in text
        assert "✓ Token usage statistics" in text
        assert "Data retention: 14 days" in text


# ---------------------------------------------------------------------------
# update_settings
# ---------------------------------------------------------------------------


class TestUpdateSettings:
    """Verify user-editable settings and their validation."""

    def test_updates_and_persists(self, privacy_store: PrivacyStore) -> None:
        updated = privacy_store.update_settings(track_tokens=False, data_retention_days=30)

        assert updated.track_tokens is False
        assert updated.data_retention_days == 30
        reloaded = PrivacyStore(privacy_store.path).settings
        assert reloaded.track_tokens is False
        assert reloaded.data_retention_days == 30

    def test_unknown_key_rejected(self, privacy_store: PrivacyStore) -> None:
        with pytest.raises(PrivacySettingsError, match="consent_given"):
            privacy_store.update_settings(consent_given=True)

    @pytest.mark.parametrize("days", [0, -5])
    def test_invalid_retention_rejected(self, privacy_store: PrivacyStore, days: int) -> None:
        with pytest.raises(PrivacySettingsError, match="Invalid privacy settings"):
            privacy_store.update_settings(data_retention_days=days)
        assert privacy_store.settings.data_retention_days == 90

    def test_update_keeps_consent(self, privacy_store: PrivacyStore) -> None:
        privacy_store.update_settings(track_metadata=False)
        assert privacy_store.is_tracking_enabled() is True
        assert privacy_store.should_track_metadata() is False


# ---------------------------------------------------------------------------
# Retention info & last prompt date
# ---------------------------------------------------------------------------


class TestRetentionInfo:
    def test_no_prompt_yet(self, privacy_store: PrivacyStore) -> None:
        info = privacy_store.get_retention_info()
        assert info.retention_days == 90
        assert info.next_cleanup_date is None

    def test_next_cleanup_from_last_prompt(self, privacy_store: PrivacyStore) -> None:
        before = datetime.now(UTC)
        privacy_store.update_last_prompt_date()

        info = privacy_store.get_retention_info()

        assert info.next_cleanup_date is not None
        assert info.next_cleanup_date >= before + timedelta(days=90)


# ---------------------------------------------------------------------------
# delete_all_data
# ---------------------------------------------------------------------------


class TestDeleteAllData:
    @pytest.mark.asyncio
    async def test_success_revokes_consent(self, privacy_store: PrivacyStore) -> None:
        store = AsyncMock()
        store.delete_all_interactions.return_value = True

        assert await privacy_store.delete_all_data(store) is True
        assert privacy_store.is_tracking_enabled() is False

    @pytest.mark.asyncio
    async def test_failure_keeps_consent(self, privacy_store: PrivacyStore) -> None:
        store = AsyncMock()
        store.delete_all_interactions.return_value = False

        assert await privacy_store.delete_all_data(store) is False
        assert privacy_store.is_tracking_enabled() is True


# ---------------------------------------------------------------------------
# Persistence failures
# ---------------------------------------------------------------------------


def test_save_failure_is_logged(tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
    blocker = tmp_path / "not-a-dir"
    blocker.write_text("")
    store = PrivacyStore(blocker / "privacy.json")

    with caplog.at_level(logging.ERROR):
        store.give_consent()

    assert "Failed to save privacy settings" in caplog.text
    assert store.is_tracking_enabled() is True
