"""Once-per-session consent prompt decisions."""

from __future__ import annotations

from dataclasses import dataclass

from tracking_engine.telemetry.settings_store import PrivacyStore


@dataclass(frozen=True)
class ConsentPrompt:
    should_show: bool
    message: str | None = None


class ConsentManager:
    """Decides when to ask the user for tracking consent.

    The prompt is shown at most once per session, and only when a remote
    store is configured but the user has not consented yet.
    """

    def __init__(self, privacy: PrivacyStore, remote_configured: bool) -> None:
        self._privacy = privacy
        self._remote_configured = remote_configured
        self._shown_this_session = False

    def should_show_consent_prompt(self) -> ConsentPrompt:
        if self._shown_this_session or not self._remote_configured:
            return ConsentPrompt(should_show=False)
        if self._privacy.is_tracking_enabled():
            return ConsentPrompt(should_show=False)
        if self._privacy.needs_consent_prompt(self._remote_configured):
            self._shown_this_session = True
            return ConsentPrompt(should_show=True, message=self._consent_message())
        return ConsentPrompt(should_show=False)

    def mark_prompt_shown(self) -> None:
        self._shown_this_session = True

    def reset_session(self) -> None:
        self._shown_this_session = False

    def quick_status(self) -> str:
        """One-line status for the CLI footer; empty when no remote store is configured."""
        if not self._remote_configured:
            return ""
        if self._privacy.is_tracking_enabled():
            return "Usage tracking: Enabled"
        return "Usage tracking: Available (use `privacy consent give` to enable)"

    def should_show_reminder(self) -> bool:
        if not self._remote_configured:
            return False
        return not self._privacy.settings.consent_given and not self._shown_this_session

    def _consent_message(self) -> str:
        return (
            f"{self._privacy.consent_text()}\n\n"
            "Commands:\n"
            "- `privacy consent give`   - Enable tracking\n"
            "- `privacy consent revoke` - Disable tracking\n"
            "- `privacy status`         - View current settings\n"
            "- `usage stats`            - View usage statistics (after enabling)\n\n"
            "This prompt will only be shown once per session."
        )
