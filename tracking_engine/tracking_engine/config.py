"""Tracking engine configuration loaded from environment variables."""

from __future__ import annotations

import logging
import re
from pathlib import Path
from urllib.parse import urlparse

from pydantic import AliasChoices, Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

DEFAULT_PRIVACY_FILE = Path.home() / ".codec" / "privacy.json"


class Settings(BaseSettings):
    """Application settings loaded from environment variables with CODEC_ prefix.

    The remote store credentials also accept the bare ``SUPABASE_*`` names
    that existing installations already export.
    """

    model_config = SettingsConfigDict(
        env_prefix="CODEC_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        populate_by_name=True,
        extra="ignore",
    )

    debug: bool = False

    # Remote store
    supabase_url: str | None = Field(
        default=None,
        validation_alias=AliasChoices("supabase_url", "SUPABASE_URL", "CODEC_SUPABASE_URL"),
    )
    supabase_anon_key: SecretStr | None = Field(
        default=None,
        validation_alias=AliasChoices("supabase_anon_key", "SUPABASE_ANON_KEY", "CODEC_SUPABASE_ANON_KEY"),
    )
    supabase_user_email: str | None = Field(
        default=None,
        validation_alias=AliasChoices("supabase_user_email", "SUPABASE_USER_EMAIL", "CODEC_SUPABASE_USER_EMAIL"),
    )
    # Optional upstream account stored on each row next to the owner identity.
    supabase_account_email: str | None = Field(
        default=None,
        validation_alias=AliasChoices(
            "supabase_account_email", "SUPABASE_ACCOUNT_EMAIL", "CODEC_SUPABASE_ACCOUNT_EMAIL"
        ),
    )
    interactions_table: str = "user_interactions"

    # Queue
    tracking_batch_size: int = Field(default=10, ge=1)
    tracking_flush_interval: float = Field(default=5.0, gt=0.0)

    # Sink retries
    sink_max_retries: int = Field(default=3, ge=0)
    sink_retry_base_delay: float = Field(default=1.0, ge=0.0)
    sink_timeout: float = Field(default=10.0, gt=0.0)

    # Privacy settings file
    privacy_file: Path = DEFAULT_PRIVACY_FILE

    @field_validator("supabase_anon_key", mode="before")
    @classmethod
    def mask_key_in_repr(cls, v: str | None) -> SecretStr | None:
        if v is None or v == "":
            return None
        if isinstance(v, SecretStr):
            return v
        return SecretStr(v)

    def is_remote_configured(self) -> bool:
        return validate_remote_config(self) is None


def validate_remote_config(settings: Settings) -> str | None:
    """Return a human-readable problem with the remote store settings, or ``None``.

    Checks that all three credentials are present, that the URL is an
    absolute http(s) URL and that the user email looks like an address.
    """
    missing = [
        name
        for name, value in (
            ("SUPABASE_URL", settings.supabase_url),
            ("SUPABASE_ANON_KEY", settings.supabase_anon_key),
            ("SUPABASE_USER_EMAIL", settings.supabase_user_email),
        )
        if not value
    ]
    if missing:
        return f"Missing required environment variables: {', '.join(missing)}"

    parsed = urlparse(settings.supabase_url or "")
    if parsed.scheme not in ("https", "http") or not parsed.netloc:
        return f"Invalid SUPABASE_URL format: {settings.supabase_url}"

    if not _EMAIL_RE.match(settings.supabase_user_email or ""):
        return f"Invalid SUPABASE_USER_EMAIL format: {settings.supabase_user_email}"

    return None


def load_settings(**overrides: object) -> Settings:
    """Load settings from environment, with optional overrides for testing."""
    settings = Settings(**overrides)  # type: ignore[arg-type]

    if settings.debug:
        logger.info("Loaded tracking settings (remote configured: %s)", settings.is_remote_configured())

    return settings
