"""Exception hierarchy for the tracking engine.

None of these reach callers of the tracking entry points; the pipeline turns
them into drop or retry decisions.  They do surface from explicit user
commands (changing privacy settings, deleting data).
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from tracking_engine.sink.base import FailureKind


class TrackingError(Exception):
    """Base exception for all tracking engine errors."""


class SinkError(TrackingError):
    """A remote store operation failed."""

    def __init__(self, kind: FailureKind, message: str) -> None:
        super().__init__(message)
        self.kind = kind


class SinkNotConfiguredError(TrackingError):
    """The remote store credentials are missing or malformed."""


class PrivacySettingsError(TrackingError):
    """A privacy settings change was rejected."""
