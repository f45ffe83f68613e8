"""Retention cleanup for remotely stored interaction records.

Records older than the user's ``data_retention_days`` are deleted from the
remote store on demand.  The window comes from the privacy settings, so a
user shortening it takes effect on the next cleanup.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime, timedelta

from tracking_engine.sink.base import InteractionStore
from tracking_engine.telemetry.settings_store import PrivacyStore

logger = logging.getLogger(__name__)


class RetentionManager:
    """Deletes expired interaction records for the configured identity.

    Parameters
    ----------
    store:
        Remote store holding the records.
    privacy:
        Source of the retention window.
    """

    def __init__(self, store: InteractionStore, privacy: PrivacyStore) -> None:
        self._store = store
        self._privacy = privacy

    def cutoff(self, now: datetime | None = None) -> datetime:
        """Return the timestamp before which records are expired."""
        now = now or datetime.now(UTC)
        return now - timedelta(days=self._privacy.settings.data_retention_days)

    async def cleanup_expired(self, now: datetime | None = None) -> int:
        """Delete records older than the retention window.

        Returns the number of records deleted.
        """
        cutoff = self.cutoff(now)
        deleted = await self._store.delete_interactions_before(cutoff)
        logger.info(
            "Retention cleanup removed %d interaction(s) older than %s",
            deleted,
            cutoff.isoformat(),
        )
        return deleted
