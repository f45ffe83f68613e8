"""Public entry point for recording prompts and their responses.

The :class:`InteractionTracker` applies the privacy gate, hands records to
the :class:`~tracking_engine.pipeline.BatchProcessor`, and attaches late
response metadata to records that are still queued.

INVARIANT: Tracking is best-effort and never propagates errors.  ``track``,
``track_prompt`` and ``update_with_response`` return ``None`` whatever
happens; callers must not depend on tracking outcomes.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, Field, ValidationError

from tracking_engine.models.interaction import InteractionRecord, QueueStatus, ResponseUpdate
from tracking_engine.pipeline.batch_processor import BatchProcessor
from tracking_engine.telemetry.privacy import filter_record, filter_update
from tracking_engine.telemetry.settings_store import PrivacyStore

logger = logging.getLogger(__name__)


class SessionContext(BaseModel):
    """The parts of the host CLI session a prompt record needs."""

    session_id: str = Field(..., min_length=1)
    model_name: str | None = None


class InteractionTracker:
    """Accepts interactions, filters them, and queues them for delivery.

    Parameters
    ----------
    processor:
        Queue and batch delivery.
    privacy:
        Consent and per-category switches, consulted on every call.
    remote_configured:
        Whether a remote store is configured at all.  When ``False`` every
        operation is a no-op.
    """

    def __init__(
        self,
        processor: BatchProcessor,
        privacy: PrivacyStore,
        *,
        remote_configured: bool = True,
    ) -> None:
        self._processor = processor
        self._privacy = privacy
        self._remote_configured = remote_configured

    @property
    def processor(self) -> BatchProcessor:
        return self._processor

    def is_enabled(self) -> bool:
        return self._remote_configured and self._privacy.is_tracking_enabled()

    # -- Tracking ------------------------------------------------------------

    def track(self, raw: InteractionRecord | Mapping[str, Any]) -> None:
        """Filter and enqueue one interaction.  No-op when tracking is disabled."""
        if not self.is_enabled():
            return
        try:
            record = raw if isinstance(raw, InteractionRecord) else InteractionRecord.model_validate(raw)
            self._processor.enqueue(filter_record(self._privacy.settings, record))
            self._privacy.update_last_prompt_date()
        except ValidationError as exc:
            logger.debug("Dropping malformed interaction: %s", exc)
        except Exception:
            logger.debug("Failed to track interaction", exc_info=True)

    def track_prompt(
        self,
        session: SessionContext,
        prompt_text: str,
        prompt_id: str,
        prompt_length: int,
        auth_type: str | None = None,
    ) -> None:
        """Track a user prompt before its response is known.

        ``prompt_length`` stands in for ``input_token_count`` until the
        response reports real counts.
        """
        if not self._remote_configured:
            return
        self.track(
            {
                "prompt_text": prompt_text,
                "prompt_id": prompt_id,
                "session_id": session.session_id,
                "model_name": session.model_name,
                "auth_type": auth_type,
                "input_token_count": prompt_length,
                "metadata": {
                    "promptLength": prompt_length,
                    "timestamp": datetime.now(UTC).isoformat(),
                },
            }
        )

    def update_with_response(
        self,
        prompt_id: str,
        fields: ResponseUpdate | Mapping[str, Any],
    ) -> None:
        """Attach response metadata to the queued record for *prompt_id*.

        A miss (already sent, or never queued) is a silent no-op.
        """
        if not self._remote_configured:
            return
        try:
            update = fields if isinstance(fields, ResponseUpdate) else ResponseUpdate.model_validate(fields)
            self._processor.update(prompt_id, filter_update(self._privacy.settings, update))
        except ValidationError as exc:
            logger.debug("Dropping malformed response update for prompt_id=%s: %s", prompt_id, exc)
        except Exception:
            logger.debug("Failed to update interaction prompt_id=%s", prompt_id, exc_info=True)

    # -- Status & lifecycle --------------------------------------------------

    def get_queue_status(self) -> QueueStatus:
        return QueueStatus(
            pending_count=self._processor.pending_count,
            is_processing=self._processor.is_processing,
            is_enabled=self.is_enabled(),
        )

    async def flush(self, timeout: float | None = None) -> None:
        """Resolve once every queued interaction has been delivered or abandoned."""
        await self._processor.flush(timeout)

    def start(self) -> None:
        self._processor.start()

    async def shutdown(self, timeout: float | None = None) -> None:
        await self._processor.shutdown(timeout)

    def install_signal_handlers(self, timeout: float | None = None) -> bool:
        return self._processor.install_signal_handlers(timeout)
