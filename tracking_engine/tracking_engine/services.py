"""Process-wide wiring of the tracking components.

Each component is constructed exactly once by :func:`build_services` at
process start and handed to its consumers, instead of living behind
module-level singletons.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

import httpx

from tracking_engine.config import Settings, validate_remote_config
from tracking_engine.models.interaction import InteractionRecord
from tracking_engine.pipeline.batch_processor import BatchProcessor
from tracking_engine.sink.base import FailureKind, SinkResult
from tracking_engine.sink.retry import RetryConfig, RetryPolicy
from tracking_engine.sink.supabase import SupabaseSink
from tracking_engine.telemetry.consent import ConsentManager
from tracking_engine.telemetry.retention import RetentionManager
from tracking_engine.telemetry.settings_store import PrivacyStore
from tracking_engine.tracker.interaction_tracker import InteractionTracker
from tracking_engine.tracker.response_logger import ResponseLogger

logger = logging.getLogger(__name__)


class _UnconfiguredSink:
    """Stands in for the remote store when no credentials are configured."""

    async def send(self, record: InteractionRecord) -> SinkResult:
        return SinkResult.failure(FailureKind.VALIDATION, "Remote store not configured")


@dataclass
class TrackingServices:
    """The tracking components of one process."""

    settings: Settings
    privacy: PrivacyStore
    processor: BatchProcessor
    tracker: InteractionTracker
    consent: ConsentManager
    response_logger: ResponseLogger
    store: SupabaseSink | None = None
    retention: RetentionManager | None = None
    config_error: str | None = None
    closed: bool = field(default=False, init=False)

    @property
    def remote_configured(self) -> bool:
        return self.store is not None

    async def aclose(self, timeout: float | None = 30.0) -> None:
        """Flush what is queued and release the HTTP client.  Safe to call twice."""
        if self.closed:
            return
        self.closed = True
        await self.tracker.shutdown(timeout)
        if self.store is not None:
            await self.store.close()


def build_services(
    settings: Settings,
    *,
    http_client: httpx.AsyncClient | None = None,
) -> TrackingServices:
    """Construct and wire every tracking component from *settings*.

    A missing or malformed remote configuration is not an error: tracking is
    then disabled and ``config_error`` says why.
    """
    privacy = PrivacyStore(settings.privacy_file)

    config_error = validate_remote_config(settings)
    store: SupabaseSink | None = None
    if config_error is None:
        store = SupabaseSink.from_settings(settings, http_client=http_client)
    else:
        logger.debug("Usage tracking disabled: %s", config_error)

    retry_policy = RetryPolicy(
        RetryConfig(
            max_retries=settings.sink_max_retries,
            base_delay=settings.sink_retry_base_delay,
        )
    )
    processor = BatchProcessor(
        store if store is not None else _UnconfiguredSink(),
        batch_size=settings.tracking_batch_size,
        flush_interval=settings.tracking_flush_interval,
        retry_policy=retry_policy,
    )
    tracker = InteractionTracker(processor, privacy, remote_configured=store is not None)

    return TrackingServices(
        settings=settings,
        privacy=privacy,
        processor=processor,
        tracker=tracker,
        consent=ConsentManager(privacy, remote_configured=store is not None),
        response_logger=ResponseLogger(tracker),
        store=store,
        retention=RetentionManager(store, privacy) if store is not None else None,
        config_error=config_error,
    )
