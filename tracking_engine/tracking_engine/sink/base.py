"""Remote sink protocol and failure classification.

A sink accepts one interaction record at a time and reports the outcome as a
:class:`SinkResult` instead of raising, so that the batch processor can
decide per record whether to retry, drop, or discard.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Protocol

from tracking_engine.models.interaction import (
    HealthStatus,
    InteractionRecord,
    UsageStats,
    UserInteractionRow,
)


class FailureKind(str, Enum):
    """Why a sink operation failed."""

    VALIDATION = "validation"
    TRANSIENT_NETWORK = "transient-network"
    REMOTE_REJECTION = "remote-rejection"
    UNKNOWN = "unknown"

    @property
    def retryable(self) -> bool:
        # Unclassified errors are not retried to avoid unbounded retry loops.
        return self is FailureKind.TRANSIENT_NETWORK


@dataclass(frozen=True)
class SinkResult:
    """Outcome of sending a single record."""

    ok: bool
    kind: FailureKind | None = None
    message: str = ""

    @classmethod
    def success(cls) -> SinkResult:
        return cls(ok=True)

    @classmethod
    def failure(cls, kind: FailureKind, message: str) -> SinkResult:
        return cls(ok=False, kind=kind, message=message)

    @property
    def retryable(self) -> bool:
        return not self.ok and self.kind is not None and self.kind.retryable


class RemoteSink(Protocol):
    """Protocol for interaction record delivery."""

    async def send(self, record: InteractionRecord) -> SinkResult:
        """Deliver one record.  Must not raise for remote failures."""
        ...


class InteractionStore(RemoteSink, Protocol):
    """A remote sink that can also read back and delete the owner's records."""

    async def list_interactions(self, limit: int = 100, offset: int = 0) -> Sequence[UserInteractionRow]:
        """Return the owner's records, newest first."""
        ...

    async def delete_all_interactions(self) -> bool:
        """Delete every record owned by the configured identity."""
        ...

    async def delete_interactions_before(self, cutoff: datetime) -> int:
        """Delete the owner's records older than *cutoff*; return the count."""
        ...

    async def get_user_stats(self) -> UsageStats:
        """Aggregate token usage for the configured identity."""
        ...

    async def health_check(self) -> HealthStatus:
        """Probe the store with a minimal read and measure the round trip."""
        ...

    async def close(self) -> None:
        ...
