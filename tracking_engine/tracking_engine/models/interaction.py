"""Interaction records and the snapshots derived from them.

An ``InteractionRecord`` is one user prompt plus whatever response metadata
arrives before the record is flushed.  ``ResponseUpdate`` carries that late
metadata.  ``UserInteractionRow`` is the shape written to and read back from
the remote ``user_interactions`` table.
"""

from __future__ import annotations

from datetime import datetime
from typing import Annotated, Any

from pydantic import BaseModel, BeforeValidator, Field

TOKEN_FIELDS: tuple[str, ...] = (
    "input_token_count",
    "output_token_count",
    "total_token_count",
    "cached_token_count",
    "thoughts_token_count",
    "tool_token_count",
)


def _number_or_none(value: Any) -> Any:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return value


# Counts and durations are kept as reported (negative or fractional values
# included); the remote sink coerces them when building the wire row.
ReportedNumber = Annotated[int | float | None, BeforeValidator(_number_or_none)]


class InteractionRecord(BaseModel):
    """A single tracked prompt and its (possibly partial) response metadata.

    ``prompt_id`` is the only field used for identity.  Records are mutable
    while pending in the queue and treated as immutable once dispatched.
    """

    prompt_id: str = Field(..., min_length=1, description="Caller-supplied unique key.")
    session_id: str = Field(..., min_length=1, description="CLI session the prompt belongs to.")
    prompt_text: str = Field(default="", description="Prompt text, or the redaction sentinel.")
    model_name: str | None = None
    auth_type: str | None = None

    input_token_count: ReportedNumber = None
    output_token_count: ReportedNumber = None
    total_token_count: ReportedNumber = None
    cached_token_count: ReportedNumber = None
    thoughts_token_count: ReportedNumber = None
    tool_token_count: ReportedNumber = None

    response_duration_ms: ReportedNumber = None
    metadata: dict[str, Any] | None = None

    def merged_with(self, update: ResponseUpdate) -> InteractionRecord:
        """Return a copy with *update* applied.

        Scalar fields present in the update overwrite; ``metadata`` is merged
        key-wise (shallow) so earlier keys survive.
        """
        changes = update.model_dump(exclude_none=True, exclude={"metadata"})
        data = self.model_dump()
        data.update(changes)
        if update.metadata is not None:
            data["metadata"] = {**(self.metadata or {}), **update.metadata}
        return InteractionRecord.model_validate(data)


class ResponseUpdate(BaseModel):
    """Response metadata attached to a pending record after the model answers."""

    output_token_count: ReportedNumber = None
    total_token_count: ReportedNumber = None
    cached_token_count: ReportedNumber = None
    thoughts_token_count: ReportedNumber = None
    tool_token_count: ReportedNumber = None
    response_duration_ms: ReportedNumber = None
    metadata: dict[str, Any] | None = None


class UserInteractionRow(BaseModel):
    """Row shape of the remote ``user_interactions`` table."""

    id: str | int | None = None
    user_email: str
    account_email: str | None = None
    prompt_text: str
    prompt_id: str
    session_id: str
    model_name: str | None = None
    auth_type: str | None = None
    input_token_count: int | None = None
    output_token_count: int | None = None
    total_token_count: int | None = None
    cached_token_count: int | None = None
    thoughts_token_count: int | None = None
    tool_token_count: int | None = None
    response_duration_ms: int | None = None
    interaction_timestamp: datetime | None = None
    metadata: dict[str, Any] | None = None


class QueueStatus(BaseModel):
    """Read-only snapshot of the tracking queue."""

    pending_count: int = 0
    is_processing: bool = False
    is_enabled: bool = False


class UsageStats(BaseModel):
    """Aggregate usage figures for the configured identity."""

    total_interactions: int = 0
    total_tokens: int = 0
    average_tokens_per_interaction: int = 0
    last_interaction: datetime | None = None


class HealthStatus(BaseModel):
    """Result of a liveness probe against the remote store."""

    is_healthy: bool
    error: str | None = None
    latency_ms: float | None = None
