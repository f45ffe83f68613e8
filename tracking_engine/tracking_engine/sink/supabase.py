"""Remote store for interaction records backed by a hosted Supabase project.

Talks to the project's PostgREST endpoint (``/rest/v1/<table>``) over HTTPS
with the anon key.  Row-level security on the server scopes every request;
this client additionally filters on the configured ``user_email``.

INVARIANT: No public method raises for remote failures.  ``send`` reports a
classified :class:`SinkResult`; the read/delete helpers log and return an
empty or negative result.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Sequence
from datetime import UTC, datetime
from typing import Any

import httpx
from pydantic import ValidationError

from tracking_engine.config import Settings, validate_remote_config
from tracking_engine.errors import SinkError, SinkNotConfiguredError
from tracking_engine.models.interaction import (
    TOKEN_FIELDS,
    HealthStatus,
    InteractionRecord,
    UsageStats,
    UserInteractionRow,
)
from tracking_engine.sink.base import FailureKind, SinkResult

logger = logging.getLogger(__name__)

_USER_AGENT = "codec-cli"

# PostgREST / Postgres error codes that mean "the server said no".
_DUPLICATE_KEY = "23505"
_RLS_VIOLATION = "PGRST301"

_TRANSIENT_STATUS = frozenset({408, 425, 429, 500, 502, 503, 504})


def _coerce_count(value: Any) -> int:
    """Token counts must be non-negative integers on the wire; anything else is 0."""
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        return 0
    return value


def _coerce_duration(value: Any) -> int | None:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        return None
    return value


def _json_rows(response: httpx.Response) -> list[dict[str, Any]]:
    """Decode a PostgREST array body; raise :class:`SinkError` if it is anything else."""
    try:
        body = response.json()
    except ValueError as exc:
        raise SinkError(FailureKind.UNKNOWN, "Response body is not valid JSON") from exc
    if body is None:
        return []
    if not isinstance(body, list) or not all(isinstance(row, dict) for row in body):
        raise SinkError(FailureKind.UNKNOWN, "Response body is not a list of rows")
    return body


def _parse_timestamp(value: Any) -> datetime | None:
    if not isinstance(value, str):
        return None
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        logger.debug("Ignoring unparseable interaction_timestamp %r", value)
        return None
    return parsed if parsed.tzinfo is not None else parsed.replace(tzinfo=UTC)


def classify_response(response: httpx.Response) -> tuple[FailureKind, str]:
    """Map an unsuccessful PostgREST response to a failure kind and message."""
    code = ""
    message = f"HTTP {response.status_code}"
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        code = str(body.get("code") or "")
        message = str(body.get("message") or message)

    if code == _DUPLICATE_KEY:
        return FailureKind.REMOTE_REJECTION, f"Duplicate key violation: {message}"
    if code == _RLS_VIOLATION:
        return FailureKind.REMOTE_REJECTION, f"Row level security policy violation: {message}"
    if response.status_code in _TRANSIENT_STATUS:
        return FailureKind.TRANSIENT_NETWORK, message
    if 400 <= response.status_code < 500:
        return FailureKind.REMOTE_REJECTION, message
    return FailureKind.UNKNOWN, message


def classify_exception(exc: Exception) -> FailureKind:
    """Timeouts, refused connections and DNS failures are transient."""
    if isinstance(exc, (httpx.TimeoutException, httpx.NetworkError)):
        return FailureKind.TRANSIENT_NETWORK
    return FailureKind.UNKNOWN


class SupabaseSink:
    """Async client for the ``user_interactions`` table.

    Parameters
    ----------
    url:
        Project URL, e.g. ``https://<project>.supabase.co``.
    anon_key:
        Public anon key sent as both ``apikey`` and bearer token.
    user_email:
        Identity the records are stored under.
    table:
        Table name.
    timeout:
        Per-request timeout in seconds.
    account_email:
        Optional upstream account address stored alongside each row.
    http_client:
        Optional ``httpx.AsyncClient`` for testing.  A default client is
        created if not provided.
    """

    def __init__(
        self,
        url: str,
        anon_key: str,
        user_email: str,
        *,
        table: str = "user_interactions",
        timeout: float = 10.0,
        account_email: str | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._base_url = url.rstrip("/")
        self._table = table
        self._user_email = user_email
        self._account_email = account_email
        self._headers = {
            "apikey": anon_key,
            "Authorization": f"Bearer {anon_key}",
            "Content-Type": "application/json",
            "User-Agent": _USER_AGENT,
        }
        self._client = http_client or httpx.AsyncClient(timeout=timeout)
        self._owns_client = http_client is None

    @classmethod
    def from_settings(cls, settings: Settings, http_client: httpx.AsyncClient | None = None) -> SupabaseSink:
        """Build a sink from settings.

        Raises
        ------
        SinkNotConfiguredError
            If the remote credentials are missing or malformed.
        """
        problem = validate_remote_config(settings)
        if problem is not None:
            raise SinkNotConfiguredError(problem)
        url, anon_key, user_email = settings.supabase_url, settings.supabase_anon_key, settings.supabase_user_email
        if url is None or anon_key is None or user_email is None:
            raise SinkNotConfiguredError("Supabase URL, anon key and user email are required")
        return cls(
            url,
            anon_key.get_secret_value(),
            user_email,
            table=settings.interactions_table,
            timeout=settings.sink_timeout,
            account_email=settings.supabase_account_email,
            http_client=http_client,
        )

    @property
    def user_email(self) -> str:
        return self._user_email

    @property
    def endpoint(self) -> str:
        return f"{self._base_url}/rest/v1/{self._table}"

    async def close(self) -> None:
        """Close the HTTP client if we own it."""
        if self._owns_client:
            await self._client.aclose()

    # -- Write ---------------------------------------------------------------

    def to_row(self, record: InteractionRecord) -> dict[str, Any]:
        """Build the wire row for *record*, coercing numeric fields."""
        row = UserInteractionRow(
            user_email=self._user_email,
            account_email=self._account_email,
            prompt_text=record.prompt_text,
            prompt_id=record.prompt_id,
            session_id=record.session_id,
            model_name=record.model_name,
            auth_type=record.auth_type,
            response_duration_ms=_coerce_duration(record.response_duration_ms),
            interaction_timestamp=datetime.now(UTC),
            metadata=record.metadata,
            **{field: _coerce_count(getattr(record, field)) for field in TOKEN_FIELDS},
        )
        return row.model_dump(mode="json", exclude={"id"})

    async def send(self, record: InteractionRecord) -> SinkResult:
        """Insert one record into the interactions table."""
        if not record.prompt_text or not record.prompt_id or not record.session_id:
            return SinkResult.failure(FailureKind.VALIDATION, "Missing required fields")

        try:
            await self._request(
                "POST",
                json=[self.to_row(record)],
                headers={"Prefer": "return=minimal"},
            )
        except SinkError as exc:
            return SinkResult.failure(exc.kind, str(exc))
        return SinkResult.success()

    # -- Read ----------------------------------------------------------------

    async def list_interactions(self, limit: int = 100, offset: int = 0) -> Sequence[UserInteractionRow]:
        """Return the owner's records ordered by ``interaction_timestamp`` descending."""
        params = {
            "select": "*",
            "user_email": f"eq.{self._user_email}",
            "order": "interaction_timestamp.desc",
            "limit": str(limit),
            "offset": str(offset),
        }
        try:
            response = await self._request("GET", params=params)
            return [UserInteractionRow.model_validate(item) for item in _json_rows(response)]
        except SinkError as exc:
            logger.warning("Failed to fetch user interactions: %s", exc)
        except ValidationError as exc:
            logger.warning("Discarding malformed interaction rows: %s", exc)
        return []

    async def get_user_stats(self) -> UsageStats:
        params = {
            "select": "total_token_count,interaction_timestamp",
            "user_email": f"eq.{self._user_email}",
        }
        try:
            response = await self._request("GET", params=params)
            rows = _json_rows(response)
        except SinkError as exc:
            logger.warning("Failed to fetch user stats: %s", exc)
            return UsageStats()

        total_tokens = sum(_coerce_count(row.get("total_token_count")) for row in rows)
        timestamps = [ts for ts in (_parse_timestamp(row.get("interaction_timestamp")) for row in rows) if ts]
        return UsageStats(
            total_interactions=len(rows),
            total_tokens=total_tokens,
            average_tokens_per_interaction=round(total_tokens / len(rows)) if rows else 0,
            last_interaction=max(timestamps) if timestamps else None,
        )

    async def health_check(self) -> HealthStatus:
        """Select a single ``id`` and report the round-trip latency."""
        start = time.monotonic()
        try:
            await self._request("GET", params={"select": "id", "limit": "1"})
        except SinkError as exc:
            return HealthStatus(
                is_healthy=False,
                error=str(exc),
                latency_ms=round((time.monotonic() - start) * 1000, 1),
            )
        return HealthStatus(is_healthy=True, latency_ms=round((time.monotonic() - start) * 1000, 1))

    # -- Delete --------------------------------------------------------------

    async def delete_all_interactions(self) -> bool:
        try:
            await self._request("DELETE", params={"user_email": f"eq.{self._user_email}"})
        except SinkError as exc:
            logger.warning("Failed to delete user data: %s", exc)
            return False
        return True

    async def delete_interactions_before(self, cutoff: datetime) -> int:
        params = {
            "user_email": f"eq.{self._user_email}",
            "interaction_timestamp": f"lt.{cutoff.isoformat()}",
            "select": "id",
        }
        try:
            response = await self._request("DELETE", params=params, headers={"Prefer": "return=representation"})
        except SinkError as exc:
            logger.warning("Failed to delete expired interactions: %s", exc)
            return 0
        try:
            return len(_json_rows(response))
        except SinkError as exc:
            # The delete itself succeeded; only the count is unknown.
            logger.warning("Expired interactions deleted but the count is unreadable: %s", exc)
            return 0

    # -- Transport -----------------------------------------------------------

    async def _request(
        self,
        method: str,
        *,
        params: dict[str, str] | None = None,
        json: Any = None,
        headers: dict[str, str] | None = None,
    ) -> httpx.Response:
        """Issue one request; raise :class:`SinkError` with a classified kind on failure."""
        try:
            response = await self._client.request(
                method,
                self.endpoint,
                params=params,
                json=json,
                headers={**self._headers, **(headers or {})},
            )
        except httpx.HTTPError as exc:
            kind = classify_exception(exc)
            raise SinkError(kind, f"{type(exc).__name__}: {exc}") from exc

        if response.is_success:
            return response

        kind, message = classify_response(response)
        raise SinkError(kind, message)
