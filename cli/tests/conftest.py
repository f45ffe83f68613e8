"""Shared fixtures for CLI tests.

Commands build their tracking components through ``cli.app._load_services``;
tests patch it to return components wired to a temporary privacy file and an
``httpx.MockTransport`` that plays the remote store.
"""

from __future__ import annotations

import json
from collections.abc import Callable
from pathlib import Path

import httpx
import pytest

from tracking_engine.config import Settings
from tracking_engine.services import TrackingServices, build_services

_ENV_VARS = (
    "SUPABASE_URL",
    "SUPABASE_ANON_KEY",
    "SUPABASE_USER_EMAIL",
    "SUPABASE_ACCOUNT_EMAIL",
    "CODEC_SUPABASE_URL",
    "CODEC_SUPABASE_ANON_KEY",
    "CODEC_SUPABASE_USER_EMAIL",
    "CODEC_SUPABASE_ACCOUNT_EMAIL",
    "CODEC_PRIVACY_FILE",
)

HISTORY_ROWS = [
    {
        "id": 2,
        "user_email": "dev@example.com",
        "prompt_text": "add a retry to the uploader",
        "prompt_id": "p2",
        "session_id": "s1",
        "model_name": "codec-pro",
        "total_token_count": 120,
        "interaction_timestamp": "2026-10-02T09:00:00+00:00",
    },
    {
        "id": 1,
        "user_email": "dev@example.com",
        "prompt_text": "[REDACTED]",
        "prompt_id": "p1",
        "session_id": "s1",
        "model_name": "codec-pro",
        "total_token_count": 30,
        "interaction_timestamp": "2026-10-01T09:00:00+00:00",
    },
]


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)


class FakeRemote:
    """Answers PostgREST requests the way the interactions table would."""

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.fail_with: int | None = None

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.fail_with is not None:
            return httpx.Response(self.fail_with, json={"message": "remote unavailable"})

        params = request.url.params
        if request.method == "POST":
            return httpx.Response(201)
        if request.method == "DELETE":
            if "interaction_timestamp" in params:
                return httpx.Response(200, json=[{"id": 1}, {"id": 2}, {"id": 3}])
            return httpx.Response(204)
        select = params.get("select")
        if select == "id":
            return httpx.Response(200, json=[{"id": 1}])
        if select == "total_token_count,interaction_timestamp":
            return httpx.Response(
                200,
                json=[
                    {"total_token_count": row["total_token_count"], "interaction_timestamp": row["interaction_timestamp"]}
                    for row in HISTORY_ROWS
                ],
            )
        return httpx.Response(200, json=HISTORY_ROWS[: int(params.get("limit", "100"))])

    def last_body(self) -> object:
        return json.loads(self.requests[-1].content)


@pytest.fixture
def remote() -> FakeRemote:
    return FakeRemote()


@pytest.fixture
def make_services(tmp_path: Path, remote: FakeRemote) -> Callable[..., TrackingServices]:
    def _make(*, configured: bool = True, consent: bool = True) -> TrackingServices:
        fields: dict[str, object] = {"privacy_file": tmp_path / "privacy.json", "sink_retry_base_delay": 0.0}
        if configured:
            fields.update(
                supabase_url="https://demo.supabase.co",
                supabase_anon_key="anon-key",
                supabase_user_email="dev@example.com",
            )
        client = httpx.AsyncClient(transport=httpx.MockTransport(remote))
        services = build_services(Settings(**fields), http_client=client)
        if consent and configured:
            services.privacy.give_consent()
        return services

    return _make
