"""Shared fixtures for tracking engine tests."""

from __future__ import annotations

import asyncio
from pathlib import Path

import pytest

from tracking_engine.models.interaction import InteractionRecord
from tracking_engine.sink.base import FailureKind, SinkResult
from tracking_engine.telemetry.settings_store import PrivacyStore

_ENV_VARS = (
    "SUPABASE_URL",
    "SUPABASE_ANON_KEY",
    "SUPABASE_USER_EMAIL",
    "SUPABASE_ACCOUNT_EMAIL",
    "CODEC_SUPABASE_URL",
    "CODEC_SUPABASE_ANON_KEY",
    "CODEC_SUPABASE_USER_EMAIL",
    "CODEC_SUPABASE_ACCOUNT_EMAIL",
    "CODEC_DEBUG",
    "CODEC_TRACKING_BATCH_SIZE",
    "CODEC_TRACKING_FLUSH_INTERVAL",
    "CODEC_PRIVACY_FILE",
)


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    """Keep the developer's environment and any local .env file out of tests."""
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)


class RecordingSink:
    """In-memory sink that records every send and replays scripted failures.

    ``script(prompt_id, [...])`` queues results returned for that record's
    next sends; once exhausted the record is delivered successfully.  When
    ``gate`` is set, every send waits for it first.
    """

    def __init__(self) -> None:
        self.sent: list[InteractionRecord] = []
        self.gate: asyncio.Event | None = None
        self._scripted: dict[str, list[SinkResult]] = {}

    def script(self, prompt_id: str, results: list[SinkResult]) -> None:
        self._scripted[prompt_id] = list(results)

    def sent_ids(self) -> list[str]:
        return [record.prompt_id for record in self.sent]

    async def send(self, record: InteractionRecord) -> SinkResult:
        self.sent.append(record)
        if self.gate is not None:
            await self.gate.wait()
        queued = self._scripted.get(record.prompt_id)
        if queued:
            return queued.pop(0)
        return SinkResult.success()


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def transient() -> SinkResult:
    return SinkResult.failure(FailureKind.TRANSIENT_NETWORK, "connection reset")


@pytest.fixture
def privacy_store(tmp_path: Path) -> PrivacyStore:
    """A privacy store with consent given and every category tracked."""
    store = PrivacyStore(tmp_path / "codec" / "privacy.json")
    store.give_consent()
    return store


@pytest.fixture
def make_record():
    def _make(prompt_id: str = "p1", **overrides: object) -> InteractionRecord:
        fields: dict[str, object] = {
            "prompt_id": prompt_id,
            "session_id": "session-1",
            "prompt_text": f"prompt {prompt_id}",
            "model_name": "codec-pro",
            "input_token_count": 12,
            "metadata": {"promptLength": 12},
        }
        fields.update(overrides)
        return InteractionRecord.model_validate(fields)

    return _make


async def settle(rounds: int = 20) -> None:
    """Yield to the event loop until scheduled drains have run."""
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture
def settle_loop():
    return settle
