"""Shared fixtures for transcript relay tests."""

import json
from pathlib import Path

import pytest

from gateway.broadcast import BroadcastOptions, ChatEventPayload
from gateway.session_store import SessionEntry


class FakeClock:
    """Monotonic clock the test advances by hand."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingBroadcast:
    """BroadcastFn that keeps every call."""

    def __init__(self):
        self.calls: list[tuple[str, ChatEventPayload, BroadcastOptions]] = []

    def __call__(self, event: str, payload: ChatEventPayload, options: BroadcastOptions) -> None:
        self.calls.append((event, payload, options))

    @property
    def payloads(self) -> list[ChatEventPayload]:
        return [payload for _, payload, _ in self.calls]


class CountingStoreLoader:
    """Store accessor that counts snapshot loads."""

    def __init__(self, raw: dict[str, dict]):
        self.store = {key: SessionEntry.model_validate(value) for key, value in raw.items()}
        self.calls = 0

    def __call__(self) -> dict[str, SessionEntry]:
        self.calls += 1
        return self.store


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def broadcast() -> RecordingBroadcast:
    return RecordingBroadcast()


@pytest.fixture
def write_transcript(tmp_path: Path):
    """Write a JSONL transcript from a list of records (dicts or raw strings)."""

    def _write(name: str, records: list) -> Path:
        path = tmp_path / name
        lines = [r if isinstance(r, str) else json.dumps(r) for r in records]
        path.write_text("".join(line + "\n" for line in lines), encoding="utf-8")
        return path

    return _write


@pytest.fixture
def write_store(tmp_path: Path):
    """Write a session store JSON file."""

    def _write(data, name: str = "sessions.json") -> Path:
        path = tmp_path / name
        path.write_text(json.dumps(data), encoding="utf-8")
        return path

    return _write
