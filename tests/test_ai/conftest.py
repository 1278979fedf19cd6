"""Shared fixtures for the AI provider tests."""
from __future__ import annotations

import pytest

from aieditor.ai.ports import InMemoryStorage

from .helpers import RecordingListener, RecordingSink


@pytest.fixture
def listener() -> RecordingListener:
    return RecordingListener()


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def storage() -> InMemoryStorage:
    return InMemoryStorage()


@pytest.fixture(autouse=True)
def _clear_api_key_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    monkeypatch.delenv("OPENROUTER_API_KEY", raising=False)
