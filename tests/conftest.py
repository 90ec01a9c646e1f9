"""
Pytest configuration and fixtures for sqlkv tests.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import AsyncGenerator, Generator
from unittest.mock import patch

import pytest

from sqlkv.config import clear_settings_cache
from sqlkv.session import KVSession, open_kv
from sqlkv.types import ChangeEvent


class EventRecorder:
    """Listener that records every event it receives."""

    def __init__(self) -> None:
        self.events: list[ChangeEvent] = []

    async def __call__(self, event: ChangeEvent) -> None:
        self.events.append(event)

    @property
    def kinds(self) -> list[str]:
        return [e.kind.value for e in self.events]

    @property
    def keys(self) -> list[str]:
        return [e.record.key for e in self.events]


@pytest.fixture
def temp_dir(tmp_path: Path) -> Path:
    """Provide a temporary directory for test databases."""
    return tmp_path


@pytest.fixture
def recorder() -> EventRecorder:
    """Provide an event listener that records events."""
    return EventRecorder()


@pytest.fixture
async def kv(recorder: EventRecorder) -> AsyncGenerator[KVSession, None]:
    """Provide an open in-memory session with a recording listener."""
    session = await open_kv(":memory:", event_listener=recorder)
    yield session
    await session.close()


@pytest.fixture
async def plain_kv() -> AsyncGenerator[KVSession, None]:
    """Provide an open in-memory session without a listener."""
    session = await open_kv(":memory:")
    yield session
    await session.close()


@pytest.fixture
async def repos(kv: KVSession, recorder: EventRecorder) -> list[str]:
    """Populate the store with a small repository dataset.

    Returns the keys in ascending order. The recorder is cleared afterwards.
    """
    dataset = [
        {"id": 1, "forks_count": 30, "full_name": "a/one"},
        {"id": 2, "forks_count": 10, "full_name": "b/two"},
        {"id": 3, "forks_count": 20, "full_name": "c/three"},
        {"id": 4, "forks_count": 10, "full_name": "d/four"},
        {"id": 5, "forks_count": 50, "full_name": "e/five"},
        {"id": 6, "forks_count": 40, "full_name": "f/six"},
    ]
    keys = []
    for repo in dataset:
        key = f"repos:{repo['id']}"
        await kv.set(key, repo)
        keys.append(key)
    recorder.events.clear()
    return sorted(keys)


@pytest.fixture
def mock_env_vars() -> Generator[dict[str, str], None, None]:
    """Provide mock environment variables for Settings."""
    env_vars = {
        "KV_URL": "test.db",
        "KV_TOKEN": "token-abcdefghijklmnop",
        "KV_SYNC_INTERVAL": "30",
        "LOG_LEVEL": "DEBUG",
    }

    with patch.dict(os.environ, env_vars, clear=False):
        clear_settings_cache()
        yield env_vars


@pytest.fixture(autouse=True)
def reset_settings_cache() -> Generator[None, None, None]:
    """Automatically reset settings cache before and after each test."""
    clear_settings_cache()
    yield
    clear_settings_cache()
