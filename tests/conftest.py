from __future__ import annotations

import asyncio
from typing import List, Tuple

import pytest

from kvsync.core.store_memory import InMemoryStore


class RecordingStore(InMemoryStore):
    """In-memory store that remembers every KV and session call."""

    def __init__(self) -> None:
        super().__init__()
        self.calls: List[Tuple[str, str]] = []

    async def get(self, key):
        self.calls.append(("get", key))
        return await super().get(key)

    async def put(self, key, value, **kwargs):
        self.calls.append(("put", key))
        return await super().put(key, value, **kwargs)

    async def delete(self, key):
        self.calls.append(("delete", key))
        return await super().delete(key)

    async def list_prefix(self, prefix):
        self.calls.append(("list", prefix))
        return await super().list_prefix(prefix)

    async def create_session(self, name, **kwargs):
        self.calls.append(("create_session", name))
        return await super().create_session(name, **kwargs)

    async def destroy_session(self, session_id):
        self.calls.append(("destroy_session", session_id))
        return await super().destroy_session(session_id)

    def puts_to(self, key: str) -> int:
        return sum(1 for op, k in self.calls if op == "put" and k == key)


class SleepRecorder:
    """Sleeper that records requested delays and only yields to the loop."""

    def __init__(self) -> None:
        self.delays: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)
        await asyncio.sleep(0)


@pytest.fixture
def store() -> RecordingStore:
    return RecordingStore()


@pytest.fixture
def sleeper() -> SleepRecorder:
    return SleepRecorder()
