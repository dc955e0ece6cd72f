"""Pytest configuration and fixtures."""

import os
from datetime import datetime, timedelta, timezone
from typing import Any, Sequence
from uuid import uuid4

import pytest

# Set test environment variables before importing the package
os.environ.setdefault("DOCUMENT_STORE_BACKEND", "memory")
os.environ.setdefault("REDIS_URL", "redis://localhost:6379/0")

from nudge_engine.services.document_store import DocumentSnapshot, InMemoryDocumentStore  # noqa: E402


class RecordingStore(InMemoryDocumentStore):
    """In-memory store that records every call and can simulate outages."""

    def __init__(self):
        super().__init__()
        self.calls: list[tuple[str, Any]] = []
        self.fail_get = False
        self.fail_set = False
        self.fail_batch = False

    def seed(self, path: str, data: dict) -> None:
        """Put a document in place without recording a call."""
        self._documents[path] = data

    def document(self, path: str) -> dict | None:
        return self._documents.get(path)

    def count(self, operation: str) -> int:
        return sum(1 for op, _ in self.calls if op == operation)

    async def get(self, path: str) -> DocumentSnapshot:
        self.calls.append(("get", path))
        if self.fail_get:
            raise ConnectionError("store unavailable")
        return await super().get(path)

    async def set(self, path: str, data: dict, merge: bool = False) -> None:
        self.calls.append(("set", path))
        if self.fail_set:
            raise ConnectionError("store unavailable")
        await super().set(path, data, merge=merge)

    async def batch_set(self, writes: Sequence[tuple[str, dict]]) -> None:
        self.calls.append(("batch_set", [path for path, _ in writes]))
        if self.fail_batch:
            raise ConnectionError("store unavailable")
        await super().batch_set(writes)


class FrozenClock:
    """Deterministic clock for cooldown tests."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def store() -> RecordingStore:
    return RecordingStore()


@pytest.fixture
def store_factory():
    """Build independent stores within one test."""
    return RecordingStore


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock(datetime(2026, 3, 2, 9, 30, tzinfo=timezone.utc))


@pytest.fixture
def user_id() -> str:
    return str(uuid4())


@pytest.fixture
def session_id() -> str:
    return f"session-{uuid4().hex[:8]}"
