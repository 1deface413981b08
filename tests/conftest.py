from datetime import datetime, timedelta, timezone

import pytest

from nervura.core.storage import JSONFileBackend, MemoryBackend, RecordStore


class FrozenClock:
    """Deterministic clock; call ``advance`` to move time forward."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: int = 60) -> datetime:
        self.now = self.now + timedelta(seconds=seconds)
        return self.now


@pytest.fixture
def clock():
    return FrozenClock(datetime(2024, 6, 1, 12, 0, 0, tzinfo=timezone.utc))


@pytest.fixture
def memory_store(clock):
    """RecordStore over a fresh in-memory backend."""
    return RecordStore(MemoryBackend(), clock=clock)


@pytest.fixture
def json_store(tmp_path, clock):
    """RecordStore over a JSON file in a temp directory."""
    return RecordStore(JSONFileBackend(tmp_path), clock=clock)
