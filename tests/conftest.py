"""Shared pytest fixtures for hivelog tests.

Provides temporary and in-memory databases, an in-memory store with a
small hive registry, and a controllable clock for reconciliation.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from hivelog.database import Database
from hivelog.store import MemoryStore

HIVE_NAMES = ("Main Hive", "North Hive", "East Hive")


class StepClock:
    """Clock returning a fixed start time, advanced explicitly by tests."""

    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def tmp_db(tmp_path: Path) -> Database:
    """Create a temporary SQLite database (file-based for WAL support)."""
    db = Database(tmp_path / "test.db")
    yield db
    db.close()


@pytest.fixture
def memory_db() -> Database:
    """In-memory SQLite database."""
    db = Database(":memory:")
    yield db
    db.close()


@pytest.fixture
def memory_store() -> MemoryStore:
    """MemoryStore holding Main Hive, North Hive and East Hive, in that order."""
    store = MemoryStore()
    for name in HIVE_NAMES:
        store.add_hive(name)
    return store


@pytest.fixture
def seeded_db(tmp_db: Database) -> Database:
    """Temporary database with Main Hive, North Hive and East Hive registered."""
    for name in HIVE_NAMES:
        tmp_db.add_hive(name)
    return tmp_db


@pytest.fixture
def clock() -> StepClock:
    return StepClock(datetime(2024, 6, 1, 9, 30, tzinfo=timezone.utc))
