"""Shared fixtures: a temp-file database with a controllable clock."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from core.db import Database
from core.hub import Hub


class FakeClock:
    """Deterministic stand-in for ``datetime.now(timezone.utc)``."""

    def __init__(self, start: datetime = datetime(2026, 2, 1, 12, 0, tzinfo=timezone.utc)) -> None:
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs: float) -> None:
        self.current += timedelta(**kwargs)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def db(tmp_path, clock) -> Database:
    """A fresh database file per test so the real hub DB is never touched."""
    database = Database(tmp_path / "test_hub.db", clock=clock)
    database.init_schema()
    return database


@pytest.fixture
def hub(db) -> Hub:
    return Hub(db)


@pytest.fixture
def make_item():
    """Factory for ingestion-shaped item dicts."""

    def _make(item_id: str, **overrides):
        item = {
            "id": item_id,
            "source": "github",
            "title": f"Item {item_id}",
            "url": f"https://example.com/{item_id}",
            "description": "",
            "author": "someone",
            "stars": 10,
            "score": 1.0,
            "published_at": "2026-01-01T00:00:00+00:00",
            "metadata": {},
        }
        item.update(overrides)
        return item

    return _make
