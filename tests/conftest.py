import asyncio
from dataclasses import replace
from datetime import datetime, timedelta, timezone

import pytest

from recall_tutor.db import init_db
from recall_tutor.models import new_item
from recall_tutor.repository import ItemRepository

NOW = datetime(2024, 5, 1, 9, 0, tzinfo=timezone.utc)


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now=NOW):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


@pytest.fixture
def tmp_db(tmp_path):
    """Provide a temporary SQLite database path for tests."""
    db_path = str(tmp_path / "test_recall.db")
    return db_path


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def repo(tmp_db, clock):
    init_db(tmp_db)
    return ItemRepository(tmp_db, clock=clock)


@pytest.fixture
def make_item():
    """Build an item created a week ago and due now unless overridden."""
    def _make(title="Question", body="Answer", **overrides):
        item = new_item(title, body, NOW - timedelta(days=7))
        overrides.setdefault("next_review_date", NOW)
        return replace(item, **overrides)
    return _make


@pytest.fixture
def settle():
    """Let pending feed deliveries reach their consumers."""
    async def _settle():
        for _ in range(10):
            await asyncio.sleep(0)
    return _settle
