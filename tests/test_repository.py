"""Tests for the async item repository and its live feed."""
import asyncio
import sqlite3
from dataclasses import replace
from datetime import timedelta
from unittest.mock import patch

import pytest

from recall_tutor.errors import (
    HistoryNotRecorded, InvalidArgument, NotFound, ReviewNotGraded, StorageError,
)
from recall_tutor.models import new_item

from conftest import NOW


async def assert_no_emission(sub):
    with pytest.raises(asyncio.TimeoutError):
        await asyncio.wait_for(sub.get(), timeout=0.05)


@pytest.mark.asyncio
async def test_create_and_fetch(repo):
    item = new_item("Q", "A", NOW, images=[b"\x00\x01img"], pdf=b"%PDF", tags=["t"])
    await repo.create(item)
    assert await repo.fetch_one(item.id) == item
    assert await repo.fetch_all() == [item]


@pytest.mark.asyncio
async def test_fetch_one_missing(repo):
    with pytest.raises(NotFound) as exc_info:
        await repo.fetch_one("missing")
    assert exc_info.value.item_id == "missing"
    assert await repo.fetch_one("missing", missing_ok=True) is None


@pytest.mark.asyncio
async def test_fetch_due_uses_clock(repo, clock, make_item):
    due = make_item("Due")
    later = make_item("Later", next_review_date=NOW + timedelta(days=2))
    await repo.create(due)
    await repo.create(later)
    assert [i.title for i in await repo.fetch_due()] == ["Due"]
    clock.advance(days=3)
    assert {i.title for i in await repo.fetch_due()} == {"Due", "Later"}
    assert [i.title for i in await repo.fetch_due(NOW - timedelta(days=1))] == []


@pytest.mark.asyncio
async def test_subscribe_replays_full_set_on_every_write(repo):
    sub = await repo.subscribe("test")
    assert await sub.get() == ()
    item = new_item("Q", "A", NOW)
    await repo.create(item)
    assert await sub.get() == (item,)
    edited = replace(item, title="Q2")
    await repo.update(edited)
    assert await sub.get() == (edited,)
    await repo.delete(item.id)
    assert await sub.get() == ()
    sub.cancel()


@pytest.mark.asyncio
async def test_late_subscriber_gets_current_set(repo):
    item = new_item("Q", "A", NOW)
    await repo.create(item)
    sub = await repo.subscribe()
    assert await sub.get() == (item,)


@pytest.mark.asyncio
async def test_update_missing_raises_without_broadcast(repo):
    sub = await repo.subscribe()
    await sub.get()
    with pytest.raises(NotFound):
        await repo.update(new_item("ghost", "x", NOW))
    with pytest.raises(NotFound):
        await repo.delete("ghost")
    await assert_no_emission(sub)


@pytest.mark.asyncio
async def test_storage_failure_raises_without_broadcast(repo):
    item = new_item("Q", "A", NOW)
    await repo.create(item)
    sub = await repo.subscribe()
    await sub.get()
    with patch("recall_tutor.store.update_item", side_effect=sqlite3.OperationalError("disk I/O error")):
        with pytest.raises(StorageError) as exc_info:
            await repo.update(replace(item, title="changed"))
    assert isinstance(exc_info.value.__cause__, sqlite3.OperationalError)
    await assert_no_emission(sub)
    assert (await repo.fetch_one(item.id)).title == "Q"


@pytest.mark.asyncio
async def test_concurrent_writes_reach_subscribers_in_commit_order(repo):
    sub = await repo.subscribe()
    await sub.get()
    items = [new_item(f"Q{n}", "A", NOW + timedelta(seconds=n)) for n in range(5)]
    await asyncio.gather(*(repo.create(item) for item in items))
    sizes = [len(await sub.get()) for _ in items]
    assert sizes == [1, 2, 3, 4, 5]


@pytest.mark.asyncio
async def test_append_review_session(repo, clock):
    session = await repo.append_review_session("item-1", 4, response_time=-3)
    assert session.reviewed_at == clock()
    assert session.response_time == 0.0
    history = await repo.fetch_review_sessions("item-1")
    assert history == [session]


@pytest.mark.asyncio
async def test_append_review_session_rejects_bad_quality(repo):
    with pytest.raises(InvalidArgument):
        await repo.append_review_session("item-1", 7)
    assert await repo.fetch_review_sessions() == []


@pytest.mark.asyncio
async def test_record_review_writes_item_and_one_history_record(repo, make_item):
    item = make_item()
    await repo.create(item)
    graded = replace(item, interval=6, ease_factor=2.6, review_count=1)
    record = await repo.record_review(graded, 5, 3.2)
    assert await repo.fetch_one(item.id) == graded
    assert await repo.fetch_review_sessions(item.id) == [record]
    assert record.quality == 5
    assert record.response_time == 3.2


@pytest.mark.asyncio
async def test_record_review_update_failure_skips_history(repo, make_item):
    item = make_item()
    await repo.create(item)
    with patch("recall_tutor.store.update_item", side_effect=sqlite3.OperationalError("locked")):
        with pytest.raises(ReviewNotGraded) as exc_info:
            await repo.record_review(replace(item, interval=6), 4)
    assert isinstance(exc_info.value.__cause__, StorageError)
    assert await repo.fetch_review_sessions() == []


@pytest.mark.asyncio
async def test_record_review_on_deleted_item(repo, make_item):
    with pytest.raises(ReviewNotGraded) as exc_info:
        await repo.record_review(make_item(), 4)
    assert isinstance(exc_info.value.__cause__, NotFound)


@pytest.mark.asyncio
async def test_record_review_history_failure_keeps_grade(repo, make_item):
    item = make_item()
    await repo.create(item)
    graded = replace(item, interval=6, review_count=1)
    with patch("recall_tutor.store.insert_review_session", side_effect=sqlite3.OperationalError("full")):
        with pytest.raises(HistoryNotRecorded):
            await repo.record_review(graded, 4)
    assert await repo.fetch_one(item.id) == graded
    assert await repo.fetch_review_sessions() == []


@pytest.mark.asyncio
async def test_close_cancels_subscriptions(repo):
    first = await repo.subscribe()
    second = await repo.subscribe()
    repo.close()
    assert first.cancelled and second.cancelled
    assert len(repo.feed) == 0


@pytest.mark.asyncio
async def test_feed_refresh_failure_keeps_committed_review(repo, make_item):
    item = make_item()
    await repo.create(item)
    sub = await repo.subscribe()
    await sub.get()
    graded = replace(item, interval=6, ease_factor=2.6, review_count=1)
    with patch("recall_tutor.store.fetch_items", side_effect=sqlite3.OperationalError("disk I/O error")):
        record = await repo.record_review(graded, 5)
    assert record.quality == 5
    await assert_no_emission(sub)
    # the next successful read catches subscribers up
    assert await repo.fetch_one(item.id) == graded
    assert await sub.get() == (graded,)
    assert await repo.fetch_review_sessions(item.id) == [record]


@pytest.mark.asyncio
async def test_feed_refresh_failure_after_delete(repo, make_item):
    item = make_item()
    await repo.create(item)
    sub = await repo.subscribe()
    await sub.get()
    with patch("recall_tutor.store.fetch_items", side_effect=sqlite3.OperationalError("disk I/O error")):
        await repo.delete(item.id)
    late = await repo.subscribe()
    assert await late.get() == ()
    assert await sub.get() == ()
    assert await repo.fetch_one(item.id, missing_ok=True) is None
    await assert_no_emission(sub)
