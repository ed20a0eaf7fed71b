# tests/test_feed.py
import asyncio

import pytest

from recall_tutor.feed import FeedConsumer, LiveFeed
from recall_tutor.models import new_item

from conftest import NOW

A = new_item("A", "a", NOW)
B = new_item("B", "b", NOW)


@pytest.mark.asyncio
async def test_subscribe_delivers_initial_snapshot():
    feed = LiveFeed()
    sub = feed.subscribe([A], name="test")
    assert await sub.get() == (A,)
    assert len(feed) == 1


@pytest.mark.asyncio
async def test_broadcast_reaches_every_subscriber_in_order():
    feed = LiveFeed()
    first = feed.subscribe([])
    second = feed.subscribe([])
    feed.broadcast([A])
    feed.broadcast([A, B])
    for sub in (first, second):
        assert [await sub.get() for _ in range(3)] == [(), (A,), (A, B)]


@pytest.mark.asyncio
async def test_cancel_stops_only_that_subscriber():
    feed = LiveFeed()
    keep = feed.subscribe([])
    drop = feed.subscribe([])
    drop.cancel()
    drop.cancel()  # idempotent
    feed.broadcast([A])
    assert len(feed) == 1
    assert [await keep.get(), await keep.get()] == [(), (A,)]
    with pytest.raises(StopAsyncIteration):
        await drop.get()


@pytest.mark.asyncio
async def test_async_iteration_ends_on_close(settle):
    feed = LiveFeed()
    sub = feed.subscribe([A])
    seen = []

    async def consume():
        async for snapshot in sub:
            seen.append(snapshot)

    task = asyncio.create_task(consume())
    await settle()
    feed.broadcast([A, B])
    await settle()
    feed.close()
    await asyncio.wait_for(task, timeout=1)
    assert seen == [(A,), (A, B)]
    assert len(feed) == 0


class Recorder(FeedConsumer):
    feed_name = "recorder"

    def __init__(self, repository):
        super().__init__(repository)
        self.seen = []

    def _on_items(self, items):
        if items and items[0].title == "boom":
            raise RuntimeError("bad snapshot")
        self.seen.append(items)


@pytest.mark.asyncio
async def test_consumer_reopen_cancels_previous_subscription(repo, settle):
    consumer = Recorder(repo)
    await consumer._open_feed()
    first = consumer._subscription
    await consumer._open_feed()
    assert first.cancelled
    assert len(repo.feed) == 1
    consumer._close_feed()
    consumer._close_feed()
    assert not consumer.is_subscribed
    assert len(repo.feed) == 0


@pytest.mark.asyncio
async def test_consumer_survives_failing_snapshot(repo, settle):
    consumer = Recorder(repo)
    await consumer._open_feed()
    await repo.create(new_item("boom", "x", NOW))
    await settle()
    await repo.create(new_item("fine", "x", NOW))
    await settle()
    assert [len(s) for s in consumer.seen] == [0, 2]
    consumer._close_feed()
