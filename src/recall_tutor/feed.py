"""Live feed: every subscriber receives the full item set after each committed write."""
import asyncio
import itertools
import logging
from typing import Optional, Sequence

from recall_tutor.models import StudyItem

logger = logging.getLogger(__name__)

Snapshot = tuple[StudyItem, ...]

_CLOSED = object()


class Subscription:
    """One subscriber's channel. Iterate it to receive snapshots in commit order."""

    def __init__(self, feed: "LiveFeed", sub_id: int, name: str):
        self._feed = feed
        self._queue: asyncio.Queue = asyncio.Queue()
        self.id = sub_id
        self.name = name
        self.cancelled = False

    def _deliver(self, snapshot: Snapshot) -> None:
        if not self.cancelled:
            self._queue.put_nowait(snapshot)

    async def get(self) -> Snapshot:
        """Wait for the next snapshot. Raises StopAsyncIteration once cancelled."""
        if self.cancelled and self._queue.empty():
            raise StopAsyncIteration
        snapshot = await self._queue.get()
        if snapshot is _CLOSED:
            raise StopAsyncIteration
        return snapshot

    def cancel(self) -> None:
        """Stop further emissions to this subscriber. Safe to call repeatedly."""
        if self.cancelled:
            return
        self.cancelled = True
        self._feed._remove(self)
        while not self._queue.empty():
            self._queue.get_nowait()
        self._queue.put_nowait(_CLOSED)
        logger.debug("Subscription %s (%s) cancelled", self.id, self.name)

    def __aiter__(self):
        return self

    async def __anext__(self) -> Snapshot:
        return await self.get()


class LiveFeed:
    """Registry of active subscriptions and the fan-out of snapshots to them.

    Only the repository's write path calls broadcast, one write at a time,
    so each subscriber sees snapshots in the order writes committed.
    """

    def __init__(self):
        self._subscribers: dict[int, Subscription] = {}
        self._ids = itertools.count(1)

    def __len__(self) -> int:
        return len(self._subscribers)

    def subscribe(self, snapshot: Sequence[StudyItem], name: str = "feed") -> Subscription:
        sub = Subscription(self, next(self._ids), name)
        self._subscribers[sub.id] = sub
        sub._deliver(tuple(snapshot))
        logger.debug("Subscription %s (%s) opened, %d active", sub.id, name, len(self))
        return sub

    def broadcast(self, snapshot: Sequence[StudyItem]) -> None:
        frozen = tuple(snapshot)
        for sub in list(self._subscribers.values()):
            sub._deliver(frozen)
        logger.debug("Broadcast %d items to %d subscribers", len(frozen), len(self))

    def _remove(self, sub: Subscription) -> None:
        self._subscribers.pop(sub.id, None)

    def close(self) -> None:
        for sub in list(self._subscribers.values()):
            sub.cancel()


class FeedConsumer:
    """Base for screens that derive their state from the live feed.

    Holds at most one subscription: opening again cancels the previous one.
    Subclasses implement _on_items, which runs synchronously per snapshot.
    """

    feed_name = "feed"

    def __init__(self, repository):
        self._repository = repository
        self._subscription: Optional[Subscription] = None
        self._pump_task: Optional[asyncio.Task] = None

    @property
    def is_subscribed(self) -> bool:
        return self._subscription is not None and not self._subscription.cancelled

    async def _open_feed(self) -> None:
        self._close_feed()
        sub = await self._repository.subscribe(name=self.feed_name)
        self._subscription = sub
        self._on_items(await sub.get())
        self._pump_task = asyncio.create_task(self._pump(sub))

    async def _pump(self, sub: Subscription) -> None:
        async for snapshot in sub:
            try:
                self._on_items(snapshot)
            except Exception:
                logger.exception("%s failed to apply a feed snapshot", self.feed_name)

    def _close_feed(self) -> None:
        if self._subscription is not None:
            self._subscription.cancel()
            self._subscription = None
        if self._pump_task is not None:
            self._pump_task.cancel()
            self._pump_task = None

    def _on_items(self, items: Snapshot) -> None:
        raise NotImplementedError
