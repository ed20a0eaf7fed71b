"""Item repository: async facade over the sqlite store plus the live feed.

All writes are serialized through one lock and run in a worker thread. A
write that commits re-broadcasts the full item set to every subscriber; a
write that fails broadcasts nothing. If re-reading the item set after a
commit fails, the write still succeeds and the feed is marked stale until the
next successful read.
"""
import asyncio
import logging
import sqlite3
from typing import Callable, Optional

from recall_tutor import store
from recall_tutor.clock import local_now
from recall_tutor.db import DEFAULT_DB_PATH
from recall_tutor.errors import HistoryNotRecorded, NotFound, ReviewNotGraded, StorageError
from recall_tutor.feed import LiveFeed, Subscription
from recall_tutor.models import ReviewSession, StudyItem, new_id
from recall_tutor.sm2 import validate_quality

logger = logging.getLogger(__name__)


class ItemRepository:
    def __init__(self, db_path: str = DEFAULT_DB_PATH, clock: Callable = local_now, feed: Optional[LiveFeed] = None):
        self.db_path = db_path
        self.clock = clock
        self.feed = feed if feed is not None else LiveFeed()
        self._write_lock = asyncio.Lock()
        self._feed_stale = False

    async def _call(self, action: str, func, *args):
        try:
            return await asyncio.to_thread(func, self.db_path, *args)
        except sqlite3.Error as exc:
            logger.error("Storage failure while trying to %s: %s", action, exc)
            raise StorageError(f"Could not {action}: {exc}") from exc

    async def _broadcast(self) -> None:
        try:
            snapshot = await self._call("refresh the live feed", store.fetch_items)
        except StorageError:
            self._feed_stale = True
            logger.warning("Live feed is stale until the next successful read")
            return
        self._feed_stale = False
        self.feed.broadcast(snapshot)

    async def _refresh_stale_feed(self) -> None:
        if not self._feed_stale:
            return
        async with self._write_lock:
            if self._feed_stale:
                await self._broadcast()

    # Reads

    async def fetch_all(self) -> list[StudyItem]:
        await self._refresh_stale_feed()
        return await self._call("fetch items", store.fetch_items)

    async def fetch_one(self, item_id: str, missing_ok: bool = False) -> Optional[StudyItem]:
        await self._refresh_stale_feed()
        item = await self._call("fetch item", store.fetch_item, item_id)
        if item is None and not missing_ok:
            raise NotFound(item_id)
        return item

    async def fetch_due(self, now=None) -> list[StudyItem]:
        await self._refresh_stale_feed()
        return await self._call("fetch due items", store.fetch_due_items, now or self.clock())

    async def fetch_review_sessions(self, item_id: Optional[str] = None) -> list[ReviewSession]:
        return await self._call("fetch review history", store.fetch_review_sessions, item_id)

    # Writes

    async def create(self, item: StudyItem) -> None:
        async with self._write_lock:
            await self._call("create item", store.insert_item, item)
            logger.debug("Created item %s", item.id)
            await self._broadcast()

    async def update(self, item: StudyItem) -> None:
        async with self._write_lock:
            if not await self._call("update item", store.update_item, item):
                raise NotFound(item.id)
            logger.debug("Updated item %s", item.id)
            await self._broadcast()

    async def delete(self, item_id: str) -> None:
        async with self._write_lock:
            if not await self._call("delete item", store.delete_item, item_id):
                raise NotFound(item_id)
            logger.debug("Deleted item %s", item_id)
            await self._broadcast()

    async def append_review_session(
        self,
        item_id: str,
        quality: int,
        response_time: float = 0.0,
        reviewed_at=None,
    ) -> ReviewSession:
        """Append one history record. Items are unchanged, so nothing is broadcast."""
        session = ReviewSession(
            id=new_id(),
            item_id=item_id,
            reviewed_at=reviewed_at or self.clock(),
            quality=validate_quality(quality),
            response_time=max(0.0, float(response_time)),
        )
        async with self._write_lock:
            await self._call("record review history", store.insert_review_session, session)
        logger.debug("Recorded review of %s with quality %d", item_id, session.quality)
        return session

    async def record_review(
        self,
        updated_item: StudyItem,
        quality: int,
        response_time: float = 0.0,
    ) -> ReviewSession:
        """Persist a graded review: the rescheduled item, then its history record.

        Raises ReviewNotGraded when the item update fails (the history write is
        then skipped) and HistoryNotRecorded when only the history write fails.
        """
        quality = validate_quality(quality)
        try:
            await self.update(updated_item)
        except (NotFound, StorageError) as exc:
            raise ReviewNotGraded(f"Review of {updated_item.title!r} was not saved: {exc}") from exc
        try:
            return await self.append_review_session(updated_item.id, quality, response_time)
        except StorageError as exc:
            raise HistoryNotRecorded(
                f"Review of {updated_item.title!r} was graded but not added to history: {exc}"
            ) from exc

    # Live feed

    async def subscribe(self, name: str = "feed") -> Subscription:
        """Open a subscription whose first snapshot is the current item set."""
        async with self._write_lock:
            snapshot = await self._call("load the live feed", store.fetch_items)
            if self._feed_stale:
                self._feed_stale = False
                self.feed.broadcast(snapshot)
            return self.feed.subscribe(snapshot, name)

    def close(self) -> None:
        self.feed.close()
