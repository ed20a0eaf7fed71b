"""Library listing: search, filters and the selected item."""
import logging
from enum import Enum
from typing import Callable, Optional

from recall_tutor.clock import local_now
from recall_tutor.feed import FeedConsumer, Snapshot
from recall_tutor.models import ReviewSession, StudyItem
from recall_tutor.sm2 import next_review

logger = logging.getLogger(__name__)


class LibraryFilter(Enum):
    ALL = "All"
    DUE = "Due"
    RECENT = "Recent"


def matches(item: StudyItem, text: str) -> bool:
    needle = text.casefold()
    return (
        needle in item.title.casefold()
        or needle in item.body.casefold()
        or any(needle in tag.casefold() for tag in item.tags)
    )


class LibraryEngine(FeedConsumer):
    feed_name = "library"

    def __init__(self, repository, clock: Callable = local_now):
        super().__init__(repository)
        self.clock = clock
        self.items: Snapshot = ()
        self.search_text = ""
        self.filter = LibraryFilter.ALL
        self.selected_id: Optional[str] = None
        self.loading = False

    async def open(self) -> None:
        self.loading = True
        await self._open_feed()

    def close(self) -> None:
        self._close_feed()

    @property
    def due_count(self) -> int:
        now = self.clock()
        return sum(1 for item in self.items if item.is_due(now))

    @property
    def selected_item(self) -> Optional[StudyItem]:
        return self.find(self.selected_id) if self.selected_id else None

    def find(self, item_id: str) -> Optional[StudyItem]:
        return next((item for item in self.items if item.id == item_id), None)

    @property
    def visible_items(self) -> list[StudyItem]:
        if self.filter is LibraryFilter.DUE:
            now = self.clock()
            items = [item for item in self.items if item.is_due(now)]
        elif self.filter is LibraryFilter.RECENT:
            items = sorted(
                (item for item in self.items if item.review_count > 0),
                key=lambda item: item.next_review_date,
                reverse=True,
            )
        else:
            items = list(self.items)
        if self.search_text:
            items = [item for item in items if matches(item, self.search_text)]
        return items

    def set_filter(self, value: LibraryFilter) -> None:
        self.filter = value

    def search(self, text: str) -> None:
        self.search_text = text.strip()

    def select(self, item_id: Optional[str]) -> Optional[StudyItem]:
        if item_id is not None and self.find(item_id) is None:
            item_id = None
        self.selected_id = item_id
        return self.selected_item

    def _neighbour_of(self, item_id: str, items: Snapshot) -> Optional[str]:
        """Next item after item_id, else the one before it, else None."""
        ids = [item.id for item in items]
        if item_id not in ids:
            return None
        index = ids.index(item_id)
        if index + 1 < len(ids):
            return ids[index + 1]
        if index > 0:
            return ids[index - 1]
        return None

    def _on_items(self, items: Snapshot) -> None:
        first_load = self.loading
        self.loading = False
        previous = self.items
        new_ids = {item.id for item in items}
        if self.selected_id is not None and self.selected_id not in new_ids:
            # selected item was deleted elsewhere; walk outwards to a survivor
            remaining = tuple(item for item in previous if item.id in new_ids or item.id == self.selected_id)
            self.selected_id = self._neighbour_of(self.selected_id, remaining)
            logger.debug("Selected item vanished; selection moved to %s", self.selected_id)
        self.items = items
        if first_load and self.selected_id is None and items:
            self.selected_id = items[0].id

    async def delete_item(self, item_id: str) -> None:
        """Delete item_id; if it was selected, select its neighbour."""
        neighbour = self._neighbour_of(item_id, self.items)
        await self._repository.delete(item_id)
        logger.debug("Deleted %s from the library", item_id)
        if self.selected_id == item_id:
            self.selected_id = neighbour

    async def mark_reviewed(self, item_id: str, quality: int) -> ReviewSession:
        """Grade an item straight from the list, without a timed session."""
        item = self.find(item_id) or await self._repository.fetch_one(item_id)
        result = next_review(item.ease_factor, item.interval, quality, self.clock())
        return await self._repository.record_review(item.with_review(result), quality, 0.0)
