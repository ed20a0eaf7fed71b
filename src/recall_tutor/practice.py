"""Practice mode: walk any subset of items without touching the schedule."""
import logging
import random
from enum import Enum
from typing import Callable, Optional

from recall_tutor.clock import local_now
from recall_tutor.feed import FeedConsumer, Snapshot
from recall_tutor.models import StudyItem

logger = logging.getLogger(__name__)

RANDOM_SAMPLE_SIZE = 10
DIFFICULT_EASE_THRESHOLD = 2.0


class PracticeMode(Enum):
    ALL = "All Cards"
    DUE_ONLY = "Due Cards"
    RANDOM_TEN = "Random 10"
    DIFFICULT = "Difficult"


class PracticeEngine(FeedConsumer):
    """Flip-card practice over the live feed.

    know_it and needs_work only move the cursor and tally the answer in
    memory. Nothing here writes to the repository.
    """

    feed_name = "practice"

    def __init__(
        self,
        repository,
        mode: PracticeMode = PracticeMode.ALL,
        shuffled: bool = True,
        clock: Callable = local_now,
        rng: Optional[random.Random] = None,
    ):
        super().__init__(repository)
        self.mode = mode
        self.shuffled = shuffled
        self.clock = clock
        self.rng = rng or random.Random()
        self.all_items: Snapshot = ()
        self.items: list[StudyItem] = []
        self.cursor = 0
        self.flipped = False
        self.known: set[str] = set()
        self.needs_work_ids: set[str] = set()
        self._sample_ids: Optional[list[str]] = None
        self._loaded = False

    @property
    def current_item(self) -> Optional[StudyItem]:
        if 0 <= self.cursor < len(self.items):
            return self.items[self.cursor]
        return None

    @property
    def finished(self) -> bool:
        return self.cursor >= len(self.items)

    @property
    def remaining(self) -> int:
        return max(0, len(self.items) - self.cursor)

    @property
    def progress(self) -> float:
        if not self.items:
            return 0.0
        return min(self.cursor, len(self.items)) / len(self.items)

    async def open(self) -> None:
        self._sample_ids = None
        self._loaded = False
        await self._open_feed()

    def close(self) -> None:
        self._close_feed()

    def _select(self, items: Snapshot) -> list[StudyItem]:
        if self.mode is PracticeMode.ALL:
            return list(items)
        if self.mode is PracticeMode.DUE_ONLY:
            now = self.clock()
            return [item for item in items if item.is_due(now)]
        if self.mode is PracticeMode.DIFFICULT:
            return [item for item in items if item.ease_factor < DIFFICULT_EASE_THRESHOLD]
        if self._sample_ids is None:
            count = min(RANDOM_SAMPLE_SIZE, len(items))
            self._sample_ids = [item.id for item in self.rng.sample(list(items), count)]
        by_id = {item.id: item for item in items}
        return [by_id[item_id] for item_id in self._sample_ids if item_id in by_id]

    def _rebuild(self) -> None:
        """Fresh working set from all_items, cursor back to the start."""
        self.items = self._select(self.all_items)
        if self.shuffled:
            self.rng.shuffle(self.items)
        self.cursor = 0
        self.flipped = False

    def _on_items(self, items: Snapshot) -> None:
        self.all_items = items
        if not self._loaded:
            self._loaded = True
            self._rebuild()
            return
        # keep the current order for items still selected, append newcomers
        current = self.current_item
        selected = self._select(items)
        by_id = {item.id: item for item in selected}
        kept = [by_id.pop(item.id) for item in self.items if item.id in by_id]
        newcomers = list(by_id.values())
        if self.shuffled:
            self.rng.shuffle(newcomers)
        self.items = kept + newcomers
        ids = [item.id for item in self.items]
        if current is not None and current.id in ids:
            self.cursor = ids.index(current.id)
        else:
            self.cursor = min(self.cursor, len(self.items))
        self.flipped = False

    # Card actions

    def flip(self) -> None:
        if self.current_item is not None:
            self.flipped = not self.flipped

    def next_card(self) -> None:
        if self.cursor < len(self.items) - 1:
            self.cursor += 1
            self.flipped = False

    def previous_card(self) -> None:
        if self.cursor > 0:
            self.cursor -= 1
            self.flipped = False

    def know_it(self) -> None:
        self._answer(self.known, self.needs_work_ids)

    def needs_work(self) -> None:
        self._answer(self.needs_work_ids, self.known)

    def _answer(self, tally: set, other: set) -> None:
        item = self.current_item
        if item is None:
            return
        tally.add(item.id)
        other.discard(item.id)
        self.cursor += 1
        self.flipped = False

    def shuffle(self) -> None:
        """Reshuffle the working set; in Random 10 mode this draws a new sample."""
        if self.mode is PracticeMode.RANDOM_TEN:
            self._sample_ids = None
            self.items = self._select(self.all_items)
        self.rng.shuffle(self.items)
        self.cursor = 0
        self.flipped = False

    def change_mode(self, mode: PracticeMode) -> None:
        self.mode = mode
        self._sample_ids = None
        self._rebuild()
        logger.debug("Practice mode %s: %d items", mode.value, len(self.items))

    def restart(self) -> None:
        if self.shuffled:
            self.rng.shuffle(self.items)
        self.cursor = 0
        self.flipped = False
        self.known.clear()
        self.needs_work_ids.clear()
