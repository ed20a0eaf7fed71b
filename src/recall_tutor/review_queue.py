"""Due-item queue: walks the user through every item due for review."""
import logging
from enum import Enum
from typing import Callable, Optional

from recall_tutor.clock import local_now
from recall_tutor.errors import InvalidTransition
from recall_tutor.feed import FeedConsumer, Snapshot
from recall_tutor.models import ReviewSession, StudyItem
from recall_tutor.review_session import ReviewSessionEngine, SessionState

logger = logging.getLogger(__name__)


class QueueState(Enum):
    IDLE = "idle"
    LOADING = "loading"
    READY = "ready"
    REVIEWING = "reviewing"
    EMPTY = "empty"


class ReviewQueueEngine(FeedConsumer):
    """Ordered snapshot of due items plus a cursor to the next one to review.

    The snapshot is rebuilt from every feed emission. The cursor follows the
    item it points at; if that item left the due list, it moves to the first
    item that has not been passed yet. The cursor only advances after a review
    has been written.
    """

    feed_name = "review-queue"

    def __init__(self, repository, clock: Callable = local_now):
        super().__init__(repository)
        self.clock = clock
        self.state = QueueState.IDLE
        self.snapshot: Snapshot = ()
        self.cursor = 0
        self.session: Optional[ReviewSessionEngine] = None
        self._all_items: Snapshot = ()

    # Derived views

    @property
    def due_count(self) -> int:
        return len(self.snapshot)

    @property
    def current_item(self) -> Optional[StudyItem]:
        if self.cursor < len(self.snapshot):
            return self.snapshot[self.cursor]
        return None

    @property
    def remaining(self) -> int:
        return max(0, len(self.snapshot) - self.cursor)

    @property
    def progress(self) -> float:
        if not self.snapshot:
            return 0.0
        return self.cursor / len(self.snapshot)

    # Lifecycle

    async def open(self) -> None:
        """(Re)load the due list. A review still in progress is abandoned."""
        if self.session is not None:
            if self.session.state in (SessionState.AWAITING_REVEAL, SessionState.ANSWER_SHOWN):
                self.session.cancel()
            self.session = None
        self.state = QueueState.LOADING
        await self._open_feed()

    def close(self) -> None:
        self._close_feed()
        self.state = QueueState.IDLE
        self.session = None
        self.snapshot = ()
        self._all_items = ()
        self.cursor = 0

    def refresh(self) -> None:
        """Re-apply the due filter to the last emission, for items that became due with time."""
        if self.state is not QueueState.IDLE:
            self._apply_due(self._due(self._all_items))

    def _on_items(self, items: Snapshot) -> None:
        self._all_items = items
        self._apply_due(self._due(items))

    def _due(self, items: Snapshot) -> Snapshot:
        now = self.clock()
        return tuple(item for item in items if item.is_due(now))

    def _apply_due(self, due: Snapshot) -> None:
        self.cursor = self._retarget(self.snapshot, due)
        self.snapshot = due
        if self.state is not QueueState.REVIEWING:
            self.state = QueueState.READY if due else QueueState.EMPTY
        logger.debug("Review queue: %d due, cursor %d, %s", len(due), self.cursor, self.state.value)

    def _retarget(self, old: Snapshot, new: Snapshot) -> int:
        new_ids = [item.id for item in new]
        if self.cursor < len(old) and old[self.cursor].id in new_ids:
            return new_ids.index(old[self.cursor].id)
        present = set(new_ids)
        passed = sum(1 for item in old[: self.cursor] if item.id in present)
        return min(passed, len(new))

    # Reviewing

    def start_next(self) -> ReviewSessionEngine:
        if self.state is not QueueState.READY:
            raise InvalidTransition(f"Cannot start a review while the queue is {self.state.value}")
        item = self.current_item
        if item is None:
            raise InvalidTransition("No items left to review")
        self.session = ReviewSessionEngine(item, recorder=self, clock=self.clock)
        self.state = QueueState.REVIEWING
        logger.debug("Reviewing %s (%d of %d)", item.id, self.cursor + 1, len(self.snapshot))
        return self.session

    async def review_completed(
        self,
        updated_item: StudyItem,
        quality: int,
        response_time: float = 0.0,
    ) -> ReviewSession:
        """Persist the graded item and its history, then advance the cursor.

        On failure the queue stays in REVIEWING with the cursor unchanged.
        """
        if self.state is not QueueState.REVIEWING or self.session is None:
            raise InvalidTransition(f"No review in progress (queue is {self.state.value})")
        if updated_item.id != self.session.item.id:
            raise InvalidTransition("Completed item is not the one under review")

        record = await self._repository.record_review(updated_item, quality, response_time)

        if self.state is not QueueState.REVIEWING:
            # closed while the write was in flight
            return record
        ids = [item.id for item in self.snapshot]
        if updated_item.id in ids:
            self.cursor = ids.index(updated_item.id) + 1
        self.cursor = min(self.cursor, len(self.snapshot))
        self.session = None
        self.state = QueueState.READY if self.snapshot else QueueState.EMPTY
        return record

    # the queue is the recorder of the sessions it starts
    record_review = review_completed

    def cancel_review(self) -> None:
        if self.state is not QueueState.REVIEWING or self.session is None:
            raise InvalidTransition("No review in progress")
        self.session.cancel()
        self.session = None
        self.state = QueueState.READY if self.snapshot else QueueState.EMPTY
