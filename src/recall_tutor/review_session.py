"""Graded review of a single item: reveal, rate, persist."""
import logging
from enum import Enum
from typing import Callable, Optional, Protocol

from recall_tutor.clock import local_now
from recall_tutor.errors import InvalidTransition, RecallError
from recall_tutor.models import ReviewSession, StudyItem
from recall_tutor.sm2 import next_review, validate_quality

logger = logging.getLogger(__name__)


class ReviewRecorder(Protocol):
    async def record_review(self, updated_item: StudyItem, quality: int, response_time: float = 0.0) -> ReviewSession:
        ...


class SessionState(Enum):
    AWAITING_REVEAL = "awaiting_reveal"
    ANSWER_SHOWN = "answer_shown"
    SUBMITTING = "submitting"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class ReviewSessionEngine:
    """State machine for one graded review.

    AWAITING_REVEAL -> ANSWER_SHOWN -> SUBMITTING -> COMPLETED, or CANCELLED
    from either of the first two states. The session works on its own copy of
    the item; feed updates never reach it. A failed write leaves the session in
    SUBMITTING with the error on `error`, ready for retry().
    """

    def __init__(self, item: StudyItem, recorder: ReviewRecorder, clock: Callable = local_now):
        self.item = item
        self.recorder = recorder
        self.clock = clock
        self.start_time = clock()
        self.state = SessionState.AWAITING_REVEAL
        self.quality: Optional[int] = None
        self.response_time = 0.0
        self.updated_item: Optional[StudyItem] = None
        self.error: Optional[RecallError] = None
        self._in_flight = False

    @property
    def answer_visible(self) -> bool:
        return self.state is not SessionState.AWAITING_REVEAL

    @property
    def is_saving(self) -> bool:
        return self._in_flight

    def reveal(self) -> None:
        if self.state is not SessionState.AWAITING_REVEAL:
            raise InvalidTransition(f"Cannot reveal the answer while {self.state.value}")
        self.state = SessionState.ANSWER_SHOWN

    async def rate(self, quality: int) -> StudyItem:
        """Grade the item and persist it. Returns the rescheduled item."""
        if self.state is not SessionState.ANSWER_SHOWN:
            raise InvalidTransition(f"Cannot rate while {self.state.value}")
        quality = validate_quality(quality)
        now = self.clock()
        self.response_time = max(0.0, (now - self.start_time).total_seconds())
        result = next_review(self.item.ease_factor, self.item.interval, quality, now)
        self.quality = quality
        self.updated_item = self.item.with_review(result)
        self.state = SessionState.SUBMITTING
        logger.debug(
            "Rated %s quality=%d interval %d->%d",
            self.item.id, quality, self.item.interval, result.new_interval,
        )
        return await self._submit()

    async def retry(self) -> StudyItem:
        """Re-send the pending write after a failure."""
        if self.state is not SessionState.SUBMITTING or self._in_flight:
            raise InvalidTransition(f"Nothing to retry while {self.state.value}")
        return await self._submit()

    async def _submit(self) -> StudyItem:
        self._in_flight = True
        self.error = None
        try:
            await self.recorder.record_review(self.updated_item, self.quality, self.response_time)
        except RecallError as exc:
            self.error = exc
            logger.warning("Saving review of %s failed: %s", self.item.id, exc)
            raise
        finally:
            self._in_flight = False
        self.state = SessionState.COMPLETED
        return self.updated_item

    def cancel(self) -> None:
        if self.state not in (SessionState.AWAITING_REVEAL, SessionState.ANSWER_SHOWN):
            raise InvalidTransition(f"Cannot cancel while {self.state.value}")
        self.state = SessionState.CANCELLED
