"""Data classes for the study domain model."""
import uuid
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Optional

from recall_tutor.clock import add_days

DEFAULT_EASE_FACTOR = 2.5
INITIAL_INTERVAL = 1


def new_id() -> str:
    return str(uuid.uuid4())


@dataclass(frozen=True)
class StudyItem:
    id: str
    title: str
    body: str
    created_at: datetime
    next_review_date: datetime
    images: tuple[bytes, ...] = ()
    pdf: Optional[bytes] = None
    tags: tuple[str, ...] = ()
    review_count: int = 0
    ease_factor: float = DEFAULT_EASE_FACTOR
    interval: int = 0

    def is_due(self, now: datetime) -> bool:
        return self.next_review_date <= now

    def days_until_review(self, now: datetime) -> int:
        return max(0, (self.next_review_date - now).days)

    @property
    def has_media(self) -> bool:
        return bool(self.images) or self.pdf is not None

    def with_review(self, result: "ReviewResult") -> "StudyItem":
        """Copy of self with the four scheduling fields advanced by a review."""
        return replace(
            self,
            next_review_date=result.next_date,
            interval=result.new_interval,
            ease_factor=result.new_ease_factor,
            review_count=self.review_count + 1,
        )


def new_item(
    title: str,
    body: str,
    now: datetime,
    images=(),
    pdf: Optional[bytes] = None,
    tags=(),
) -> StudyItem:
    """Build a fresh item, first due one day after creation."""
    return StudyItem(
        id=new_id(),
        title=title,
        body=body,
        created_at=now,
        next_review_date=add_days(now, 1),
        images=tuple(images),
        pdf=pdf,
        tags=tuple(tags),
        review_count=0,
        ease_factor=DEFAULT_EASE_FACTOR,
        interval=INITIAL_INTERVAL,
    )


@dataclass(frozen=True)
class ReviewSession:
    id: str
    item_id: str
    reviewed_at: datetime
    quality: int
    response_time: float = 0.0


@dataclass(frozen=True)
class ReviewResult:
    next_date: datetime
    new_interval: int
    new_ease_factor: float


@dataclass(frozen=True)
class Reminder:
    id: str
    fire_at: Optional[datetime]
    title: str
    body: str
    repeats: bool = False
    hour: Optional[int] = None
    minute: Optional[int] = None
    badge: int = 0
