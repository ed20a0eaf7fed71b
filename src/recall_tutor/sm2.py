"""SM-2 spaced repetition algorithm."""
import math
from datetime import date, datetime, time
from enum import IntEnum

from recall_tutor.clock import add_days
from recall_tutor.errors import InvalidArgument
from recall_tutor.models import ReviewResult

MIN_EASE_FACTOR = 1.3
OPTIMAL_REVIEW_HOUR = 18


class QualityRating(IntEnum):
    BLACKOUT = 0
    INCORRECT = 1
    INCORRECT_EASY = 2
    HARD = 3
    GOOD = 4
    PERFECT = 5

    @property
    def title(self) -> str:
        return _TITLES[self]

    @property
    def description(self) -> str:
        return _DESCRIPTIONS[self]


_TITLES = {
    QualityRating.BLACKOUT: "Blackout",
    QualityRating.INCORRECT: "Wrong",
    QualityRating.INCORRECT_EASY: "Wrong (Easy)",
    QualityRating.HARD: "Hard",
    QualityRating.GOOD: "Good",
    QualityRating.PERFECT: "Perfect",
}

_DESCRIPTIONS = {
    QualityRating.BLACKOUT: "Complete blackout, no memory",
    QualityRating.INCORRECT: "Incorrect, but remembered after",
    QualityRating.INCORRECT_EASY: "Incorrect, but seemed easy",
    QualityRating.HARD: "Correct with serious difficulty",
    QualityRating.GOOD: "Correct with some hesitation",
    QualityRating.PERFECT: "Perfect response",
}


def validate_quality(quality) -> int:
    """Return quality as an int, raising InvalidArgument outside 0-5."""
    if isinstance(quality, bool) or not isinstance(quality, int):
        raise InvalidArgument(f"Quality must be an integer 0-5, got {quality!r}")
    if not 0 <= quality <= 5:
        raise InvalidArgument(f"Quality must be between 0 and 5, got {quality}")
    return int(quality)


def next_review(
    ease_factor: float,
    interval: int,
    quality: int,
    now: datetime,
) -> ReviewResult:
    """Calculate next review parameters using SM-2.

    Args:
        ease_factor: Current ease factor (output never drops below 1.3)
        interval: Current interval in days
        quality: Rating 0-5 (0=complete blackout, 5=perfect)
        now: Moment of the review, in the user's local zone

    Returns:
        ReviewResult with the next review date, interval and ease factor.
    """
    quality = validate_quality(quality)
    if interval < 0:
        raise InvalidArgument(f"Interval must not be negative, got {interval}")

    # Update ease factor
    new_ef = ease_factor + (0.1 - (5 - quality) * (0.08 + (5 - quality) * 0.02))
    new_ef = max(MIN_EASE_FACTOR, new_ef)

    if quality < 3:
        # Incorrect: relearn from a one day interval
        new_interval = 1
    elif interval == 0:
        new_interval = 1
    elif interval == 1:
        new_interval = 6
    else:
        new_interval = math.floor(interval * new_ef)

    return ReviewResult(
        next_date=add_days(now, new_interval),
        new_interval=new_interval,
        new_ease_factor=new_ef,
    )


def optimal_review_time(day: date | datetime) -> datetime:
    """Evening slot (18:00) on the given day, best for consolidation."""
    if isinstance(day, datetime):
        return datetime.combine(day.date(), time(OPTIMAL_REVIEW_HOUR), tzinfo=day.tzinfo)
    return datetime.combine(day, time(OPTIMAL_REVIEW_HOUR))
