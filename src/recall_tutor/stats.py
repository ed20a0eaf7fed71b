"""Statistics derived from the live item feed and the review history."""
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Callable, Iterable, Optional, Sequence

from recall_tutor.clock import add_days, local_date, local_now, start_of_day
from recall_tutor.feed import FeedConsumer, Snapshot
from recall_tutor.models import DEFAULT_EASE_FACTOR, ReviewSession, StudyItem

FORECAST_DAYS = 7

# (label, lowest interval, highest interval or None)
INTERVAL_BUCKETS = (
    ("New", 0, 0),
    ("Learning", 1, 6),
    ("Young", 7, 21),
    ("Mature", 22, None),
)


@dataclass(frozen=True)
class IntervalGroup:
    label: str
    count: int


@dataclass(frozen=True)
class UpcomingReview:
    day: date
    label: str
    count: int


@dataclass(frozen=True)
class Stats:
    total_items: int = 0
    due_today: int = 0
    reviewed_not_due: int = 0
    total_reviews: int = 0
    average_ease_factor: float = DEFAULT_EASE_FACTOR
    items_by_interval: tuple[IntervalGroup, ...] = ()
    upcoming_reviews: tuple[UpcomingReview, ...] = ()


@dataclass(frozen=True)
class HistorySummary:
    reviewed_today: int = 0
    current_streak: int = 0
    best_streak: int = 0
    retention: float = 0.0
    total_sessions: int = 0
    review_days: tuple[date, ...] = field(default=(), repr=False)


def interval_label(interval: int) -> str:
    for label, low, high in INTERVAL_BUCKETS:
        if interval >= low and (high is None or interval <= high):
            return label
    return INTERVAL_BUCKETS[0][0]


def interval_groups(items: Iterable[StudyItem]) -> tuple[IntervalGroup, ...]:
    counts = {label: 0 for label, _, _ in INTERVAL_BUCKETS}
    for item in items:
        counts[interval_label(item.interval)] += 1
    return tuple(IntervalGroup(label, counts[label]) for label, _, _ in INTERVAL_BUCKETS)


def day_label(offset: int, day: date) -> str:
    if offset == 0:
        return "Today"
    if offset == 1:
        return "Tomorrow"
    return day.strftime("%a")


def upcoming_reviews(items: Sequence[StudyItem], now: datetime) -> tuple[UpcomingReview, ...]:
    """Items whose next review falls on each of the next seven local calendar days."""
    today = local_date(now, now.tzinfo)
    forecast = []
    for offset in range(FORECAST_DAYS):
        day = today + timedelta(days=offset)
        start = start_of_day(day, now.tzinfo)
        end = add_days(start, 1)
        count = sum(1 for item in items if start <= item.next_review_date < end)
        forecast.append(UpcomingReview(day=day, label=day_label(offset, day), count=count))
    return tuple(forecast)


def compute_stats(items: Sequence[StudyItem], now: datetime) -> Stats:
    """Recompute every figure from one feed emission."""
    total = len(items)
    return Stats(
        total_items=total,
        due_today=sum(1 for item in items if item.is_due(now)),
        # "reviewed today" as the list screen has always shown it: reviewed at
        # least once and not due now. history_summary has the real count.
        reviewed_not_due=sum(1 for item in items if item.review_count > 0 and not item.is_due(now)),
        total_reviews=sum(item.review_count for item in items),
        average_ease_factor=(
            sum(item.ease_factor for item in items) / total if total else DEFAULT_EASE_FACTOR
        ),
        items_by_interval=interval_groups(items),
        upcoming_reviews=upcoming_reviews(items, now),
    )


def _streaks(days: Sequence[date], today: date) -> tuple[int, int]:
    """Current streak (ending today or yesterday) and best streak, in days."""
    best = run = 0
    previous = None
    for day in days:
        run = run + 1 if previous is not None and day - previous == timedelta(days=1) else 1
        best = max(best, run)
        previous = day
    current = 0
    if days and today - days[-1] <= timedelta(days=1):
        current = 1
        for earlier, later in zip(reversed(days[:-1]), reversed(days[1:])):
            if later - earlier != timedelta(days=1):
                break
            current += 1
    return current, best


def history_summary(
    sessions: Sequence[ReviewSession],
    now: datetime,
    known_ids: Optional[Iterable[str]] = None,
) -> HistorySummary:
    """Summarise review history; known_ids drops records of deleted items."""
    if known_ids is not None:
        keep = set(known_ids)
        sessions = [s for s in sessions if s.item_id in keep]
    tz = now.tzinfo
    today = local_date(now, tz)
    days = sorted({local_date(s.reviewed_at, tz) for s in sessions})
    current, best = _streaks(days, today)
    passed = sum(1 for s in sessions if s.quality >= 3)
    return HistorySummary(
        reviewed_today=len({s.item_id for s in sessions if local_date(s.reviewed_at, tz) == today}),
        current_streak=current,
        best_streak=best,
        retention=round(passed / len(sessions) * 100, 1) if sessions else 0.0,
        total_sessions=len(sessions),
        review_days=tuple(days),
    )


class StatsMonitor(FeedConsumer):
    """Keeps `stats` current with the live feed."""

    feed_name = "stats"

    def __init__(self, repository, clock: Callable = local_now):
        super().__init__(repository)
        self.clock = clock
        self.stats = Stats()
        self.loading = False

    async def open(self) -> None:
        self.loading = True
        await self._open_feed()

    def close(self) -> None:
        self._close_feed()

    def _on_items(self, items: Snapshot) -> None:
        self.loading = False
        self.stats = compute_stats(items, self.clock())
