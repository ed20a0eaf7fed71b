"""Tests for statistics over items and review history."""
from datetime import date, datetime, timedelta, timezone
from zoneinfo import ZoneInfo

import pytest

from recall_tutor.models import ReviewSession
from recall_tutor.stats import (
    StatsMonitor, compute_stats, day_label, history_summary, interval_label, upcoming_reviews,
)

from conftest import NOW


def test_empty_stats():
    stats = compute_stats([], NOW)
    assert stats.total_items == 0
    assert stats.due_today == 0
    assert stats.average_ease_factor == 2.5
    assert [g.count for g in stats.items_by_interval] == [0, 0, 0, 0]
    assert [d.count for d in stats.upcoming_reviews] == [0] * 7


@pytest.mark.parametrize("interval,label", [
    (0, "New"), (1, "Learning"), (6, "Learning"), (7, "Young"), (21, "Young"), (22, "Mature"), (400, "Mature"),
])
def test_interval_buckets(interval, label):
    assert interval_label(interval) == label


def test_compute_stats(make_item):
    items = [
        make_item("due", interval=0, ease_factor=2.0, review_count=0),
        make_item("learning", interval=3, ease_factor=2.5, review_count=2,
                  next_review_date=NOW + timedelta(days=2)),
        make_item("mature", interval=30, ease_factor=2.9, review_count=6,
                  next_review_date=NOW + timedelta(days=30)),
    ]
    stats = compute_stats(items, NOW)
    assert stats.total_items == 3
    assert stats.due_today == 1
    assert stats.reviewed_not_due == 2
    assert stats.total_reviews == 8
    assert stats.average_ease_factor == pytest.approx(2.4667, abs=1e-4)
    assert {g.label: g.count for g in stats.items_by_interval} == {
        "New": 1, "Learning": 1, "Young": 0, "Mature": 1,
    }


def test_forecast_uses_local_day_boundaries(make_item):
    zone = ZoneInfo("Europe/Berlin")
    now = datetime(2024, 5, 1, 22, 0, tzinfo=zone)
    items = [
        make_item("tonight", next_review_date=datetime(2024, 5, 1, 23, 30, tzinfo=zone)),
        make_item("after midnight", next_review_date=datetime(2024, 5, 2, 0, 15, tzinfo=zone)),
        # 23:30 UTC on the 2nd is already the 3rd in Berlin
        make_item("utc stamp", next_review_date=datetime(2024, 5, 2, 23, 30, tzinfo=timezone.utc)),
        make_item("overdue", next_review_date=datetime(2024, 4, 28, 9, 0, tzinfo=zone)),
        make_item("too far", next_review_date=datetime(2024, 5, 8, 9, 0, tzinfo=zone)),
    ]
    forecast = upcoming_reviews(items, now)
    assert [d.count for d in forecast] == [1, 1, 1, 0, 0, 0, 0]
    assert [d.label for d in forecast[:3]] == ["Today", "Tomorrow", "Fri"]
    assert forecast[0].day == date(2024, 5, 1)


def test_day_label():
    assert day_label(0, date(2024, 5, 1)) == "Today"
    assert day_label(1, date(2024, 5, 2)) == "Tomorrow"
    assert day_label(4, date(2024, 5, 5)) == "Sun"


def session(item_id, days_ago, quality=4, hours=0):
    return ReviewSession(f"{item_id}-{days_ago}-{hours}", item_id, NOW - timedelta(days=days_ago, hours=hours), quality)


def test_history_summary():
    sessions = [
        session("a", 0, 5),
        session("a", 0, 2, hours=1),
        session("b", 0, 4),
        session("a", 1, 3),
        session("b", 2, 1),
        session("a", 5, 4),
        session("a", 6, 4),
        session("a", 7, 4),
        session("a", 8, 4),
    ]
    summary = history_summary(sessions, NOW)
    assert summary.reviewed_today == 2
    assert summary.current_streak == 3
    assert summary.best_streak == 4
    assert summary.total_sessions == 9
    assert summary.retention == pytest.approx(77.8)


def test_history_summary_streak_survives_until_tomorrow():
    summary = history_summary([session("a", 1), session("a", 2)], NOW)
    assert summary.reviewed_today == 0
    assert summary.current_streak == 2
    assert history_summary([session("a", 2)], NOW).current_streak == 0


def test_history_summary_ignores_deleted_items():
    summary = history_summary([session("gone", 0), session("kept", 0, 1)], NOW, known_ids=["kept"])
    assert summary.total_sessions == 1
    assert summary.retention == 0.0


def test_history_summary_empty():
    summary = history_summary([], NOW)
    assert (summary.reviewed_today, summary.current_streak, summary.best_streak, summary.retention) == (0, 0, 0, 0.0)


@pytest.mark.asyncio
async def test_monitor_recomputes_on_every_emission(repo, clock, make_item, settle):
    monitor = StatsMonitor(repo, clock=clock)
    await monitor.open()
    assert monitor.stats.total_items == 0
    assert not monitor.loading

    item = make_item()
    await repo.create(item)
    await repo.create(make_item("later", next_review_date=NOW + timedelta(days=1)))
    await settle()
    assert monitor.stats.total_items == 2
    assert monitor.stats.due_today == 1
    assert monitor.stats.upcoming_reviews[1].count == 1

    await repo.delete(item.id)
    await settle()
    assert monitor.stats.due_today == 0
    monitor.close()
    monitor.close()
