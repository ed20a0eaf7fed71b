"""Review reminders: the Notifier interface and a local sqlite-backed implementation."""
import asyncio
import logging
import sqlite3
import uuid
from datetime import datetime, timedelta
from typing import Callable, Optional, Protocol

from recall_tutor.clock import local_now
from recall_tutor.db import DEFAULT_DB_PATH, get_connection
from recall_tutor.errors import StorageError, ValidationError
from recall_tutor.models import Reminder
from recall_tutor.settings import get_reminder_time, set_flag, validate_reminder_time

logger = logging.getLogger(__name__)

DAILY_REMINDER_ID = "daily-reminder"
REVIEW_REMINDER_DELAY = timedelta(hours=1)


class Notifier(Protocol):
    async def request_authorization(self) -> bool:
        ...

    async def schedule_daily_reminder(self, hour: int, minute: int) -> None:
        """Replace any existing daily reminder with one at hour:minute."""

    async def schedule_review_reminder(self, at: datetime, item_count: int) -> None:
        ...

    async def cancel_all(self) -> None:
        ...

    async def pending_count(self) -> int:
        ...


def review_reminder_body(item_count: int) -> str:
    if item_count == 1:
        return "You have 1 item ready for review"
    return f"You have {item_count} items ready for review"


def _row_to_reminder(row: sqlite3.Row) -> Reminder:
    return Reminder(
        id=row["id"],
        fire_at=datetime.fromisoformat(row["fire_at"]) if row["fire_at"] else None,
        title=row["title"],
        body=row["body"],
        repeats=bool(row["repeats"]),
        hour=row["hour"],
        minute=row["minute"],
        badge=row["badge"],
    )


class LocalNotifier:
    """Keeps pending reminders in the reminders table for the shell to show."""

    def __init__(self, db_path: str = DEFAULT_DB_PATH, authorized: bool = True):
        self.db_path = db_path
        self.authorized = authorized

    def _execute(self, statements: list[tuple[str, tuple]]) -> None:
        conn = get_connection(self.db_path)
        try:
            with conn:
                for sql, params in statements:
                    conn.execute(sql, params)
        finally:
            conn.close()

    def _query(self) -> list[Reminder]:
        conn = get_connection(self.db_path)
        try:
            rows = conn.execute("SELECT * FROM reminders ORDER BY kind, fire_at").fetchall()
        finally:
            conn.close()
        return [_row_to_reminder(r) for r in rows]

    async def _run(self, action: str, func, *args):
        try:
            return await asyncio.to_thread(func, *args)
        except sqlite3.Error as exc:
            logger.error("Reminder storage failure while trying to %s: %s", action, exc)
            raise StorageError(f"Could not {action}: {exc}") from exc

    async def request_authorization(self) -> bool:
        return self.authorized

    async def schedule_daily_reminder(self, hour: int, minute: int) -> None:
        validate_reminder_time(hour, minute)
        await self._run("schedule the daily reminder", self._execute, [
            ("DELETE FROM reminders WHERE kind = 'daily'", ()),
            (
                """INSERT INTO reminders (id, kind, hour, minute, title, body, repeats)
                VALUES (?, 'daily', ?, ?, ?, ?, 1)""",
                (
                    DAILY_REMINDER_ID,
                    hour,
                    minute,
                    "Review Time!",
                    "Don't forget to review your study items today. "
                    "Consistent practice builds lasting memory!",
                ),
            ),
        ])
        logger.info("Daily reminder set for %02d:%02d", hour, minute)

    async def schedule_review_reminder(self, at: datetime, item_count: int) -> None:
        if item_count < 0:
            raise ValidationError(f"Item count must not be negative, got {item_count}")
        await self._run("schedule a review reminder", self._execute, [(
            """INSERT INTO reminders (id, kind, fire_at, title, body, badge, repeats)
            VALUES (?, 'review', ?, ?, ?, ?, 0)""",
            (
                f"review-{uuid.uuid4()}",
                at.isoformat(),
                "Time to Review!",
                review_reminder_body(item_count),
                item_count,
            ),
        )])
        logger.info("Review reminder for %d items at %s", item_count, at.isoformat(timespec="minutes"))

    async def cancel_all(self) -> None:
        await self._run("cancel reminders", self._execute, [("DELETE FROM reminders", ())])

    async def pending(self) -> list[Reminder]:
        return await self._run("list reminders", self._query)

    async def pending_count(self) -> int:
        return len(await self.pending())


class ReminderPlanner:
    """Schedules reminders when the app starts."""

    def __init__(self, repository, notifier: Notifier, clock: Callable = local_now):
        self.repository = repository
        self.notifier = notifier
        self.clock = clock

    async def on_launch(self) -> Optional[int]:
        """Returns the number of due items a reminder was set for, or None if not authorized."""
        db_path = self.repository.db_path
        authorized = await self.notifier.request_authorization()
        await asyncio.to_thread(set_flag, db_path, "notifications_enabled", authorized)
        if not authorized:
            logger.info("Notifications not authorized; no reminders scheduled")
            return None
        hour, minute = await asyncio.to_thread(get_reminder_time, db_path)
        await self.notifier.schedule_daily_reminder(hour, minute)
        now = self.clock()
        due = await self.repository.fetch_due(now)
        if due:
            await self.notifier.schedule_review_reminder(now + REVIEW_REMINDER_DELAY, len(due))
        return len(due)
