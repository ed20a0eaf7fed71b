"""Synchronous sqlite persistence for study items and review history.

Every function opens its own connection so it can run in a worker thread.
Errors are raised as sqlite3.Error; the repository translates them.
"""
import json
import sqlite3
from datetime import datetime
from typing import Optional

from recall_tutor.db import get_connection
from recall_tutor.models import ReviewSession, StudyItem

ITEM_ORDER = "ORDER BY created_at DESC, rowid DESC"


def _row_to_item(row: sqlite3.Row, images: list[bytes]) -> StudyItem:
    return StudyItem(
        id=row["id"],
        title=row["title"],
        body=row["body"],
        created_at=datetime.fromisoformat(row["created_at"]),
        next_review_date=datetime.fromisoformat(row["next_review_date"]),
        images=tuple(images),
        pdf=row["pdf"],
        tags=tuple(json.loads(row["tags"])),
        review_count=row["review_count"],
        ease_factor=row["ease_factor"],
        interval=row["interval"],
    )


def _item_params(item: StudyItem) -> dict:
    return {
        "id": item.id,
        "title": item.title,
        "body": item.body,
        "pdf": item.pdf,
        "tags": json.dumps(list(item.tags)),
        "created_at": item.created_at.isoformat(),
        "next_review_date": item.next_review_date.isoformat(),
        "review_count": item.review_count,
        "ease_factor": item.ease_factor,
        "interval": item.interval,
    }


def _load_images(conn: sqlite3.Connection, item_ids: list[str]) -> dict[str, list[bytes]]:
    images: dict[str, list[bytes]] = {item_id: [] for item_id in item_ids}
    if not item_ids:
        return images
    placeholders = ",".join("?" * len(item_ids))
    rows = conn.execute(
        f"SELECT item_id, data FROM item_images WHERE item_id IN ({placeholders}) "
        "ORDER BY item_id, position",
        item_ids,
    ).fetchall()
    for r in rows:
        images[r["item_id"]].append(bytes(r["data"]))
    return images


def _write_images(conn: sqlite3.Connection, item: StudyItem) -> None:
    conn.execute("DELETE FROM item_images WHERE item_id = ?", (item.id,))
    conn.executemany(
        "INSERT INTO item_images (item_id, position, data) VALUES (?, ?, ?)",
        [(item.id, pos, data) for pos, data in enumerate(item.images)],
    )


def _select_items(conn: sqlite3.Connection, where: str = "", params: tuple = (), order: str = ITEM_ORDER) -> list[StudyItem]:
    rows = conn.execute(f"SELECT * FROM study_items {where} {order}", params).fetchall()
    images = _load_images(conn, [r["id"] for r in rows])
    return [_row_to_item(r, images[r["id"]]) for r in rows]


def insert_item(db_path: str, item: StudyItem) -> None:
    conn = get_connection(db_path)
    try:
        with conn:
            conn.execute(
                """INSERT INTO study_items
                (id, title, body, pdf, tags, created_at, next_review_date,
                 review_count, ease_factor, interval)
                VALUES (:id, :title, :body, :pdf, :tags, :created_at,
                        :next_review_date, :review_count, :ease_factor, :interval)""",
                _item_params(item),
            )
            _write_images(conn, item)
    finally:
        conn.close()


def fetch_items(db_path: str) -> list[StudyItem]:
    """All items, most recently created first."""
    conn = get_connection(db_path)
    try:
        return _select_items(conn)
    finally:
        conn.close()


def fetch_item(db_path: str, item_id: str) -> Optional[StudyItem]:
    conn = get_connection(db_path)
    try:
        items = _select_items(conn, "WHERE id = ?", (item_id,))
    finally:
        conn.close()
    return items[0] if items else None


def fetch_due_items(db_path: str, now: datetime) -> list[StudyItem]:
    """Items due at now, soonest review date first.

    Stored dates may carry different UTC offsets, so the comparison runs on
    parsed datetimes rather than in SQL.
    """
    due = [item for item in fetch_items(db_path) if item.is_due(now)]
    return sorted(due, key=lambda item: item.next_review_date)


def update_item(db_path: str, item: StudyItem) -> bool:
    """Replace every mutable field of an item. Returns False if it is missing."""
    conn = get_connection(db_path)
    try:
        with conn:
            cur = conn.execute(
                """UPDATE study_items SET title=:title, body=:body, pdf=:pdf,
                tags=:tags, next_review_date=:next_review_date,
                review_count=:review_count, ease_factor=:ease_factor,
                interval=:interval
                WHERE id=:id""",
                _item_params(item),
            )
            if cur.rowcount == 0:
                return False
            _write_images(conn, item)
    finally:
        conn.close()
    return True


def delete_item(db_path: str, item_id: str) -> bool:
    """Delete an item and its images. Review history is left in place."""
    conn = get_connection(db_path)
    try:
        with conn:
            cur = conn.execute("DELETE FROM study_items WHERE id = ?", (item_id,))
    finally:
        conn.close()
    return cur.rowcount > 0


def insert_review_session(db_path: str, session: ReviewSession) -> None:
    conn = get_connection(db_path)
    try:
        with conn:
            conn.execute(
                """INSERT INTO review_sessions (id, item_id, reviewed_at, quality, response_time)
                VALUES (?, ?, ?, ?, ?)""",
                (
                    session.id,
                    session.item_id,
                    session.reviewed_at.isoformat(),
                    session.quality,
                    session.response_time,
                ),
            )
    finally:
        conn.close()


def fetch_review_sessions(db_path: str, item_id: Optional[str] = None) -> list[ReviewSession]:
    """Review history, newest first, optionally for one item."""
    conn = get_connection(db_path)
    try:
        if item_id is None:
            rows = conn.execute("SELECT * FROM review_sessions").fetchall()
        else:
            rows = conn.execute(
                "SELECT * FROM review_sessions WHERE item_id = ?", (item_id,)
            ).fetchall()
    finally:
        conn.close()
    sessions = [
        ReviewSession(
            id=r["id"],
            item_id=r["item_id"],
            reviewed_at=datetime.fromisoformat(r["reviewed_at"]),
            quality=r["quality"],
            response_time=r["response_time"],
        )
        for r in rows
    ]
    return sorted(sessions, key=lambda s: s.reviewed_at, reverse=True)
