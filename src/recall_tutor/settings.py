"""User preferences stored in the user_settings table."""
from recall_tutor.db import get_connection
from recall_tutor.errors import ValidationError

DEFAULT_REMINDER_HOUR = 18
DEFAULT_REMINDER_MINUTE = 0


def get_setting(db_path: str, key: str, default: str = None) -> str | None:
    conn = get_connection(db_path)
    row = conn.execute("SELECT value FROM user_settings WHERE key = ?", (key,)).fetchone()
    conn.close()
    return row["value"] if row else default


def set_setting(db_path: str, key: str, value: str) -> None:
    conn = get_connection(db_path)
    conn.execute(
        "INSERT INTO user_settings (key, value) VALUES (?, ?) ON CONFLICT(key) DO UPDATE SET value=?",
        (key, value, value),
    )
    conn.commit()
    conn.close()


def get_flag(db_path: str, key: str, default: bool = False) -> bool:
    return get_setting(db_path, key, "1" if default else "0") == "1"


def set_flag(db_path: str, key: str, value: bool) -> None:
    set_setting(db_path, key, "1" if value else "0")


def get_reminder_time(db_path: str) -> tuple[int, int]:
    hour = int(get_setting(db_path, "reminder_hour", str(DEFAULT_REMINDER_HOUR)))
    minute = int(get_setting(db_path, "reminder_minute", str(DEFAULT_REMINDER_MINUTE)))
    return hour, minute


def validate_reminder_time(hour: int, minute: int) -> None:
    if not 0 <= hour <= 23:
        raise ValidationError(f"Hour must be between 0 and 23, got {hour}")
    if not 0 <= minute <= 59:
        raise ValidationError(f"Minute must be between 0 and 59, got {minute}")


def set_reminder_time(db_path: str, hour: int, minute: int) -> None:
    validate_reminder_time(hour, minute)
    set_setting(db_path, "reminder_hour", str(hour))
    set_setting(db_path, "reminder_minute", str(minute))
