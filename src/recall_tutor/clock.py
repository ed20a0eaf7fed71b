"""Local time zone resolution and calendar-day arithmetic."""
import logging
import os
from datetime import date, datetime, time, timedelta, timezone, tzinfo
from functools import lru_cache
from pathlib import Path
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

logger = logging.getLogger(__name__)

SYSTEM_ZONE_FILE = Path("/etc/localtime")


@lru_cache(maxsize=None)
def local_zone() -> tzinfo:
    """Resolve the user's zone: $TZ, then the system zone file, then the offset."""
    name = os.environ.get("TZ", "").lstrip(":")
    if name:
        try:
            return ZoneInfo(name)
        except (ZoneInfoNotFoundError, ValueError):
            logger.warning("Ignoring unknown TZ=%r", name)
    if SYSTEM_ZONE_FILE.exists():
        try:
            with SYSTEM_ZONE_FILE.open("rb") as fh:
                return ZoneInfo.from_file(fh, key="localtime")
        except (OSError, ValueError):
            logger.warning("Could not read %s", SYSTEM_ZONE_FILE)
    return datetime.now().astimezone().tzinfo


def local_now() -> datetime:
    return datetime.now(local_zone())


def add_days(moment: datetime, days: int) -> datetime:
    """Add calendar days, keeping the local wall-clock time.

    Aware datetimes carry their zone through the addition, so a day across a
    DST change is 23 or 25 real hours. The round trip through UTC normalises
    wall times that fall into a DST gap.
    """
    shifted = moment + timedelta(days=days)
    if shifted.tzinfo is None:
        return shifted
    return shifted.astimezone(timezone.utc).astimezone(moment.tzinfo)


def start_of_day(day: date, tz: tzinfo | None) -> datetime:
    return datetime.combine(day, time.min, tzinfo=tz)


def local_date(moment: datetime, tz: tzinfo | None) -> date:
    """Calendar date of moment as seen in tz."""
    if moment.tzinfo is None or tz is None:
        return moment.date()
    return moment.astimezone(tz).date()
