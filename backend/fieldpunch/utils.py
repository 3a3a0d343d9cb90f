from __future__ import annotations

import datetime as dt
from typing import Optional

from zoneinfo import ZoneInfo

from .config import settings

UTC = dt.timezone.utc
LOCAL_TZ = ZoneInfo(settings.timezone)


def now_utc() -> dt.datetime:
    return dt.datetime.now(UTC)


def ensure_utc(value: dt.datetime) -> dt.datetime:
    """Normalize an incoming timestamp; naive values are local wall-clock time."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=LOCAL_TZ)
    return value.astimezone(UTC)


def from_db_datetime(value: Optional[dt.datetime]) -> Optional[dt.datetime]:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def local_date(value: dt.datetime) -> dt.date:
    return from_db_datetime(value).astimezone(LOCAL_TZ).date()


def local_today() -> dt.date:
    return now_utc().astimezone(LOCAL_TZ).date()


def week_start(day: dt.date) -> dt.date:
    # Weeks start on Sunday
    return day - dt.timedelta(days=(day.weekday() + 1) % 7)
