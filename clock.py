"""Time helpers shared by the generator, the stores and the scheduler.

All datetimes leaving this module are timezone-aware UTC.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional
from zoneinfo import ZoneInfo

from config import settings


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(dt: datetime) -> datetime:
    """Normalize to aware UTC; naive values are taken to already be UTC.

    SQLite drops tzinfo on the way back, so rows read from the database
    pass through here.
    """
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def localize(dt: datetime, tz_name: Optional[str] = None) -> datetime:
    """Interpret user-supplied naive datetimes in the configured timezone."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=ZoneInfo(tz_name or settings.TIMEZONE))
    return dt.astimezone(timezone.utc)


def days_from_now(now: datetime, days: int) -> datetime:
    return now + timedelta(days=days)


def at_hour(dt: datetime, hour: int, tz_name: Optional[str] = None) -> datetime:
    """Snap the wall-clock time of ``dt`` to ``hour:00:00.000`` in ``tz_name``."""
    local = dt.astimezone(ZoneInfo(tz_name or settings.TIMEZONE))
    snapped = local.replace(hour=hour, minute=0, second=0, microsecond=0)
    return snapped.astimezone(timezone.utc)
