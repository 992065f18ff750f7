"""Conversions between aware datetimes and the naive-UTC values stored in the database."""

from datetime import date, datetime, time, timedelta, timezone, tzinfo
from typing import Optional


def to_utc_naive(value: datetime) -> datetime:
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def from_utc_naive(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    return value.replace(tzinfo=timezone.utc)


def local_instant(day: date, wall_time: time, tz: tzinfo) -> datetime:
    """The UTC instant at which the provider's clock reads ``wall_time`` on ``day``."""
    return datetime.combine(day, wall_time, tzinfo=tz).astimezone(timezone.utc)


def day_bounds(day: date, tz: tzinfo) -> tuple[datetime, datetime]:
    """UTC instants of local midnight on ``day`` and on the following day."""
    start = local_instant(day, time(0, 0), tz)
    end = local_instant(day + timedelta(days=1), time(0, 0), tz)
    return start, end


def utcnow() -> datetime:
    return datetime.now(timezone.utc)
