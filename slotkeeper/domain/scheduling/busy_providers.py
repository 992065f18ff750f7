"""Sources of busy time consulted by the slot calculator."""

from datetime import date, tzinfo
from typing import Protocol

from sqlalchemy.orm import Session

from ...shared.timeutils import day_bounds, from_utc_naive
from .intervals import Interval
from .repository import BookingRepository


class BusyTimeProvider(Protocol):
    def get_busy(self, day: date, tz: tzinfo) -> list[Interval]:
        ...


class LocalBookingBusyProvider:
    """Confirmed bookings that intersect the provider's local day. Never cached."""

    def __init__(self, db: Session):
        self.repo = BookingRepository(db)

    def get_busy(self, day: date, tz: tzinfo) -> list[Interval]:
        day_start, day_end = day_bounds(day, tz)
        return [
            Interval(from_utc_naive(b.start_utc), from_utc_naive(b.end_utc))
            for b in self.repo.find_confirmed_overlapping(day_start, day_end)
        ]
