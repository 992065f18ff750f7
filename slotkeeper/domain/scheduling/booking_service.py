"""
Booking transaction manager.

Turns a chosen (service, date, time) into a confirmed booking without ever
double-booking, through three independent layers:

1. a fresh slot recomputation with the external calendar cache bypassed,
2. a named lock per date, so one booking per date reaches the insert at a time,
3. an atomic ``INSERT ... WHERE NOT EXISTS`` that stays correct even if the
   lock is unavailable or bypassed.

Calendar push and notifications happen after the row is committed and never
undo it.
"""

import logging
from datetime import date, timedelta, tzinfo
from typing import Optional, Protocol
from zoneinfo import ZoneInfo

from sqlalchemy.orm import Session

from ...config import EngineSettings
from ...models import BOOKING_CANCELLED, BOOKING_CONFIRMED, Booking
from ...rate_limiter import RateLimiter
from ...shared.timeutils import local_instant
from ...shared.validators import is_valid_email, parse_date, parse_time
from ...utils.sanitization import clean_text
from .availability_service import ServiceLookup, SlotCalculator
from .errors import (
    InvalidDateError,
    InvalidEmailError,
    InvalidServiceError,
    InvalidTimeError,
    MissingFieldsError,
    RateLimitedError,
    ServerBusyError,
    SlotTakenError,
)
from .events import EVENT_BOOKING_CANCELLED, EVENT_BOOKING_CREATED, BookingEventBus
from .intervals import Interval
from .locks import LockFactory, booking_lock_name
from .repository import BookingRepository, BookingStoreError
from .schemas import BookingSnapshot, ClientDetails

logger = logging.getLogger(__name__)


class ExternalCalendar(Protocol):
    def is_connected(self) -> bool:
        ...

    def get_busy(self, day: date, tz: tzinfo) -> list[Interval]:
        ...

    def get_busy_fresh(self, day: date, tz: tzinfo) -> list[Interval]:
        ...

    def push_event(self, booking: Booking, service_name: str) -> Optional[str]:
        ...

    def delete_event(self, event_id: str) -> bool:
        ...


class BookingTransactionManager:
    def __init__(
        self,
        db: Session,
        services: ServiceLookup,
        slot_calculator: SlotCalculator,
        calendar: ExternalCalendar,
        lock_factory: LockFactory,
        events: Optional[BookingEventBus] = None,
        settings: Optional[EngineSettings] = None,
        rate_limiter: Optional[RateLimiter] = None,
    ):
        self.db = db
        self.repo = BookingRepository(db)
        self.services = services
        self.slot_calculator = slot_calculator
        self.calendar = calendar
        self.lock_factory = lock_factory
        self.events = events or BookingEventBus()
        self.settings = settings or EngineSettings()
        self.rate_limiter = rate_limiter
        self.tz = ZoneInfo(self.settings.timezone)

    def get(self, booking_id: int) -> Optional[Booking]:
        return self.repo.get_by_id(booking_id)

    def snapshot(self, booking: Booking) -> BookingSnapshot:
        service = self.services.get(booking.service_id)
        return BookingSnapshot.from_booking(booking, service.name if service else None)

    def create(
        self,
        service_id: Optional[int],
        date_str: str,
        time_str: str,
        client: ClientDetails,
        client_ip: Optional[str] = None,
    ) -> Booking:
        """
        Reserve ``time_str`` on ``date_str`` for ``service_id``.

        Raises:
            RateLimitedError: too many attempts from ``client_ip``
            MissingFieldsError, InvalidEmailError, InvalidDateError,
            InvalidTimeError, InvalidServiceError: bad input, nothing was touched
            SlotTakenError: the time is no longer free
            ServerBusyError: the date lock or the bookings table was unavailable
        """
        if client_ip is not None and self.rate_limiter is not None:
            allowed, _, retry_after = self.rate_limiter.hit(client_ip)
            if not allowed:
                logger.warning(f"⚠️ Booking rate limit reached, retry in {retry_after}s")
                raise RateLimitedError(retry_after)

        name = clean_text(client.name)
        email = clean_text(client.email).lower()
        phone = clean_text(client.phone, max_length=50)
        notes = clean_text(client.notes, max_length=2000, multiline=True)

        missing = [
            field
            for field, value in (
                ("service_id", service_id),
                ("date", date_str),
                ("time", time_str),
                ("name", name),
                ("email", email),
            )
            if not value
        ]
        if missing:
            raise MissingFieldsError(missing)
        if not is_valid_email(email):
            raise InvalidEmailError()
        day = parse_date(date_str)
        if day is None:
            raise InvalidDateError()
        wall_time = parse_time(time_str)
        if wall_time is None:
            raise InvalidTimeError()
        service = self.services.get(service_id)
        if not service or not service.is_active:
            raise InvalidServiceError()

        # Layer 1: recompute with fresh external busy time
        self.calendar.get_busy_fresh(day, self.tz)
        if time_str not in self.slot_calculator.get_available_slots(date_str, service.id):
            logger.info(f"🚫 Slot {date_str} {time_str} for service {service.id} not available on re-check")
            raise SlotTakenError()

        start = local_instant(day, wall_time, self.tz)
        end = start + timedelta(minutes=service.duration_minutes)

        # Layer 2: one booking per date at a time
        lock = self.lock_factory.lock(booking_lock_name(date_str))
        if not lock.acquire(self.settings.lock_timeout):
            logger.warning(f"⏳ Timed out waiting for lock {lock.name}")
            raise ServerBusyError()

        try:
            # Layer 3: atomic conditional insert
            booking = self.repo.insert_if_no_overlap(
                service_id=service.id,
                client_name=name,
                client_email=email,
                client_phone=phone,
                client_notes=notes,
                start=start,
                end=end,
                duration_minutes=service.duration_minutes,
                provider_timezone=self.settings.timezone,
            )
        except BookingStoreError as e:
            logger.error(f"❌ Booking insert failed under lock {lock.name} for {date_str}: {e}")
            raise ServerBusyError() from e
        finally:
            lock.release()

        if booking is None:
            logger.info(f"🚫 Slot {date_str} {time_str} taken at insert")
            raise SlotTakenError()

        logger.info(f"✅ Booking {booking.id} confirmed: service {service.id} on {date_str} at {time_str}")

        self._push_to_calendar(booking, service.name)
        snapshot = BookingSnapshot.from_booking(booking, service.name)
        self.events.emit(EVENT_BOOKING_CREATED, snapshot.model_dump(mode="json"))
        return booking

    def _push_to_calendar(self, booking: Booking, service_name: str) -> None:
        if not self.calendar.is_connected():
            return
        try:
            event_id = self.calendar.push_event(booking, service_name)
            if event_id:
                self.repo.set_external_event_id(booking, event_id)
            else:
                logger.warning(f"⚠️ Calendar event not created for booking {booking.id}")
        except Exception:
            # The booking stands regardless
            logger.exception(f"❌ Calendar push failed for booking {booking.id}")

    def cancel(self, booking_id: int) -> bool:
        """
        Cancel a booking. Idempotent: an already cancelled booking returns True
        without deleting anything or notifying again. Unknown ids return False.
        """
        booking = self.repo.get_by_id(booking_id)
        if not booking:
            return False
        if booking.status == BOOKING_CANCELLED:
            return True

        if not self.repo.update_status(booking_id, BOOKING_CANCELLED, expected_status=BOOKING_CONFIRMED):
            # A concurrent cancel won
            return True
        self.db.refresh(booking)

        if booking.external_event_id:
            try:
                if not self.calendar.delete_event(booking.external_event_id):
                    logger.warning(f"⚠️ Calendar event for booking {booking.id} was not deleted")
            except Exception:
                logger.exception(f"❌ Calendar delete failed for booking {booking.id}")

        logger.info(f"🗑️ Booking {booking.id} cancelled")
        self.events.emit(EVENT_BOOKING_CANCELLED, self.snapshot(booking).model_dump(mode="json"))
        return True
