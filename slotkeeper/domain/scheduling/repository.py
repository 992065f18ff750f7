"""Booking repository - Database operations for bookings"""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, Integer, String, Text, exists, insert, literal, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ...models import BOOKING_CONFIRMED, Booking
from ...shared.timeutils import to_utc_naive

logger = logging.getLogger(__name__)

# SQLSTATE for could_not_serialize
SERIALIZATION_FAILURE = "40001"


class BookingStoreError(Exception):
    """The bookings table could not be written (connectivity, deadlock, ...)."""


def _is_serialization_failure(exc: SQLAlchemyError) -> bool:
    orig = getattr(exc, "orig", None)
    return (getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)) == SERIALIZATION_FAILURE


class BookingRepository:
    """Repository for booking database operations"""

    def __init__(self, db: Session):
        self.db = db

    def get_by_id(self, booking_id: int) -> Optional[Booking]:
        return self.db.get(Booking, booking_id)

    def find_confirmed_overlapping(self, start: datetime, end: datetime) -> list[Booking]:
        """Confirmed bookings whose ``[start_utc, end_utc)`` intersects ``[start, end)``"""
        start_utc, end_utc = to_utc_naive(start), to_utc_naive(end)
        return list(
            self.db.scalars(
                select(Booking)
                .where(
                    Booking.status == BOOKING_CONFIRMED,
                    Booking.start_utc < end_utc,
                    Booking.end_utc > start_utc,
                )
                .order_by(Booking.start_utc)
            )
        )

    def insert_if_no_overlap(
        self,
        *,
        service_id: int,
        client_name: str,
        client_email: str,
        client_phone: str,
        client_notes: str,
        start: datetime,
        duration_minutes: int,
        provider_timezone: str,
        end: datetime,
    ) -> Optional[Booking]:
        """
        Insert a confirmed booking only if no confirmed booking overlaps it.

        The overlap check and the insert are one ``INSERT ... SELECT ... WHERE
        NOT EXISTS`` statement, so no other writer can slip in between them.
        On PostgreSQL it runs at SERIALIZABLE, and a serialization failure
        counts as a conflict.
        Overlap is half-open: an existing booking ending exactly at ``start``
        does not conflict.

        Returns the new booking, or None when an overlapping booking exists or
        a constraint rejected the row.

        Raises:
            BookingStoreError: the statement could not be executed.
        """
        start_utc, end_utc = to_utc_naive(start), to_utc_naive(end)

        existing = Booking.__table__.alias("existing")
        conflict = exists().where(
            existing.c.status == BOOKING_CONFIRMED,
            existing.c.start_utc < end_utc,
            existing.c.end_utc > start_utc,
        )
        candidate = select(
            literal(service_id, Integer()),
            literal(client_name, String()),
            literal(client_email, String()),
            literal(client_phone, String()),
            literal(client_notes, Text()),
            literal(start_utc, DateTime()),
            literal(end_utc, DateTime()),
            literal(duration_minutes, Integer()),
            literal(provider_timezone, String()),
            literal(BOOKING_CONFIRMED, String()),
        ).where(~conflict)

        stmt = insert(Booking.__table__).from_select(
            [
                "service_id",
                "client_name",
                "client_email",
                "client_phone",
                "client_notes",
                "start_utc",
                "end_utc",
                "duration_minutes",
                "provider_timezone",
                "status",
            ],
            candidate,
        )

        try:
            if self.db.get_bind().dialect.name == "postgresql":
                # Under READ COMMITTED two writers can both find NOT EXISTS true
                if self.db.in_transaction():
                    self.db.commit()
                self.db.connection(execution_options={"isolation_level": "SERIALIZABLE"})
            result = self.db.execute(stmt)
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            logger.info("Booking insert rejected by a constraint - treating as taken")
            return None
        except SQLAlchemyError as e:
            self.db.rollback()
            if _is_serialization_failure(e):
                logger.info("Booking insert lost a serialization conflict - treating as taken")
                return None
            raise BookingStoreError(str(e.__class__.__name__)) from e

        if result.rowcount == 0:
            return None

        # The overlap guard makes the confirmed booking at this start unique
        return self.db.scalars(
            select(Booking).where(Booking.start_utc == start_utc, Booking.status == BOOKING_CONFIRMED)
        ).first()

    def update_status(self, booking_id: int, status: str, expected_status: Optional[str] = None) -> bool:
        """Set the status; with ``expected_status`` only rows currently in that status change."""
        stmt = update(Booking).where(Booking.id == booking_id).values(status=status)
        if expected_status is not None:
            stmt = stmt.where(Booking.status == expected_status)
        result = self.db.execute(stmt)
        self.db.commit()
        return result.rowcount > 0

    def set_external_event_id(self, booking: Booking, event_id: str) -> Booking:
        booking.external_event_id = event_id
        self.db.commit()
        self.db.refresh(booking)
        return booking
