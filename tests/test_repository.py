"""Tests for the atomic booking insert."""

from datetime import timedelta
from unittest.mock import MagicMock

import pytest
from sqlalchemy.exc import OperationalError
from tests.conftest import add_booking, utc

from slotkeeper.domain.scheduling.repository import BookingRepository, BookingStoreError
from slotkeeper.models import BOOKING_CANCELLED, BOOKING_CONFIRMED


def insert(db, service_id, start, minutes=60):
    return BookingRepository(db).insert_if_no_overlap(
        service_id=service_id,
        client_name="New Client",
        client_email="new@example.com",
        client_phone="",
        client_notes="",
        start=start,
        end=start + timedelta(minutes=minutes),
        duration_minutes=minutes,
        provider_timezone="UTC",
    )


class TestInsertIfNoOverlap:
    def test_inserts_into_empty_day(self, db, service):
        booking = insert(db, service.id, utc(2026, 3, 2, 9))
        assert booking is not None
        assert booking.status == BOOKING_CONFIRMED
        assert booking.client_email == "new@example.com"

    def test_overlap_rejected(self, db, service):
        add_booking(db, service.id, utc(2026, 3, 2, 10))
        assert insert(db, service.id, utc(2026, 3, 2, 10, 30)) is None
        assert insert(db, service.id, utc(2026, 3, 2, 9, 30)) is None
        assert insert(db, service.id, utc(2026, 3, 2, 10, 15), minutes=15) is None

    def test_same_start_rejected(self, db, service):
        add_booking(db, service.id, utc(2026, 3, 2, 10))
        assert insert(db, service.id, utc(2026, 3, 2, 10)) is None

    def test_touching_intervals_accepted(self, db, service):
        add_booking(db, service.id, utc(2026, 3, 2, 10))
        assert insert(db, service.id, utc(2026, 3, 2, 11)) is not None
        assert insert(db, service.id, utc(2026, 3, 2, 9)) is not None

    def test_cancelled_bookings_do_not_conflict(self, db, service):
        existing = add_booking(db, service.id, utc(2026, 3, 2, 10))
        BookingRepository(db).update_status(existing.id, BOOKING_CANCELLED)

        booking = insert(db, service.id, utc(2026, 3, 2, 10))
        assert booking is not None
        assert booking.id != existing.id
        assert booking.status == BOOKING_CONFIRMED


class TestQueries:
    def test_find_confirmed_overlapping(self, db, service):
        repo = BookingRepository(db)
        early = add_booking(db, service.id, utc(2026, 3, 2, 8))
        late = add_booking(db, service.id, utc(2026, 3, 2, 14))
        cancelled = add_booking(db, service.id, utc(2026, 3, 2, 11))
        repo.update_status(cancelled.id, BOOKING_CANCELLED)

        found = repo.find_confirmed_overlapping(utc(2026, 3, 2, 8, 30), utc(2026, 3, 2, 14, 30))
        assert [b.id for b in found] == [early.id, late.id]

        # Half-open: a range ending where a booking starts does not include it
        assert repo.find_confirmed_overlapping(utc(2026, 3, 2, 13), utc(2026, 3, 2, 14)) == []

    def test_update_status_with_expected_status(self, db, service):
        repo = BookingRepository(db)
        booking = add_booking(db, service.id, utc(2026, 3, 2, 9))

        assert repo.update_status(booking.id, BOOKING_CANCELLED, expected_status=BOOKING_CONFIRMED) is True
        assert repo.update_status(booking.id, BOOKING_CANCELLED, expected_status=BOOKING_CONFIRMED) is False
        assert repo.update_status(999, BOOKING_CANCELLED) is False

    def test_set_external_event_id(self, db, service):
        repo = BookingRepository(db)
        booking = add_booking(db, service.id, utc(2026, 3, 2, 9))
        repo.set_external_event_id(booking, "abc123")
        assert repo.get_by_id(booking.id).external_event_id == "abc123"


class FakeDriverError(Exception):
    def __init__(self, pgcode):
        super().__init__(pgcode)
        self.pgcode = pgcode


def postgres_session(execute_error=None):
    db = MagicMock()
    db.get_bind.return_value.dialect.name = "postgresql"
    db.in_transaction.return_value = True
    if execute_error is not None:
        db.execute.side_effect = execute_error
    return db


class TestPostgresIsolation:
    def test_insert_runs_serializable(self):
        db = postgres_session()
        db.execute.return_value.rowcount = 0
        assert insert(db, 1, utc(2026, 3, 2, 9)) is None
        db.commit.assert_called()
        db.connection.assert_called_once_with(execution_options={"isolation_level": "SERIALIZABLE"})

    def test_serialization_failure_means_taken(self):
        db = postgres_session(OperationalError("INSERT INTO bookings", {}, FakeDriverError("40001")))
        assert insert(db, 1, utc(2026, 3, 2, 9)) is None
        db.rollback.assert_called_once()

    def test_other_driver_errors_are_store_errors(self):
        db = postgres_session(OperationalError("INSERT INTO bookings", {}, FakeDriverError("08006")))
        with pytest.raises(BookingStoreError):
            insert(db, 1, utc(2026, 3, 2, 9))

