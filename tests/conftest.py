"""Shared test fixtures and helpers."""

import os

os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ["DB_LOG_SLOW_QUERIES"] = "false"
os.environ.pop("REDIS_URL", None)
os.environ.pop("REDIS_HOST", None)

from datetime import date, datetime, timedelta, timezone, tzinfo  # noqa: E402
from typing import Optional  # noqa: E402

import pytest  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402

from slotkeeper import models, models_google_calendar  # noqa: E402, F401
from slotkeeper.config import EngineSettings  # noqa: E402
from slotkeeper.database import Base, build_engine  # noqa: E402
from slotkeeper.domain.scheduling.availability_service import SlotCalculator  # noqa: E402
from slotkeeper.domain.scheduling.booking_service import BookingTransactionManager  # noqa: E402
from slotkeeper.domain.scheduling.busy_providers import LocalBookingBusyProvider  # noqa: E402
from slotkeeper.domain.scheduling.events import BookingEventBus, SlotFilterChain  # noqa: E402
from slotkeeper.domain.scheduling.intervals import Interval  # noqa: E402
from slotkeeper.domain.scheduling.locks import InMemoryLockFactory  # noqa: E402
from slotkeeper.domain.scheduling.repository import BookingRepository  # noqa: E402
from slotkeeper.domain.scheduling.templates import (  # noqa: E402
    AvailabilityTemplate,
    BookingRules,
    StaticTemplateStore,
    Window,
)
from slotkeeper.domain.services.schemas import ServiceCreate  # noqa: E402
from slotkeeper.domain.services.service import ServiceRegistry  # noqa: E402

UTC = timezone.utc

# Monday 2 March 2026, 06:00 UTC
NOW = datetime(2026, 3, 2, 6, 0, tzinfo=UTC)
TODAY = "2026-03-02"


def utc(year, month, day, hour, minute=0) -> datetime:
    return datetime(year, month, day, hour, minute, tzinfo=UTC)


def weekday_template(start: str = "09:00", end: str = "12:00", weekend: bool = False) -> AvailabilityTemplate:
    """The same single window on every weekday (and optionally the weekend)."""
    days = ["monday", "tuesday", "wednesday", "thursday", "friday"]
    if weekend:
        days += ["saturday", "sunday"]
    return AvailabilityTemplate(**{d: [Window(start=start, end=end)] for d in days})


def make_rules(buffer_minutes: int = 30, min_notice_hours: int = 0, horizon_days: int = 60) -> BookingRules:
    """Rules without the allowed-value check so tests can use a zero notice."""
    return BookingRules.model_construct(
        buffer_minutes=buffer_minutes, min_notice_hours=min_notice_hours, horizon_days=horizon_days
    )


class FakeCalendar:
    """Stands in for GoogleCalendarService at the busy-provider / event boundary."""

    def __init__(self, connected: bool = False, busy: Optional[list[Interval]] = None):
        self.connected = connected
        self.busy = busy or []
        self.fresh_calls = 0
        self.pushed: list[tuple[int, str]] = []
        self.deleted: list[str] = []
        self.push_result: Optional[str] = "evt-1"
        self.push_error: Optional[Exception] = None
        self.delete_result = True

    def is_connected(self) -> bool:
        return self.connected

    def get_busy(self, day: date, tz: tzinfo) -> list[Interval]:
        return list(self.busy) if self.connected else []

    def get_busy_fresh(self, day: date, tz: tzinfo) -> list[Interval]:
        self.fresh_calls += 1
        return self.get_busy(day, tz)

    def push_event(self, booking, service_name: str) -> Optional[str]:
        if self.push_error:
            raise self.push_error
        self.pushed.append((booking.id, service_name))
        return self.push_result

    def delete_event(self, event_id: str) -> bool:
        self.deleted.append(event_id)
        return self.delete_result


@pytest.fixture
def engine(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path / 'test.db'}")
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def settings():
    return EngineSettings(timezone="UTC", lock_backend="memory", lock_timeout=2, retry_delay=0.0)


@pytest.fixture
def clock():
    return lambda: NOW


@pytest.fixture
def calendar():
    return FakeCalendar()


@pytest.fixture
def service(db):
    return ServiceRegistry(db).create(ServiceCreate(name="Consultation", duration_minutes=60))


def add_booking(db, service_id: int, start: datetime, minutes: int = 60):
    booking = BookingRepository(db).insert_if_no_overlap(
        service_id=service_id,
        client_name="Existing Client",
        client_email="existing@example.com",
        client_phone="",
        client_notes="",
        start=start,
        end=start + timedelta(minutes=minutes),
        duration_minutes=minutes,
        provider_timezone="UTC",
    )
    assert booking is not None
    return booking


def make_calculator(
    db,
    calendar,
    settings,
    clock,
    template: Optional[AvailabilityTemplate] = None,
    rules: Optional[BookingRules] = None,
    slot_filters: Optional[SlotFilterChain] = None,
) -> SlotCalculator:
    return SlotCalculator(
        services=ServiceRegistry(db),
        template_store=StaticTemplateStore(template or weekday_template(), rules or make_rules()),
        busy_providers=[LocalBookingBusyProvider(db), calendar],
        settings=settings,
        slot_filters=slot_filters,
        clock=clock,
    )


def make_manager(
    db,
    calendar,
    settings,
    clock,
    lock_factory=None,
    events: Optional[BookingEventBus] = None,
    rate_limiter=None,
    slot_calculator=None,
    **calculator_kwargs,
) -> BookingTransactionManager:
    return BookingTransactionManager(
        db,
        services=ServiceRegistry(db),
        slot_calculator=slot_calculator or make_calculator(db, calendar, settings, clock, **calculator_kwargs),
        calendar=calendar,
        lock_factory=lock_factory or InMemoryLockFactory(),
        events=events,
        settings=settings,
        rate_limiter=rate_limiter,
    )
