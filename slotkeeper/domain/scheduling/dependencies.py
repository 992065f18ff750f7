"""FastAPI dependency providers wiring the scheduling engine together per request"""

import logging
from functools import lru_cache

from fastapi import Depends
from sqlalchemy.orm import Session

from ...config import EngineSettings, load_settings
from ...database import get_db
from ...rate_limiter import RateLimiter
from ...services.google_calendar_service import GoogleCalendarService
from ..services.service import ServiceRegistry
from .availability_service import SlotCalculator
from .booking_service import BookingTransactionManager
from .busy_providers import LocalBookingBusyProvider
from .events import (
    EVENT_BOOKING_CANCELLED,
    EVENT_BOOKING_CREATED,
    BookingEventBus,
    SlotFilterChain,
    log_booking_event,
)
from .locks import LockFactory, build_lock_factory
from .templates import TemplateStore

logger = logging.getLogger(__name__)


@lru_cache
def get_settings() -> EngineSettings:
    return load_settings()


@lru_cache
def get_lock_factory() -> LockFactory:
    return build_lock_factory(get_settings())


@lru_cache
def get_event_bus() -> BookingEventBus:
    """Process-wide bus; email or webhook senders subscribe here at startup"""
    bus = BookingEventBus()
    bus.subscribe(EVENT_BOOKING_CREATED, log_booking_event(EVENT_BOOKING_CREATED))
    bus.subscribe(EVENT_BOOKING_CANCELLED, log_booking_event(EVENT_BOOKING_CANCELLED))
    return bus


@lru_cache
def get_slot_filters() -> SlotFilterChain:
    return SlotFilterChain()


@lru_cache
def get_booking_rate_limiter() -> RateLimiter:
    settings = get_settings()
    return RateLimiter(settings.rate_limit, settings.rate_window_seconds, key_prefix="booking")


def get_calendar_service(
    db: Session = Depends(get_db),
    settings: EngineSettings = Depends(get_settings),
) -> GoogleCalendarService:
    return GoogleCalendarService(db, settings)


def get_slot_calculator(
    db: Session = Depends(get_db),
    calendar: GoogleCalendarService = Depends(get_calendar_service),
    settings: EngineSettings = Depends(get_settings),
    slot_filters: SlotFilterChain = Depends(get_slot_filters),
) -> SlotCalculator:
    return SlotCalculator(
        services=ServiceRegistry(db),
        template_store=TemplateStore(db),
        busy_providers=[LocalBookingBusyProvider(db), calendar],
        settings=settings,
        slot_filters=slot_filters,
    )


def get_booking_manager(
    db: Session = Depends(get_db),
    calendar: GoogleCalendarService = Depends(get_calendar_service),
    slot_calculator: SlotCalculator = Depends(get_slot_calculator),
    settings: EngineSettings = Depends(get_settings),
    lock_factory: LockFactory = Depends(get_lock_factory),
    events: BookingEventBus = Depends(get_event_bus),
    rate_limiter: RateLimiter = Depends(get_booking_rate_limiter),
) -> BookingTransactionManager:
    """Dependency injection for BookingTransactionManager"""
    return BookingTransactionManager(
        db,
        services=ServiceRegistry(db),
        slot_calculator=slot_calculator,
        calendar=calendar,
        lock_factory=lock_factory,
        events=events,
        settings=settings,
        rate_limiter=rate_limiter,
    )
