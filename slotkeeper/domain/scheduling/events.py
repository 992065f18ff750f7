"""
Booking notifications and the slot-list extension point.

Both are plain objects handed to the booking manager and slot calculator at
construction, so there is no global registry to reach into.
"""

import logging
from collections import defaultdict
from typing import Any, Callable

logger = logging.getLogger(__name__)

EVENT_BOOKING_CREATED = "booking.created"
EVENT_BOOKING_CANCELLED = "booking.cancelled"

EventHandler = Callable[[dict[str, Any]], None]
SlotFilter = Callable[[list[str], str, int], list[str]]


class BookingEventBus:
    """Fan-out of booking events to subscribers (email, webhooks, ...).

    A failing subscriber is logged and skipped; it never affects the booking
    or the other subscribers.
    """

    def __init__(self):
        self._handlers: dict[str, list[EventHandler]] = defaultdict(list)

    def subscribe(self, event: str, handler: EventHandler) -> None:
        self._handlers[event].append(handler)

    def emit(self, event: str, snapshot: dict[str, Any]) -> None:
        for handler in list(self._handlers.get(event, ())):
            try:
                handler(snapshot)
            except Exception:
                logger.exception(f"❌ Subscriber {getattr(handler, '__name__', handler)!r} failed for {event}")


class SlotFilterChain:
    """Post-processors applied in registration order to every computed slot list."""

    def __init__(self, filters: list[SlotFilter] | None = None):
        self._filters: list[SlotFilter] = list(filters or [])

    def register(self, slot_filter: SlotFilter) -> None:
        self._filters.append(slot_filter)

    def apply(self, slots: list[str], date_str: str, service_id: int) -> list[str]:
        for slot_filter in self._filters:
            slots = list(slot_filter(slots, date_str, service_id))
        return slots


def log_booking_event(event: str) -> EventHandler:
    """Subscriber that records the event without any client details."""

    def handler(snapshot: dict[str, Any]) -> None:
        logger.info(
            f"📅 {event}: booking {snapshot.get('id')} service={snapshot.get('service_id')} "
            f"start={snapshot.get('start_utc')}"
        )

    handler.__name__ = f"log_{event.replace('.', '_')}"
    return handler
