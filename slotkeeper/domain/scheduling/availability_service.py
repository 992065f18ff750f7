"""
Slot calculator.

Turns the weekly template, the booking rules and every busy-time source into
the list of start times a client may pick for a service on a given date.
Read-only; safe to call concurrently.
"""

import logging
from datetime import datetime, timedelta, tzinfo
from typing import Callable, Optional, Protocol, Sequence
from zoneinfo import ZoneInfo

from ...config import EngineSettings
from ...models import Service
from ...shared.timeutils import local_instant, utcnow
from ...shared.validators import parse_date
from .busy_providers import BusyTimeProvider
from .events import SlotFilterChain
from .intervals import Interval, buffer, merge, overlaps_any
from .templates import AvailabilityTemplate, BookingRules

logger = logging.getLogger(__name__)


class ServiceLookup(Protocol):
    def get(self, service_id: int) -> Optional[Service]:
        ...


class TemplateSource(Protocol):
    def get_weekly_template(self) -> AvailabilityTemplate:
        ...

    def get_booking_rules(self) -> BookingRules:
        ...


class SlotCalculator:
    def __init__(
        self,
        services: ServiceLookup,
        template_store: TemplateSource,
        busy_providers: Sequence[BusyTimeProvider],
        settings: Optional[EngineSettings] = None,
        slot_filters: Optional[SlotFilterChain] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.services = services
        self.template_store = template_store
        self.busy_providers = list(busy_providers)
        self.settings = settings or EngineSettings()
        self.slot_filters = slot_filters or SlotFilterChain()
        self.clock = clock
        self.tz = ZoneInfo(self.settings.timezone)

    def get_available_slots(self, date_str: str, service_id: int) -> list[str]:
        """
        Start times (``HH:MM``, provider wall clock) bookable for ``service_id`` on ``date_str``.

        Every result passes through the slot filters except when the service is
        unknown or inactive, which returns ``[]`` straight away.
        """
        day = parse_date(date_str)
        if day is None:
            return self._finish([], date_str, service_id)

        rules = self.template_store.get_booking_rules()
        now = self.clock()
        today = now.astimezone(self.tz).date()
        if day < today or day > today + timedelta(days=rules.horizon_days):
            return self._finish([], date_str, service_id)

        service = self.services.get(service_id)
        if not service or not service.is_active:
            return []

        windows = self.template_store.get_weekly_template().windows_for(day)
        if not windows:
            return self._finish([], date_str, service_id)

        compiled = [
            Interval(local_instant(day, w.start_time, self.tz), local_instant(day, w.end_time, self.tz))
            for w in windows
        ]

        busy: list[Interval] = []
        for provider in self.busy_providers:
            busy.extend(provider.get_busy(day, self.tz))
        busy = merge(buffer(busy, rules.buffer_minutes))

        earliest = now + timedelta(hours=rules.min_notice_hours)
        slots = self._walk(compiled, timedelta(minutes=service.duration_minutes), busy, earliest, self.tz)

        logger.debug(f"🗓️ {len(slots)} slot(s) for service {service_id} on {date_str} ({len(busy)} busy block(s))")
        return self._finish(slots, date_str, service_id)

    def _walk(
        self,
        windows: list[Interval],
        duration: timedelta,
        busy: Sequence[Interval],
        earliest: datetime,
        tz: tzinfo,
    ) -> list[str]:
        stride = timedelta(minutes=self.settings.slot_stride_minutes)
        slots = []
        for window in windows:
            candidate = window.start
            while candidate + duration <= window.end:
                end = candidate + duration
                local = candidate.astimezone(tz)
                # Second pass through a repeated hour (DST fall-back); its labels resolve to the first pass
                if not local.fold and candidate >= earliest and not overlaps_any(candidate, end, busy):
                    slots.append(local.strftime("%H:%M"))
                candidate += stride
        return slots

    def _finish(self, slots: list[str], date_str: str, service_id: int) -> list[str]:
        return self.slot_filters.apply(slots, date_str, service_id)
