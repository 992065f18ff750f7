"""Tests for the slot calculator."""

import pytest
from tests.conftest import (
    TODAY,
    FakeCalendar,
    add_booking,
    make_calculator,
    make_rules,
    utc,
    weekday_template,
)

from slotkeeper.config import EngineSettings
from slotkeeper.domain.scheduling.events import SlotFilterChain
from slotkeeper.domain.scheduling.intervals import Interval
from slotkeeper.domain.scheduling.templates import AvailabilityTemplate, Window
from slotkeeper.domain.services.schemas import ServiceCreate
from slotkeeper.domain.services.service import ServiceRegistry

FULL_MORNING = ["09:00", "09:30", "10:00", "10:30", "11:00"]


class RecordingFilter:
    def __init__(self):
        self.calls = []

    def __call__(self, slots, date_str, service_id):
        self.calls.append((list(slots), date_str, service_id))
        return slots


class TestScenarios:
    def test_empty_day_walks_whole_window(self, db, calendar, settings, clock, service):
        calc = make_calculator(db, calendar, settings, clock)
        assert calc.get_available_slots(TODAY, service.id) == FULL_MORNING

    def test_buffer_can_consume_a_short_window(self, db, calendar, settings, clock, service):
        add_booking(db, service.id, utc(2026, 3, 2, 10))
        calc = make_calculator(db, calendar, settings, clock, rules=make_rules(buffer_minutes=30))
        assert calc.get_available_slots(TODAY, service.id) == []

    def test_buffer_containment(self, db, calendar, settings, clock, service):
        add_booking(db, service.id, utc(2026, 3, 2, 10))
        calc = make_calculator(
            db, calendar, settings, clock, template=weekday_template("08:00", "14:00"), rules=make_rules(30)
        )
        slots = calc.get_available_slots(TODAY, service.id)
        assert slots == ["08:00", "08:30", "11:30", "12:00", "12:30", "13:00"]
        assert not [s for s in slots if "09:30" <= s < "11:30"]

    def test_duration_not_multiple_of_stride(self, db, calendar, settings, clock):
        svc = ServiceRegistry(db).create(ServiceCreate(name="Long session", duration_minutes=75))
        calc = make_calculator(db, calendar, settings, clock)
        # 10:30 + 75 min = 11:45 still fits, 11:00 + 75 min does not
        assert calc.get_available_slots(TODAY, svc.id) == ["09:00", "09:30", "10:00", "10:30"]

    def test_cancelled_bookings_are_not_busy(self, db, calendar, settings, clock, service):
        from slotkeeper.domain.scheduling.repository import BookingRepository
        from slotkeeper.models import BOOKING_CANCELLED

        booking = add_booking(db, service.id, utc(2026, 3, 2, 10))
        BookingRepository(db).update_status(booking.id, BOOKING_CANCELLED)
        calc = make_calculator(db, calendar, settings, clock)
        assert calc.get_available_slots(TODAY, service.id) == FULL_MORNING

    def test_booking_on_another_day_is_ignored(self, db, calendar, settings, clock, service):
        add_booking(db, service.id, utc(2026, 3, 3, 10))
        calc = make_calculator(db, calendar, settings, clock)
        assert calc.get_available_slots(TODAY, service.id) == FULL_MORNING

    def test_booking_spanning_midnight_counts_for_next_day(self, db, calendar, settings, clock, service):
        add_booking(db, service.id, utc(2026, 3, 2, 23), minutes=12 * 60)
        calc = make_calculator(db, calendar, settings, clock, rules=make_rules(buffer_minutes=15))
        assert calc.get_available_slots("2026-03-03", service.id) == []

    def test_external_calendar_busy_time(self, db, settings, clock, service):
        calendar = FakeCalendar(connected=True, busy=[Interval(utc(2026, 3, 2, 10), utc(2026, 3, 2, 10, 30))])
        calc = make_calculator(db, calendar, settings, clock, rules=make_rules(30))
        # buffered busy is [09:30, 11:00); 11:00-12:00 only touches it
        assert calc.get_available_slots(TODAY, service.id) == ["11:00"]

    def test_multiple_windows_in_window_order(self, db, calendar, settings, clock, service):
        template = AvailabilityTemplate(
            monday=[Window(start="14:00", end="15:30"), Window(start="09:00", end="10:00")]
        )
        calc = make_calculator(db, calendar, settings, clock, template=template)
        assert calc.get_available_slots(TODAY, service.id) == ["09:00", "14:00", "14:30"]

    def test_window_start_needs_no_leading_buffer(self, db, calendar, settings, clock, service):
        calc = make_calculator(db, calendar, settings, clock, rules=make_rules(buffer_minutes=60))
        assert calc.get_available_slots(TODAY, service.id)[0] == "09:00"


class TestDateRules:
    def test_day_without_windows(self, db, calendar, settings, clock, service):
        # 7 March 2026 is a Saturday
        calc = make_calculator(db, calendar, settings, clock)
        assert calc.get_available_slots("2026-03-07", service.id) == []

    def test_past_date(self, db, calendar, settings, clock, service):
        calc = make_calculator(db, calendar, settings, clock)
        assert calc.get_available_slots("2026-03-01", service.id) == []

    @pytest.mark.parametrize("bad", ["2026-02-30", "2026-3-2", "not-a-date", "", "2026-03-02T09:00"])
    def test_malformed_date(self, db, calendar, settings, clock, service, bad):
        calc = make_calculator(db, calendar, settings, clock)
        assert calc.get_available_slots(bad, service.id) == []

    def test_horizon_boundary(self, db, calendar, settings, clock, service):
        calc = make_calculator(db, calendar, settings, clock, rules=make_rules(horizon_days=14))
        # 16 March is exactly 14 days out and a Monday
        assert calc.get_available_slots("2026-03-16", service.id) == FULL_MORNING
        assert calc.get_available_slots("2026-03-17", service.id) == []

    def test_minimum_notice_boundary_inclusive(self, db, calendar, settings, service):
        calc = make_calculator(
            db, calendar, settings, lambda: utc(2026, 3, 2, 7), rules=make_rules(min_notice_hours=2)
        )
        assert calc.get_available_slots(TODAY, service.id)[0] == "09:00"

    def test_minimum_notice_one_minute_short(self, db, calendar, settings, service):
        calc = make_calculator(
            db, calendar, settings, lambda: utc(2026, 3, 2, 7, 1), rules=make_rules(min_notice_hours=2)
        )
        assert calc.get_available_slots(TODAY, service.id)[0] == "09:30"

    def test_today_uses_provider_timezone(self, db, calendar, clock, service):
        # 06:00 UTC on 2 March is still 1 March in Los Angeles
        settings = EngineSettings(timezone="America/Los_Angeles", retry_delay=0.0)
        calc = make_calculator(db, calendar, settings, clock)
        assert calc.get_available_slots("2026-03-02", service.id) == FULL_MORNING
        assert calc.get_available_slots("2026-02-28", service.id) == []


class TestServiceResolution:
    def test_unknown_service(self, db, calendar, settings, clock):
        calc = make_calculator(db, calendar, settings, clock)
        assert calc.get_available_slots(TODAY, 9999) == []

    def test_inactive_service(self, db, calendar, settings, clock, service):
        ServiceRegistry(db).toggle_active(service.id)
        calc = make_calculator(db, calendar, settings, clock)
        assert calc.get_available_slots(TODAY, service.id) == []


class TestProviderTimezone:
    def test_windows_and_labels_are_local(self, db, calendar, clock, service):
        settings = EngineSettings(timezone="America/New_York", retry_delay=0.0)
        # 3 March 2026, New York is UTC-5: 09:00 local is 14:00 UTC
        add_booking(db, service.id, utc(2026, 3, 3, 14))
        calc = make_calculator(db, calendar, settings, clock, rules=make_rules(buffer_minutes=15))
        assert calc.get_available_slots("2026-03-03", service.id) == ["10:30", "11:00"]

    def test_dst_day_keeps_wall_clock_windows(self, db, calendar, clock, service):
        # Clocks go forward on 8 March 2026 in New York; the Sunday window still starts at 09:00 local
        settings = EngineSettings(timezone="America/New_York", retry_delay=0.0)
        calc = make_calculator(db, calendar, settings, clock, template=weekday_template(weekend=True))
        assert calc.get_available_slots("2026-03-08", service.id) == FULL_MORNING

    def test_repeated_hour_on_fall_back_is_offered_once(self, db, calendar, service):
        # New York falls back at 02:00 on 1 November 2026; 01:00-02:00 happens twice
        settings = EngineSettings(timezone="America/New_York", retry_delay=0.0)
        template = AvailabilityTemplate(sunday=[Window(start="01:00", end="03:00")])
        calc = make_calculator(db, calendar, settings, lambda: utc(2026, 10, 25, 12), template=template)
        assert calc.get_available_slots("2026-11-01", service.id) == ["01:00", "01:30", "02:00"]

    def test_repeated_hour_busy_on_first_pass_is_not_offered(self, db, calendar, service):
        settings = EngineSettings(timezone="America/New_York", retry_delay=0.0)
        template = AvailabilityTemplate(sunday=[Window(start="01:00", end="03:00")])
        # 05:00 UTC is the first 01:00 (EDT)
        add_booking(db, service.id, utc(2026, 11, 1, 5))
        calc = make_calculator(
            db, calendar, settings, lambda: utc(2026, 10, 25, 12), template=template, rules=make_rules(0)
        )
        assert calc.get_available_slots("2026-11-01", service.id) == ["02:00"]


class TestSlotFilters:
    def test_filter_sees_every_business_result(self, db, calendar, settings, clock, service):
        recorder = RecordingFilter()
        calc = make_calculator(db, calendar, settings, clock, slot_filters=SlotFilterChain([recorder]))

        calc.get_available_slots(TODAY, service.id)
        calc.get_available_slots("2026-03-07", service.id)  # no windows
        calc.get_available_slots("2026-03-01", service.id)  # past
        calc.get_available_slots("2026-12-31", service.id)  # beyond horizon
        calc.get_available_slots("garbage", service.id)

        assert [c[1] for c in recorder.calls] == [TODAY, "2026-03-07", "2026-03-01", "2026-12-31", "garbage"]
        assert recorder.calls[0] == (FULL_MORNING, TODAY, service.id)

    def test_filter_skipped_for_invalid_service(self, db, calendar, settings, clock):
        recorder = RecordingFilter()
        calc = make_calculator(db, calendar, settings, clock, slot_filters=SlotFilterChain([recorder]))
        assert calc.get_available_slots(TODAY, 424242) == []
        assert recorder.calls == []

    def test_filters_can_change_the_result(self, db, calendar, settings, clock, service):
        chain = SlotFilterChain()
        chain.register(lambda slots, d, s: [x for x in slots if x != "09:00"])
        chain.register(lambda slots, d, s: slots[:2])
        calc = make_calculator(db, calendar, settings, clock, slot_filters=chain)
        assert calc.get_available_slots(TODAY, service.id) == ["09:30", "10:00"]

