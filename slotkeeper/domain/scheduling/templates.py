"""Availability template and booking rules.

The weekly template and rules are stored as JSON blobs in ``provider_settings``
and validated into typed value objects here, at the store boundary, so the
slot calculator only ever sees well-formed data.
"""

import logging
from datetime import date, time
from typing import Literal, Optional

from pydantic import BaseModel, ValidationError, field_validator, model_validator
from sqlalchemy.orm import Session

from ...models import ProviderSetting
from ...shared.validators import parse_time

logger = logging.getLogger(__name__)

WEEKDAYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")
MAX_WINDOWS_PER_DAY = 3

AVAILABILITY_KEY = "availability"
BOOKING_RULES_KEY = "booking_rules"


class Window(BaseModel):
    """A wall-clock availability window, ``HH:MM`` to ``HH:MM``."""

    start: str
    end: str

    @field_validator("start", "end")
    @classmethod
    def validate_hhmm(cls, v):
        if parse_time(v) is None:
            raise ValueError("Times must be HH:MM (00:00-23:59)")
        return v

    @model_validator(mode="after")
    def validate_order(self):
        if self.start_time >= self.end_time:
            raise ValueError(f"Window start {self.start} must be before end {self.end}")
        return self

    @property
    def start_time(self) -> time:
        return parse_time(self.start)

    @property
    def end_time(self) -> time:
        return parse_time(self.end)


class AvailabilityTemplate(BaseModel):
    monday: list[Window] = []
    tuesday: list[Window] = []
    wednesday: list[Window] = []
    thursday: list[Window] = []
    friday: list[Window] = []
    saturday: list[Window] = []
    sunday: list[Window] = []

    @field_validator(*WEEKDAYS)
    @classmethod
    def validate_day(cls, windows: list[Window]) -> list[Window]:
        if len(windows) > MAX_WINDOWS_PER_DAY:
            raise ValueError(f"At most {MAX_WINDOWS_PER_DAY} windows per day")
        ordered = sorted(windows, key=lambda w: w.start_time)
        for previous, current in zip(ordered, ordered[1:]):
            if current.start_time < previous.end_time:
                raise ValueError(
                    f"Windows {previous.start}-{previous.end} and {current.start}-{current.end} overlap"
                )
        return ordered

    def windows_for(self, day: date) -> list[Window]:
        return getattr(self, WEEKDAYS[day.weekday()])


class BookingRules(BaseModel):
    buffer_minutes: Literal[15, 30, 45, 60] = 30
    min_notice_hours: Literal[1, 2, 4, 8, 24] = 2
    horizon_days: Literal[14, 30, 60, 90] = 60


class TemplateStore:
    """Reads and writes the provider's template and rules in ``provider_settings``."""

    def __init__(self, db: Session):
        self.db = db

    def _load(self, key: str) -> Optional[dict]:
        row = self.db.get(ProviderSetting, key)
        return row.value if row else None

    def _save(self, key: str, value: dict) -> None:
        row = self.db.get(ProviderSetting, key)
        if row is None:
            self.db.add(ProviderSetting(key=key, value=value))
        else:
            row.value = value
        self.db.commit()

    def get_weekly_template(self) -> AvailabilityTemplate:
        raw = self._load(AVAILABILITY_KEY)
        if not raw:
            return AvailabilityTemplate()
        try:
            return AvailabilityTemplate.model_validate(raw)
        except ValidationError as e:
            # Treat a corrupt template as "no availability" rather than offering bad slots
            logger.error(f"❌ Stored availability template is invalid: {e.error_count()} error(s)")
            return AvailabilityTemplate()

    def get_booking_rules(self) -> BookingRules:
        raw = self._load(BOOKING_RULES_KEY)
        if not raw:
            return BookingRules()
        try:
            return BookingRules.model_validate(raw)
        except ValidationError as e:
            logger.error(f"❌ Stored booking rules are invalid, using defaults: {e.error_count()} error(s)")
            return BookingRules()

    def save_weekly_template(self, template: AvailabilityTemplate) -> AvailabilityTemplate:
        self._save(AVAILABILITY_KEY, template.model_dump())
        logger.info("✅ Availability template saved")
        return template

    def save_booking_rules(self, rules: BookingRules) -> BookingRules:
        self._save(BOOKING_RULES_KEY, rules.model_dump())
        logger.info(
            f"✅ Booking rules saved: buffer={rules.buffer_minutes}m, "
            f"notice={rules.min_notice_hours}h, horizon={rules.horizon_days}d"
        )
        return rules


class StaticTemplateStore:
    """Template store backed by values fixed at construction (single-config deployments)."""

    def __init__(self, template: AvailabilityTemplate, rules: Optional[BookingRules] = None):
        self.template = template
        self.rules = rules or BookingRules()

    def get_weekly_template(self) -> AvailabilityTemplate:
        return self.template

    def get_booking_rules(self) -> BookingRules:
        return self.rules
