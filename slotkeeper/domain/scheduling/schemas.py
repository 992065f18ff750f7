"""Scheduling domain schemas - Pydantic models for validation"""

from datetime import datetime
from typing import Optional
from zoneinfo import ZoneInfo

from pydantic import BaseModel, Field

from ...models import Booking
from ...shared.timeutils import from_utc_naive


class ClientDetails(BaseModel):
    """Who the booking is for. Values are sanitized by the booking manager."""

    name: str = ""
    email: str = ""
    phone: str = ""
    notes: str = ""


class BookingRequest(BaseModel):
    """Public booking form submission"""

    service_id: Optional[int] = None
    date: str = ""
    time: str = ""
    name: str = ""
    email: str = ""
    phone: str = ""
    notes: str = ""
    # Anti-spam: hidden field that humans leave empty, and when the form was rendered (epoch seconds)
    website: str = ""
    rendered_at: Optional[float] = None

    def client(self) -> ClientDetails:
        return ClientDetails(name=self.name, email=self.email, phone=self.phone, notes=self.notes)


class SlotsResponse(BaseModel):
    date: str
    service_id: int
    slots: list[str]


class BookingSnapshot(BaseModel):
    """Full booking state handed to event subscribers and admin callers"""

    id: int
    service_id: int
    service_name: Optional[str] = None
    client_name: str
    client_email: str
    client_phone: str = ""
    client_notes: str = ""
    date: str
    time: str
    start_utc: datetime
    end_utc: datetime
    duration_minutes: int
    provider_timezone: str
    status: str
    external_event_id: Optional[str] = None

    @classmethod
    def from_booking(cls, booking: Booking, service_name: Optional[str] = None) -> "BookingSnapshot":
        start = from_utc_naive(booking.start_utc)
        local_start = start.astimezone(ZoneInfo(booking.provider_timezone))
        return cls(
            id=booking.id,
            service_id=booking.service_id,
            service_name=service_name,
            client_name=booking.client_name,
            client_email=booking.client_email,
            client_phone=booking.client_phone or "",
            client_notes=booking.client_notes or "",
            date=local_start.strftime("%Y-%m-%d"),
            time=local_start.strftime("%H:%M"),
            start_utc=start,
            end_utc=from_utc_naive(booking.end_utc),
            duration_minutes=booking.duration_minutes,
            provider_timezone=booking.provider_timezone,
            status=booking.status,
            external_event_id=booking.external_event_id,
        )


class BookingConfirmation(BaseModel):
    id: int
    service_id: int
    date: str
    time: str
    duration_minutes: int
    status: str
    message: str = "Your booking is confirmed."


class CancelResponse(BaseModel):
    id: int
    cancelled: bool


class ErrorResponse(BaseModel):
    code: str
    message: str
    fields: list[str] = Field(default_factory=list)
