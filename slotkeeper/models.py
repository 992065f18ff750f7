from sqlalchemy import JSON, Boolean, Column, DateTime, Index, Integer, String, Text
from sqlalchemy.sql import func

from .database import Base

BOOKING_CONFIRMED = "confirmed"
BOOKING_CANCELLED = "cancelled"


class Service(Base):
    __tablename__ = "services"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    slug = Column(String(255), nullable=False, unique=True)
    duration_minutes = Column(Integer, nullable=False)  # 15-240, multiple of 15
    description = Column(Text, nullable=True)
    # Services are never deleted, only deactivated, so historical bookings keep their reference
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, server_default=func.now())


class Booking(Base):
    __tablename__ = "bookings"
    __table_args__ = (Index("idx_start_status", "start_utc", "status"),)

    id = Column(Integer, primary_key=True, index=True)
    service_id = Column(Integer, nullable=False, index=True)  # soft reference to services.id
    client_name = Column(String(255), nullable=False)
    client_email = Column(String(255), nullable=False, index=True)
    client_phone = Column(String(50), nullable=True, default="")
    client_notes = Column(Text, nullable=True)

    # Naive UTC datetimes; end_utc = start_utc + duration_minutes
    start_utc = Column(DateTime, nullable=False)
    end_utc = Column(DateTime, nullable=False)
    duration_minutes = Column(Integer, nullable=False)
    provider_timezone = Column(String(100), nullable=False)

    status = Column(String(20), nullable=False, default=BOOKING_CONFIRMED)  # confirmed, cancelled
    external_event_id = Column(String(255), nullable=True)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())


class ProviderSetting(Base):
    """Key/value settings owned by the provider (availability template, booking rules)."""

    __tablename__ = "provider_settings"

    key = Column(String(100), primary_key=True)
    value = Column(JSON, nullable=False)
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())
