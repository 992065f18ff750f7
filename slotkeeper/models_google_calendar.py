"""
Google Calendar Integration Models
"""
from sqlalchemy import Boolean, Column, DateTime, Integer, String, Text
from sqlalchemy.sql import func

from .database import Base


class GoogleCalendarConnection(Base):
    __tablename__ = "google_calendar_connections"

    id = Column(Integer, primary_key=True, index=True)

    # OAuth client credentials entered by the provider (secret encrypted)
    client_id = Column(String(500), nullable=False, default="")
    client_secret = Column(Text, nullable=True)
    calendar_id = Column(String(500), nullable=False, default="primary")

    # OAuth tokens (encrypted)
    access_token = Column(Text, nullable=True)
    refresh_token = Column(Text, nullable=True)
    token_expires_at = Column(DateTime, nullable=True)  # naive UTC

    # Set when tokens can no longer be used; cleared on a successful refresh or reconnect
    needs_reconnect = Column(Boolean, nullable=False, default=False)
    reconnect_flagged_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())
