"""
Google Calendar Integration Routes
Handles credential entry, the OAuth connection and disconnection
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel

from ..auth import verify_admin
from ..domain.scheduling.dependencies import get_calendar_service
from ..services.google_calendar_service import GoogleCalendarService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin/google-calendar", tags=["google-calendar"])


class CredentialsRequest(BaseModel):
    client_id: str
    client_secret: str
    calendar_id: str = ""


@router.get("/status", dependencies=[Depends(verify_admin)])
async def get_google_calendar_status(calendar: GoogleCalendarService = Depends(get_calendar_service)):
    """Connection status, including whether the provider must reconnect"""
    return calendar.status()


@router.put("/credentials", dependencies=[Depends(verify_admin)])
async def save_google_calendar_credentials(
    data: CredentialsRequest,
    calendar: GoogleCalendarService = Depends(get_calendar_service),
):
    if not data.client_id.strip() or not data.client_secret.strip():
        raise HTTPException(status_code=422, detail="Client ID and client secret are required")
    conn = calendar.save_credentials(data.client_id, data.client_secret, data.calendar_id)
    return {"success": True, "calendar_id": conn.calendar_id}


@router.get("/connect", dependencies=[Depends(verify_admin)])
async def initiate_google_calendar_oauth(calendar: GoogleCalendarService = Depends(get_calendar_service)):
    """Initiate Google Calendar OAuth flow"""
    auth_url = calendar.authorization_url()
    if not auth_url:
        raise HTTPException(status_code=400, detail="Save Google Calendar credentials first")

    logger.info("Google Calendar OAuth initiated")
    return {"authorization_url": auth_url}


@router.get("/callback")
def handle_google_calendar_callback(
    code: Optional[str] = Query(None),
    state: Optional[str] = Query(None),
    error: Optional[str] = Query(None),
    calendar: GoogleCalendarService = Depends(get_calendar_service),
):
    """
    Google redirects the provider's browser here, so there is no bearer key;
    the one-time ``state`` issued by ``/connect`` authenticates the request.
    """
    if not calendar.consume_state(state or ""):
        raise HTTPException(status_code=400, detail="Authorization expired or was invalid. Please try connecting again.")

    if error:
        logger.warning(f"⚠️ Google Calendar authorization denied: {error}")
        raise HTTPException(status_code=400, detail="Authorization was denied")

    if not code:
        raise HTTPException(status_code=400, detail="No authorization code provided")

    if not calendar.exchange_code(code):
        raise HTTPException(status_code=400, detail="Failed to exchange authorization code")

    return {"success": True, "message": "Google Calendar connected successfully"}


@router.post("/disconnect", dependencies=[Depends(verify_admin)])
async def disconnect_google_calendar(calendar: GoogleCalendarService = Depends(get_calendar_service)):
    calendar.disconnect()
    return {"success": True, "message": "Google Calendar disconnected"}
