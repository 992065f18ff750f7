"""Public booking router - slot lookup and booking submission"""

import logging
import time

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy.orm import Session

from ...database import get_db
from ...rate_limiter import get_client_ip
from ..services.schemas import PublicServiceResponse
from ..services.service import ServiceRegistry
from .availability_service import SlotCalculator
from .booking_service import BookingTransactionManager
from .dependencies import get_booking_manager, get_slot_calculator
from .errors import BookingError, MissingFieldsError, RateLimitedError, ServerBusyError
from .schemas import BookingConfirmation, BookingRequest, BookingSnapshot, SlotsResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/booking", tags=["Booking"])

MIN_FORM_SECONDS = 3
SERVER_BUSY_RETRY_AFTER = 5
SPAM_REJECTION = {"code": "rejected", "message": "Something went wrong. Please try again."}

ERROR_STATUS = {
    "missing_fields": 422,
    "invalid_email": 422,
    "invalid_date": 422,
    "invalid_time": 422,
    "invalid_service": 422,
    "slot_taken": 409,
    "rate_limited": 429,
    "server_busy": 503,
}


def booking_error_to_http(error: BookingError) -> HTTPException:
    """Map a booking error kind onto an HTTP response"""
    detail = {"code": error.code, "message": error.message}
    headers = None
    if isinstance(error, MissingFieldsError):
        detail["fields"] = error.fields
    if isinstance(error, RateLimitedError):
        headers = {"Retry-After": str(max(error.retry_after, 1))}
    elif isinstance(error, ServerBusyError):
        headers = {"Retry-After": str(SERVER_BUSY_RETRY_AFTER)}
    return HTTPException(status_code=ERROR_STATUS.get(error.code, 400), detail=detail, headers=headers)


@router.get("/services", response_model=list[PublicServiceResponse])
async def list_active_services(db: Session = Depends(get_db)):
    """Active services clients can book, ordered by name"""
    return ServiceRegistry(db).get_all_active()


@router.get("/slots", response_model=SlotsResponse)
def get_slots(
    date: str = Query(..., description="YYYY-MM-DD in the provider's timezone"),
    service_id: int = Query(...),
    calculator: SlotCalculator = Depends(get_slot_calculator),
):
    """Available start times for a service on a date"""
    return SlotsResponse(date=date, service_id=service_id, slots=calculator.get_available_slots(date, service_id))


@router.post("", response_model=BookingConfirmation, status_code=201)
def create_booking(
    data: BookingRequest,
    request: Request,
    manager: BookingTransactionManager = Depends(get_booking_manager),
):
    """Book a slot. Honeypot and form-timing checks run before anything else."""
    if data.website:
        logger.warning("🤖 Booking rejected: honeypot field filled")
        raise HTTPException(status_code=400, detail=SPAM_REJECTION)
    if data.rendered_at is not None and time.time() - data.rendered_at < MIN_FORM_SECONDS:
        logger.warning("🤖 Booking rejected: form submitted too quickly")
        raise HTTPException(status_code=400, detail=SPAM_REJECTION)

    try:
        booking = manager.create(
            data.service_id, data.date, data.time, data.client(), client_ip=get_client_ip(request)
        )
    except BookingError as e:
        raise booking_error_to_http(e) from e

    snapshot = BookingSnapshot.from_booking(booking)
    return BookingConfirmation(
        id=booking.id,
        service_id=booking.service_id,
        date=snapshot.date,
        time=snapshot.time,
        duration_minutes=booking.duration_minutes,
        status=booking.status,
    )
