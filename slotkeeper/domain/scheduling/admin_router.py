"""Admin router - booking management and schedule settings for the provider"""

import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from ...auth import verify_admin
from ...database import get_db
from .booking_service import BookingTransactionManager
from .dependencies import get_booking_manager
from .schemas import BookingSnapshot, CancelResponse
from .templates import AvailabilityTemplate, BookingRules, TemplateStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["Admin"], dependencies=[Depends(verify_admin)])


def get_template_store(db: Session = Depends(get_db)) -> TemplateStore:
    return TemplateStore(db)


# ============================================================================
# BOOKINGS
# ============================================================================


@router.get("/bookings/{booking_id}", response_model=BookingSnapshot)
def get_booking(booking_id: int, manager: BookingTransactionManager = Depends(get_booking_manager)):
    booking = manager.get(booking_id)
    if not booking:
        raise HTTPException(status_code=404, detail="Booking not found")
    return manager.snapshot(booking)


@router.post("/bookings/{booking_id}/cancel", response_model=CancelResponse)
def cancel_booking(booking_id: int, manager: BookingTransactionManager = Depends(get_booking_manager)):
    """Cancel a booking. Cancelling twice is harmless."""
    if not manager.cancel(booking_id):
        raise HTTPException(status_code=404, detail="Booking not found")
    return CancelResponse(id=booking_id, cancelled=True)


# ============================================================================
# SCHEDULE SETTINGS
# ============================================================================


@router.get("/availability", response_model=AvailabilityTemplate)
async def get_availability(store: TemplateStore = Depends(get_template_store)):
    return store.get_weekly_template()


@router.put("/availability", response_model=AvailabilityTemplate)
async def save_availability(template: AvailabilityTemplate, store: TemplateStore = Depends(get_template_store)):
    """Replace the weekly template. Overlapping or inverted windows are rejected with 422."""
    return store.save_weekly_template(template)


@router.get("/booking-rules", response_model=BookingRules)
async def get_booking_rules(store: TemplateStore = Depends(get_template_store)):
    return store.get_booking_rules()


@router.put("/booking-rules", response_model=BookingRules)
async def save_booking_rules(rules: BookingRules, store: TemplateStore = Depends(get_template_store)):
    return store.save_booking_rules(rules)
