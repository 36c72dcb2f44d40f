"""
Bookings API Endpoints
Technician-side booking lifecycle: start, complete, cancel
"""
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field

from leadflow.api.v1.dependencies import get_booking_service, get_repository
from leadflow.domain.interfaces.lead_repository import (
    LeadRepository,
    BookingNotFoundError,
    LeadNotFoundError,
    ConcurrentUpdateError,
)
from leadflow.domain.models.booking import Booking, BookingStatus
from leadflow.domain.models.lead import LeadStatus
from leadflow.domain.services.pipeline import InvalidTransitionError
from leadflow.services.booking_service import BookingService, InvalidBookingTransitionError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/bookings", tags=["Bookings"])

CONFLICT_ERRORS = (InvalidBookingTransitionError, InvalidTransitionError, ConcurrentUpdateError)
NOT_FOUND_ERRORS = (BookingNotFoundError, LeadNotFoundError)


class CompleteBookingRequest(BaseModel):
    """Request to complete a booking"""
    hours_worked: Optional[float] = Field(None, gt=0, description="Actual hours, replaces the estimate")


class CancelBookingRequest(BaseModel):
    """Request to cancel a booking"""
    reason: Optional[str] = None


@router.get("", response_model=List[Booking])
async def list_bookings(
    status: Optional[BookingStatus] = Query(None, description="Filter by booking status"),
    repository: LeadRepository = Depends(get_repository)
) -> List[Booking]:
    """List bookings ordered by start time"""
    return await repository.list_bookings(status=status)


@router.get("/{booking_id}", response_model=Booking)
async def get_booking(
    booking_id: str,
    repository: LeadRepository = Depends(get_repository)
) -> Booking:
    """Get a single booking"""
    try:
        return await repository.get_booking(booking_id)
    except BookingNotFoundError as e:
        raise HTTPException(status_code=404, detail=e.message)


@router.post("/{booking_id}/start", response_model=Booking)
async def start_booking(
    booking_id: str,
    bookings: BookingService = Depends(get_booking_service)
) -> Booking:
    """Mark a job as started"""
    try:
        return await bookings.start_booking(booking_id)
    except NOT_FOUND_ERRORS as e:
        raise HTTPException(status_code=404, detail=e.message)
    except CONFLICT_ERRORS as e:
        raise HTTPException(status_code=409, detail=e.message)


@router.post("/{booking_id}/complete")
async def complete_booking(
    booking_id: str,
    payload: Optional[CompleteBookingRequest] = None,
    bookings: BookingService = Depends(get_booking_service)
):
    """Mark a job as done; the lead moves to completed"""
    hours_worked = payload.hours_worked if payload else None
    try:
        lead, booking = await bookings.complete_booking(booking_id, hours_worked=hours_worked)
    except NOT_FOUND_ERRORS as e:
        raise HTTPException(status_code=404, detail=e.message)
    except CONFLICT_ERRORS as e:
        raise HTTPException(status_code=409, detail=e.message)

    return {
        "lead": lead.model_dump(mode="json"),
        "booking": booking.model_dump(mode="json"),
    }


@router.post("/{booking_id}/cancel")
async def cancel_booking(
    booking_id: str,
    payload: Optional[CancelBookingRequest] = None,
    bookings: BookingService = Depends(get_booking_service)
):
    """Cancel a booking; the lead goes back to contacted"""
    reason = payload.reason if payload else None
    try:
        lead, booking = await bookings.cancel_booking(booking_id, reason=reason)
    except NOT_FOUND_ERRORS as e:
        raise HTTPException(status_code=404, detail=e.message)
    except CONFLICT_ERRORS as e:
        raise HTTPException(status_code=409, detail=e.message)

    logger.info(f"Booking {booking.id} cancelled, lead {lead.id} is {LeadStatus(lead.status).value}")
    return {
        "lead": lead.model_dump(mode="json"),
        "booking": booking.model_dump(mode="json"),
    }
