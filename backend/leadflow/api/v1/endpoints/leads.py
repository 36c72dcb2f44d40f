"""
Leads API Endpoints
Lead listing, manual booking, offer resend and invoicing
"""
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field

from leadflow.api.v1.dependencies import get_booking_service, get_intake_service, get_repository
from leadflow.domain.interfaces.lead_repository import (
    LeadRepository,
    LeadNotFoundError,
    ConcurrentUpdateError,
)
from leadflow.domain.models.lead import Lead, LeadStatus
from leadflow.domain.services.pipeline import InvalidTransitionError
from leadflow.services.booking_service import BookingService, ConcurrentBookingConflict
from leadflow.services.intake_service import LeadIntakeService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/leads", tags=["Leads"])


# =============================================================================
# Request/Response Models
# =============================================================================

class BookSlotRequest(BaseModel):
    """Book one of the offered slots on the customer's behalf"""
    slot_index: int = Field(..., ge=1, le=3, description="Offered slot, 1-3")


# =============================================================================
# Endpoints
# =============================================================================

@router.get("", response_model=List[Lead])
async def list_leads(
    status: Optional[LeadStatus] = Query(None, description="Filter by pipeline status"),
    limit: int = Query(100, ge=1, le=500),
    repository: LeadRepository = Depends(get_repository)
) -> List[Lead]:
    """List leads, newest first"""
    return await repository.list_leads(status=status, limit=limit)


@router.get("/{lead_id}", response_model=Lead)
async def get_lead(
    lead_id: str,
    repository: LeadRepository = Depends(get_repository)
) -> Lead:
    """Get a single lead"""
    try:
        return await repository.get_lead(lead_id)
    except LeadNotFoundError as e:
        raise HTTPException(status_code=404, detail=e.message)


@router.post("/{lead_id}/book")
async def book_slot(
    lead_id: str,
    payload: BookSlotRequest,
    bookings: BookingService = Depends(get_booking_service)
):
    """
    Book an offered slot, e.g. after the customer called in.

    409 if the lead has no bookable offer or was booked concurrently.
    """
    try:
        lead, booking = await bookings.book_slot(lead_id, payload.slot_index)
    except LeadNotFoundError as e:
        raise HTTPException(status_code=404, detail=e.message)
    except (InvalidTransitionError, ConcurrentBookingConflict) as e:
        raise HTTPException(status_code=409, detail=e.message)

    return {
        "lead": lead.model_dump(mode="json"),
        "booking": booking.model_dump(mode="json"),
    }


@router.post("/{lead_id}/offer")
async def send_offer(
    lead_id: str,
    intake: LeadIntakeService = Depends(get_intake_service)
):
    """Send a fresh offer to a lead that is new or back in contacted"""
    try:
        result = await intake.send_offer(lead_id)
    except LeadNotFoundError as e:
        raise HTTPException(status_code=404, detail=e.message)
    except (InvalidTransitionError, ConcurrentUpdateError) as e:
        raise HTTPException(status_code=409, detail=e.message)

    return result.to_dict()


@router.post("/{lead_id}/invoice")
async def issue_invoice(
    lead_id: str,
    bookings: BookingService = Depends(get_booking_service)
):
    """Build the invoice for a completed lead and mark it invoiced"""
    try:
        lead, invoice = await bookings.issue_invoice(lead_id)
    except LeadNotFoundError as e:
        raise HTTPException(status_code=404, detail=e.message)
    except (InvalidTransitionError, ConcurrentUpdateError) as e:
        raise HTTPException(status_code=409, detail=e.message)

    logger.info(f"Issued invoice {invoice.invoice_number} for lead {lead.id}")
    return {
        "lead": lead.model_dump(mode="json"),
        "invoice": invoice.model_dump(mode="json"),
    }
