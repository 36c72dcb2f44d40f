"""
Webhooks API Endpoints
Inbound inquiry emails and customer replies (email forwarder, Vonage inbound SMS)
"""
import logging
from datetime import datetime
from typing import Optional
from urllib.parse import parse_qsl

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel, Field

from leadflow.api.v1.dependencies import get_booking_service, get_intake_service
from leadflow.domain.models.lead import LeadSource
from leadflow.services.booking_service import BookingService
from leadflow.services.intake_service import LeadIntakeService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


class InboundEmailRequest(BaseModel):
    """Inquiry email forwarded by the mail provider"""
    body: str = Field("", description="Plain text email body")
    source: LeadSource = Field(LeadSource.LEADMAIL, description="Inquiry channel")
    subject: Optional[str] = None
    sender: Optional[str] = Field(None, description="From address")


class InboundReplyRequest(BaseModel):
    """Customer reply to an offer"""
    from_identifier: str = Field(..., description="Sender phone number or email address")
    text: str = Field("", description="Reply body")
    received_at: Optional[datetime] = None


@router.post("/email")
async def inbound_email(
    payload: InboundEmailRequest,
    intake: LeadIntakeService = Depends(get_intake_service)
):
    """
    Process an inquiry email: create the lead and send the offer.

    Always stores the lead; ``status`` stays ``new`` if the offer could not
    be delivered.
    """
    result = await intake.process_email(
        payload.body,
        payload.source,
        subject=payload.subject,
        sender=payload.sender,
    )
    return result.to_dict()


@router.post("/reply")
async def inbound_reply(
    payload: InboundReplyRequest,
    bookings: BookingService = Depends(get_booking_service)
):
    """
    Handle a customer reply such as "2".

    Returns the outcome (booked, unrecognized, unknown_sender, conflict);
    the webhook itself always succeeds so providers do not retry.
    """
    result = await bookings.handle_inbound_reply(
        payload.from_identifier,
        payload.text,
        received_at=payload.received_at,
    )
    return result.to_dict()


@router.api_route("/vonage/inbound-sms", methods=["GET", "POST"])
async def vonage_inbound_sms(
    request: Request,
    bookings: BookingService = Depends(get_booking_service)
):
    """
    Handle Vonage inbound SMS webhook.

    Vonage sends ``msisdn`` (sender) and ``text`` as query parameters (GET)
    or as a JSON/form body (POST).
    """
    data = dict(request.query_params)
    if request.method == "POST":
        content_type = request.headers.get("content-type", "")
        if "application/json" in content_type:
            try:
                body = await request.json()
            except ValueError:
                raise HTTPException(status_code=400, detail="Malformed JSON body")
            if not isinstance(body, dict):
                raise HTTPException(status_code=400, detail="JSON body must be an object")
            data.update(body)
        else:
            data.update(parse_qsl((await request.body()).decode("utf-8", errors="replace")))

    msisdn = data.get("msisdn")
    if not msisdn:
        raise HTTPException(status_code=400, detail="Missing msisdn")

    logger.info(f"Inbound SMS from {str(msisdn)[:6]}... (message {data.get('messageId')})")
    text = data.get("text")
    result = await bookings.handle_inbound_reply(str(msisdn), "" if text is None else str(text))
    return result.to_dict()
