"""
Lead Pipeline State Machine
Single place where lead status changes are decided.

    new -> contacted -> booked -> completed -> invoiced
                 ^         |
                 +---------+  (booking cancelled)
"""
import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Optional, Tuple

from leadflow.domain.models.booking import Booking
from leadflow.domain.models.lead import Lead, LeadStatus
from leadflow.domain.models.offer import Offer

logger = logging.getLogger(__name__)


class LeadEvent(str, Enum):
    """Events that move a lead through the pipeline"""
    RESPONSE_SENT = "response_sent"
    SLOT_CHOSEN = "slot_chosen"
    JOB_COMPLETED = "job_completed"
    BOOKING_CANCELLED = "booking_cancelled"
    INVOICE_ISSUED = "invoice_issued"


TRANSITIONS: Dict[Tuple[LeadStatus, LeadEvent], LeadStatus] = {
    (LeadStatus.NEW, LeadEvent.RESPONSE_SENT): LeadStatus.CONTACTED,
    (LeadStatus.CONTACTED, LeadEvent.SLOT_CHOSEN): LeadStatus.BOOKED,
    (LeadStatus.BOOKED, LeadEvent.JOB_COMPLETED): LeadStatus.COMPLETED,
    (LeadStatus.BOOKED, LeadEvent.BOOKING_CANCELLED): LeadStatus.CONTACTED,
    (LeadStatus.COMPLETED, LeadEvent.INVOICE_ISSUED): LeadStatus.INVOICED,
}


class InvalidTransitionError(Exception):
    """Raised when an event is not allowed from the lead's current status."""
    def __init__(self, status: LeadStatus, event: LeadEvent, message: Optional[str] = None):
        self.status = status
        self.event = event
        self.message = message or f"Cannot apply '{event.value}' to a lead in status '{status.value}'"
        super().__init__(self.message)


def next_status(status: LeadStatus, event: LeadEvent) -> LeadStatus:
    """
    Look up the target status for an event.

    Raises:
        InvalidTransitionError: If the pair is not in the transition table
    """
    status = LeadStatus(status)
    event = LeadEvent(event)
    target = TRANSITIONS.get((status, event))
    if target is None:
        raise InvalidTransitionError(status, event)
    return target


def can_apply(lead: Lead, event: LeadEvent) -> bool:
    """Whether the event is allowed for the lead right now"""
    return (LeadStatus(lead.status), LeadEvent(event)) in TRANSITIONS


def apply(
    lead: Lead,
    event: LeadEvent,
    offer: Optional[Offer] = None,
    booking: Optional[Booking] = None,
    now: Optional[datetime] = None
) -> Lead:
    """
    Apply an event to a lead and return the updated copy.

    The input lead is never modified. Side effects per event:
    - response_sent: response_sent=True, offer attached (required)
    - slot_chosen: booking id/date/time copied from the booking (required),
      offer discarded
    - booking_cancelled: booking fields cleared
    - job_completed, invoice_issued: status only

    Raises:
        InvalidTransitionError: If the event is not allowed or a required
            offer/booking is missing
    """
    event = LeadEvent(event)
    current = LeadStatus(lead.status)
    target = next_status(current, event)
    now = now or datetime.now(timezone.utc)

    update: dict = {"status": target, "updated_at": now}

    if event == LeadEvent.RESPONSE_SENT:
        if offer is None:
            raise InvalidTransitionError(current, event, "An offer is required to mark a lead as contacted")
        update.update(response_sent=True, offer=offer)

    elif event == LeadEvent.SLOT_CHOSEN:
        if booking is None:
            raise InvalidTransitionError(current, event, "A booking is required to mark a lead as booked")
        local_start = booking.start_time
        update.update(
            booking_id=booking.id,
            booking_date=local_start.date().isoformat(),
            booking_time_slot=local_start.strftime("%H:%M"),
            offer=None,
        )

    elif event == LeadEvent.BOOKING_CANCELLED:
        update.update(booking_id=None, booking_date=None, booking_time_slot=None)

    logger.info(f"Lead {lead.id}: {current.value} -> {target.value} ({event.value})")
    return lead.model_copy(update=update)
