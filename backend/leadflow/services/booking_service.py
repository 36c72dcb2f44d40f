"""
Booking Service
Commits bookings from customer replies and advances them to invoicing.
"""
import uuid
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Optional, Tuple

from leadflow.core.config import BusinessSettings
from leadflow.domain.interfaces.lead_repository import (
    LeadRepository,
    ConcurrentUpdateError,
)
from leadflow.domain.models.booking import Booking, BookingStatus
from leadflow.domain.models.invoice import InvoiceDraft
from leadflow.domain.models.lead import Lead, LeadStatus
from leadflow.domain.models.offer import Slot
from leadflow.domain.services import pipeline
from leadflow.domain.services.message_composer import OutboundComposer
from leadflow.domain.services.pipeline import LeadEvent, InvalidTransitionError
from leadflow.domain.services.pricing import build_invoice_draft, price
from leadflow.domain.services.reply_interpreter import (
    SlotChoice,
    Unrecognized,
    UnrecognizedReason,
    interpret_reply,
)
from leadflow.services.notification_service import DeliveryReport, NotificationService

logger = logging.getLogger(__name__)


class ConcurrentBookingConflict(Exception):
    """Raised when another writer booked the lead, or the slot, first."""
    def __init__(self, lead_id: str, message: Optional[str] = None):
        self.lead_id = lead_id
        self.message = message or f"Lead {lead_id} was booked by a concurrent request"
        super().__init__(self.message)


class InvalidBookingTransitionError(Exception):
    """Raised when a booking status change is not allowed."""
    def __init__(self, booking_id: str, current: BookingStatus, target: BookingStatus):
        self.booking_id = booking_id
        self.current = current
        self.target = target
        self.message = f"Booking {booking_id} cannot move from '{current.value}' to '{target.value}'"
        super().__init__(self.message)


class ReplyOutcome(str, Enum):
    """Result of handling an inbound reply"""
    BOOKED = "booked"
    UNRECOGNIZED = "unrecognized"
    UNKNOWN_SENDER = "unknown_sender"
    CONFLICT = "conflict"


@dataclass
class ReplyResult:
    outcome: ReplyOutcome
    lead: Optional[Lead] = None
    booking: Optional[Booking] = None
    reason: Optional[UnrecognizedReason] = None
    delivery: Optional[DeliveryReport] = None

    def to_dict(self) -> dict:
        return {
            "outcome": self.outcome.value,
            "lead_id": self.lead.id if self.lead else None,
            "booking_id": self.booking.id if self.booking else None,
            "reason": self.reason.value if self.reason else None,
            "delivery": self.delivery.to_dict() if self.delivery else None,
        }


class BookingService:
    """
    Booking lifecycle on top of the lead pipeline.

    Every lead write goes through ``LeadRepository.update_lead`` with the
    version that was read, so two replies racing for the same lead produce
    exactly one booking.
    """

    def __init__(
        self,
        repository: LeadRepository,
        composer: OutboundComposer,
        notifier: NotificationService,
        settings: BusinessSettings
    ):
        self.repository = repository
        self.composer = composer
        self.notifier = notifier
        self.settings = settings

    # ------------------------------------------------------------------
    # Replies and booking commits
    # ------------------------------------------------------------------

    async def _resolve_sender(self, from_identifier: str) -> Optional[Lead]:
        identifier = (from_identifier or "").strip()
        if not identifier:
            return None
        kwargs = {"email": identifier} if "@" in identifier else {"phone": identifier}

        # A sender with several leads is most likely answering the open offer
        lead = await self.repository.find_lead_by_contact(status=LeadStatus.CONTACTED, **kwargs)
        if lead is None:
            lead = await self.repository.find_lead_by_contact(**kwargs)
        return lead

    async def handle_inbound_reply(
        self,
        from_identifier: str,
        raw_reply_text: Optional[str],
        received_at: Optional[datetime] = None
    ) -> ReplyResult:
        """
        Handle a customer reply such as "2" sent by SMS or email.

        Args:
            from_identifier: Sender phone number or email address
            raw_reply_text: Reply body
            received_at: Reception time (default: now, UTC)

        Returns:
            ReplyResult; unrecognized replies and lost races are outcomes,
            not exceptions
        """
        received_at = received_at or datetime.now(timezone.utc)

        lead = await self._resolve_sender(from_identifier)
        if lead is None:
            logger.info(f"Reply from unknown sender {from_identifier[:6]}... ignored")
            return ReplyResult(outcome=ReplyOutcome.UNKNOWN_SENDER)

        interpretation = interpret_reply(lead, raw_reply_text, received_at)
        if isinstance(interpretation, Unrecognized):
            logger.info(f"Reply for lead {lead.id} not recognized: {interpretation.reason.value}")
            return ReplyResult(outcome=ReplyOutcome.UNRECOGNIZED, lead=lead, reason=interpretation.reason)

        try:
            lead, booking = await self._commit(lead, interpretation.slot, received_at)
        except ConcurrentBookingConflict as e:
            logger.warning(e.message)
            return ReplyResult(outcome=ReplyOutcome.CONFLICT, lead=lead)

        delivery = await self._confirm(lead, booking)
        return ReplyResult(outcome=ReplyOutcome.BOOKED, lead=lead, booking=booking, delivery=delivery)

    async def book_slot(self, lead_id: str, slot_index: int, now: Optional[datetime] = None) -> Tuple[Lead, Booking]:
        """
        Book one of the offered slots on the customer's behalf.

        Raises:
            LeadNotFoundError: If the lead does not exist
            InvalidTransitionError: If the lead has no bookable offer
            ConcurrentBookingConflict: If the lead or slot was taken meanwhile
        """
        now = now or datetime.now(timezone.utc)
        lead = await self.repository.get_lead(lead_id)

        interpretation = interpret_reply(lead, str(slot_index), now)
        if not isinstance(interpretation, SlotChoice):
            raise InvalidTransitionError(
                LeadStatus(lead.status), LeadEvent.SLOT_CHOSEN,
                f"Slot {slot_index} cannot be booked for lead {lead.id}: {interpretation.reason.value}"
            )

        lead, booking = await self._commit(lead, interpretation.slot, now)
        await self._confirm(lead, booking)
        return lead, booking

    async def _commit(self, lead: Lead, slot: Slot, now: datetime) -> Tuple[Lead, Booking]:
        """Insert the booking, then move the lead to booked guarded by its version"""
        nearby = await self.repository.list_bookings(start_from=slot.start - timedelta(days=1), start_to=slot.end)
        for existing in nearby:
            if existing.is_active and existing.lead_id != lead.id and slot.overlaps(existing.start_time, existing.end_time):
                raise ConcurrentBookingConflict(
                    lead.id, f"Slot {slot.short_label} for lead {lead.id} is no longer available"
                )

        breakdown = price(lead.estimated_hours, self.settings.hourly_rate, self.settings.vat_rate)
        booking = Booking(
            id=str(uuid.uuid4()),
            lead_id=lead.id,
            customer_name=lead.customer_name,
            customer_email=lead.customer_email,
            customer_phone=lead.customer_phone,
            service_type=lead.service_type,
            address=lead.address,
            city=lead.city,
            start_time=slot.start,
            duration_hours=lead.estimated_hours,
            hourly_rate=self.settings.hourly_rate,
            total_amount=breakdown.subtotal,
            notes=lead.notes,
            created_at=now,
            updated_at=now,
        )

        booking = await self.repository.create_booking(booking)
        booked = pipeline.apply(lead, LeadEvent.SLOT_CHOSEN, booking=booking, now=now)
        try:
            lead = await self.repository.update_lead(booked, expected_version=lead.version)
        except ConcurrentUpdateError:
            await self.repository.delete_booking(booking.id)
            raise ConcurrentBookingConflict(lead.id)
        except Exception:
            await self.repository.delete_booking(booking.id)
            raise

        logger.info(f"Booked lead {lead.id}: booking {booking.id} at {booking.start_time.isoformat()}")
        return lead, booking

    async def _confirm(self, lead: Lead, booking: Booking) -> DeliveryReport:
        message = self.composer.compose_confirmation(lead, booking)
        delivery = await self.notifier.deliver(message, email=lead.customer_email, phone=lead.customer_phone)
        if not delivery.delivered:
            logger.error(f"Confirmation for booking {booking.id} not delivered: {delivery.errors}")
        return delivery

    # ------------------------------------------------------------------
    # Booking lifecycle
    # ------------------------------------------------------------------

    @staticmethod
    def _check_booking_transition(booking: Booking, target: BookingStatus) -> None:
        if not booking.can_transition_to(target):
            raise InvalidBookingTransitionError(booking.id, BookingStatus(booking.status), target)

    async def _set_booking_status(self, booking: Booking, target: BookingStatus, **changes) -> Booking:
        self._check_booking_transition(booking, target)
        current = BookingStatus(booking.status)
        updated = booking.model_copy(update={"status": target, **changes})
        saved = await self.repository.update_booking(updated)
        logger.info(f"Booking {booking.id}: {current.value} -> {target.value}")
        return saved

    async def _set_status_with_lead(
        self,
        booking: Booking,
        target: BookingStatus,
        lead: Lead,
        event: LeadEvent,
        now: datetime,
        **changes
    ) -> Tuple[Lead, Booking]:
        """
        Move the lead first, guarded by its version, then the booking.

        A lost race raises ConcurrentUpdateError before anything is written.
        If the booking write fails the lead is put back as it was read.
        """
        updated = await self.repository.update_lead(
            pipeline.apply(lead, event, now=now), expected_version=lead.version
        )
        try:
            booking = await self._set_booking_status(booking, target, **changes)
        except Exception:
            try:
                await self.repository.update_lead(lead, expected_version=updated.version)
            except ConcurrentUpdateError:
                logger.error(f"Lead {lead.id} changed while booking {booking.id} failed; not restored")
            raise
        return updated, booking

    async def start_booking(self, booking_id: str) -> Booking:
        """
        Mark a job as started.

        Raises:
            BookingNotFoundError, InvalidBookingTransitionError
        """
        booking = await self.repository.get_booking(booking_id)
        return await self._set_booking_status(booking, BookingStatus.IN_PROGRESS)

    async def complete_booking(
        self,
        booking_id: str,
        hours_worked: Optional[float] = None,
        now: Optional[datetime] = None
    ) -> Tuple[Lead, Booking]:
        """
        Mark a job as done and move its lead to completed.

        Args:
            booking_id: Booking to complete
            hours_worked: Actual hours, replaces the estimate on the booking
            now: Completion time

        Raises:
            BookingNotFoundError, InvalidBookingTransitionError,
            InvalidTransitionError, ConcurrentUpdateError
        """
        now = now or datetime.now(timezone.utc)
        booking = await self.repository.get_booking(booking_id)
        self._check_booking_transition(booking, BookingStatus.COMPLETED)
        lead = await self.repository.get_lead(booking.lead_id)
        if not pipeline.can_apply(lead, LeadEvent.JOB_COMPLETED) or lead.booking_id != booking.id:
            raise InvalidTransitionError(LeadStatus(lead.status), LeadEvent.JOB_COMPLETED)

        changes = {}
        if hours_worked is not None:
            breakdown = price(hours_worked, booking.hourly_rate, self.settings.vat_rate)
            changes = {"duration_hours": hours_worked, "total_amount": breakdown.subtotal}

        return await self._set_status_with_lead(
            booking, BookingStatus.COMPLETED, lead, LeadEvent.JOB_COMPLETED, now, **changes
        )

    async def cancel_booking(
        self,
        booking_id: str,
        reason: Optional[str] = None,
        now: Optional[datetime] = None
    ) -> Tuple[Lead, Booking]:
        """
        Cancel a booking; its lead goes back to contacted.

        Raises:
            BookingNotFoundError, InvalidBookingTransitionError, ConcurrentUpdateError
        """
        now = now or datetime.now(timezone.utc)
        booking = await self.repository.get_booking(booking_id)
        self._check_booking_transition(booking, BookingStatus.CANCELLED)
        notes = f"{booking.notes}\nAflyst: {reason}".strip() if reason else booking.notes

        lead = await self.repository.get_lead(booking.lead_id)
        if LeadStatus(lead.status) == LeadStatus.BOOKED and lead.booking_id == booking.id:
            return await self._set_status_with_lead(
                booking, BookingStatus.CANCELLED, lead, LeadEvent.BOOKING_CANCELLED, now, notes=notes
            )

        logger.warning(
            f"Cancelled booking {booking.id} is not the active booking of lead {lead.id} "
            f"(status {LeadStatus(lead.status).value}); lead left unchanged"
        )
        booking = await self._set_booking_status(booking, BookingStatus.CANCELLED, notes=notes)
        return lead, booking

    async def issue_invoice(self, lead_id: str, now: Optional[datetime] = None) -> Tuple[Lead, InvoiceDraft]:
        """
        Build the invoice for a completed lead and move it to invoiced.

        Raises:
            LeadNotFoundError, InvalidTransitionError, ConcurrentUpdateError
        """
        now = now or datetime.now(timezone.utc)
        lead = await self.repository.get_lead(lead_id)
        if not pipeline.can_apply(lead, LeadEvent.INVOICE_ISSUED):
            raise InvalidTransitionError(LeadStatus(lead.status), LeadEvent.INVOICE_ISSUED)

        booking = await self.repository.get_booking(lead.booking_id) if lead.booking_id else None
        sequence = await self.repository.next_invoice_sequence(now.year)
        invoice = build_invoice_draft(
            lead,
            booking,
            sequence=sequence,
            issued_at=now,
            hourly_rate=self.settings.hourly_rate,
            vat_rate=self.settings.vat_rate,
        )

        invoiced = pipeline.apply(lead, LeadEvent.INVOICE_ISSUED, now=now)
        lead = await self.repository.update_lead(invoiced, expected_version=lead.version)
        return lead, invoice
