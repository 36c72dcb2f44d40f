"""
Lead Intake Service
Inquiry email in, contacted lead with an outstanding offer out.
"""
import uuid
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from leadflow.core.config import BusinessSettings
from leadflow.domain.interfaces.lead_repository import LeadRepository, ConcurrentUpdateError
from leadflow.domain.models.lead import Lead, LeadDraft, LeadSource, LeadStatus
from leadflow.domain.models.offer import Offer
from leadflow.domain.services import pipeline
from leadflow.domain.services.lead_extractor import LeadExtractor
from leadflow.domain.services.message_composer import OutboundComposer
from leadflow.domain.services.pipeline import LeadEvent, InvalidTransitionError
from leadflow.domain.services.pricing import PriceBreakdown, price
from leadflow.domain.services.slot_generator import generate_slots
from leadflow.services.notification_service import DeliveryReport, NotificationService

logger = logging.getLogger(__name__)

OFFER_SAVE_ATTEMPTS = 3


@dataclass
class IntakeResult:
    """Outcome of processing one inquiry email"""
    lead: Lead
    draft: LeadDraft
    price: PriceBreakdown
    offer: Optional[Offer] = None
    delivery: Optional[DeliveryReport] = None

    @property
    def contacted(self) -> bool:
        return LeadStatus(self.lead.status) == LeadStatus.CONTACTED

    def to_dict(self) -> dict:
        return {
            "lead_id": self.lead.id,
            "status": LeadStatus(self.lead.status).value,
            "extraction_method": self.draft.extraction_method.value,
            "low_confidence": self.draft.low_confidence,
            "warnings": self.draft.warnings,
            "price": self.price.to_dict(),
            "offer": self.offer.model_dump(mode="json") if self.offer else None,
            "delivery": self.delivery.to_dict() if self.delivery else None,
        }


class LeadIntakeService:
    """
    Orchestrates intake: extract, price, store, offer, notify.

    A lead is stored before anything is sent, so a delivery failure leaves it
    in ``new`` for a manual retry instead of losing it.
    """

    def __init__(
        self,
        repository: LeadRepository,
        extractor: LeadExtractor,
        composer: OutboundComposer,
        notifier: NotificationService,
        settings: BusinessSettings
    ):
        self.repository = repository
        self.extractor = extractor
        self.composer = composer
        self.notifier = notifier
        self.settings = settings

    async def process_email(
        self,
        raw_email_text: str,
        source: LeadSource,
        subject: Optional[str] = None,
        sender: Optional[str] = None,
        now: Optional[datetime] = None
    ) -> IntakeResult:
        """
        Process an inquiry email end to end.

        Args:
            raw_email_text: Email body
            source: Inquiry channel
            subject: Email subject
            sender: From address
            now: Processing time (default: now, UTC)

        Returns:
            IntakeResult; ``contacted`` is False when the offer could not be sent
        """
        now = now or datetime.now(timezone.utc)

        draft = await self.extractor.extract(raw_email_text, source, subject=subject, sender=sender)
        breakdown = price(draft.estimated_hours, self.settings.hourly_rate, self.settings.vat_rate)

        lead = Lead(
            id=str(uuid.uuid4()),
            customer_name=draft.customer_name,
            customer_email=draft.customer_email,
            customer_phone=draft.customer_phone,
            source=draft.source,
            service_type=draft.service_type,
            address=draft.address,
            city=draft.city,
            postal_code=draft.postal_code,
            estimated_hours=draft.estimated_hours,
            estimated_price=breakdown.subtotal,
            priority=draft.priority,
            notes=draft.notes,
            email_content=raw_email_text,
            ai_analysis=draft.analysis,
            extraction_method=draft.extraction_method,
            created_at=now,
            updated_at=now,
        )
        lead = await self.repository.create_lead(lead)
        logger.info(
            f"Created lead {lead.id} from {draft.source.value} "
            f"({draft.extraction_method.value}, {draft.service_type}, {draft.estimated_hours}h)"
        )

        result = IntakeResult(lead=lead, draft=draft, price=breakdown)
        if not lead.has_contact:
            logger.warning(f"Lead {lead.id} has no email or phone; left in 'new' for manual follow-up")
            return result

        lead, offer, delivery = await self._offer(lead, breakdown, now)
        result.lead = lead
        result.offer = offer
        result.delivery = delivery
        return result

    async def send_offer(self, lead_id: str, now: Optional[datetime] = None) -> IntakeResult:
        """
        Send (or resend) an offer for an existing lead.

        Used after a failed delivery (lead still ``new``) and after a
        cancellation (lead back in ``contacted`` without an offer).

        Raises:
            LeadNotFoundError: If the lead does not exist
            InvalidTransitionError: If the lead is past the offer stage
        """
        now = now or datetime.now(timezone.utc)
        lead = await self.repository.get_lead(lead_id)
        status = LeadStatus(lead.status)
        if status not in (LeadStatus.NEW, LeadStatus.CONTACTED):
            raise InvalidTransitionError(
                status, LeadEvent.RESPONSE_SENT,
                f"Cannot send an offer to a lead in status '{status.value}'"
            )

        breakdown = price(lead.estimated_hours, self.settings.hourly_rate, self.settings.vat_rate)
        draft = LeadDraft(
            customer_name=lead.customer_name,
            customer_email=lead.customer_email,
            customer_phone=lead.customer_phone,
            service_type=lead.service_type,
            address=lead.address,
            city=lead.city,
            postal_code=lead.postal_code,
            estimated_hours=lead.estimated_hours,
            priority=lead.priority,
            notes=lead.notes,
            source=lead.source,
            extraction_method=lead.extraction_method,
        )
        lead, offer, delivery = await self._offer(lead, breakdown, now)
        return IntakeResult(lead=lead, draft=draft, price=breakdown, offer=offer, delivery=delivery)

    async def _offer(self, lead: Lead, breakdown: PriceBreakdown, now: datetime):
        """Generate slots, send the offer and record it on the lead"""
        busy = [
            (booking.start_time, booking.end_time)
            for booking in await self.repository.list_bookings(start_from=now - timedelta(days=1))
            if booking.is_active
        ]
        slots = generate_slots(
            now,
            self.settings.working_hours,
            lead.estimated_hours,
            busy=busy,
            legacy=self.settings.legacy_slots,
        )
        offer = Offer(
            slots=slots,
            created_at=now,
            expires_at=now + timedelta(hours=self.settings.offer_ttl_hours),
        )

        message = self.composer.compose_offer(lead, slots, breakdown)
        delivery = await self.notifier.deliver(message, email=lead.customer_email, phone=lead.customer_phone)
        if not delivery.delivered:
            logger.error(f"Offer for lead {lead.id} not delivered: {delivery.errors}")
            return lead, None, delivery

        recorded = await self._record_offer(lead, offer, now)
        if recorded is None:
            lead = await self.repository.get_lead(lead.id)
            logger.error(f"Offer for lead {lead.id} was sent but the lead moved to '{LeadStatus(lead.status).value}'")
            return lead, None, delivery
        logger.info(f"Offer sent for lead {recorded.id}, expires {offer.expires_at.isoformat()}")
        return recorded, offer, delivery

    async def _record_offer(self, lead: Lead, offer: Offer, now: datetime) -> Optional[Lead]:
        """
        Store a delivered offer on the lead.

        A concurrent edit is re-read and retried while the lead can still take
        an offer. Returns None when it no longer can.
        """
        for attempt in range(1, OFFER_SAVE_ATTEMPTS + 1):
            status = LeadStatus(lead.status)
            if status == LeadStatus.NEW:
                updated = pipeline.apply(lead, LeadEvent.RESPONSE_SENT, offer=offer, now=now)
            elif status == LeadStatus.CONTACTED:
                updated = lead.model_copy(update={"offer": offer, "response_sent": True, "updated_at": now})
            else:
                return None
            try:
                return await self.repository.update_lead(updated, expected_version=lead.version)
            except ConcurrentUpdateError:
                logger.warning(f"Lead {lead.id} changed while its offer was sent (attempt {attempt}/{OFFER_SAVE_ATTEMPTS})")
                lead = await self.repository.get_lead(lead.id)
        return None
