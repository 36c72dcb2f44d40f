"""
Outbound Composer
Builds offer, confirmation and reminder texts (email + SMS) from one
placeholder mechanism: ``{{token}}`` replacement in a single pass.
"""
import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Sequence

from markupsafe import Markup, escape

from leadflow.core.config import CompanyInfo
from leadflow.domain.models.booking import Booking
from leadflow.domain.models.lead import Lead, PLACEHOLDER_NAME
from leadflow.domain.models.offer import Slot, OFFER_SLOT_COUNT
from leadflow.domain.models.working_hours import WorkingHours
from leadflow.domain.services.pricing import PriceBreakdown, format_amount, format_hours
from leadflow.domain.services.slot_generator import DANISH_WEEKDAYS, DANISH_MONTHS

logger = logging.getLogger(__name__)

SMS_MAX_LENGTH = 160

# Placeholders a template may use
TEMPLATE_TOKENS: List[str] = [
    "customerName",
    "serviceType",
    "slot1",
    "slot2",
    "slot3",
    "estimatedHours",
    "hourlyRate",
    "estimatedPrice",
    "totalPrice",
    "address",
    "bookingDate",
    "bookingTime",
    "totalAmount",
    "companyName",
    "companyEmail",
    "companyPhone",
]

TOKEN_PATTERN = re.compile(r"\{\{(\w+)\}\}")

# Token values that may be shortened, in this order, to fit a single SMS
SMS_SHRINKABLE: Sequence[str] = ("address", "serviceType", "customerName")


class MessageType(str, Enum):
    """Kinds of outbound customer messages"""
    BOOKING_OFFER = "booking_offer"
    CONFIRMATION = "confirmation"
    REMINDER = "reminder"


def substitute(text: str, tokens: Dict[str, str]) -> str:
    """
    Replace known ``{{token}}`` placeholders in one pass.

    Substituted values are never scanned again, so a customer name such as
    "{{address}}" is printed as written.
    """
    def _replace(match: "re.Match") -> str:
        name = match.group(1)
        if name in TEMPLATE_TOKENS and name in tokens:
            return tokens[name]
        return match.group(0)

    return TOKEN_PATTERN.sub(_replace, text)


@dataclass
class MessageTemplate:
    """Subject, email body and SMS body for one message type."""
    name: str
    message_type: MessageType
    subject: str
    body: str
    sms_body: str
    description: str = ""
    max_sms_length: int = SMS_MAX_LENGTH

    def render_sms(self, tokens: Dict[str, str]) -> str:
        """
        Render the SMS body within max_sms_length.

        Shrinkable token values are shortened first; if the text is still too
        long it is cut and a warning is logged.
        """
        tokens = dict(tokens)
        rendered = substitute(self.sms_body, tokens)

        for name in SMS_SHRINKABLE:
            overflow = len(rendered) - self.max_sms_length
            if overflow <= 0:
                break
            value = tokens.get(name)
            if not value:
                continue
            tokens[name] = value[:max(0, len(value) - overflow)].rstrip()
            rendered = substitute(self.sms_body, tokens)

        if len(rendered) > self.max_sms_length:
            logger.warning(
                f"SMS template '{self.name}' rendered to {len(rendered)} chars "
                f"(exceeds {self.max_sms_length}), truncating"
            )
            rendered = rendered[:self.max_sms_length]

        return rendered


@dataclass
class ComposedMessage:
    """Email and SMS texts ready for delivery"""
    message_type: MessageType
    subject: str
    body: str
    sms_body: str
    tokens: Dict[str, str] = field(default_factory=dict)

    @property
    def body_html(self) -> str:
        """HTML version of the body: escaped, with line breaks"""
        return str(Markup("<br>\n").join(escape(line) for line in self.body.split("\n")))


MESSAGE_TEMPLATES: Dict[str, MessageTemplate] = {
    MessageType.BOOKING_OFFER.value: MessageTemplate(
        name="Booking Muligheder",
        message_type=MessageType.BOOKING_OFFER,
        subject="Tak for din henvendelse - {{serviceType}}",
        body="""Hej {{customerName}}!

Tak for din henvendelse om {{serviceType}}. Vi har 3 ledige tidspunkter:

Mulighed 1: {{slot1}}
Mulighed 2: {{slot2}}
Mulighed 3: {{slot3}}

Svar venligst med 1, 2 eller 3 for at booke dit ønskede tidspunkt. Du modtager også en SMS med de samme tider.

Estimeret tid: {{estimatedHours}} timer
Timepris: {{hourlyRate}} kr/time ekskl. moms
Estimeret pris: {{estimatedPrice}} kr ekskl. moms ({{totalPrice}} kr inkl. moms)
Adresse: {{address}}

Vi glæder os til at høre fra dig!

Med venlig hilsen
{{companyName}}
{{companyEmail}} | {{companyPhone}}""",
        sms_body="Hej {{customerName}}! {{companyName}} har ledige tider: 1) {{slot1}} 2) {{slot2}} 3) {{slot3}}. Svar 1, 2 eller 3 for at booke. Mvh {{companyName}}",
        description="Sent when a new lead is contacted with three slots",
    ),
    MessageType.CONFIRMATION.value: MessageTemplate(
        name="Booking Bekræftelse",
        message_type=MessageType.CONFIRMATION,
        subject="Booking bekræftet - {{serviceType}}",
        body="""Hej {{customerName}}!

Din booking er nu bekræftet:

Dato: {{bookingDate}}
Tidspunkt: {{bookingTime}}
Adresse: {{address}}
Service: {{serviceType}}
Pris: {{totalAmount}} kr ekskl. moms

Vi glæder os til at se dig!

Har du spørgsmål, så ring på {{companyPhone}}.

Med venlig hilsen
{{companyName}}""",
        sms_body="Hej {{customerName}}, din booking er bekræftet: {{bookingDate}} kl. {{bookingTime}}, {{address}}. Mvh {{companyName}}",
        description="Sent when a reply commits a booking",
    ),
    MessageType.REMINDER.value: MessageTemplate(
        name="Påmindelse",
        message_type=MessageType.REMINDER,
        subject="Påmindelse: Vi kommer snart - {{serviceType}}",
        body="""Hej {{customerName}}!

Dette er en påmindelse om dit kommende besøg:

Dato: {{bookingDate}}
Tidspunkt: {{bookingTime}}
Adresse: {{address}}
Service: {{serviceType}}

Sørg venligst for at området er tilgængeligt.

Ring på {{companyPhone}} hvis du har spørgsmål.

Med venlig hilsen
{{companyName}}""",
        sms_body="Hej {{customerName}}! Påmindelse: {{companyName}} kommer {{bookingDate}} kl. {{bookingTime}}, {{address}}. Spørgsmål? Ring {{companyPhone}}",
        description="Sent ahead of a scheduled booking",
    ),
}


def _format_date(value) -> str:
    """'tirsdag d. 16. januar'"""
    return f"{DANISH_WEEKDAYS[value.weekday()]} d. {value.day}. {DANISH_MONTHS[value.month - 1]}"


def _format_address(address: str, city: str) -> str:
    return f"{address}, {city}" if city else address


def _sms_first_name(name: str) -> str:
    """First name for SMS greetings; placeholders become a neutral 'der'"""
    parts = (name or "").split()
    if not parts or name == PLACEHOLDER_NAME:
        return "der"
    return parts[0]


class OutboundComposer:
    """
    Composes customer-facing messages.

    Pure text construction; delivery is the message services' job.
    """

    def __init__(
        self,
        company: Optional[CompanyInfo] = None,
        working_hours: Optional[WorkingHours] = None,
        custom_templates: Optional[Dict[str, MessageTemplate]] = None
    ):
        self.company = company or CompanyInfo()
        self.working_hours = working_hours or WorkingHours()
        self._templates = {**MESSAGE_TEMPLATES}
        if custom_templates:
            self._templates.update(custom_templates)

    def get_template(self, message_type: MessageType) -> MessageTemplate:
        """
        Get the template for a message type.

        Raises:
            ValueError: If no template is registered for the type
        """
        key = MessageType(message_type).value
        if key not in self._templates:
            available = ", ".join(self._templates.keys())
            raise ValueError(f"Unknown message template: {key}. Available: {available}")
        return self._templates[key]

    def compose(
        self,
        message_type: MessageType,
        tokens: Dict[str, str],
        sms_overrides: Optional[Dict[str, str]] = None
    ) -> ComposedMessage:
        """
        Render subject, body and SMS for a message type.

        Args:
            message_type: Template to use
            tokens: Placeholder values
            sms_overrides: Values that differ in the SMS (e.g. short slot labels)
        """
        template = self.get_template(message_type)
        tokens = {**self._company_tokens(), **tokens}

        sms_tokens = {**tokens, **(sms_overrides or {})}
        if "customerName" in sms_tokens:
            sms_tokens["customerName"] = _sms_first_name(sms_tokens["customerName"])

        return ComposedMessage(
            message_type=template.message_type,
            subject=substitute(template.subject, tokens),
            body=substitute(template.body, tokens),
            sms_body=template.render_sms(sms_tokens),
            tokens=tokens,
        )

    def compose_offer(self, lead: Lead, slots: Sequence[Slot], price: PriceBreakdown) -> ComposedMessage:
        """
        Offer message with the three slots and the price estimate.

        Raises:
            ValueError: If not exactly three slots are given
        """
        if len(slots) != OFFER_SLOT_COUNT:
            raise ValueError(f"An offer needs exactly {OFFER_SLOT_COUNT} slots, got {len(slots)}")

        tokens = {
            "customerName": lead.customer_name,
            "serviceType": lead.service_type,
            "estimatedHours": format_hours(price.hours),
            "hourlyRate": format_amount(price.hourly_rate),
            "estimatedPrice": format_amount(price.subtotal),
            "totalPrice": format_amount(price.total),
            "address": _format_address(lead.address, lead.city),
        }
        short_labels = {}
        for i, slot in enumerate(slots, start=1):
            tokens[f"slot{i}"] = slot.label
            short_labels[f"slot{i}"] = slot.short_label

        return self.compose(MessageType.BOOKING_OFFER, tokens, sms_overrides=short_labels)

    def compose_confirmation(self, lead: Lead, booking: Booking) -> ComposedMessage:
        """Booking confirmation for the customer"""
        return self.compose(MessageType.CONFIRMATION, self._booking_tokens(booking, lead.customer_name))

    def compose_reminder(self, booking: Booking) -> ComposedMessage:
        """Reminder ahead of a booking"""
        return self.compose(MessageType.REMINDER, self._booking_tokens(booking, booking.customer_name))

    def _booking_tokens(self, booking: Booking, customer_name: str) -> Dict[str, str]:
        start = self.working_hours.localize(booking.start_time)
        return {
            "customerName": customer_name,
            "serviceType": booking.service_type,
            "address": _format_address(booking.address, booking.city),
            "bookingDate": _format_date(start),
            "bookingTime": start.strftime("%H:%M"),
            "totalAmount": format_amount(booking.total_amount),
        }

    def _company_tokens(self) -> Dict[str, str]:
        return {
            "companyName": self.company.name,
            "companyEmail": self.company.email,
            "companyPhone": self.company.phone,
        }
