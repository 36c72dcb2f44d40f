"""
Pricing Calculator
Hours x hourly rate, plus VAT
"""
import math
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from leadflow.domain.models.booking import Booking
from leadflow.domain.models.invoice import InvoiceDraft
from leadflow.domain.models.lead import Lead

logger = logging.getLogger(__name__)

DEFAULT_VAT_RATE = 0.25


class PricingError(ValueError):
    """Raised for caller errors such as non-positive hours or a negative rate."""
    def __init__(self, message: str):
        self.message = message
        super().__init__(self.message)


@dataclass(frozen=True)
class PriceBreakdown:
    """Price of a job in the business currency"""
    hours: float
    hourly_rate: float
    subtotal: float
    vat_amount: float
    total: float

    def to_dict(self) -> dict:
        return {
            "hours": self.hours,
            "hourly_rate": self.hourly_rate,
            "subtotal": self.subtotal,
            "vat_amount": self.vat_amount,
            "total": self.total,
        }


def price(hours: float, hourly_rate: float, vat_rate: float = DEFAULT_VAT_RATE) -> PriceBreakdown:
    """
    Compute subtotal, VAT and total for a job.

    Args:
        hours: Estimated or worked hours (> 0)
        hourly_rate: Rate per hour excluding VAT (>= 0)
        vat_rate: VAT as a fraction, 0.25 for Danish moms

    Returns:
        PriceBreakdown

    Raises:
        PricingError: If hours are not positive or the rate is negative
    """
    if hours is None or not math.isfinite(hours) or hours <= 0:
        raise PricingError(f"Hours must be a positive number, got {hours}")
    if hourly_rate is None or not math.isfinite(hourly_rate) or hourly_rate < 0:
        raise PricingError(f"Hourly rate must be zero or positive, got {hourly_rate}")
    if vat_rate < 0:
        raise PricingError(f"VAT rate must be zero or positive, got {vat_rate}")

    subtotal = hours * hourly_rate
    vat_amount = subtotal * vat_rate
    return PriceBreakdown(
        hours=hours,
        hourly_rate=hourly_rate,
        subtotal=subtotal,
        vat_amount=vat_amount,
        total=subtotal + vat_amount,
    )


def format_amount(amount: float) -> str:
    """Danish number formatting: 1308.75 -> '1.308,75', 1047.0 -> '1.047'"""
    if float(amount).is_integer():
        text = f"{int(amount):,}"
        return text.replace(",", ".")
    text = f"{amount:,.2f}"
    return text.replace(",", "X").replace(".", ",").replace("X", ".")


def format_hours(hours: float) -> str:
    """3.0 -> '3', 2.5 -> '2,5'"""
    if float(hours).is_integer():
        return str(int(hours))
    return f"{hours:g}".replace(".", ",")


def build_invoice_draft(
    lead: Lead,
    booking: Optional[Booking],
    sequence: int,
    issued_at: datetime,
    hourly_rate: float,
    vat_rate: float = DEFAULT_VAT_RATE
) -> InvoiceDraft:
    """
    Build invoice figures for a completed lead.

    Worked hours and rate come from the booking when there is one, otherwise
    from the lead estimate.
    """
    hours = booking.duration_hours if booking else lead.estimated_hours
    rate = booking.hourly_rate if booking else hourly_rate
    breakdown = price(hours, rate, vat_rate)

    invoice_number = f"REN-{issued_at.year}-{sequence:03d}"
    address = f"{lead.address}, {lead.postal_code} {lead.city}" if lead.postal_code else f"{lead.address}, {lead.city}"
    description = f"{lead.service_type} udført på {lead.address}. Arbejdstid: {format_hours(hours)} timer."

    logger.info(f"Built invoice draft {invoice_number} for lead {lead.id}: total {breakdown.total:.2f}")

    return InvoiceDraft(
        invoice_number=invoice_number,
        lead_id=lead.id,
        booking_id=booking.id if booking else None,
        customer_name=lead.customer_name,
        customer_email=lead.customer_email,
        customer_address=address,
        service_description=description,
        hours_worked=hours,
        hourly_rate=rate,
        subtotal=breakdown.subtotal,
        vat_amount=breakdown.vat_amount,
        total_amount=breakdown.total,
        issued_at=issued_at,
    )
