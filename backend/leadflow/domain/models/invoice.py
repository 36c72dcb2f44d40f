"""
Invoice Draft Model
Figures handed to the external invoicing system
"""
from pydantic import BaseModel
from typing import Optional
from datetime import datetime


class InvoiceDraft(BaseModel):
    """Invoice contents for a completed lead. Rendering and delivery happen elsewhere."""
    invoice_number: str
    lead_id: str
    booking_id: Optional[str] = None

    customer_name: str
    customer_email: str = ""
    customer_address: str
    service_description: str

    hours_worked: float
    hourly_rate: float
    subtotal: float
    vat_amount: float
    total_amount: float

    issued_at: datetime
