"""
Lead Domain Models
Customer inquiries tracked through the sales pipeline
"""
from pydantic import BaseModel, Field
from typing import Optional, List
from datetime import datetime, timezone
from enum import Enum

from leadflow.domain.models.offer import Offer


class LeadSource(str, Enum):
    """Where the inquiry came from. Fixed at creation."""
    LEADPOINT = "leadpoint"
    LEADMAIL = "leadmail"
    BOOKING_FORM = "booking_form"


class LeadStatus(str, Enum):
    """Pipeline stage of a lead"""
    NEW = "new"
    CONTACTED = "contacted"
    BOOKED = "booked"
    COMPLETED = "completed"
    INVOICED = "invoiced"


class LeadPriority(str, Enum):
    """Advisory urgency, never gates transitions"""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class ExtractionMethod(str, Enum):
    """Which intake path produced the lead fields"""
    AI = "ai"
    HEURISTIC = "heuristic"


# Placeholders used when intake cannot find a value
PLACEHOLDER_NAME = "[Kunde navn]"
PLACEHOLDER_ADDRESS = "[Adresse]"
PLACEHOLDER_CITY = "[By]"
DEFAULT_SERVICE_TYPE = "Generel rengøring"


class LeadDraft(BaseModel):
    """
    Structured lead fields extracted from a raw email.

    Every field is always populated. Values that could not be found are
    replaced with placeholders or defaults, and the substitutions are listed
    in ``warnings``.
    """
    customer_name: str = PLACEHOLDER_NAME
    customer_email: str = ""
    customer_phone: str = ""
    service_type: str = DEFAULT_SERVICE_TYPE
    address: str = PLACEHOLDER_ADDRESS
    city: str = PLACEHOLDER_CITY
    postal_code: str = ""
    estimated_hours: float = Field(..., gt=0)
    priority: LeadPriority = LeadPriority.MEDIUM
    notes: str = ""

    source: LeadSource
    extraction_method: ExtractionMethod
    low_confidence: bool = False
    analysis: Optional[str] = None
    warnings: List[str] = Field(default_factory=list)


class Lead(BaseModel):
    """Prospective customer tracked from inquiry to invoice"""
    id: str
    customer_name: str
    customer_email: str = ""
    customer_phone: str = ""
    source: LeadSource

    service_type: str
    address: str
    city: str
    postal_code: str = ""

    estimated_hours: float = Field(..., gt=0)
    estimated_price: float

    status: LeadStatus = LeadStatus.NEW
    priority: LeadPriority = LeadPriority.MEDIUM
    notes: str = ""

    # Booking linkage, populated once booked
    booking_id: Optional[str] = None
    booking_date: Optional[str] = None  # YYYY-MM-DD, local time
    booking_time_slot: Optional[str] = None

    # Outstanding offer while contacted
    offer: Optional[Offer] = None

    email_content: Optional[str] = None
    ai_analysis: Optional[str] = None
    extraction_method: ExtractionMethod = ExtractionMethod.AI
    response_sent: bool = False

    # Optimistic concurrency counter, bumped on every persisted write
    version: int = 0

    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def has_contact(self) -> bool:
        """Whether the lead can be reached at all"""
        return bool(self.customer_email or self.customer_phone)
