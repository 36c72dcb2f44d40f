"""Domain models"""

# Lead models
from .lead import (
    LeadSource,
    LeadStatus,
    LeadPriority,
    ExtractionMethod,
    LeadDraft,
    Lead,
)

# Offer models
from .offer import (
    Slot,
    Offer,
)

# Booking models
from .booking import (
    BookingStatus,
    Booking,
)

from .invoice import (
    InvoiceDraft,
)

from .working_hours import (
    WorkingHours,
)

__all__ = [
    # Lead models
    "LeadSource",
    "LeadStatus",
    "LeadPriority",
    "ExtractionMethod",
    "LeadDraft",
    "Lead",
    # Offer models
    "Slot",
    "Offer",
    # Booking models
    "BookingStatus",
    "Booking",
    "InvoiceDraft",
    "WorkingHours",
]
