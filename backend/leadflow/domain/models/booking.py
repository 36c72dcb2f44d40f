"""
Booking Domain Models
Scheduled cleaning jobs created from an accepted offer
"""
from pydantic import BaseModel, Field
from typing import Optional, Dict, Set
from datetime import datetime, timedelta, timezone
from enum import Enum


class BookingStatus(str, Enum):
    """Status of a booking"""
    SCHEDULED = "scheduled"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


# Allowed booking status changes; a technician advances these independently of the lead
BOOKING_TRANSITIONS: Dict[BookingStatus, Set[BookingStatus]] = {
    BookingStatus.SCHEDULED: {BookingStatus.IN_PROGRESS, BookingStatus.COMPLETED, BookingStatus.CANCELLED},
    BookingStatus.IN_PROGRESS: {BookingStatus.COMPLETED, BookingStatus.CANCELLED},
    BookingStatus.COMPLETED: set(),
    BookingStatus.CANCELLED: set(),
}


class Booking(BaseModel):
    """Committed job. Customer fields are copied from the lead at booking time."""
    id: str
    lead_id: str

    customer_name: str
    customer_email: str = ""
    customer_phone: str = ""
    service_type: str
    address: str
    city: str

    start_time: datetime
    duration_hours: float = Field(..., gt=0)
    hourly_rate: float
    total_amount: float

    status: BookingStatus = BookingStatus.SCHEDULED
    calendar_event_id: Optional[str] = None
    notes: str = ""
    reminder_sent_at: Optional[datetime] = None

    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def end_time(self) -> datetime:
        """Planned end of the job"""
        return self.start_time + timedelta(hours=self.duration_hours)

    @property
    def is_active(self) -> bool:
        """Scheduled or running bookings block the calendar"""
        return self.status in (BookingStatus.SCHEDULED, BookingStatus.IN_PROGRESS)

    def can_transition_to(self, status: BookingStatus) -> bool:
        """Check if the booking may move to the given status"""
        return status in BOOKING_TRANSITIONS[BookingStatus(self.status)]
