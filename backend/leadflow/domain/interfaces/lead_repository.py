"""
Lead Repository Interface
Abstract storage for leads, bookings and invoice numbering
"""
from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, Optional

from leadflow.domain.models.booking import Booking, BookingStatus
from leadflow.domain.models.lead import Lead, LeadStatus


def phone_key(phone: Optional[str]) -> str:
    """Comparable form of a Danish number: '+45 12 34 56 78' and '12345678' -> '12345678'"""
    digits = "".join(ch for ch in (phone or "") if ch.isdigit())
    if len(digits) == 10 and digits.startswith("45"):
        digits = digits[2:]
    elif len(digits) == 12 and digits.startswith("0045"):
        digits = digits[4:]
    return digits


class LeadNotFoundError(Exception):
    """Raised when a lead id does not exist."""
    def __init__(self, lead_id: str):
        self.lead_id = lead_id
        self.message = f"Lead {lead_id} not found"
        super().__init__(self.message)


class BookingNotFoundError(Exception):
    """Raised when a booking id does not exist."""
    def __init__(self, booking_id: str):
        self.booking_id = booking_id
        self.message = f"Booking {booking_id} not found"
        super().__init__(self.message)


class ConcurrentUpdateError(Exception):
    """Raised when a lead changed between read and write."""
    def __init__(self, lead_id: str, expected_version: int):
        self.lead_id = lead_id
        self.expected_version = expected_version
        self.message = f"Lead {lead_id} was modified concurrently (expected version {expected_version})"
        super().__init__(self.message)


class LeadRepository(ABC):
    """
    Persistence for leads and bookings.

    Lead writes use optimistic concurrency: ``update_lead`` only succeeds if
    the stored version still equals ``expected_version`` and bumps it by one.
    """

    @abstractmethod
    async def create_lead(self, lead: Lead) -> Lead:
        """Store a new lead and return it as stored"""
        pass

    @abstractmethod
    async def get_lead(self, lead_id: str) -> Lead:
        """
        Raises:
            LeadNotFoundError: If no lead has this id
        """
        pass

    @abstractmethod
    async def update_lead(self, lead: Lead, expected_version: int) -> Lead:
        """
        Replace a lead if nobody else wrote it since it was read.

        Returns:
            The stored lead with version = expected_version + 1

        Raises:
            LeadNotFoundError: If the lead does not exist
            ConcurrentUpdateError: If the stored version differs
        """
        pass

    @abstractmethod
    async def list_leads(self, status: Optional[LeadStatus] = None, limit: int = 100) -> List[Lead]:
        """Leads, newest first, optionally filtered by status"""
        pass

    @abstractmethod
    async def find_lead_by_contact(
        self,
        phone: Optional[str] = None,
        email: Optional[str] = None,
        status: Optional[LeadStatus] = None
    ) -> Optional[Lead]:
        """Most recently updated lead matching the phone number or email address"""
        pass

    @abstractmethod
    async def create_booking(self, booking: Booking) -> Booking:
        pass

    @abstractmethod
    async def get_booking(self, booking_id: str) -> Booking:
        """
        Raises:
            BookingNotFoundError: If no booking has this id
        """
        pass

    @abstractmethod
    async def update_booking(self, booking: Booking) -> Booking:
        pass

    @abstractmethod
    async def delete_booking(self, booking_id: str) -> None:
        """Remove a booking that was never confirmed to a lead"""
        pass

    @abstractmethod
    async def list_bookings(
        self,
        status: Optional[BookingStatus] = None,
        start_from: Optional[datetime] = None,
        start_to: Optional[datetime] = None
    ) -> List[Booking]:
        """Bookings ordered by start time, optionally filtered"""
        pass

    @abstractmethod
    async def next_invoice_sequence(self, year: int) -> int:
        """Next invoice number for the year, starting at 1"""
        pass
