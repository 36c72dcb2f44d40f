"""
In-Memory Lead Repository
Process-local storage used in development and tests
"""
import asyncio
import logging
from collections import defaultdict
from datetime import datetime, timezone
from typing import Dict, List, Optional

from leadflow.domain.interfaces.lead_repository import (
    LeadRepository,
    LeadNotFoundError,
    BookingNotFoundError,
    ConcurrentUpdateError,
    phone_key,
)
from leadflow.domain.models.booking import Booking, BookingStatus
from leadflow.domain.models.lead import Lead, LeadStatus

logger = logging.getLogger(__name__)


class InMemoryLeadRepository(LeadRepository):
    """
    Dict-backed repository.

    A single asyncio.Lock serialises writes, which makes the version check
    in update_lead atomic within one event loop.
    """

    def __init__(self):
        self._leads: Dict[str, Lead] = {}
        self._bookings: Dict[str, Booking] = {}
        self._invoice_sequences: Dict[int, int] = defaultdict(int)
        self._lock = asyncio.Lock()

    async def create_lead(self, lead: Lead) -> Lead:
        async with self._lock:
            if lead.id in self._leads:
                raise ValueError(f"Lead {lead.id} already exists")
            self._leads[lead.id] = lead.model_copy(deep=True)
            logger.debug(f"Stored lead {lead.id}")
            return lead.model_copy(deep=True)

    async def get_lead(self, lead_id: str) -> Lead:
        lead = self._leads.get(lead_id)
        if lead is None:
            raise LeadNotFoundError(lead_id)
        return lead.model_copy(deep=True)

    async def update_lead(self, lead: Lead, expected_version: int) -> Lead:
        async with self._lock:
            stored = self._leads.get(lead.id)
            if stored is None:
                raise LeadNotFoundError(lead.id)
            if stored.version != expected_version:
                raise ConcurrentUpdateError(lead.id, expected_version)

            updated = lead.model_copy(
                update={"version": expected_version + 1, "updated_at": datetime.now(timezone.utc)},
                deep=True,
            )
            self._leads[lead.id] = updated
            return updated.model_copy(deep=True)

    async def list_leads(self, status: Optional[LeadStatus] = None, limit: int = 100) -> List[Lead]:
        leads = [
            lead for lead in self._leads.values()
            if status is None or LeadStatus(lead.status) == LeadStatus(status)
        ]
        leads.sort(key=lambda lead: lead.created_at, reverse=True)
        return [lead.model_copy(deep=True) for lead in leads[:limit]]

    async def find_lead_by_contact(
        self,
        phone: Optional[str] = None,
        email: Optional[str] = None,
        status: Optional[LeadStatus] = None
    ) -> Optional[Lead]:
        wanted_phone = phone_key(phone)
        wanted_email = (email or "").strip().lower()
        if not wanted_phone and not wanted_email:
            return None

        matches = []
        for lead in self._leads.values():
            if status is not None and LeadStatus(lead.status) != LeadStatus(status):
                continue
            if wanted_phone and phone_key(lead.customer_phone) == wanted_phone:
                matches.append(lead)
            elif wanted_email and lead.customer_email.lower() == wanted_email:
                matches.append(lead)

        if not matches:
            return None
        return max(matches, key=lambda lead: lead.updated_at).model_copy(deep=True)

    async def create_booking(self, booking: Booking) -> Booking:
        async with self._lock:
            self._bookings[booking.id] = booking.model_copy(deep=True)
            return booking.model_copy(deep=True)

    async def get_booking(self, booking_id: str) -> Booking:
        booking = self._bookings.get(booking_id)
        if booking is None:
            raise BookingNotFoundError(booking_id)
        return booking.model_copy(deep=True)

    async def update_booking(self, booking: Booking) -> Booking:
        async with self._lock:
            if booking.id not in self._bookings:
                raise BookingNotFoundError(booking.id)
            updated = booking.model_copy(update={"updated_at": datetime.now(timezone.utc)}, deep=True)
            self._bookings[booking.id] = updated
            return updated.model_copy(deep=True)

    async def delete_booking(self, booking_id: str) -> None:
        async with self._lock:
            self._bookings.pop(booking_id, None)

    async def list_bookings(
        self,
        status: Optional[BookingStatus] = None,
        start_from: Optional[datetime] = None,
        start_to: Optional[datetime] = None
    ) -> List[Booking]:
        bookings = []
        for booking in self._bookings.values():
            if status is not None and BookingStatus(booking.status) != BookingStatus(status):
                continue
            if start_from is not None and booking.start_time < start_from:
                continue
            if start_to is not None and booking.start_time >= start_to:
                continue
            bookings.append(booking.model_copy(deep=True))
        bookings.sort(key=lambda booking: booking.start_time)
        return bookings

    async def next_invoice_sequence(self, year: int) -> int:
        async with self._lock:
            self._invoice_sequences[year] += 1
            return self._invoice_sequences[year]
