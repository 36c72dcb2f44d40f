"""
Supabase Lead Repository
Leads and bookings stored in Supabase PostgreSQL tables.

Expected tables:
    leads     - one column per Lead field, ``offer`` as jsonb, ``version`` int
    bookings  - one column per Booking field
and an rpc ``next_invoice_sequence(p_year int) returns int`` that increments
a per-year counter atomically.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from supabase import Client

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

LEADS_TABLE = "leads"
BOOKINGS_TABLE = "bookings"


class SupabaseLeadRepository(LeadRepository):
    """
    Repository on top of the Supabase client.

    The version check is part of the UPDATE's WHERE clause, so two writers
    racing on the same lead cannot both succeed.
    """

    def __init__(self, supabase: Client):
        self.supabase = supabase

    @staticmethod
    def _lead_row(lead: Lead) -> Dict[str, Any]:
        return lead.model_dump(mode="json")

    @staticmethod
    def _booking_row(booking: Booking) -> Dict[str, Any]:
        return booking.model_dump(mode="json")

    async def create_lead(self, lead: Lead) -> Lead:
        response = self.supabase.table(LEADS_TABLE).insert(self._lead_row(lead)).execute()
        if not response.data:
            raise RuntimeError(f"Failed to insert lead {lead.id}")
        logger.info(f"Stored lead {lead.id} in Supabase")
        return Lead(**response.data[0])

    async def get_lead(self, lead_id: str) -> Lead:
        response = self.supabase.table(LEADS_TABLE).select("*").eq("id", lead_id).limit(1).execute()
        if not response.data:
            raise LeadNotFoundError(lead_id)
        return Lead(**response.data[0])

    async def update_lead(self, lead: Lead, expected_version: int) -> Lead:
        row = self._lead_row(lead)
        row["version"] = expected_version + 1
        row.pop("id", None)
        row.pop("created_at", None)

        response = (
            self.supabase.table(LEADS_TABLE)
            .update(row)
            .eq("id", lead.id)
            .eq("version", expected_version)
            .execute()
        )
        if response.data:
            return Lead(**response.data[0])

        # Nothing matched: either the lead is gone or someone else wrote first
        await self.get_lead(lead.id)
        raise ConcurrentUpdateError(lead.id, expected_version)

    async def list_leads(self, status: Optional[LeadStatus] = None, limit: int = 100) -> List[Lead]:
        query = self.supabase.table(LEADS_TABLE).select("*")
        if status is not None:
            query = query.eq("status", LeadStatus(status).value)
        response = query.order("created_at", desc=True).limit(limit).execute()
        return [Lead(**row) for row in response.data or []]

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

        filters = []
        if wanted_phone:
            # Stored numbers vary in formatting; match on the local part
            filters.append(f"customer_phone.ilike.%{wanted_phone[-4:]}%")
        if wanted_email:
            filters.append(f"customer_email.ilike.{wanted_email}")

        query = self.supabase.table(LEADS_TABLE).select("*").or_(",".join(filters))
        if status is not None:
            query = query.eq("status", LeadStatus(status).value)
        response = query.order("updated_at", desc=True).limit(50).execute()

        for row in response.data or []:
            lead = Lead(**row)
            if wanted_phone and phone_key(lead.customer_phone) == wanted_phone:
                return lead
            if wanted_email and lead.customer_email.lower() == wanted_email:
                return lead
        return None

    async def create_booking(self, booking: Booking) -> Booking:
        response = self.supabase.table(BOOKINGS_TABLE).insert(self._booking_row(booking)).execute()
        if not response.data:
            raise RuntimeError(f"Failed to insert booking {booking.id}")
        return Booking(**response.data[0])

    async def get_booking(self, booking_id: str) -> Booking:
        response = self.supabase.table(BOOKINGS_TABLE).select("*").eq("id", booking_id).limit(1).execute()
        if not response.data:
            raise BookingNotFoundError(booking_id)
        return Booking(**response.data[0])

    async def update_booking(self, booking: Booking) -> Booking:
        row = self._booking_row(booking)
        row.pop("id", None)
        row["updated_at"] = datetime.now(timezone.utc).isoformat()
        response = self.supabase.table(BOOKINGS_TABLE).update(row).eq("id", booking.id).execute()
        if not response.data:
            raise BookingNotFoundError(booking.id)
        return Booking(**response.data[0])

    async def delete_booking(self, booking_id: str) -> None:
        self.supabase.table(BOOKINGS_TABLE).delete().eq("id", booking_id).execute()

    async def list_bookings(
        self,
        status: Optional[BookingStatus] = None,
        start_from: Optional[datetime] = None,
        start_to: Optional[datetime] = None
    ) -> List[Booking]:
        query = self.supabase.table(BOOKINGS_TABLE).select("*")
        if status is not None:
            query = query.eq("status", BookingStatus(status).value)
        if start_from is not None:
            query = query.gte("start_time", start_from.isoformat())
        if start_to is not None:
            query = query.lt("start_time", start_to.isoformat())
        response = query.order("start_time").execute()
        return [Booking(**row) for row in response.data or []]

    async def next_invoice_sequence(self, year: int) -> int:
        response = self.supabase.rpc("next_invoice_sequence", {"p_year": year}).execute()
        if response.data is None:
            raise RuntimeError(f"Invoice sequence rpc returned no value for {year}")
        return int(response.data)
