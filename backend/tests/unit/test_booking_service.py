"""
Unit Tests for Booking Service
Replies, booking commits, the booking lifecycle and invoicing.
"""
import asyncio
import pytest
from datetime import timedelta
from unittest.mock import AsyncMock, patch

from leadflow.domain.interfaces.lead_repository import (
    LeadNotFoundError,
    BookingNotFoundError,
    ConcurrentUpdateError,
)
from leadflow.domain.models.booking import BookingStatus
from leadflow.domain.models.lead import LeadStatus
from leadflow.domain.services.pipeline import InvalidTransitionError
from leadflow.domain.services.reply_interpreter import UnrecognizedReason
from leadflow.services.booking_service import (
    BookingService,
    ConcurrentBookingConflict,
    InvalidBookingTransitionError,
    ReplyOutcome,
)


@pytest.fixture
def service(repository, composer, notifier, business_settings):
    return BookingService(
        repository=repository,
        composer=composer,
        notifier=notifier,
        settings=business_settings,
    )


@pytest.fixture
def contacted_lead(repository, lead_factory, offer_factory):
    """Store a contacted lead with an outstanding offer"""
    async def _make(**overrides):
        data = dict(status=LeadStatus.CONTACTED, offer=offer_factory(), response_sent=True)
        data.update(overrides)
        return await repository.create_lead(lead_factory(**data))
    return _make


class TestInboundReply:
    """Tests for handle_inbound_reply()."""

    @pytest.mark.asyncio
    async def test_reply_books_chosen_slot(self, service, repository, contacted_lead, reference_time, sms_provider):
        lead = await contacted_lead()
        chosen = lead.offer.slots[1]

        result = await service.handle_inbound_reply("+4512345678", "2", received_at=reference_time + timedelta(hours=1))

        assert result.outcome == ReplyOutcome.BOOKED
        assert result.booking.start_time == chosen.start
        assert result.booking.total_amount == pytest.approx(3 * 349)
        assert result.booking.status == BookingStatus.SCHEDULED
        assert result.lead.status == LeadStatus.BOOKED
        assert result.lead.booking_id == result.booking.id
        assert result.lead.booking_date == "2024-01-16"
        assert result.lead.booking_time_slot == "14:00"
        assert result.lead.offer is None
        assert result.delivery.delivered

        stored = await repository.get_booking(result.booking.id)
        assert stored.lead_id == lead.id
        assert stored.customer_name == "Lars Nielsen"
        assert "bekræftet" in sms_provider.send_sms.call_args.kwargs["message"]

    @pytest.mark.asyncio
    async def test_reply_by_email(self, service, contacted_lead, reference_time):
        await contacted_lead()

        result = await service.handle_inbound_reply("LARS@example.dk", " 1 ", received_at=reference_time)

        assert result.outcome == ReplyOutcome.BOOKED
        assert result.lead.booking_time_slot == "10:00"

    @pytest.mark.asyncio
    async def test_unknown_sender(self, service, contacted_lead, reference_time):
        await contacted_lead()

        result = await service.handle_inbound_reply("+45 99 99 99 99", "1", received_at=reference_time)

        assert result.outcome == ReplyOutcome.UNKNOWN_SENDER
        assert result.lead is None

    @pytest.mark.asyncio
    async def test_unrecognized_reply_changes_nothing(self, service, repository, contacted_lead, reference_time):
        lead = await contacted_lead()

        result = await service.handle_inbound_reply("12345678", "Ja tak, gerne tirsdag", received_at=reference_time)

        assert result.outcome == ReplyOutcome.UNRECOGNIZED
        assert result.reason == UnrecognizedReason.NOT_A_NUMBER
        stored = await repository.get_lead(lead.id)
        assert stored.status == LeadStatus.CONTACTED
        assert stored.version == lead.version
        assert await repository.list_bookings() == []

    @pytest.mark.asyncio
    async def test_reply_to_new_lead(self, service, repository, lead_factory, reference_time):
        """A lead without an outstanding offer stays new."""
        lead = await repository.create_lead(lead_factory())

        result = await service.handle_inbound_reply("12345678", "1", received_at=reference_time)

        assert result.outcome == ReplyOutcome.UNRECOGNIZED
        assert result.reason == UnrecognizedReason.WRONG_STATUS
        assert (await repository.get_lead(lead.id)).status == LeadStatus.NEW

    @pytest.mark.asyncio
    async def test_expired_offer(self, service, contacted_lead, reference_time):
        await contacted_lead()

        result = await service.handle_inbound_reply("12345678", "1", received_at=reference_time + timedelta(days=3))

        assert result.outcome == ReplyOutcome.UNRECOGNIZED
        assert result.reason == UnrecognizedReason.OFFER_EXPIRED

    @pytest.mark.asyncio
    async def test_contacted_lead_preferred_over_older_booked_one(
        self, service, repository, contacted_lead, lead_factory, reference_time
    ):
        await repository.create_lead(lead_factory(
            id="old", status=LeadStatus.BOOKED, booking_id="b-old", updated_at=reference_time + timedelta(hours=5)
        ))
        lead = await contacted_lead(id="current")

        result = await service.handle_inbound_reply("12345678", "3", received_at=reference_time)

        assert result.outcome == ReplyOutcome.BOOKED
        assert result.lead.id == lead.id

    @pytest.mark.asyncio
    async def test_second_reply_after_booking_is_ignored(self, service, repository, contacted_lead, reference_time):
        await contacted_lead()
        await service.handle_inbound_reply("12345678", "1", received_at=reference_time)

        result = await service.handle_inbound_reply("12345678", "2", received_at=reference_time)

        assert result.outcome == ReplyOutcome.UNRECOGNIZED
        assert len(await repository.list_bookings()) == 1

    @pytest.mark.asyncio
    async def test_confirmation_failure_keeps_booking(self, service, contacted_lead, reference_time, email_provider, sms_provider):
        from leadflow.infrastructure.connectors.email import EmailSendError
        from leadflow.infrastructure.connectors.sms import SMSResult
        email_provider.send_email.side_effect = EmailSendError("down")
        sms_provider.send_sms.return_value = SMSResult(success=False, error="down")
        await contacted_lead()

        result = await service.handle_inbound_reply("12345678", "1", received_at=reference_time)

        assert result.outcome == ReplyOutcome.BOOKED
        assert not result.delivery.delivered


class TestConcurrentReplies:
    """Two replies racing for the same lead produce exactly one booking."""

    @pytest.mark.asyncio
    async def test_racing_replies(self, service, repository, contacted_lead, reference_time):
        lead = await contacted_lead()

        results = await asyncio.gather(
            service.handle_inbound_reply("12345678", "1", received_at=reference_time),
            service.handle_inbound_reply("12345678", "2", received_at=reference_time),
        )

        outcomes = [r.outcome for r in results]
        assert outcomes.count(ReplyOutcome.BOOKED) == 1
        assert len(await repository.list_bookings()) == 1
        assert (await repository.get_lead(lead.id)).status == LeadStatus.BOOKED

    @pytest.mark.asyncio
    async def test_stale_read_loses(self, service, repository, contacted_lead, reference_time):
        """A commit based on a lead read before another booking is rejected."""
        stale = await contacted_lead()
        await service.book_slot(stale.id, 1, now=reference_time)

        with pytest.raises(ConcurrentBookingConflict):
            await service._commit(stale, stale.offer.slots[1], reference_time)

        bookings = await repository.list_bookings()
        assert [b.start_time for b in bookings] == [stale.offer.slots[0].start]

    @pytest.mark.asyncio
    async def test_slot_taken_by_other_lead(self, service, repository, contacted_lead, reference_time):
        await contacted_lead(id="first")
        await contacted_lead(id="second", customer_phone="87654321", customer_email="anne@example.dk")
        await service.handle_inbound_reply("12345678", "1", received_at=reference_time)

        result = await service.handle_inbound_reply("87654321", "1", received_at=reference_time)

        assert result.outcome == ReplyOutcome.CONFLICT
        assert (await repository.get_lead("second")).status == LeadStatus.CONTACTED

    @pytest.mark.asyncio
    async def test_overlapping_slot_of_other_lead(self, service, repository, contacted_lead, reference_time):
        """A 5 hour job starting at 10:00 still runs at 14:00."""
        await contacted_lead(id="first", estimated_hours=5)
        await contacted_lead(id="second", customer_phone="87654321", customer_email="anne@example.dk")
        await service.handle_inbound_reply("12345678", "1", received_at=reference_time)

        result = await service.handle_inbound_reply("87654321", "2", received_at=reference_time)

        assert result.outcome == ReplyOutcome.CONFLICT


class TestBookSlot:

    @pytest.mark.asyncio
    async def test_book_slot(self, service, contacted_lead, reference_time):
        lead = await contacted_lead()

        lead, booking = await service.book_slot(lead.id, 3, now=reference_time)

        assert lead.status == LeadStatus.BOOKED
        assert booking.start_time.utcoffset() == timedelta(hours=1)
        assert lead.booking_date == "2024-01-17"

    @pytest.mark.asyncio
    async def test_book_slot_without_offer(self, service, repository, lead_factory):
        lead = await repository.create_lead(lead_factory())

        with pytest.raises(InvalidTransitionError, match="wrong_status"):
            await service.book_slot(lead.id, 1)

    @pytest.mark.asyncio
    async def test_book_unknown_lead(self, service):
        with pytest.raises(LeadNotFoundError):
            await service.book_slot("missing", 1)


class TestBookingLifecycle:
    """Start, complete, cancel and invoice."""

    @pytest.fixture
    def booked(self, service, contacted_lead, reference_time):
        async def _make(**overrides):
            lead = await contacted_lead(**overrides)
            return await service.book_slot(lead.id, 1, now=reference_time)
        return _make

    @pytest.mark.asyncio
    async def test_cancellation_reverts_lead(self, service, booked, reference_time):
        lead, booking = await booked()

        lead, booking = await service.cancel_booking(booking.id, reason="Kunden er syg", now=reference_time)

        assert booking.status == BookingStatus.CANCELLED
        assert "Aflyst: Kunden er syg" in booking.notes
        assert lead.status == LeadStatus.CONTACTED
        assert lead.booking_date is None
        assert lead.booking_id is None

    @pytest.mark.asyncio
    async def test_cancelled_slot_is_free_again(self, service, repository, booked, contacted_lead, reference_time):
        _, booking = await booked(id="first")
        await service.cancel_booking(booking.id, now=reference_time)
        await contacted_lead(id="second", customer_phone="87654321", customer_email="anne@example.dk")

        result = await service.handle_inbound_reply("87654321", "1", received_at=reference_time)

        assert result.outcome == ReplyOutcome.BOOKED

    @pytest.mark.asyncio
    async def test_cannot_cancel_twice(self, service, booked):
        _, booking = await booked()
        await service.cancel_booking(booking.id)

        with pytest.raises(InvalidBookingTransitionError):
            await service.cancel_booking(booking.id)

    @pytest.mark.asyncio
    async def test_start_and_complete(self, service, booked, reference_time):
        _, booking = await booked()

        started = await service.start_booking(booking.id)
        lead, completed = await service.complete_booking(booking.id, hours_worked=4, now=reference_time)

        assert started.status == BookingStatus.IN_PROGRESS
        assert completed.status == BookingStatus.COMPLETED
        assert completed.duration_hours == 4
        assert completed.total_amount == pytest.approx(4 * 349)
        assert lead.status == LeadStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_cannot_start_completed_booking(self, service, booked):
        _, booking = await booked()
        await service.complete_booking(booking.id)

        with pytest.raises(InvalidBookingTransitionError):
            await service.start_booking(booking.id)

    @pytest.mark.asyncio
    async def test_invoice_after_completion(self, service, booked, reference_time):
        lead, booking = await booked()
        await service.complete_booking(booking.id, now=reference_time)

        lead, invoice = await service.issue_invoice(lead.id, now=reference_time)

        assert lead.status == LeadStatus.INVOICED
        assert invoice.invoice_number == "REN-2024-001"
        assert invoice.booking_id == booking.id
        assert invoice.total_amount == pytest.approx(1308.75)

    @pytest.mark.asyncio
    async def test_invoice_numbers_increase(self, service, booked, reference_time):
        numbers = []
        for phone, email in (("12345678", "a@example.dk"), ("87654321", "b@example.dk")):
            lead, booking = await booked(customer_phone=phone, customer_email=email)
            await service.complete_booking(booking.id, now=reference_time)
            _, invoice = await service.issue_invoice(lead.id, now=reference_time)
            numbers.append(invoice.invoice_number)

        assert numbers == ["REN-2024-001", "REN-2024-002"]

    @pytest.mark.asyncio
    async def test_invoice_requires_completed_lead(self, service, booked):
        lead, _ = await booked()

        with pytest.raises(InvalidTransitionError):
            await service.issue_invoice(lead.id)

    @pytest.mark.asyncio
    async def test_lifecycle_on_unknown_booking(self, service):
        with pytest.raises(BookingNotFoundError):
            await service.start_booking("missing")


class TestFailedWrites:
    """A failed or lost write leaves lead and booking consistent."""

    @pytest.fixture
    def booked(self, service, contacted_lead, reference_time):
        async def _make():
            lead = await contacted_lead()
            return await service.book_slot(lead.id, 1, now=reference_time)
        return _make

    @pytest.mark.asyncio
    async def test_failed_booking_insert_leaves_lead_contacted(self, service, repository, contacted_lead, reference_time):
        lead = await contacted_lead()

        with patch.object(repository, "create_booking", AsyncMock(side_effect=RuntimeError("insert failed"))):
            with pytest.raises(RuntimeError):
                await service.book_slot(lead.id, 1, now=reference_time)

        stored = await repository.get_lead(lead.id)
        assert stored.status == LeadStatus.CONTACTED
        assert stored.booking_id is None
        assert stored.offer is not None
        assert stored.version == lead.version

    @pytest.mark.asyncio
    async def test_lost_lead_race_discards_booking(self, service, repository, contacted_lead, reference_time):
        lead = await contacted_lead()
        conflict = ConcurrentUpdateError(lead.id, lead.version)

        with patch.object(repository, "update_lead", AsyncMock(side_effect=conflict)):
            result = await service.handle_inbound_reply("12345678", "1", received_at=reference_time)

        assert result.outcome == ReplyOutcome.CONFLICT
        assert await repository.list_bookings() == []

    @pytest.mark.asyncio
    async def test_cancel_losing_lead_race_keeps_booking(self, service, repository, booked, reference_time):
        lead, booking = await booked()
        conflict = ConcurrentUpdateError(lead.id, lead.version)

        with patch.object(repository, "update_lead", AsyncMock(side_effect=conflict)):
            with pytest.raises(ConcurrentUpdateError):
                await service.cancel_booking(booking.id, reason="Kunden er syg", now=reference_time)

        assert (await repository.get_booking(booking.id)).status == BookingStatus.SCHEDULED
        assert (await repository.get_lead(lead.id)).status == LeadStatus.BOOKED

        lead, booking = await service.cancel_booking(booking.id, now=reference_time)

        assert booking.status == BookingStatus.CANCELLED
        assert lead.status == LeadStatus.CONTACTED

    @pytest.mark.asyncio
    async def test_complete_losing_lead_race_keeps_booking(self, service, repository, booked, reference_time):
        lead, booking = await booked()
        conflict = ConcurrentUpdateError(lead.id, lead.version)

        with patch.object(repository, "update_lead", AsyncMock(side_effect=conflict)):
            with pytest.raises(ConcurrentUpdateError):
                await service.complete_booking(booking.id, hours_worked=4, now=reference_time)

        stored = await repository.get_booking(booking.id)
        assert stored.status == BookingStatus.SCHEDULED
        assert stored.duration_hours == 3

        lead, booking = await service.complete_booking(booking.id, now=reference_time)

        assert booking.status == BookingStatus.COMPLETED
        assert lead.status == LeadStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_failed_booking_write_restores_lead(self, service, repository, booked, reference_time):
        lead, booking = await booked()

        with patch.object(repository, "update_booking", AsyncMock(side_effect=RuntimeError("write failed"))):
            with pytest.raises(RuntimeError):
                await service.cancel_booking(booking.id, now=reference_time)

        stored = await repository.get_lead(lead.id)
        assert stored.status == LeadStatus.BOOKED
        assert stored.booking_id == booking.id
        assert (await repository.get_booking(booking.id)).status == BookingStatus.SCHEDULED

    @pytest.mark.asyncio
    async def test_cancelled_booking_cannot_complete(self, service, repository, booked):
        lead, booking = await booked()
        await service.cancel_booking(booking.id)

        with pytest.raises(InvalidBookingTransitionError):
            await service.complete_booking(booking.id)

        assert (await repository.get_lead(lead.id)).status == LeadStatus.CONTACTED
