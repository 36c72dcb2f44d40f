"""
Unit Tests for Reply Interpreter
"""
import pytest
from datetime import timedelta

from leadflow.domain.models.lead import LeadStatus
from leadflow.domain.services.reply_interpreter import (
    interpret_reply,
    SlotChoice,
    Unrecognized,
    UnrecognizedReason,
)


@pytest.fixture
def contacted_lead(lead_factory, offer_factory):
    return lead_factory(status=LeadStatus.CONTACTED, offer=offer_factory(), response_sent=True)


class TestSlotChoice:
    """Replies that pick a slot."""

    @pytest.mark.parametrize("text,index", [
        ("1", 1),
        ("2", 2),
        ("3", 3),
        (" 2 ", 2),
        ("\n3\n", 3),
    ])
    def test_valid_choice(self, contacted_lead, reference_time, text, index):
        result = interpret_reply(contacted_lead, text, now=reference_time + timedelta(hours=1))

        assert isinstance(result, SlotChoice)
        assert result.index == index
        assert result.slot == contacted_lead.offer.slots[index - 1]

    def test_does_not_mutate_lead(self, contacted_lead, reference_time):
        before = contacted_lead.model_copy(deep=True)

        interpret_reply(contacted_lead, "1", now=reference_time)

        assert contacted_lead == before


class TestUnrecognized:
    """Replies that must never book anything."""

    @pytest.mark.parametrize("text,reason", [
        ("", UnrecognizedReason.EMPTY),
        (None, UnrecognizedReason.EMPTY),
        ("   ", UnrecognizedReason.EMPTY),
        ("Ja tak", UnrecognizedReason.NOT_A_NUMBER),
        ("2 tak", UnrecognizedReason.NOT_A_NUMBER),
        ("nummer 2", UnrecognizedReason.NOT_A_NUMBER),
        ("1.", UnrecognizedReason.NOT_A_NUMBER),
        ("-1", UnrecognizedReason.NOT_A_NUMBER),
        ("0", UnrecognizedReason.OUT_OF_RANGE),
        ("4", UnrecognizedReason.OUT_OF_RANGE),
        ("12", UnrecognizedReason.OUT_OF_RANGE),
    ])
    def test_not_a_choice(self, contacted_lead, reference_time, text, reason):
        result = interpret_reply(contacted_lead, text, now=reference_time)

        assert isinstance(result, Unrecognized)
        assert result.reason == reason

    def test_lead_not_contacted(self, lead_factory, offer_factory, reference_time):
        """A booked lead replying '2' again is ignored."""
        lead = lead_factory(status=LeadStatus.BOOKED, offer=offer_factory(), booking_id="b-1")

        result = interpret_reply(lead, "2", now=reference_time)

        assert result.reason == UnrecognizedReason.WRONG_STATUS

    def test_new_lead(self, lead_factory, reference_time):
        result = interpret_reply(lead_factory(), "1", now=reference_time)

        assert result.reason == UnrecognizedReason.WRONG_STATUS

    def test_contacted_without_offer(self, lead_factory, reference_time):
        lead = lead_factory(status=LeadStatus.CONTACTED)

        result = interpret_reply(lead, "1", now=reference_time)

        assert result.reason == UnrecognizedReason.NO_OFFER

    def test_expired_offer(self, contacted_lead, reference_time):
        result = interpret_reply(contacted_lead, "1", now=reference_time + timedelta(hours=48))

        assert result.reason == UnrecognizedReason.OFFER_EXPIRED

    def test_reply_just_before_expiry(self, contacted_lead, reference_time):
        result = interpret_reply(contacted_lead, "1", now=reference_time + timedelta(hours=47, minutes=59))

        assert isinstance(result, SlotChoice)
