"""
Reply Interpreter
Classifies a short customer reply against the lead's outstanding offer.
Never mutates state.
"""
import re
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Union

from leadflow.domain.models.lead import Lead, LeadStatus
from leadflow.domain.models.offer import Slot

logger = logging.getLogger(__name__)

_DIGITS = re.compile(r"\d+")


class UnrecognizedReason(str, Enum):
    """Why a reply could not be turned into a slot choice"""
    EMPTY = "empty"
    NOT_A_NUMBER = "not_a_number"
    OUT_OF_RANGE = "out_of_range"
    WRONG_STATUS = "wrong_status"
    NO_OFFER = "no_offer"
    OFFER_EXPIRED = "offer_expired"


@dataclass(frozen=True)
class SlotChoice:
    """Customer picked one of the offered slots"""
    index: int
    slot: Slot


@dataclass(frozen=True)
class Unrecognized:
    """Reply that does not commit a booking; the caller decides what to do"""
    reason: UnrecognizedReason
    text: str


ReplyInterpretation = Union[SlotChoice, Unrecognized]


def interpret_reply(lead: Lead, raw_reply_text: Optional[str], now: Optional[datetime] = None) -> ReplyInterpretation:
    """
    Interpret a reply such as "2" for the given lead.

    A reply is a slot choice only if, after trimming, it is exactly the
    integer 1, 2 or 3, the lead is ``contacted`` and its offer has not
    expired. Anything else is ``Unrecognized``.

    Args:
        lead: Lead the reply was resolved to
        raw_reply_text: Reply body as received
        now: Reception time (default: now, UTC)

    Returns:
        SlotChoice or Unrecognized
    """
    text = (raw_reply_text or "").strip()
    now = now or datetime.now(timezone.utc)

    if not text:
        return Unrecognized(UnrecognizedReason.EMPTY, text)

    if not _DIGITS.fullmatch(text):
        return Unrecognized(UnrecognizedReason.NOT_A_NUMBER, text)

    index = int(text)
    if index not in (1, 2, 3):
        return Unrecognized(UnrecognizedReason.OUT_OF_RANGE, text)

    if LeadStatus(lead.status) != LeadStatus.CONTACTED:
        logger.info(f"Reply '{text}' for lead {lead.id} ignored: status is {LeadStatus(lead.status).value}")
        return Unrecognized(UnrecognizedReason.WRONG_STATUS, text)

    if lead.offer is None:
        return Unrecognized(UnrecognizedReason.NO_OFFER, text)

    if lead.offer.is_expired(now):
        logger.info(f"Reply '{text}' for lead {lead.id} arrived after offer expiry {lead.offer.expires_at.isoformat()}")
        return Unrecognized(UnrecognizedReason.OFFER_EXPIRED, text)

    slot = lead.offer.get_slot(index)
    if slot is None:
        return Unrecognized(UnrecognizedReason.OUT_OF_RANGE, text)

    return SlotChoice(index=index, slot=slot)
