"""
Offer Domain Models
Candidate appointment slots proposed to a lead
"""
from pydantic import BaseModel, Field, model_validator
from typing import List, Optional
from datetime import datetime


OFFER_SLOT_COUNT = 3


class Slot(BaseModel):
    """A candidate appointment window"""
    index: int = Field(..., ge=1, description="1-based position the customer replies with")
    start: datetime
    end: datetime
    label: str = Field(..., description="Long Danish label for email")
    short_label: str = Field(..., description="Compact label for SMS")

    @property
    def duration_hours(self) -> float:
        """Length of the slot in hours"""
        return (self.end - self.start).total_seconds() / 3600

    def overlaps(self, start: datetime, end: datetime) -> bool:
        """Check whether this slot intersects the interval [start, end)"""
        return self.start < end and start < self.end


class Offer(BaseModel):
    """The three slots sent to a lead, awaiting a 1/2/3 reply"""
    slots: List[Slot]
    created_at: datetime
    expires_at: datetime

    @model_validator(mode="after")
    def _check_slots(self) -> "Offer":
        if len(self.slots) != OFFER_SLOT_COUNT:
            raise ValueError(f"An offer needs exactly {OFFER_SLOT_COUNT} slots, got {len(self.slots)}")
        starts = [slot.start for slot in self.slots]
        if len(set(starts)) != len(starts):
            raise ValueError("Offer slots must not coincide")
        return self

    def is_expired(self, now: datetime) -> bool:
        """Whether the offer can no longer be accepted"""
        return now >= self.expires_at

    def get_slot(self, index: int) -> Optional[Slot]:
        """Get slot by its 1-based index"""
        for slot in self.slots:
            if slot.index == index:
                return slot
        return None
