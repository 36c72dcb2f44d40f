"""
Slot Generator
Proposes candidate appointment windows for an offer
"""
import logging
from datetime import datetime, timedelta, time
from typing import List, Sequence, Tuple

from leadflow.domain.models.offer import Slot, OFFER_SLOT_COUNT
from leadflow.domain.models.working_hours import WorkingHours

logger = logging.getLogger(__name__)

# How far ahead to look for free working-day slots
MAX_SEARCH_DAYS = 60

# Offsets used by the first version of the booking flow: (days ahead, hour)
LEGACY_OFFSETS: List[Tuple[int, int]] = [(1, 10), (1, 14), (2, 9)]

DANISH_WEEKDAYS = ["mandag", "tirsdag", "onsdag", "torsdag", "fredag", "lørdag", "søndag"]
DANISH_MONTHS = [
    "januar", "februar", "marts", "april", "maj", "juni",
    "juli", "august", "september", "oktober", "november", "december",
]

BusyInterval = Tuple[datetime, datetime]


def format_slot_label(start: datetime) -> str:
    """'tirsdag d. 16. januar kl. 10:00'"""
    return (
        f"{DANISH_WEEKDAYS[start.weekday()]} d. {start.day}. "
        f"{DANISH_MONTHS[start.month - 1]} kl. {start:%H:%M}"
    )


def format_slot_short_label(start: datetime) -> str:
    """'tir 16/1 10:00'"""
    return f"{DANISH_WEEKDAYS[start.weekday()][:3]} {start.day}/{start.month} {start:%H:%M}"


def _overlaps_busy(start: datetime, end: datetime, busy: Sequence[BusyInterval]) -> bool:
    for busy_start, busy_end in busy:
        if start < busy_end and busy_start < end:
            return True
    return False


def _make_slot(index: int, start: datetime, duration_hours: float) -> Slot:
    return Slot(
        index=index,
        start=start,
        end=start + timedelta(hours=duration_hours),
        label=format_slot_label(start),
        short_label=format_slot_short_label(start),
    )


def _legacy_starts(reference: datetime, working_hours: WorkingHours) -> List[datetime]:
    tz = working_hours.tz
    starts = []
    for days_ahead, hour in LEGACY_OFFSETS:
        day = reference.date() + timedelta(days=days_ahead)
        starts.append(tz.localize(datetime.combine(day, time(hour, 0))))
    return starts


def _working_day_starts(
    reference: datetime,
    working_hours: WorkingHours,
    duration_hours: float,
    count: int,
    busy: Sequence[BusyInterval]
) -> List[datetime]:
    tz = working_hours.tz
    candidate_times = working_hours.candidate_times()
    if not candidate_times:
        raise ValueError(
            f"No slot time in {working_hours.slot_times} falls inside "
            f"{working_hours.start}-{working_hours.end}"
        )

    starts: List[datetime] = []
    day = reference.date() + timedelta(days=1)
    for _ in range(MAX_SEARCH_DAYS):
        if day.weekday() in working_hours.allowed_days:
            for candidate in candidate_times:
                start = tz.localize(datetime.combine(day, candidate))
                if start <= reference:
                    continue
                end = start + timedelta(hours=duration_hours)
                if _overlaps_busy(start, end, busy):
                    continue
                starts.append(start)
                if len(starts) == count:
                    return starts
        day += timedelta(days=1)

    return starts


def generate_slots(
    reference_time: datetime,
    working_hours: WorkingHours,
    duration_hours: float,
    count: int = OFFER_SLOT_COUNT,
    busy: Sequence[BusyInterval] = (),
    legacy: bool = False
) -> List[Slot]:
    """
    Generate candidate appointment slots.

    Walks forward from the day after ``reference_time``, skipping non-working
    days, and takes the configured slot times inside the working window.
    Slots overlapping a busy interval are skipped.

    Args:
        reference_time: Moment the offer is generated
        working_hours: Working-hours policy
        duration_hours: Job duration, used for the slot end and busy checks
        count: Number of slots to produce
        busy: Existing bookings as (start, end) intervals
        legacy: Use the fixed tomorrow 10:00 / tomorrow 14:00 / day-after 09:00
            offsets, ignoring working days and busy intervals

    Returns:
        Slots in strictly increasing start order, all after reference_time

    Raises:
        ValueError: If count or duration are not positive, or no slot time
            lies inside the working window
    """
    if count < 1:
        raise ValueError(f"count must be at least 1, got {count}")
    if duration_hours <= 0:
        raise ValueError(f"duration_hours must be positive, got {duration_hours}")

    reference = working_hours.localize(reference_time)

    if legacy:
        if count > len(LEGACY_OFFSETS):
            raise ValueError(f"Legacy slot generation supports at most {len(LEGACY_OFFSETS)} slots")
        starts = _legacy_starts(reference, working_hours)[:count]
    else:
        starts = _working_day_starts(reference, working_hours, duration_hours, count, busy)
        if len(starts) < count:
            # Calendar fully booked within the horizon; offer working-day slots regardless
            logger.warning(
                f"Only {len(starts)} free slots in the next {MAX_SEARCH_DAYS} days, "
                f"ignoring existing bookings for the rest"
            )
            taken = set(starts)
            for start in _working_day_starts(reference, working_hours, duration_hours, count * 2, ()):
                if start not in taken:
                    starts.append(start)
                    taken.add(start)
                if len(starts) == count:
                    break
            starts.sort()

    slots = [_make_slot(i + 1, start, duration_hours) for i, start in enumerate(starts)]
    logger.debug(f"Generated {len(slots)} slots from {reference.isoformat()}: {[s.short_label for s in slots]}")
    return slots
