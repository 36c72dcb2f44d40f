"""
Unit Tests for Slot Generator
"""
import pytest
from datetime import datetime, timedelta, timezone

import pytz

from leadflow.domain.models.working_hours import WorkingHours
from leadflow.domain.services.slot_generator import (
    generate_slots,
    format_slot_label,
    format_slot_short_label,
)

COPENHAGEN = pytz.timezone("Europe/Copenhagen")


def local(year, month, day, hour, minute=0):
    return COPENHAGEN.localize(datetime(year, month, day, hour, minute))


class TestDefaultGeneration:
    """Tests for working-day slot generation."""

    def test_monday_morning_offers_next_working_days(self, reference_time):
        slots = generate_slots(reference_time, WorkingHours(), duration_hours=3)

        assert [s.start for s in slots] == [
            local(2024, 1, 16, 10),
            local(2024, 1, 16, 14),
            local(2024, 1, 17, 10),
        ]
        assert [s.index for s in slots] == [1, 2, 3]

    def test_friday_skips_weekend(self):
        friday = local(2024, 1, 19, 11)

        slots = generate_slots(friday, WorkingHours(), duration_hours=2)

        assert [s.start for s in slots] == [
            local(2024, 1, 22, 10),
            local(2024, 1, 22, 14),
            local(2024, 1, 23, 10),
        ]

    def test_slot_end_follows_duration(self, reference_time):
        slots = generate_slots(reference_time, WorkingHours(), duration_hours=2.5)

        for slot in slots:
            assert slot.end - slot.start == timedelta(hours=2.5)
            assert slot.duration_hours == 2.5

    def test_busy_interval_is_skipped(self, reference_time):
        busy = [(local(2024, 1, 16, 10), local(2024, 1, 16, 13))]

        slots = generate_slots(reference_time, WorkingHours(), duration_hours=3, busy=busy)

        assert [s.start for s in slots] == [
            local(2024, 1, 16, 14),
            local(2024, 1, 17, 10),
            local(2024, 1, 17, 14),
        ]

    def test_fully_booked_calendar_still_yields_slots(self, reference_time):
        busy = [(reference_time, reference_time + timedelta(days=90))]

        slots = generate_slots(reference_time, WorkingHours(), duration_hours=3, busy=busy)

        assert len(slots) == 3
        assert slots[0].start == local(2024, 1, 16, 10)

    def test_custom_slot_times(self, reference_time):
        hours = WorkingHours(slot_times=["09:00", "12:00", "15:00"])

        slots = generate_slots(reference_time, hours, duration_hours=2)

        assert [s.start for s in slots] == [
            local(2024, 1, 16, 9),
            local(2024, 1, 16, 12),
            local(2024, 1, 16, 15),
        ]

    def test_daylight_saving_offset(self):
        saturday = local(2024, 3, 30, 12)

        slots = generate_slots(saturday, WorkingHours(), duration_hours=2)

        assert slots[0].start == local(2024, 4, 1, 10)
        assert slots[0].start.utcoffset() == timedelta(hours=2)

    @pytest.mark.parametrize("reference", [
        datetime(2024, 1, 15, 8, 0, tzinfo=timezone.utc),
        datetime(2024, 1, 19, 16, 30, tzinfo=timezone.utc),
        datetime(2024, 6, 30, 23, 59, tzinfo=timezone.utc),
        datetime(2024, 12, 24, 12, 0, tzinfo=timezone.utc),
    ])
    def test_slots_are_ordered_distinct_and_in_the_future(self, reference):
        slots = generate_slots(reference, WorkingHours(), duration_hours=4)

        starts = [s.start for s in slots]
        assert len(starts) == 3
        assert all(start > reference for start in starts)
        assert all(a < b for a, b in zip(starts, starts[1:]))

    def test_naive_reference_is_read_as_local_time(self):
        slots = generate_slots(datetime(2024, 1, 15, 9, 0), WorkingHours(), duration_hours=3)

        assert slots[0].start == local(2024, 1, 16, 10)


class TestLegacyGeneration:
    """Tests for the fixed-offset mode."""

    def test_legacy_offsets(self, reference_time):
        slots = generate_slots(reference_time, WorkingHours(), duration_hours=3, legacy=True)

        assert [s.start for s in slots] == [
            local(2024, 1, 16, 10),
            local(2024, 1, 16, 14),
            local(2024, 1, 17, 9),
        ]

    def test_legacy_does_not_skip_weekends(self):
        friday = local(2024, 1, 19, 11)

        slots = generate_slots(friday, WorkingHours(), duration_hours=3, legacy=True)

        assert slots[0].start == local(2024, 1, 20, 10)


class TestValidation:
    """Tests for configuration errors."""

    def test_count_must_be_positive(self, reference_time):
        with pytest.raises(ValueError, match="count"):
            generate_slots(reference_time, WorkingHours(), duration_hours=3, count=0)

    def test_duration_must_be_positive(self, reference_time):
        with pytest.raises(ValueError, match="duration"):
            generate_slots(reference_time, WorkingHours(), duration_hours=0)

    def test_slot_times_outside_window(self, reference_time):
        hours = WorkingHours(start="08:00", end="09:00", slot_times=["10:00"])

        with pytest.raises(ValueError, match="No slot time"):
            generate_slots(reference_time, hours, duration_hours=1)

    def test_working_window_must_be_ordered(self):
        with pytest.raises(ValueError):
            WorkingHours(start="17:00", end="08:00")

    def test_allowed_days_must_not_be_empty(self):
        with pytest.raises(ValueError):
            WorkingHours(allowed_days=[])


class TestLabels:
    """Tests for Danish slot labels."""

    def test_long_label(self):
        assert format_slot_label(local(2024, 1, 16, 10)) == "tirsdag d. 16. januar kl. 10:00"

    def test_short_label(self):
        assert format_slot_short_label(local(2024, 1, 16, 10)) == "tir 16/1 10:00"

    def test_slots_carry_labels(self, reference_time):
        slot = generate_slots(reference_time, WorkingHours(), duration_hours=3)[0]

        assert slot.label == "tirsdag d. 16. januar kl. 10:00"
        assert slot.short_label == "tir 16/1 10:00"
