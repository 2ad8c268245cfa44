"""
Unit tests for the slot calculus.
"""

from datetime import date, time

import pytest

from clinic_scheduling.errors import InvalidDurationError
from clinic_scheduling.models.scheduling import AppointmentStatus, TimeInterval, TimeSlot
from clinic_scheduling.scheduling.slots import compute_slots


def interval(start: str, end: str) -> TimeInterval:
    return TimeInterval(start_time=time.fromisoformat(start), end_time=time.fromisoformat(end))


def starts(slots):
    return [s.start_time.strftime("%H:%M") for s in slots]


class TestComputeSlots:
    """Test slot generation from working intervals and bookings."""

    def test_booked_first_half_hour(self):
        """A 09:00-09:30 booking leaves 09:30, 10:00 and 10:30 for a 30-minute service."""
        booked = [TimeSlot(start_time=time(9, 0), end_time=time(9, 30))]
        slots = compute_slots([interval("09:00", "11:00")], 30, booked)
        assert starts(slots) == ["09:30", "10:00", "10:30"]
        assert all(s.duration_minutes == 30 for s in slots)

    def test_no_bookings_fills_interval(self):
        slots = compute_slots([interval("09:00", "11:00")], 30)
        assert starts(slots) == ["09:00", "09:30", "10:00", "10:30"]

    def test_slots_never_extend_past_interval_end(self):
        slots = compute_slots([interval("09:00", "10:40")], 30)
        assert starts(slots) == ["09:00", "09:30", "10:00"]
        assert all(s.end_time <= time(10, 40) for s in slots)

    def test_fully_booked_interval_returns_nothing(self):
        booked = [TimeSlot(start_time=time(9, 0), end_time=time(11, 0))]
        assert compute_slots([interval("09:00", "11:00")], 30, booked) == []

    def test_interval_shorter_than_service(self):
        assert compute_slots([interval("09:00", "09:20")], 30) == []

    @pytest.mark.parametrize("duration", [0, -15])
    def test_non_positive_duration_rejected(self, duration):
        with pytest.raises(InvalidDurationError):
            compute_slots([interval("09:00", "11:00")], duration)

    def test_non_positive_granularity_rejected(self):
        with pytest.raises(InvalidDurationError):
            compute_slots([interval("09:00", "11:00")], 30, granularity_minutes=0)

    def test_finer_granularity_fits_around_booking(self):
        """15-minute steps let a 30-minute slot start right after a 15-minute booking."""
        booked = [TimeSlot(start_time=time(9, 0), end_time=time(9, 15))]
        slots = compute_slots([interval("09:00", "10:00")], 30, booked, granularity_minutes=15)
        assert starts(slots) == ["09:15", "09:30"]

    def test_ordered_across_intervals(self):
        slots = compute_slots([interval("14:00", "15:00"), interval("08:00", "09:00")], 30)
        assert starts(slots) == ["08:00", "08:30", "14:00", "14:30"]

    def test_overlapping_intervals_do_not_duplicate(self):
        slots = compute_slots([interval("09:00", "10:00"), interval("09:30", "10:30")], 30)
        assert starts(slots) == ["09:00", "09:30", "10:00"]

    def test_cancelled_bookings_ignored(self, store, add_appointment):
        add_appointment(
            "dr-an",
            date(2025, 3, 10),
            time(9, 0),
            time(10, 0),
            status=AppointmentStatus.CANCELLED,
        )
        slots = compute_slots([interval("09:00", "10:00")], 30, store.appointments.values())
        assert starts(slots) == ["09:00", "09:30"]

    def test_interval_ending_at_midnight(self):
        slots = compute_slots([interval("23:00", "23:59")], 30)
        assert starts(slots) == ["23:00"]
