"""
Slot Calculus.

Turns a day's working intervals, the already-booked intervals and a
service duration into the list of bookable time slots.
"""

from datetime import date, datetime, time, timedelta
from typing import Iterable, List, Optional

from clinic_scheduling.errors import InvalidDurationError
from clinic_scheduling.models.scheduling import TimeSlot
from clinic_scheduling.scheduling.overlap import find_conflicts

# Slots are same-day times; stepping is done on datetimes anchored to this day.
_ANCHOR = date(2000, 1, 1)


def _at(value: time) -> datetime:
    return datetime.combine(_ANCHOR, value)


def compute_slots(
    working_intervals: Iterable,
    service_duration_minutes: int,
    booked_intervals: Iterable = (),
    granularity_minutes: Optional[int] = None,
) -> List[TimeSlot]:
    """
    Compute bookable slots.

    Args:
        working_intervals: Intervals (``start_time``/``end_time`` times) the
            doctor is reachable
        service_duration_minutes: Length of every slot
        booked_intervals: Existing bookings; cancelled ones are ignored
        granularity_minutes: Step between candidate starts (defaults to
            the service duration)

    Returns:
        Slots ordered by start time, each fitting entirely inside one
        working interval and overlapping no booking
    """
    if service_duration_minutes is None or service_duration_minutes <= 0:
        raise InvalidDurationError(
            f"Service duration must be positive, got {service_duration_minutes}"
        )
    if granularity_minutes is None:
        granularity_minutes = service_duration_minutes
    if granularity_minutes <= 0:
        raise InvalidDurationError(
            f"Slot granularity must be positive, got {granularity_minutes}"
        )

    duration = timedelta(minutes=service_duration_minutes)
    step = timedelta(minutes=granularity_minutes)
    booked = list(booked_intervals)

    slots = {}
    for interval in working_intervals:
        interval_start = _at(interval.start_time)
        interval_end = _at(interval.end_time)

        point = interval_start
        while point + duration <= interval_end:
            candidate = TimeSlot(start_time=point.time(), end_time=(point + duration).time())
            if not find_conflicts(candidate, booked):
                slots[candidate.start_time] = candidate
            point += step

    return [slots[start] for start in sorted(slots)]
