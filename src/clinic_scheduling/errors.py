"""
Error taxonomy for the scheduling engine.

Validation errors are raised before any store or network access,
conflicts carry the interval that was taken, and transport errors
are retryable without touching accumulated booking state.
"""

from datetime import date as date_type
from datetime import time
from typing import List, Optional


class SchedulingError(Exception):
    """Base class for every scheduling error."""

    error_code = "SCHEDULING_ERROR"


class ValidationError(SchedulingError):
    """Input rejected before any side effect."""

    error_code = "VALIDATION_ERROR"


class InvalidDurationError(ValidationError):
    """A service duration or slot granularity is zero or negative."""

    error_code = "INVALID_DURATION"


class InvalidIntervalError(ValidationError):
    """An interval whose start is not strictly before its end."""

    error_code = "INVALID_INTERVAL"


class IncompleteSelectionError(ValidationError):
    """A booking step was attempted before its prerequisites were selected."""

    error_code = "INCOMPLETE_SELECTION"


class NotFoundError(SchedulingError):
    """A referenced doctor, service, appointment or work session does not exist."""

    error_code = "NOT_FOUND"


class InvalidStatusTransitionError(SchedulingError):
    """A status change that would move an entity backwards."""

    error_code = "INVALID_STATUS_TRANSITION"

    def __init__(self, entity: str, current: str, requested: str):
        self.entity = entity
        self.current = current
        self.requested = requested
        super().__init__(f"Cannot move {entity} from {current} to {requested}")


class ConflictError(SchedulingError):
    """
    A reservation overlaps an existing booking.

    Carries the conflicting interval so callers can render
    "slot taken: DATE START-END" without another round-trip.
    """

    error_code = "SLOT_CONFLICT"

    def __init__(
        self,
        date: date_type,
        start_time: time,
        end_time: time,
        conflicting_ids: Optional[List[str]] = None,
    ):
        self.date = date
        self.start_time = start_time
        self.end_time = end_time
        self.conflicting_ids = conflicting_ids or []
        super().__init__(
            f"Slot taken: {date.isoformat()} "
            f"{start_time.strftime('%H:%M')}-{end_time.strftime('%H:%M')}"
        )

    def to_dict(self) -> dict:
        return {
            "detail": str(self),
            "date": self.date.isoformat(),
            "start_time": self.start_time.strftime("%H:%M"),
            "end_time": self.end_time.strftime("%H:%M"),
            "conflicting_ids": self.conflicting_ids,
        }


class WorkSessionConflictError(SchedulingError):
    """A work session overlaps another session of the same staff member."""

    error_code = "WORK_SESSION_CONFLICT"

    def __init__(self, result):
        self.result = result
        super().__init__(result.message or "Work session overlaps an existing session")


class AvailabilityUnknownError(SchedulingError):
    """Availability could not be determined (distinct from zero availability)."""

    error_code = "AVAILABILITY_UNKNOWN"


class TransportError(SchedulingError):
    """Network or server failure; the caller may retry."""

    error_code = "TRANSPORT_ERROR"
    retryable = True
