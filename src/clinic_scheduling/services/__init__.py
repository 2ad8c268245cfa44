"""
Services layer for the clinic scheduling engine.
"""

from .availability import AvailabilityResolver
from .booking_flow import BookingFlow
from .client import SchedulingClient
from .locks import KeyedLock
from .reservation import ReservationService
from .store import SchedulingStore
from .work_sessions import WorkSessionGuard, WorkSessionService

__all__ = [
    "AvailabilityResolver",
    "BookingFlow",
    "KeyedLock",
    "ReservationService",
    "SchedulingClient",
    "SchedulingStore",
    "WorkSessionGuard",
    "WorkSessionService",
]
