"""
Data models for the clinic scheduling engine.
"""

from .booking import (
    AvailabilityResult,
    AvailabilityStatus,
    BookingFlowState,
    BookingFlowType,
    BookingStep,
    ConflictResult,
    WorkSessionConflict,
)
from .scheduling import (
    Appointment,
    AppointmentStatus,
    Doctor,
    Service,
    Specialty,
    StaffType,
    TimeInterval,
    TimeSlot,
    WorkingDay,
    WorkSession,
    WorkSessionStatus,
)

__all__ = [
    "Appointment",
    "AppointmentStatus",
    "AvailabilityResult",
    "AvailabilityStatus",
    "BookingFlowState",
    "BookingFlowType",
    "BookingStep",
    "ConflictResult",
    "Doctor",
    "Service",
    "Specialty",
    "StaffType",
    "TimeInterval",
    "TimeSlot",
    "WorkingDay",
    "WorkSession",
    "WorkSessionConflict",
    "WorkSessionStatus",
]
