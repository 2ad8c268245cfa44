"""
Booking-flow and API exchange models.
"""

from datetime import date, datetime, time
from enum import Enum
from typing import Dict, Generic, List, Optional, Tuple, TypeVar

from pydantic import BaseModel, Field, field_validator

from clinic_scheduling.models.scheduling import (
    Doctor,
    Service,
    Specialty,
    StaffType,
    TimeSlot,
    WorkingDay,
    WorkSessionStatus,
    to_local_naive,
)

T = TypeVar("T")


class BookingFlowType(str, Enum):
    BY_DATE = "BY_DATE"
    BY_DOCTOR = "BY_DOCTOR"


class BookingStep(str, Enum):
    SPECIALTY = "SPECIALTY"
    DATE = "DATE"
    DOCTOR = "DOCTOR"
    SERVICE = "SERVICE"
    SLOT = "SLOT"
    CONFIRM = "CONFIRM"


# Strategy decides the order only; both flows have six steps.
STEP_ORDER: Dict[BookingFlowType, Tuple[BookingStep, ...]] = {
    BookingFlowType.BY_DATE: (
        BookingStep.SPECIALTY,
        BookingStep.DATE,
        BookingStep.DOCTOR,
        BookingStep.SERVICE,
        BookingStep.SLOT,
        BookingStep.CONFIRM,
    ),
    BookingFlowType.BY_DOCTOR: (
        BookingStep.SPECIALTY,
        BookingStep.DOCTOR,
        BookingStep.DATE,
        BookingStep.SERVICE,
        BookingStep.SLOT,
        BookingStep.CONFIRM,
    ),
}


class BookingFlowState(BaseModel):
    """
    Per-wizard booking state.

    Owned by exactly one booking session and discarded on
    submit, cancel or reset.
    """

    current_step: int = Field(default=1, ge=1, le=6)
    flow_type: BookingFlowType = BookingFlowType.BY_DATE

    selected_specialty: Optional[Specialty] = None
    selected_date: Optional[date] = None
    selected_doctor: Optional[Doctor] = None
    selected_service: Optional[Service] = None
    selected_slot: Optional[TimeSlot] = None

    specialties: List[Specialty] = Field(default_factory=list)
    available_doctors: List[Doctor] = Field(default_factory=list)
    working_days: List[WorkingDay] = Field(default_factory=list)
    available_services: List[Service] = Field(default_factory=list)
    available_slots: List[TimeSlot] = Field(default_factory=list)

    loading: bool = False
    error: Optional[str] = None
    success: Optional[str] = None


class AvailabilityStatus(str, Enum):
    KNOWN = "KNOWN"
    UNKNOWN = "UNKNOWN"


class AvailabilityResult(BaseModel, Generic[T]):
    """
    Outcome of an availability query.

    UNKNOWN means the data could not be fetched; it must never be
    read as "fully booked".
    """

    status: AvailabilityStatus = AvailabilityStatus.KNOWN
    items: List[T] = Field(default_factory=list)
    reason: Optional[str] = None

    @property
    def is_known(self) -> bool:
        return self.status == AvailabilityStatus.KNOWN

    @classmethod
    def known(cls, items: List[T]) -> "AvailabilityResult[T]":
        return cls(status=AvailabilityStatus.KNOWN, items=list(items))

    @classmethod
    def unknown(cls, reason: str) -> "AvailabilityResult[T]":
        return cls(status=AvailabilityStatus.UNKNOWN, reason=reason)


class WorkSessionConflict(BaseModel):
    """A stored session that overlaps a candidate."""

    id: str
    start_time: datetime
    end_time: datetime
    service_ids: List[str] = Field(default_factory=list)


class ConflictResult(BaseModel):
    has_conflict: bool
    conflicts: List[WorkSessionConflict] = Field(default_factory=list)
    message: Optional[str] = None


# ============================================================================
# API request payloads
# ============================================================================


class AppointmentRequest(BaseModel):
    """Request to reserve a slot for a patient."""

    patient_profile_id: str
    doctor_id: str
    service_id: str
    date: date
    start_time: time
    end_time: time


class AppointmentStatusUpdate(BaseModel):
    status: str


class WorkSessionDraft(BaseModel):
    start_time: datetime
    end_time: datetime
    service_ids: List[str] = Field(default_factory=list)

    @field_validator("start_time", "end_time")
    @classmethod
    def normalize_timestamp(cls, value: datetime) -> datetime:
        return to_local_naive(value)


class CreateWorkSessionsRequest(BaseModel):
    staff_id: str
    staff_type: StaffType = StaffType.DOCTOR
    booth_id: Optional[str] = None
    work_sessions: List[WorkSessionDraft] = Field(min_length=1)


class ValidateConflictRequest(BaseModel):
    staff_id: str
    work_sessions: List[WorkSessionDraft] = Field(min_length=1)
    exclude_id: Optional[str] = None


class UpdateWorkSessionRequest(BaseModel):
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    service_ids: Optional[List[str]] = None
    status: Optional[WorkSessionStatus] = None
    booth_id: Optional[str] = None

    @field_validator("start_time", "end_time")
    @classmethod
    def normalize_timestamp(cls, value: Optional[datetime]) -> Optional[datetime]:
        return to_local_naive(value)
