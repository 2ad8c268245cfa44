"""
Scheduling data models: reference data, appointments and work sessions.
"""

from datetime import date, datetime, time
from enum import Enum
from typing import Dict, FrozenSet, List, Optional
from uuid import uuid4

from pydantic import BaseModel, Field, field_validator, model_validator


def generate_id(prefix: str) -> str:
    """Generate a prefixed identifier."""
    return f"{prefix}_{uuid4().hex[:12]}"


def to_local_naive(value: Optional[datetime]) -> Optional[datetime]:
    """Convert an offset-aware timestamp to naive local time; naive values pass through."""
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone().replace(tzinfo=None)


class AppointmentStatus(str, Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"

    def can_transition_to(self, target: "AppointmentStatus") -> bool:
        return target in APPOINTMENT_TRANSITIONS[self]


APPOINTMENT_TRANSITIONS: Dict[AppointmentStatus, FrozenSet[AppointmentStatus]] = {
    AppointmentStatus.PENDING: frozenset(
        {AppointmentStatus.CONFIRMED, AppointmentStatus.CANCELLED}
    ),
    AppointmentStatus.CONFIRMED: frozenset(
        {AppointmentStatus.COMPLETED, AppointmentStatus.CANCELLED}
    ),
    AppointmentStatus.COMPLETED: frozenset(),
    AppointmentStatus.CANCELLED: frozenset(),
}


class WorkSessionStatus(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    IN_PROGRESS = "IN_PROGRESS"
    CANCELED = "CANCELED"
    COMPLETED = "COMPLETED"

    def can_transition_to(self, target: "WorkSessionStatus") -> bool:
        return target in WORK_SESSION_TRANSITIONS[self]


WORK_SESSION_TRANSITIONS: Dict[WorkSessionStatus, FrozenSet[WorkSessionStatus]] = {
    WorkSessionStatus.PENDING: frozenset(
        {WorkSessionStatus.APPROVED, WorkSessionStatus.CANCELED}
    ),
    WorkSessionStatus.APPROVED: frozenset(
        {WorkSessionStatus.IN_PROGRESS, WorkSessionStatus.CANCELED}
    ),
    WorkSessionStatus.IN_PROGRESS: frozenset(
        {WorkSessionStatus.COMPLETED, WorkSessionStatus.CANCELED}
    ),
    WorkSessionStatus.CANCELED: frozenset(),
    WorkSessionStatus.COMPLETED: frozenset(),
}


class StaffType(str, Enum):
    DOCTOR = "DOCTOR"
    TECHNICIAN = "TECHNICIAN"


class Specialty(BaseModel):
    """A medical specialty (immutable reference data)."""

    id: str = Field(description="Specialty identifier")
    name: str = Field(description="Human-readable name")
    code: Optional[str] = Field(default=None, description="Short specialty code")
    description: Optional[str] = None


class Doctor(BaseModel):
    """
    A doctor belonging to a specialty.

    Availability is never stored here; the booth and work-session
    fields are per-day annotations filled in by the availability resolver.
    """

    id: str = Field(description="Doctor identifier")
    name: str = Field(description="Display name")
    specialty_id: str = Field(description="Specialty the doctor practices")
    code: Optional[str] = None
    specialty_name: Optional[str] = None
    rating: float = Field(default=0.0, ge=0.0, le=5.0)
    years_experience: int = Field(default=0, ge=0)
    description: Optional[str] = None

    booth_id: Optional[str] = None
    booth_name: Optional[str] = None
    room_name: Optional[str] = None
    work_session_start: Optional[datetime] = None
    work_session_end: Optional[datetime] = None


class Service(BaseModel):
    """A bookable medical service; its duration sets the slot length."""

    id: str = Field(description="Service identifier")
    name: str = Field(description="Service name")
    price: float = Field(default=0.0, ge=0.0)
    duration_minutes: int = Field(gt=0, description="Time per patient in minutes")
    code: Optional[str] = None
    description: Optional[str] = None


class Booth(BaseModel):
    """A consultation booth inside a room."""

    id: str
    name: str
    room_name: Optional[str] = None


class TimeInterval(BaseModel):
    """A same-day half-open interval [start_time, end_time)."""

    start_time: time
    end_time: time

    @model_validator(mode="after")
    def check_order(self) -> "TimeInterval":
        if self.start_time >= self.end_time:
            raise ValueError("start_time must be before end_time")
        return self


class WorkingDay(BaseModel):
    """The open intervals during which a doctor is reachable on one date."""

    doctor_id: str
    date: date
    intervals: List[TimeInterval] = Field(default_factory=list)


class TimeSlot(BaseModel):
    """A candidate bookable window; transient until embedded in an appointment."""

    start_time: time
    end_time: time
    is_available: bool = True

    @property
    def duration_minutes(self) -> int:
        start = datetime.combine(date.min, self.start_time)
        end = datetime.combine(date.min, self.end_time)
        return int((end - start).total_seconds() / 60)

    @property
    def label(self) -> str:
        return f"{self.start_time.strftime('%H:%M')}-{self.end_time.strftime('%H:%M')}"


class Appointment(BaseModel):
    """A durable reservation of a slot; created only by the reservation service."""

    id: str = Field(default_factory=lambda: generate_id("appt"))
    code: str
    patient_profile_id: str
    doctor_id: str
    service_id: str
    date: date
    start_time: time
    end_time: time
    status: AppointmentStatus = AppointmentStatus.PENDING
    created_at: datetime = Field(default_factory=datetime.now)


class WorkSession(BaseModel):
    """A staff member's assignment to a booth for a set of services."""

    id: str = Field(default_factory=lambda: generate_id("ws"))
    staff_id: str
    staff_type: StaffType = StaffType.DOCTOR
    booth_id: Optional[str] = None
    start_time: datetime
    end_time: datetime
    service_ids: List[str] = Field(default_factory=list)
    status: WorkSessionStatus = WorkSessionStatus.PENDING
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)

    @field_validator("start_time", "end_time")
    @classmethod
    def normalize_timestamp(cls, value: datetime) -> datetime:
        return to_local_naive(value)

    @model_validator(mode="after")
    def check_order(self) -> "WorkSession":
        if self.start_time >= self.end_time:
            raise ValueError("start_time must be before end_time")
        return self
