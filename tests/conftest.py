"""
Shared fixtures: a small cardiology roster on Monday 2025-03-10.

Dr. An works 09:00-11:00 in booth 1 offering a 30-minute consultation
and a 15-minute ECG. Dr. Binh is in the same specialty but has no
session that day.
"""

from datetime import date, datetime, time

import pytest

from clinic_scheduling.models.scheduling import (
    Appointment,
    Booth,
    Doctor,
    Service,
    Specialty,
    WorkSession,
    WorkSessionStatus,
)
from clinic_scheduling.services.availability import AvailabilityResolver
from clinic_scheduling.services.locks import KeyedLock
from clinic_scheduling.services.reservation import ReservationService
from clinic_scheduling.services.store import SchedulingStore
from clinic_scheduling.services.work_sessions import WorkSessionService

DAY = date(2025, 3, 10)


def populate(store: SchedulingStore) -> SchedulingStore:
    store.add_specialty(Specialty(id="cardiology", name="Cardiology"))
    store.add_specialty(Specialty(id="dermatology", name="Dermatology"))
    store.add_service(
        Service(id="consult-30", name="Consultation", price=300000, duration_minutes=30)
    )
    store.add_service(Service(id="ecg-15", name="ECG", price=150000, duration_minutes=15))
    store.add_doctor(Doctor(id="dr-an", name="Dr. An", specialty_id="cardiology", rating=4.8))
    store.add_doctor(Doctor(id="dr-binh", name="Dr. Binh", specialty_id="cardiology"))
    store.add_booth(Booth(id="booth-1", name="Booth 1", room_name="Room A"))

    session = WorkSession(
        id="ws-an-morning",
        staff_id="dr-an",
        booth_id="booth-1",
        start_time=datetime.combine(DAY, time(9, 0)),
        end_time=datetime.combine(DAY, time(11, 0)),
        service_ids=["consult-30", "ecg-15"],
        status=WorkSessionStatus.APPROVED,
    )
    store.work_sessions[session.id] = session
    return store


@pytest.fixture
def store():
    """Store with the cardiology roster."""
    return populate(SchedulingStore())


@pytest.fixture
def add_session(store):
    """Factory adding a work session straight into the store."""

    def _add(staff_id, day, start, end, service_ids=("consult-30",), **kwargs):
        session = WorkSession(
            staff_id=staff_id,
            start_time=datetime.combine(day, start),
            end_time=datetime.combine(day, end),
            service_ids=list(service_ids),
            **kwargs,
        )
        store.work_sessions[session.id] = session
        return session

    return _add


@pytest.fixture
def add_appointment(store):
    """Factory adding an appointment straight into the store."""

    def _add(doctor_id, day, start, end, service_id="ecg-15", **kwargs):
        appointment = Appointment(
            code=f"TEST-{len(store.appointments) + 1}",
            patient_profile_id=kwargs.pop("patient_profile_id", "patient-0"),
            doctor_id=doctor_id,
            service_id=service_id,
            date=day,
            start_time=start,
            end_time=end,
            **kwargs,
        )
        store.appointments[appointment.id] = appointment
        return appointment

    return _add


@pytest.fixture
def locks():
    return KeyedLock()


@pytest.fixture
def resolver(store):
    return AvailabilityResolver(store, today=lambda: date(2025, 3, 1))


@pytest.fixture
def reservations(store, locks):
    return ReservationService(store, locks)


@pytest.fixture
def work_sessions(store, locks):
    return WorkSessionService(store, locks)


@pytest.fixture
def roster():
    """The roster loader, for stores the fixtures above do not own."""
    return populate
