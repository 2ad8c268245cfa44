"""
In-memory scheduling store.

Holds the reference data (specialties, doctors, services, booths) and
the two mutable collections (appointments and work sessions). The
mutable collections are written only by the reservation and
work-session services; the availability path only reads.
"""

import asyncio
from datetime import date, datetime, time, timedelta
from typing import Dict, List, Optional

from loguru import logger

from clinic_scheduling.models.scheduling import (
    Appointment,
    AppointmentStatus,
    Booth,
    Doctor,
    Service,
    Specialty,
    StaffType,
    TimeInterval,
    WorkingDay,
    WorkSession,
    WorkSessionStatus,
)


class SchedulingStore:
    """
    In-memory scheduling store.

    In production, this should be replaced with a database where the
    appointment table carries an exclusion constraint on
    (doctor_id, date, [start_time, end_time)).
    """

    def __init__(self):
        self._specialties: Dict[str, Specialty] = {}
        self._doctors: Dict[str, Doctor] = {}
        self._services: Dict[str, Service] = {}
        self._booths: Dict[str, Booth] = {}
        self._appointments: Dict[str, Appointment] = {}
        self._work_sessions: Dict[str, WorkSession] = {}
        self._lock = asyncio.Lock()
        self._initialized = False

    # Public accessors for testing
    @property
    def appointments(self) -> Dict[str, Appointment]:
        return self._appointments

    @property
    def work_sessions(self) -> Dict[str, WorkSession]:
        return self._work_sessions

    def clear(self) -> None:
        for collection in (
            self._specialties,
            self._doctors,
            self._services,
            self._booths,
            self._appointments,
            self._work_sessions,
        ):
            collection.clear()
        self._initialized = False

    # ========================================================================
    # Reference data
    # ========================================================================

    def add_specialty(self, specialty: Specialty) -> Specialty:
        self._specialties[specialty.id] = specialty
        return specialty

    def add_doctor(self, doctor: Doctor) -> Doctor:
        if doctor.specialty_name is None and doctor.specialty_id in self._specialties:
            doctor = doctor.model_copy(
                update={"specialty_name": self._specialties[doctor.specialty_id].name}
            )
        self._doctors[doctor.id] = doctor
        return doctor

    def add_service(self, service: Service) -> Service:
        self._services[service.id] = service
        return service

    def add_booth(self, booth: Booth) -> Booth:
        self._booths[booth.id] = booth
        return booth

    async def list_specialties(self) -> List[Specialty]:
        return sorted(self._specialties.values(), key=lambda s: s.name)

    async def get_specialty(self, specialty_id: str) -> Optional[Specialty]:
        return self._specialties.get(specialty_id)

    async def list_doctors(self, specialty_id: Optional[str] = None) -> List[Doctor]:
        doctors = [
            doctor
            for doctor in self._doctors.values()
            if specialty_id is None or doctor.specialty_id == specialty_id
        ]
        return sorted(doctors, key=lambda d: d.name)

    async def get_doctor(self, doctor_id: str) -> Optional[Doctor]:
        return self._doctors.get(doctor_id)

    async def get_service(self, service_id: str) -> Optional[Service]:
        return self._services.get(service_id)

    async def get_booth(self, booth_id: str) -> Optional[Booth]:
        return self._booths.get(booth_id)

    # ========================================================================
    # Work sessions and the working days derived from them
    # ========================================================================

    async def get_work_session(self, session_id: str) -> Optional[WorkSession]:
        return self._work_sessions.get(session_id)

    async def sessions_for_staff(
        self, staff_id: str, include_cancelled: bool = False
    ) -> List[WorkSession]:
        sessions = [
            session
            for session in self._work_sessions.values()
            if session.staff_id == staff_id
            and (include_cancelled or session.status != WorkSessionStatus.CANCELED)
        ]
        return sorted(sessions, key=lambda s: s.start_time)

    async def insert_work_sessions(self, sessions: List[WorkSession]) -> List[WorkSession]:
        for session in sessions:
            self._work_sessions[session.id] = session
        return sessions

    async def replace_work_session(self, session: WorkSession) -> WorkSession:
        self._work_sessions[session.id] = session
        return session

    async def delete_work_session(self, session_id: str) -> bool:
        return self._work_sessions.pop(session_id, None) is not None

    async def sessions_on(
        self, staff_id: str, day: date, service_id: Optional[str] = None
    ) -> List[WorkSession]:
        """Non-cancelled sessions of a staff member starting on ``day``."""
        return [
            session
            for session in await self.sessions_for_staff(staff_id)
            if session.start_time.date() == day
            and (service_id is None or service_id in session.service_ids)
        ]

    async def working_day(
        self, doctor_id: str, day: date, service_id: Optional[str] = None
    ) -> WorkingDay:
        """
        Build the working day of a doctor from their sessions.

        A session spanning midnight is clipped at the end of the day it
        starts on. With ``service_id``, only sessions offering that
        service contribute.
        """
        intervals = []
        for session in await self.sessions_on(doctor_id, day, service_id):
            start = session.start_time.time()
            end = session.end_time.time() if session.end_time.date() == day else time.max
            if start < end:
                intervals.append(TimeInterval(start_time=start, end_time=end))
        intervals.sort(key=lambda i: i.start_time)
        return WorkingDay(doctor_id=doctor_id, date=day, intervals=intervals)

    async def working_days(
        self, doctor_id: str, start: date, end: date
    ) -> List[WorkingDay]:
        """Working days with at least one interval in [start, end]."""
        days = sorted(
            {
                session.start_time.date()
                for session in await self.sessions_for_staff(doctor_id)
                if start <= session.start_time.date() <= end
            }
        )
        result = []
        for day in days:
            working_day = await self.working_day(doctor_id, day)
            if working_day.intervals:
                result.append(working_day)
        return result

    async def services_on(self, doctor_id: str, day: date) -> List[Service]:
        service_ids = []
        for session in await self.sessions_on(doctor_id, day):
            for service_id in session.service_ids:
                if service_id not in service_ids:
                    service_ids.append(service_id)
        return [self._services[sid] for sid in service_ids if sid in self._services]

    # ========================================================================
    # Appointments
    # ========================================================================

    async def get_appointment(self, appointment_id: str) -> Optional[Appointment]:
        return self._appointments.get(appointment_id)

    async def appointments_for(
        self, doctor_id: str, day: Optional[date] = None, include_cancelled: bool = False
    ) -> List[Appointment]:
        appointments = [
            appointment
            for appointment in self._appointments.values()
            if appointment.doctor_id == doctor_id
            and (day is None or appointment.date == day)
            and (include_cancelled or appointment.status != AppointmentStatus.CANCELLED)
        ]
        return sorted(appointments, key=lambda a: (a.date, a.start_time))

    async def appointments_for_patient(self, patient_profile_id: str) -> List[Appointment]:
        appointments = [
            appointment
            for appointment in self._appointments.values()
            if appointment.patient_profile_id == patient_profile_id
        ]
        return sorted(appointments, key=lambda a: (a.date, a.start_time))

    async def insert_appointment(self, appointment: Appointment) -> Appointment:
        self._appointments[appointment.id] = appointment
        return appointment

    async def replace_appointment(self, appointment: Appointment) -> Appointment:
        self._appointments[appointment.id] = appointment
        return appointment

    # ========================================================================
    # Sample data
    # ========================================================================

    def _initialize_sample_data(self, base_date: Optional[date] = None) -> None:
        """Seed reference data and two weeks of approved work sessions."""
        for specialty in SAMPLE_SPECIALTIES:
            self.add_specialty(Specialty(**specialty))
        for service in SAMPLE_SERVICES:
            self.add_service(Service(**service))
        for booth in SAMPLE_BOOTHS:
            self.add_booth(Booth(**booth))
        for doctor in SAMPLE_DOCTORS:
            self.add_doctor(Doctor(**{k: v for k, v in doctor.items() if k != "services"}))

        base_date = base_date or date.today()
        for day_offset in range(14):
            day = base_date + timedelta(days=day_offset)

            # Skip weekends
            if day.weekday() >= 5:
                continue

            for index, doctor in enumerate(SAMPLE_DOCTORS):
                booth = SAMPLE_BOOTHS[index % len(SAMPLE_BOOTHS)]
                for start, end in ((time(8, 0), time(12, 0)), (time(13, 30), time(17, 0))):
                    session = WorkSession(
                        staff_id=doctor["id"],
                        staff_type=StaffType.DOCTOR,
                        booth_id=booth["id"],
                        start_time=datetime.combine(day, start),
                        end_time=datetime.combine(day, end),
                        service_ids=list(doctor["services"]),
                        status=WorkSessionStatus.APPROVED,
                    )
                    self._work_sessions[session.id] = session

        self._initialized = True

    async def initialize(self) -> None:
        """Initialize with sample scheduling data."""
        if self._initialized:
            return

        async with self._lock:
            if self._initialized:
                return
            self._initialize_sample_data()
            logger.info(
                f"Initialized {len(self._doctors)} doctors and "
                f"{len(self._work_sessions)} work sessions"
            )


SAMPLE_SPECIALTIES: List[dict] = [
    {"id": "cardiology", "name": "Cardiology", "code": "CARD"},
    {"id": "dermatology", "name": "Dermatology", "code": "DERM"},
    {"id": "ophthalmology", "name": "Ophthalmology", "code": "OPHT"},
]

SAMPLE_SERVICES: List[dict] = [
    {"id": "cardio-consult", "name": "Cardiology consultation", "price": 300000, "duration_minutes": 30},
    {"id": "ecg", "name": "Electrocardiogram", "price": 150000, "duration_minutes": 15},
    {"id": "derm-consult", "name": "Dermatology consultation", "price": 250000, "duration_minutes": 20},
    {"id": "eye-exam", "name": "Comprehensive eye exam", "price": 200000, "duration_minutes": 45},
]

SAMPLE_BOOTHS: List[dict] = [
    {"id": "booth-a1", "name": "Booth A1", "room_name": "Room A"},
    {"id": "booth-a2", "name": "Booth A2", "room_name": "Room A"},
    {"id": "booth-b1", "name": "Booth B1", "room_name": "Room B"},
]

SAMPLE_DOCTORS: List[dict] = [
    {
        "id": "dr-nguyen",
        "name": "Dr. Lan Nguyen",
        "specialty_id": "cardiology",
        "rating": 4.8,
        "years_experience": 15,
        "services": ["cardio-consult", "ecg"],
    },
    {
        "id": "dr-tran",
        "name": "Dr. Minh Tran",
        "specialty_id": "cardiology",
        "rating": 4.5,
        "years_experience": 8,
        "services": ["cardio-consult"],
    },
    {
        "id": "dr-pham",
        "name": "Dr. Hoa Pham",
        "specialty_id": "dermatology",
        "rating": 4.7,
        "years_experience": 11,
        "services": ["derm-consult"],
    },
    {
        "id": "dr-le",
        "name": "Dr. Quang Le",
        "specialty_id": "ophthalmology",
        "rating": 4.6,
        "years_experience": 20,
        "services": ["eye-exam"],
    },
]
