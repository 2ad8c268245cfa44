"""
Reservation Service - the authoritative appointment commit.

Client-observed availability may be stale, so every reservation
re-reads the doctor's current appointments and re-checks overlap
while holding that doctor's lock. Reservations for different doctors
never wait on each other.
"""

from datetime import date
from typing import List, Optional
from uuid import uuid4

from loguru import logger

from clinic_scheduling.errors import (
    ConflictError,
    InvalidIntervalError,
    InvalidStatusTransitionError,
    NotFoundError,
    ValidationError,
)
from clinic_scheduling.models.scheduling import Appointment, AppointmentStatus, TimeSlot
from clinic_scheduling.scheduling.overlap import find_conflicts
from clinic_scheduling.services.locks import KeyedLock
from clinic_scheduling.services.store import SchedulingStore


def generate_appointment_code(day: date) -> str:
    return f"APT-{day.strftime('%Y%m%d')}-{uuid4().hex[:6].upper()}"


class ReservationService:
    """
    Commits appointments and drives their status lifecycle.

    This is the only writer of appointments.
    """

    def __init__(self, store: SchedulingStore, locks: Optional[KeyedLock] = None):
        self._store = store
        self._locks = locks or KeyedLock()

    async def reserve(
        self,
        doctor_id: str,
        service_id: str,
        day: date,
        slot: TimeSlot,
        patient_profile_id: str,
    ) -> Appointment:
        """
        Reserve a slot for a patient.

        Args:
            doctor_id: Doctor performing the service
            service_id: Service being booked
            day: Appointment date
            slot: The [start_time, end_time) window to reserve
            patient_profile_id: Patient profile the appointment belongs to

        Returns:
            The committed PENDING appointment

        Raises:
            ConflictError: the slot overlaps a current appointment of the doctor
            NotFoundError: unknown doctor or service
            ValidationError: malformed slot or slot outside working hours
        """
        if slot.start_time >= slot.end_time:
            raise InvalidIntervalError(
                f"Slot start {slot.start_time} must be before end {slot.end_time}"
            )
        if not patient_profile_id:
            raise ValidationError("A patient profile is required to book")

        async with self._locks.hold(doctor_id):
            if await self._store.get_doctor(doctor_id) is None:
                raise NotFoundError(f"Doctor {doctor_id} not found")
            service = await self._store.get_service(service_id)
            if service is None:
                raise NotFoundError(f"Service {service_id} not found")
            if slot.duration_minutes != service.duration_minutes:
                raise ValidationError(
                    f"Slot lasts {slot.duration_minutes} minutes but {service.name} "
                    f"takes {service.duration_minutes}"
                )

            working_day = await self._store.working_day(doctor_id, day, service_id)
            if not any(
                interval.start_time <= slot.start_time and slot.end_time <= interval.end_time
                for interval in working_day.intervals
            ):
                raise ValidationError(
                    f"Slot {slot.start_time}-{slot.end_time} is outside the working "
                    f"hours of {doctor_id} on {day.isoformat()}"
                )

            current = await self._store.appointments_for(doctor_id, day)
            conflicts = find_conflicts(slot, current)
            if conflicts:
                taken = conflicts[0]
                logger.warning(
                    f"Reservation conflict for {doctor_id} on {day.isoformat()} "
                    f"{slot.start_time}-{slot.end_time}: {[c.id for c in conflicts]}"
                )
                raise ConflictError(
                    date=day,
                    start_time=taken.start_time,
                    end_time=taken.end_time,
                    conflicting_ids=[c.id for c in conflicts],
                )

            appointment = await self._store.insert_appointment(
                Appointment(
                    code=generate_appointment_code(day),
                    patient_profile_id=patient_profile_id,
                    doctor_id=doctor_id,
                    service_id=service_id,
                    date=day,
                    start_time=slot.start_time,
                    end_time=slot.end_time,
                )
            )

        logger.info("=" * 60)
        logger.info("APPOINTMENT BOOKING LOG")
        logger.info("=" * 60)
        logger.info(f"Appointment: {appointment.id} ({appointment.code})")
        logger.info(f"Patient profile: {patient_profile_id}")
        logger.info(f"Doctor: {doctor_id}")
        logger.info(f"Service: {service.name} ({service.duration_minutes} minutes)")
        logger.info(f"Date/Time: {day.isoformat()} {slot.start_time.strftime('%H:%M')}")
        logger.info("=" * 60)

        return appointment

    async def update_status(
        self, appointment_id: str, status: AppointmentStatus
    ) -> Appointment:
        """Move an appointment forward; CANCELLED and COMPLETED are final."""
        appointment = await self._store.get_appointment(appointment_id)
        if appointment is None:
            raise NotFoundError(f"Appointment {appointment_id} not found")

        async with self._locks.hold(appointment.doctor_id):
            appointment = await self._store.get_appointment(appointment_id)
            if appointment.status == status:
                return appointment
            if not appointment.status.can_transition_to(status):
                raise InvalidStatusTransitionError(
                    "appointment", appointment.status.value, status.value
                )
            updated = await self._store.replace_appointment(
                appointment.model_copy(update={"status": status})
            )

        logger.info(f"Appointment {appointment_id}: {appointment.status.value} -> {status.value}")
        return updated

    async def cancel(self, appointment_id: str) -> Appointment:
        return await self.update_status(appointment_id, AppointmentStatus.CANCELLED)

    async def appointments_for_patient(self, patient_profile_id: str) -> List[Appointment]:
        return await self._store.appointments_for_patient(patient_profile_id)

    async def appointments_for_doctor(
        self, doctor_id: str, day: Optional[date] = None
    ) -> List[Appointment]:
        return await self._store.appointments_for(doctor_id, day, include_cancelled=True)
