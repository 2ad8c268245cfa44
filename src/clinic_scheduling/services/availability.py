"""
Availability Resolver.

Answers the questions each booking step asks (which doctors, which
dates, which services, which slots) by running the slot calculus over
the store's working days and current appointments. Read-only.
"""

import calendar
from datetime import date, datetime, timedelta
from typing import Awaitable, Callable, List, Optional

from loguru import logger

from clinic_scheduling.config import get_settings
from clinic_scheduling.errors import NotFoundError, ValidationError
from clinic_scheduling.models.booking import AvailabilityResult
from clinic_scheduling.models.scheduling import (
    Doctor,
    Service,
    Specialty,
    TimeSlot,
    WorkingDay,
    WorkSession,
)
from clinic_scheduling.scheduling.slots import compute_slots
from clinic_scheduling.services.store import SchedulingStore


def parse_month(month: str) -> tuple:
    """Parse ``YYYY-MM`` into the first and last date of that month."""
    try:
        first = datetime.strptime(month, "%Y-%m").date()
    except ValueError:
        raise ValidationError(f"Month must be formatted YYYY-MM, got {month!r}")
    last = first.replace(day=calendar.monthrange(first.year, first.month)[1])
    return first, last


class AvailabilityResolver:
    """
    Resolves doctor, date, service and slot availability.

    Every query returns an ``AvailabilityResult``. A failure of the
    underlying store yields an UNKNOWN result instead of an empty list,
    so "no data" is never mistaken for "fully booked". Unknown ids and
    malformed input still raise.
    """

    def __init__(
        self,
        store: SchedulingStore,
        granularity_minutes: Optional[int] = None,
        lookahead_days: Optional[int] = None,
        today: Callable[[], date] = date.today,
    ):
        settings = get_settings()
        self._store = store
        self._granularity = (
            granularity_minutes
            if granularity_minutes is not None
            else settings.slot_granularity_minutes
        )
        self._lookahead_days = lookahead_days or settings.working_day_lookahead_days
        self._today = today

    async def _resolve(
        self, query: str, fetch: Callable[[], Awaitable[list]]
    ) -> AvailabilityResult:
        try:
            items = await fetch()
        except (NotFoundError, ValidationError):
            raise
        except Exception as e:
            logger.error(f"Availability unknown for {query}: {e}")
            return AvailabilityResult.unknown(f"Could not resolve {query}: {e}")

        logger.debug(f"Resolved {len(items)} results for {query}")
        return AvailabilityResult.known(items)

    # ========================================================================
    # Internal helpers
    # ========================================================================

    async def _require_doctor(self, doctor_id: str) -> Doctor:
        doctor = await self._store.get_doctor(doctor_id)
        if doctor is None:
            raise NotFoundError(f"Doctor {doctor_id} not found")
        return doctor

    async def _require_service(self, service_id: str) -> Service:
        service = await self._store.get_service(service_id)
        if service is None:
            raise NotFoundError(f"Service {service_id} not found")
        return service

    async def _compute(self, doctor_id: str, service: Service, day: date) -> List[TimeSlot]:
        working_day = await self._store.working_day(doctor_id, day, service.id)
        if not working_day.intervals:
            return []
        booked = await self._store.appointments_for(doctor_id, day)
        return compute_slots(
            working_day.intervals,
            service.duration_minutes,
            booked,
            self._granularity,
        )

    async def _has_any_slot(self, doctor_id: str, day: date) -> bool:
        for service in await self._store.services_on(doctor_id, day):
            if await self._compute(doctor_id, service, day):
                return True
        return False

    async def _annotate(self, doctor: Doctor, sessions: List[WorkSession]) -> Doctor:
        """Attach the day's booth and session bounds to a doctor."""
        update = {
            "work_session_start": min(s.start_time for s in sessions),
            "work_session_end": max(s.end_time for s in sessions),
        }
        booth_id = next((s.booth_id for s in sessions if s.booth_id), None)
        if booth_id:
            booth = await self._store.get_booth(booth_id)
            update["booth_id"] = booth_id
            if booth:
                update["booth_name"] = booth.name
                update["room_name"] = booth.room_name
        return doctor.model_copy(update=update)

    # ========================================================================
    # Queries
    # ========================================================================

    async def list_specialties(self) -> AvailabilityResult[Specialty]:
        return await self._resolve("specialties", self._store.list_specialties)

    async def doctors_in_specialty(self, specialty_id: str) -> AvailabilityResult[Doctor]:
        """Unfiltered roster of a specialty (BY_DOCTOR flow)."""

        async def fetch():
            if await self._store.get_specialty(specialty_id) is None:
                raise NotFoundError(f"Specialty {specialty_id} not found")
            return await self._store.list_doctors(specialty_id)

        return await self._resolve(f"doctors in {specialty_id}", fetch)

    async def doctors_available_on(
        self, specialty_id: str, day: date
    ) -> AvailabilityResult[Doctor]:
        """Doctors of a specialty with at least one free slot on ``day`` (BY_DATE flow)."""

        async def fetch():
            if await self._store.get_specialty(specialty_id) is None:
                raise NotFoundError(f"Specialty {specialty_id} not found")
            available = []
            for doctor in await self._store.list_doctors(specialty_id):
                sessions = await self._store.sessions_on(doctor.id, day)
                if not sessions:
                    continue
                if await self._has_any_slot(doctor.id, day):
                    available.append(await self._annotate(doctor, sessions))
            return available

        return await self._resolve(f"doctors in {specialty_id} on {day}", fetch)

    async def dates_available_for(
        self, doctor_id: str, month: Optional[str] = None
    ) -> AvailabilityResult[WorkingDay]:
        """
        Working days of a doctor that still have a bookable slot.

        Args:
            doctor_id: The doctor to look up
            month: Optional ``YYYY-MM``; defaults to the lookahead window
                starting today

        Returns:
            Working days in ascending order, never before today
        """
        today = self._today()
        if month is None:
            start, end = today, today + timedelta(days=self._lookahead_days)
        else:
            start, end = parse_month(month)
            start = max(start, today)

        async def fetch():
            await self._require_doctor(doctor_id)
            if start > end:
                return []
            return [
                working_day
                for working_day in await self._store.working_days(doctor_id, start, end)
                if await self._has_any_slot(doctor_id, working_day.date)
            ]

        return await self._resolve(f"working days of {doctor_id}", fetch)

    async def services_for(self, doctor_id: str, day: date) -> AvailabilityResult[Service]:
        async def fetch():
            await self._require_doctor(doctor_id)
            return await self._store.services_on(doctor_id, day)

        return await self._resolve(f"services of {doctor_id} on {day}", fetch)

    async def slots_for(
        self, doctor_id: str, service_id: str, day: date
    ) -> AvailabilityResult[TimeSlot]:
        async def fetch():
            await self._require_doctor(doctor_id)
            service = await self._require_service(service_id)
            return await self._compute(doctor_id, service, day)

        return await self._resolve(f"slots of {doctor_id}/{service_id} on {day}", fetch)
