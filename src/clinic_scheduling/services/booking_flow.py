"""
Booking Flow - the six-step appointment wizard.

One ``BookingFlow`` is created per booking attempt and owned by that
session alone. The flow type decides whether the date or the doctor
is chosen first; the step count is six either way.

Selecting a value at a step clears every later selection and its
cached candidates, so a slot chosen for one doctor can never survive
a change of doctor. Availability responses that arrive after the
selections they were computed for have changed are dropped.
"""

from datetime import date
from typing import Awaitable, Callable, Dict, Optional, Tuple

from loguru import logger

from clinic_scheduling.config import BOOKING_STEP_COUNT, BOOKING_STEP_LABELS
from clinic_scheduling.errors import IncompleteSelectionError, SchedulingError
from clinic_scheduling.models.booking import (
    STEP_ORDER,
    AvailabilityResult,
    BookingFlowState,
    BookingFlowType,
    BookingStep,
)
from clinic_scheduling.models.scheduling import Appointment, Doctor, Service, Specialty, TimeSlot

SELECTION_FIELDS: Dict[BookingStep, str] = {
    BookingStep.SPECIALTY: "selected_specialty",
    BookingStep.DATE: "selected_date",
    BookingStep.DOCTOR: "selected_doctor",
    BookingStep.SERVICE: "selected_service",
    BookingStep.SLOT: "selected_slot",
}

CANDIDATE_FIELDS: Dict[BookingStep, str] = {
    BookingStep.DATE: "working_days",
    BookingStep.DOCTOR: "available_doctors",
    BookingStep.SERVICE: "available_services",
    BookingStep.SLOT: "available_slots",
}

UNKNOWN_AVAILABILITY_MESSAGE = "Availability could not be loaded, please try again."


class BookingFlow:
    """
    Session-scoped booking state machine.

    Args:
        resolver: Availability source (``AvailabilityResolver`` or
            ``SchedulingClient``)
        reservations: Reservation committer exposing ``reserve``
            (``ReservationService`` or ``SchedulingClient``)
        flow_type: Initial step order
    """

    def __init__(
        self,
        resolver,
        reservations,
        flow_type: BookingFlowType = BookingFlowType.BY_DATE,
    ):
        self._resolver = resolver
        self._reservations = reservations
        self._state = BookingFlowState(flow_type=flow_type)
        self._generation = 0

    # ========================================================================
    # Introspection
    # ========================================================================

    @property
    def state(self) -> BookingFlowState:
        return self._state

    @property
    def flow_type(self) -> BookingFlowType:
        return self._state.flow_type

    @property
    def current_step(self) -> int:
        return self._state.current_step

    @property
    def steps(self) -> Tuple[BookingStep, ...]:
        return STEP_ORDER[self._state.flow_type]

    @property
    def step(self) -> BookingStep:
        return self.steps[self._state.current_step - 1]

    @property
    def step_label(self) -> str:
        return BOOKING_STEP_LABELS[self._state.current_step - 1]["name"]

    def step_index(self, step: BookingStep) -> int:
        """1-based position of ``step`` in the current flow."""
        return self.steps.index(step) + 1

    def selection(self, step: BookingStep):
        field = SELECTION_FIELDS.get(step)
        return getattr(self._state, field) if field else None

    def _missing_before(self, index: int) -> Optional[BookingStep]:
        for step in self.steps[: index - 1]:
            if self.selection(step) is None:
                return step
        return None

    def _require(self, step: BookingStep) -> None:
        missing = self._missing_before(self.step_index(step))
        if missing is not None:
            raise IncompleteSelectionError(
                f"Choose a {missing.value.lower()} before the {step.value.lower()} step"
            )

    @property
    def can_advance(self) -> bool:
        if self.step == BookingStep.CONFIRM:
            return False
        return self.selection(self.step) is not None

    # ========================================================================
    # Navigation
    # ========================================================================

    def _restart(self, flow_type: BookingFlowType) -> None:
        self._state = BookingFlowState(flow_type=flow_type)
        self._generation += 1

    def set_flow_type(self, flow_type: BookingFlowType) -> None:
        """Switch the step order; always restarts from step 1."""
        logger.debug(f"Booking flow switched to {flow_type.value}")
        self._restart(flow_type)

    def reset(self) -> None:
        """Discard everything and return to the default flow."""
        self._restart(BookingFlowType.BY_DATE)

    def cancel(self) -> None:
        """Abandon the current attempt, keeping the chosen flow type."""
        self._restart(self._state.flow_type)

    def next_step(self) -> int:
        if self.step == BookingStep.CONFIRM:
            return self._state.current_step
        if self.selection(self.step) is None:
            raise IncompleteSelectionError(
                f"Choose a {self.step.value.lower()} before continuing"
            )
        self._state.current_step += 1
        return self._state.current_step

    def prev_step(self) -> int:
        """Step back without clearing anything."""
        self._state.current_step = max(self._state.current_step - 1, 1)
        return self._state.current_step

    def go_to_step(self, step: int) -> int:
        if not 1 <= step <= BOOKING_STEP_COUNT:
            raise IncompleteSelectionError(f"Step must be between 1 and {BOOKING_STEP_COUNT}")
        missing = self._missing_before(step)
        if missing is not None:
            raise IncompleteSelectionError(
                f"Choose a {missing.value.lower()} before going to step {step}"
            )
        self._state.current_step = step
        return step

    # ========================================================================
    # Selections
    # ========================================================================

    def _select(self, step: BookingStep, value) -> None:
        if value is None:
            raise IncompleteSelectionError(f"A {step.value.lower()} must be chosen")

        index = self.step_index(step)
        if index > self._state.current_step:
            raise IncompleteSelectionError(
                f"The {step.value.lower()} step has not been reached yet"
            )
        self._require(step)

        setattr(self._state, SELECTION_FIELDS[step], value)
        for later in self.steps[index:]:
            if later in SELECTION_FIELDS:
                setattr(self._state, SELECTION_FIELDS[later], None)
            if later in CANDIDATE_FIELDS:
                setattr(self._state, CANDIDATE_FIELDS[later], [])

        self._state.error = None
        self._state.success = None
        self._state.loading = False
        self._state.current_step = min(index + 1, BOOKING_STEP_COUNT)
        self._generation += 1
        logger.debug(f"Selected {step.value} -> step {self._state.current_step}")

    def select_specialty(self, specialty: Specialty) -> None:
        self._select(BookingStep.SPECIALTY, specialty)

    def select_date(self, day: date) -> None:
        self._select(BookingStep.DATE, day)

    def select_doctor(self, doctor: Doctor) -> None:
        self._select(BookingStep.DOCTOR, doctor)

    def select_service(self, service: Service) -> None:
        self._select(BookingStep.SERVICE, service)

    def select_slot(self, slot: TimeSlot) -> None:
        self._select(BookingStep.SLOT, slot)

    # ========================================================================
    # Candidate loading
    # ========================================================================

    async def _load(
        self,
        name: str,
        field: str,
        fetch: Callable[[], Awaitable[AvailabilityResult]],
    ) -> AvailabilityResult:
        generation = self._generation
        self._state.loading = True
        self._state.error = None
        try:
            result = await fetch()
        finally:
            if generation == self._generation:
                self._state.loading = False

        if generation != self._generation:
            logger.debug(f"Discarding stale {name} response")
            return result

        if result.is_known:
            setattr(self._state, field, result.items)
        else:
            logger.warning(f"Could not load {name}: {result.reason}")
            self._state.error = UNKNOWN_AVAILABILITY_MESSAGE
        return result

    async def load_specialties(self) -> AvailabilityResult:
        return await self._load("specialties", "specialties", self._resolver.list_specialties)

    async def load_doctors(self) -> AvailabilityResult:
        """BY_DATE: doctors free on the chosen date. BY_DOCTOR: the whole specialty."""
        self._require(BookingStep.DOCTOR)
        specialty_id = self._state.selected_specialty.id
        if self.flow_type == BookingFlowType.BY_DATE:
            day = self._state.selected_date
            return await self._load(
                "doctors",
                "available_doctors",
                lambda: self._resolver.doctors_available_on(specialty_id, day),
            )
        return await self._load(
            "doctors",
            "available_doctors",
            lambda: self._resolver.doctors_in_specialty(specialty_id),
        )

    async def load_working_days(self, month: Optional[str] = None) -> AvailabilityResult:
        if self._state.selected_doctor is None:
            raise IncompleteSelectionError("Choose a doctor before loading working days")
        doctor_id = self._state.selected_doctor.id
        return await self._load(
            "working days",
            "working_days",
            lambda: self._resolver.dates_available_for(doctor_id, month),
        )

    async def load_services(self) -> AvailabilityResult:
        self._require(BookingStep.SERVICE)
        doctor_id = self._state.selected_doctor.id
        day = self._state.selected_date
        return await self._load(
            "services",
            "available_services",
            lambda: self._resolver.services_for(doctor_id, day),
        )

    async def load_slots(self) -> AvailabilityResult:
        self._require(BookingStep.SLOT)
        doctor_id = self._state.selected_doctor.id
        service_id = self._state.selected_service.id
        day = self._state.selected_date
        return await self._load(
            "slots",
            "available_slots",
            lambda: self._resolver.slots_for(doctor_id, service_id, day),
        )

    async def load_current_step(self) -> Optional[AvailabilityResult]:
        """Load the candidates the current step chooses from, if it has any."""
        step = self.step
        if step == BookingStep.SPECIALTY:
            return await self.load_specialties()
        if step == BookingStep.DOCTOR:
            return await self.load_doctors()
        if step == BookingStep.DATE and self.flow_type == BookingFlowType.BY_DOCTOR:
            return await self.load_working_days()
        if step == BookingStep.SERVICE:
            return await self.load_services()
        if step == BookingStep.SLOT:
            return await self.load_slots()
        return None

    # ========================================================================
    # Confirmation
    # ========================================================================

    async def confirm(self, patient_profile_id: str) -> Appointment:
        """
        Submit the booking.

        On success the flow restarts (keeping its flow type). On a conflict
        or transport failure the error is re-raised and every selection is
        kept so the user can pick another slot or retry.
        """
        if self.step != BookingStep.CONFIRM:
            raise IncompleteSelectionError("Booking can only be confirmed at the last step")
        self._require(BookingStep.CONFIRM)

        state = self._state
        generation = self._generation
        state.loading = True
        state.error = None
        try:
            appointment = await self._reservations.reserve(
                doctor_id=state.selected_doctor.id,
                service_id=state.selected_service.id,
                day=state.selected_date,
                slot=state.selected_slot,
                patient_profile_id=patient_profile_id,
            )
        except SchedulingError as e:
            # Conflicts keep their interval in the message
            state.error = str(e)
            raise
        finally:
            state.loading = False

        logger.info(f"Booking flow confirmed appointment {appointment.code}")
        if generation == self._generation:
            self._restart(state.flow_type)
            self._state.success = f"Appointment {appointment.code} booked"
        return appointment
