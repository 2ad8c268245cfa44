"""
Scheduling API Server.

A FastAPI-based service exposing availability queries, the appointment
reservation transaction and work-session roster management.
"""

from contextlib import asynccontextmanager
from datetime import date, datetime
from typing import List, Optional

from fastapi import FastAPI, Query, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger
from pydantic import BaseModel

from clinic_scheduling.config import configure_logging, get_settings
from clinic_scheduling.errors import (
    AvailabilityUnknownError,
    ConflictError,
    InvalidStatusTransitionError,
    NotFoundError,
    ValidationError,
    WorkSessionConflictError,
)
from clinic_scheduling.models.booking import (
    AppointmentRequest,
    AppointmentStatusUpdate,
    AvailabilityResult,
    ConflictResult,
    CreateWorkSessionsRequest,
    UpdateWorkSessionRequest,
    ValidateConflictRequest,
)
from clinic_scheduling.models.scheduling import (
    Appointment,
    AppointmentStatus,
    Doctor,
    Service,
    Specialty,
    TimeSlot,
    WorkingDay,
    WorkSession,
)
from clinic_scheduling.services.availability import AvailabilityResolver
from clinic_scheduling.services.locks import KeyedLock
from clinic_scheduling.services.reservation import ReservationService
from clinic_scheduling.services.store import SchedulingStore
from clinic_scheduling.services.work_sessions import WorkSessionService

# ============================================================================
# Response Models
# ============================================================================


class SpecialtiesResponse(BaseModel):
    specialties: List[Specialty]


class DoctorsResponse(BaseModel):
    specialty_id: str
    date: Optional[date]
    doctors: List[Doctor]


class WorkingDaysResponse(BaseModel):
    doctor_id: str
    month: Optional[str] = None
    working_days: List[WorkingDay]


class ServicesResponse(BaseModel):
    doctor_id: str
    date: date
    services: List[Service]


class SlotsResponse(BaseModel):
    doctor_id: str
    service_id: str
    date: date
    slots: List[TimeSlot]


class AppointmentsResponse(BaseModel):
    patient_profile_id: str
    total: int
    appointments: List[Appointment]


class WorkSessionsResponse(BaseModel):
    work_sessions: List[WorkSession]


# ============================================================================
# Engine wiring
# ============================================================================

store = SchedulingStore()
locks = KeyedLock()
resolver = AvailabilityResolver(store)
reservations = ReservationService(store, locks)
work_sessions = WorkSessionService(store, locks)


def _known(result: AvailabilityResult) -> list:
    """Unwrap a result, refusing to present unknown availability as empty."""
    if not result.is_known:
        raise AvailabilityUnknownError(result.reason or "Availability unknown")
    return result.items


# ============================================================================
# FastAPI Application
# ============================================================================


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    # Startup
    configure_logging()
    logger.info(f"Starting Scheduling API Server for {get_settings().clinic_name}")
    if get_settings().seed_sample_data:
        await store.initialize()
    yield
    # Shutdown
    logger.info("Shutting down Scheduling API Server")


app = FastAPI(
    title="Clinic Scheduling API",
    description="API for appointment booking and staff work-session scheduling",
    version="1.0.0",
    lifespan=lifespan,
)

# CORS middleware for cross-origin requests
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(ConflictError)
async def conflict_handler(request: Request, exc: ConflictError):
    return JSONResponse(status_code=status.HTTP_409_CONFLICT, content=exc.to_dict())


@app.exception_handler(WorkSessionConflictError)
async def work_session_conflict_handler(request: Request, exc: WorkSessionConflictError):
    return JSONResponse(
        status_code=status.HTTP_409_CONFLICT,
        content={
            "detail": str(exc),
            "conflicts": [c.model_dump(mode="json") for c in exc.result.conflicts],
        },
    )


@app.exception_handler(InvalidStatusTransitionError)
async def status_transition_handler(request: Request, exc: InvalidStatusTransitionError):
    return JSONResponse(
        status_code=status.HTTP_409_CONFLICT,
        content={
            "detail": str(exc),
            "entity": exc.entity,
            "current": exc.current,
            "requested": exc.requested,
        },
    )


@app.exception_handler(AvailabilityUnknownError)
async def availability_unknown_handler(request: Request, exc: AvailabilityUnknownError):
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE, content={"detail": str(exc)}
    )


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError):
    return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"detail": str(exc)})


@app.exception_handler(ValidationError)
async def validation_handler(request: Request, exc: ValidationError):
    return JSONResponse(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, content={"detail": str(exc)})


# ============================================================================
# Availability Endpoints
# ============================================================================


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "timestamp": datetime.now().isoformat()}


@app.get("/api/v1/specialties", response_model=SpecialtiesResponse)
async def list_specialties():
    return SpecialtiesResponse(specialties=_known(await resolver.list_specialties()))


@app.get("/api/v1/doctors", response_model=DoctorsResponse)
async def list_doctors(
    specialty_id: str = Query(..., description="Specialty to list doctors for"),
    date: Optional[date] = Query(default=None, description="Only doctors free on this date"),
):
    """
    List doctors of a specialty.

    With a date, only doctors with at least one bookable slot that day
    are returned; without one, the whole roster.
    """
    if date is None:
        result = await resolver.doctors_in_specialty(specialty_id)
    else:
        result = await resolver.doctors_available_on(specialty_id, date)
    return DoctorsResponse(specialty_id=specialty_id, date=date, doctors=_known(result))


@app.get("/api/v1/doctors/{doctor_id}/working-days", response_model=WorkingDaysResponse)
async def list_working_days(
    doctor_id: str,
    month: Optional[str] = Query(default=None, description="Month as YYYY-MM"),
):
    result = await resolver.dates_available_for(doctor_id, month)
    return WorkingDaysResponse(doctor_id=doctor_id, month=month, working_days=_known(result))


@app.get("/api/v1/doctors/{doctor_id}/services", response_model=ServicesResponse)
async def list_services(doctor_id: str, date: date = Query(...)):
    result = await resolver.services_for(doctor_id, date)
    return ServicesResponse(doctor_id=doctor_id, date=date, services=_known(result))


@app.get("/api/v1/doctors/{doctor_id}/slots", response_model=SlotsResponse)
async def list_slots(doctor_id: str, service_id: str = Query(...), date: date = Query(...)):
    result = await resolver.slots_for(doctor_id, service_id, date)
    return SlotsResponse(
        doctor_id=doctor_id, service_id=service_id, date=date, slots=_known(result)
    )


# ============================================================================
# Appointment Endpoints
# ============================================================================


@app.post(
    "/api/v1/appointments",
    response_model=Appointment,
    status_code=status.HTTP_201_CREATED,
)
async def create_appointment(request: AppointmentRequest):
    """
    Reserve a slot.

    Re-validates against the doctor's current appointments; a taken slot
    answers 409 with the conflicting date and interval.
    """
    return await reservations.reserve(
        doctor_id=request.doctor_id,
        service_id=request.service_id,
        day=request.date,
        slot=TimeSlot(start_time=request.start_time, end_time=request.end_time),
        patient_profile_id=request.patient_profile_id,
    )


@app.get(
    "/api/v1/patient-profiles/{patient_profile_id}/appointments",
    response_model=AppointmentsResponse,
)
async def list_patient_appointments(patient_profile_id: str):
    appointments = await reservations.appointments_for_patient(patient_profile_id)
    return AppointmentsResponse(
        patient_profile_id=patient_profile_id,
        total=len(appointments),
        appointments=appointments,
    )


@app.post("/api/v1/appointments/{appointment_id}/cancel", response_model=Appointment)
async def cancel_appointment(appointment_id: str):
    return await reservations.cancel(appointment_id)


@app.patch("/api/v1/appointments/{appointment_id}", response_model=Appointment)
async def update_appointment_status(appointment_id: str, update: AppointmentStatusUpdate):
    try:
        new_status = AppointmentStatus(update.status)
    except ValueError:
        raise ValidationError(f"Unknown appointment status {update.status!r}")
    return await reservations.update_status(appointment_id, new_status)


# ============================================================================
# Work Session Endpoints
# ============================================================================


@app.get("/api/v1/work-sessions", response_model=WorkSessionsResponse)
async def list_work_sessions(
    staff_id: str = Query(...),
    start_date: Optional[datetime] = Query(default=None),
    end_date: Optional[datetime] = Query(default=None),
):
    sessions = await work_sessions.sessions_for_staff(staff_id, start_date, end_date)
    return WorkSessionsResponse(work_sessions=sessions)


@app.post(
    "/api/v1/work-sessions",
    response_model=WorkSessionsResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_work_sessions(request: CreateWorkSessionsRequest):
    sessions = await work_sessions.create_sessions(
        staff_id=request.staff_id,
        drafts=request.work_sessions,
        staff_type=request.staff_type,
        booth_id=request.booth_id,
    )
    return WorkSessionsResponse(work_sessions=sessions)


@app.post("/api/v1/work-sessions/validate", response_model=ConflictResult)
async def validate_work_sessions(request: ValidateConflictRequest):
    """Advisory conflict check; nothing is written."""
    return await work_sessions.validate(
        request.staff_id, request.work_sessions, request.exclude_id
    )


@app.patch("/api/v1/work-sessions/{session_id}", response_model=WorkSession)
async def update_work_session(session_id: str, update: UpdateWorkSessionRequest):
    return await work_sessions.update_session(
        session_id,
        start_time=update.start_time,
        end_time=update.end_time,
        service_ids=update.service_ids,
        status=update.status,
        booth_id=update.booth_id,
    )


@app.delete("/api/v1/work-sessions/{session_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_work_session(session_id: str):
    await work_sessions.delete_session(session_id)


# ============================================================================
# Run Server
# ============================================================================


def run_server(host: str = "0.0.0.0", port: int = 8080):
    """Run the scheduling API server."""
    import uvicorn

    # Per-doctor locks live in process memory; one worker keeps them authoritative.
    uvicorn.run(
        "clinic_scheduling.api.scheduling_server:app",
        host=host,
        port=port,
        reload=False,
        workers=1,
        loop="uvloop",  # High-performance event loop
        http="httptools",  # Fast HTTP parser
    )


if __name__ == "__main__":
    run_server()
