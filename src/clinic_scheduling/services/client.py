"""
Scheduling Client - async client for the scheduling API.

Exposes the same query and reservation methods as the in-process
resolver and reservation service, so a ``BookingFlow`` can run against
either. Read failures become UNKNOWN availability; a 409 on a write
becomes the matching conflict error with the taken interval.
"""

from datetime import date, datetime, time
from typing import Any, List, Optional, Type

import httpx
from loguru import logger
from pydantic import BaseModel
from pydantic import ValidationError as ModelValidationError

from clinic_scheduling.config import get_settings
from clinic_scheduling.errors import (
    ConflictError,
    InvalidStatusTransitionError,
    NotFoundError,
    TransportError,
    ValidationError,
    WorkSessionConflictError,
)
from clinic_scheduling.models.booking import (
    AvailabilityResult,
    ConflictResult,
    WorkSessionDraft,
)
from clinic_scheduling.models.scheduling import (
    Appointment,
    Doctor,
    Service,
    Specialty,
    StaffType,
    TimeSlot,
    WorkingDay,
    WorkSession,
    WorkSessionStatus,
)


def _detail(response: httpx.Response) -> str:
    try:
        return str(response.json().get("detail", response.text))
    except (ValueError, AttributeError):
        return response.text


class SchedulingClient:
    """
    Async client for the scheduling API.

    Implements connection pooling for efficient concurrent requests.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.settings = get_settings()
        self._base_url = base_url or self.settings.scheduling_api_url
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client with connection pooling."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self._base_url,
                timeout=httpx.Timeout(self.settings.scheduling_api_timeout),
                limits=httpx.Limits(
                    max_connections=self.settings.connection_pool_size,
                    max_keepalive_connections=self.settings.connection_pool_size // 2,
                ),
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "SchedulingClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    # ========================================================================
    # Reads
    # ========================================================================

    async def _query(
        self, path: str, key: str, model, params: Optional[dict] = None
    ) -> AvailabilityResult:
        client = await self._get_client()
        try:
            response = await client.get(path, params=params)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            status_code = e.response.status_code
            if status_code == 404:
                raise NotFoundError(_detail(e.response))
            if status_code == 422:
                raise ValidationError(_detail(e.response))
            logger.error(f"HTTP error fetching {path}: {e}")
            return AvailabilityResult.unknown(f"{path} returned {status_code}")
        except httpx.RequestError as e:
            logger.error(f"Request error fetching {path}: {e}")
            return AvailabilityResult.unknown(f"{path} unreachable: {e}")

        try:
            data = response.json()
            items = [model(**item) for item in data.get(key, [])]
        except (ValueError, TypeError, AttributeError, ModelValidationError) as e:
            logger.error(f"Malformed response from {path}: {e}")
            return AvailabilityResult.unknown(f"{path} returned an unreadable body")

        logger.info(f"Fetched {len(items)} {key} from {path}")
        return AvailabilityResult.known(items)

    async def list_specialties(self) -> AvailabilityResult:
        return await self._query("/api/v1/specialties", "specialties", Specialty)

    async def doctors_in_specialty(self, specialty_id: str) -> AvailabilityResult:
        return await self._query(
            "/api/v1/doctors", "doctors", Doctor, {"specialty_id": specialty_id}
        )

    async def doctors_available_on(self, specialty_id: str, day: date) -> AvailabilityResult:
        return await self._query(
            "/api/v1/doctors",
            "doctors",
            Doctor,
            {"specialty_id": specialty_id, "date": day.isoformat()},
        )

    async def dates_available_for(
        self, doctor_id: str, month: Optional[str] = None
    ) -> AvailabilityResult:
        params = {"month": month} if month else None
        return await self._query(
            f"/api/v1/doctors/{doctor_id}/working-days", "working_days", WorkingDay, params
        )

    async def services_for(self, doctor_id: str, day: date) -> AvailabilityResult:
        return await self._query(
            f"/api/v1/doctors/{doctor_id}/services",
            "services",
            Service,
            {"date": day.isoformat()},
        )

    async def slots_for(self, doctor_id: str, service_id: str, day: date) -> AvailabilityResult:
        return await self._query(
            f"/api/v1/doctors/{doctor_id}/slots",
            "slots",
            TimeSlot,
            {"service_id": service_id, "date": day.isoformat()},
        )

    async def appointments_for_patient(self, patient_profile_id: str) -> List[Appointment]:
        return await self._send(
            "GET",
            f"/api/v1/patient-profiles/{patient_profile_id}/appointments",
            Appointment,
            "appointments",
        )

    async def work_sessions_for_staff(
        self,
        staff_id: str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> List[WorkSession]:
        params = {"staff_id": staff_id}
        if start:
            params["start_date"] = start.isoformat()
        if end:
            params["end_date"] = end.isoformat()
        return await self._send(
            "GET", "/api/v1/work-sessions", WorkSession, "work_sessions", params=params
        )

    # ========================================================================
    # Writes
    # ========================================================================

    async def _send(
        self,
        method: str,
        path: str,
        model: Optional[Type[BaseModel]] = None,
        key: Optional[str] = None,
        **kwargs,
    ) -> Any:
        """Send a write or listing request and build `model` from the body.

        With `key`, the body holds a list of models under that key.
        """
        client = await self._get_client()
        try:
            response = await client.request(method, path, **kwargs)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            self._raise_for(e.response)
        except httpx.RequestError as e:
            logger.error(f"Request error calling {method} {path}: {e}")
            raise TransportError(f"{method} {path} failed: {e}") from e

        if response.status_code == 204 or not response.content:
            return None
        try:
            data = response.json()
            if model is None:
                return data
            if key is None:
                return model(**data)
            return [model(**item) for item in data.get(key, [])]
        except (ValueError, TypeError, AttributeError, ModelValidationError) as e:
            logger.error(f"Malformed response from {method} {path}: {e}")
            raise TransportError(f"{method} {path} returned an unreadable body") from e

    @staticmethod
    def _raise_for(response: httpx.Response) -> None:
        status_code = response.status_code
        if status_code == 409:
            try:
                body = response.json()
                if "conflicts" in body:
                    error = WorkSessionConflictError(
                        ConflictResult(
                            has_conflict=True,
                            conflicts=body["conflicts"],
                            message=body.get("detail"),
                        )
                    )
                elif "start_time" in body:
                    error = ConflictError(
                        date=date.fromisoformat(body["date"]),
                        start_time=time.fromisoformat(body["start_time"]),
                        end_time=time.fromisoformat(body["end_time"]),
                        conflicting_ids=body.get("conflicting_ids", []),
                    )
                else:
                    error = InvalidStatusTransitionError(
                        body.get("entity", "resource"),
                        body.get("current", "?"),
                        body.get("requested", "?"),
                    )
            except (ValueError, TypeError, KeyError, AttributeError, ModelValidationError) as e:
                logger.error(f"Unreadable conflict response: {e}")
                raise TransportError("Scheduling API returned an unreadable conflict") from e
            raise error
        if status_code == 404:
            raise NotFoundError(_detail(response))
        if status_code in (400, 422):
            raise ValidationError(_detail(response))
        logger.error(f"Scheduling API error {status_code}: {_detail(response)}")
        raise TransportError(f"Scheduling API returned {status_code}")

    async def reserve(
        self,
        doctor_id: str,
        service_id: str,
        day: date,
        slot: TimeSlot,
        patient_profile_id: str,
    ) -> Appointment:
        return await self._send(
            "POST",
            "/api/v1/appointments",
            Appointment,
            json={
                "patient_profile_id": patient_profile_id,
                "doctor_id": doctor_id,
                "service_id": service_id,
                "date": day.isoformat(),
                "start_time": slot.start_time.strftime("%H:%M"),
                "end_time": slot.end_time.strftime("%H:%M"),
            },
        )

    async def cancel_appointment(self, appointment_id: str) -> Appointment:
        return await self._send(
            "POST", f"/api/v1/appointments/{appointment_id}/cancel", Appointment
        )

    async def create_work_sessions(
        self,
        staff_id: str,
        drafts: List[WorkSessionDraft],
        staff_type: StaffType = StaffType.DOCTOR,
        booth_id: Optional[str] = None,
    ) -> List[WorkSession]:
        return await self._send(
            "POST",
            "/api/v1/work-sessions",
            WorkSession,
            "work_sessions",
            json={
                "staff_id": staff_id,
                "staff_type": staff_type.value,
                "booth_id": booth_id,
                "work_sessions": [draft.model_dump(mode="json") for draft in drafts],
            },
        )

    async def update_work_session(
        self,
        session_id: str,
        start_time: Optional[datetime] = None,
        end_time: Optional[datetime] = None,
        service_ids: Optional[List[str]] = None,
        status: Optional[WorkSessionStatus] = None,
    ) -> WorkSession:
        payload = {}
        if start_time is not None:
            payload["start_time"] = start_time.isoformat()
        if end_time is not None:
            payload["end_time"] = end_time.isoformat()
        if service_ids is not None:
            payload["service_ids"] = service_ids
        if status is not None:
            payload["status"] = status.value
        return await self._send(
            "PATCH", f"/api/v1/work-sessions/{session_id}", WorkSession, json=payload
        )

    async def delete_work_session(self, session_id: str) -> None:
        await self._send("DELETE", f"/api/v1/work-sessions/{session_id}")
