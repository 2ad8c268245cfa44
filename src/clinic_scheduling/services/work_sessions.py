"""
Work-Session Service - staff roster writes guarded against overlap.

Uses the same overlap validator as slot calculation and reservations,
keyed on the staff member and over full timestamps.
"""

from datetime import date, datetime
from typing import Iterable, List, Optional

from loguru import logger

from clinic_scheduling.errors import (
    InvalidIntervalError,
    InvalidStatusTransitionError,
    NotFoundError,
    ValidationError,
    WorkSessionConflictError,
)
from clinic_scheduling.models.booking import ConflictResult, WorkSessionConflict, WorkSessionDraft
from clinic_scheduling.models.scheduling import (
    StaffType,
    WorkSession,
    WorkSessionStatus,
    to_local_naive,
)
from clinic_scheduling.scheduling.overlap import find_conflicts
from clinic_scheduling.services.locks import KeyedLock
from clinic_scheduling.services.store import SchedulingStore


class WorkSessionGuard:
    """Pure conflict check for a candidate work session."""

    @staticmethod
    def validate(
        candidate,
        existing_sessions: Iterable[WorkSession],
        exclude_id: Optional[str] = None,
    ) -> ConflictResult:
        conflicts = [
            WorkSessionConflict(
                id=session.id,
                start_time=session.start_time,
                end_time=session.end_time,
                service_ids=list(session.service_ids),
            )
            for session in find_conflicts(candidate, existing_sessions, exclude_id)
        ]
        return ConflictResult(
            has_conflict=bool(conflicts),
            conflicts=conflicts,
            message=(
                f"{len(conflicts)} work session(s) overlap this time range"
                if conflicts
                else None
            ),
        )


def _check_range(start_time: datetime, end_time: datetime) -> None:
    if start_time >= end_time:
        raise InvalidIntervalError(
            f"Work session start {start_time.isoformat()} must be before end "
            f"{end_time.isoformat()}"
        )


class WorkSessionService:
    """
    Creates, edits and removes work sessions.

    All writes for one staff member are serialized; different staff
    members proceed in parallel.
    """

    def __init__(self, store: SchedulingStore, locks: Optional[KeyedLock] = None):
        self._store = store
        self._locks = locks or KeyedLock()
        self._guard = WorkSessionGuard()

    async def validate(
        self,
        staff_id: str,
        drafts: List[WorkSessionDraft],
        exclude_id: Optional[str] = None,
    ) -> ConflictResult:
        """Advisory check of drafts against stored sessions and each other."""
        existing = await self._store.sessions_for_staff(staff_id)
        conflicts: List[WorkSessionConflict] = []
        accepted: List[WorkSession] = []
        for draft in drafts:
            _check_range(draft.start_time, draft.end_time)
            result = self._guard.validate(draft, [*existing, *accepted], exclude_id)
            conflicts.extend(c for c in result.conflicts if c not in conflicts)
            accepted.append(
                WorkSession(
                    id=f"draft-{len(accepted)}",
                    staff_id=staff_id,
                    start_time=draft.start_time,
                    end_time=draft.end_time,
                    service_ids=list(draft.service_ids),
                )
            )
        return ConflictResult(
            has_conflict=bool(conflicts),
            conflicts=conflicts,
            message=(
                f"{len(conflicts)} work session(s) overlap this time range"
                if conflicts
                else None
            ),
        )

    async def create_sessions(
        self,
        staff_id: str,
        drafts: List[WorkSessionDraft],
        staff_type: StaffType = StaffType.DOCTOR,
        booth_id: Optional[str] = None,
    ) -> List[WorkSession]:
        """
        Create a batch of sessions for one staff member.

        The batch is all or nothing: any overlap with a stored session or
        with another draft of the batch rejects every draft.
        """
        if not drafts:
            raise ValidationError("At least one work session is required")
        if booth_id and await self._store.get_booth(booth_id) is None:
            raise NotFoundError(f"Booth {booth_id} not found")

        async with self._locks.hold(staff_id):
            result = await self.validate(staff_id, drafts)
            if result.has_conflict:
                logger.warning(f"Work session conflict for {staff_id}: {result.message}")
                raise WorkSessionConflictError(result)

            sessions = [
                WorkSession(
                    staff_id=staff_id,
                    staff_type=staff_type,
                    booth_id=booth_id,
                    start_time=draft.start_time,
                    end_time=draft.end_time,
                    service_ids=list(draft.service_ids),
                )
                for draft in drafts
            ]
            await self._store.insert_work_sessions(sessions)

        logger.info(f"Created {len(sessions)} work session(s) for {staff_id}")
        return sessions

    async def update_session(
        self,
        session_id: str,
        start_time: Optional[datetime] = None,
        end_time: Optional[datetime] = None,
        service_ids: Optional[List[str]] = None,
        status: Optional[WorkSessionStatus] = None,
        booth_id: Optional[str] = None,
    ) -> WorkSession:
        """Edit a session; a new time range never conflicts with the session itself."""
        session = await self._store.get_work_session(session_id)
        if session is None:
            raise NotFoundError(f"Work session {session_id} not found")

        async with self._locks.hold(session.staff_id):
            session = await self._store.get_work_session(session_id)
            if session is None:
                raise NotFoundError(f"Work session {session_id} not found")

            update = {}
            if status is not None and status != session.status:
                if not session.status.can_transition_to(status):
                    raise InvalidStatusTransitionError(
                        "work session", session.status.value, status.value
                    )
                update["status"] = status

            if start_time is not None or end_time is not None:
                new_start = to_local_naive(start_time) or session.start_time
                new_end = to_local_naive(end_time) or session.end_time
                _check_range(new_start, new_end)
                effective_status = update.get("status", session.status)
                if effective_status != WorkSessionStatus.CANCELED:
                    existing = await self._store.sessions_for_staff(session.staff_id)
                    draft = WorkSessionDraft(start_time=new_start, end_time=new_end)
                    result = self._guard.validate(draft, existing, exclude_id=session_id)
                    if result.has_conflict:
                        logger.warning(
                            f"Work session conflict updating {session_id}: {result.message}"
                        )
                        raise WorkSessionConflictError(result)
                update["start_time"] = new_start
                update["end_time"] = new_end

            if service_ids is not None:
                update["service_ids"] = list(service_ids)
            if booth_id is not None:
                if await self._store.get_booth(booth_id) is None:
                    raise NotFoundError(f"Booth {booth_id} not found")
                update["booth_id"] = booth_id

            if not update:
                return session

            update["updated_at"] = datetime.now()
            updated = await self._store.replace_work_session(session.model_copy(update=update))

        logger.info(f"Updated work session {session_id}: {sorted(update)}")
        return updated

    async def delete_session(self, session_id: str) -> None:
        session = await self._store.get_work_session(session_id)
        if session is None:
            raise NotFoundError(f"Work session {session_id} not found")

        async with self._locks.hold(session.staff_id):
            await self._store.delete_work_session(session_id)
        logger.info(f"Deleted work session {session_id}")

    async def sessions_for_staff(
        self,
        staff_id: str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        include_cancelled: bool = True,
    ) -> List[WorkSession]:
        start, end = to_local_naive(start), to_local_naive(end)
        sessions = await self._store.sessions_for_staff(staff_id, include_cancelled)
        return [
            session
            for session in sessions
            if (start is None or session.end_time > start)
            and (end is None or session.start_time < end)
        ]

    async def sessions_on(self, staff_id: str, day: date) -> List[WorkSession]:
        return await self._store.sessions_on(staff_id, day)

    async def is_time_available(
        self,
        staff_id: str,
        start_time: datetime,
        end_time: datetime,
        exclude_id: Optional[str] = None,
    ) -> bool:
        start_time, end_time = to_local_naive(start_time), to_local_naive(end_time)
        _check_range(start_time, end_time)
        existing = await self._store.sessions_for_staff(staff_id)
        draft = WorkSessionDraft(start_time=start_time, end_time=end_time)
        return not self._guard.validate(draft, existing, exclude_id).has_conflict
