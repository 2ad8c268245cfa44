"""
Unit tests for the work-session guard and service.
"""

import asyncio
from datetime import date, datetime, time, timedelta, timezone

import pytest

from clinic_scheduling.errors import (
    InvalidIntervalError,
    InvalidStatusTransitionError,
    NotFoundError,
    WorkSessionConflictError,
)
from clinic_scheduling.models.booking import WorkSessionDraft
from clinic_scheduling.models.scheduling import WorkSession, WorkSessionStatus
from clinic_scheduling.services.work_sessions import WorkSessionGuard

DAY = date(2025, 3, 10)


def at(hour: int, minute: int = 0, day: date = DAY) -> datetime:
    return datetime.combine(day, time(hour, minute))


def draft(start: datetime, end: datetime, service_ids=("consult-30",)) -> WorkSessionDraft:
    return WorkSessionDraft(start_time=start, end_time=end, service_ids=list(service_ids))


class TestWorkSessionGuard:

    def test_reports_overlapping_sessions(self, store):
        existing = list(store.work_sessions.values())

        result = WorkSessionGuard.validate(draft(at(10), at(12)), existing)

        assert result.has_conflict
        assert [c.id for c in result.conflicts] == ["ws-an-morning"]
        assert result.conflicts[0].service_ids == ["consult-30", "ecg-15"]
        assert result.message

    def test_adjacent_session_is_fine(self, store):
        result = WorkSessionGuard.validate(
            draft(at(11), at(12)), store.work_sessions.values()
        )
        assert not result.has_conflict
        assert result.conflicts == []

    def test_editing_session_does_not_conflict_with_itself(self, store):
        result = WorkSessionGuard.validate(
            draft(at(9, 30), at(11, 30)),
            store.work_sessions.values(),
            exclude_id="ws-an-morning",
        )
        assert not result.has_conflict

    def test_cancelled_sessions_ignored(self):
        cancelled = WorkSession(
            staff_id="dr-an",
            start_time=at(9),
            end_time=at(11),
            status=WorkSessionStatus.CANCELED,
        )
        assert not WorkSessionGuard.validate(draft(at(9), at(11)), [cancelled]).has_conflict


class TestCreateSessions:

    @pytest.mark.asyncio
    async def test_creates_batch(self, work_sessions, store):
        created = await work_sessions.create_sessions(
            "dr-binh",
            [draft(at(8), at(12)), draft(at(13), at(17))],
            booth_id="booth-1",
        )

        assert len(created) == 2
        assert all(s.status == WorkSessionStatus.PENDING for s in created)
        assert all(s.booth_id == "booth-1" for s in created)
        assert all(s.id in store.work_sessions for s in created)

    @pytest.mark.asyncio
    async def test_overlap_with_stored_session_rejected(self, work_sessions, store):
        with pytest.raises(WorkSessionConflictError) as exc_info:
            await work_sessions.create_sessions("dr-an", [draft(at(10), at(12))])

        assert exc_info.value.result.conflicts[0].id == "ws-an-morning"
        assert len(store.work_sessions) == 1

    @pytest.mark.asyncio
    async def test_batch_is_all_or_nothing(self, work_sessions, store):
        with pytest.raises(WorkSessionConflictError):
            await work_sessions.create_sessions(
                "dr-an",
                [draft(at(13), at(15)), draft(at(10), at(12))],
            )

        assert list(store.work_sessions) == ["ws-an-morning"]

    @pytest.mark.asyncio
    async def test_drafts_conflicting_with_each_other_rejected(self, work_sessions):
        with pytest.raises(WorkSessionConflictError) as exc_info:
            await work_sessions.create_sessions(
                "dr-binh",
                [draft(at(13), at(15)), draft(at(14), at(16))],
            )

        assert exc_info.value.result.conflicts[0].id == "draft-0"

    @pytest.mark.asyncio
    async def test_different_staff_same_time(self, work_sessions):
        created = await work_sessions.create_sessions("dr-binh", [draft(at(9), at(11))])
        assert len(created) == 1

    @pytest.mark.asyncio
    async def test_cancelled_session_frees_time(self, work_sessions):
        await work_sessions.update_session("ws-an-morning", status=WorkSessionStatus.CANCELED)

        created = await work_sessions.create_sessions("dr-an", [draft(at(9), at(11))])

        assert len(created) == 1

    @pytest.mark.asyncio
    async def test_overnight_session(self, work_sessions):
        created = await work_sessions.create_sessions(
            "tech-1", [draft(at(22), at(2, day=date(2025, 3, 11)))]
        )

        with pytest.raises(WorkSessionConflictError):
            await work_sessions.create_sessions(
                "tech-1", [draft(at(1, day=date(2025, 3, 11)), at(3, day=date(2025, 3, 11)))]
            )
        assert len(created) == 1

    @pytest.mark.asyncio
    async def test_inverted_range_rejected(self, work_sessions):
        with pytest.raises(InvalidIntervalError):
            await work_sessions.create_sessions("dr-binh", [draft(at(12), at(12))])

    @pytest.mark.asyncio
    async def test_unknown_booth(self, work_sessions):
        with pytest.raises(NotFoundError):
            await work_sessions.create_sessions(
                "dr-binh", [draft(at(9), at(11))], booth_id="booth-404"
            )

    @pytest.mark.asyncio
    async def test_concurrent_creates_one_winner(self, work_sessions, store):
        results = await asyncio.gather(
            *(work_sessions.create_sessions("dr-binh", [draft(at(13), at(15))]) for _ in range(3)),
            return_exceptions=True,
        )

        created = [r for r in results if isinstance(r, list)]
        assert len(created) == 1
        assert sum(isinstance(r, WorkSessionConflictError) for r in results) == 2
        assert len(await store.sessions_for_staff("dr-binh")) == 1


class TestUpdateSession:

    @pytest.mark.asyncio
    async def test_shift_own_range(self, work_sessions):
        updated = await work_sessions.update_session(
            "ws-an-morning", start_time=at(9, 30), end_time=at(11, 30)
        )

        assert updated.start_time == at(9, 30)
        assert updated.end_time == at(11, 30)
        assert updated.updated_at >= updated.created_at

    @pytest.mark.asyncio
    async def test_shift_into_other_session_rejected(self, work_sessions, add_session):
        afternoon = add_session("dr-an", DAY, time(12, 0), time(13, 0))

        with pytest.raises(WorkSessionConflictError) as exc_info:
            await work_sessions.update_session("ws-an-morning", end_time=at(12, 30))

        assert [c.id for c in exc_info.value.result.conflicts] == [afternoon.id]

    @pytest.mark.asyncio
    async def test_partial_update_keeps_other_bound(self, work_sessions):
        updated = await work_sessions.update_session("ws-an-morning", end_time=at(10))

        assert updated.start_time == at(9)
        assert updated.end_time == at(10)

    @pytest.mark.asyncio
    async def test_update_services(self, work_sessions):
        updated = await work_sessions.update_session("ws-an-morning", service_ids=["ecg-15"])
        assert updated.service_ids == ["ecg-15"]

    @pytest.mark.asyncio
    async def test_status_moves_forward(self, work_sessions):
        updated = await work_sessions.update_session(
            "ws-an-morning", status=WorkSessionStatus.IN_PROGRESS
        )
        assert updated.status == WorkSessionStatus.IN_PROGRESS

    @pytest.mark.asyncio
    async def test_status_cannot_move_backwards(self, work_sessions):
        await work_sessions.update_session("ws-an-morning", status=WorkSessionStatus.CANCELED)

        with pytest.raises(InvalidStatusTransitionError) as exc_info:
            await work_sessions.update_session(
                "ws-an-morning", status=WorkSessionStatus.APPROVED
            )

        assert exc_info.value.entity == "work session"

    @pytest.mark.asyncio
    async def test_inverted_update_rejected(self, work_sessions):
        with pytest.raises(InvalidIntervalError):
            await work_sessions.update_session("ws-an-morning", start_time=at(11, 30))

    @pytest.mark.asyncio
    async def test_unknown_session(self, work_sessions):
        with pytest.raises(NotFoundError):
            await work_sessions.update_session("ws_missing", end_time=at(12))


class TestQueries:

    @pytest.mark.asyncio
    async def test_delete(self, work_sessions, store):
        await work_sessions.delete_session("ws-an-morning")

        assert store.work_sessions == {}
        with pytest.raises(NotFoundError):
            await work_sessions.delete_session("ws-an-morning")

    @pytest.mark.asyncio
    async def test_sessions_for_staff_window(self, work_sessions, add_session):
        add_session("dr-an", date(2025, 3, 11), time(9, 0), time(11, 0))

        sessions = await work_sessions.sessions_for_staff(
            "dr-an", start=at(0), end=at(23, 59)
        )

        assert [s.id for s in sessions] == ["ws-an-morning"]

    @pytest.mark.asyncio
    async def test_is_time_available(self, work_sessions):
        assert not await work_sessions.is_time_available("dr-an", at(10), at(12))
        assert await work_sessions.is_time_available("dr-an", at(11), at(12))
        assert await work_sessions.is_time_available(
            "dr-an", at(10), at(12), exclude_id="ws-an-morning"
        )


class TestOffsetTimestamps:
    """Timestamps carrying a UTC offset are stored as naive local time."""

    @pytest.mark.asyncio
    async def test_offset_draft_stored_naive(self, work_sessions):
        start = datetime(2025, 3, 20, 13, 0, tzinfo=timezone(timedelta(hours=7)))

        created = await work_sessions.create_sessions(
            "dr-binh", [WorkSessionDraft(start_time=start, end_time=start + timedelta(hours=1))]
        )

        session = created[0]
        assert session.start_time.tzinfo is None
        assert session.start_time == start.astimezone().replace(tzinfo=None)
        assert session.end_time - session.start_time == timedelta(hours=1)

    @pytest.mark.asyncio
    async def test_offset_draft_checked_against_naive_sessions(self, work_sessions):
        start = at(10).astimezone()

        with pytest.raises(WorkSessionConflictError) as exc_info:
            await work_sessions.create_sessions(
                "dr-an", [WorkSessionDraft(start_time=start, end_time=start + timedelta(hours=2))]
            )

        assert exc_info.value.result.conflicts[0].id == "ws-an-morning"

    @pytest.mark.asyncio
    async def test_offset_update_and_queries(self, work_sessions):
        updated = await work_sessions.update_session(
            "ws-an-morning", end_time=at(12).astimezone()
        )

        assert updated.end_time == at(12)
        assert not await work_sessions.is_time_available(
            "dr-an", at(11).astimezone(), at(13).astimezone()
        )
        sessions = await work_sessions.sessions_for_staff(
            "dr-an", start=at(0).astimezone(), end=at(23).astimezone()
        )
        assert [s.id for s in sessions] == ["ws-an-morning"]
