"""
Test to verify sample work sessions are created for all weekdays.
"""

from collections import defaultdict
from datetime import date

import pytest

from clinic_scheduling.services.availability import AvailabilityResolver
from clinic_scheduling.services.store import SAMPLE_DOCTORS, SchedulingStore

# A Monday, so the two seeded weeks hold ten weekdays
BASE_DATE = date(2026, 2, 2)


@pytest.fixture
def sample_store():
    store = SchedulingStore()
    store._initialize_sample_data(base_date=BASE_DATE)
    return store


class TestSampleDataGeneration:
    """Test that work sessions are generated correctly for all days."""

    def test_sessions_generated_for_each_weekday(self, sample_store):
        sessions_by_date = defaultdict(list)
        for session in sample_store.work_sessions.values():
            sessions_by_date[session.start_time.date()].append(session)

        assert len(sessions_by_date) == 10
        assert all(day.weekday() < 5 for day in sessions_by_date)
        # Morning and afternoon for every doctor
        assert all(len(s) == 2 * len(SAMPLE_DOCTORS) for s in sessions_by_date.values())

    def test_doctors_carry_specialty_names(self, sample_store):
        for doctor in sample_store._doctors.values():
            assert doctor.specialty_name

    @pytest.mark.asyncio
    async def test_every_doctor_bookable_on_first_day(self, sample_store):
        resolver = AvailabilityResolver(sample_store, today=lambda: BASE_DATE)

        for doctor in SAMPLE_DOCTORS:
            for service_id in doctor["services"]:
                result = await resolver.slots_for(doctor["id"], service_id, BASE_DATE)
                assert result.is_known
                assert result.items, f"No slots for {doctor['id']}/{service_id}"

    @pytest.mark.asyncio
    async def test_initialize_is_idempotent(self):
        store = SchedulingStore()
        await store.initialize()
        count = len(store.work_sessions)

        await store.initialize()

        assert len(store.work_sessions) == count
