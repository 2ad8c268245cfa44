"""
Unit tests for the keyed lock registry.
"""

import asyncio

import pytest

from clinic_scheduling.services.locks import KeyedLock


class TestKeyedLock:

    @pytest.mark.asyncio
    async def test_same_key_is_serialized(self):
        locks = KeyedLock()
        order = []

        async def worker(name):
            async with locks.hold("dr-an"):
                order.append(f"{name}-in")
                await asyncio.sleep(0.01)
                order.append(f"{name}-out")

        await asyncio.gather(worker("a"), worker("b"))

        assert order in (
            ["a-in", "a-out", "b-in", "b-out"],
            ["b-in", "b-out", "a-in", "a-out"],
        )

    @pytest.mark.asyncio
    async def test_different_keys_do_not_block(self):
        locks = KeyedLock()
        async with locks.hold("dr-an"):
            assert locks.locked("dr-an")

            async def other():
                async with locks.hold("dr-binh"):
                    return True

            assert await asyncio.wait_for(other(), timeout=1)

    @pytest.mark.asyncio
    async def test_idle_entries_are_dropped(self):
        locks = KeyedLock()
        async with locks.hold("dr-an"):
            assert len(locks) == 1
        assert len(locks) == 0
        assert not locks.locked("dr-an")

    @pytest.mark.asyncio
    async def test_released_on_error(self):
        locks = KeyedLock()
        with pytest.raises(RuntimeError):
            async with locks.hold("dr-an"):
                raise RuntimeError("boom")
        assert len(locks) == 0
