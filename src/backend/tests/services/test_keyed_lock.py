"""
Tests for per-key locking.
"""

import asyncio

import pytest

from services.keyed_lock import KeyedLock


@pytest.mark.unit
class TestKeyedLock:
    async def test_same_key_is_serialized(self) -> None:
        locks = KeyedLock()
        events: list[str] = []

        async def worker(name: str) -> None:
            async with locks.hold("voter:1"):
                events.append(f"{name}-start")
                await asyncio.sleep(0.01)
                events.append(f"{name}-end")

        await asyncio.gather(worker("a"), worker("b"))

        assert events in (
            ["a-start", "a-end", "b-start", "b-end"],
            ["b-start", "b-end", "a-start", "a-end"],
        )

    async def test_different_keys_run_concurrently(self) -> None:
        locks = KeyedLock()
        inside = asyncio.Event()
        release = asyncio.Event()

        async def holder() -> None:
            async with locks.hold("voter:1"):
                inside.set()
                await release.wait()

        task = asyncio.create_task(holder())
        await inside.wait()

        async with locks.hold("voter:2"):
            pass  # would deadlock if keys shared a lock

        release.set()
        await task

    async def test_unused_locks_are_dropped(self) -> None:
        locks = KeyedLock()
        async with locks.hold("otp:+919876543210"):
            assert len(locks) == 1
        assert len(locks) == 0

    async def test_lock_released_on_error(self) -> None:
        locks = KeyedLock()
        with pytest.raises(RuntimeError):
            async with locks.hold("k"):
                raise RuntimeError("boom")
        assert len(locks) == 0
        async with locks.hold("k"):
            pass
