"""Tests for the per-key asyncio lock."""

from __future__ import annotations

import asyncio

import pytest

from supplychain_escrow.services.keyed_lock import KeyedLock


class TestKeyedLock:
    @pytest.mark.asyncio
    async def test_same_key_runs_in_arrival_order(self) -> None:
        locks = KeyedLock()
        order: list[str] = []

        async def worker(name: str) -> None:
            async with locks.hold(1):
                order.append(f"{name}:start")
                await asyncio.sleep(0.01)
                order.append(f"{name}:end")

        await asyncio.gather(worker("a"), worker("b"), worker("c"))

        assert order == ["a:start", "a:end", "b:start", "b:end", "c:start", "c:end"]

    @pytest.mark.asyncio
    async def test_different_keys_do_not_block(self) -> None:
        locks = KeyedLock()

        async with locks.hold(1):

            async def other() -> str:
                async with locks.hold(2):
                    return "done"

            assert await asyncio.wait_for(other(), timeout=0.5) == "done"

    @pytest.mark.asyncio
    async def test_busy_while_held_or_queued(self) -> None:
        locks = KeyedLock()
        release = asyncio.Event()

        async def holder() -> None:
            async with locks.hold("lot"):
                await release.wait()

        task = asyncio.create_task(holder())
        await asyncio.sleep(0)
        assert locks.is_busy("lot")

        release.set()
        await task
        assert not locks.is_busy("lot")
        assert len(locks) == 0

    @pytest.mark.asyncio
    async def test_cancelled_waiter_is_cleaned_up(self) -> None:
        locks = KeyedLock()
        release = asyncio.Event()

        async def holder() -> None:
            async with locks.hold(7):
                await release.wait()

        async def waiter() -> None:
            async with locks.hold(7):
                pass

        first = asyncio.create_task(holder())
        await asyncio.sleep(0)
        second = asyncio.create_task(waiter())
        await asyncio.sleep(0)
        second.cancel()
        with pytest.raises(asyncio.CancelledError):
            await second

        release.set()
        await first
        assert len(locks) == 0
