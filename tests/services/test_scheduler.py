# tests/services/test_scheduler.py
from __future__ import annotations

import asyncio
from datetime import timedelta

import pytest

from clearlot_relay.core.clock import FakeClock
from clearlot_relay.services.scheduler import AsyncioScheduler, ManualScheduler


@pytest.mark.asyncio
async def test_manual_scheduler_fires_in_deadline_order(clock: FakeClock) -> None:
    scheduler = ManualScheduler(clock)
    start = clock.now()
    seen: list[tuple[str, timedelta]] = []

    def record(label: str):
        async def callback() -> None:
            seen.append((label, clock.now() - start))

        return callback

    scheduler.after(timedelta(minutes=30), record("late"))
    scheduler.after(timedelta(minutes=10), record("early"))
    scheduler.after(timedelta(hours=2), record("outside"))

    fired = await scheduler.advance(timedelta(hours=1))

    assert fired == 2
    assert seen == [("early", timedelta(minutes=10)), ("late", timedelta(minutes=30))]
    assert clock.now() == start + timedelta(hours=1)
    assert scheduler.pending == 1
    assert scheduler.next_due() == start + timedelta(hours=2)


@pytest.mark.asyncio
async def test_timers_armed_by_callbacks_fire_in_same_window(clock: FakeClock) -> None:
    scheduler = ManualScheduler(clock)
    ticks: list[int] = []

    async def tick() -> None:
        ticks.append(len(ticks) + 1)
        scheduler.after(timedelta(minutes=15), tick)

    scheduler.after(timedelta(minutes=15), tick)
    await scheduler.advance(timedelta(hours=1))

    assert ticks == [1, 2, 3, 4]
    assert scheduler.pending == 1


@pytest.mark.asyncio
async def test_cancelled_timer_never_fires(clock: FakeClock) -> None:
    scheduler = ManualScheduler(clock)
    seen: list[str] = []

    async def callback() -> None:
        seen.append("fired")

    handle = scheduler.after(timedelta(minutes=1), callback)
    handle.cancel()

    assert await scheduler.advance(timedelta(minutes=5)) == 0
    assert seen == []
    assert scheduler.next_due() is None


@pytest.mark.asyncio
async def test_run_due_fires_zero_delay_timers(clock: FakeClock) -> None:
    scheduler = ManualScheduler(clock)
    seen: list[str] = []

    async def callback() -> None:
        seen.append("now")

    scheduler.after(timedelta(seconds=-5), callback)

    assert await scheduler.run_due() == 1
    assert seen == ["now"]


@pytest.mark.asyncio
async def test_asyncio_scheduler_runs_callback_on_loop() -> None:
    scheduler = AsyncioScheduler()
    done = asyncio.Event()

    async def callback() -> None:
        done.set()

    scheduler.after(timedelta(milliseconds=10), callback)

    await asyncio.wait_for(done.wait(), timeout=1.0)


@pytest.mark.asyncio
async def test_asyncio_scheduler_logs_failing_callback(caplog) -> None:
    scheduler = AsyncioScheduler()
    ran = asyncio.Event()

    async def callback() -> None:
        ran.set()
        raise RuntimeError("boom")

    scheduler.after(timedelta(0), callback)
    await asyncio.wait_for(ran.wait(), timeout=1.0)
    await asyncio.sleep(0.01)

    assert "Scheduled callback failed" in caplog.text


@pytest.mark.asyncio
async def test_asyncio_scheduler_cancel() -> None:
    scheduler = AsyncioScheduler()
    seen: list[str] = []

    async def callback() -> None:
        seen.append("fired")

    handle = scheduler.after(timedelta(milliseconds=10), callback)
    handle.cancel()
    await asyncio.sleep(0.05)

    assert seen == []
