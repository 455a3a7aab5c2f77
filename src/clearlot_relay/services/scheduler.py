"""Timer abstraction for absolute-deadline work.

Callers compute deadlines from persisted timestamps and hand the scheduler a
relative delay. `AsyncioScheduler` runs on the event loop; `ManualScheduler`
pairs with `FakeClock` so tests can move time explicitly.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Protocol

from clearlot_relay.core.clock import Clock, FakeClock, SystemClock

logger = logging.getLogger(__name__)

TimerCallback = Callable[[], Awaitable[None]]


class CancelHandle(Protocol):
    def cancel(self) -> None: ...


class Scheduler(ABC):
    """Source of time plus one-shot timers."""

    @abstractmethod
    def now(self) -> datetime:
        """Return the current UTC instant."""

    @abstractmethod
    def after(self, delay: timedelta, callback: TimerCallback) -> CancelHandle:
        """Run `callback` once after `delay`; negative delays fire immediately."""


class _LoopTimer:
    def __init__(self) -> None:
        self.timer: asyncio.TimerHandle | None = None
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True
        if self.timer is not None:
            self.timer.cancel()


class AsyncioScheduler(Scheduler):
    """Scheduler backed by `loop.call_later`."""

    def __init__(self, clock: Clock | None = None) -> None:
        self._clock = clock or SystemClock()
        self._tasks: set[asyncio.Task[None]] = set()

    def now(self) -> datetime:
        return self._clock.now()

    def after(self, delay: timedelta, callback: TimerCallback) -> CancelHandle:
        handle = _LoopTimer()
        loop = asyncio.get_running_loop()
        seconds = max(0.0, delay.total_seconds())
        handle.timer = loop.call_later(seconds, self._fire, handle, callback)
        return handle

    def _fire(self, handle: _LoopTimer, callback: TimerCallback) -> None:
        if handle.cancelled:
            return
        task = asyncio.ensure_future(callback())
        self._tasks.add(task)
        task.add_done_callback(self._finished)

    def _finished(self, task: asyncio.Task[None]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Scheduled callback failed", exc_info=exc)


@dataclass(order=True)
class _ManualTimer:
    due: datetime
    seq: int
    callback: TimerCallback = field(compare=False)
    cancelled: bool = field(default=False, compare=False)

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler(Scheduler):
    """Deterministic scheduler driven by a `FakeClock`.

    Nothing fires until `advance` or `run_due` is awaited. Callbacks run in
    deadline order with the clock set to each deadline, and timers armed by a
    callback are eligible within the same `advance` window.
    """

    def __init__(self, clock: FakeClock | None = None) -> None:
        self.clock = clock or FakeClock()
        self._timers: list[_ManualTimer] = []
        self._seq = itertools.count()

    def now(self) -> datetime:
        return self.clock.now()

    def after(self, delay: timedelta, callback: TimerCallback) -> CancelHandle:
        if delay < timedelta(0):
            delay = timedelta(0)
        timer = _ManualTimer(self.clock.now() + delay, next(self._seq), callback)
        self._timers.append(timer)
        return timer

    @property
    def pending(self) -> int:
        """Number of armed, uncancelled timers."""
        return sum(1 for timer in self._timers if not timer.cancelled)

    def next_due(self) -> datetime | None:
        live = [timer.due for timer in self._timers if not timer.cancelled]
        return min(live) if live else None

    def _pop_due(self, until: datetime) -> _ManualTimer | None:
        self._timers = [timer for timer in self._timers if not timer.cancelled]
        due = [timer for timer in self._timers if timer.due <= until]
        if not due:
            return None
        timer = min(due)
        self._timers.remove(timer)
        return timer

    async def run_due(self) -> int:
        """Fire every timer due at the current instant."""
        return await self._run_until(self.clock.now())

    async def advance(self, delta: timedelta) -> int:
        """Move the clock forward by `delta`, firing timers on the way."""
        target = self.clock.now() + delta
        fired = await self._run_until(target)
        self.clock.set(target)
        return fired

    async def _run_until(self, until: datetime) -> int:
        fired = 0
        while (timer := self._pop_due(until)) is not None:
            if timer.due > self.clock.now():
                self.clock.set(timer.due)
            await timer.callback()
            fired += 1
        return fired
