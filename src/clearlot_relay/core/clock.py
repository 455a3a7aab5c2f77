"""Clock abstraction so deadline math can be faked in tests."""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import UTC, datetime, timedelta


class Clock(ABC):
    """Source of the current UTC time."""

    @abstractmethod
    def now(self) -> datetime:
        """Return the current timezone-aware UTC datetime."""


class SystemClock(Clock):
    """Wall clock backed by the host time."""

    def now(self) -> datetime:
        return datetime.now(UTC)


class FakeClock(Clock):
    """Manually driven clock for tests.

    Time only moves when `set` or `advance` is called.
    """

    def __init__(self, initial: datetime | None = None) -> None:
        if initial is None:
            initial = datetime(2024, 1, 15, 12, 0, 0, tzinfo=UTC)
        self._current = _as_utc(initial)

    def now(self) -> datetime:
        return self._current

    def set(self, moment: datetime) -> None:
        """Jump to an absolute instant."""
        self._current = _as_utc(moment)

    def advance(self, delta: timedelta) -> None:
        """Move time forward by `delta`."""
        self._current += delta


def _as_utc(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment.replace(tzinfo=UTC)
    return moment.astimezone(UTC)
