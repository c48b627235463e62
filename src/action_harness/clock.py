"""Clock abstraction shared by the harness and the code under test."""
import logging
import threading
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import Optional

logger = logging.getLogger("action_harness.clock")


class Clock(ABC):
    """Source of the current time."""

    @abstractmethod
    def now(self) -> datetime:
        """Return the current time."""

    def since(self, t: datetime) -> timedelta:
        return self.now() - t


class RealClock(Clock):
    """Delegates to the system clock (timezone-aware UTC)."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)

    def __repr__(self) -> str:
        return "RealClock()"


class FakeClock(Clock):
    """Clock that only moves when the test moves it."""

    def __init__(self, start: Optional[datetime] = None) -> None:
        self._lock = threading.Lock()
        self._time = start if start is not None else datetime(2020, 1, 1, tzinfo=timezone.utc)

    def now(self) -> datetime:
        with self._lock:
            return self._time

    def set(self, t: datetime) -> None:
        with self._lock:
            self._time = t

    def step(self, delta: timedelta) -> datetime:
        """Advance the clock by ``delta`` and return the new time."""
        with self._lock:
            self._time = self._time + delta
            return self._time

    def __repr__(self) -> str:
        return f"FakeClock({self._time.isoformat()})"


class ClockSlot(Clock):
    """The single place code under test reads time from.

    A harness owns one slot, installs its configured clock on start and
    restores the real clock on stop, so overrides never outlive a test.
    """

    def __init__(self) -> None:
        self._current: Clock = RealClock()

    @property
    def current(self) -> Clock:
        return self._current

    def install(self, clock: Clock) -> None:
        logger.debug("Installing clock %r", clock)
        self._current = clock

    def restore(self) -> None:
        self._current = RealClock()

    def now(self) -> datetime:
        return self._current.now()
