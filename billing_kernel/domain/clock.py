"""
Clock -- injectable time source.

Responsibility:
    The only way reconciliation code learns "now".  The status resolver,
    the ledger's effective-date fallback and every persisted timestamp
    read time from a Clock passed in by the caller, never from
    ``datetime.now()``.

Architecture position:
    Kernel > Domain -- pure functional core.  SystemClock is the single
    sanctioned I/O boundary for time.

Failure modes:
    - DeterministicClock.set_time raises ValueError for naive datetimes.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone


class Clock(ABC):
    """
    Abstract clock interface.

    Guarantees:
        ``now()`` returns a timezone-aware UTC ``datetime``.
    """

    @abstractmethod
    def now(self) -> datetime:
        """Get the current UTC time."""
        ...


class SystemClock(Clock):
    """Production clock backed by the system time."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """
    Test clock with controlled time.

    ``now()`` returns the same value on repeated calls until ``advance()``
    or ``set_time()`` is called.
    """

    DEFAULT_TIME = datetime(2026, 1, 15, 12, 0, 0, tzinfo=timezone.utc)

    def __init__(self, fixed_time: datetime | None = None):
        self._current = self.DEFAULT_TIME
        if fixed_time is not None:
            self.set_time(fixed_time)

    def now(self) -> datetime:
        return self._current

    def set_time(self, time: datetime) -> None:
        """Pin the clock to a specific aware datetime."""
        if time.tzinfo is None:
            raise ValueError("DeterministicClock requires a timezone-aware datetime")
        self._current = time.astimezone(timezone.utc)

    def advance(self, seconds: float = 1, **kwargs: float) -> datetime:
        """Move the clock forward and return the new time.

        Extra keyword arguments are passed to ``timedelta`` (``days=3``).
        """
        self._current = self._current + timedelta(seconds=seconds, **kwargs)
        return self._current
