"""
Injectable time source.

Workflow services stamp approval history, RFQ dispatch and quotation
submission with ``clock.now_utc()``; nothing in the domain or engine layers
reads the wall clock itself.  Production wiring uses ``SystemClock``, tests
use ``DeterministicClock`` so that history ordering and RFQ deadline checks
are reproducible.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone

DEFAULT_START = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


class Clock(ABC):
    """Source of timezone-aware 'now' values."""

    @abstractmethod
    def now(self) -> datetime:
        ...

    def now_utc(self) -> datetime:
        return self.now().astimezone(timezone.utc)


class SystemClock(Clock):
    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """
    Frozen clock that only moves when told to.

    ``tick()`` moves one second forward and is how tests give consecutive
    submissions distinct, ordered timestamps.  ``advance_days()`` is used to
    push past an RFQ deadline.
    """

    def __init__(self, start: datetime | None = None):
        self._current = start or DEFAULT_START

    def now(self) -> datetime:
        return self._current

    def advance(self, seconds: float = 1) -> None:
        self._current += timedelta(seconds=seconds)

    def advance_days(self, days: int = 1) -> None:
        self._current += timedelta(days=days)

    def tick(self) -> datetime:
        self.advance(1)
        return self._current
