"""
Injectable time source.

Services, the rate updater and the scheduler take a Clock in their
constructor and never call ``datetime.now()`` directly, so due checks and
posting timestamps can be driven from tests.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone


class Clock(ABC):
    """``now()`` returns a timezone-aware UTC ``datetime``."""

    @abstractmethod
    def now(self) -> datetime:
        ...


class SystemClock(Clock):
    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """
    Clock frozen at ``start`` until moved with ``advance()``.

    Naive start values are read as UTC.
    """

    def __init__(self, start: datetime):
        if start.tzinfo is None:
            start = start.replace(tzinfo=timezone.utc)
        self._now = start.astimezone(timezone.utc)

    def now(self) -> datetime:
        return self._now

    def advance(self, seconds: float = 1) -> datetime:
        self._now += timedelta(seconds=seconds)
        return self._now
