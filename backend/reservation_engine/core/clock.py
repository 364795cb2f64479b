"""
Injectable clock.

Services never call datetime.now() directly; they ask the clock, which keeps
tests deterministic and lets branch-local time be derived in one place.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo


class Clock(ABC):
    @abstractmethod
    def now(self) -> datetime:
        """Current instant as a timezone-aware UTC datetime."""

    def local_now(self, tz_name: str) -> datetime:
        """Current civil time in the given zone, returned naive."""
        return self.now().astimezone(ZoneInfo(tz_name)).replace(tzinfo=None)


class SystemClock(Clock):
    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class FixedClock(Clock):
    """Clock frozen at a given instant; advance() moves it forward."""

    def __init__(self, instant: datetime):
        if instant.tzinfo is None:
            instant = instant.replace(tzinfo=timezone.utc)
        self._instant = instant

    def now(self) -> datetime:
        return self._instant

    def set(self, instant: datetime) -> None:
        if instant.tzinfo is None:
            instant = instant.replace(tzinfo=timezone.utc)
        self._instant = instant

    def advance(self, **kwargs) -> None:
        self._instant = self._instant + timedelta(**kwargs)
