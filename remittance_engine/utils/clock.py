"""Injectable time source so cycle logic never reads the wall clock directly"""

from abc import ABC, abstractmethod
from datetime import date, datetime, timedelta, timezone


class Clock(ABC):
    """Abstract clock interface"""

    @abstractmethod
    def now(self) -> datetime:
        """Current timezone-aware instant"""
        ...

    def today(self) -> date:
        return self.now().date()


class SystemClock(Clock):
    """Production clock returning UTC wall-clock time"""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class FixedClock(Clock):
    """Test clock pinned to an instant until moved explicitly"""

    def __init__(self, fixed_time: datetime | None = None):
        self._time = fixed_time or datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)
        if self._time.tzinfo is None:
            self._time = self._time.replace(tzinfo=timezone.utc)

    def now(self) -> datetime:
        return self._time

    def set_time(self, value: datetime) -> None:
        self._time = value if value.tzinfo else value.replace(tzinfo=timezone.utc)

    def advance(self, **kwargs) -> None:
        """Move forward by a timedelta, e.g. ``clock.advance(days=1)``"""
        self._time = self._time + timedelta(**kwargs)
