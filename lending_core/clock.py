"""
Clock Abstraction

The ledger never reads the wall clock directly; "today" and "now" come from an
injected Clock so installment dates are deterministic under test.
"""

from abc import ABC, abstractmethod
from datetime import datetime, date, timezone, timedelta


class Clock(ABC):
    """Source of the current timestamp"""

    @abstractmethod
    def now(self) -> datetime:
        """Current timezone-aware timestamp"""
        pass

    def today(self) -> date:
        return self.now().date()


class SystemClock(Clock):
    """Wall clock in UTC"""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class FixedClock(Clock):
    """Clock pinned to a given instant; advance() moves it forward"""

    def __init__(self, instant: datetime):
        if instant.tzinfo is None:
            instant = instant.replace(tzinfo=timezone.utc)
        self._instant = instant

    def now(self) -> datetime:
        return self._instant

    def advance(self, days: int = 0, **kwargs) -> datetime:
        self._instant = self._instant + timedelta(days=days, **kwargs)
        return self._instant

    def set(self, instant: datetime) -> None:
        if instant.tzinfo is None:
            instant = instant.replace(tzinfo=timezone.utc)
        self._instant = instant
