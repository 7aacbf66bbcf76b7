"""
Injectable time source for the settlement services.

Services read the current instant only through a ``Clock``: timeline
timestamps, batch ``created_at`` / ``expires_at`` and the dispatch cutoff
decision all come from ``now_utc()``.  Bank-local time is derived from
that instant by the dispatch calendar, never read from the host.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone

# Monday 2024-01-01 09:00 UTC is 12:00 in Riyadh, before every bank cutoff.
DEFAULT_TEST_INSTANT = datetime(2024, 1, 1, 9, 0, tzinfo=timezone.utc)


class Clock(ABC):

    @abstractmethod
    def now_utc(self) -> datetime:
        """Current instant, timezone-aware, in UTC."""


class SystemClock(Clock):

    def now_utc(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """Frozen clock for tests; moves only when told to.

    Naive datetimes are taken as UTC.  Aware ones in another zone are
    converted, so ``now_utc()`` is always UTC.
    """

    def __init__(self, start: datetime | None = None):
        self._current = _to_utc(start or DEFAULT_TEST_INSTANT)

    def now_utc(self) -> datetime:
        return self._current

    def set_time(self, instant: datetime) -> None:
        self._current = _to_utc(instant)

    def advance(self, seconds: float = 1) -> datetime:
        self._current += timedelta(seconds=seconds)
        return self._current


def _to_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
