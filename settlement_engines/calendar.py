"""
Module: settlement_engines.calendar
Responsibility:
    Decide, for a batch created at a given instant, whether the bank's
    daily cutoff has passed and which business day the file will be
    processed on.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  The instant is passed
    in by the caller (from the injected Clock); nothing here reads the
    system time.

Invariants enforced:
    - Cutoffs are evaluated in bank local time, a fixed UTC offset.
    - ``dispatch_date`` is always a working day.
    - An instant exactly at the cutoff counts as after it.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone

# Sunday through Thursday, as datetime.weekday() numbers.
SAUDI_WORKING_DAYS: tuple[int, ...] = (6, 0, 1, 2, 3)


@dataclass(frozen=True)
class DispatchWindow:
    """Where a batch created at ``local_time`` lands in the bank's calendar."""

    local_time: datetime
    after_cutoff: bool
    dispatch_date: date


@dataclass(frozen=True)
class DispatchCalendar:
    """Bank-local working calendar."""

    utc_offset_hours: int = 3
    working_days: tuple[int, ...] = SAUDI_WORKING_DAYS

    def __post_init__(self) -> None:
        if not self.working_days:
            raise ValueError("working_days must not be empty")
        if any(d not in range(7) for d in self.working_days):
            raise ValueError(f"working_days must be weekday numbers 0-6: {self.working_days}")

    @property
    def tz(self) -> timezone:
        return timezone(timedelta(hours=self.utc_offset_hours))

    def local_time(self, instant: datetime) -> datetime:
        if instant.tzinfo is None:
            instant = instant.replace(tzinfo=timezone.utc)
        return instant.astimezone(self.tz)

    def is_working_day(self, day: date) -> bool:
        return day.weekday() in self.working_days

    def next_business_day(self, day: date) -> date:
        """First working day strictly after ``day``."""
        candidate = day + timedelta(days=1)
        while not self.is_working_day(candidate):
            candidate += timedelta(days=1)
        return candidate

    def dispatch_window(self, instant: datetime, cutoff: time) -> DispatchWindow:
        local = self.local_time(instant)
        today = local.date()
        if self.is_working_day(today) and local.time() < cutoff:
            return DispatchWindow(local_time=local, after_cutoff=False, dispatch_date=today)
        return DispatchWindow(
            local_time=local,
            after_cutoff=True,
            dispatch_date=self.next_business_day(today),
        )
