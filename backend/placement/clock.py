from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from typing import Protocol


class Clock(Protocol):
    def today(self) -> date: ...

    def now(self) -> datetime: ...


class SystemClock:
    """Wall clock in UTC."""

    def today(self) -> date:
        return self.now().date()

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class FixedClock:
    """
    Deterministic clock for tests and replays.

    `now()` returns the pinned instant; `advance()` moves it forward.
    """

    def __init__(self, at: datetime | date):
        if isinstance(at, datetime):
            self._now = at if at.tzinfo else at.replace(tzinfo=timezone.utc)
        else:
            self._now = datetime(at.year, at.month, at.day, 9, 0, tzinfo=timezone.utc)

    def today(self) -> date:
        return self._now.date()

    def now(self) -> datetime:
        return self._now

    def advance(self, *, days: int = 0, seconds: int = 0) -> None:
        self._now = self._now + timedelta(days=days, seconds=seconds)

    def set(self, at: datetime | date) -> None:
        self._now = FixedClock(at).now()
