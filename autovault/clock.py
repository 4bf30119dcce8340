"""Time sources for the vault.

All timestamps are naive UTC datetimes.
"""

import datetime
from abc import ABC, abstractmethod


def native_datetime_utc_now() -> datetime.datetime:
    """Get current UTC time as a native datetime object.

    Replacement for the deprecated datetime.datetime.utcnow().
    """
    return datetime.datetime.now(datetime.timezone.utc).replace(tzinfo=None)


class Clock(ABC):
    """Where the vault reads its block timestamp from."""

    @abstractmethod
    def now(self) -> datetime.datetime:
        """Current naive UTC time."""


class SystemClock(Clock):
    """Wall clock."""

    def now(self) -> datetime.datetime:
        return native_datetime_utc_now()


class ManualClock(Clock):
    """Clock that only moves when told to.

    - Used in tests and simulations to time travel over fee windows
      and reward accrual
    """

    def __init__(self, start: datetime.datetime | None = None):
        if start is None:
            start = datetime.datetime(2021, 4, 29)
        assert start.tzinfo is None, f"Use naive UTC datetimes, got {start}"
        self.current = start

    def now(self) -> datetime.datetime:
        return self.current

    def advance(self, delta: datetime.timedelta) -> datetime.datetime:
        """Move time forward.

        :return:
            The new current time
        """
        assert isinstance(delta, datetime.timedelta), f"Got {type(delta)}"
        assert delta >= datetime.timedelta(0), f"Time cannot go backwards: {delta}"
        self.current += delta
        return self.current
