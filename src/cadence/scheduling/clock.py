"""Substitutable "now" providers.

The planner never calls ``datetime.now`` directly; it receives the
current instant from a :class:`Clock`, which lets tests drive the
straggler and sync algorithm deterministically.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Protocol, runtime_checkable

from cadence.core.timestamps import ensure_utc, utc_now


@runtime_checkable
class Clock(Protocol):
    def now(self) -> datetime: ...


class SystemClock:
    """Wall-clock time in UTC."""

    def now(self) -> datetime:
        return utc_now()


class ManualClock:
    """A clock that only moves when told to.

    Example:
        >>> clock = ManualClock(datetime(2024, 1, 1))
        >>> clock.advance(seconds=10).second
        10
    """

    def __init__(self, start: datetime | None = None) -> None:
        self._now = ensure_utc(start) if start is not None else utc_now()

    def now(self) -> datetime:
        return self._now

    def set(self, value: datetime) -> None:
        self._now = ensure_utc(value)

    def advance(self, delta: timedelta | None = None, **kwargs: float) -> datetime:
        """Move forward by *delta* (or ``timedelta(**kwargs)``) and return the new time."""
        self._now += delta if delta is not None else timedelta(**kwargs)
        return self._now
