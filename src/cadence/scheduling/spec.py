"""Operation specifications: what to run and when.

An :class:`OperationSpec` is the immutable registration record for one
recurring task. It pairs a schedule (fixed interval or cron expression)
with a callback and a :class:`RunMode` that decides which pool, and
therefore which concurrency discipline, the operation runs under.

Example:
    >>> async def refresh(ctx):
    ...     await ctx.cache.refresh()
    >>> OperationSpec.every(30, refresh).schedule.describe()
    'every 30s'
    >>> OperationSpec.cron("*/10 * * * * *", refresh, has_seconds=True, mode=RunMode.PARALLEL).run_mode
    <RunMode.PARALLEL: 'parallel'>
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import timedelta
from enum import Enum
from typing import Any

from cadence.core.errors import InvalidScheduleError

OperationCallback = Callable[[Any], Awaitable[Any] | Any]


class RunMode(str, Enum):
    """Concurrency discipline for a pool of operations.

    Operations are grouped into one pool per run mode. For SEQUENTIAL and
    PARALLEL pools, an operation that runs long enough to make a sibling
    miss its slot causes the sibling to be caught up on the very next cycle.
    """

    SEQUENTIAL = "sequential"  # One at a time, in registration order
    PARALLEL = "parallel"  # Due operations launched together, cycle waits for all
    INDEPENDENT = "independent"  # Fire-and-forget, one task and scope per dispatch


@dataclass(frozen=True)
class IntervalSchedule:
    """Fire every ``interval`` after the previous run."""

    interval: timedelta

    def __post_init__(self) -> None:
        if not isinstance(self.interval, timedelta):
            raise InvalidScheduleError(f"Interval must be a timedelta, got {type(self.interval).__name__}")
        if self.interval <= timedelta(0):
            raise InvalidScheduleError(f"Interval must be positive, got {self.interval}")

    def describe(self) -> str:
        return f"every {self.interval.total_seconds():g}s"


@dataclass(frozen=True)
class CronSchedule:
    """Fire on the occurrences of a cron expression.

    ``has_seconds`` selects the six-field format where seconds come first
    (``"*/10 * * * * *"``); otherwise the standard five-field format is used.
    ``timezone`` is an IANA zone name the expression is evaluated in.
    """

    expression: str
    has_seconds: bool = False
    timezone: str = "UTC"

    def __post_init__(self) -> None:
        if not isinstance(self.expression, str) or not self.expression.strip():
            raise InvalidScheduleError("Cron expression must be a non-empty string")
        object.__setattr__(self, "expression", " ".join(self.expression.split()))

    def describe(self) -> str:
        suffix = " (seconds)" if self.has_seconds else ""
        return f"cron '{self.expression}'{suffix} {self.timezone}"


Schedule = IntervalSchedule | CronSchedule


@dataclass(frozen=True)
class OperationSpec:
    """Immutable description of one recurring operation.

    Attributes:
        schedule: When the operation fires.
        callback: Called with the resource context of the current scope.
            Coroutine functions are awaited; plain callables run in a
            worker thread.
        run_mode: Which pool the operation belongs to.
        name: Label used in logs; defaults to the callback's qualified name.
    """

    schedule: Schedule
    callback: OperationCallback = field(repr=False)
    run_mode: RunMode = RunMode.SEQUENTIAL
    name: str = ""

    def __post_init__(self) -> None:
        if not isinstance(self.schedule, IntervalSchedule | CronSchedule):
            raise InvalidScheduleError(f"Unsupported schedule type: {type(self.schedule).__name__}")
        if not callable(self.callback):
            raise InvalidScheduleError("Operation callback must be callable")
        object.__setattr__(self, "run_mode", RunMode(self.run_mode))
        if not self.name:
            label = getattr(self.callback, "__qualname__", None) or type(self.callback).__name__
            object.__setattr__(self, "name", label)

    # ── Convenience constructors ─────────────────────────────────

    @classmethod
    def every(
        cls,
        interval: timedelta | float,
        callback: OperationCallback,
        mode: RunMode = RunMode.SEQUENTIAL,
        *,
        name: str = "",
    ) -> OperationSpec:
        """Create an interval operation. ``interval`` may be seconds."""
        if not isinstance(interval, timedelta):
            interval = timedelta(seconds=interval)
        return cls(IntervalSchedule(interval), callback, mode, name)

    @classmethod
    def cron(
        cls,
        expression: str,
        callback: OperationCallback,
        mode: RunMode = RunMode.SEQUENTIAL,
        *,
        has_seconds: bool = False,
        timezone: str = "UTC",
        name: str = "",
    ) -> OperationSpec:
        """Create a cron operation."""
        return cls(CronSchedule(expression, has_seconds, timezone), callback, mode, name)

    # ── Introspection ────────────────────────────────────────────

    @property
    def interval(self) -> timedelta | None:
        if isinstance(self.schedule, IntervalSchedule):
            return self.schedule.interval
        return None

    @property
    def is_cron(self) -> bool:
        return isinstance(self.schedule, CronSchedule)
