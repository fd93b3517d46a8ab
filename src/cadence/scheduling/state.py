"""Per-operation scheduling state.

A :class:`RuntimeOperationState` wraps an :class:`OperationSpec` with the
three mutable fields the planner works on. Each state belongs to exactly
one pool and is only ever touched by that pool's loop, so no locking is
needed.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta

from cadence.core.errors import InvalidScheduleError
from cadence.core.timestamps import MAX_INSTANT, ensure_utc

from .evaluator import ScheduleEvaluator
from .spec import CronSchedule, IntervalSchedule, OperationSpec

DEFAULT_CRON_BOUNDARY = timedelta(seconds=1)


@dataclass
class RuntimeOperationState:
    """Mutable scheduling state for one operation.

    Attributes:
        spec: The registered operation.
        last_run: When the operation was last dispatched (construction time
            until the first dispatch).
        next_run: The next theoretically-correct fire time, except while
            overridden by sync-group alignment.
        should_run: Set by the planner for the coming cycle; read by the
            dispatcher.
    """

    spec: OperationSpec
    last_run: datetime
    next_run: datetime = MAX_INSTANT
    should_run: bool = False
    run_count: int = field(default=0, compare=False)

    @classmethod
    def create(
        cls,
        spec: OperationSpec,
        now: datetime,
        evaluator: ScheduleEvaluator,
        boundary: timedelta = DEFAULT_CRON_BOUNDARY,
    ) -> RuntimeOperationState:
        state = cls(spec=spec, last_run=ensure_utc(now))
        state.next_run = compute_next_run(state, now, evaluator, boundary)
        return state

    @property
    def name(self) -> str:
        return self.spec.name

    def mark_dispatched(self, now: datetime) -> None:
        self.last_run = ensure_utc(now)
        self.run_count += 1


def compute_next_run(
    state: RuntimeOperationState,
    now: datetime,
    evaluator: ScheduleEvaluator,
    boundary: timedelta = DEFAULT_CRON_BOUNDARY,
) -> datetime:
    """Return the operation's next fire time.

    Interval schedules fire ``interval`` after the last run. Cron schedules
    fire on the evaluator's next occurrence after *now*; an occurrence
    within *boundary* of the last run is the one that just fired (sub-second
    rounding at the tick), so the following occurrence is used instead.
    An exhausted cron expression yields :data:`MAX_INSTANT`.
    """
    schedule = state.spec.schedule

    if isinstance(schedule, IntervalSchedule):
        return state.last_run + schedule.interval

    if not isinstance(schedule, CronSchedule):
        raise InvalidScheduleError(
            f"Unsupported schedule type {type(schedule).__name__} for {state.name!r}"
        )
    nxt = _next_or_max(evaluator, schedule, now)
    if nxt - state.last_run <= boundary:
        nxt = _next_or_max(evaluator, schedule, nxt)
    return nxt


def _next_or_max(evaluator: ScheduleEvaluator, schedule: CronSchedule, after: datetime) -> datetime:
    if after == MAX_INSTANT:
        return MAX_INSTANT
    occurrence = evaluator.next_occurrence(
        schedule.expression, schedule.has_seconds, schedule.timezone, after
    )
    return MAX_INSTANT if occurrence is None else ensure_utc(occurrence)
