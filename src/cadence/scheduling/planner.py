"""Per-cycle planning: stragglers, sync alignment and the next delay.

One shared timer per pool serves any number of operations with different
periods. Each cycle the planner decides which operations run next and how
long the loop may sleep, without ever letting an operation be skipped
because a sibling overran its slot.

┌──────────────────────────────────────────────────────────────────────────────┐
│  plan_cycle(pool, now)                                                       │
│                                                                              │
│  Pass 1 ─ pre-existing stragglers                                            │
│     not should_run and next_run <= now   ──►  should_run = True (straggler)  │
│     otherwise                            ──►  should_run = False             │
│     recompute next_run, track earliest                                       │
│                                                                              │
│  Sync ─ every sync group moves to its earliest next_run                      │
│                                                                              │
│  Pass 2 ─ post-sync due check                                                │
│     next_run <= now          ──►  should_run = True (straggler)              │
│     next_run == earliest     ──►  should_run = True (the cycle's target)     │
│                                                                              │
│  Delay ─ 0 if any straggler was found, else earliest - now                   │
└──────────────────────────────────────────────────────────────────────────────┘

``plan_cycle`` performs no I/O and never sleeps; feed it a pool and an
instant and it returns a :class:`CyclePlan`.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta

from cadence.core.timestamps import MAX_INSTANT, ensure_utc

from .evaluator import ScheduleEvaluator
from .pool import SchedulePool
from .state import DEFAULT_CRON_BOUNDARY, compute_next_run


@dataclass(frozen=True)
class CyclePlan:
    """Outcome of one planning pass.

    Attributes:
        delay: How long the loop should wait before the next cycle.
        earliest_run: The earliest next run across the pool.
        stragglers: Indices of operations found overdue.
        due: Indices of operations marked to run in the next cycle.
    """

    delay: timedelta
    earliest_run: datetime
    stragglers: tuple[int, ...] = ()
    due: tuple[int, ...] = ()

    @property
    def idle(self) -> bool:
        """True when nothing in the pool can ever fire again."""
        return self.earliest_run == MAX_INSTANT and not self.due

    @property
    def catching_up(self) -> bool:
        return bool(self.stragglers)


def plan_cycle(
    pool: SchedulePool,
    now: datetime,
    evaluator: ScheduleEvaluator,
    boundary: timedelta = DEFAULT_CRON_BOUNDARY,
) -> CyclePlan:
    """Plan the next cycle of *pool* as of *now*.

    Mutates the pool's runtime states (``should_run``/``next_run``) and
    returns the delay until the next cycle.
    """
    now = ensure_utc(now)
    stragglers: set[int] = set()
    earliest = MAX_INSTANT

    for index, state in enumerate(pool.operations):
        # Overdue but not planned last cycle: a sibling overran our slot.
        if not state.should_run and state.next_run <= now:
            state.should_run = True
            stragglers.add(index)
        else:
            state.should_run = False

        state.next_run = compute_next_run(state, now, evaluator, boundary)
        if state.next_run < earliest:
            earliest = state.next_run

    pool.align_sync_groups()

    for index, state in enumerate(pool.operations):
        # Interval operations that ran last cycle may already be due again.
        if state.next_run <= now:
            state.should_run = True
            stragglers.add(index)
        elif state.next_run == earliest and earliest != MAX_INSTANT:
            state.should_run = True

    delay = timedelta(0) if stragglers else earliest - now
    due = tuple(index for index, state in enumerate(pool.operations) if state.should_run)
    return CyclePlan(
        delay=delay,
        earliest_run=earliest,
        stragglers=tuple(sorted(stragglers)),
        due=due,
    )
