"""Schedule pools and sync groups.

Registered operations are partitioned by run mode into disjoint pools;
each pool is driven by its own loop. Within a pool, interval operations
that share the exact same interval form a *sync group*: the planner forces
every member to the group's earliest next run so they keep firing in the
same cycle instead of drifting apart as execution lag accumulates.

Cron operations never join a sync group; their occurrences are already
deterministic.

::

    operations (registration order)
      A  every 10s  SEQUENTIAL
      B  cron       PARALLEL
      C  every 10s  SEQUENTIAL        ┌ SchedulePool(SEQUENTIAL) ops=[A, C, D]
      D  every 5s   SEQUENTIAL   ──►  │   sync_groups=[(0, 1)]
                                      └ SchedulePool(PARALLEL)   ops=[B]
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from .evaluator import ScheduleEvaluator
from .spec import OperationSpec, RunMode
from .state import DEFAULT_CRON_BOUNDARY, RuntimeOperationState


@dataclass
class SchedulePool:
    """The operations of one run mode plus their precomputed sync groups."""

    run_mode: RunMode
    operations: list[RuntimeOperationState]
    sync_groups: list[tuple[int, ...]] = field(default_factory=list)

    def __post_init__(self) -> None:
        if not self.sync_groups:
            self.sync_groups = group_sync_indices(self.operations)

    def __len__(self) -> int:
        return len(self.operations)

    def __iter__(self) -> Iterator[RuntimeOperationState]:
        return iter(self.operations)

    @property
    def due(self) -> list[RuntimeOperationState]:
        return [state for state in self.operations if state.should_run]

    def align_sync_groups(self) -> None:
        """Move every sync-group member to the group's earliest next run."""
        for group in self.sync_groups:
            earliest = min(self.operations[index].next_run for index in group)
            for index in group:
                self.operations[index].next_run = earliest

    def sync_group_of(self, index: int) -> tuple[int, ...] | None:
        for group in self.sync_groups:
            if index in group:
                return group
        return None

    def cancel_pending(self) -> None:
        """Clear every ``should_run`` flag so no further dispatch happens."""
        for state in self.operations:
            state.should_run = False


def group_sync_indices(operations: Sequence[RuntimeOperationState]) -> list[tuple[int, ...]]:
    """Group indices of interval operations by identical interval.

    Only groups with two or more members are returned, in order of first
    appearance.
    """
    groups: dict[timedelta, list[int]] = {}
    for index, state in enumerate(operations):
        interval = state.spec.interval
        if interval is not None:
            groups.setdefault(interval, []).append(index)
    return [tuple(indices) for indices in groups.values() if len(indices) > 1]


def build_pools(
    specs: Iterable[OperationSpec],
    now: datetime,
    evaluator: ScheduleEvaluator,
    boundary: timedelta = DEFAULT_CRON_BOUNDARY,
) -> list[SchedulePool]:
    """Partition *specs* by run mode into pools of fresh runtime states.

    Pools are ordered by the first appearance of their run mode; operations
    keep their registration order inside each pool.
    """
    by_mode: dict[RunMode, list[RuntimeOperationState]] = {}
    for spec in specs:
        state = RuntimeOperationState.create(spec, now, evaluator, boundary)
        by_mode.setdefault(spec.run_mode, []).append(state)
    return [SchedulePool(mode, states) for mode, states in by_mode.items()]
