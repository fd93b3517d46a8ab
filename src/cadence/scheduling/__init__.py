"""Recurring-operation scheduling for cadence.

Manifesto:
    Recurring work should not need one timer per job.  Operations declare
    *when* they run (interval or cron) and *how* they run relative to their
    siblings (run mode); the engine groups them into one pool per run mode
    and drives each pool from a single loop that sleeps only as long as the
    earliest operation allows.  Operations that share a period stay in
    lock-step, and an operation whose slot was consumed by a slow sibling
    is caught up on the very next cycle instead of being skipped.

┌──────────────────────────────────────────────────────────────────────────────┐
│  CADENCE SCHEDULING                                                          │
│                                                                              │
│  Quick Start:                                                                │
│  ┌──────────────────────────────────────────────────────────────────────┐    │
│  │   from cadence.scheduling import OperationSpec, RunMode, create_engine│   │
│  │                                                                      │    │
│  │   engine = create_engine([                                           │    │
│  │       OperationSpec.every(30, refresh_cache),                        │    │
│  │       OperationSpec.cron("0 8 * * *", send_report,                   │    │
│  │                          RunMode.INDEPENDENT,                        │    │
│  │                          timezone="Europe/Berlin"),                  │    │
│  │   ])                                                                 │    │
│  │                                                                      │    │
│  │   async with engine:                                                 │    │
│  │       await shutdown_requested.wait()                                │    │
│  └──────────────────────────────────────────────────────────────────────┘    │
│                                                                              │
│  Architecture:                                                               │
│  ┌──────────────────────────────────────────────────────────────────────┐    │
│  │                                                                      │    │
│  │   OperationSpec[]  ──► build_pools() ──► SchedulePool per run mode   │    │
│  │                                              │                       │    │
│  │                                              ▼                       │    │
│  │   SchedulingEngine ── one loop per pool ─► plan_cycle()              │    │
│  │                                              │                       │    │
│  │                                              ▼                       │    │
│  │                               DispatchStrategy (per run mode)        │    │
│  │                                 • SequentialDispatch                 │    │
│  │                                 • ParallelDispatch                   │    │
│  │                                 • IndependentDispatch                │    │
│  │                                                                      │    │
│  │   Hosts: ThreadedEngineHost (sync apps), EngineRegistry (many)       │    │
│  └──────────────────────────────────────────────────────────────────────┘    │
│                                                                              │
│  Dependencies:                                                               │
│  - croniter: Cron expression evaluation                                      │
│  - zoneinfo/tzdata: Per-operation time zones                                 │
└──────────────────────────────────────────────────────────────────────────────┘

Guardrails:
    ❌ Scheduling the same work with one timer per operation
    ✅ One ``SchedulingEngine`` per application, pools per run mode
    ❌ Discovering a malformed cron expression hours after deploy
    ✅ Schedules are validated when the engine is constructed
    ❌ Cancelling callbacks mid-flight on shutdown
    ✅ ``stop()`` prevents new work and lets running batches finish

Tags:
    cadence, scheduling, cron, interval, run-modes, sync-groups,
    straggler-catch-up, asyncio

Doc-Types:
    package-overview, architecture-map, module-index
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any

# Clock
from .clock import Clock, ManualClock, SystemClock

# Dispatch
from .dispatch import (
    CallbackExecutor,
    DispatchStrategy,
    FailurePolicy,
    IndependentDispatch,
    OperationExecutor,
    ParallelDispatch,
    SequentialDispatch,
    create_strategy,
)

# Engine
from .engine import EngineHealth, PoolStats, SchedulingEngine

# Evaluator
from .evaluator import CroniterEvaluator, ScheduleEvaluator

# Hosts
from .host import EngineRegistry, ThreadedEngineHost

# Planning
from .planner import CyclePlan, plan_cycle
from .pool import SchedulePool, build_pools, group_sync_indices

# Scopes
from .scopes import ScopeProvider, null_scope, open_scope

# Operation specs
from .spec import CronSchedule, IntervalSchedule, OperationSpec, RunMode
from .state import RuntimeOperationState, compute_next_run

__all__ = [
    # Specs
    "OperationSpec",
    "RunMode",
    "IntervalSchedule",
    "CronSchedule",
    # Evaluator
    "ScheduleEvaluator",
    "CroniterEvaluator",
    # Clock
    "Clock",
    "SystemClock",
    "ManualClock",
    # State & planning
    "RuntimeOperationState",
    "compute_next_run",
    "SchedulePool",
    "build_pools",
    "group_sync_indices",
    "CyclePlan",
    "plan_cycle",
    # Scopes
    "ScopeProvider",
    "null_scope",
    "open_scope",
    # Dispatch
    "OperationExecutor",
    "CallbackExecutor",
    "FailurePolicy",
    "DispatchStrategy",
    "SequentialDispatch",
    "ParallelDispatch",
    "IndependentDispatch",
    "create_strategy",
    # Engine
    "SchedulingEngine",
    "PoolStats",
    "EngineHealth",
    # Hosts
    "ThreadedEngineHost",
    "EngineRegistry",
    "create_engine",
]


def create_engine(
    operations: Iterable[OperationSpec],
    *,
    threaded: bool = False,
    **kwargs: Any,
) -> SchedulingEngine | ThreadedEngineHost:
    """Factory function to create a scheduling engine.

    Args:
        operations: Operations to schedule
        threaded: Wrap the engine in a :class:`ThreadedEngineHost` for
            synchronous applications
        **kwargs: Passed through to :class:`SchedulingEngine`

    Returns:
        A ``SchedulingEngine``, or a ``ThreadedEngineHost`` when *threaded*

    Example:
        >>> host = create_engine(operations, threaded=True)
        >>> host.start()
    """
    engine = SchedulingEngine(operations, **kwargs)
    if threaded:
        return ThreadedEngineHost(engine)
    return engine
