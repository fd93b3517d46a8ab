"""Scheduling engine with one independent loop per run-mode pool.

Manifesto:
    A scheduler with one timer per operation scales poorly and drifts;
    a scheduler with one global loop couples unrelated concurrency
    disciplines. The engine runs exactly one loop per run mode present,
    each sleeping only as long as its own earliest operation allows and
    catching up immediately when an overrun made a sibling miss its slot.

┌──────────────────────────────────────────────────────────────────────────────┐
│  SCHEDULING ENGINE                                                           │
│                                                                              │
│   SchedulingEngine(operations)                                               │
│      │  build_pools()  ─ validate schedules, partition by run mode           │
│      ▼                                                                       │
│   start() ──► one asyncio.Task per pool                                      │
│                                                                              │
│   ┌──────────────────────── pool loop ───────────────────────────┐           │
│   │                                                              │           │
│   │   dispatch due operations   (strategy chosen per run mode)   │           │
│   │          │                                                   │           │
│   │          ▼                                                   │           │
│   │   plan_cycle(pool, now)  ─► CyclePlan(delay, due, stragglers)│           │
│   │          │                                                   │           │
│   │          ▼                                                   │           │
│   │   wait(delay) ── stop event set? ──► exit                    │           │
│   │          │                                                   │           │
│   │          └───────────────── repeat ◄─────────────────────────┘           │
│                                                                              │
│   stop() ──► should_run = False everywhere, set stop event,                  │
│              wait for in-flight batches (never cancels them)                 │
└──────────────────────────────────────────────────────────────────────────────┘

Failures:
    Callback failures never terminate a loop. Sequential/Parallel failures
    follow the :class:`FailurePolicy`; a batch-level error is logged and
    counted and the loop keeps scheduling. Independent failures stay inside
    their own dispatch.

Tags:
    cadence, scheduling, engine, straggler-catch-up, sync-groups, asyncio

Doc-Types:
    api-reference, architecture-diagram
"""

from __future__ import annotations

import asyncio
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any

from cadence.core.errors import CadenceError, CycleAbortedError, ErrorContext, InvalidScheduleError
from cadence.core.logging import LogContext, get_logger
from cadence.core.settings import CadenceSettings, FailurePolicy, get_settings
from cadence.core.timestamps import to_iso8601

from .clock import Clock, SystemClock
from .dispatch import (
    CallbackExecutor,
    DispatchStrategy,
    IndependentDispatch,
    OperationExecutor,
    create_strategy,
)
from .evaluator import CroniterEvaluator, ScheduleEvaluator
from .planner import CyclePlan, plan_cycle
from .pool import SchedulePool, build_pools
from .scopes import ScopeProvider, null_scope
from .spec import CronSchedule, OperationSpec, RunMode
from .state import RuntimeOperationState

logger = get_logger(__name__)


@dataclass
class PoolStats:
    """Statistics for one pool loop."""

    run_mode: RunMode
    operations: int = 0
    cycles: int = 0
    dispatched: int = 0
    stragglers: int = 0
    failures: int = 0
    last_cycle: datetime | None = None
    next_run: datetime | None = None
    last_error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "run_mode": self.run_mode.value,
            "operations": self.operations,
            "cycles": self.cycles,
            "dispatched": self.dispatched,
            "stragglers": self.stragglers,
            "failures": self.failures,
            "last_cycle": to_iso8601(self.last_cycle),
            "next_run": to_iso8601(self.next_run),
            "last_error": self.last_error,
        }


@dataclass
class EngineHealth:
    """Health status for a scheduling engine."""

    healthy: bool
    name: str
    running: bool
    pools: list[PoolStats] = field(default_factory=list)
    inflight_independent: int = 0

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "healthy": self.healthy,
            "name": self.name,
            "running": self.running,
            "pools": [pool.to_dict() for pool in self.pools],
            "inflight_independent": self.inflight_independent,
        }


class SchedulingEngine:
    """Runs recurring operations, one loop per run-mode pool.

    Example:
        >>> async def ping(ctx):
        ...     ...
        >>> engine = SchedulingEngine([
        ...     OperationSpec.every(10, ping),
        ...     OperationSpec.cron("*/10 * * * * *", ping, has_seconds=True),
        ... ])
        >>> async with engine:
        ...     await asyncio.sleep(60)

    Args:
        operations: Every operation the engine schedules.
        clock: Source of "now" (default: wall clock, UTC).
        evaluator: Cron evaluator (default: croniter).
        executor: Invokes callbacks (default: :class:`CallbackExecutor`).
        scope_provider: Creates the resource context passed to callbacks.
        failure_policy: Sequential/Parallel failure handling
            (default: ``settings.failure_policy``).
        settings: Configuration (default: :func:`get_settings`).
        name: Label used in logs and by :class:`EngineRegistry`.

    Raises:
        InvalidScheduleError: If any cron schedule cannot be evaluated.
    """

    def __init__(
        self,
        operations: Iterable[OperationSpec],
        *,
        clock: Clock | None = None,
        evaluator: ScheduleEvaluator | None = None,
        executor: OperationExecutor | None = None,
        scope_provider: ScopeProvider | None = None,
        failure_policy: FailurePolicy | str | None = None,
        settings: CadenceSettings | None = None,
        name: str = "default",
    ) -> None:
        self.settings = settings or get_settings()
        self.name = name
        self.clock = clock or SystemClock()
        self.evaluator = evaluator or CroniterEvaluator()
        self.executor = executor or CallbackExecutor()
        self.scope_provider = scope_provider or null_scope
        self.failure_policy = FailurePolicy(failure_policy or self.settings.failure_policy)
        self.boundary = timedelta(seconds=self.settings.cron_boundary_seconds)

        specs = list(operations)
        for spec in specs:
            self._validate(spec)

        self.pools: list[SchedulePool] = build_pools(
            specs, self.clock.now(), self.evaluator, self.boundary
        )
        self._strategies: dict[RunMode, DispatchStrategy] = {
            pool.run_mode: create_strategy(
                pool.run_mode, self.executor, self.scope_provider, self.clock, self.failure_policy
            )
            for pool in self.pools
        }
        self._stats: dict[RunMode, PoolStats] = {
            pool.run_mode: PoolStats(run_mode=pool.run_mode, operations=len(pool))
            for pool in self.pools
        }
        self._stop_event: asyncio.Event | None = None
        self._tasks: list[asyncio.Task[None]] = []
        self._running = False

        logger.debug(
            "engine.built",
            engine=self.name,
            pools={pool.run_mode.value: len(pool) for pool in self.pools},
            sync_groups=sum(len(pool.sync_groups) for pool in self.pools),
        )

    def _validate(self, spec: OperationSpec) -> None:
        if not isinstance(spec, OperationSpec):
            raise InvalidScheduleError(f"Expected OperationSpec, got {type(spec).__name__}")
        if isinstance(spec.schedule, CronSchedule):
            schedule = spec.schedule
            try:
                self.evaluator.validate(schedule.expression, schedule.has_seconds, schedule.timezone)
            except CadenceError as e:
                e.with_context(operation=spec.name, engine=self.name)
                raise

    # === Lifecycle ===

    async def start(self) -> None:
        """Spawn one loop task per pool.

        A second call while running is ignored.
        """
        if self._running:
            logger.warning("engine.already_running", engine=self.name)
            return

        self._stop_event = asyncio.Event()
        self._tasks = [
            asyncio.create_task(
                self._run_pool(pool, self._stop_event),
                name=f"cadence:{self.name}:{pool.run_mode.value}",
            )
            for pool in self.pools
            if len(pool)
        ]
        self._running = True
        logger.info(
            "engine.started",
            engine=self.name,
            pools=[pool.run_mode.value for pool in self.pools],
            failure_policy=self.failure_policy.value,
        )

    async def stop(self) -> None:
        """Stop every pool loop.

        No operation becomes due after this is called. Batches already
        executing run to completion; Independent dispatches keep running
        until they finish (see :meth:`drain`).
        """
        if not self._running:
            return

        logger.info("engine.stopping", engine=self.name)
        for pool in self.pools:
            pool.cancel_pending()
        assert self._stop_event is not None
        self._stop_event.set()

        tasks, self._tasks = self._tasks, []
        self._running = False
        if tasks:
            _, pending = await asyncio.wait(tasks, timeout=self.settings.stop_timeout_seconds)
            if pending:
                logger.warning(
                    "engine.stop_timeout",
                    engine=self.name,
                    busy_pools=len(pending),
                    timeout=self.settings.stop_timeout_seconds,
                )
        logger.info("engine.stopped", engine=self.name)

    async def serve(self) -> None:
        """Start the engine and return once every pool loop has exited."""
        await self.start()
        await self.join()

    async def join(self) -> None:
        """Wait for the current pool loops to exit."""
        tasks = list(self._tasks)
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def drain(self) -> None:
        """Wait for in-flight Independent dispatches to finish."""
        for strategy in self._strategies.values():
            if isinstance(strategy, IndependentDispatch):
                await strategy.drain()

    async def __aenter__(self) -> SchedulingEngine:
        await self.start()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.stop()

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def operations(self) -> list[RuntimeOperationState]:
        return [state for pool in self.pools for state in pool]

    def pool(self, run_mode: RunMode | str) -> SchedulePool | None:
        run_mode = RunMode(run_mode)
        for pool in self.pools:
            if pool.run_mode is run_mode:
                return pool
        return None

    # === Pool loop ===

    async def _run_pool(self, pool: SchedulePool, stop_event: asyncio.Event) -> None:
        async with LogContext(engine=self.name, pool=pool.run_mode.value):
            logger.info("pool.started", operations=len(pool), sync_groups=len(pool.sync_groups))
            try:
                while True:
                    plan = await self.run_once(pool)
                    if await self._wait(plan, stop_event):
                        break
            except Exception:
                logger.exception("pool.crashed")
                raise
            finally:
                # Planning after a mid-batch stop() may have raised flags again.
                pool.cancel_pending()
            logger.info("pool.stopped")

    async def run_once(self, pool: SchedulePool) -> CyclePlan:
        """Run one loop iteration: dispatch what is due, then plan the next cycle.

        Does not wait; the caller decides how to honour ``plan.delay``.
        """
        stats = self._stats[pool.run_mode]
        strategy = self._strategies[pool.run_mode]
        stats.cycles += 1
        stats.last_cycle = self.clock.now()

        if any(state.should_run for state in pool):
            failures_before = strategy.failures
            try:
                stats.dispatched += await strategy.dispatch(pool)
            except CycleAbortedError as e:
                stats.last_error = e.message
                logger.error("pool.cycle_failed", **e.with_context(engine=self.name).to_dict())
            except Exception as e:
                # Failure of the batch primitive itself (e.g. scope creation).
                stats.last_error = str(e)
                if isinstance(e, CadenceError):
                    error = e.with_context(engine=self.name, run_mode=pool.run_mode.value)
                else:
                    error = CadenceError(
                        f"Cycle failed: {e}",
                        context=ErrorContext(engine=self.name, run_mode=pool.run_mode.value),
                        cause=e,
                    )
                logger.error("pool.cycle_failed", **error.to_dict(), exc_info=e)
                stats.failures += 1
                # The batch never started; its operations give up this slot.
                now = self.clock.now()
                for state in pool.due:
                    state.last_run = now
            stats.failures += strategy.failures - failures_before

        plan = plan_cycle(pool, self.clock.now(), self.evaluator, self.boundary)
        stats.stragglers += len(plan.stragglers)
        stats.next_run = None if plan.idle else plan.earliest_run
        if plan.catching_up:
            logger.info(
                "pool.catching_up",
                stragglers=[pool.operations[i].name for i in plan.stragglers],
            )
        logger.debug(
            "pool.cycle",
            due=[pool.operations[i].name for i in plan.due],
            delay=plan.delay.total_seconds(),
            idle=plan.idle,
        )
        return plan

    async def _wait(self, plan: CyclePlan, stop_event: asyncio.Event) -> bool:
        """Sleep until the next cycle; return True if the loop must exit."""
        if stop_event.is_set():
            return True
        if plan.idle:
            await stop_event.wait()
            return True
        timeout = plan.delay.total_seconds()
        if timeout <= 0:
            # Catch-up cycle: yield so sibling pools still get the loop.
            await asyncio.sleep(0)
            return stop_event.is_set()
        try:
            await asyncio.wait_for(stop_event.wait(), timeout=timeout)
        except TimeoutError:
            return stop_event.is_set()
        return True

    # === Health & Stats ===

    def get_stats(self) -> dict[RunMode, PoolStats]:
        return dict(self._stats)

    def health(self) -> EngineHealth:
        pools_alive = all(not task.done() for task in self._tasks)
        inflight = sum(
            len(strategy.inflight)
            for strategy in self._strategies.values()
            if isinstance(strategy, IndependentDispatch)
        )
        return EngineHealth(
            healthy=self._running and pools_alive,
            name=self.name,
            running=self._running,
            pools=list(self._stats.values()),
            inflight_independent=inflight,
        )
