"""Dispatch strategies: how a pool's due operations execute.

┌──────────────┬────────────────────────────┬──────────────────┬──────────────┐
│ Run mode     │ Due operations execute…    │ Resource scope   │ Cycle waits? │
├──────────────┼────────────────────────────┼──────────────────┼──────────────┤
│ SEQUENTIAL   │ one at a time, in order    │ one per cycle    │ yes          │
│ PARALLEL     │ launched together          │ one per cycle    │ yes, for all │
│ INDEPENDENT  │ one task each, detached    │ one per dispatch │ no           │
└──────────────┴────────────────────────────┴──────────────────┴──────────────┘

A strategy is chosen once per pool when the engine is built
(:func:`create_strategy`), so the loop never re-branches on run mode.

Failures in Sequential/Parallel cycles follow the host's
:class:`FailurePolicy`; Independent failures are always isolated to their
own dispatch.
"""

from __future__ import annotations

import asyncio
import inspect
from abc import ABC, abstractmethod
from typing import Any, Protocol, runtime_checkable

from cadence.core.errors import CycleAbortedError, ErrorContext, OperationError
from cadence.core.logging import get_logger
from cadence.core.settings import FailurePolicy

from .clock import Clock
from .pool import SchedulePool
from .scopes import ScopeProvider, open_scope
from .spec import OperationSpec, RunMode
from .state import RuntimeOperationState

logger = get_logger(__name__)


@runtime_checkable
class OperationExecutor(Protocol):
    """Invokes an operation's callback against a resource context."""

    async def execute(self, spec: OperationSpec, context: Any) -> Any: ...


class CallbackExecutor:
    """Default executor.

    Coroutine functions run on the event loop; plain callables run in a
    worker thread so they cannot block the pool loop. An awaitable returned
    from a plain callable is awaited on the loop.
    """

    async def execute(self, spec: OperationSpec, context: Any) -> Any:
        callback = spec.callback
        if inspect.iscoroutinefunction(callback):
            return await callback(context)
        result = await asyncio.to_thread(callback, context)
        if inspect.isawaitable(result):
            result = await result
        return result


class DispatchStrategy(ABC):
    """Runs the due operations of one pool for one cycle."""

    run_mode: RunMode

    def __init__(
        self,
        executor: OperationExecutor,
        scope_provider: ScopeProvider,
        clock: Clock,
        failure_policy: FailurePolicy = FailurePolicy.CONTINUE,
    ) -> None:
        self.executor = executor
        self.scope_provider = scope_provider
        self.clock = clock
        self.failure_policy = FailurePolicy(failure_policy)
        self.failures = 0

    @abstractmethod
    async def dispatch(self, pool: SchedulePool) -> int:
        """Dispatch the pool's due operations; return how many were started."""

    async def _invoke(self, state: RuntimeOperationState, context: Any) -> OperationError | None:
        """Run one callback, converting its failure into an ``OperationError``."""
        try:
            await self.executor.execute(state.spec, context)
        except Exception as e:
            self.failures += 1
            error = OperationError(
                f"Operation {state.name!r} failed: {e}",
                context=ErrorContext(operation=state.name, run_mode=self.run_mode.value),
                cause=e,
            )
            logger.error("operation.failed", **error.to_dict(), exc_info=e)
            return error
        return None


class SequentialDispatch(DispatchStrategy):
    run_mode = RunMode.SEQUENTIAL

    async def dispatch(self, pool: SchedulePool) -> int:
        started = 0
        async with open_scope(self.scope_provider) as context:
            # should_run is re-checked per operation so stop() skips the rest.
            for state in pool.operations:
                if not state.should_run:
                    continue
                state.mark_dispatched(self.clock.now())
                started += 1
                error = await self._invoke(state, context)
                if error is not None and self.failure_policy is FailurePolicy.STOP:
                    raise CycleAbortedError(
                        f"Sequential cycle aborted after {state.name!r} failed",
                        failures=[error],
                    ).with_context(run_mode=self.run_mode.value)
        return started


class ParallelDispatch(DispatchStrategy):
    run_mode = RunMode.PARALLEL

    async def dispatch(self, pool: SchedulePool) -> int:
        due = pool.due
        if not due:
            return 0
        async with open_scope(self.scope_provider) as context:
            now = self.clock.now()
            for state in due:
                state.mark_dispatched(now)
            results = await asyncio.gather(*(self._invoke(state, context) for state in due))
        failures = [error for error in results if error is not None]
        if failures and self.failure_policy is FailurePolicy.STOP:
            raise CycleAbortedError(
                f"Parallel cycle had {len(failures)} failed operation(s)",
                failures=failures,
            ).with_context(run_mode=self.run_mode.value)
        return len(due)


class IndependentDispatch(DispatchStrategy):
    """Each due operation gets its own task and private scope.

    Tasks are referenced only until they finish; stop() never cancels them.
    """

    run_mode = RunMode.INDEPENDENT

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self._inflight: set[asyncio.Task[None]] = set()

    @property
    def inflight(self) -> set[asyncio.Task[None]]:
        return set(self._inflight)

    async def dispatch(self, pool: SchedulePool) -> int:
        started = 0
        for state in pool.operations:
            if not state.should_run:
                continue
            state.mark_dispatched(self.clock.now())
            task = asyncio.create_task(self._run_isolated(state), name=f"cadence:{state.name}")
            self._inflight.add(task)
            task.add_done_callback(self._inflight.discard)
            started += 1
        return started

    async def _run_isolated(self, state: RuntimeOperationState) -> None:
        try:
            async with open_scope(self.scope_provider) as context:
                await self._invoke(state, context)
        except Exception as e:
            self.failures += 1
            logger.error(
                "operation.scope_failed",
                operation=state.name,
                run_mode=self.run_mode.value,
                error=str(e),
                exc_info=e,
            )

    async def drain(self) -> None:
        """Wait for every in-flight dispatch to finish."""
        if self._inflight:
            await asyncio.gather(*self._inflight, return_exceptions=True)


_STRATEGIES: dict[RunMode, type[DispatchStrategy]] = {
    RunMode.SEQUENTIAL: SequentialDispatch,
    RunMode.PARALLEL: ParallelDispatch,
    RunMode.INDEPENDENT: IndependentDispatch,
}


def create_strategy(
    run_mode: RunMode,
    executor: OperationExecutor,
    scope_provider: ScopeProvider,
    clock: Clock,
    failure_policy: FailurePolicy = FailurePolicy.CONTINUE,
) -> DispatchStrategy:
    """Select the dispatch strategy for a pool's run mode."""
    return _STRATEGIES[RunMode(run_mode)](executor, scope_provider, clock, failure_policy)


__all__ = [
    "CallbackExecutor",
    "DispatchStrategy",
    "FailurePolicy",
    "IndependentDispatch",
    "OperationExecutor",
    "ParallelDispatch",
    "SequentialDispatch",
    "create_strategy",
]
