"""Pytest fixtures for scheduling tests."""

import asyncio
from contextlib import asynccontextmanager, contextmanager
from datetime import UTC, datetime, timedelta
from typing import Any

import pytest

from cadence.core.errors import InvalidScheduleError
from cadence.core.settings import CadenceSettings
from cadence.scheduling import ManualClock

T0 = datetime(2024, 1, 1, tzinfo=UTC)


class FakeEvaluator:
    """Deterministic evaluator for ``*/N`` style expressions.

    ``"*/10"`` fires on every multiple of ten seconds since the epoch,
    ``"never"`` has no occurrences and anything starting with ``"bad"``
    fails validation.
    """

    name = "fake"

    def __init__(self) -> None:
        self.calls: list[datetime] = []

    def validate(self, expression: str, has_seconds: bool, timezone: str) -> None:
        if expression.startswith("bad"):
            raise InvalidScheduleError("bad expression", expression=expression)

    def next_occurrence(
        self, expression: str, has_seconds: bool, timezone: str, after: datetime
    ) -> datetime | None:
        self.calls.append(after)
        if expression == "never":
            return None
        step = int(expression.split()[0].removeprefix("*/"))
        epoch = int(after.timestamp())
        return datetime.fromtimestamp((epoch // step + 1) * step, UTC)


class Recorder:
    """Builds async callbacks that record each invocation."""

    def __init__(self, clock: ManualClock | None = None) -> None:
        self.clock = clock
        self.calls: list[tuple[str, Any, datetime | None]] = []

    def op(
        self,
        name: str,
        *,
        fail: bool = False,
        sleep: float = 0.0,
        advance: timedelta | None = None,
        before: Any = None,
    ):
        async def callback(context):
            self.calls.append((name, context, self.clock.now() if self.clock else None))
            if before is not None:
                before()
            if advance is not None:
                self.clock.advance(advance)
            if sleep:
                await asyncio.sleep(sleep)
            if fail:
                raise RuntimeError(f"{name} failed")

        callback.__qualname__ = name
        return callback

    def names(self) -> list[str]:
        return [name for name, _, _ in self.calls]

    def count(self, name: str) -> int:
        return self.names().count(name)

    def times(self, name: str) -> list[datetime]:
        return [at for n, _, at in self.calls if n == name]

    def contexts(self) -> list[Any]:
        return [context for _, context, _ in self.calls]


class ScopeRecorder:
    """Scope provider that yields a fresh token per scope and counts releases."""

    def __init__(self, *, sync: bool = False) -> None:
        self.sync = sync
        self.opened = 0
        self.closed = 0
        self.tokens: list[str] = []

    def __call__(self):
        return self._sync_scope() if self.sync else self._async_scope()

    def _enter(self) -> str:
        self.opened += 1
        token = f"scope-{self.opened}"
        self.tokens.append(token)
        return token

    @asynccontextmanager
    async def _async_scope(self):
        token = self._enter()
        try:
            yield token
        finally:
            self.closed += 1

    @contextmanager
    def _sync_scope(self):
        token = self._enter()
        try:
            yield token
        finally:
            self.closed += 1


@pytest.fixture
def clock():
    """Manual clock starting at 2024-01-01T00:00:00Z."""
    return ManualClock(T0)


@pytest.fixture
def fake_evaluator():
    return FakeEvaluator()


@pytest.fixture
def recorder(clock):
    return Recorder(clock)


@pytest.fixture
def scopes():
    return ScopeRecorder()


@pytest.fixture
def settings():
    """Settings with a short stop timeout so lifecycle tests stay fast."""
    return CadenceSettings(stop_timeout_seconds=1.0)


@pytest.fixture
def sync_scopes():
    """Scope provider returning plain (sync) context managers."""
    return ScopeRecorder(sync=True)
