"""Resource-context scopes for operation callbacks.

The engine does not know what a callback needs (DB session, HTTP client,
service container). The host supplies a *scope provider*: any
zero-argument callable returning a context manager, sync or async. The
value it yields is handed to each callback as its only argument.

Sequential and Parallel pools open one scope per cycle and share it
across every operation of that cycle; Independent dispatches each open a
private scope. Either way the scope is released when the batch ends, on
every exit path.

Example::

    @asynccontextmanager
    async def db_scope():
        async with Session() as session:
            yield session

    engine = SchedulingEngine(operations, scope_provider=db_scope)
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Callable
from contextlib import AbstractAsyncContextManager, AbstractContextManager, asynccontextmanager
from typing import Any

from cadence.core.errors import ConfigError

ScopeProvider = Callable[[], AbstractAsyncContextManager[Any] | AbstractContextManager[Any]]


@asynccontextmanager
async def null_scope() -> AsyncIterator[None]:
    """Default scope: no resources, callbacks receive ``None``."""
    yield None


@asynccontextmanager
async def open_scope(provider: ScopeProvider) -> AsyncIterator[Any]:
    """Enter the scope produced by *provider*, whichever protocol it speaks."""
    scope = provider()
    if isinstance(scope, AbstractAsyncContextManager) or hasattr(scope, "__aenter__"):
        async with scope as context:
            yield context
    elif isinstance(scope, AbstractContextManager) or hasattr(scope, "__enter__"):
        with scope as context:
            yield context
    else:
        raise ConfigError(
            f"Scope provider {provider!r} returned {type(scope).__name__}, expected a context manager"
        )
