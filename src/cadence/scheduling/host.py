"""Host-side controls for scheduling engines.

The engine itself is asyncio-native. This module provides the two host
surfaces most applications need around it:

- :class:`ThreadedEngineHost` runs an engine on a private event loop in a
  daemon thread, for synchronous applications.
- :class:`EngineRegistry` keeps several independently controllable
  engines under keys, so a host can start and stop one instance without
  touching the others.

┌──────────────────────────────────────────────────────────────────────────────┐
│  ThreadedEngineHost                                                          │
│                                                                              │
│   start()                                                                    │
│      │                                                                       │
│      ▼                                                                       │
│   ┌─────────────────── Daemon Thread ──────────────────────┐                 │
│   │   asyncio.run(_main())                                 │                 │
│   │       await engine.start()                             │                 │
│   │       await loops exit          ◄── engine.stop()      │                 │
│   │       await engine.drain()      (independent work)     │                 │
│   └────────────────────────────────────────────────────────┘                 │
│                                                                              │
│   stop()                                                                     │
│      │  run_coroutine_threadsafe(engine.stop())                              │
│      ▼                                                                       │
│   thread.join(timeout)                                                       │
└──────────────────────────────────────────────────────────────────────────────┘
"""

from __future__ import annotations

import asyncio
import threading
from collections.abc import Hashable, Iterable
from typing import Any

from cadence.core.errors import ConfigError, EngineNotFoundError
from cadence.core.logging import get_logger

from .engine import EngineHealth, SchedulingEngine
from .spec import OperationSpec

logger = get_logger(__name__)


class ThreadedEngineHost:
    """Run a :class:`SchedulingEngine` in a background thread.

    Example:
        >>> host = ThreadedEngineHost(SchedulingEngine(operations))
        >>> host.start()
        >>> # ... later ...
        >>> host.stop()
    """

    def __init__(self, engine: SchedulingEngine, *, join_timeout: float | None = None) -> None:
        self.engine = engine
        if join_timeout is None:
            join_timeout = engine.settings.stop_timeout_seconds * 2
        self._join_timeout = join_timeout
        self._thread: threading.Thread | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._ready = threading.Event()
        self._started = False
        self._lock = threading.Lock()

    def start(self, timeout: float = 5.0) -> None:
        """Start the engine thread and wait until its loops are running."""
        with self._lock:
            if self._started:
                logger.warning("host.already_started", engine=self.engine.name)
                return

            self._ready.clear()
            self._thread = threading.Thread(
                target=self._run, daemon=True, name=f"cadence-{self.engine.name}"
            )
            self._thread.start()
            self._started = True

        if not self._ready.wait(timeout):
            logger.warning("host.start_timeout", engine=self.engine.name, timeout=timeout)

    def stop(self, timeout: float | None = None) -> None:
        """Stop the engine and wait for the thread to finish.

        In-flight Independent dispatches are allowed to finish before the
        private loop closes.
        """
        with self._lock:
            if not self._started:
                return
            loop, thread = self._loop, self._thread
            self._started = False
        if timeout is None:
            timeout = self._join_timeout

        if loop is not None and loop.is_running():
            future = asyncio.run_coroutine_threadsafe(self.engine.stop(), loop)
            try:
                future.result(timeout=timeout)
            except TimeoutError:
                logger.warning("host.stop_timeout", engine=self.engine.name)

        if thread is not None:
            thread.join(timeout=timeout)
            if thread.is_alive():
                logger.warning("host.thread_alive", engine=self.engine.name)
        logger.info("host.stopped", engine=self.engine.name)

    def _run(self) -> None:
        try:
            asyncio.run(self._main())
        except Exception:
            logger.exception("host.crashed", engine=self.engine.name)
        finally:
            self._loop = None
            self._ready.set()

    async def _main(self) -> None:
        self._loop = asyncio.get_running_loop()
        await self.engine.start()
        self._ready.set()
        await self.engine.join()
        await self.engine.drain()

    @property
    def is_running(self) -> bool:
        return self._started and self._thread is not None and self._thread.is_alive()

    def health(self) -> EngineHealth:
        return self.engine.health()


class EngineRegistry:
    """Keyed collection of independently controllable engines.

    Example:
        >>> registry = EngineRegistry()
        >>> registry.register("reports", [OperationSpec.cron("0 8 * * *", send_report)])
        >>> await registry.start("reports")
        >>> await registry.stop("reports")
    """

    def __init__(self, **engine_kwargs: Any) -> None:
        if "name" in engine_kwargs:
            raise ConfigError("Engine names come from registry keys; do not pass name=")
        self._engines: dict[Hashable, SchedulingEngine] = {}
        self._engine_kwargs = engine_kwargs

    def register(
        self,
        key: Hashable,
        operations: SchedulingEngine | Iterable[OperationSpec],
    ) -> SchedulingEngine:
        """Register an engine (or build one from *operations*) under *key*.

        Raises:
            ConfigError: If *key* is already registered.
        """
        if key in self._engines:
            raise ConfigError(f"An engine is already registered under key {key!r}")
        if isinstance(operations, SchedulingEngine):
            engine = operations
        else:
            kwargs = {"name": str(key), **self._engine_kwargs}
            engine = SchedulingEngine(operations, **kwargs)
        self._engines[key] = engine
        logger.debug("registry.registered", key=str(key), engine=engine.name)
        return engine

    def get(self, key: Hashable) -> SchedulingEngine:
        try:
            return self._engines[key]
        except KeyError:
            raise EngineNotFoundError(key) from None

    def unregister(self, key: Hashable) -> SchedulingEngine:
        """Remove *key*; the engine must be stopped by the caller first."""
        engine = self.get(key)
        if engine.is_running:
            raise ConfigError(f"Engine {key!r} is still running; stop it before unregistering")
        return self._engines.pop(key)

    async def start(self, key: Hashable) -> SchedulingEngine:
        engine = self.get(key)
        await engine.start()
        return engine

    async def stop(self, key: Hashable) -> SchedulingEngine:
        engine = self.get(key)
        await engine.stop()
        return engine

    async def start_all(self) -> None:
        for engine in self._engines.values():
            await engine.start()

    async def stop_all(self) -> None:
        await asyncio.gather(*(engine.stop() for engine in self._engines.values()))

    def keys(self) -> list[Hashable]:
        return list(self._engines)

    def __contains__(self, key: object) -> bool:
        return key in self._engines

    def __len__(self) -> int:
        return len(self._engines)

    def health(self) -> dict[Hashable, EngineHealth]:
        return {key: engine.health() for key, engine in self._engines.items()}
