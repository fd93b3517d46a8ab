"""
Cadence - recurring-operation scheduling for asyncio applications.

- cadence.core: Errors, logging, settings and time helpers
- cadence.scheduling: Operation specs, pools and the scheduling engine
- cadence.cli: The ``cadence`` command line
"""

__version__ = "0.1.0"

from cadence.scheduling import (  # noqa: E402
    EngineRegistry,
    OperationSpec,
    RunMode,
    SchedulingEngine,
    ThreadedEngineHost,
    create_engine,
)

__all__ = [
    "__version__",
    "EngineRegistry",
    "OperationSpec",
    "RunMode",
    "SchedulingEngine",
    "ThreadedEngineHost",
    "create_engine",
]
