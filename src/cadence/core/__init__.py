"""Core primitives for cadence: errors, logging, settings and timestamps."""

from .errors import (
    CadenceError,
    ConfigError,
    CycleAbortedError,
    EngineError,
    EngineNotFoundError,
    ErrorCategory,
    ErrorContext,
    InvalidScheduleError,
    OperationError,
    ScheduleError,
)
from .logging import LogContext, configure_logging, get_logger
from .settings import CadenceSettings, FailurePolicy, get_settings
from .timestamps import MAX_INSTANT, ensure_utc, to_iso8601, utc_now

__all__ = [
    "CadenceError",
    "ConfigError",
    "CycleAbortedError",
    "EngineError",
    "EngineNotFoundError",
    "ErrorCategory",
    "ErrorContext",
    "InvalidScheduleError",
    "OperationError",
    "ScheduleError",
    "LogContext",
    "configure_logging",
    "get_logger",
    "CadenceSettings",
    "FailurePolicy",
    "get_settings",
    "MAX_INSTANT",
    "ensure_utc",
    "to_iso8601",
    "utc_now",
]
