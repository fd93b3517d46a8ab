"""
Structured error types for cadence.

Provides a small hierarchy of typed errors with metadata for categorisation,
logging and root cause analysis through error chaining.

Instead of generic exceptions that lose context, CadenceError and its
subclasses carry:
- **Category:** What kind of error (schedule, config, execution, engine)
- **Context:** Operation name, run mode, engine name and custom fields
- **Cause:** Chained underlying exception for root cause analysis

Manifesto:
    - **Typed Error Hierarchy:** Registration errors and runtime errors differ
    - **Fail Early:** Schedule errors surface when an operation is registered
    - **Rich Context:** Errors carry metadata for structured logging
    - **Error Chaining:** Callback exceptions are preserved as ``cause``

Architecture:
    ::

        ┌─────────────────────────────────────────────────────────────────┐
        │                       CadenceError                               │
        │               (category, context, cause)                         │
        ├─────────────────────────────────────────────────────────────────┤
        │                                                                  │
        │  ScheduleError       ConfigError      OperationError             │
        │  (SCHEDULE)          (CONFIG)         (EXECUTION)                │
        │       │                                    │                     │
        │  InvalidScheduleError               CycleAbortedError            │
        │                                                                  │
        │  EngineError                                                     │
        │  (ENGINE)                                                        │
        │       │                                                          │
        │  EngineNotFoundError                                             │
        └─────────────────────────────────────────────────────────────────┘

Guardrails:
    ❌ DON'T: Raise schedule errors from inside a pool loop
    ✅ DO: Validate schedules when the engine is constructed

    ❌ DON'T: Swallow the original callback exception
    ✅ DO: Pass it as cause= for error chaining

Tags:
    error-handling, exception-hierarchy, error-context, cadence

Doc-Types:
    - API Reference
    - Error Handling Guide

Usage:
    from cadence.core.errors import InvalidScheduleError

    raise InvalidScheduleError(
        "Expected 6 fields", cause=exc
    ).with_context(operation="nightly-report")
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Standard error categories for classification and routing."""

    SCHEDULE = "SCHEDULE"      # Malformed cron, bad interval, unknown timezone
    CONFIG = "CONFIG"          # Invalid settings or host wiring
    EXECUTION = "EXECUTION"    # Operation callback failures
    ENGINE = "ENGINE"          # Engine lifecycle and lookup
    INTERNAL = "INTERNAL"      # Bugs, unexpected state


@dataclass
class ErrorContext:
    """
    Structured metadata context for errors.

    Attributes:
        operation: Name of the operation involved
        run_mode: Run mode of the pool the operation belongs to
        engine: Name of the engine instance
        metadata: Additional key-value pairs
    """

    operation: str | None = None
    run_mode: str | None = None
    engine: str | None = None

    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        result = {}
        for key in ["operation", "run_mode", "engine"]:
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        if self.metadata:
            result.update(self.metadata)
        return result


class CadenceError(Exception):
    """
    Base exception for all cadence errors.

    Subclasses set ``default_category`` to classify themselves.

    Examples:
        >>> error = CadenceError("Unexpected state")
        >>> error.category
        <ErrorCategory.INTERNAL: 'INTERNAL'>
        >>> error.with_context(engine="billing").context.engine
        'billing'
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        context: ErrorContext | None = None,
        cause: BaseException | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.context = context or ErrorContext()
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> CadenceError:
        """
        Add context to this error (fluent API).

        Unknown keys are stored in ``context.metadata``.
        """
        for key, value in kwargs.items():
            if hasattr(self.context, key) and key != "metadata":
                setattr(self.context, key, value)
            else:
                self.context.metadata[key] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        result: dict[str, Any] = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
        }
        context_dict = self.context.to_dict()
        if context_dict:
            result["context"] = context_dict
        if self.cause is not None:
            result["cause"] = f"{type(self.cause).__name__}: {self.cause}"
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, category={self.category.value})"


# =============================================================================
# REGISTRATION ERRORS
# =============================================================================


class ScheduleError(CadenceError):
    """Error in an operation's schedule definition."""

    default_category = ErrorCategory.SCHEDULE


class InvalidScheduleError(ScheduleError):
    """Cron expression, interval or timezone could not be accepted."""

    def __init__(self, message: str, *, expression: str | None = None, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.expression = expression
        if expression is not None:
            self.context.metadata["expression"] = expression


class ConfigError(CadenceError):
    """Invalid settings or host wiring."""

    default_category = ErrorCategory.CONFIG


# =============================================================================
# RUNTIME ERRORS
# =============================================================================


class OperationError(CadenceError):
    """An operation callback failed."""

    default_category = ErrorCategory.EXECUTION


class CycleAbortedError(OperationError):
    """A Sequential/Parallel cycle was aborted by the ``stop`` failure policy.

    ``failures`` holds one :class:`OperationError` per failed callback.
    """

    def __init__(self, message: str, *, failures: list[OperationError] | None = None, **kwargs: Any):
        failures = failures or []
        if failures and "cause" not in kwargs:
            kwargs["cause"] = failures[0].cause
        super().__init__(message, **kwargs)
        self.failures = failures

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result["failures"] = [failure.to_dict() for failure in self.failures]
        return result


class EngineError(CadenceError):
    """Engine lifecycle or lookup error."""

    default_category = ErrorCategory.ENGINE


class EngineNotFoundError(EngineError):
    """No engine is registered under the requested key."""

    def __init__(self, key: Any):
        super().__init__(f"No engine registered under key {key!r}")
        self.key = key
        self.context.metadata["key"] = repr(key)


__all__ = [
    "ErrorCategory",
    "ErrorContext",
    "CadenceError",
    "ScheduleError",
    "InvalidScheduleError",
    "ConfigError",
    "OperationError",
    "CycleAbortedError",
    "EngineError",
    "EngineNotFoundError",
]
