"""Centralized settings for cadence.

Manifesto:
    Configuration should be explicit, validated, and environment-driven.
    Host-level policy (failure handling, stop timeout, cron boundary guard)
    lives here so the engine itself never reads the environment.

    - **Pydantic validation:** Type-checked at startup, not inside a loop
    - **Environment-driven:** ``CADENCE_*`` env vars and ``.env`` files
    - **Sensible defaults:** Works out of the box for development

Examples:
    >>> from cadence.core.settings import get_settings
    >>> settings = get_settings()
    >>> settings.failure_policy
    <FailurePolicy.CONTINUE: 'continue'>

Tags:
    settings, configuration, pydantic, environment, cadence

Doc-Types:
    - API Reference
    - Configuration Guide
"""

from __future__ import annotations

from enum import Enum

from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .errors import ConfigError


class FailurePolicy(str, Enum):
    """What to do when an operation fails inside a Sequential/Parallel cycle."""

    CONTINUE = "continue"  # Log the failure, keep running the rest of the cycle
    STOP = "stop"          # Abort the remaining operations of the cycle


class CadenceSettings(BaseSettings):
    """Cadence configuration.

    All fields can be set via ``CADENCE_*`` environment variables (e.g.
    ``CADENCE_FAILURE_POLICY=stop``) or through a ``.env`` file.
    """

    model_config = SettingsConfigDict(
        env_prefix="CADENCE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Observability ────────────────────────────────────────────
    log_level: str = Field(default="INFO")
    log_json: bool | None = Field(default=None, description="None = JSON when stdout is not a TTY")
    service_name: str = Field(default="cadence")

    # ── Engine ───────────────────────────────────────────────────
    failure_policy: FailurePolicy = Field(default=FailurePolicy.CONTINUE)
    cron_boundary_seconds: float = Field(
        default=1.0,
        ge=0,
        description="Cron occurrences this close to the last run are skipped to the following one",
    )
    stop_timeout_seconds: float = Field(
        default=5.0,
        gt=0,
        description="How long stop() waits for in-flight batches before returning",
    )
    default_timezone: str = Field(default="UTC")

    @field_validator("log_level")
    @classmethod
    def _normalise_level(cls, value: str) -> str:
        level = value.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"unknown log level: {value}")
        return level


_settings_cache: dict[str, CadenceSettings] = {}


def get_settings(*, _force_reload: bool = False) -> CadenceSettings:
    """Load, validate, and cache a :class:`CadenceSettings` instance.

    Raises:
        ConfigError: If the environment holds invalid values.
    """
    if _force_reload:
        _settings_cache.clear()

    if "default" not in _settings_cache:
        try:
            _settings_cache["default"] = CadenceSettings()
        except ValidationError as e:
            raise ConfigError(f"Invalid cadence settings: {e}", cause=e) from e
    return _settings_cache["default"]


__all__ = ["CadenceSettings", "FailurePolicy", "get_settings"]
