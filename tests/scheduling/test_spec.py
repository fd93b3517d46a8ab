"""Tests for OperationSpec and schedule types."""

from dataclasses import FrozenInstanceError
from datetime import timedelta

import pytest

from cadence.core.errors import InvalidScheduleError, ScheduleError
from cadence.scheduling import CronSchedule, IntervalSchedule, OperationSpec, RunMode


async def refresh(ctx):
    return ctx


class TestIntervalSchedule:
    """Test interval schedule validation."""

    def test_every_accepts_seconds(self):
        """A bare number is read as seconds."""
        spec = OperationSpec.every(30, refresh)
        assert spec.schedule == IntervalSchedule(timedelta(seconds=30))
        assert spec.interval == timedelta(seconds=30)
        assert spec.is_cron is False

    def test_every_accepts_timedelta(self):
        spec = OperationSpec.every(timedelta(minutes=2), refresh)
        assert spec.interval == timedelta(minutes=2)

    @pytest.mark.parametrize("seconds", [0, -5])
    def test_non_positive_interval_rejected(self, seconds):
        """Zero and negative intervals are registration errors."""
        with pytest.raises(ScheduleError):
            OperationSpec.every(seconds, refresh)

    def test_describe(self):
        assert IntervalSchedule(timedelta(seconds=1.5)).describe() == "every 1.5s"


class TestCronSchedule:
    """Test cron schedule construction."""

    def test_cron_constructor(self):
        spec = OperationSpec.cron(
            "*/10 * * * * *", refresh, RunMode.PARALLEL, has_seconds=True, timezone="Europe/Berlin"
        )
        assert spec.is_cron
        assert spec.interval is None
        assert spec.schedule.has_seconds is True
        assert spec.schedule.timezone == "Europe/Berlin"
        assert spec.run_mode is RunMode.PARALLEL

    def test_whitespace_normalised(self):
        assert CronSchedule("  0   8 * *  * ").expression == "0 8 * * *"

    def test_empty_expression_rejected(self):
        with pytest.raises(InvalidScheduleError):
            CronSchedule("   ")

    def test_describe_mentions_seconds(self):
        assert CronSchedule("*/5 * * * * *", has_seconds=True).describe() == (
            "cron '*/5 * * * * *' (seconds) UTC"
        )


class TestOperationSpec:
    """Test OperationSpec defaults and validation."""

    def test_defaults(self):
        """Sequential is the default run mode; name falls back to the callback."""
        spec = OperationSpec.every(10, refresh)
        assert spec.run_mode is RunMode.SEQUENTIAL
        assert spec.name == "refresh"

    def test_explicit_name(self):
        assert OperationSpec.every(10, refresh, name="cache-refresh").name == "cache-refresh"

    def test_run_mode_coerced_from_string(self):
        spec = OperationSpec(IntervalSchedule(timedelta(seconds=1)), refresh, "independent")
        assert spec.run_mode is RunMode.INDEPENDENT

    def test_unknown_run_mode_rejected(self):
        with pytest.raises(ValueError):
            OperationSpec(IntervalSchedule(timedelta(seconds=1)), refresh, "bogus")

    def test_callback_must_be_callable(self):
        with pytest.raises(InvalidScheduleError):
            OperationSpec(IntervalSchedule(timedelta(seconds=1)), "not callable")

    def test_schedule_type_checked(self):
        with pytest.raises(InvalidScheduleError):
            OperationSpec(timedelta(seconds=1), refresh)

    def test_frozen(self):
        """Specs are immutable once registered."""
        spec = OperationSpec.every(10, refresh)
        with pytest.raises(FrozenInstanceError):
            spec.name = "other"
