"""Tests for cadence.core.logging."""

import json
import logging

import pytest
import structlog

from cadence.core.logging import (
    LogContext,
    bind_context,
    configure_logging,
    get_logger,
    unbind_context,
)


@pytest.fixture
def json_logs(caplog):
    """Configure JSON logging and return a reader for captured records."""
    caplog.set_level(logging.DEBUG)
    configure_logging(level="DEBUG", json_format=True, service="cadence-test")

    def read():
        return [json.loads(record.getMessage()) for record in caplog.records if record.getMessage().startswith("{")]

    return read


class TestConfigureLogging:
    """Test the structlog processor chain."""

    def test_json_output_is_ecs_compatible(self, json_logs):
        get_logger("tests.json").warning("pool.cycle", due=2)

        (entry,) = json_logs()
        assert entry["event"] == "pool.cycle"
        assert entry["due"] == 2
        assert entry["log.level"] == "warning"
        assert entry["service.name"] == "cadence-test"
        assert "@timestamp" in entry
        assert entry["logger"] == "tests.json"

    def test_level_filtering(self, caplog):
        caplog.set_level(logging.DEBUG)
        configure_logging(level="WARNING", json_format=True)

        logger = get_logger("tests.filtered")
        logger.info("dropped")
        logger.warning("kept")

        events = [json.loads(r.getMessage())["event"] for r in caplog.records if r.name == "tests.filtered"]
        assert events == ["kept"]

    def test_console_renderer(self):
        configure_logging(level="INFO", json_format=False)
        assert isinstance(structlog.get_config()["processors"][-1], structlog.dev.ConsoleRenderer)


class TestContextBinding:
    """Bound context is merged into every event."""

    def test_log_context(self, json_logs):
        logger = get_logger("tests.context")
        with LogContext(engine="billing", pool="parallel"):
            logger.info("inside")
        logger.info("outside")

        inside, outside = json_logs()
        assert inside["engine"] == "billing"
        assert inside["pool"] == "parallel"
        assert "engine" not in outside

    @pytest.mark.asyncio
    async def test_async_log_context(self, json_logs):
        logger = get_logger("tests.async_context")
        async with LogContext(engine="reports"):
            logger.info("inside")

        (entry,) = json_logs()
        assert entry["engine"] == "reports"

    def test_bind_unbind(self, json_logs):
        logger = get_logger("tests.bind")
        bind_context(engine="a", pool="sequential")
        unbind_context("pool")
        logger.info("one")
        unbind_context("engine")
        logger.info("two")

        one, two = json_logs()
        assert one["engine"] == "a"
        assert "pool" not in one
        assert "engine" not in two
