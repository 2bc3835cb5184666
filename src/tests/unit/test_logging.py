"""Tests for logging setup."""

import json
import logging

import pytest

from gamehub_agent.config import LoggingConfig
from gamehub_agent.logging import (
    CHILD_LOGGER_PREFIX,
    AgentJsonFormatter,
    RateLimitFilter,
    child_logger,
    setup_logging,
)
from gamehub_agent.logging_schema import LogEvent


def _record(name: str, level: int, msg: str, lineno: int = 10) -> logging.LogRecord:
    return logging.LogRecord(name, level, __file__, lineno, msg, None, None)


class TestRateLimitFilter:
    """Tests for RateLimitFilter."""

    def test_duplicates_suppressed(self) -> None:
        """Identical warnings within the window are dropped."""
        f = RateLimitFilter(rate_limit_seconds=60)

        assert f.filter(_record("gamehub_agent.ports", logging.WARNING, "port busy")) is True
        assert f.filter(_record("gamehub_agent.ports", logging.WARNING, "port busy")) is False
        assert f.filter(_record("gamehub_agent.ports", logging.WARNING, "port free")) is True

    def test_errors_always_pass(self) -> None:
        """ERROR records are never rate limited."""
        f = RateLimitFilter(rate_limit_seconds=60)

        assert f.filter(_record("gamehub_agent", logging.ERROR, "boom")) is True
        assert f.filter(_record("gamehub_agent", logging.ERROR, "boom")) is True

    def test_child_output_passes(self) -> None:
        """Repeated dev-server lines are forwarded verbatim."""
        f = RateLimitFilter(rate_limit_seconds=60)
        name = f"{CHILD_LOGGER_PREFIX}.frontend"

        assert f.filter(_record(name, logging.INFO, "hmr update")) is True
        assert f.filter(_record(name, logging.INFO, "hmr update")) is True


class TestJsonFormatter:
    """Tests for AgentJsonFormatter."""

    def test_standard_fields(self) -> None:
        """JSON lines carry service, level, logger and extra fields."""
        formatter = AgentJsonFormatter(LoggingConfig(service_name="gamehub-test"))
        record = _record("gamehub_agent.orchestrator", logging.INFO, "Lifecycle operation started")
        record.event = LogEvent.OPERATION_STARTED
        record.operation = "start"

        data = json.loads(formatter.format(record))

        assert data["service"] == "gamehub-test"
        assert data["level"] == "INFO"
        assert data["logger"] == "gamehub_agent.orchestrator"
        assert data["event"] == "operation_started"
        assert data["operation"] == "start"
        assert "timestamp" in data


class TestSetupLogging:
    """Tests for setup_logging()."""

    @pytest.fixture(autouse=True)
    def restore_logging(self) -> None:
        root = logging.getLogger()
        handlers, level = list(root.handlers), root.level
        child = logging.getLogger(CHILD_LOGGER_PREFIX)
        child_level = child.level
        yield
        root.handlers[:] = handlers
        root.setLevel(level)
        child.setLevel(child_level)

    def test_child_output_disabled(self) -> None:
        """Disabling child output silences every role logger."""
        setup_logging(LoggingConfig(child_output=False))

        assert not child_logger("backend").isEnabledFor(logging.CRITICAL)

    def test_child_output_enabled(self) -> None:
        """Child loggers inherit the root level when enabled."""
        setup_logging(LoggingConfig(level="DEBUG", child_output=True))

        assert child_logger("frontend").isEnabledFor(logging.INFO)
        assert logging.getLogger().level == logging.DEBUG
