"""Tests for structlog configuration and context helpers."""

from __future__ import annotations

import json

import pytest
import structlog

from layerstore.core.logging import (
    LogContext,
    bind_context,
    clear_context,
    configure_logging,
    get_logger,
    unbind_context,
)
from layerstore.core.settings import StoreSettings


@pytest.fixture(autouse=True)
def reset_structlog():
    yield
    structlog.reset_defaults()


class TestConfigureLogging:
    def test_json_output_is_ecs_shaped(self, capsys: pytest.CaptureFixture[str]) -> None:
        configure_logging(level="INFO", json_format=True, service="orders-api")
        get_logger("tests").info("entity_stored", table="orders", key=42)

        line = capsys.readouterr().out.strip().splitlines()[-1]
        event = json.loads(line)
        assert event["event"] == "entity_stored"
        assert event["table"] == "orders"
        assert event["service.name"] == "orders-api"
        assert event["log.level"] == "info"
        assert "@timestamp" in event

    def test_level_filters(self, capsys: pytest.CaptureFixture[str]) -> None:
        configure_logging(level="WARNING", json_format=True)
        get_logger("tests").debug("sql_executed", sql="SELECT 1")
        assert "sql_executed" not in capsys.readouterr().out

    def test_no_timestamp(self, capsys: pytest.CaptureFixture[str]) -> None:
        configure_logging(json_format=True, add_timestamp=False)
        get_logger().info("ping")
        event = json.loads(capsys.readouterr().out.strip().splitlines()[-1])
        assert "@timestamp" not in event

    def test_module_name_logger(self, capsys: pytest.CaptureFixture[str]) -> None:
        configure_logging(json_format=True)
        get_logger("layerstore.persistence.storage").info("ping")
        event = json.loads(capsys.readouterr().out.strip().splitlines()[-1])
        assert event["event"] == "ping"

    def test_settings_drive_configuration(self, capsys: pytest.CaptureFixture[str]) -> None:
        settings = StoreSettings(log_level="WARNING", json_logs=True, service_name="billing")
        configure_logging(settings=settings)
        log = get_logger("tests")
        log.info("hidden")
        log.warning("shown")

        lines = capsys.readouterr().out.strip().splitlines()
        assert len(lines) == 1
        event = json.loads(lines[0])
        assert event["event"] == "shown"
        assert event["service.name"] == "billing"

    def test_arguments_override_settings(self, capsys: pytest.CaptureFixture[str]) -> None:
        settings = StoreSettings(log_level="ERROR", json_logs=True, service_name="billing")
        configure_logging(level="DEBUG", service="explicit", settings=settings)
        get_logger("tests").debug("sql_executed")
        event = json.loads(capsys.readouterr().out.strip().splitlines()[-1])
        assert event["event"] == "sql_executed"
        assert event["service.name"] == "explicit"


class TestContext:
    def test_bind_and_unbind(self) -> None:
        bind_context(request_id="r1", tenant="acme")
        assert structlog.contextvars.get_contextvars() == {"request_id": "r1", "tenant": "acme"}
        unbind_context("tenant")
        assert structlog.contextvars.get_contextvars() == {"request_id": "r1"}
        clear_context()
        assert structlog.contextvars.get_contextvars() == {}

    def test_log_context_scopes_keys(self) -> None:
        with LogContext(table="users"):
            assert structlog.contextvars.get_contextvars()["table"] == "users"
        assert "table" not in structlog.contextvars.get_contextvars()

    def test_bound_context_reaches_output(self, capsys: pytest.CaptureFixture[str]) -> None:
        configure_logging(json_format=True)
        with LogContext(request_id="abc123"):
            get_logger("tests").info("entity_stored")
        event = json.loads(capsys.readouterr().out.strip().splitlines()[-1])
        assert event["request_id"] == "abc123"
