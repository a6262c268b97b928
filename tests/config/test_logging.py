"""Tests for structlog configuration."""

from __future__ import annotations

import json
import logging

import pytest
import structlog

from forge.config.logging import TRACE, configure_logging, get_logger, level_number, use_color


class TestConfigureLogging:
    def test_level_applies_to_forge_logger(self) -> None:
        configure_logging("debug")
        assert logging.getLogger("forge").level == logging.DEBUG
        assert logging.getLogger().level == logging.WARNING

    def test_trace_level(self) -> None:
        configure_logging("trace")
        assert logging.getLogger("forge").level == TRACE
        assert logging.getLevelName(TRACE) == "TRACE"

    def test_silent_disables_output(self, capfd: pytest.CaptureFixture[str]) -> None:
        configure_logging("silent")
        structlog.get_logger("forge.test").critical("should not appear")
        assert capfd.readouterr().err == ""

    def test_reconfigure_replaces_handler(self) -> None:
        configure_logging("info")
        configure_logging("info")
        assert len(logging.getLogger().handlers) == 1

    def test_silent_then_info_reenables(self) -> None:
        configure_logging("silent")
        configure_logging("info")
        assert logging.getLogger("forge").disabled is False

    def test_json_mode_output(self, capfd: pytest.CaptureFixture[str]) -> None:
        configure_logging("debug", "json")
        log = structlog.get_logger("forge.test")
        log.warning("json test", answer=42)
        parsed = json.loads(capfd.readouterr().err.strip())
        assert parsed["event"] == "json test"
        assert parsed["answer"] == 42
        assert parsed["level"] == "warning"
        assert parsed["logger"] == "forge.test"
        assert "timestamp" in parsed

    def test_stdlib_forge_logger_gets_structured_fields(self, capfd: pytest.CaptureFixture[str]) -> None:
        configure_logging("debug", "json")
        logging.getLogger("forge.modules.loader").debug("Loaded module %s", "./website")
        parsed = json.loads(capfd.readouterr().err.strip())
        assert parsed["event"] == "Loaded module ./website"
        assert parsed["level"] == "debug"
        assert parsed["logger"] == "forge.modules.loader"

    def test_info_hides_debug(self, capfd: pytest.CaptureFixture[str]) -> None:
        configure_logging("info", "json")
        structlog.get_logger("forge.test").debug("hidden")
        assert capfd.readouterr().err == ""

    def test_pretty_without_color_has_no_ansi(self, capfd: pytest.CaptureFixture[str]) -> None:
        configure_logging("info", "pretty", "never")
        structlog.get_logger("forge.test").warning("plain text")
        err = capfd.readouterr().err
        assert "plain text" in err
        assert "\x1b[" not in err


class TestHelpers:
    def test_level_number(self) -> None:
        assert level_number("warning") == logging.WARNING
        assert level_number("silent") > logging.CRITICAL

    def test_use_color(self) -> None:
        assert use_color("always") is True
        assert use_color("never") is False

    def test_get_logger_is_namespaced(self, capfd: pytest.CaptureFixture[str]) -> None:
        configure_logging("info", "json")
        get_logger("website", command="deploy").info("hi")
        parsed = json.loads(capfd.readouterr().err.strip())
        assert parsed["logger"] == "forge.website"
        assert parsed["command"] == "deploy"
