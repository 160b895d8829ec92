"""Tests for structlog configuration."""

from __future__ import annotations

import json
import logging

import pytest
import structlog

from kbgraph.config.logging import configure_logging
from kbgraph.services.result import ServiceResult
from kbgraph.services.telemetry import traced


class TestConfigureLogging:
    def test_verbose_enables_debug(self) -> None:
        configure_logging(verbose=True)
        assert logging.getLogger("kbgraph").level == logging.DEBUG
        assert logging.getLogger().level == logging.WARNING

    def test_quiet_by_default(self) -> None:
        configure_logging()
        assert logging.getLogger("kbgraph").level == logging.WARNING

    def test_reconfigure_replaces_handler(self) -> None:
        configure_logging()
        configure_logging(log_json=True)
        names = [h.get_name() for h in logging.getLogger().handlers]
        assert names.count("kbgraph") == 1

    def test_json_mode(self, capfd: pytest.CaptureFixture[str]) -> None:
        configure_logging(verbose=True, log_json=True)
        structlog.get_logger("kbgraph.test").warning("json test", answer=42)
        parsed = json.loads(capfd.readouterr().err.strip())
        assert parsed["event"] == "json test"
        assert parsed["answer"] == 42
        assert parsed["level"] == "warning"
        assert parsed["logger"] == "kbgraph.test"
        assert "timestamp" in parsed

    def test_stdlib_logger_routed(self, capfd: pytest.CaptureFixture[str]) -> None:
        configure_logging(verbose=True, log_json=True)
        logging.getLogger("kbgraph.services.collection").info("Created %s", "c1")
        parsed = json.loads(capfd.readouterr().err.strip())
        assert parsed["event"] == "Created c1"
        assert parsed["logger"] == "kbgraph.services.collection"

    def test_traced_call_binds_op(self, capfd: pytest.CaptureFixture[str]) -> None:
        configure_logging(verbose=True, log_json=True)

        @traced
        def _logs() -> ServiceResult:
            logging.getLogger("kbgraph.services.demo").info("inside")
            return ServiceResult(ok=True, op="demo")

        _logs()
        logging.getLogger("kbgraph.services.demo").info("outside")
        lines = [json.loads(line) for line in capfd.readouterr().err.splitlines()]
        by_event = {line["event"]: line for line in lines}
        assert by_event["inside"]["op"].endswith("_logs")
        assert "op" not in by_event["outside"]
