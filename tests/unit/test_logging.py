"""Tests for logging configuration."""

import os
import time

import structlog

from wda.core.logging import (
    _cull_old_logs,
    bind_context,
    clear_context,
    configure_logging,
    get_logger,
    unbind_context,
)


class TestLoggingConfiguration:
    def test_configure_logging_creates_run_file(self, tmp_path):
        log_file = configure_logging(logs_dir=tmp_path)

        assert log_file.parent == tmp_path
        assert log_file.name.startswith("wda_")
        assert log_file.exists()

    def test_get_logger_has_logging_methods(self):
        logger = get_logger("test_module")

        assert callable(logger.info)
        assert callable(logger.error)
        assert callable(logger.debug)

    def test_logger_can_bind_context(self, tmp_path):
        configure_logging(logs_dir=tmp_path)
        logger = get_logger("test")

        logger.bind(session_id="session-123").info("test_message")


def test_cull_old_logs_keeps_most_recent(tmp_path):
    for i in range(4):
        path = tmp_path / f"wda_2026010{i}_000000.log"
        path.write_text("x")
        stamp = time.time() - (10 - i)
        os.utime(path, (stamp, stamp))
    (tmp_path / "other.log").write_text("kept")

    _cull_old_logs(tmp_path, keep=2)

    remaining = sorted(p.name for p in tmp_path.iterdir())
    assert remaining == ["other.log", "wda_20260102_000000.log", "wda_20260103_000000.log"]


def test_context_binding():
    clear_context()
    bind_context(session_id="session-1", request_id="req-123")
    unbind_context("request_id")

    assert structlog.contextvars.get_contextvars() == {"session_id": "session-1"}

    clear_context()
    assert structlog.contextvars.get_contextvars() == {}
