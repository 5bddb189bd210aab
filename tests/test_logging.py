"""Tests for logging module."""

import logging
import re
import sys

from devpair.config import Config
from devpair.logging import reset_logging, setup_logging


class TestSetupLogging:
    """Test logging setup."""

    def test_setup_logging_returns_logger(self):
        """Setup returns the package logger."""
        logger = setup_logging(Config())

        assert isinstance(logger, logging.Logger)
        assert logger.name == "devpair"

    def test_setup_logging_creates_log_file(self, tmp_path):
        """Logging setup creates log file."""
        log_file = tmp_path / "test.log"

        logger = setup_logging(Config(log_file=str(log_file)))
        logger.info("test message")

        assert log_file.exists()
        assert "test message" in log_file.read_text()

    def test_setup_logging_creates_log_directory(self, tmp_path):
        """Logging setup creates log directory if needed."""
        log_file = tmp_path / "subdir" / "test.log"

        logger = setup_logging(Config(log_file=str(log_file)))
        logger.info("test message")

        assert log_file.exists()

    def test_log_levels_respected(self, tmp_path):
        """Only logs at configured level and above."""
        log_file = tmp_path / "test.log"

        logger = setup_logging(Config(log_file=str(log_file), log_level="WARNING"))
        logger.debug("debug message")
        logger.info("info message")
        logger.warning("warning message")

        content = log_file.read_text()
        assert "debug message" not in content
        assert "info message" not in content
        assert "warning message" in content

    def test_module_loggers_reach_package_handlers(self, tmp_path):
        """Loggers under devpair.* write through the package handlers."""
        log_file = tmp_path / "test.log"

        setup_logging(Config(log_file=str(log_file)))
        logging.getLogger("devpair.pairing.coordinator").info("from coordinator")

        assert "from coordinator" in log_file.read_text()

    def test_log_format_includes_timestamp(self, tmp_path):
        """Log entries have timestamp, level, message."""
        log_file = tmp_path / "test.log"

        logger = setup_logging(Config(log_file=str(log_file)))
        logger.info("test message")

        # Format: 2026-01-27 10:30:45 [INFO] message
        pattern = r"\d{4}-\d{2}-\d{2} \d{2}:\d{2}:\d{2} \[INFO\] test message"
        assert re.search(pattern, log_file.read_text())

    def test_unknown_level_falls_back_to_info(self):
        """An unrecognised level name is treated as INFO."""
        logger = setup_logging(Config(log_level="chatty"))

        assert logger.level == logging.INFO

    def test_setup_logging_is_idempotent(self):
        """Repeated setup returns the same logger without adding handlers."""
        first = setup_logging(Config())
        handler_count = len(first.handlers)

        second = setup_logging(Config(log_level="DEBUG"))

        assert second is first
        assert len(second.handlers) == handler_count

    def test_console_logs_to_stderr(self):
        """Console output goes to stderr, leaving stdout to the prompts."""
        logger = setup_logging(Config())

        consoles = [
            h for h in logger.handlers if not isinstance(h, logging.FileHandler)
        ]
        assert [h.stream for h in consoles] == [sys.stderr]


class TestResetLogging:
    """Test logging reset."""

    def test_reset_allows_reconfiguration(self, tmp_path):
        """After reset, setup applies the new configuration."""
        setup_logging(Config(log_level="WARNING"))
        reset_logging()

        logger = setup_logging(Config(log_level="DEBUG"))

        assert logger.level == logging.DEBUG

    def test_reset_clears_handlers(self):
        """Reset removes handlers and restores propagation."""
        logger = setup_logging(Config())
        reset_logging()

        assert logger.handlers == []
        assert logger.propagate is True

    def test_reset_closes_log_file(self, tmp_path):
        """Reset releases the log file."""
        logger = setup_logging(Config(log_file=str(tmp_path / "devpair.log")))
        file_handler = next(
            h for h in logger.handlers if isinstance(h, logging.FileHandler)
        )

        reset_logging()

        assert file_handler.stream is None
