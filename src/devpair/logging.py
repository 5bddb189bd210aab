"""Logging configuration for devpair."""

import logging
from pathlib import Path

from devpair.config import Config

# Module-level logger cache
_logger: logging.Logger | None = None


def setup_logging(config: Config) -> logging.Logger:
    """Set up logging based on configuration.

    Every module logs through ``logging.getLogger(__name__)``, so configuring
    the ``devpair`` package logger covers the coordinator, the gateway and
    the event stream alike.

    Args:
        config: Configuration object with log settings.

    Returns:
        Configured logger instance.
    """
    global _logger

    # Already configured (the CLI group callback may run more than once)
    if _logger is not None:
        return _logger

    logger = logging.getLogger("devpair")
    logger.setLevel(getattr(logging, config.log_level.upper(), logging.INFO))

    # Drop handlers left over from a previous configuration
    logger.handlers.clear()

    # 2026-01-27 10:30:45 [INFO] Pairing session started: 3f9a2c1b...
    formatter = logging.Formatter("%(asctime)s [%(levelname)s] %(message)s")
    formatter.datefmt = "%Y-%m-%d %H:%M:%S"

    # Optional file log, directory created on demand
    if config.log_file:
        log_path = Path(config.log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(log_path)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    # Console output goes to stderr, keeping stdout for prompts and the PIN
    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    # Keep pairing logs out of the root logger's handlers
    logger.propagate = False

    _logger = logger
    return logger


def reset_logging() -> None:
    """Reset logging state. Used for testing.

    Closes the handlers installed by ``setup_logging`` so log files are
    released, and restores propagation so pytest's capture sees records again.
    """
    global _logger
    if _logger is not None:
        for handler in _logger.handlers:
            handler.close()
        _logger.handlers.clear()
        _logger.propagate = True
        _logger = None
