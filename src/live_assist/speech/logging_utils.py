"""Logging utilities with custom trace level."""

import logging
from typing import Any

# Custom TRACE level, below DEBUG, for per-frame output
TRACE_LEVEL = 5

DETAILED_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
BRIEF_FORMAT = "%(asctime)s - %(levelname)s - %(message)s"

# Chatty third-party loggers, raised to WARNING outside verbose mode
NOISY_LOGGERS = ("faster_whisper", "httpx", "httpcore")


def add_trace_level() -> None:
    """Register TRACE with the logging module and add ``Logger.trace``."""
    logging.addLevelName(TRACE_LEVEL, "TRACE")

    def trace(self: logging.Logger, message: str, *args: Any, **kwargs: Any) -> None:
        if self.isEnabledFor(TRACE_LEVEL):
            self._log(TRACE_LEVEL, message, args, **kwargs)

    logging.Logger.trace = trace


def get_logger(name: str) -> logging.Logger:
    """Get a logger with trace support."""
    if not hasattr(logging.Logger, "trace"):
        add_trace_level()

    return logging.getLogger(name)


def configure_logging(verbose: bool = False, trace: bool = False) -> int:
    """
    Configure root logging for the command-line entry point.

    Args:
        verbose: Enable DEBUG output with logger names
        trace: Enable TRACE output (per-frame detail); implies verbose

    Returns:
        The level that was applied to the root logger
    """
    add_trace_level()

    if trace:
        level = TRACE_LEVEL
        logging.basicConfig(level=level, format=DETAILED_FORMAT)
    elif verbose:
        level = logging.DEBUG
        logging.basicConfig(level=level, format=DETAILED_FORMAT)
    else:
        level = logging.INFO
        logging.basicConfig(level=level, format=BRIEF_FORMAT)

    third_party_level = logging.INFO if (trace or verbose) else logging.WARNING
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(third_party_level)

    return level
