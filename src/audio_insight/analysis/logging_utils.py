"""Logging utilities with custom trace level."""

import logging
from typing import Any

# Define custom TRACE level (lower than DEBUG)
TRACE_LEVEL = 5

LOG_FORMAT_DETAILED = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
LOG_FORMAT_SIMPLE = "%(asctime)s - %(levelname)s - %(message)s"


def add_trace_level() -> None:
    """Add a custom TRACE logging level."""
    logging.addLevelName(TRACE_LEVEL, "TRACE")

    def trace(self: logging.Logger, message: str, *args: Any, **kwargs: Any) -> None:
        """Log a message with severity 'TRACE'."""
        if self.isEnabledFor(TRACE_LEVEL):
            self._log(TRACE_LEVEL, message, args, **kwargs)

    # Per-block hot paths log through logger.trace
    logging.Logger.trace = trace


def get_logger(name: str) -> logging.Logger:
    """Get a logger with trace support."""
    if not hasattr(logging.Logger, "trace"):
        add_trace_level()

    return logging.getLogger(name)


def configure_logging(verbose: bool = False, trace: bool = False) -> int:
    """
    Configure root logging from command-line verbosity flags.

    Returns:
        The level that was applied
    """
    add_trace_level()

    if trace:
        level, log_format = TRACE_LEVEL, LOG_FORMAT_DETAILED
    elif verbose:
        level, log_format = logging.DEBUG, LOG_FORMAT_DETAILED
    else:
        level, log_format = logging.INFO, LOG_FORMAT_SIMPLE

    logging.basicConfig(level=level, format=log_format)
    return level
