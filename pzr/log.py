"""Logging setup: timestamped lines to the console or to an appended log file."""
from __future__ import annotations

import logging
import os
import sys

LOGGER_NAME = "pzr"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# ANSI color codes (respect NO_COLOR convention: https://no-color.org)
RED = "\033[31m"
YELLOW = "\033[33m"
RESET = "\033[0m"


class ConsoleFormatter(logging.Formatter):
    """Colors warnings yellow and errors red."""

    def format(self, record: logging.LogRecord) -> str:
        msg = super().format(record)
        if record.levelno >= logging.ERROR:
            return f"{RED}{msg}{RESET}"
        if record.levelno >= logging.WARNING:
            return f"{YELLOW}{msg}{RESET}"
        return msg


def _use_color(stream) -> bool:
    return os.environ.get("NO_COLOR") is None and hasattr(stream, "isatty") and stream.isatty()


def setup_logging(log_file: str | None = None, verbose: bool = False) -> logging.Logger:
    """Configure the 'pzr' logger; any handlers from an earlier call are closed."""
    logger = logging.getLogger(LOGGER_NAME)
    for handler in logger.handlers.copy():
        logger.removeHandler(handler)
        handler.close()

    fmt = "%(asctime)s - %(message)s"
    if log_file:
        handler: logging.Handler = logging.FileHandler(log_file, mode="a", encoding="utf-8")
        handler.setFormatter(logging.Formatter(fmt, DATE_FORMAT))
    else:
        handler = logging.StreamHandler(stream=sys.stdout)
        formatter_cls = ConsoleFormatter if _use_color(sys.stdout) else logging.Formatter
        handler.setFormatter(formatter_cls(fmt, DATE_FORMAT))

    logger.addHandler(handler)
    logger.setLevel(logging.DEBUG if verbose else logging.INFO)
    # don't propagate to the root logger to avoid emitting duplicate messages
    logger.propagate = False
    return logger
