"""Logging utilities shared by the solver modules and the CLI."""

from __future__ import annotations

import logging
import sys
from typing import Optional

_LOGGER_INITIALIZED = False


def configure_logging(level: Optional[str] = None) -> None:
    """Configure process-wide logging once.

    A later call with an explicit level only adjusts the root level, so the
    CLI can raise verbosity after modules have already asked for loggers.
    """
    global _LOGGER_INITIALIZED
    if _LOGGER_INITIALIZED:
        if level:
            logging.getLogger().setLevel(level.upper())
        return

    logging.basicConfig(
        level=(level or "WARNING").upper(),
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
        stream=sys.stderr,
    )
    _LOGGER_INITIALIZED = True


def get_logger(name: str) -> logging.Logger:
    """Return a configured logger for the requested module."""
    configure_logging()
    return logging.getLogger(name)
