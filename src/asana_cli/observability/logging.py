"""Shared logging utilities for consistent CLI diagnostics.

Usage example:
    from asana_cli.observability.logging import get_logger

    logger = get_logger("asana_cli.infrastructure.http")
    logger.warning("Rate limited, retrying in %.1fs", delay)
"""

from __future__ import annotations

import logging
import os
import time

_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
_LOG_DATE_FORMAT = "%Y-%m-%dT%H:%M:%S%z"
_LEVEL_ENV = "ASANA_CLI_LOG_LEVEL"
_DEFAULT_LEVEL = "WARNING"


def _resolve_level() -> int:
    name = os.getenv(_LEVEL_ENV, _DEFAULT_LEVEL).strip().upper() or _DEFAULT_LEVEL
    level = logging.getLevelName(name)
    return level if isinstance(level, int) else logging.WARNING


def get_logger(name: str) -> logging.Logger:
    """Return a standard logger configured for UTC timestamps.

    Args:
        name: Logger name (use a stable module-qualified name).

    Returns:
        A logger with a single stderr handler and a consistent UTC format. The
        level comes from ASANA_CLI_LOG_LEVEL (default WARNING, so normal CLI
        output stays clean).
    """
    logger = logging.getLogger(name)
    if not logger.handlers:
        handler = logging.StreamHandler()
        formatter = logging.Formatter(fmt=_LOG_FORMAT, datefmt=_LOG_DATE_FORMAT)
        formatter.converter = time.gmtime
        handler.setFormatter(formatter)
        logger.addHandler(handler)
        logger.setLevel(_resolve_level())
        logger.propagate = False
    return logger


def set_level(level: int) -> None:
    """Apply `level` to every asana_cli logger created so far (used by --verbose)."""
    for name, candidate in logging.root.manager.loggerDict.items():
        if name.startswith("asana_cli") and isinstance(candidate, logging.Logger):
            candidate.setLevel(level)
