"""Logging configuration helpers for patchbay."""

from __future__ import annotations

import logging
import sys

from patchbay.config import get_settings


def configure_logging(level_name: str | None = None) -> int:
    """Configure process-wide logging and return the resolved level.

    *level_name* overrides the ``PATCHBAY_LOG_LEVEL`` setting.
    """
    level_name = (level_name or get_settings().log_level).upper()
    level = getattr(logging, level_name, None)
    if not isinstance(level, int):
        level = logging.WARNING
        invalid_level: str | None = level_name
    else:
        invalid_level = None

    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stderr,
        force=True,
    )

    if invalid_level is not None:
        logging.getLogger(__name__).warning(
            "Invalid log level '%s'; using %s", invalid_level, logging.getLevelName(level)
        )

    return level
