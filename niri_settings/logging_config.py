"""Console logging for the application.

Environment Variables:
    NIRI_SETTINGS_LOG_LEVEL - level used when none is passed explicitly
        (DEBUG, INFO, WARNING, ERROR, CRITICAL); beats the saved preference
"""

from __future__ import annotations

import logging
import os
import sys

LOG_LEVEL_ENV = "NIRI_SETTINGS_LOG_LEVEL"
LOG_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"
ROOT_LOGGER_NAME = "niri_settings"


def resolve_log_level(level: str | int | None = None, default: str | int | None = None) -> int:
    """Explicit ``level`` first, then the environment, then ``default``."""
    env_level = os.environ.get(LOG_LEVEL_ENV, "").strip()
    candidate = level or env_level or default or "WARNING"
    if isinstance(candidate, int):
        return candidate
    resolved = logging.getLevelName(str(candidate).upper())
    return resolved if isinstance(resolved, int) else logging.WARNING


def configure_logging(level: str | int | None = None, default: str | int | None = None) -> logging.Logger:
    """Attach one stderr handler to the package logger and set its level.

    Calling it again only changes the level.
    """
    logger = logging.getLogger(ROOT_LOGGER_NAME)
    logger.setLevel(resolve_log_level(level, default))
    if not any(getattr(handler, "_niri_settings", False) for handler in logger.handlers):
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler._niri_settings = True  # type: ignore[attr-defined]
        logger.addHandler(handler)
    return logger
