"""Centralized logging configuration."""

import logging
import sys

from app.config import settings


# Driver and transport loggers that only speak up at WARNING unless we debug
NOISY_LOGGERS = ("pymongo", "motor", "engineio", "socketio")


def _level_from_settings() -> int:
    return getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO)


def setup_logging() -> logging.Logger:
    """Configure and return the ward occupancy logger."""
    level = _level_from_settings()

    logger = logging.getLogger("ward_occupancy")
    logger.setLevel(level)

    # Prevent duplicate handlers when the app is reloaded
    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setLevel(level)

        if level <= logging.DEBUG:
            fmt = "%(asctime)s - %(name)s - %(levelname)s - %(module)s:%(lineno)d - %(message)s"
        else:
            fmt = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        handler.setFormatter(logging.Formatter(fmt, datefmt="%Y-%m-%d %H:%M:%S"))

        logger.addHandler(handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(level if level <= logging.DEBUG else logging.WARNING)

    logger.debug(f"Logging configured with level {logging.getLevelName(level)} ({settings.ENVIRONMENT})")
    return logger


# Create the global logger instance
logger = setup_logging()
