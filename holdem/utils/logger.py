"""Logging setup shared by every module of the package."""
import logging
import sys
from typing import Optional

from holdem.config import config

ROOT_LOGGER = "holdem"
LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"


def configure_logging(level: Optional[str] = None) -> logging.Logger:
    """Attach the stdout handler to the package logger and set its level.

    Safe to call more than once; the handler is only added the first time.

    Args:
        level: Level name such as "DEBUG" (``config.log_level`` if omitted).

    Returns:
        The package logger.
    """
    root = logging.getLogger(ROOT_LOGGER)

    if not root.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
        root.addHandler(handler)

    root.setLevel(getattr(logging, (level or config.log_level).upper(), logging.INFO))
    return root


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Get a logger; ``holdem.*`` names write through the package handler.

    Args:
        name: Logger name, typically __name__ of the calling module.
    """
    if not logging.getLogger(ROOT_LOGGER).handlers:
        configure_logging()
    return logging.getLogger(name or ROOT_LOGGER)
