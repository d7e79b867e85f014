"""
Logging configuration for the API process and operator scripts.
"""

import logging
import sys
from typing import Optional

from .config import get_settings

DEFAULT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(level: Optional[str] = None, format_string: str = DEFAULT_FORMAT) -> logging.Logger:
    """
    Configure the "ridepool" logger with a single stdout handler.

    Args:
        level: Level name (defaults to Settings.log_level)
        format_string: Log message format

    Returns:
        The configured package logger
    """
    level_name = (level or get_settings().log_level or "INFO").upper()
    logger = logging.getLogger("ridepool")
    logger.setLevel(getattr(logging, level_name, logging.INFO))

    # Clear existing handlers to avoid duplicates on reload
    logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(format_string))
    logger.addHandler(handler)
    return logger
