"""Logging setup."""

import logging

from app.core.config import settings

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging() -> None:
    """Configure root logging once from settings."""
    level = settings.LOG_LEVEL.upper()
    logging.basicConfig(level=level, format=LOG_FORMAT)
