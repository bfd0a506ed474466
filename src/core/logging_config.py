"""Logging setup for the marketplace API process."""

import logging

from .config import Settings


def configure_logging(settings: Settings) -> None:
    """Configure the root logger from settings."""
    level = getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO)
    logging.basicConfig(level=level, format=settings.LOG_FORMAT)
    # pymongo logs every heartbeat at DEBUG
    logging.getLogger("pymongo").setLevel(max(level, logging.INFO))
