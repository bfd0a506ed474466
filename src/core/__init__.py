"""Core functionality for the marketplace API."""

from .config import get_settings, get_cached_settings, Settings
from .database import ConnectionManager

__all__ = [
    "get_settings",
    "get_cached_settings",
    "Settings",
    "ConnectionManager",
]
