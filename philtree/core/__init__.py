"""Core module initialization."""

from philtree.core.config import settings, get_settings

__all__ = [
    "settings",
    "get_settings",
]
