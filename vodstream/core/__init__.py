"""Core module for configuration and utilities."""

from vodstream.core.config import Settings, settings

__all__ = [
    "Settings",
    "settings",
]
