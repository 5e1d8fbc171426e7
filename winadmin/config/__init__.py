"""Configuration module for winadmin."""

from .settings import Settings, settings

__all__ = [
    "settings",
    "Settings",
]
