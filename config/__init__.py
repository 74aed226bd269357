"""Configuration module."""

from config.settings import settings, Settings, TrackedTeam

__all__ = [
    "settings",
    "Settings",
    "TrackedTeam",
]
