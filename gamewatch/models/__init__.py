"""Game monitoring data models and schemas."""

from gamewatch.models.schemas import (
    MatchStatus,
    Side,
    NotificationStyle,
    EventKind,
    GameSnapshot,
    GameEvent,
    PollMetrics,
    AlertSettings,
    AudioTier,
    AudioResolution,
)

__all__ = [
    "MatchStatus",
    "Side",
    "NotificationStyle",
    "EventKind",
    "GameSnapshot",
    "GameEvent",
    "PollMetrics",
    "AlertSettings",
    "AudioTier",
    "AudioResolution",
]
