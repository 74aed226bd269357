"""
Game snapshot feeds.

Provides live game state for tracked teams:
- ESPN site API team schedules (NFL and college football)
"""

from gamewatch.feeds.base import (
    SnapshotFetcher,
    FetchError,
    TransientFetchError,
    HTTPStatusFetchError,
    MalformedPayloadError,
)
from gamewatch.feeds.espn import ESPNScheduleFetcher, create_http_client, parse_schedule

__all__ = [
    "SnapshotFetcher",
    "FetchError",
    "TransientFetchError",
    "HTTPStatusFetchError",
    "MalformedPayloadError",
    "ESPNScheduleFetcher",
    "create_http_client",
    "parse_schedule",
]
