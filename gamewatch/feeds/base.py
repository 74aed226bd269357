"""
Base classes for game snapshot feeds.

A feed turns one remote resource into a normalized GameSnapshot for a single
tracked team. Failures are raised as typed errors so the retry layer can tell
transient network trouble from a broken payload.
"""

from abc import ABC, abstractmethod
from typing import Optional

from gamewatch.models.schemas import GameSnapshot


class FetchError(Exception):
    """Base class for snapshot fetch failures."""

    def __init__(self, message: str, entity: str = ""):
        super().__init__(message)
        self.entity = entity


class TransientFetchError(FetchError):
    """Timeout, abort, connection failure or a transient HTTP status."""


class HTTPStatusFetchError(FetchError):
    """Non-2xx response that is not attributable to transient trouble."""

    def __init__(self, message: str, status_code: int, entity: str = ""):
        super().__init__(message, entity=entity)
        self.status_code = status_code


class MalformedPayloadError(FetchError):
    """Response body could not be decoded into a snapshot."""


class SnapshotFetcher(ABC):
    """
    Abstract snapshot source for one tracked team.

    `fetch()` returns the current game snapshot, or None when the team has
    no in-progress or upcoming game.
    """

    def __init__(self, entity: str):
        self.entity = entity

    @abstractmethod
    async def fetch(self) -> Optional[GameSnapshot]:
        """Fetch the current snapshot. Raise FetchError subclasses on failure."""

    async def close(self) -> None:
        """Release any held resources."""
