"""
Game monitoring data models and schemas.

Defines the core data structures for:
- Game snapshots (one polled observation of a tracked team's game)
- Detected game events and their alert presentation
- Poll metrics feeding the adaptive scheduler
- Per-kind alert enablement
"""

from dataclasses import asdict, dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Mapping, Optional

from pydantic import BaseModel


class MatchStatus(str, Enum):
    """ESPN competition state."""
    PRE = "pre"
    IN = "in"
    POST = "post"

    @classmethod
    def from_string(cls, value: Optional[str]) -> "MatchStatus":
        """Convert ESPN state string to enum (unknown states count as pre-game)."""
        value_lower = (value or "").lower()
        for status in cls:
            if status.value == value_lower:
                return status
        return cls.PRE


class Side(str, Enum):
    """Which side of the matchup the tracked team is on."""
    HOME = "home"
    AWAY = "away"


class NotificationStyle(str, Enum):
    """Rendering hint passed to notification sinks."""
    NORMAL = "normal"
    EMPHASIZED = "emphasized"


class EventKind(str, Enum):
    """Semantic game events that can trigger an alert."""
    TOUCHDOWN = "touchdown"
    FIELD_GOAL = "field_goal"
    SAFETY = "safety"
    FIRST_DOWN = "first_down"
    OPPONENT_THIRD_LONG = "opponent_third_long"

    @property
    def asset_stem(self) -> str:
        """File name stem used for audio assets (e.g. "fieldGoal")."""
        head, *rest = self.value.split("_")
        return head + "".join(part.capitalize() for part in rest)

    @property
    def style_hint(self) -> NotificationStyle:
        if self in (EventKind.TOUCHDOWN, EventKind.SAFETY):
            return NotificationStyle.EMPHASIZED
        return NotificationStyle.NORMAL


@dataclass(frozen=True)
class GameSnapshot:
    """
    One polled state of a tracked team's game.

    Produced fresh on every successful fetch and never mutated afterwards.
    Scores are stored per side; the tracked team's perspective is derived
    from `side`.
    """
    game_id: str
    entity: str                 # Tracked team key ("falcons")
    team_name: str              # Display name used in alerts ("Falcons")
    home_team: str
    away_team: str
    home_score: int
    away_score: int
    side: Side
    status: MatchStatus
    period: str = "PRE"         # "Q1".."Q4", "OT", "PRE"
    clock: str = "0:00"
    possession: str = ""        # Display name of the side with the ball
    down: int = 0               # 1-4, 0 when not applicable
    distance: int = 0           # Yards to gain
    yardline: str = ""
    last_play: str = ""

    @property
    def is_home(self) -> bool:
        return self.side == Side.HOME

    @property
    def my_score(self) -> int:
        return self.home_score if self.is_home else self.away_score

    @property
    def opponent_score(self) -> int:
        return self.away_score if self.is_home else self.home_score

    @property
    def opponent_name(self) -> str:
        return self.away_team if self.is_home else self.home_team

    @property
    def score_tuple(self) -> tuple[int, int]:
        """(tracked team score, opponent score)."""
        return self.my_score, self.opponent_score

    @property
    def opponent_has_ball(self) -> bool:
        return bool(self.possession) and self.possession == self.opponent_name

    @property
    def is_live(self) -> bool:
        return self.status == MatchStatus.IN

    def get_display_name(self) -> str:
        """Get human-readable matchup name."""
        return f"{self.away_team} @ {self.home_team}"


@dataclass(frozen=True)
class GameEvent:
    """A detected transition, consumed once by the alert dispatcher."""
    kind: EventKind
    description: str
    entity: str
    game_id: str = ""

    @property
    def style(self) -> NotificationStyle:
        return self.kind.style_hint


@dataclass
class PollMetrics:
    """Counters describing poll health."""
    total_polls: int = 0
    successful_polls: int = 0
    failed_polls: int = 0
    consecutive_failures: int = 0
    last_success_time: Optional[datetime] = None
    last_failure_time: Optional[datetime] = None

    def to_dict(self) -> dict:
        data = asdict(self)
        for key in ("last_success_time", "last_failure_time"):
            if data[key] is not None:
                data[key] = data[key].isoformat()
        return data


class AlertSettings(BaseModel):
    """
    Per-kind alert enablement supplied by the caller.

    The core reads it on every dispatch and never mutates it.
    """
    touchdown: bool = True
    field_goal: bool = True
    safety: bool = True
    first_down: bool = True
    opponent_third_long: bool = True

    def is_enabled(self, kind: EventKind) -> bool:
        return bool(getattr(self, kind.value))

    @classmethod
    def from_mapping(cls, values: Mapping) -> "AlertSettings":
        """Build from a mapping keyed by EventKind, its value or its asset stem."""
        stems = {kind.asset_stem: kind.value for kind in EventKind}
        normalized = {}
        for key, enabled in values.items():
            name = key.value if isinstance(key, EventKind) else str(key)
            normalized[stems.get(name, name)] = bool(enabled)
        return cls(**normalized)


class AudioTier(str, Enum):
    """Priority level in the alert sound fallback chain."""
    ENTITY = "entity"
    GENERIC = "generic"
    SYNTHESIZED = "synthesized"


@dataclass(frozen=True)
class AudioResolution:
    """Result of resolving the sound for one (entity, kind) pair."""
    tier: AudioTier
    path: Optional[Path] = None

    @property
    def is_asset(self) -> bool:
        return self.path is not None
