"""
Game Event Detection Engine.

Diffs consecutive snapshots of the same game into semantic events:
- Scoring plays (touchdown, field goal, safety) by exact score delta
- First downs (down resets to 1 from 2nd, 3rd or 4th)
- Opponent third-and-long (opponent ball, 3rd down, 7+ yards)

Every rule derives a play key and records it before emitting, so a play
that stays visible across several polls alerts at most once.
"""

from typing import Optional

import structlog

from gamewatch.models.schemas import EventKind, GameEvent, GameSnapshot

logger = structlog.get_logger()

SCORING_KINDS = {
    6: EventKind.TOUCHDOWN,
    3: EventKind.FIELD_GOAL,
    2: EventKind.SAFETY,
}

THIRD_AND_LONG_DISTANCE = 7


def describe(kind: EventKind, snapshot: GameSnapshot) -> str:
    """Human-readable alert text for an event."""
    team = snapshot.team_name
    if kind == EventKind.TOUCHDOWN:
        return f"{team} TOUCHDOWN!"
    if kind == EventKind.FIELD_GOAL:
        return f"{team} Field Goal!"
    if kind == EventKind.SAFETY:
        return f"{team} SAFETY!"
    if kind == EventKind.FIRST_DOWN:
        return f"{team} First Down!"
    return f"Opponent 3rd & {snapshot.distance}"


class EventDetector:
    """
    Detects game events from snapshot pairs.

    Owns the previous-snapshot store (game id -> last snapshot) and the set
    of processed play keys. Keys are never removed; a game produces a few
    hundred at most.
    """

    def __init__(self):
        self.logger = logger.bind(component="event_detector")

        self._previous: dict[str, GameSnapshot] = {}
        self._processed_keys: set[str] = set()

    # =========================================================================
    # Core Detection
    # =========================================================================

    def process(self, current: GameSnapshot) -> list[GameEvent]:
        """
        Detect events against the stored predecessor, then store `current`.

        The store entry is replaced even when nothing fired.
        """
        previous = self._previous.get(current.game_id)
        try:
            return self.detect(current, previous)
        finally:
            self._previous[current.game_id] = current

    def detect(
        self,
        current: GameSnapshot,
        previous: Optional[GameSnapshot],
    ) -> list[GameEvent]:
        """
        Convert a (current, previous) pair into zero or more events.

        Args:
            current: Latest snapshot
            previous: Snapshot from the previous poll, None on first sight

        Returns:
            Events in rule order (scoring, first down, third-and-long)
        """
        if previous is None:
            self.logger.debug("No previous game state, storing baseline", game_id=current.game_id)
            return []

        events: list[GameEvent] = []

        scoring = self._detect_scoring(current, previous)
        if scoring:
            events.append(scoring)

        first_down = self._detect_first_down(current, previous)
        if first_down:
            events.append(first_down)

        third_long = self._detect_opponent_third_long(current, previous)
        if third_long:
            events.append(third_long)

        if events:
            self.logger.info(
                "Events detected",
                game_id=current.game_id,
                entity=current.entity,
                event_count=len(events),
                event_types=[e.kind.value for e in events],
            )

        return events

    # =========================================================================
    # Rules
    # =========================================================================

    def _detect_scoring(self, current: GameSnapshot, previous: GameSnapshot) -> Optional[GameEvent]:
        score_diff = current.my_score - previous.my_score
        if score_diff <= 0 or current.last_play == previous.last_play:
            return None

        my_score, opp_score = current.score_tuple
        play_key = f"{current.game_id}-{current.last_play}-{my_score}-{opp_score}"
        if not self._claim(play_key):
            return None

        # Extra points (+1) and multi-score jumps between polls are not classified
        kind = SCORING_KINDS.get(score_diff)
        if kind is None:
            self.logger.debug(
                "Unclassified score change",
                game_id=current.game_id,
                score_diff=score_diff,
            )
            return None

        self.logger.info(
            "Scoring play detected",
            kind=kind.value,
            team=current.team_name,
            score=f"{my_score}-{opp_score}",
        )
        return self._event(kind, current)

    def _detect_first_down(self, current: GameSnapshot, previous: GameSnapshot) -> Optional[GameEvent]:
        if current.down != 1 or previous.down < 2 or current.last_play == previous.last_play:
            return None

        if not self._claim(f"{current.game_id}-firstdown-{current.last_play}"):
            return None

        self.logger.info("First down detected", team=current.team_name)
        return self._event(EventKind.FIRST_DOWN, current)

    def _detect_opponent_third_long(
        self,
        current: GameSnapshot,
        previous: GameSnapshot,
    ) -> Optional[GameEvent]:
        if not current.opponent_has_ball:
            return None
        if current.down != 3 or current.distance < THIRD_AND_LONG_DISTANCE:
            return None
        if previous.down == 3:
            return None

        if not self._claim(f"{current.game_id}-3rdlong-{current.clock}-{current.yardline}"):
            return None

        self.logger.info(
            "Opponent third and long detected",
            team=current.team_name,
            distance=current.distance,
        )
        return self._event(EventKind.OPPONENT_THIRD_LONG, current)

    # =========================================================================
    # Helpers
    # =========================================================================

    def _claim(self, play_key: str) -> bool:
        """Record a play key. False if it was already processed."""
        if play_key in self._processed_keys:
            self.logger.debug("Play already processed, skipping", play_key=play_key)
            return False
        self._processed_keys.add(play_key)
        return True

    @staticmethod
    def _event(kind: EventKind, snapshot: GameSnapshot) -> GameEvent:
        return GameEvent(
            kind=kind,
            description=describe(kind, snapshot),
            entity=snapshot.entity,
            game_id=snapshot.game_id,
        )

    def previous(self, game_id: str) -> Optional[GameSnapshot]:
        """Get the stored snapshot for a game."""
        return self._previous.get(game_id)

    def has_processed(self, play_key: str) -> bool:
        return play_key in self._processed_keys

    @property
    def processed_key_count(self) -> int:
        return len(self._processed_keys)

    def get_metrics(self) -> dict:
        """Get detector metrics."""
        return {
            "games_tracked": len(self._previous),
            "processed_play_keys": len(self._processed_keys),
        }
