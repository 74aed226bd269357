"""
ESPN team schedule feed.

Polls the public ESPN site API schedule resource for one team:

    {base_url}/{sport}/teams/{team_id}/schedule

and turns the first in-progress or upcoming game into a GameSnapshot.
The same resource shape serves both NFL and college football, so one
fetcher class covers every tracked team.
"""

import asyncio
import ssl
from typing import Any, Optional

import certifi
import httpx
import orjson  # 2-3x faster than stdlib json
import structlog

from config.settings import TrackedTeam
from gamewatch.feeds.base import (
    HTTPStatusFetchError,
    MalformedPayloadError,
    SnapshotFetcher,
    TransientFetchError,
)
from gamewatch.models.schemas import GameSnapshot, MatchStatus, Side

logger = structlog.get_logger()

DEFAULT_BASE_URL = "https://site.api.espn.com/apis/site/v2/sports"

# HTTP statuses worth retrying
TRANSIENT_STATUS_CODES = {408, 425, 429, 500, 502, 503, 504}

ACTIVE_STATES = ("in", "pre")


def create_http_client(timeout: float = 10.0, user_agent: str = "") -> httpx.AsyncClient:
    """Create the shared HTTP client used by all schedule fetchers."""
    ssl_context = ssl.create_default_context(cafile=certifi.where())
    headers = {"Accept": "application/json"}
    if user_agent:
        headers["User-Agent"] = user_agent
    return httpx.AsyncClient(
        verify=ssl_context,
        timeout=timeout,
        headers=headers,
        follow_redirects=True,
    )


def _safe_int(value: Any, default: int = 0) -> int:
    """Parse ESPN numeric fields, which arrive as ints, strings or {value: ...} dicts."""
    if isinstance(value, dict):
        value = value.get("value", value.get("displayValue"))
    if value is None or value == "":
        return default
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return default


def _team_matches(competitor: dict, team: TrackedTeam) -> bool:
    info = competitor.get("team") or {}
    expected = (team.match_value or team.team_id).lower()
    actual = str(info.get(team.match_field) or "").lower()
    return actual == expected


def _find_active_event(events: list) -> Optional[dict]:
    """First event whose competition is in progress or upcoming."""
    for event in events:
        competitions = event.get("competitions") or []
        if not competitions:
            continue
        state = (((competitions[0].get("status") or {}).get("type") or {}).get("state") or "")
        if state in ACTIVE_STATES:
            return event
    return None


def parse_schedule(payload: Any, team: TrackedTeam) -> Optional[GameSnapshot]:
    """
    Parse a decoded schedule payload into a snapshot for `team`.

    Returns None when the schedule has no in-progress or upcoming game.

    Raises:
        MalformedPayloadError: if the payload does not have the expected shape
    """
    if not isinstance(payload, dict):
        raise MalformedPayloadError("Schedule payload is not an object", entity=team.key)

    events = payload.get("events") or []
    if not isinstance(events, list):
        raise MalformedPayloadError("Schedule events is not a list", entity=team.key)

    event = _find_active_event(events)
    if event is None:
        return None

    competition = event["competitions"][0]
    competitors = competition.get("competitors") or []
    home = next((c for c in competitors if c.get("homeAway") == "home"), None)
    away = next((c for c in competitors if c.get("homeAway") == "away"), None)
    if home is None or away is None:
        raise MalformedPayloadError(
            f"Event {event.get('id')} is missing home/away competitors",
            entity=team.key,
        )

    home_info = home.get("team") or {}
    away_info = away.get("team") or {}
    home_name = home_info.get("displayName") or home_info.get("shortDisplayName") or "Home"
    away_name = away_info.get("displayName") or away_info.get("shortDisplayName") or "Away"

    # Fall back to "away" when neither competitor matches; ESPN lists the
    # schedule owner on one of the two sides so this only happens on bad config.
    side = Side.HOME if _team_matches(home, team) else Side.AWAY

    status = competition.get("status") or event.get("status") or {}
    state = MatchStatus.from_string((status.get("type") or {}).get("state"))
    period = _safe_int(status.get("period"))

    situation = competition.get("situation") or {}
    possession_id = str(situation.get("possession") or "")
    possession = possession_id
    if possession_id:
        if possession_id == str(home_info.get("id")):
            possession = home_name
        elif possession_id == str(away_info.get("id")):
            possession = away_name

    yardline = situation.get("yardLine")
    last_play = situation.get("lastPlay") or {}

    return GameSnapshot(
        game_id=str(event.get("id")),
        entity=team.key,
        team_name=team.display_name,
        home_team=home_name,
        away_team=away_name,
        home_score=_safe_int(home.get("score")),
        away_score=_safe_int(away.get("score")),
        side=side,
        status=state,
        period=f"Q{period}" if period else "PRE",
        clock=status.get("displayClock") or "0:00",
        possession=possession,
        down=_safe_int(situation.get("down")),
        distance=_safe_int(situation.get("distance")),
        yardline=str(yardline) if yardline not in (None, "") else "",
        last_play=(last_play.get("text") if isinstance(last_play, dict) else "") or "",
    )


class ESPNScheduleFetcher(SnapshotFetcher):
    """
    Snapshot fetcher for one team's ESPN schedule.

    Usage:
        client = create_http_client()
        fetcher = ESPNScheduleFetcher(team, client)
        snapshot = await fetcher.fetch()
    """

    def __init__(
        self,
        team: TrackedTeam,
        client: Optional[httpx.AsyncClient] = None,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = 10.0,
    ):
        super().__init__(team.key)
        self.team = team
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

        self._client = client
        self._owns_client = client is None

        self.logger = logger.bind(feed="espn", entity=team.key)

    @property
    def url(self) -> str:
        return f"{self.base_url}/{self.team.sport}/teams/{self.team.team_id}/schedule"

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = create_http_client(timeout=self.timeout)
            self._owns_client = True
        return self._client

    async def _get(self) -> httpx.Response:
        client = await self._get_client()
        try:
            return await asyncio.wait_for(client.get(self.url), timeout=self.timeout)
        except asyncio.TimeoutError as e:
            raise TransientFetchError(
                f"Schedule request timed out after {self.timeout:.0f}s", entity=self.entity
            ) from e
        except (httpx.TimeoutException, httpx.NetworkError, httpx.RemoteProtocolError) as e:
            raise TransientFetchError(
                f"Schedule request failed: {type(e).__name__}", entity=self.entity
            ) from e

    async def fetch(self) -> Optional[GameSnapshot]:
        """Fetch and parse the current game, or None if nothing is live or upcoming."""
        response = await self._get()

        if response.status_code in TRANSIENT_STATUS_CODES:
            raise TransientFetchError(
                f"Schedule request returned HTTP {response.status_code}", entity=self.entity
            )
        if response.status_code != 200:
            raise HTTPStatusFetchError(
                f"Schedule request returned HTTP {response.status_code}",
                status_code=response.status_code,
                entity=self.entity,
            )

        try:
            payload = orjson.loads(response.content)
        except orjson.JSONDecodeError as e:
            raise MalformedPayloadError(f"Invalid schedule JSON: {e}", entity=self.entity) from e

        try:
            snapshot = parse_schedule(payload, self.team)
        except (KeyError, IndexError, TypeError, AttributeError) as e:
            raise MalformedPayloadError(
                f"Unexpected schedule structure: {type(e).__name__}: {e}", entity=self.entity
            ) from e

        if snapshot is None:
            self.logger.debug("No active or upcoming game")
        else:
            self.logger.debug(
                "Snapshot fetched",
                game=snapshot.get_display_name(),
                status=snapshot.status.value,
                score=f"{snapshot.away_score}-{snapshot.home_score}",
                down=snapshot.down,
                distance=snapshot.distance,
            )
        return snapshot

    async def close(self) -> None:
        """Close the HTTP client if this fetcher created it."""
        if self._client and self._owns_client:
            await self._client.aclose()
        self._client = None
