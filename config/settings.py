"""
Configuration settings for the GameWatch live game monitor.
Uses pydantic-settings for validation and environment variable loading.
"""

from typing import Optional
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class TrackedTeam(BaseModel):
    """One team to follow on the ESPN schedule API."""

    key: str                      # Internal entity key, also the audio asset prefix
    display_name: str             # Used in notification text ("Falcons TOUCHDOWN!")
    sport: str                    # ESPN sport path, e.g. "football/nfl"
    team_id: str                  # ESPN team identifier in the schedule URL
    match_field: str = "abbreviation"  # Competitor team field used to find our side
    match_value: str = ""         # Value compared against match_field (case-insensitive)
    aliases: list[str] = Field(default_factory=list)


class PollingSettings(BaseSettings):
    """Adaptive poll cadence."""

    base_interval_seconds: float = 15.0
    live_interval_seconds: float = 5.0    # Floor while any tracked game is in progress
    max_interval_seconds: float = 60.0
    failure_threshold: int = 3            # Consecutive failures before backing off
    status_interval_seconds: float = 300.0


class RetrySettings(BaseSettings):
    """Per-fetch retry policy."""

    max_attempts: int = 3
    initial_delay_seconds: float = 1.0
    max_delay_seconds: float = 10.0
    backoff_multiplier: float = 2.0
    fetch_timeout_seconds: float = 10.0


class ESPNSettings(BaseSettings):
    """ESPN site API endpoints and tracked teams."""

    base_url: str = "https://site.api.espn.com/apis/site/v2/sports"
    user_agent: str = "Mozilla/5.0 (compatible; gamewatch/1.0)"

    teams: list[TrackedTeam] = Field(default_factory=lambda: [
        TrackedTeam(
            key="falcons",
            display_name="Falcons",
            sport="football/nfl",
            team_id="atl",
            match_field="abbreviation",
            match_value="ATL",
            aliases=["atl", "atlanta"],
        ),
        TrackedTeam(
            key="bulldogs",
            display_name="Bulldogs",
            sport="football/college-football",
            team_id="georgia",
            match_field="slug",
            match_value="georgia",
            aliases=["georgia", "uga"],
        ),
    ])


class AudioSettings(BaseSettings):
    """Alert sound settings."""

    enabled: bool = True
    asset_dir: str = "assets/audio"
    # Explicit player command (e.g. "ffplay -nodisp -autoexit"); autodetected when empty
    player_command: str = ""
    sample_rate: int = 44100
    volume: float = 0.3


class AlertToggles(BaseSettings):
    """Which event kinds trigger alerts."""

    touchdown: bool = True
    field_goal: bool = True
    safety: bool = True
    first_down: bool = True
    opponent_third_long: bool = True


class NotificationSettings(BaseSettings):
    """Notification sinks."""

    discord_webhook_url: str = Field(default="", description="Discord webhook URL")
    console: bool = True


class Settings(BaseSettings):
    """Main application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore"
    )

    log_level: str = "INFO"
    log_json: bool = False

    # Sub-settings
    polling: PollingSettings = Field(default_factory=PollingSettings)
    retry: RetrySettings = Field(default_factory=RetrySettings)
    espn: ESPNSettings = Field(default_factory=ESPNSettings)
    audio: AudioSettings = Field(default_factory=AudioSettings)
    alerts: AlertToggles = Field(default_factory=AlertToggles)
    notifications: NotificationSettings = Field(default_factory=NotificationSettings)

    def team(self, key: str) -> Optional[TrackedTeam]:
        """Look up a tracked team by its entity key."""
        for team in self.espn.teams:
            if team.key == key:
                return team
        return None


# Global settings instance
settings = Settings()
