"""
GameWatch - Main Entry Point.

Runs the live game monitoring loop:
1. Poll each tracked team's ESPN schedule (with retry + timeout)
2. Diff each snapshot against the previous poll into game events
3. Alert on enabled events (sound + notification)
4. Adapt the poll interval to failures and game liveness

Usage:
    python -m gamewatch.main

Environment Variables:
    LOG_LEVEL                           - DEBUG|INFO|WARNING (default: INFO)
    POLLING__BASE_INTERVAL_SECONDS      - Idle poll interval (default: 15)
    POLLING__LIVE_INTERVAL_SECONDS      - Poll interval while a game is live (default: 5)
    AUDIO__ASSET_DIR                    - Directory with custom alert sounds
    ALERTS__FIRST_DOWN                  - Enable/disable first-down alerts (true/false)
    NOTIFICATIONS__DISCORD_WEBHOOK_URL  - Discord webhook for alerts
"""

import asyncio
import signal
import sys
import time
from datetime import datetime
from typing import Optional, Sequence

import httpx
import structlog

from config.settings import Settings, settings as default_settings
from gamewatch.alerts.audio import (
    AudioAssetStore,
    AudioPlayer,
    AudioResolver,
    NullAudioBackend,
    SubprocessAudioBackend,
    detect_player_command,
)
from gamewatch.alerts.dispatcher import AlertDispatcher, SettingsSource
from gamewatch.alerts.notify import (
    CompositeNotificationSink,
    ConsoleNotificationSink,
    DiscordNotificationSink,
    NotificationSink,
)
from gamewatch.engine.detector import EventDetector
from gamewatch.engine.scheduler import PollScheduler, TickResult
from gamewatch.feeds.base import SnapshotFetcher
from gamewatch.feeds.espn import ESPNScheduleFetcher, create_http_client
from gamewatch.models.schemas import AlertSettings, GameEvent, GameSnapshot
from gamewatch.utils.logging import setup_logging
from gamewatch.utils.metrics import MetricsCollector
from gamewatch.utils.retry import RetryPolicy, with_retry

logger = structlog.get_logger()

# Grace period for in-flight notifications on shutdown
NOTIFICATION_DRAIN_SECONDS = 5.0


class GameMonitor:
    """
    Live game monitor.

    One poll cycle fans out a fetch per tracked team, then processes the
    results one at a time through the detector and dispatcher. All shared
    state (previous snapshots, play keys, metrics) is mutated on that single
    sequential path.
    """

    def __init__(
        self,
        fetchers: Sequence[SnapshotFetcher],
        detector: EventDetector,
        dispatcher: AlertDispatcher,
        alert_settings: SettingsSource,
        retry_policy: Optional[RetryPolicy] = None,
        metrics: Optional[MetricsCollector] = None,
        scheduler: Optional[PollScheduler] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.fetchers = list(fetchers)
        self.detector = detector
        self.dispatcher = dispatcher
        self.alert_settings = alert_settings
        self.retry_policy = retry_policy or RetryPolicy(max_delay=10.0)
        self.metrics = metrics or MetricsCollector()
        self.scheduler = scheduler or PollScheduler(metrics=self.metrics)
        self.scheduler.on_tick = self.poll_once
        self._http_client = http_client

        self.logger = logger.bind(component="game_monitor")

        self._games: list[GameSnapshot] = []
        self._events_detected = 0
        self._start_time_ms = 0

    # =========================================================================
    # Poll cycle
    # =========================================================================

    async def _fetch(self, fetcher: SnapshotFetcher) -> Optional[GameSnapshot]:
        return await with_retry(
            fetcher.fetch,
            f"fetch {fetcher.entity}",
            self.retry_policy,
        )

    async def poll_once(self) -> TickResult:
        """
        Run one poll cycle.

        A team whose fetch fails after retries contributes no data this
        cycle without blocking the others. The cycle fails only when every
        fetch failed.
        """
        poll_start = time.monotonic()
        self.logger.debug(
            "Starting game poll",
            interval=self.scheduler.current_interval,
            consecutive_failures=self.metrics.consecutive_failures,
        )

        results = await asyncio.gather(
            *(self._fetch(f) for f in self.fetchers),
            return_exceptions=True,
        )

        snapshots: list[GameSnapshot] = []
        failures = 0
        for fetcher, result in zip(self.fetchers, results):
            if isinstance(result, asyncio.CancelledError):
                raise result
            if isinstance(result, BaseException):
                failures += 1
                self.logger.warning(
                    "No data for team this cycle",
                    entity=fetcher.entity,
                    error_type=type(result).__name__,
                    error=str(result),
                )
                continue
            if result is not None:
                snapshots.append(result)

        # Merge point: sequential processing of every fetched snapshot
        for snapshot in snapshots:
            events = self.detector.process(snapshot)
            if events:
                await self._handle_events(events)

        success = not self.fetchers or failures < len(self.fetchers)
        if success:
            self._games = snapshots

        any_live = any(s.is_live for s in self._games)
        self.logger.info(
            "Game poll completed" if success else "Game poll failed",
            duration_ms=int((time.monotonic() - poll_start) * 1000),
            game_count=len(snapshots),
            failed_fetches=failures,
            live=any_live,
        )
        return TickResult(success=success, any_live=any_live)

    async def _handle_events(self, events: list[GameEvent]) -> None:
        self._events_detected += len(events)
        await self.dispatcher.dispatch_all(events, self.alert_settings)

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def run(self) -> None:
        """Poll until stop() is called."""
        self._start_time_ms = int(time.time() * 1000)
        self.logger.info(
            "Starting game monitor",
            teams=[f.entity for f in self.fetchers],
        )
        await self.scheduler.start()

    async def stop(self) -> None:
        """Stop polling, silence audio and release HTTP clients."""
        self.logger.info("Stopping game monitor")
        self.scheduler.stop()
        self.dispatcher.stop_all_audio()
        for fetcher in self.fetchers:
            await fetcher.close()
        await self.dispatcher.wait_for_notifications(timeout=NOTIFICATION_DRAIN_SECONDS)
        if self.dispatcher.sink is not None:
            await self.dispatcher.sink.close()
        if self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None

    def shutdown(self) -> None:
        """Trigger graceful shutdown from a signal handler."""
        self.scheduler.stop()

    # =========================================================================
    # Status
    # =========================================================================

    @property
    def games(self) -> list[GameSnapshot]:
        """Snapshots from the last successful poll."""
        return list(self._games)

    @property
    def is_connected(self) -> bool:
        return self.metrics.is_connected

    @property
    def last_update(self) -> Optional[datetime]:
        return self.metrics.last_update

    def status(self) -> dict:
        """Metrics and connectivity for a status display."""
        return {
            "metrics": self.metrics.to_dict(),
            "is_connected": self.is_connected,
            "last_update": self.last_update.isoformat() if self.last_update else None,
            "poll_interval_seconds": self.scheduler.current_interval,
            "games": [
                {
                    "game": g.get_display_name(),
                    "status": g.status.value,
                    "score": f"{g.away_score}-{g.home_score}",
                    "period": g.period,
                    "clock": g.clock,
                }
                for g in self._games
            ],
            "events_detected": self._events_detected,
            "uptime_seconds": (int(time.time() * 1000) - self._start_time_ms) // 1000 if self._start_time_ms else 0,
            "detector": self.detector.get_metrics(),
            "dispatcher": self.dispatcher.get_metrics(),
        }


# =============================================================================
# Composition
# =============================================================================

def build_notification_sink(config: Settings) -> Optional[NotificationSink]:
    sinks: list[NotificationSink] = []
    if config.notifications.console:
        sinks.append(ConsoleNotificationSink())
    if config.notifications.discord_webhook_url:
        sinks.append(DiscordNotificationSink(config.notifications.discord_webhook_url))
    if not sinks:
        return None
    if len(sinks) == 1:
        return sinks[0]
    return CompositeNotificationSink(sinks)


def build_audio_player(config: Settings) -> AudioPlayer:
    aliases = {team.key: list(team.aliases) for team in config.espn.teams}
    resolver = AudioResolver(AudioAssetStore(config.audio.asset_dir), aliases=aliases)

    command = config.audio.player_command.split() or detect_player_command()
    if command:
        backend = SubprocessAudioBackend(command)
    else:
        logger.warning("No audio player found, alert sounds are muted")
        backend = NullAudioBackend()

    return AudioPlayer(
        resolver,
        backend,
        sample_rate=config.audio.sample_rate,
        volume=config.audio.volume,
        enabled=config.audio.enabled,
    )


def build_monitor(config: Settings) -> GameMonitor:
    """Wire a GameMonitor from settings."""
    client = create_http_client(
        timeout=config.retry.fetch_timeout_seconds,
        user_agent=config.espn.user_agent,
    )
    fetchers = [
        ESPNScheduleFetcher(
            team,
            client=client,
            base_url=config.espn.base_url,
            timeout=config.retry.fetch_timeout_seconds,
        )
        for team in config.espn.teams
    ]

    metrics = MetricsCollector()
    scheduler = PollScheduler(
        metrics=metrics,
        base_interval=config.polling.base_interval_seconds,
        live_interval=config.polling.live_interval_seconds,
        max_interval=config.polling.max_interval_seconds,
        failure_threshold=config.polling.failure_threshold,
    )
    dispatcher = AlertDispatcher(
        player=build_audio_player(config),
        sink=build_notification_sink(config),
    )

    return GameMonitor(
        fetchers=fetchers,
        detector=EventDetector(),
        dispatcher=dispatcher,
        # Re-read on every dispatch
        alert_settings=lambda: AlertSettings(**config.alerts.model_dump()),
        retry_policy=RetryPolicy(
            max_attempts=config.retry.max_attempts,
            initial_delay=config.retry.initial_delay_seconds,
            max_delay=config.retry.max_delay_seconds,
            backoff_multiplier=config.retry.backoff_multiplier,
        ),
        metrics=metrics,
        scheduler=scheduler,
        http_client=client,
    )


async def _status_loop(monitor: GameMonitor, interval: float) -> None:
    """Log periodic status updates."""
    while True:
        await asyncio.sleep(interval)
        status = monitor.status()
        logger.info(
            "📊 Monitor status",
            connected=status["is_connected"],
            polls=status["metrics"]["total_polls"],
            failed=status["metrics"]["failed_polls"],
            interval=status["poll_interval_seconds"],
            games=status["games"],
            events=status["events_detected"],
        )


async def run(config: Settings) -> None:
    monitor = build_monitor(config)

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, monitor.shutdown)
        except NotImplementedError:
            # Windows event loops do not support signal handlers
            pass

    status_task = asyncio.create_task(
        _status_loop(monitor, config.polling.status_interval_seconds)
    )
    try:
        await monitor.run()
    finally:
        status_task.cancel()
        await monitor.stop()


def main():
    """Main entry point."""
    setup_logging(default_settings.log_level, json_output=default_settings.log_json)

    try:
        asyncio.run(run(default_settings))
    except KeyboardInterrupt:
        print("\n⚠️ Interrupted")
    except Exception as e:
        print(f"❌ Error: {e}")
        import traceback
        traceback.print_exc()
        sys.exit(1)


if __name__ == "__main__":
    main()
