"""
Alert dispatch.

Filters detected events by the caller's alert settings and turns each
enabled event into a sound plus a notification. Both run as background
tasks, so a slow player or webhook never delays the poll loop, and
neither playback nor notification failures reach it.
"""

import asyncio
from typing import Callable, Iterable, Optional, Union

import structlog

from gamewatch.alerts.audio import AudioPlayer
from gamewatch.alerts.notify import NotificationSink
from gamewatch.models.schemas import AlertSettings, EventKind, GameEvent

logger = structlog.get_logger()

SettingsSource = Union[AlertSettings, Callable[[], AlertSettings]]
VisualAlertHook = Callable[[EventKind, str], None]


class AlertDispatcher:
    """
    Dispatches game events to audio and notification outputs.

    Settings are read on every dispatch, so a provider callable can
    hot-reload preferences without restarting the monitor.
    """

    def __init__(
        self,
        player: Optional[AudioPlayer],
        sink: Optional[NotificationSink],
        on_visual_alert: Optional[VisualAlertHook] = None,
    ):
        self.player = player
        self.sink = sink
        self.on_visual_alert = on_visual_alert
        self.logger = logger.bind(component="alert_dispatcher")

        self._audio_tasks: set[asyncio.Task] = set()
        self._notify_tasks: set[asyncio.Task] = set()
        self._dispatched = 0
        self._skipped = 0

    @staticmethod
    def _resolve_settings(settings: SettingsSource) -> AlertSettings:
        return settings() if callable(settings) else settings

    async def dispatch(self, event: GameEvent, settings: SettingsSource) -> bool:
        """
        Alert on one event if its kind is enabled.

        Returns:
            True if the event was dispatched, False if it was filtered out
        """
        alert_settings = self._resolve_settings(settings)
        if not alert_settings.is_enabled(event.kind):
            self._skipped += 1
            self.logger.debug(
                "Alert skipped (disabled in settings)",
                event_type=event.kind.value,
                description=event.description,
            )
            return False

        self._dispatched += 1
        self.logger.info(
            "Triggering alert",
            event_type=event.kind.value,
            description=event.description,
            entity=event.entity,
        )

        if self.player is not None:
            self._start_audio(event)

        if self.sink is not None:
            self._start_notification(event)

        if self.on_visual_alert is not None:
            try:
                self.on_visual_alert(event.kind, event.entity)
            except Exception as e:
                self.logger.error("Visual alert hook failed", error=str(e))

        return True

    async def dispatch_all(self, events: Iterable[GameEvent], settings: SettingsSource) -> int:
        """Dispatch events in order. Returns how many were dispatched."""
        count = 0
        for event in events:
            if await self.dispatch(event, settings):
                count += 1
        return count

    def _start_audio(self, event: GameEvent) -> None:
        task = asyncio.create_task(self._play(event))
        self._audio_tasks.add(task)
        task.add_done_callback(self._audio_tasks.discard)

    async def _play(self, event: GameEvent) -> None:
        try:
            await self.player.play_event(event.kind, event.entity)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self.logger.error(
                "Failed to play event sound",
                event_type=event.kind.value,
                entity=event.entity,
                error=str(e),
            )

    def _start_notification(self, event: GameEvent) -> None:
        task = asyncio.create_task(self._notify(event))
        self._notify_tasks.add(task)
        task.add_done_callback(self._notify_tasks.discard)

    async def _notify(self, event: GameEvent) -> None:
        try:
            await self.sink.notify(event.description, event.style)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self.logger.error(
                "Notification failed",
                event_type=event.kind.value,
                error=str(e),
            )

    async def wait_for_audio(self) -> None:
        """Wait for in-flight sounds to finish."""
        if self._audio_tasks:
            await asyncio.gather(*list(self._audio_tasks), return_exceptions=True)

    async def wait_for_notifications(self, timeout: Optional[float] = None) -> None:
        """
        Wait for in-flight notifications to finish.

        Notifications still running after `timeout` seconds are cancelled.
        """
        if not self._notify_tasks:
            return
        _, pending = await asyncio.wait(list(self._notify_tasks), timeout=timeout)
        for task in pending:
            task.cancel()
        if pending:
            self.logger.warning("Cancelled pending notifications", count=len(pending))
            await asyncio.gather(*pending, return_exceptions=True)

    def stop_all_audio(self) -> None:
        """Silence in-flight asset playback; running tones finish on their own."""
        if self.player is not None:
            self.player.stop_all()

    def get_metrics(self) -> dict:
        return {
            "dispatched": self._dispatched,
            "skipped": self._skipped,
            "audio_in_flight": len(self._audio_tasks),
            "notifications_in_flight": len(self._notify_tasks),
        }
