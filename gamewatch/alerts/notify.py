"""
Notification sinks for game alerts.

The dispatcher hands every enabled event to a sink as
(description, style). Rendering is the sink's business:
- ConsoleNotificationSink: structured log line
- DiscordNotificationSink: Discord webhook message
- CompositeNotificationSink: fan-out to several sinks
"""

import asyncio
import time
from abc import ABC, abstractmethod
from typing import Optional

import httpx
import structlog

from gamewatch.models.schemas import NotificationStyle

logger = structlog.get_logger()


class NotificationSink(ABC):
    """Receives user-visible alert notifications."""

    @abstractmethod
    async def notify(self, description: str, style: NotificationStyle) -> None:
        """Emit one notification."""

    async def close(self) -> None:
        """Release any held resources."""


class ConsoleNotificationSink(NotificationSink):
    """Writes notifications to the application log."""

    def __init__(self):
        self.logger = logger.bind(component="console_notifier")

    async def notify(self, description: str, style: NotificationStyle) -> None:
        if style == NotificationStyle.EMPHASIZED:
            self.logger.warning(f"🏈 {description}", style=style.value)
        else:
            self.logger.info(description, style=style.value)


class CompositeNotificationSink(NotificationSink):
    """Sends every notification to each child sink; one failing sink does not stop the rest."""

    def __init__(self, sinks: list[NotificationSink]):
        self.sinks = list(sinks)
        self.logger = logger.bind(component="composite_notifier")

    async def notify(self, description: str, style: NotificationStyle) -> None:
        results = await asyncio.gather(
            *(sink.notify(description, style) for sink in self.sinks),
            return_exceptions=True,
        )
        for sink, result in zip(self.sinks, results):
            if isinstance(result, Exception):
                self.logger.error(
                    "Notification sink failed",
                    sink=type(sink).__name__,
                    error=str(result),
                )

    async def close(self) -> None:
        for sink in self.sinks:
            await sink.close()


class DiscordNotificationSink(NotificationSink):
    """
    Discord webhook notifier.

    Features:
    - Persistent HTTP client with connection pooling
    - Progressive backoff on connection errors
    - Honors Discord 429 rate limiting by skipping until retry_after
    """

    # Retry settings
    MAX_RETRIES = 3
    RETRY_DELAYS = [1.0, 2.0, 5.0]  # Progressive backoff

    def __init__(self, webhook_url: str, client: Optional[httpx.AsyncClient] = None):
        self.webhook_url = webhook_url
        self.logger = logger.bind(component="discord_notifier")
        self._rate_limit_until: float = 0
        self._consecutive_failures = 0

        self._client = client
        self._client_lock = asyncio.Lock()
        self._last_success_time: float = 0

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the persistent HTTP client."""
        async with self._client_lock:
            if self._client is None:
                self._client = httpx.AsyncClient(
                    timeout=httpx.Timeout(connect=10.0, read=15.0, write=10.0, pool=10.0),
                    limits=httpx.Limits(
                        max_keepalive_connections=2,
                        max_connections=4,
                        keepalive_expiry=30.0,
                    ),
                    follow_redirects=True,
                )
                self.logger.debug("Created new Discord HTTP client")
            return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    @staticmethod
    def format_message(description: str, style: NotificationStyle) -> str:
        if style == NotificationStyle.EMPHASIZED:
            return f"🏈 **{description}**"
        return description

    async def notify(self, description: str, style: NotificationStyle) -> None:
        await self.send_message(self.format_message(description, style))

    async def send_message(self, content: str) -> bool:
        """
        Send a simple text message.

        Returns:
            True if sent successfully
        """
        if not self.webhook_url:
            return False

        if time.time() < self._rate_limit_until:
            return False  # Silent skip when rate limited

        payload = {"content": content}

        for attempt in range(self.MAX_RETRIES):
            try:
                client = await self._get_client()
                response = await client.post(self.webhook_url, json=payload)

                if response.status_code == 429:
                    retry_after = response.json().get("retry_after", 5)
                    self._rate_limit_until = time.time() + float(retry_after)
                    self.logger.debug("Discord rate limited", retry_after=retry_after)
                    return False

                response.raise_for_status()
                self._consecutive_failures = 0
                self._last_success_time = time.time()
                return True

            except (httpx.ConnectTimeout, httpx.ReadTimeout, httpx.ConnectError, httpx.PoolTimeout) as e:
                self._consecutive_failures += 1
                self.logger.debug(
                    "Discord send failed",
                    error_type=type(e).__name__,
                    attempt=attempt + 1,
                )
                if attempt < self.MAX_RETRIES - 1:
                    await asyncio.sleep(self.RETRY_DELAYS[min(attempt, len(self.RETRY_DELAYS) - 1)])

            except httpx.HTTPStatusError as e:
                self._consecutive_failures += 1
                self.logger.warning(
                    "Discord rejected message",
                    status_code=e.response.status_code,
                )
                return False

        # Only log if we haven't had success recently (reduce log spam)
        if time.time() - self._last_success_time > 120:
            self.logger.warning(
                "Discord connectivity issues",
                failures=self._consecutive_failures,
            )
        return False
