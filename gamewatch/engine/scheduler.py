"""
Adaptive poll scheduler.

Runs the poll cycle in a completion-timed loop: the next poll is scheduled
only after the previous cycle (including all downstream processing) has
finished, so a slow poll never queues up a burst of polls behind it.

Interval policy:
- Base interval 15s
- While any tracked game is live, the floor drops to 5s
- After 3+ consecutive failures: min(60s, 15s * 2^(failures - 2)),
  never below the current floor
- Any success returns to the floor immediately
"""

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Union

import structlog

from gamewatch.utils.metrics import MetricsCollector

logger = structlog.get_logger()

BASE_INTERVAL_SECONDS = 15.0
LIVE_INTERVAL_SECONDS = 5.0
MAX_INTERVAL_SECONDS = 60.0
FAILURE_THRESHOLD = 3


@dataclass
class TickResult:
    """Outcome of one poll cycle as seen by the scheduler."""
    success: bool
    any_live: bool = False


TickCallback = Callable[[], Awaitable[Union[TickResult, bool, None]]]


def compute_interval(
    consecutive_failures: int,
    any_live: bool = False,
    base_interval: float = BASE_INTERVAL_SECONDS,
    live_interval: float = LIVE_INTERVAL_SECONDS,
    max_interval: float = MAX_INTERVAL_SECONDS,
    failure_threshold: int = FAILURE_THRESHOLD,
) -> float:
    """
    Next poll delay in seconds.

    Liveness sets the floor; failure backoff can raise the interval above it
    up to `max_interval`.
    """
    floor = live_interval if any_live else base_interval
    if consecutive_failures < failure_threshold:
        return floor

    backoff = min(max_interval, base_interval * (2 ** (consecutive_failures - 2)))
    return max(floor, backoff)


class PollScheduler:
    """
    Drives a repeating poll cycle with a self-adjusting interval.

    Usage:
        scheduler = PollScheduler(on_tick=monitor.poll_once, metrics=metrics)
        task = asyncio.create_task(scheduler.start())
        ...
        scheduler.stop()
    """

    def __init__(
        self,
        on_tick: Optional[TickCallback] = None,
        metrics: Optional[MetricsCollector] = None,
        base_interval: float = BASE_INTERVAL_SECONDS,
        live_interval: float = LIVE_INTERVAL_SECONDS,
        max_interval: float = MAX_INTERVAL_SECONDS,
        failure_threshold: int = FAILURE_THRESHOLD,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.on_tick = on_tick
        self.metrics = metrics or MetricsCollector()
        self.base_interval = base_interval
        self.live_interval = live_interval
        self.max_interval = max_interval
        self.failure_threshold = failure_threshold
        self._sleep = sleep

        self.logger = logger.bind(component="poll_scheduler")

        self._running = False
        self._stopped = False
        self._any_live = False
        self._interval = base_interval
        self._sleep_task: Optional[asyncio.Future] = None
        self._tick_lock = asyncio.Lock()

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def start(self, on_tick: Optional[TickCallback] = None) -> None:
        """
        Poll immediately, then keep polling until stop() is called.

        Each wait starts after the previous cycle completes.
        """
        if self._running:
            self.logger.warning("Scheduler already running")
            return
        if on_tick is not None:
            self.on_tick = on_tick
        if self.on_tick is None:
            raise ValueError("PollScheduler.start() needs an on_tick callback")

        self._running = True
        self._stopped = False
        self.logger.info("Starting poll scheduler", interval=self._interval)

        try:
            while not self._stopped:
                await self.run_once()
                if self._stopped:
                    break

                self.logger.debug("Next poll scheduled", delay_seconds=self._interval)
                self._sleep_task = asyncio.ensure_future(self._sleep(self._interval))
                try:
                    await self._sleep_task
                except asyncio.CancelledError:
                    if self._stopped:
                        break
                    raise
                finally:
                    self._sleep_task = None
        finally:
            self._running = False
            self.logger.info("Poll scheduler stopped")

    def stop(self) -> None:
        """
        Stop scheduling further polls. Idempotent.

        A poll already in flight is allowed to finish; its result is not
        recorded and no further poll is scheduled.
        """
        if self._stopped:
            return
        self._stopped = True
        if self._sleep_task and not self._sleep_task.done():
            self._sleep_task.cancel()
        self.logger.info("Stop requested")

    # =========================================================================
    # Poll cycle
    # =========================================================================

    async def run_once(self) -> Optional[TickResult]:
        """Run one poll cycle and update metrics and the next interval."""
        async with self._tick_lock:
            result = await self._invoke_tick()

            if self._stopped and self._running:
                self.logger.debug("Discarding poll result after stop")
                return None

            if result.success:
                self.metrics.record_success()
            else:
                self.metrics.record_failure()
            self._any_live = result.any_live

            self._update_interval()
            return result

    async def _invoke_tick(self) -> TickResult:
        try:
            outcome = await self.on_tick()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self.logger.error("Poll cycle error", error_type=type(e).__name__, error=str(e))
            return TickResult(success=False, any_live=self._any_live)

        if isinstance(outcome, TickResult):
            return outcome
        # Plain callbacks report success by returning anything but False
        return TickResult(success=outcome is not False, any_live=self._any_live)

    def _update_interval(self) -> None:
        previous = self._interval
        self._interval = compute_interval(
            self.metrics.consecutive_failures,
            any_live=self._any_live,
            base_interval=self.base_interval,
            live_interval=self.live_interval,
            max_interval=self.max_interval,
            failure_threshold=self.failure_threshold,
        )

        if self._interval == previous:
            return
        if self.metrics.consecutive_failures >= self.failure_threshold:
            self.logger.warning(
                "Increasing poll interval due to consecutive failures",
                consecutive_failures=self.metrics.consecutive_failures,
                interval=self._interval,
            )
        else:
            self.logger.info(
                "Poll interval adjusted",
                interval=self._interval,
                live=self._any_live,
            )

    # =========================================================================
    # Status
    # =========================================================================

    @property
    def current_interval(self) -> float:
        """Delay before the next poll, in seconds."""
        return self._interval

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def any_live(self) -> bool:
        return self._any_live
