"""
Poll metrics bookkeeping.

Counts poll outcomes and tracks the consecutive-failure streak that drives
the scheduler's backoff. No business rules live here.
"""

from dataclasses import replace
from datetime import datetime, timezone
from typing import Optional

import structlog

from gamewatch.models.schemas import PollMetrics

logger = structlog.get_logger()


class MetricsCollector:
    """Tracks total/successful/failed polls and connectivity state."""

    def __init__(self):
        self._metrics = PollMetrics()
        self._connected = True
        self.logger = logger.bind(component="metrics")

    def record_success(self, now: Optional[datetime] = None) -> None:
        """Record a successful poll and reset the failure streak."""
        now = now or datetime.now(timezone.utc)
        m = self._metrics
        m.total_polls += 1
        m.successful_polls += 1
        m.consecutive_failures = 0
        m.last_success_time = now
        self._connected = True

    def record_failure(self, now: Optional[datetime] = None) -> None:
        """Record a failed poll."""
        now = now or datetime.now(timezone.utc)
        m = self._metrics
        m.total_polls += 1
        m.failed_polls += 1
        m.consecutive_failures += 1
        m.last_failure_time = now
        self._connected = False

        self.logger.debug(
            "Poll failure recorded",
            consecutive_failures=m.consecutive_failures,
            failed_polls=m.failed_polls,
        )

    @property
    def consecutive_failures(self) -> int:
        return self._metrics.consecutive_failures

    @property
    def is_connected(self) -> bool:
        """False after a failed poll until the next success."""
        return self._connected

    @property
    def last_update(self) -> Optional[datetime]:
        return self._metrics.last_success_time

    def snapshot(self) -> PollMetrics:
        """Get a copy of the current counters."""
        return replace(self._metrics)

    def to_dict(self) -> dict:
        data = self._metrics.to_dict()
        data["is_connected"] = self._connected
        return data
