"""Tests for poll metrics bookkeeping."""

from datetime import datetime, timezone

from gamewatch.utils.metrics import MetricsCollector


class TestMetricsCollector:

    def test_initial_state(self):
        metrics = MetricsCollector()
        m = metrics.snapshot()

        assert m.total_polls == 0
        assert metrics.is_connected is True
        assert metrics.last_update is None

    def test_failure_streak_and_reset(self):
        metrics = MetricsCollector()

        metrics.record_failure()
        metrics.record_failure()
        assert metrics.consecutive_failures == 2
        assert metrics.is_connected is False

        now = datetime(2024, 9, 8, 17, 0, tzinfo=timezone.utc)
        metrics.record_success(now=now)

        assert metrics.consecutive_failures == 0
        assert metrics.is_connected is True
        assert metrics.last_update == now

        m = metrics.snapshot()
        assert (m.total_polls, m.successful_polls, m.failed_polls) == (3, 1, 2)

    def test_snapshot_is_a_copy(self):
        metrics = MetricsCollector()
        before = metrics.snapshot()

        metrics.record_success()

        assert before.total_polls == 0
        assert metrics.snapshot().total_polls == 1

    def test_to_dict_serializes_times(self):
        metrics = MetricsCollector()
        when = datetime(2024, 9, 8, 17, 0, tzinfo=timezone.utc)
        metrics.record_failure(now=when)

        data = metrics.to_dict()

        assert data["last_failure_time"] == when.isoformat()
        assert data["last_success_time"] is None
        assert data["is_connected"] is False
