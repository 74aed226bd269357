"""Utility modules."""

from gamewatch.utils.logging import setup_logging
from gamewatch.utils.metrics import MetricsCollector
from gamewatch.utils.retry import RetryPolicy, with_retry, is_retryable_error

__all__ = [
    "setup_logging",
    "MetricsCollector",
    "RetryPolicy",
    "with_retry",
    "is_retryable_error",
]
