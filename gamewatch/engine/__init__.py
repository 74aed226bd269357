"""
Game monitoring engine.

- detector: diffs consecutive snapshots into deduplicated game events
- scheduler: completion-timed poll loop with failure backoff and live floor
"""

from gamewatch.engine.detector import EventDetector
from gamewatch.engine.scheduler import PollScheduler, TickResult, compute_interval

__all__ = [
    "EventDetector",
    "PollScheduler",
    "TickResult",
    "compute_interval",
]
