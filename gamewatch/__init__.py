"""
GameWatch: live football game monitor.

Polls ESPN team schedules, detects scoring and situational plays between
successive snapshots, and alerts once per play with a sound and a
notification.

- feeds/: snapshot sources (ESPN schedule API)
- engine/: event detection and the adaptive poll scheduler
- alerts/: sound resolution/playback, notification sinks, dispatch
- models/: snapshot, event and metrics schemas
"""

__version__ = "0.1.0"
