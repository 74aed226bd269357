"""
Alert outputs: sound resolution/playback, notifications and dispatch.
"""

from gamewatch.alerts.audio import (
    AudioAssetStore,
    AudioResolver,
    AudioPlayer,
    AudioBackend,
    SubprocessAudioBackend,
    NullAudioBackend,
    PlaybackError,
    audio_candidates,
    synthesize,
)
from gamewatch.alerts.notify import (
    NotificationSink,
    ConsoleNotificationSink,
    DiscordNotificationSink,
    CompositeNotificationSink,
)
from gamewatch.alerts.dispatcher import AlertDispatcher

__all__ = [
    "AudioAssetStore",
    "AudioResolver",
    "AudioPlayer",
    "AudioBackend",
    "SubprocessAudioBackend",
    "NullAudioBackend",
    "PlaybackError",
    "audio_candidates",
    "synthesize",
    "NotificationSink",
    "ConsoleNotificationSink",
    "DiscordNotificationSink",
    "CompositeNotificationSink",
    "AlertDispatcher",
]
