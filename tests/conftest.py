"""Shared fixtures for the game monitor tests."""

from dataclasses import replace
from pathlib import Path
from typing import Optional

import numpy as np
import pytest

from gamewatch.alerts.audio import AudioBackend, PlaybackError
from gamewatch.alerts.notify import NotificationSink
from gamewatch.models.schemas import GameSnapshot, MatchStatus, NotificationStyle, Side


def make_snapshot(**overrides) -> GameSnapshot:
    """Build a live Falcons home game snapshot with sensible defaults."""
    base = GameSnapshot(
        game_id="401",
        entity="falcons",
        team_name="Falcons",
        home_team="Atlanta Falcons",
        away_team="New Orleans Saints",
        home_score=14,
        away_score=10,
        side=Side.HOME,
        status=MatchStatus.IN,
        period="Q2",
        clock="8:12",
        possession="Atlanta Falcons",
        down=2,
        distance=6,
        yardline="45",
        last_play="Robinson rush for 4 yards",
    )
    return replace(base, **overrides)


class RecordingSink(NotificationSink):
    """Notification sink that remembers what it was asked to show."""

    def __init__(self, fail: bool = False):
        self.notifications: list[tuple[str, NotificationStyle]] = []
        self.fail = fail
        self.closed = False

    async def notify(self, description: str, style: NotificationStyle) -> None:
        if self.fail:
            raise RuntimeError("sink down")
        self.notifications.append((description, style))

    async def close(self) -> None:
        self.closed = True


class FakeAudioBackend(AudioBackend):
    """Audio backend that records plays and can fail on asset files."""

    def __init__(self, fail_files: bool = False, fail_tones: bool = False):
        self.fail_files = fail_files
        self.fail_tones = fail_tones
        self.files: list[Path] = []
        self.tones: list[int] = []
        self.stop_calls = 0

    async def play_file(self, path: Path) -> None:
        if self.fail_files:
            raise PlaybackError(f"cannot decode {path.name}")
        self.files.append(path)

    async def play_samples(self, samples: np.ndarray, sample_rate: int) -> None:
        if self.fail_tones:
            raise PlaybackError("no output device")
        self.tones.append(len(samples))

    def stop_all(self) -> None:
        self.stop_calls += 1


@pytest.fixture
def snapshot_factory():
    """Factory for GameSnapshot with overrides."""
    return make_snapshot


@pytest.fixture
def baseline_snapshot() -> GameSnapshot:
    return make_snapshot()


@pytest.fixture
def recording_sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def fake_backend() -> FakeAudioBackend:
    return FakeAudioBackend()


@pytest.fixture
def audio_dir(tmp_path) -> Path:
    directory = tmp_path / "audio"
    directory.mkdir()
    return directory


def touch(directory: Path, filename: str, content: Optional[bytes] = b"ID3") -> Path:
    path = directory / filename
    path.write_bytes(content)
    return path
