"""
Alert sound resolution and playback.

Each event kind resolves to a sound through a tiered fallback chain:
1. Team-specific asset      ({team}-{kind}.mp3, {alias}-{kind}.wav, ...)
2. Generic asset            ({kind}.mp3, ...)
3. Synthesized tone/chord   (rendered with numpy, no asset needed)

Resolution is cached per (team, kind) for the life of the process, misses
included, so the asset directory is probed once per pair.
"""

import asyncio
import io
import shutil
import tempfile
import wave
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Optional, Union

import numpy as np
import structlog

from gamewatch.models.schemas import AudioResolution, AudioTier, EventKind

logger = structlog.get_logger()

AUDIO_EXTENSIONS = (".mp3", ".wav", ".ogg", ".m4a")

DEFAULT_SAMPLE_RATE = 44100


class PlaybackError(Exception):
    """An audio asset could not be played (decode error, player failure)."""


# =============================================================================
# Asset lookup
# =============================================================================

@dataclass(frozen=True)
class AudioCandidate:
    """One file name to probe, with the tier it belongs to."""
    filename: str
    tier: AudioTier


def _kind_stems(kind: EventKind) -> list[str]:
    stems = [kind.asset_stem]
    if kind.value not in stems:
        stems.append(kind.value)
    return stems


def audio_candidates(
    kind: EventKind,
    entity: Optional[str] = None,
    aliases: Iterable[str] = (),
) -> list[AudioCandidate]:
    """
    Build the ordered probe sequence for an event kind.

    Team names (the entity key first, then its aliases) come before the
    generic name; every name is tried across AUDIO_EXTENSIONS in order.
    """
    candidates: list[AudioCandidate] = []
    stems = _kind_stems(kind)

    names: list[str] = []
    if entity:
        for name in [entity, *aliases]:
            name = name.lower()
            if name and name not in names:
                names.append(name)

    for name in names:
        for stem in stems:
            for ext in AUDIO_EXTENSIONS:
                candidates.append(AudioCandidate(f"{name}-{stem}{ext}", AudioTier.ENTITY))

    for stem in stems:
        for ext in AUDIO_EXTENSIONS:
            candidates.append(AudioCandidate(f"{stem}{ext}", AudioTier.GENERIC))

    return candidates


class AudioAssetStore:
    """Audio assets stored as files in one directory."""

    def __init__(self, directory: Union[str, Path]):
        self.directory = Path(directory)

    def lookup(self, filename: str) -> Optional[Path]:
        """Get the asset path, or None if it does not exist."""
        path = self.directory / filename
        return path if path.is_file() else None


class AudioResolver:
    """
    Resolves the sound for an (entity, kind) pair.

    Usage:
        resolver = AudioResolver(AudioAssetStore("assets/audio"),
                                 aliases={"falcons": ["atl", "atlanta"]})
        resolution = resolver.resolve(EventKind.TOUCHDOWN, "falcons")
    """

    def __init__(
        self,
        store: AudioAssetStore,
        aliases: Optional[dict[str, list[str]]] = None,
    ):
        self.store = store
        self.aliases = aliases or {}
        self.logger = logger.bind(component="audio_resolver")

        self._cache: dict[tuple[Optional[str], EventKind], AudioResolution] = {}
        self._probe_count = 0

    def resolve(self, kind: EventKind, entity: Optional[str] = None) -> AudioResolution:
        """Get the first matching asset, or the synthesized tier."""
        key = (entity, kind)
        cached = self._cache.get(key)
        if cached is not None:
            return cached

        resolution = AudioResolution(AudioTier.SYNTHESIZED)
        for candidate in audio_candidates(kind, entity, self.aliases.get(entity or "", [])):
            self._probe_count += 1
            path = self.store.lookup(candidate.filename)
            if path is not None:
                resolution = AudioResolution(candidate.tier, path)
                break

        self._cache[key] = resolution
        self.logger.debug(
            "Audio resolved",
            kind=kind.value,
            entity=entity,
            tier=resolution.tier.value,
            path=str(resolution.path) if resolution.path else None,
        )
        return resolution

    def has_custom_audio(self, kind: EventKind, entity: Optional[str] = None) -> bool:
        """True if an asset (team-specific or generic) exists for the kind."""
        return self.resolve(kind, entity).is_asset

    def preload(
        self,
        kinds: Optional[Iterable[EventKind]] = None,
        entities: Iterable[Optional[str]] = (None,),
    ) -> dict[tuple[Optional[str], EventKind], AudioResolution]:
        """Resolve every (entity, kind) pair up front and return the results."""
        kinds = list(kinds) if kinds is not None else list(EventKind)
        results = {}
        for entity in entities:
            for kind in kinds:
                results[(entity, kind)] = self.resolve(kind, entity)
        return results

    def clear_cache(self) -> None:
        self._cache.clear()

    @property
    def probe_count(self) -> int:
        """Number of asset lookups performed (cache hits excluded)."""
        return self._probe_count


# =============================================================================
# Tone synthesis
# =============================================================================

@dataclass(frozen=True)
class ToneNote:
    """A chord (or single note) starting at `offset` seconds."""
    frequencies: tuple[float, ...]
    duration: float
    waveform: str = "sine"
    offset: float = 0.0


TONE_PATTERNS: dict[EventKind, tuple[ToneNote, ...]] = {
    # Two rising major triads
    EventKind.TOUCHDOWN: (
        ToneNote((523.25, 659.25, 783.99), 0.3),
        ToneNote((659.25, 783.99, 987.77), 0.4, offset=0.3),
    ),
    EventKind.FIELD_GOAL: (
        ToneNote((659.25,), 0.2, "triangle"),
        ToneNote((783.99,), 0.3, "triangle", offset=0.2),
    ),
    EventKind.FIRST_DOWN: (
        ToneNote((440.0,), 0.15, "square"),
    ),
    EventKind.SAFETY: (
        ToneNote((392.0, 523.25, 659.25), 0.4),
        ToneNote((523.25, 659.25, 783.99), 0.5, offset=0.4),
    ),
    # Falling warning
    EventKind.OPPONENT_THIRD_LONG: (
        ToneNote((220.0,), 0.2, "sawtooth"),
        ToneNote((196.0,), 0.2, "sawtooth", offset=0.2),
    ),
}


def _waveform(name: str, phase: np.ndarray) -> np.ndarray:
    """Periodic waveform with period 1 evaluated at `phase` (cycles)."""
    frac = phase - np.floor(phase)
    if name == "square":
        return np.where(frac < 0.5, 1.0, -1.0)
    if name == "sawtooth":
        return 2.0 * frac - 1.0
    if name == "triangle":
        return 1.0 - 4.0 * np.abs(frac - 0.5)
    return np.sin(2.0 * np.pi * phase)


def synthesize(
    kind: EventKind,
    sample_rate: int = DEFAULT_SAMPLE_RATE,
    volume: float = 0.3,
) -> np.ndarray:
    """
    Render the tone pattern for an event kind as mono float32 samples.

    Each note decays exponentially from `volume` to 1/30 of it over its
    duration. Output is deterministic for a given kind and sample rate.
    """
    notes = TONE_PATTERNS[kind]
    total = max(n.offset + n.duration for n in notes)
    buffer = np.zeros(int(round(total * sample_rate)), dtype=np.float64)

    for note in notes:
        n_samples = int(round(note.duration * sample_rate))
        t = np.arange(n_samples) / sample_rate
        gain = volume * np.power(1.0 / 30.0, t / note.duration)
        start = int(round(note.offset * sample_rate))
        end = min(start + n_samples, len(buffer))
        for freq in note.frequencies:
            buffer[start:end] += (gain * _waveform(note.waveform, freq * t))[: end - start]

    return np.clip(buffer, -1.0, 1.0).astype(np.float32)


def to_wav_bytes(samples: np.ndarray, sample_rate: int = DEFAULT_SAMPLE_RATE) -> bytes:
    """Encode float samples in [-1, 1] as 16-bit mono PCM WAV."""
    pcm = (np.clip(samples, -1.0, 1.0) * 32767).astype("<i2")
    out = io.BytesIO()
    with wave.open(out, "wb") as wav:
        wav.setnchannels(1)
        wav.setsampwidth(2)
        wav.setframerate(sample_rate)
        wav.writeframes(pcm.tobytes())
    return out.getvalue()


# =============================================================================
# Playback backends
# =============================================================================

class AudioBackend(ABC):
    """Audio output device."""

    @abstractmethod
    async def play_file(self, path: Path) -> None:
        """Play an asset to completion. Raise PlaybackError on failure."""

    @abstractmethod
    async def play_samples(self, samples: np.ndarray, sample_rate: int) -> None:
        """Play a synthesized buffer to completion."""

    @abstractmethod
    def stop_all(self) -> None:
        """Silence in-flight asset playback immediately."""


PLAYER_COMMANDS: tuple[tuple[str, ...], ...] = (
    ("afplay",),
    ("paplay",),
    ("ffplay", "-nodisp", "-autoexit", "-loglevel", "quiet"),
    ("aplay", "-q"),
)


def detect_player_command() -> Optional[list[str]]:
    """Find a command-line audio player on PATH."""
    for command in PLAYER_COMMANDS:
        if shutil.which(command[0]):
            return list(command)
    return None


class SubprocessAudioBackend(AudioBackend):
    """
    Plays sounds through a command-line player, one process per sound.

    Sounds may overlap. stop_all() terminates asset players only; synthesized
    tones are short and run to completion.
    """

    def __init__(self, command: list[str]):
        if not command:
            raise ValueError("SubprocessAudioBackend needs a player command")
        self.command = list(command)
        self.logger = logger.bind(component="audio_backend", player=command[0])

        self._asset_procs: set[asyncio.subprocess.Process] = set()
        self._stopped_procs: set[int] = set()

    async def play_file(self, path: Path) -> None:
        try:
            proc = await asyncio.create_subprocess_exec(
                *self.command,
                str(path),
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.DEVNULL,
            )
        except OSError as e:
            raise PlaybackError(f"Could not start player: {e}") from e

        self._asset_procs.add(proc)
        try:
            returncode = await proc.wait()
        finally:
            self._asset_procs.discard(proc)

        if proc.pid in self._stopped_procs:
            self._stopped_procs.discard(proc.pid)
            return
        if returncode != 0:
            raise PlaybackError(f"Player exited with status {returncode} for {path.name}")

    async def play_samples(self, samples: np.ndarray, sample_rate: int) -> None:
        with tempfile.NamedTemporaryFile(suffix=".wav", delete=False) as tmp:
            tmp.write(to_wav_bytes(samples, sample_rate))
            tmp_path = Path(tmp.name)
        try:
            proc = await asyncio.create_subprocess_exec(
                *self.command,
                str(tmp_path),
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.DEVNULL,
            )
            returncode = await proc.wait()
            if returncode != 0:
                raise PlaybackError(f"Player exited with status {returncode} for synthesized tone")
        finally:
            tmp_path.unlink(missing_ok=True)

    def stop_all(self) -> None:
        for proc in list(self._asset_procs):
            if proc.returncode is None:
                self._stopped_procs.add(proc.pid)
                try:
                    proc.terminate()
                except ProcessLookupError:
                    pass
        if self._asset_procs:
            self.logger.info("Stopped asset playback", count=len(self._asset_procs))


class NullAudioBackend(AudioBackend):
    """Headless backend: logs what would have played."""

    def __init__(self):
        self.logger = logger.bind(component="audio_backend", player="null")
        self.played: list[str] = []

    async def play_file(self, path: Path) -> None:
        self.played.append(str(path))
        self.logger.info("Audio asset (muted)", path=str(path))

    async def play_samples(self, samples: np.ndarray, sample_rate: int) -> None:
        self.played.append(f"<tone {len(samples) / sample_rate:.2f}s>")
        self.logger.info("Synthesized tone (muted)", seconds=round(len(samples) / sample_rate, 2))

    def stop_all(self) -> None:
        pass


# =============================================================================
# Player
# =============================================================================

class AudioPlayer:
    """
    Plays the resolved sound for an event, falling back to a synthesized
    tone when an asset fails to play.
    """

    def __init__(
        self,
        resolver: AudioResolver,
        backend: AudioBackend,
        sample_rate: int = DEFAULT_SAMPLE_RATE,
        volume: float = 0.3,
        enabled: bool = True,
    ):
        self.resolver = resolver
        self.backend = backend
        self.sample_rate = sample_rate
        self.volume = volume
        self.enabled = enabled
        self.logger = logger.bind(component="audio_player")

        self._tones: dict[EventKind, np.ndarray] = {}

    def tone(self, kind: EventKind) -> np.ndarray:
        """Synthesized buffer for a kind (rendered once)."""
        if kind not in self._tones:
            self._tones[kind] = synthesize(kind, self.sample_rate, self.volume)
        return self._tones[kind]

    async def play_event(self, kind: EventKind, entity: Optional[str] = None) -> Optional[AudioTier]:
        """
        Play the sound for an event.

        Returns:
            The tier actually played, or None if audio is disabled or even
            the synthesized tone failed. Never raises playback errors.
        """
        if not self.enabled:
            return None

        resolution = self.resolver.resolve(kind, entity)
        if resolution.is_asset:
            try:
                await self.backend.play_file(resolution.path)
                return resolution.tier
            except (PlaybackError, OSError) as e:
                self.logger.warning(
                    "Asset playback failed, using synthesized tone",
                    kind=kind.value,
                    entity=entity,
                    path=str(resolution.path),
                    error=str(e),
                )

        try:
            await self.backend.play_samples(self.tone(kind), self.sample_rate)
            return AudioTier.SYNTHESIZED
        except (PlaybackError, OSError) as e:
            self.logger.error("Synthesized tone playback failed", kind=kind.value, error=str(e))
            return None

    def stop_all(self) -> None:
        """Silence in-flight asset playback."""
        self.backend.stop_all()
