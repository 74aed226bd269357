"""Tests for alert sound resolution, synthesis and playback fallback."""

import asyncio
import shutil

import numpy as np
import pytest

from gamewatch.alerts.audio import (
    AUDIO_EXTENSIONS,
    AudioAssetStore,
    AudioPlayer,
    AudioResolver,
    NullAudioBackend,
    PlaybackError,
    SubprocessAudioBackend,
    audio_candidates,
    synthesize,
    to_wav_bytes,
)
from gamewatch.models.schemas import AudioTier, EventKind
from tests.conftest import FakeAudioBackend, touch


@pytest.fixture
def resolver(audio_dir):
    return AudioResolver(AudioAssetStore(audio_dir), aliases={"falcons": ["ATL", "atlanta"]})


class TestCandidates:
    """Probe order for asset lookup."""

    def test_entity_names_before_generic(self):
        candidates = audio_candidates(EventKind.TOUCHDOWN, "falcons", ["atl"])
        names = [c.filename for c in candidates]

        assert names[0] == "falcons-touchdown.mp3"
        assert names.index("falcons-touchdown.ogg") < names.index("atl-touchdown.mp3")
        assert names[-len(AUDIO_EXTENSIONS):] == [f"touchdown{ext}" for ext in AUDIO_EXTENSIONS]
        assert len(candidates) == 3 * len(AUDIO_EXTENSIONS)

    def test_tiers(self):
        candidates = audio_candidates(EventKind.SAFETY, "falcons")

        entity = [c for c in candidates if c.tier == AudioTier.ENTITY]
        generic = [c for c in candidates if c.tier == AudioTier.GENERIC]
        assert all(c.filename.startswith("falcons-") for c in entity)
        assert candidates == entity + generic

    def test_camel_case_stem_first(self):
        names = [c.filename for c in audio_candidates(EventKind.FIELD_GOAL)]

        assert names[0] == "fieldGoal.mp3"
        assert "field_goal.mp3" in names

    def test_no_entity_is_generic_only(self):
        candidates = audio_candidates(EventKind.FIRST_DOWN)

        assert {c.tier for c in candidates} == {AudioTier.GENERIC}

    def test_aliases_are_lowercased_and_deduplicated(self):
        names = [c.filename for c in audio_candidates(EventKind.TOUCHDOWN, "falcons", ["ATL", "falcons", "atl"])]

        assert names.count("atl-touchdown.mp3") == 1
        assert names.count("falcons-touchdown.mp3") == 1


class TestAudioResolver:
    """Tiered asset resolution with caching."""

    def test_entity_asset_wins_over_generic(self, resolver, audio_dir):
        touch(audio_dir, "touchdown.mp3")
        entity_file = touch(audio_dir, "falcons-touchdown.wav")

        resolution = resolver.resolve(EventKind.TOUCHDOWN, "falcons")

        assert resolution.tier == AudioTier.ENTITY
        assert resolution.path == entity_file

    def test_alias_asset(self, resolver, audio_dir):
        alias_file = touch(audio_dir, "atl-fieldGoal.ogg")

        resolution = resolver.resolve(EventKind.FIELD_GOAL, "falcons")

        assert resolution.tier == AudioTier.ENTITY
        assert resolution.path == alias_file

    def test_generic_fallback(self, resolver, audio_dir):
        generic = touch(audio_dir, "touchdown.mp3")

        resolution = resolver.resolve(EventKind.TOUCHDOWN, "bulldogs")

        assert resolution.tier == AudioTier.GENERIC
        assert resolution.path == generic

    def test_synthesized_when_no_assets(self, resolver):
        resolution = resolver.resolve(EventKind.SAFETY, "falcons")

        assert resolution.tier == AudioTier.SYNTHESIZED
        assert resolution.path is None
        assert resolver.has_custom_audio(EventKind.SAFETY, "falcons") is False

    def test_missing_directory_is_synthesized(self, tmp_path):
        resolver = AudioResolver(AudioAssetStore(tmp_path / "nope"))

        assert resolver.resolve(EventKind.TOUCHDOWN).tier == AudioTier.SYNTHESIZED

    def test_misses_are_cached(self, resolver, audio_dir):
        resolver.resolve(EventKind.SAFETY, "falcons")
        probes = resolver.probe_count
        assert probes > 0

        # A file appearing later is not seen until the cache is cleared
        touch(audio_dir, "safety.mp3")
        assert resolver.resolve(EventKind.SAFETY, "falcons").tier == AudioTier.SYNTHESIZED
        assert resolver.probe_count == probes

        resolver.clear_cache()
        assert resolver.resolve(EventKind.SAFETY, "falcons").tier == AudioTier.GENERIC

    def test_preload(self, resolver, audio_dir):
        touch(audio_dir, "firstDown.mp3")

        results = resolver.preload(entities=[None, "falcons"])

        assert len(results) == 2 * len(EventKind)
        assert results[(None, EventKind.FIRST_DOWN)].tier == AudioTier.GENERIC
        assert results[("falcons", EventKind.TOUCHDOWN)].tier == AudioTier.SYNTHESIZED
        assert resolver.has_custom_audio(EventKind.FIRST_DOWN, "falcons") is True


class TestSynthesis:

    @pytest.mark.parametrize("kind", list(EventKind))
    def test_every_kind_has_a_tone(self, kind):
        samples = synthesize(kind, sample_rate=8000)

        assert samples.dtype == np.float32
        assert len(samples) > 0
        assert np.max(np.abs(samples)) <= 1.0

    def test_touchdown_length(self):
        samples = synthesize(EventKind.TOUCHDOWN, sample_rate=8000)

        # Two chords, 0.3s + 0.4s
        assert len(samples) == int(round(0.7 * 8000))

    def test_deterministic(self):
        a = synthesize(EventKind.FIELD_GOAL, sample_rate=8000)
        b = synthesize(EventKind.FIELD_GOAL, sample_rate=8000)

        assert np.array_equal(a, b)

    def test_wav_encoding(self):
        samples = synthesize(EventKind.FIRST_DOWN, sample_rate=8000)
        data = to_wav_bytes(samples, 8000)

        assert data[:4] == b"RIFF"
        assert data[8:12] == b"WAVE"
        # 44-byte header + 16-bit mono samples
        assert len(data) == 44 + 2 * len(samples)


class TestAudioPlayer:
    """Playback with fallback to the synthesized tone."""

    @pytest.mark.asyncio
    async def test_plays_resolved_asset(self, resolver, audio_dir, fake_backend):
        path = touch(audio_dir, "falcons-touchdown.mp3")
        player = AudioPlayer(resolver, fake_backend)

        tier = await player.play_event(EventKind.TOUCHDOWN, "falcons")

        assert tier == AudioTier.ENTITY
        assert fake_backend.files == [path]
        assert fake_backend.tones == []

    @pytest.mark.asyncio
    async def test_plays_tone_without_assets(self, resolver, fake_backend):
        player = AudioPlayer(resolver, fake_backend, sample_rate=8000)

        tier = await player.play_event(EventKind.SAFETY, "falcons")

        assert tier == AudioTier.SYNTHESIZED
        assert len(fake_backend.tones) == 1

    @pytest.mark.asyncio
    async def test_asset_failure_falls_back_to_tone(self, resolver, audio_dir):
        touch(audio_dir, "touchdown.mp3", content=b"not really audio")
        backend = FakeAudioBackend(fail_files=True)
        player = AudioPlayer(resolver, backend, sample_rate=8000)

        tier = await player.play_event(EventKind.TOUCHDOWN, "falcons")

        assert tier == AudioTier.SYNTHESIZED
        assert len(backend.tones) == 1

    @pytest.mark.asyncio
    async def test_total_failure_does_not_raise(self, resolver, audio_dir):
        touch(audio_dir, "touchdown.mp3")
        backend = FakeAudioBackend(fail_files=True, fail_tones=True)
        player = AudioPlayer(resolver, backend, sample_rate=8000)

        assert await player.play_event(EventKind.TOUCHDOWN) is None

    @pytest.mark.asyncio
    async def test_disabled_player_is_silent(self, resolver, fake_backend):
        player = AudioPlayer(resolver, fake_backend, enabled=False)

        assert await player.play_event(EventKind.TOUCHDOWN) is None
        assert fake_backend.files == []
        assert fake_backend.tones == []

    def test_tone_is_rendered_once(self, resolver, fake_backend):
        player = AudioPlayer(resolver, fake_backend, sample_rate=8000)

        assert player.tone(EventKind.FIRST_DOWN) is player.tone(EventKind.FIRST_DOWN)

    def test_stop_all_delegates_to_backend(self, resolver, fake_backend):
        player = AudioPlayer(resolver, fake_backend)

        player.stop_all()

        assert fake_backend.stop_calls == 1

    @pytest.mark.asyncio
    async def test_null_backend_records(self, resolver):
        backend = NullAudioBackend()
        player = AudioPlayer(resolver, backend, sample_rate=8000)

        await player.play_event(EventKind.FIRST_DOWN)

        assert len(backend.played) == 1
        assert backend.played[0].startswith("<tone")


# Player stand-ins: `sh -c "sleep N" player <path>` ignores the path
SLOW_PLAYER = ["sh", "-c", "sleep 5", "player"]
SHORT_PLAYER = ["sh", "-c", "sleep 0.3", "player"]

requires_shell = pytest.mark.skipif(
    shutil.which("sh") is None or shutil.which("false") is None,
    reason="needs a POSIX shell",
)


async def wait_for_asset_process(backend: SubprocessAudioBackend) -> None:
    for _ in range(200):
        if backend._asset_procs:
            return
        await asyncio.sleep(0.01)
    raise AssertionError("player process never started")


@requires_shell
class TestSubprocessAudioBackend:
    """Command-line player backend."""

    @pytest.mark.asyncio
    async def test_stop_all_ends_asset_playback_quietly(self, audio_dir):
        backend = SubprocessAudioBackend(SLOW_PLAYER)
        task = asyncio.create_task(backend.play_file(touch(audio_dir, "touchdown.mp3")))
        await wait_for_asset_process(backend)

        backend.stop_all()

        assert await asyncio.wait_for(task, timeout=2.0) is None

    @pytest.mark.asyncio
    async def test_stop_all_leaves_tones_running(self):
        backend = SubprocessAudioBackend(SHORT_PLAYER)
        tone = asyncio.create_task(backend.play_samples(synthesize(EventKind.FIRST_DOWN, 8000), 8000))
        await asyncio.sleep(0.05)

        backend.stop_all()

        # Tone completes normally instead of being terminated
        await asyncio.wait_for(tone, timeout=2.0)
        assert not backend._asset_procs

    @pytest.mark.asyncio
    async def test_stopped_asset_does_not_fall_back_to_tone(self, audio_dir):
        touch(audio_dir, "touchdown.mp3")
        backend = SubprocessAudioBackend(SLOW_PLAYER)
        player = AudioPlayer(AudioResolver(AudioAssetStore(audio_dir)), backend, sample_rate=8000)

        task = asyncio.create_task(player.play_event(EventKind.TOUCHDOWN, "falcons"))
        await wait_for_asset_process(backend)
        player.stop_all()

        assert await asyncio.wait_for(task, timeout=2.0) == AudioTier.GENERIC

    @pytest.mark.asyncio
    async def test_player_failure_raises(self, audio_dir):
        backend = SubprocessAudioBackend(["false"])

        with pytest.raises(PlaybackError):
            await backend.play_file(touch(audio_dir, "touchdown.mp3"))

        with pytest.raises(PlaybackError):
            await backend.play_samples(synthesize(EventKind.FIRST_DOWN, 8000), 8000)

    @pytest.mark.asyncio
    async def test_missing_player_raises(self, audio_dir):
        backend = SubprocessAudioBackend(["gamewatch-no-such-player"])

        with pytest.raises(PlaybackError):
            await backend.play_file(touch(audio_dir, "touchdown.mp3"))

    def test_requires_command(self):
        with pytest.raises(ValueError):
            SubprocessAudioBackend([])
