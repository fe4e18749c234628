"""Shared test fixtures for storyreel tests."""

import asyncio
import wave
from pathlib import Path

import imageio_ffmpeg
import pytest
from PIL import Image

from storyreel.errors import PhaseError
from storyreel.models import SceneAsset, VideoSettings

_FFMPEG = imageio_ffmpeg.get_ffmpeg_exe()

SAMPLE_RATE = 24000


def write_png(path: Path, size=(320, 240), color=(60, 60, 180)) -> Path:
    Image.new("RGB", size, color).save(path)
    return path


def write_wav(path: Path, seconds: float) -> Path:
    """Write a silent mono 16-bit WAV of the given length."""
    with wave.open(str(path), "wb") as w:
        w.setnchannels(1)
        w.setsampwidth(2)
        w.setframerate(SAMPLE_RATE)
        w.writeframes(b"\x00\x00" * int(SAMPLE_RATE * seconds))
    return path


def make_scenes(directory: Path, durations, dialogue="Once upon a time") -> list[SceneAsset]:
    """Create real image/audio files and matching SceneAssets."""
    scenes = []
    for i, d in enumerate(durations, 1):
        sid = f"scene_{i:03d}"
        scenes.append(SceneAsset(
            scene_id=sid,
            dialogue=dialogue,
            image_file_path=write_png(directory / f"{sid}.png", color=(40 * i % 255, 80, 160)),
            audio_file_path=write_wav(directory / f"{sid}_audio.wav", d),
            duration_seconds=d,
        ))
    return scenes


def make_settings(**overrides) -> VideoSettings:
    values = {
        "fps": 10,
        "resolution": (160, 120),
        "transition": 0.5,
        "ffmpeg": _FFMPEG,
    }
    values.update(overrides)
    return VideoSettings(**values)


class FakeEngine:
    """Stands in for FfmpegEngine: records calls, creates the output file.

    Phases listed in `fail` raise their phase error instead of producing
    output. `delays` maps scene_id -> seconds to sleep before finishing a
    clip render, to shuffle completion order.
    """

    def __init__(self, fail=(), delays=None):
        self.fail = set(fail)
        self.delays = delays or {}
        self.calls = []
        self.concat_manifest = None

    async def run(self, args, error_cls=PhaseError, scene_id=None):
        self.calls.append((error_cls.phase, scene_id, list(args)))
        if scene_id in self.delays:
            await asyncio.sleep(self.delays[scene_id])
        if error_cls.phase == "concat":
            manifest = Path(args[args.index("-i") + 1])
            self.concat_manifest = manifest.read_text()
        if error_cls.phase in self.fail:
            raise error_cls("injected failure", scene_id=scene_id, returncode=1)
        Path(args[-1]).write_bytes(b"fake media")

    def phases(self):
        return [phase for phase, _, _ in self.calls]


@pytest.fixture
def settings():
    return make_settings()


@pytest.fixture
def scenes(tmp_path):
    src = tmp_path / "assets"
    src.mkdir()
    return make_scenes(src, [3.0, 4.0, 5.0])


@pytest.fixture
def fake_engine():
    return FakeEngine()
