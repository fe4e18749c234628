"""Audio concatenation — join per-scene narration into one PCM track.

The concat demuxer reads a list file:

    file '/abs/path/scene_001_audio.wav'
    outpoint 4.000
    file '/abs/path/scene_002_audio.wav'

Line order is the audio order. ffmpeg cannot tell if it disagrees with the
video's scene order, so the compiler builds both from the same scene list.
A single quote inside a path is written as '\\'' (close quote, escaped
quote, reopen quote), the concat demuxer's quoting rule.

Every junction of the crossfaded video overlaps two scenes by T seconds,
so the compiler cuts each narration except the last at d - T (`outpoint`).
Narration k then starts exactly where scene k starts fading in, and the
track is as long as the video: sum(d) - (n - 1) * T.
"""

import logging
import re
from pathlib import Path

from .engine import FfmpegEngine
from .errors import ConcatError
from .filter_graph import format_seconds

logger = logging.getLogger(__name__)

MANIFEST_NAME = "audiolist.txt"
AUDIO_NAME = "stitched_audio.wav"

_FILE_RE = re.compile(r"^file\s+'(.*)'$")
_DIRECTIVES = ("inpoint", "outpoint", "duration")


def _quote(path: str) -> str:
    return "'" + path.replace("'", "'\\''") + "'"


def write_concat_manifest(
    audio_paths: list[Path],
    manifest_path: Path,
    outpoints: list[float | None] | None = None,
) -> Path:
    """Write the concat list, one absolute path per entry, in the given order.

    Paths are made absolute because the demuxer resolves relative entries
    against the list file's directory, not the working directory.

    Args:
        audio_paths: Audio files in scene order.
        manifest_path: Where to write the list.
        outpoints: Optional per-file cut points in seconds (None = play to end).
    """
    if outpoints is not None and len(outpoints) != len(audio_paths):
        raise ValueError(
            f"Got {len(audio_paths)} audio files but {len(outpoints)} outpoints"
        )

    lines = []
    for i, p in enumerate(audio_paths):
        lines.append(f"file {_quote(str(Path(p).resolve()))}")
        if outpoints is not None and outpoints[i] is not None:
            lines.append(f"outpoint {format_seconds(outpoints[i])}")
    manifest_path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return manifest_path


def read_concat_manifest(manifest_path: Path) -> list[Path]:
    """Parse the file entries of a concat list, in order.

    Per-file directives (inpoint, outpoint, duration) are skipped.
    """
    paths = []
    for lineno, line in enumerate(manifest_path.read_text(encoding="utf-8").splitlines(), 1):
        line = line.strip()
        if not line or line.startswith("#") or line.split()[0] in _DIRECTIVES:
            continue
        match = _FILE_RE.match(line)
        if not match:
            raise ValueError(f"{manifest_path}:{lineno}: not a concat entry: {line!r}")
        paths.append(Path(match.group(1).replace("'\\''", "'")))
    return paths


def build_concat_command(manifest_path: Path, output_path: Path) -> list[str]:
    """ffmpeg arguments (without the binary) for the concat step."""
    return [
        "-f", "concat", "-safe", "0",
        "-i", str(manifest_path),
        "-c:a", "pcm_s16le",
        str(output_path),
    ]


async def concat_audio(
    engine: FfmpegEngine,
    audio_paths: list[Path],
    manifest_path: Path,
    output_path: Path,
    outpoints: list[float | None] | None = None,
) -> Path:
    """Concatenate audio files (in scene order) into one lossless WAV.

    Raises:
        ValueError: No audio files, or outpoints of the wrong length.
        ConcatError: ffmpeg failed.
    """
    if not audio_paths:
        raise ValueError("No audio files to concatenate")

    write_concat_manifest(audio_paths, manifest_path, outpoints)
    logger.info("Concatenating %d audio tracks", len(audio_paths))
    await engine.run(build_concat_command(manifest_path, output_path), error_cls=ConcatError)
    return output_path
