"""Final mux — silent stitched video + concatenated narration.

Maps exactly one video stream (0:v:0) and one audio stream (1:a:0). The
video is stream-copied, the audio stays lossless. The file is written inside
the workspace and moved to the requested path only after ffmpeg succeeds,
so a failed mux never leaves a partial file in the output directory.
"""

import logging
import shutil
from pathlib import Path

from .engine import FfmpegEngine
from .errors import MuxError

logger = logging.getLogger(__name__)

# Containers that can hold raw PCM. MP4 can't, so it gets ALAC instead.
PCM_CONTAINERS = {".mov", ".mkv", ".avi"}


def lossless_audio_codec(output_path: str | Path) -> str:
    """Pick a lossless audio codec the output container accepts."""
    if Path(output_path).suffix.lower() in PCM_CONTAINERS:
        return "pcm_s16le"
    return "alac"


def build_mux_command(video_path: Path, audio_path: Path, output_path: Path) -> list[str]:
    """ffmpeg arguments (without the binary) for the final mux."""
    return [
        "-i", str(video_path),
        "-i", str(audio_path),
        "-map", "0:v:0",
        "-map", "1:a:0",
        "-c:v", "copy",
        "-c:a", lossless_audio_codec(output_path),
        str(output_path),
    ]


async def mux_final(
    engine: FfmpegEngine,
    video_path: Path,
    audio_path: Path,
    staging_path: Path,
    output_path: Path,
) -> Path:
    """Mux into `staging_path`, then move the result to `output_path`.

    Raises:
        MuxError: ffmpeg failed or the result could not be moved.
    """
    logger.info("Muxing final video -> %s", output_path)
    await engine.run(build_mux_command(video_path, audio_path, staging_path), error_cls=MuxError)

    output_path.parent.mkdir(parents=True, exist_ok=True)
    try:
        shutil.move(str(staging_path), str(output_path))
    except OSError as e:
        raise MuxError(f"could not move muxed file to {output_path}: {e}") from e
    return output_path
