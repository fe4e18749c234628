"""Transition stitching — chain all scene clips with crossfades.

One ffmpeg invocation: every clip is a separate ordered input, the xfade
chain from filter_graph joins them, and the terminal label is mapped to a
silent intermediate video. The encode favours speed (veryfast, crf 23)
because the file only lives inside the workspace; the final mux copies
this stream unchanged.
"""

import logging
from pathlib import Path

from .engine import FfmpegEngine
from .errors import StitchError
from .filter_graph import CrossfadeGraph, build_crossfade_graph
from .models import VideoSettings

logger = logging.getLogger(__name__)

STITCHED_NAME = "stitched_silent.mp4"


def build_stitch_command(
    clip_paths: list[Path],
    graph: CrossfadeGraph,
    settings: VideoSettings,
    output_path: Path,
) -> list[str]:
    """ffmpeg arguments (without the binary) for the stitch step."""
    inputs = []
    for p in clip_paths:
        inputs.extend(["-i", str(p)])

    if graph.passthrough:
        # Single clip: map the input directly, no filter graph at all.
        routing = ["-map", "0:v:0"]
    else:
        routing = ["-filter_complex", graph.filter_complex, "-map", graph.output_label]

    return [
        *inputs,
        *routing,
        "-c:v", "libx264", "-preset", "veryfast", "-crf", "23",
        "-pix_fmt", "yuv420p",
        "-r", str(settings.fps),
        "-an",
        str(output_path),
    ]


async def stitch_clips(
    engine: FfmpegEngine,
    clip_paths: list[Path],
    durations: list[float],
    settings: VideoSettings,
    output_path: Path,
) -> tuple[Path, CrossfadeGraph]:
    """Stitch clips (in scene order) into one silent video.

    Returns:
        (output_path, graph) — the graph carries the expected runtime.

    Raises:
        ValueError: clip_paths and durations differ in length.
        ConfigError: Transition too long for some junction.
        StitchError: ffmpeg failed.
    """
    if len(clip_paths) != len(durations):
        raise ValueError(
            f"Got {len(clip_paths)} clips but {len(durations)} durations"
        )
    graph = build_crossfade_graph(durations, settings.transition)

    logger.info(
        "Stitching %d clips (%d crossfades, ~%.3fs)",
        len(clip_paths), len(graph.steps), graph.total_duration,
    )
    await engine.run(
        build_stitch_command(clip_paths, graph, settings, output_path),
        error_cls=StitchError,
    )
    return output_path, graph
