"""CLI for compiling a story video from a YAML scene manifest.

Three-phase ffmpeg workflow:
  1. Render one zooming clip per scene image.
  2. Stitch clips with crossfades while concatenating the narration.
  3. Mux video and narration into the output file.

Usage:
    python -m storyreel.compile_cli \
        --manifest scenes.yaml \
        --output story.mp4

    # Check the manifest and print the transition plan without rendering
    python -m storyreel.compile_cli --manifest scenes.yaml --validate
"""

import argparse
import dataclasses
import logging
import sys

from .compiler import compile_video_sync
from .errors import StoryreelError
from .filter_graph import build_crossfade_graph, format_seconds
from .manifest import load_compile_manifest, validate_scenes
from .models import SceneAsset, VideoSettings


def configure_logging(verbose: bool = False) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
    )


def add_settings_overrides(parser: argparse.ArgumentParser) -> None:
    """Flags shared by compile and recompile that override video settings."""
    parser.add_argument(
        "--ffmpeg", default=None,
        help="Path to the ffmpeg binary (default: manifest, FFMPEG_BINARY_PATH, bundled)",
    )
    parser.add_argument(
        "--captions", action="store_true",
        help="Burn each scene's dialogue into its clip",
    )
    parser.add_argument(
        "--jobs", type=int, default=None,
        help="Concurrent clip renders (default: manifest value or 1)",
    )
    parser.add_argument(
        "--workspace", default=None,
        help="Scratch directory (default: hidden dir next to the output)",
    )
    parser.add_argument(
        "--verbose", action="store_true",
        help="Log every ffmpeg command line",
    )


def apply_settings_overrides(settings: VideoSettings, parsed) -> VideoSettings:
    changes = {}
    if parsed.captions:
        changes["captions"] = True
    if parsed.jobs is not None:
        if parsed.jobs < 1:
            raise StoryreelError(f"--jobs must be >= 1, got {parsed.jobs}")
        changes["jobs"] = parsed.jobs
    return dataclasses.replace(settings, **changes) if changes else settings


def print_plan(scenes: list[SceneAsset], settings: VideoSettings) -> None:
    """Print scene order and crossfade offsets."""
    graph = build_crossfade_graph(
        [s.duration_seconds for s in scenes], settings.transition,
    )
    print(f"{len(scenes)} scenes, {settings.size} @ {settings.fps}fps, "
          f"crossfade {settings.transition}s")
    for i, scene in enumerate(scenes):
        print(f"  [{i}] {scene.scene_id}  {scene.duration_seconds:.2f}s  {scene.image_file_path}")
    for step in graph.steps:
        print(f"  xfade {step.left}{step.right} -> {step.output} at {format_seconds(step.offset)}s")
    print(f"Expected duration: {format_seconds(graph.total_duration)}s")


def _parse_args(args=None):
    parser = argparse.ArgumentParser(
        description="Compile narrated scenes into one video with crossfades.",
    )
    parser.add_argument(
        "--manifest", required=True,
        help="Path to YAML compile manifest",
    )
    parser.add_argument(
        "--output",
        help="Output video path (required unless --validate)",
    )
    parser.add_argument(
        "--validate", action="store_true",
        help="Validate manifest only: check scenes, print the plan, don't render",
    )
    add_settings_overrides(parser)
    parsed = parser.parse_args(args)
    if not parsed.validate and not parsed.output:
        parser.error("--output is required (unless using --validate)")
    return parsed


def main(args=None):
    parsed = _parse_args(args)
    configure_logging(parsed.verbose)

    try:
        config = load_compile_manifest(parsed.manifest, ffmpeg=parsed.ffmpeg)
        settings = apply_settings_overrides(config["video"], parsed)
        scenes = config["scenes"]
        validate_scenes(scenes)

        if parsed.validate:
            print_plan(scenes, settings)
            print("All scene files verified.")
            return

        final = compile_video_sync(
            scenes, settings, parsed.output, workspace_dir=parsed.workspace,
        )
    except (StoryreelError, FileNotFoundError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    print(f"\nDone: {final}")


if __name__ == "__main__":
    main()
