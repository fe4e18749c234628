"""CLI for rebuilding the video of an existing story assets directory.

Reads json/storyBlueprint.json and json/generatedAssets.json, writes
video/<Story_Title>.mp4 and records it in generatedAssets.json.

Video settings come from the `video:` block of --settings, or from the
environment (TRANSITION_DURATION_SECONDS, VIDEO_FPS, OUTPUT_RESOLUTION,
FFMPEG_BINARY_PATH) when no settings file is given.

Usage:
    storyreel recompile assets/The_Hare_and_The_Tortoise
    storyreel recompile assets/The_Hare_and_The_Tortoise --settings video.yaml
"""

import argparse
import asyncio
import os
import sys

import yaml

from .assets import recompile_story
from .compile_cli import add_settings_overrides, apply_settings_overrides, configure_logging
from .errors import ConfigError, StoryreelError
from .manifest import load_video_settings, settings_from_env


def _load_settings(parsed):
    if parsed.settings is None:
        environ = dict(os.environ)
        if parsed.ffmpeg:
            environ["FFMPEG_BINARY_PATH"] = parsed.ffmpeg
        return settings_from_env(environ)

    with open(parsed.settings) as f:
        raw = yaml.safe_load(f) or {}
    if "video" not in raw:
        raise ConfigError(f"{parsed.settings}: missing required 'video' section")
    return load_video_settings(raw["video"], ffmpeg=parsed.ffmpeg)


def _parse_args(args=None):
    parser = argparse.ArgumentParser(
        description="Rebuild the final video of a story assets directory.",
    )
    parser.add_argument(
        "assets_dir",
        help="Story assets directory (contains json/, images/, audio/)",
    )
    parser.add_argument(
        "--settings", default=None,
        help="YAML file with a 'video:' block (default: environment variables)",
    )
    add_settings_overrides(parser)
    return parser.parse_args(args)


def main(args=None):
    parsed = _parse_args(args)
    configure_logging(parsed.verbose)

    try:
        settings = apply_settings_overrides(_load_settings(parsed), parsed)
        assets = asyncio.run(
            recompile_story(parsed.assets_dir, settings, workspace_dir=parsed.workspace)
        )
    except (StoryreelError, FileNotFoundError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    print(f"\nDone: {assets.video_file_path}")


if __name__ == "__main__":
    main()
