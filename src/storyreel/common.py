"""storyreel.common — shared helpers for the compile pipeline.

Contains: path variable resolution, resolution parsing, story title
derivation, ffmpeg binary lookup, filter-path escaping, and audio
duration probing.
"""

import os
import re
from pathlib import Path

import imageio_ffmpeg
from moviepy import AudioFileClip

from .errors import ConfigError


# ── Path utilities ─────────────────────────────────────────────────

def resolve_path_vars(text: str, paths: dict[str, str]) -> str:
    """Replace ${name} variables in a string using the paths dict."""
    def _replace(match):
        key = match.group(1)
        if key not in paths:
            raise ValueError(f"Unknown path variable: ${{{key}}}")
        return str(paths[key])
    return re.sub(r"\$\{(\w+)\}", _replace, text)


def story_title(title: str) -> str:
    """Filesystem-safe story title: every non-alphanumeric char becomes '_'.

    Directory and output file names are all derived from this one function,
    so the asset generator and the compiler agree on the same paths.
    """
    return re.sub(r"[^a-zA-Z0-9]", "_", title)


# ── Video settings ─────────────────────────────────────────────────

def parse_resolution(value) -> tuple[int, int]:
    """Parse '1920x1080' or [1920, 1080] into a (width, height) tuple."""
    if isinstance(value, str):
        parts = value.lower().split("x")
    elif isinstance(value, (list, tuple)):
        parts = list(value)
    else:
        raise ConfigError(f"Invalid resolution: {value!r}")

    if len(parts) != 2:
        raise ConfigError(f"Invalid resolution: {value!r} (expected WIDTHxHEIGHT)")
    try:
        width, height = int(parts[0]), int(parts[1])
    except (TypeError, ValueError):
        raise ConfigError(f"Invalid resolution: {value!r} (expected WIDTHxHEIGHT)") from None

    if width <= 0 or height <= 0:
        raise ConfigError(f"Invalid resolution: {value!r} (dimensions must be > 0)")
    # libx264 with yuv420p rejects odd dimensions.
    if width % 2 or height % 2:
        raise ConfigError(f"Invalid resolution: {value!r} (dimensions must be even)")
    return width, height


def resolve_ffmpeg(explicit: str | None = None) -> str:
    """Locate the ffmpeg binary.

    Lookup order: explicit path, FFMPEG_BINARY_PATH, then the binary
    bundled with imageio-ffmpeg. An explicit or env path must exist.
    """
    candidate = explicit or os.environ.get("FFMPEG_BINARY_PATH")
    if candidate:
        if not Path(candidate).is_file():
            raise ConfigError(f"ffmpeg binary not found: {candidate}")
        return str(candidate)
    try:
        return imageio_ffmpeg.get_ffmpeg_exe()
    except RuntimeError as e:
        raise ConfigError(f"No ffmpeg binary configured and none bundled: {e}") from e


# ── Filter graph text ──────────────────────────────────────────────

_OPTION_SPECIALS = "\\:'"
_GRAPH_SPECIALS = "\\'[],;"


def _backslash_escape(text: str, specials: str) -> str:
    return "".join("\\" + c if c in specials else c for c in text)


def escape_filter_path(path: str | Path) -> str:
    """Escape a file path for use as an unquoted option value in -filter_complex.

    ffmpeg unescapes filter text twice: the graph parser first (which also
    splits on brackets, commas and semicolons), then the filter's option
    parser (which splits on colons). The path is escaped for the option
    level, then that result again for the graph level.
    """
    return _backslash_escape(
        _backslash_escape(str(path), _OPTION_SPECIALS), _GRAPH_SPECIALS,
    )


# ── Media probing ──────────────────────────────────────────────────

def probe_audio_duration(path: str | Path) -> float:
    """Return the duration of an audio file in seconds."""
    with AudioFileClip(str(path)) as clip:
        return float(clip.duration)
