"""Clip rendering — one still image becomes one zooming video clip.

The image is looped as a virtual video input, scaled and center-cropped to
the output resolution, then run through zoompan for a slow Ken Burns
zoom-in (1.0x growing by 0.001 per frame, capped at 1.5x). Output is
video-only and cut to exactly the scene's narration duration.

Caption burn-in is a separate, optional stage: when enabled, the scene's
dialogue is written to a one-cue SRT file and drawn near the bottom of the
frame for the whole clip.
"""

import logging
import math
from pathlib import Path

from PIL import Image, UnidentifiedImageError

from .common import escape_filter_path
from .engine import FfmpegEngine
from .errors import ClipRenderError
from .models import SceneAsset, VideoSettings
from .workspace import TempWorkspace

logger = logging.getLogger(__name__)

ZOOM_STEP = 0.001
ZOOM_MAX = 1.5

CAPTION_STYLE = (
    "Fontsize=24,PrimaryColour=&HFFFFFF&,BorderStyle=3,"
    "Outline=1,Shadow=1,Alignment=2,MarginV=25"
)


# ── Source checks ──────────────────────────────────────────────────

def check_image(path: str | Path) -> str | None:
    """Return a reason the image can't be used, or None if it is readable."""
    p = Path(path)
    if not p.is_file():
        return f"image not found: {p}"
    try:
        with Image.open(p) as img:
            img.verify()
    except (UnidentifiedImageError, OSError, SyntaxError) as e:
        return f"unreadable image {p}: {e}"
    return None


# ── Captions ───────────────────────────────────────────────────────

def _srt_timestamp(seconds: float) -> str:
    """Format seconds as an SRT timestamp, HH:MM:SS,mmm."""
    millis = int(round(seconds * 1000))
    hours, millis = divmod(millis, 3_600_000)
    minutes, millis = divmod(millis, 60_000)
    secs, millis = divmod(millis, 1000)
    return f"{hours:02d}:{minutes:02d}:{secs:02d},{millis:03d}"


def write_caption_file(scene: SceneAsset, path: Path) -> Path:
    """Write a single-cue SRT covering the whole clip."""
    text = scene.dialogue.replace('"', "''")
    path.write_text(
        f"1\n00:00:00,000 --> {_srt_timestamp(scene.duration_seconds)}\n{text}\n",
        encoding="utf-8",
    )
    return path


# ── Command construction ───────────────────────────────────────────

def build_clip_filter(
    scene: SceneAsset,
    settings: VideoSettings,
    caption_path: Path | None = None,
) -> tuple[str, str]:
    """Build the per-clip filter graph.

    Returns (filter_graph, output_label).
    """
    width, height = settings.resolution
    frames = math.ceil(settings.fps * scene.duration_seconds)

    parts = [
        f"[0:v]scale={width}:{height}:force_original_aspect_ratio=increase,"
        f"crop={width}:{height},setsar=1,"
        f"zoompan=z='min(zoom+{ZOOM_STEP},{ZOOM_MAX})'"
        f":d={frames}"
        f":x='iw/2-(iw/zoom/2)':y='ih/2-(ih/zoom/2)'"
        f":s={settings.size}:fps={settings.fps}[zoomed]"
    ]
    label = "zoomed"

    if caption_path is not None:
        parts.append(
            f"[zoomed]subtitles={escape_filter_path(caption_path)}"
            f":force_style='{CAPTION_STYLE}'[captioned]"
        )
        label = "captioned"

    return ";".join(parts), label


def build_clip_command(
    scene: SceneAsset,
    settings: VideoSettings,
    output_path: Path,
    caption_path: Path | None = None,
) -> list[str]:
    """ffmpeg arguments (without the binary) for one scene clip."""
    graph, label = build_clip_filter(scene, settings, caption_path)
    return [
        "-loop", "1",
        "-i", str(scene.image_file_path),
        "-filter_complex", graph,
        "-map", f"[{label}]",
        "-t", f"{scene.duration_seconds:.3f}",
        "-r", str(settings.fps),
        "-c:v", "libx264", "-crf", "20", "-pix_fmt", "yuv420p",
        "-an",
        str(output_path),
    ]


# ── Rendering ──────────────────────────────────────────────────────

async def render_clip(
    engine: FfmpegEngine,
    scene: SceneAsset,
    settings: VideoSettings,
    workspace: TempWorkspace,
) -> Path:
    """Render one scene to `clip_<scene_id>.mp4` inside the workspace.

    Raises:
        ClipRenderError: Non-positive duration, unreadable image, or
            ffmpeg failure. Always names the scene.
    """
    if scene.duration_seconds <= 0:
        raise ClipRenderError(
            f"duration must be > 0, got {scene.duration_seconds!r}",
            scene_id=scene.scene_id,
        )
    problem = check_image(scene.image_file_path)
    if problem:
        raise ClipRenderError(problem, scene_id=scene.scene_id)

    caption_path = None
    if settings.captions and scene.dialogue.strip():
        caption_path = write_caption_file(scene, workspace.path_for(f"clip_{scene.scene_id}.srt"))

    output_path = workspace.path_for(f"clip_{scene.scene_id}.mp4")
    logger.info("  CLIP   %s  %.2fs", scene.scene_id, scene.duration_seconds)
    await engine.run(
        build_clip_command(scene, settings, output_path, caption_path),
        error_cls=ClipRenderError,
        scene_id=scene.scene_id,
    )
    return output_path
