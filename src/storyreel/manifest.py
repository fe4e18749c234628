"""Compile manifest loader — video settings plus the ordered scene list.

Compile manifest schema:
  video:
    fps: 25
    resolution: "1920x1080"     # or [1920, 1080]
    transition: 1.0             # crossfade seconds between scenes
    ffmpeg: /usr/bin/ffmpeg     # optional; FFMPEG_BINARY_PATH, then bundled
    captions: false             # optional; burn dialogue into each clip
    jobs: 1                     # optional; concurrent clip renders
    timeout: null               # optional; per-ffmpeg-call seconds
  paths:
    story: "/data/assets/My_Story"
  scenes:
    - id: scene_001
      image: "${story}/images/scene_001_img_001_1.png"
      audio: "${story}/audio/scene_001_audio.wav"
      duration: 5.2             # optional; probed from the audio file
      dialogue: "Once upon a time..."

Scene order in the file is the order of the final video.
"""

import os
import re
from collections.abc import Mapping
from pathlib import Path

import yaml

from .clip import check_image
from .common import parse_resolution, probe_audio_duration, resolve_ffmpeg, resolve_path_vars
from .errors import ConfigError, SceneValidationError
from .models import SceneAsset, VideoSettings

REQUIRED_VIDEO_FIELDS = ("fps", "resolution", "transition")

# Scene ids become workspace file names.
SCENE_ID_RE = re.compile(r"^[\w.-]+$")

ENV_VARS = {
    "transition": "TRANSITION_DURATION_SECONDS",
    "fps": "VIDEO_FPS",
    "resolution": "OUTPUT_RESOLUTION",
    "ffmpeg": "FFMPEG_BINARY_PATH",
}


# ── Video settings ─────────────────────────────────────────────────

def load_video_settings(video: dict, ffmpeg: str | None = None) -> VideoSettings:
    """Validate a `video:` block and build VideoSettings.

    Args:
        video: Raw mapping from the manifest.
        ffmpeg: Binary path override (e.g. from --ffmpeg).

    Raises:
        ConfigError: Missing or invalid field.
    """
    if not isinstance(video, dict):
        raise ConfigError("Manifest: 'video' must be a mapping")
    for field in REQUIRED_VIDEO_FIELDS:
        if video.get(field) is None:
            raise ConfigError(f"Manifest: video.{field} is required")

    fps = video["fps"]
    if isinstance(fps, bool) or not isinstance(fps, int) or fps <= 0:
        raise ConfigError(f"Manifest: video.fps must be a positive integer, got {fps!r}")

    transition = video["transition"]
    if isinstance(transition, bool) or not isinstance(transition, (int, float)) or transition <= 0:
        raise ConfigError(f"Manifest: video.transition must be > 0, got {transition!r}")

    jobs = video.get("jobs", 1)
    if isinstance(jobs, bool) or not isinstance(jobs, int) or jobs < 1:
        raise ConfigError(f"Manifest: video.jobs must be >= 1, got {jobs!r}")

    timeout = video.get("timeout")
    if timeout is not None and (not isinstance(timeout, (int, float)) or timeout <= 0):
        raise ConfigError(f"Manifest: video.timeout must be > 0 or null, got {timeout!r}")

    return VideoSettings(
        fps=fps,
        resolution=parse_resolution(video["resolution"]),
        transition=float(transition),
        ffmpeg=resolve_ffmpeg(ffmpeg or video.get("ffmpeg")),
        captions=bool(video.get("captions", False)),
        jobs=jobs,
        timeout=float(timeout) if timeout is not None else None,
    )


def _positive_number(value) -> bool:
    return not isinstance(value, bool) and isinstance(value, (int, float)) and value > 0


def check_video_settings(settings: VideoSettings) -> None:
    """Re-check settings built in code rather than loaded from a manifest.

    Raises:
        ConfigError: Any invalid field, or an ffmpeg path that isn't a file.
    """
    problems = []
    if isinstance(settings.fps, bool) or not isinstance(settings.fps, int) or settings.fps <= 0:
        problems.append(f"fps must be a positive integer, got {settings.fps!r}")
    if not _positive_number(settings.transition):
        problems.append(f"transition must be > 0, got {settings.transition!r}")
    if isinstance(settings.jobs, bool) or not isinstance(settings.jobs, int) or settings.jobs < 1:
        problems.append(f"jobs must be >= 1, got {settings.jobs!r}")
    if settings.timeout is not None and not _positive_number(settings.timeout):
        problems.append(f"timeout must be > 0 or None, got {settings.timeout!r}")
    try:
        parse_resolution(settings.resolution)
    except ConfigError as e:
        problems.append(str(e))
    if not settings.ffmpeg or not Path(settings.ffmpeg).is_file():
        problems.append(f"ffmpeg binary not found: {settings.ffmpeg!r}")

    if problems:
        raise ConfigError("Invalid video settings: " + "; ".join(problems))


def settings_from_env(environ: Mapping[str, str] | None = None) -> VideoSettings:
    """Build VideoSettings from environment variables.

    TRANSITION_DURATION_SECONDS, VIDEO_FPS, OUTPUT_RESOLUTION and
    FFMPEG_BINARY_PATH are all required.

    Raises:
        ConfigError: A variable is unset or malformed.
    """
    environ = os.environ if environ is None else environ
    missing = [name for name in ENV_VARS.values() if not environ.get(name)]
    if missing:
        raise ConfigError(f"Environment variable(s) not set: {', '.join(missing)}")

    try:
        fps = int(environ[ENV_VARS["fps"]])
        transition = float(environ[ENV_VARS["transition"]])
    except ValueError as e:
        raise ConfigError(f"Invalid numeric environment setting: {e}") from e

    return load_video_settings(
        {
            "fps": fps,
            "transition": transition,
            "resolution": environ[ENV_VARS["resolution"]],
            "ffmpeg": environ[ENV_VARS["ffmpeg"]],
        }
    )


# ── Manifest loading ──────────────────────────────────────────────

def _load_scene(i: int, raw: dict, paths: dict) -> SceneAsset:
    if not isinstance(raw, dict):
        raise ConfigError(f"Scene {i}: expected a mapping, got {raw!r}")
    for field in ("id", "image", "audio"):
        if raw.get(field) is None:
            raise ConfigError(f"Scene {i}: missing required field '{field}'")

    scene_id = str(raw["id"])
    image = Path(resolve_path_vars(str(raw["image"]), paths))
    audio = Path(resolve_path_vars(str(raw["audio"]), paths))

    duration = raw.get("duration")
    if duration is None:
        if not audio.is_file():
            raise SceneValidationError(
                f"Scene {i} ({scene_id}): no duration given and audio not found: {audio}"
            )
        duration = probe_audio_duration(audio)
    elif isinstance(duration, bool) or not isinstance(duration, (int, float)):
        raise ConfigError(f"Scene {i} ({scene_id}): duration must be a number, got {duration!r}")

    return SceneAsset(
        scene_id=scene_id,
        dialogue=str(raw.get("dialogue") or ""),
        image_file_path=image,
        audio_file_path=audio,
        duration_seconds=float(duration),
    )


def load_compile_manifest(manifest_path: str | Path, ffmpeg: str | None = None) -> dict:
    """Load and normalize a compile manifest.

    Processing pipeline:
      1. Parse YAML.
      2. Validate the video block into VideoSettings.
      3. Resolve ${path} variables in scene image/audio paths.
      4. Fill in missing durations by probing the audio.

    Scene files are not checked here; call validate_scenes() for that.

    Returns:
        {"video": VideoSettings, "scenes": [SceneAsset, ...]}

    Raises:
        ConfigError: Missing/invalid fields.
    """
    with open(manifest_path) as f:
        raw = yaml.safe_load(f)

    if not isinstance(raw, dict):
        raise ConfigError(f"Manifest {manifest_path}: expected a mapping at top level")
    if "video" not in raw:
        raise ConfigError("Manifest: missing required 'video' section")

    settings = load_video_settings(raw["video"], ffmpeg=ffmpeg)
    paths = raw.get("paths") or {}
    scenes = [_load_scene(i, s, paths) for i, s in enumerate(raw.get("scenes") or [])]
    return {"video": settings, "scenes": scenes}


# ── Scene validation ──────────────────────────────────────────────

def validate_scenes(scenes: list[SceneAsset]) -> None:
    """Check every scene before any rendering starts.

    Collects all problems (duplicate or unsafe ids, non-positive durations,
    missing/unreadable images, missing audio) and reports them together.

    Raises:
        SceneValidationError: Lists every problem found.
    """
    if not scenes:
        raise SceneValidationError("No scenes to compile")

    problems = []
    seen = set()
    for i, scene in enumerate(scenes):
        label = f"Scene {i} ({scene.scene_id})"
        if not SCENE_ID_RE.match(scene.scene_id):
            problems.append(f"{label}: id may only contain letters, digits, '_', '-', '.'")
        if scene.scene_id in seen:
            problems.append(f"{label}: duplicate scene id")
        seen.add(scene.scene_id)

        if not scene.duration_seconds > 0:
            problems.append(f"{label}: duration must be > 0, got {scene.duration_seconds!r}")

        image_problem = check_image(scene.image_file_path)
        if image_problem:
            problems.append(f"{label}: {image_problem}")

        if not Path(scene.audio_file_path).is_file():
            problems.append(f"{label}: audio not found: {scene.audio_file_path}")

    if problems:
        msg = f"{len(problems)} scene problem(s):\n"
        for p in problems:
            msg += f"  - {p}\n"
        raise SceneValidationError(msg)
