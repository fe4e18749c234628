"""Story asset directories — recompiling a story from saved assets.

Layout written by the asset generator:

    <assets_dir>/
      json/storyBlueprint.json      # screenplay.title names the video
      json/generatedAssets.json     # scene_id -> asset, in scene order
      images/ audio/                # referenced by the assets JSON
      video/<Story_Title>.mp4       # written here

Recompiling re-runs only the video stage, then records the final path as
videoFilePath in generatedAssets.json.
"""

import json
import logging
from pathlib import Path

from .common import story_title
from .compiler import compile_video
from .models import GeneratedAssets, VideoSettings

logger = logging.getLogger(__name__)

BLUEPRINT_FILE = Path("json") / "storyBlueprint.json"
ASSETS_FILE = Path("json") / "generatedAssets.json"
VIDEO_DIR = "video"


def load_blueprint_title(assets_dir: str | Path) -> str:
    """Return the sanitized screenplay title from storyBlueprint.json.

    Raises:
        FileNotFoundError: No blueprint in the assets directory.
        ValueError: Blueprint has no screenplay.title.
    """
    path = Path(assets_dir) / BLUEPRINT_FILE
    if not path.is_file():
        raise FileNotFoundError(
            f"No story blueprint found at {path}. Generate the blueprint first."
        )
    with open(path, encoding="utf-8") as f:
        blueprint = json.load(f)
    screenplay = blueprint.get("screenplay") if isinstance(blueprint, dict) else None
    title = screenplay.get("title") if isinstance(screenplay, dict) else None
    if not isinstance(title, str) or not title:
        raise ValueError(f"{path}: missing screenplay.title")
    return story_title(title)


def load_generated_assets(assets_dir: str | Path) -> GeneratedAssets:
    """Load generatedAssets.json, preserving scene order.

    Raises:
        FileNotFoundError: No generated assets in the directory.
    """
    path = Path(assets_dir) / ASSETS_FILE
    if not path.is_file():
        raise FileNotFoundError(
            f"No generated assets found at {path}. Generate the scene assets first."
        )
    with open(path, encoding="utf-8") as f:
        return GeneratedAssets.from_json(json.load(f))


def save_generated_assets(assets_dir: str | Path, assets: GeneratedAssets) -> Path:
    path = Path(assets_dir) / ASSETS_FILE
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(assets.to_json(), f, indent=2)
    return path


def video_output_path(assets_dir: str | Path, title: str, suffix: str = ".mp4") -> Path:
    return Path(assets_dir) / VIDEO_DIR / f"{title}{suffix}"


async def recompile_story(
    assets_dir: str | Path,
    settings: VideoSettings,
    **kwargs,
) -> GeneratedAssets:
    """Rebuild the final video for a story assets directory.

    Extra keyword arguments are passed to compile_video.

    Returns:
        The loaded assets with video_file_path set (also saved to disk).
    """
    title = load_blueprint_title(assets_dir)
    assets = load_generated_assets(assets_dir)
    output = video_output_path(assets_dir, title)

    logger.info("Recompiling '%s' (%d scenes)", title, len(assets))
    assets.video_file_path = await compile_video(assets.scenes(), settings, output, **kwargs)
    save_generated_assets(assets_dir, assets)
    return assets
