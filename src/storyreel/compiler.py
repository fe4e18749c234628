"""Compile pipeline — scene assets in, one narrated video out.

    validate -> workspace -> render clips -> stitch | concat -> mux -> teardown

Validation (scene files, durations, transition length) happens before any
ffmpeg process starts. Clip renders may run concurrently up to
settings.jobs, but downstream stages always receive paths in scene order.
Stitching and audio concatenation are independent and run together. Every
intermediate file lives in the workspace, which is removed on all exit
paths; the final file appears at `output_path` only after the mux succeeds.
"""

import asyncio
import logging
from pathlib import Path

from .audio import AUDIO_NAME, MANIFEST_NAME, concat_audio
from .clip import render_clip
from .engine import FfmpegEngine
from .errors import ConfigError
from .filter_graph import build_crossfade_graph
from .manifest import check_video_settings, validate_scenes
from .models import SceneAsset, VideoSettings
from .mux import mux_final
from .stitch import STITCHED_NAME, stitch_clips
from .workspace import TempWorkspace

logger = logging.getLogger(__name__)


def narration_outpoints(durations: list[float], transition: float) -> list[float | None]:
    """Cut points that shorten every narration but the last by the crossfade.

    Keeps each scene's narration aligned with the start of its crossfade
    and the whole track as long as the stitched video.
    """
    return [round(d - transition, 3) for d in durations[:-1]] + [None]


async def _render_all(
    engine: FfmpegEngine,
    scenes: list[SceneAsset],
    settings: VideoSettings,
    workspace: TempWorkspace,
) -> list[Path]:
    """Render every scene clip, at most settings.jobs at a time.

    Returns clip paths in scene order. If a render fails, renders that
    haven't started yet are skipped, running ones are awaited, and the
    first failure in scene order is raised.
    """
    semaphore = asyncio.Semaphore(settings.jobs)
    failed = asyncio.Event()

    async def _one(scene):
        async with semaphore:
            if failed.is_set():
                return None
            try:
                return await render_clip(engine, scene, settings, workspace)
            except Exception:
                failed.set()
                raise

    results = await asyncio.gather(*(_one(s) for s in scenes), return_exceptions=True)
    for result in results:
        if isinstance(result, BaseException):
            raise result
    return results


def _check_workspace_location(
    workspace_dir: Path,
    output_path: Path,
    scenes: list[SceneAsset],
) -> None:
    """The workspace is wiped on create and removed at the end, so nothing
    the compile reads or produces may live inside it.
    """
    root = workspace_dir.resolve()
    if output_path.resolve().is_relative_to(root):
        raise ConfigError(
            f"Output {output_path} is inside the workspace {workspace_dir}, "
            "which is removed after the compile"
        )
    for scene in scenes:
        for source in (scene.image_file_path, scene.audio_file_path):
            if Path(source).resolve().is_relative_to(root):
                raise ConfigError(
                    f"Scene {scene.scene_id}: {source} is inside the workspace "
                    f"{workspace_dir}, which is wiped before the compile"
                )


async def compile_video(
    scenes: list[SceneAsset],
    settings: VideoSettings,
    output_path: str | Path,
    *,
    workspace_dir: str | Path | None = None,
    workspace: TempWorkspace | None = None,
    engine: FfmpegEngine | None = None,
) -> Path:
    """Compile ordered scene assets into one video with crossfades and narration.

    Args:
        scenes: Scene assets in final video order.
        settings: Output/engine settings.
        output_path: Where the final video is written.
        workspace_dir: Scratch directory (default: `<output dir>/.<stem>.work`).
            Wiped at start, removed at the end.
        workspace: Caller-owned TempWorkspace, used instead of workspace_dir.
            Its `cleanup_error` stays readable after the compile returns.
        engine: ffmpeg runner; defaults to one built from settings.

    Returns:
        Path of the final video.

    Raises:
        SceneValidationError: Bad scene input (nothing was run).
        ConfigError: Invalid settings, output without an extension, a
            workspace that contains the output or a scene file, or a
            transition too long for some pair of scenes.
        ClipRenderError / StitchError / ConcatError / MuxError: ffmpeg failed.
    """
    output_path = Path(output_path)
    if workspace is not None and workspace_dir is not None:
        raise ValueError("Pass either workspace or workspace_dir, not both")
    check_video_settings(settings)
    if not output_path.suffix:
        raise ConfigError(f"Output path needs a container extension: {output_path}")
    validate_scenes(scenes)
    durations = [s.duration_seconds for s in scenes]
    expected = build_crossfade_graph(durations, settings.transition)

    if workspace is None:
        if workspace_dir is None:
            workspace_dir = output_path.parent / f".{output_path.stem}.work"
        workspace = TempWorkspace(workspace_dir)
    _check_workspace_location(workspace.path, output_path, scenes)
    if engine is None:
        engine = FfmpegEngine(settings.ffmpeg, timeout=settings.timeout)

    logger.info(
        "Compiling %d scenes -> %s (expected %.3fs)",
        len(scenes), output_path, expected.total_duration,
    )

    with workspace:
        clip_paths = await _render_all(engine, scenes, settings, workspace)
        logger.info("All %d scene clips rendered", len(clip_paths))

        # Stitch and concat share no files; run both, then raise the
        # first failure once neither subprocess is still running.
        results = await asyncio.gather(
            stitch_clips(
                engine, clip_paths, durations, settings,
                workspace.path_for(STITCHED_NAME),
            ),
            concat_audio(
                engine, [s.audio_file_path for s in scenes],
                workspace.path_for(MANIFEST_NAME),
                workspace.path_for(AUDIO_NAME),
                outpoints=narration_outpoints(durations, settings.transition),
            ),
            return_exceptions=True,
        )
        for result in results:
            if isinstance(result, BaseException):
                raise result
        (video_path, _), audio_path = results

        final = await mux_final(
            engine, video_path, audio_path,
            workspace.path_for(f"final{output_path.suffix}"),
            output_path,
        )

    logger.info("Video compilation complete: %s", final)
    return final


def compile_video_sync(
    scenes: list[SceneAsset],
    settings: VideoSettings,
    output_path: str | Path,
    **kwargs,
) -> Path:
    """Blocking wrapper around compile_video for CLI use."""
    return asyncio.run(compile_video(scenes, settings, output_path, **kwargs))
