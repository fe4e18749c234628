"""Tests for the compile pipeline orchestration, using a fake ffmpeg engine."""

import asyncio
import dataclasses
from pathlib import Path

import pytest

from storyreel.audio import read_concat_manifest
from storyreel.compiler import compile_video, narration_outpoints
from storyreel.errors import (
    ClipRenderError,
    ConcatError,
    ConfigError,
    MuxError,
    SceneValidationError,
    StitchError,
)
from storyreel.workspace import TempWorkspace

from conftest import FakeEngine, make_settings


@pytest.fixture
def track_workspaces(monkeypatch):
    """Record every TempWorkspace.destroy() call."""
    destroyed = []
    original = TempWorkspace.destroy

    def _destroy(self):
        destroyed.append(self.path)
        original(self)

    monkeypatch.setattr(TempWorkspace, "destroy", _destroy)
    return destroyed


class TestNarrationOutpoints:
    def test_all_but_last_shortened(self):
        assert narration_outpoints([3.0, 4.0, 5.0], 1.0) == [2.0, 3.0, None]

    def test_single_scene(self):
        assert narration_outpoints([3.0], 1.0) == [None]


class TestCompileVideo:
    @pytest.mark.asyncio
    async def test_happy_path(self, scenes, tmp_path, track_workspaces):
        engine = FakeEngine()
        output = tmp_path / "out" / "The_Hare.mp4"
        ws_dir = tmp_path / "ws"

        final = await compile_video(scenes, make_settings(), output, workspace_dir=ws_dir, engine=engine)

        assert final == output
        assert output.read_bytes() == b"fake media"
        assert not ws_dir.exists()
        assert track_workspaces == [ws_dir]
        phases = engine.phases()
        assert phases[:3] == ["render"] * 3
        assert sorted(phases[3:5]) == ["concat", "stitch"]
        assert phases[5] == "mux"

    @pytest.mark.asyncio
    async def test_default_workspace_next_to_output(self, scenes, tmp_path):
        engine = FakeEngine()
        output = tmp_path / "story.mp4"
        await compile_video(scenes, make_settings(), output, engine=engine)
        render_out = engine.calls[0][2][-1]
        assert render_out == str(tmp_path / ".story.work" / "clip_scene_001.mp4")
        assert not (tmp_path / ".story.work").exists()

    @pytest.mark.asyncio
    async def test_stitch_inputs_follow_scene_order(self, scenes, tmp_path):
        engine = FakeEngine()
        reordered = [scenes[2], scenes[0], scenes[1]]
        await compile_video(reordered, make_settings(), tmp_path / "o.mp4",
                            workspace_dir=tmp_path / "ws", engine=engine)

        stitch_args = next(args for phase, _, args in engine.calls if phase == "stitch")
        inputs = [stitch_args[i + 1] for i, a in enumerate(stitch_args) if a == "-i"]
        assert [p.rsplit("clip_", 1)[1] for p in inputs] == [
            "scene_003.mp4", "scene_001.mp4", "scene_002.mp4",
        ]

    @pytest.mark.asyncio
    async def test_audio_order_matches_video_order(self, scenes, tmp_path):
        engine = FakeEngine()
        reordered = [scenes[1], scenes[2], scenes[0]]
        await compile_video(reordered, make_settings(), tmp_path / "o.mp4",
                            workspace_dir=tmp_path / "ws", engine=engine)

        listed = tmp_path / "list.txt"
        listed.write_text(engine.concat_manifest)
        assert read_concat_manifest(listed) == [s.audio_file_path.resolve() for s in reordered]

    @pytest.mark.asyncio
    async def test_narration_trimmed_by_transition(self, scenes, tmp_path):
        engine = FakeEngine()
        await compile_video(scenes, make_settings(transition=0.5), tmp_path / "o.mp4",
                            workspace_dir=tmp_path / "ws", engine=engine)
        outpoints = [line for line in engine.concat_manifest.splitlines()
                     if line.startswith("outpoint")]
        assert outpoints == ["outpoint 2.500", "outpoint 3.500"]

    @pytest.mark.asyncio
    async def test_concurrent_renders_keep_order(self, scenes, tmp_path):
        # First scene finishes last; stitch order must not change.
        engine = FakeEngine(delays={"scene_001": 0.2, "scene_002": 0.1})
        await compile_video(scenes, make_settings(jobs=3), tmp_path / "o.mp4",
                            workspace_dir=tmp_path / "ws", engine=engine)

        stitch_args = next(args for phase, _, args in engine.calls if phase == "stitch")
        inputs = [stitch_args[i + 1] for i, a in enumerate(stitch_args) if a == "-i"]
        assert inputs == [str(tmp_path / "ws" / f"clip_scene_00{i}.mp4") for i in (1, 2, 3)]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("phase, error_cls", [
        ("render", ClipRenderError),
        ("stitch", StitchError),
        ("concat", ConcatError),
        ("mux", MuxError),
    ])
    async def test_phase_failure_cleans_up(self, scenes, tmp_path, track_workspaces, phase, error_cls):
        engine = FakeEngine(fail={phase})
        output = tmp_path / "out" / "story.mp4"
        ws_dir = tmp_path / "ws"

        with pytest.raises(error_cls):
            await compile_video(scenes, make_settings(), output, workspace_dir=ws_dir, engine=engine)

        assert track_workspaces == [ws_dir]
        assert not ws_dir.exists()
        assert not output.exists()

    @pytest.mark.asyncio
    async def test_render_failure_stops_pipeline(self, scenes, tmp_path):
        engine = FakeEngine(fail={"render"})
        with pytest.raises(ClipRenderError) as exc_info:
            await compile_video(scenes, make_settings(), tmp_path / "o.mp4",
                                workspace_dir=tmp_path / "ws", engine=engine)
        assert exc_info.value.scene_id == "scene_001"
        # Sequential renders: nothing after the first failure starts.
        assert engine.phases() == ["render"]

    @pytest.mark.asyncio
    async def test_stitch_failure_waits_for_concat(self, scenes, tmp_path):
        engine = FakeEngine(fail={"stitch"})
        with pytest.raises(StitchError):
            await compile_video(scenes, make_settings(), tmp_path / "o.mp4",
                                workspace_dir=tmp_path / "ws", engine=engine)
        assert "concat" in engine.phases()
        assert "mux" not in engine.phases()

    @pytest.mark.asyncio
    async def test_invalid_scenes_run_nothing(self, scenes, tmp_path, track_workspaces):
        engine = FakeEngine()
        broken = [dataclasses.replace(scenes[0], image_file_path=tmp_path / "gone.png")]
        with pytest.raises(SceneValidationError):
            await compile_video(broken, make_settings(), tmp_path / "o.mp4",
                                workspace_dir=tmp_path / "ws", engine=engine)
        assert engine.calls == []
        assert track_workspaces == []
        assert not (tmp_path / "ws").exists()

    @pytest.mark.asyncio
    async def test_empty_scene_list(self, tmp_path):
        with pytest.raises(SceneValidationError, match="No scenes"):
            await compile_video([], make_settings(), tmp_path / "o.mp4", engine=FakeEngine())

    @pytest.mark.asyncio
    async def test_transition_too_long_runs_nothing(self, scenes, tmp_path):
        engine = FakeEngine()
        with pytest.raises(ConfigError, match="Transition"):
            await compile_video(scenes, make_settings(transition=3.0), tmp_path / "o.mp4",
                                workspace_dir=tmp_path / "ws", engine=engine)
        assert engine.calls == []

    @pytest.mark.asyncio
    async def test_output_needs_extension(self, scenes, tmp_path):
        with pytest.raises(ConfigError, match="extension"):
            await compile_video(scenes, make_settings(), tmp_path / "story", engine=FakeEngine())

    @pytest.mark.asyncio
    async def test_single_scene_skips_crossfade(self, scenes, tmp_path):
        engine = FakeEngine()
        await compile_video(scenes[:1], make_settings(), tmp_path / "o.mp4",
                            workspace_dir=tmp_path / "ws", engine=engine)
        stitch_args = next(args for phase, _, args in engine.calls if phase == "stitch")
        assert "-filter_complex" not in stitch_args
        assert "outpoint" not in engine.concat_manifest

    @pytest.mark.asyncio
    async def test_cancellation_cleans_up(self, scenes, tmp_path, track_workspaces):
        engine = FakeEngine(delays={"scene_001": 5.0})
        ws_dir = tmp_path / "ws"
        task = asyncio.create_task(compile_video(
            scenes, make_settings(), tmp_path / "o.mp4", workspace_dir=ws_dir, engine=engine,
        ))
        await asyncio.sleep(0.1)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        assert track_workspaces == [ws_dir]
        assert not ws_dir.exists()

    @pytest.mark.asyncio
    async def test_stale_workspace_is_replaced(self, scenes, tmp_path):
        ws_dir = tmp_path / "ws"
        ws_dir.mkdir()
        (ws_dir / "clip_old.mp4").write_bytes(b"stale")
        seen = []

        class _Spy(FakeEngine):
            async def run(self, args, error_cls=None, scene_id=None):
                seen.append(sorted(p.name for p in ws_dir.iterdir()))
                await super().run(args, error_cls, scene_id)

        await compile_video(scenes, make_settings(), tmp_path / "o.mp4",
                            workspace_dir=ws_dir, engine=_Spy())
        assert "clip_old.mp4" not in seen[0]


class TestCompileVideoSettings:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("overrides, message", [
        ({"jobs": 0}, "jobs must be >= 1"),
        ({"fps": 0}, "fps must be a positive integer"),
        ({"transition": -1.0}, "transition must be > 0"),
        ({"timeout": 0}, "timeout must be > 0"),
        ({"resolution": (161, 120)}, "even"),
        ({"ffmpeg": "/nope/ffmpeg"}, "ffmpeg binary not found"),
    ])
    async def test_invalid_settings_run_nothing(self, scenes, tmp_path, overrides, message):
        engine = FakeEngine()
        with pytest.raises(ConfigError, match=message):
            await asyncio.wait_for(
                compile_video(scenes, make_settings(**overrides), tmp_path / "o.mp4",
                              workspace_dir=tmp_path / "ws", engine=engine),
                timeout=5,
            )
        assert engine.calls == []
        assert not (tmp_path / "ws").exists()

    @pytest.mark.asyncio
    async def test_missing_binary_without_engine_is_config_error(self, scenes, tmp_path):
        with pytest.raises(ConfigError, match="ffmpeg binary not found"):
            await compile_video(scenes, make_settings(ffmpeg="/nope/ffmpeg"), tmp_path / "o.mp4")
        assert not (tmp_path / ".o.work").exists()


class TestWorkspaceLocation:
    @pytest.mark.asyncio
    async def test_output_inside_workspace_rejected(self, scenes, tmp_path):
        out_dir = tmp_path / "out"
        engine = FakeEngine()
        with pytest.raises(ConfigError, match="inside the workspace"):
            await compile_video(scenes, make_settings(), out_dir / "story.mp4",
                                workspace_dir=out_dir, engine=engine)
        assert engine.calls == []

    @pytest.mark.asyncio
    async def test_scene_files_inside_workspace_rejected(self, scenes, tmp_path):
        assets_dir = scenes[0].image_file_path.parent
        engine = FakeEngine()
        with pytest.raises(ConfigError, match="scene_001"):
            await compile_video(scenes, make_settings(), tmp_path / "o.mp4",
                                workspace_dir=assets_dir, engine=engine)
        assert engine.calls == []
        assert all(s.image_file_path.exists() and s.audio_file_path.exists() for s in scenes)

    @pytest.mark.asyncio
    async def test_sibling_workspace_allowed(self, scenes, tmp_path):
        output = tmp_path / "out" / "story.mp4"
        final = await compile_video(scenes, make_settings(), output,
                                    workspace_dir=tmp_path / "out" / "scratch",
                                    engine=FakeEngine())
        assert final.exists()


class TestCallerWorkspace:
    @pytest.mark.asyncio
    async def test_cleanup_error_visible_after_success(self, scenes, tmp_path, monkeypatch):
        import shutil

        real_rmtree = shutil.rmtree

        def _rmtree(path, *args, **kwargs):
            if Path(path) == ws.path and ws.state != "absent":
                raise PermissionError("held open")
            real_rmtree(path, *args, **kwargs)

        ws = TempWorkspace(tmp_path / "ws")
        monkeypatch.setattr(shutil, "rmtree", _rmtree)
        final = await compile_video(scenes, make_settings(), tmp_path / "o.mp4",
                                    workspace=ws, engine=FakeEngine())

        assert final.exists()
        assert ws.state == "destroyed"
        assert isinstance(ws.cleanup_error, PermissionError)

    @pytest.mark.asyncio
    async def test_workspace_and_dir_are_exclusive(self, scenes, tmp_path):
        with pytest.raises(ValueError, match="not both"):
            await compile_video(scenes, make_settings(), tmp_path / "o.mp4",
                                workspace=TempWorkspace(tmp_path / "a"),
                                workspace_dir=tmp_path / "b", engine=FakeEngine())
