"""Error taxonomy for story video compilation.

Configuration and input problems subclass ValueError so callers that only
care about "bad input" can catch that. Engine failures carry the phase that
failed (render, stitch, concat, mux) and, for clip renders, the scene id.
"""


class StoryreelError(Exception):
    """Base class for every error raised by storyreel."""


class ConfigError(StoryreelError, ValueError):
    """A required setting is missing or invalid."""


class SceneValidationError(StoryreelError, ValueError):
    """Scene assets failed validation before any subprocess ran."""


class PhaseError(StoryreelError, RuntimeError):
    """An ffmpeg invocation failed during one compile phase."""

    phase = "engine"

    def __init__(
        self,
        reason: str,
        scene_id: str | None = None,
        returncode: int | None = None,
        stderr: str = "",
    ):
        self.reason = reason
        self.scene_id = scene_id
        self.returncode = returncode
        self.stderr = stderr
        super().__init__(self._format())

    def _format(self) -> str:
        where = f"{self.phase} phase"
        if self.scene_id is not None:
            where += f" (scene {self.scene_id})"
        msg = f"{where} failed: {self.reason}"
        if self.stderr:
            msg += f"\n{self.stderr}"
        return msg


class ClipRenderError(PhaseError):
    phase = "render"


class StitchError(PhaseError):
    phase = "stitch"


class ConcatError(PhaseError):
    phase = "concat"


class MuxError(PhaseError):
    phase = "mux"
