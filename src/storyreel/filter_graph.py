"""Crossfade filter graph builder for the transition stitcher.

Chains N clips with xfade=fade. Clip i+1 starts fading in T seconds before
the running composite ends, so every junction shortens the timeline by T:

    offset_1   = d[0] - T
    cumulative = d[0] + d[1] - T
    offset_2   = cumulative - T
    ...
    total      = sum(d) - (n - 1) * T

Pure computation: no files, no subprocesses. The stitcher feeds the result
to ffmpeg; tests check it directly.
"""

from dataclasses import dataclass

from .errors import ConfigError


def format_seconds(value: float) -> str:
    """Seconds with millisecond precision, as written into filter graphs."""
    return f"{value:.3f}"


@dataclass(frozen=True)
class CrossfadeStep:
    left: str
    right: str
    duration: float
    offset: float
    output: str

    def expression(self) -> str:
        return (
            f"{self.left}{self.right}xfade=transition=fade"
            f":duration={format_seconds(self.duration)}"
            f":offset={format_seconds(self.offset)}{self.output}"
        )


@dataclass(frozen=True)
class CrossfadeGraph:
    """Result of build_crossfade_graph.

    For a single clip, `passthrough` is True: there is no filter text and
    the caller maps input 0 directly. ffmpeg rejects an empty
    -filter_complex, so it must never be emitted.
    """

    steps: tuple[CrossfadeStep, ...]
    output_label: str
    total_duration: float

    @property
    def passthrough(self) -> bool:
        return not self.steps

    @property
    def filter_complex(self) -> str | None:
        if self.passthrough:
            return None
        return ";".join(step.expression() for step in self.steps)

    @property
    def offsets(self) -> list[float]:
        return [step.offset for step in self.steps]


def build_crossfade_graph(durations: list[float], transition: float) -> CrossfadeGraph:
    """Build the xfade chain for clips of the given durations.

    Args:
        durations: Clip durations in seconds, in scene order.
        transition: Crossfade duration T in seconds.

    Returns:
        CrossfadeGraph with n-1 steps (pass-through for a single clip).

    Raises:
        ConfigError: Empty input, non-positive duration, or a transition
            that is not strictly shorter than both clips of some junction.
    """
    if not durations:
        raise ConfigError("Cannot build a filter graph for zero clips")
    for i, d in enumerate(durations):
        if d <= 0:
            raise ConfigError(f"Clip {i}: duration must be > 0, got {d!r}")
    if transition <= 0:
        raise ConfigError(f"Transition duration must be > 0, got {transition!r}")
    for i in range(len(durations) - 1):
        shortest = min(durations[i], durations[i + 1])
        if transition >= shortest:
            raise ConfigError(
                f"Transition {transition}s must be shorter than clips {i} and {i + 1} "
                f"({durations[i]}s, {durations[i + 1]}s)"
            )

    if len(durations) == 1:
        return CrossfadeGraph(steps=(), output_label="0:v", total_duration=durations[0])

    steps = []
    running = "[0:v]"
    cumulative = durations[0]
    for i in range(1, len(durations)):
        out = f"[v{i}]"
        steps.append(CrossfadeStep(
            left=running,
            right=f"[{i}:v]",
            duration=transition,
            offset=round(cumulative - transition, 3),
            output=out,
        ))
        cumulative += durations[i] - transition
        running = out

    return CrossfadeGraph(
        steps=tuple(steps),
        output_label=running,
        total_duration=cumulative,
    )
