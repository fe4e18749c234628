"""ffmpeg subprocess execution.

Every pipeline stage goes through FfmpegEngine.run(), which awaits the
subprocess without blocking the event loop and converts a non-zero exit
into the caller's phase error. No retries: a failed invocation is fatal.
"""

import asyncio
import logging
import shlex

from .errors import PhaseError

logger = logging.getLogger(__name__)

# Lines of ffmpeg stderr kept in the raised error.
STDERR_TAIL_LINES = 20


def _stderr_tail(stderr: bytes | None) -> str:
    if not stderr:
        return ""
    lines = stderr.decode(errors="replace").strip().splitlines()
    return "\n".join(lines[-STDERR_TAIL_LINES:])


class FfmpegEngine:
    """Runs ffmpeg invocations for one compile.

    Args:
        binary: Path to the ffmpeg executable.
        timeout: Optional per-invocation timeout in seconds.
    """

    def __init__(self, binary: str, timeout: float | None = None):
        self.binary = binary
        self.timeout = timeout

    async def run(
        self,
        args: list[str],
        error_cls: type[PhaseError] = PhaseError,
        scene_id: str | None = None,
    ) -> None:
        """Run `ffmpeg -y -hide_banner <args>` and wait for it to exit.

        Raises:
            error_cls: Binary missing, non-zero exit, or timeout.
        """
        cmd = [self.binary, "-y", "-hide_banner", "-loglevel", "error", *args]
        logger.debug("ffmpeg: %s", shlex.join(cmd))

        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise error_cls(f"could not start ffmpeg: {e}", scene_id=scene_id) from e

        try:
            _, stderr = await asyncio.wait_for(process.communicate(), timeout=self.timeout)
        except asyncio.TimeoutError:
            await _kill(process)
            raise error_cls(
                f"ffmpeg timed out after {self.timeout}s", scene_id=scene_id,
            ) from None
        except BaseException:
            # Cancelled or interrupted: don't leave ffmpeg writing into a
            # workspace that is about to be removed.
            await _kill(process)
            raise

        if process.returncode != 0:
            raise error_cls(
                f"ffmpeg exited with status {process.returncode}",
                scene_id=scene_id,
                returncode=process.returncode,
                stderr=_stderr_tail(stderr),
            )


async def _kill(process: asyncio.subprocess.Process) -> None:
    if process.returncode is None:
        process.kill()
        await process.wait()
