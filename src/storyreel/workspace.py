"""Scratch directory owned by a single compile call.

    absent -> created -> populated -> destroyed

Entering the context wipes any stale directory at the path and creates it
fresh. Leaving it removes the directory on every exit path. A failed
removal is logged and kept on `cleanup_error`; it never replaces the error
that is already propagating, and never fails a compile whose output exists.
"""

import logging
import shutil
from pathlib import Path

logger = logging.getLogger(__name__)


class TempWorkspace:
    def __init__(self, path: str | Path):
        self.path = Path(path)
        self.state = "absent"
        self.cleanup_error: OSError | None = None

    def create(self) -> Path:
        if self.path.exists():
            logger.info("Removing stale workspace %s", self.path)
            shutil.rmtree(self.path)
        self.path.mkdir(parents=True)
        self.state = "created"
        return self.path

    def path_for(self, name: str) -> Path:
        """Path of a file inside the workspace."""
        if self.state not in ("created", "populated"):
            raise RuntimeError(f"Workspace {self.path} is {self.state}")
        self.state = "populated"
        return self.path / name

    def destroy(self) -> None:
        try:
            shutil.rmtree(self.path)
        except FileNotFoundError:
            pass
        except OSError as e:
            self.cleanup_error = e
            logger.warning("Failed to remove workspace %s: %s", self.path, e)
        self.state = "destroyed"

    def __enter__(self) -> "TempWorkspace":
        self.create()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.destroy()
