import logging
import re
import tempfile
import time
from pathlib import Path
from typing import List, Optional, Union

from gifbatch.domain.errors import WorkspaceCreationError
from gifbatch.infrastructure.housekeeping import WORKSPACE_PREFIX, remove_tree

FRAME_PREFIX = "frame"
FRAME_EXT = ".png"
FRAME_PATTERN = f"{FRAME_PREFIX}%04d{FRAME_EXT}"

_UNSAFE_CHARS = re.compile(r"[^a-zA-Z0-9_-]")


def sanitize_job_id(job_id: str) -> str:
    return _UNSAFE_CHARS.sub("_", job_id) or "job"


def default_temp_root() -> Path:
    return Path(tempfile.gettempdir())


class TempWorkspace:
    """Private scratch directory holding the extracted frames of one job.

    Always created under local temporary storage, never next to the output,
    which may sit on a network share.
    """

    def __init__(self, path: Path):
        self.path = path
        self._destroyed = False
        self.logger = logging.getLogger(__name__)

    @classmethod
    def create(cls, job_id: str, root: Optional[Union[str, Path]] = None) -> "TempWorkspace":
        root_dir = Path(root) if root else default_temp_root()
        prefix = f"{WORKSPACE_PREFIX}{sanitize_job_id(job_id)}_{int(time.time() * 1000)}_"
        try:
            root_dir.mkdir(parents=True, exist_ok=True)
            path = Path(tempfile.mkdtemp(prefix=prefix, dir=str(root_dir)))
        except OSError as e:
            raise WorkspaceCreationError(root_dir / prefix, e) from e
        workspace = cls(path)
        workspace.logger.debug(f"WORKSPACE_CREATE: {path}")
        return workspace

    @property
    def frame_pattern(self) -> str:
        return str(self.path / FRAME_PATTERN)

    def list_frames(self) -> List[Path]:
        """Frame files in lexicographic order (which is also frame order)."""
        try:
            names = [
                entry.name for entry in self.path.iterdir()
                if entry.name.startswith(FRAME_PREFIX) and entry.name.endswith(FRAME_EXT)
            ]
        except OSError:
            return []
        return [self.path / name for name in sorted(names)]

    def frame_count(self) -> int:
        return len(self.list_frames())

    def destroy(self) -> None:
        """Removes the directory tree. Idempotent, never raises."""
        if not remove_tree(self.path):
            self.logger.warning(f"WORKSPACE_LEAK: could not fully remove {self.path}")
        elif not self._destroyed:
            self.logger.debug(f"WORKSPACE_DESTROY: {self.path}")
        self._destroyed = True

    def __enter__(self) -> "TempWorkspace":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.destroy()
        return False
