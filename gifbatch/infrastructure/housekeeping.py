import logging
import os
import shutil
import time
from pathlib import Path
from typing import Union

WORKSPACE_PREFIX = "gifbatch_"

logger = logging.getLogger(__name__)


def remove_tree(path: Union[str, Path]) -> bool:
    """Recursively removes a directory tree. Never raises.

    Returns True when nothing is left at `path` afterwards (including when
    there was nothing to begin with).
    """
    target = Path(path)
    try:
        if not target.exists() and not target.is_symlink():
            return True
        if target.is_dir() and not target.is_symlink():
            shutil.rmtree(target)
        else:
            target.unlink()
    except OSError as e:
        logger.warning(f"Cleanup error removing {target}: {e}")
        # Remove whatever can still be removed
        shutil.rmtree(target, ignore_errors=True)
    try:
        return not target.exists()
    except OSError:
        return False


class HousekeepingService:
    """Service for cleaning up scratch directories left behind by earlier runs."""

    def cleanup_stale_workspaces(self, root: Path, max_age_s: float = 24 * 3600) -> int:
        """Removes gifbatch_* directories in `root` older than `max_age_s`."""
        removed = 0
        now = time.time()
        try:
            entries = list(os.scandir(root))
        except OSError:
            return 0
        for entry in entries:
            if not entry.name.startswith(WORKSPACE_PREFIX):
                continue
            try:
                if not entry.is_dir(follow_symlinks=False):
                    continue
                if now - entry.stat(follow_symlinks=False).st_mtime < max_age_s:
                    continue
            except OSError:
                continue
            if remove_tree(entry.path):
                removed += 1
                logger.info(f"Removed stale workspace: {entry.path}")
        return removed
