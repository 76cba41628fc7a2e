import logging
import os
import stat
from typing import Iterable, List
from gifbatch.config.models import DEFAULT_EXTENSIONS
from gifbatch.domain.models import FileStats
from gifbatch.infrastructure.paths import normalize_path

class FileScanner:
    """Lists video files in a folder (non-recursive) and probes dropped paths."""

    def __init__(self, extensions: Iterable[str] = DEFAULT_EXTENSIONS):
        self.extensions = [(ext if ext.startswith(".") else f".{ext}").lower() for ext in extensions]
        self.logger = logging.getLogger(__name__)

    def is_video(self, path: str) -> bool:
        return os.path.splitext(path)[1].lower() in self.extensions

    def check_exists(self, path: str) -> FileStats:
        """Folder vs. file probe; any error reports neither."""
        try:
            st = os.stat(normalize_path(path))
        except (OSError, TypeError, ValueError) as e:
            self.logger.debug(f"Error getting file stats for {path}: {e}")
            return FileStats(is_directory=False, is_file=False)
        return FileStats(
            is_directory=stat.S_ISDIR(st.st_mode),
            is_file=stat.S_ISREG(st.st_mode),
        )

    def list_video_files(self, folder: str) -> List[str]:
        """Video files directly inside `folder`, sorted; an unreadable folder yields []."""
        try:
            folder = normalize_path(folder)
            names = os.listdir(folder)
        except (OSError, TypeError, ValueError) as e:
            self.logger.warning(f"Error reading folder {folder}: {e}")
            return []

        files = []
        for name in sorted(names):
            if not self.is_video(name):
                continue
            full_path = normalize_path(os.path.join(folder, name))
            # Skip directories named like videos (e.g. "clip.mp4/")
            if os.path.isdir(full_path):
                continue
            files.append(full_path)
        return files
