import logging
import os
from typing import Dict, Iterable, List, Optional

from gifbatch.domain.models import ConversionRequest
from gifbatch.infrastructure.file_scanner import FileScanner
from gifbatch.infrastructure.paths import normalize_path

OUTPUT_EXT = ".gif"

logger = logging.getLogger(__name__)


def expand_inputs(paths: Iterable[str], scanner: FileScanner) -> List[str]:
    """Turns dropped paths into video files: folders expand, other files are ignored."""
    files: List[str] = []
    for path in paths:
        stats = scanner.check_exists(path)
        if stats.is_directory:
            files.extend(scanner.list_video_files(path))
        elif stats.is_file and scanner.is_video(path):
            files.append(normalize_path(path))
        else:
            logger.warning(f"Ignoring input (not a video file or folder): {path}")
    return files


def build_plan(
    inputs: Iterable[str],
    fps: int,
    width: int,
    quality: int,
    output_folder: Optional[str] = None,
    output_subdir: str = "gifs",
    names: Optional[Dict[str, str]] = None,
) -> List[ConversionRequest]:
    """One request per distinct input, in input order.

    The GIF goes to `output_folder` when given, else to `<input dir>/<output_subdir>`,
    named after the input (or `names[input]`) with a .gif extension.
    """
    names = names or {}
    plan: List[ConversionRequest] = []
    seen = set()
    for raw in inputs:
        input_path = normalize_path(raw)
        if input_path in seen:
            continue
        seen.add(input_path)

        folder = normalize_path(output_folder) if output_folder else normalize_path(
            os.path.join(os.path.dirname(input_path), output_subdir)
        )
        stem = names.get(raw) or names.get(input_path) or os.path.splitext(os.path.basename(input_path))[0]
        plan.append(ConversionRequest(
            input_path=input_path,
            output_path=normalize_path(os.path.join(folder, stem + OUTPUT_EXT)),
            output_folder=folder,
            fps=fps,
            width=width,
            quality=quality,
        ))
    return plan
