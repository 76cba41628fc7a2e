"""Argument vectors for the two external encoders.

Stage 1 (ffmpeg) decodes the video into numbered PNG frames at the target
frame rate and width. Stage 2 (gifski) encodes the ordered frames into a GIF.
"""

import logging
import subprocess
from pathlib import Path
from typing import List, Optional, Sequence, Union

from gifbatch.infrastructure.paths import absolute_path

PathLike = Union[str, Path]

EXTRACT_STAGE = "extract"
ENCODE_STAGE = "encode"

logger = logging.getLogger(__name__)


def build_extract_args(input_path: PathLike, fps: int, width: int, frame_pattern: PathLike) -> List[str]:
    """ffmpeg arguments: scale to `width` keeping aspect, lanczos resampling."""
    return [
        "-nostdin",
        "-i", absolute_path(input_path),
        "-vf", f"fps={fps},scale={width}:-1:flags=lanczos",
        "-y",  # Overwrite frames from a previous attempt
        str(frame_pattern),
    ]


def build_encode_args(fps: int, quality: int, output_path: PathLike, frames: Sequence[PathLike]) -> List[str]:
    """gifski arguments; frames must already be in playback order."""
    return [
        "--fps", str(fps),
        "--quality", str(quality),
        "-o", str(output_path),
        *[str(frame) for frame in frames],
    ]


def probe_version(binary: PathLike, timeout_s: float = 5.0) -> Optional[str]:
    """First line of the binary's version banner, or None if it does not run."""
    for flag in ("-version", "--version"):
        try:
            result = subprocess.run(
                [str(binary), flag],
                capture_output=True,
                text=True,
                timeout=timeout_s,
            )
        except subprocess.TimeoutExpired:
            logger.warning(f"Version probe timed out: {binary} {flag}")
            return None
        except OSError as e:
            logger.warning(f"Could not run {binary}: {e}")
            return None
        if result.returncode == 0:
            output = (result.stdout or result.stderr).strip()
            if output:
                return output.splitlines()[0]
    return None
