"""Decides whether a planned conversion can be skipped because its GIF is already there."""

import os
from pathlib import Path
from typing import Union


def should_skip(output_path: Union[str, Path]) -> bool:
    """True iff something already exists at exactly `output_path`.

    Existence is the whole contract: no content hashing, no mtime checks.
    A dangling symlink counts as existing.
    """
    return os.path.lexists(output_path)
