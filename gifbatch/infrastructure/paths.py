"""Encoder binary lookup and path normalization.

Bundled encoders live in ``bin/<platform-arch>/`` next to the package in a
source checkout, inside the bundle directory of a frozen (PyInstaller) build,
or under an explicitly configured ``bin_dir``.
"""

import logging
import ntpath
import os
import platform
import subprocess
import sys
from pathlib import Path
from typing import Dict, Optional, Set, Union

from gifbatch.domain.errors import BinaryNotFoundError

UNC_PREFIX = "\\\\"
QUARANTINE_ATTR = "com.apple.quarantine"

logger = logging.getLogger(__name__)


def normalize_path(path: Union[str, Path, None]) -> Union[str, None]:
    """Canonicalizes separators and ``.``/``..`` segments.

    UNC paths keep their ``\\\\server\\share`` prefix whatever the host
    platform; POSIX keeps a leading ``//`` as-is. Applying it twice gives
    the same result as applying it once.
    """
    if not path:
        return path
    text = os.fspath(path)
    if text.startswith(UNC_PREFIX):
        drive, rest = ntpath.splitdrive(text)
        if not rest:
            return drive
        return drive + ntpath.normpath(rest)
    return os.path.normpath(text)


def absolute_path(path: Union[str, Path]) -> str:
    """Normalized absolute form; UNC paths are already absolute."""
    text = normalize_path(path)
    if text.startswith(UNC_PREFIX):
        return text
    return os.path.abspath(text)


def _arch_label(machine: str) -> str:
    machine = (machine or "").lower()
    if machine in ("arm64", "aarch64", "armv8", "armv8l"):
        return "arm64"
    return "x64"


def platform_folder(platform_name: str, machine: str) -> str:
    """Maps (sys.platform, machine) to the bin/ subfolder name."""
    arch = _arch_label(machine)
    if platform_name == "darwin":
        # Intel and Rosetta both use the x64 build
        return "mac-arm64" if arch == "arm64" else "mac-x64"
    if platform_name == "win32":
        return "win-x64"
    if platform_name.startswith("linux"):
        return f"linux-{arch}"
    raise BinaryNotFoundError(
        name="*",
        detail=f"Unsupported platform: {platform_name} ({machine})",
    )


def is_packaged() -> bool:
    return bool(getattr(sys, "frozen", False))


def default_base_dir(packaged: bool) -> Path:
    if packaged:
        bundle = getattr(sys, "_MEIPASS", None)
        return Path(bundle) if bundle else Path(sys.executable).resolve().parent
    return Path(__file__).resolve().parents[2]


class PathResolver:
    """Finds the bundled encoders for the running platform."""

    def __init__(
        self,
        platform_name: Optional[str] = None,
        machine: Optional[str] = None,
        packaged: Optional[bool] = None,
        bin_dir: Optional[Union[str, Path]] = None,
        strip_quarantine: bool = True,
    ):
        self.platform_name = platform_name or sys.platform
        self.machine = machine if machine is not None else platform.machine()
        self.packaged = is_packaged() if packaged is None else packaged
        self.bin_dir = Path(bin_dir) if bin_dir else default_base_dir(self.packaged) / "bin"
        self.strip_quarantine = strip_quarantine
        self._cache: Dict[str, Path] = {}
        self._unquarantined: Set[Path] = set()

    def binary_path(self, name: str) -> Path:
        """Expected location of `name`, without checking the filesystem."""
        folder = platform_folder(self.platform_name, self.machine)
        filename = f"{name}.exe" if self.platform_name == "win32" else name
        return Path(os.path.abspath(self.bin_dir / folder / filename))

    def resolve_binary(self, name: str) -> Path:
        cached = self._cache.get(name)
        if cached is not None:
            return cached

        path = self.binary_path(name)
        if not path.exists():
            logger.error(
                f"Binary not found at expected path: {path} "
                f"(platform={self.platform_name}, arch={self.machine})"
            )
            raise BinaryNotFoundError(
                name,
                path,
                detail=f"Binary not found: {name} for {self.platform_name}-{self.machine} (expected at {path})",
            )

        if self.platform_name == "darwin" and self.strip_quarantine:
            self._remove_quarantine(path)

        logger.info(f"Binary resolved: {path}")
        self._cache[name] = path
        return path

    def _remove_quarantine(self, path: Path) -> None:
        """Drops the download quarantine flag so Gatekeeper lets the binary run."""
        if path in self._unquarantined:
            return
        self._unquarantined.add(path)
        try:
            subprocess.run(
                ["xattr", "-d", QUARANTINE_ATTR, str(path)],
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                timeout=5,
            )
        except (OSError, subprocess.SubprocessError) as e:
            # xattr missing or attribute already gone
            logger.debug(f"Could not remove quarantine attribute from {path}: {e}")
