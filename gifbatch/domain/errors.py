"""Error taxonomy for the conversion pipeline.

Every failure a job can hit derives from ConversionError. None of them is
retried: the batch stops at the first one and the caller decides what to do.
ConversionJob attaches the offending input path before re-raising so the
message names the file as well as the stage.
"""

from pathlib import Path
from typing import Optional, Union

PathLike = Union[str, Path]

# Longest tail of captured encoder output kept in error messages
MAX_DIAGNOSTIC_CHARS = 2000


def _tail(text: str, limit: int = MAX_DIAGNOSTIC_CHARS) -> str:
    text = (text or "").strip()
    if len(text) <= limit:
        return text
    return "..." + text[-limit:]


class ConversionError(Exception):
    """Base class for all pipeline failures."""

    def __init__(self, message: str, input_path: Optional[PathLike] = None):
        super().__init__(message)
        self.message = message
        self.input_path = str(input_path) if input_path is not None else None

    def __str__(self) -> str:
        if self.input_path:
            return f"{self.input_path}: {self.message}"
        return self.message


class BinaryNotFoundError(ConversionError):
    """An encoder binary is missing or the platform has no bundled build."""

    def __init__(self, name: str, path: Optional[PathLike] = None, detail: Optional[str] = None):
        self.name = name
        self.path = str(path) if path is not None else None
        message = detail or f"Binary not found: {name}"
        if self.path and not detail:
            message = f"{message} (expected at {self.path})"
        super().__init__(message)


class WorkspaceCreationError(ConversionError):
    def __init__(self, path: PathLike, cause: Optional[BaseException] = None):
        self.path = str(path)
        self.cause = cause
        detail = f": {cause}" if cause else ""
        super().__init__(f"Failed to create temp directory {self.path}{detail}")


class OutputDirectoryError(ConversionError):
    def __init__(self, folder: PathLike, cause: Optional[BaseException] = None):
        self.folder = str(folder)
        self.cause = cause
        detail = f": {cause}" if cause else ""
        super().__init__(f"Failed to create output directory {self.folder}{detail}")


class StageError(ConversionError):
    """Failure of one external encoder stage ("extract" or "encode")."""

    def __init__(self, stage: str, message: str, captured_output: str = ""):
        self.stage = stage
        self.captured_output = captured_output or ""
        super().__init__(message)


class ProcessSpawnError(StageError):
    def __init__(self, stage: str, binary: PathLike, cause: str):
        self.binary = str(binary)
        super().__init__(stage, f"Failed to start {stage} encoder {self.binary}: {cause}")


class StartupTimeoutError(StageError):
    def __init__(self, stage: str, timeout_s: float, captured_output: str = ""):
        self.timeout_s = timeout_s
        super().__init__(
            stage,
            f"{stage} encoder failed to start - no output received before startup timeout "
            f"({timeout_s:g}s). Check if the binary is working.",
            captured_output,
        )


class ProcessKilledError(StageError):
    def __init__(self, stage: str, captured_output: str = "", signal_number: Optional[int] = None):
        self.signal_number = signal_number
        suffix = f" (signal {signal_number})" if signal_number else ""
        error = _tail(captured_output) or "Unknown error"
        super().__init__(
            stage,
            f"{stage} encoder was killed or failed to start{suffix}. Error: {error}",
            captured_output,
        )


class NonZeroExitError(StageError):
    def __init__(self, stage: str, code: int, captured_output: str = ""):
        self.code = code
        super().__init__(
            stage,
            f"{stage} encoder failed with code {code}. Error: {_tail(captured_output)}",
            captured_output,
        )


class NoFramesProducedError(ConversionError):
    def __init__(self, frame_dir: PathLike, captured_output: str = ""):
        self.frame_dir = str(frame_dir)
        self.captured_output = captured_output or ""
        super().__init__(f"Frame extraction did not create any frame files in {self.frame_dir}")


class OutputMissingError(ConversionError):
    def __init__(self, output_path: PathLike):
        self.output_path = str(output_path)
        super().__init__(f"GIF file was not created at {self.output_path}")
