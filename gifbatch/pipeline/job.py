"""One video -> one GIF, through two encoder stages.

State machine::

    INIT -> EXTRACTING_FRAMES -> ENCODING -> DONE

with an exit to FAILED from every state.

The scratch workspace is destroyed in a ``finally`` block, so it is gone
before run() returns or raises, on every path.
"""

import logging
import os
import time
from pathlib import Path
from typing import Callable, Optional

from gifbatch.config.models import AppConfig
from gifbatch.domain.errors import (
    ConversionError,
    NoFramesProducedError,
    NonZeroExitError,
    OutputMissingError,
    ProcessKilledError,
    ProcessSpawnError,
    StartupTimeoutError,
)
from gifbatch.domain.events import StageActivity, StageFinished, StageStarted
from gifbatch.domain.models import ConversionRequest, JobOutcome, JobState, JobStatus
from gifbatch.infrastructure.encoders import (
    ENCODE_STAGE,
    EXTRACT_STAGE,
    build_encode_args,
    build_extract_args,
)
from gifbatch.infrastructure.event_bus import EventBus
from gifbatch.infrastructure.paths import PathResolver, absolute_path, normalize_path
from gifbatch.infrastructure.supervisor import ProcessSupervisor, SettleResult, SupervisorState
from gifbatch.infrastructure.workspace import TempWorkspace

WorkspaceFactory = Callable[..., TempWorkspace]
SupervisorFactory = Callable[..., ProcessSupervisor]


class ConversionJob:
    """Drives a single ConversionRequest through frame extraction and GIF encoding.

    Args:
        request: What to convert and where to write it.
        config: Process timings, binary names and scratch root.
        resolver: Locates the encoder binaries.
        event_bus: Optional bus for stage events.
        workspace_factory: Creates the scratch directory (TempWorkspace.create).
        supervisor_factory: Creates one ProcessSupervisor per stage.
    """

    def __init__(
        self,
        request: ConversionRequest,
        config: AppConfig,
        resolver: PathResolver,
        event_bus: Optional[EventBus] = None,
        workspace_factory: WorkspaceFactory = TempWorkspace.create,
        supervisor_factory: SupervisorFactory = ProcessSupervisor,
    ):
        self.request = request
        self.config = config
        self.resolver = resolver
        self.event_bus = event_bus
        self.workspace_factory = workspace_factory
        self.supervisor_factory = supervisor_factory
        self.logger = logging.getLogger(__name__)
        self.state = JobState.INIT
        self.workspace: Optional[TempWorkspace] = None

    def run(self) -> JobOutcome:
        request = self.request
        filename = request.display_name
        start_time = time.monotonic()
        self._transition(JobState.INIT)

        input_path = absolute_path(request.input_path)
        output_path = normalize_path(request.output_path)

        try:
            ffmpeg = self.resolver.resolve_binary(self.config.binaries.ffmpeg)
            gifski = self.resolver.resolve_binary(self.config.binaries.gifski)
            stem = os.path.splitext(filename)[0]
            self.workspace = self.workspace_factory(stem, root=self.config.general.temp_dir)
        except ConversionError as e:
            self._fail(e)
            raise

        workspace = self.workspace
        try:
            self._transition(JobState.EXTRACTING_FRAMES)
            frames = self._extract_frames(ffmpeg, input_path, workspace)

            self._transition(JobState.ENCODING)
            output_size = self._encode(gifski, frames, output_path)
        except ConversionError as e:
            self._fail(e)
            raise
        except BaseException:
            self._transition(JobState.FAILED)
            raise
        finally:
            workspace.destroy()

        self._transition(JobState.DONE)
        elapsed = time.monotonic() - start_time
        self.logger.info(
            f"JOB_DONE: {filename} -> {output_path} ({output_size / 1024 / 1024:.2f} MB, "
            f"{len(frames)} frames, {elapsed:.2f}s)"
        )
        return JobOutcome(
            request=request,
            status=JobStatus.CONVERTED,
            frame_count=len(frames),
            output_size_bytes=output_size,
            duration_seconds=elapsed,
        )

    def _extract_frames(self, ffmpeg: Path, input_path: str, workspace: TempWorkspace):
        request = self.request
        args = build_extract_args(input_path, request.fps, request.width, workspace.frame_pattern)
        self.logger.debug(f"Temp dir: {workspace.path}")

        result = self._run_stage(EXTRACT_STAGE, ffmpeg, args, workspace.frame_count)
        self._raise_for_result(EXTRACT_STAGE, ffmpeg, result)

        # Some encoders exit 0 on degenerate input without writing anything
        frames = workspace.list_frames()
        if not frames:
            self.logger.error(f"No frame files created by ffmpeg; stderr tail: {result.stderr[-1000:]}")
            raise NoFramesProducedError(workspace.path, result.captured_output)
        self.logger.info(f"Extracted {len(frames)} frames from {request.display_name}")
        return frames

    def _encode(self, gifski: Path, frames, output_path: str) -> int:
        request = self.request
        args = build_encode_args(request.fps, request.quality, output_path, frames)
        existed_before = os.path.lexists(output_path)

        def output_size() -> int:
            return os.path.getsize(output_path)

        try:
            result = self._run_stage(ENCODE_STAGE, gifski, args, output_size)
            self._raise_for_result(ENCODE_STAGE, gifski, result)
        except BaseException:
            if not existed_before:
                self._discard_partial_output(output_path)
            raise

        if not os.path.exists(output_path):
            self.logger.error(f"GIF file not found after conversion: {output_path}")
            raise OutputMissingError(output_path)
        return os.path.getsize(output_path)

    def _run_stage(self, stage: str, binary: Path, args, progress_signal) -> SettleResult:
        self._publish(StageStarted(request=self.request, stage=stage))

        def on_activity(progress: int):
            self._publish(StageActivity(request=self.request, stage=stage, progress=progress))

        supervisor = self.supervisor_factory(self.config.process, stage, on_activity=on_activity)
        result = supervisor.run(binary, args, progress_signal)
        self._publish(StageFinished(request=self.request, stage=stage, ok=result.ok, elapsed_s=result.elapsed_s))
        return result

    def _raise_for_result(self, stage: str, binary: Path, result: SettleResult) -> None:
        if result.ok:
            return
        if result.spawn_error is not None:
            raise ProcessSpawnError(stage, binary, result.spawn_error)
        if result.timed_out:
            raise StartupTimeoutError(stage, self.config.process.startup_timeout_s, result.captured_output)
        if result.state == SupervisorState.KILLED:
            signal_number = -result.exit_code if result.exit_code else None
            raise ProcessKilledError(stage, result.captured_output, signal_number)
        raise NonZeroExitError(stage, result.exit_code, result.captured_output)

    def _discard_partial_output(self, output_path: str) -> None:
        """A half-written GIF would make the next run skip this file."""
        try:
            if os.path.lexists(output_path):
                os.remove(output_path)
                self.logger.warning(f"Removed partial output: {output_path}")
        except OSError as e:
            self.logger.warning(f"Could not remove partial output {output_path}: {e}")

    def _fail(self, error: ConversionError) -> None:
        if error.input_path is None:
            error.input_path = self.request.input_path
        self._transition(JobState.FAILED)
        self.logger.error(f"JOB_FAILED: {self.request.display_name} ({type(error).__name__}): {error.message}")

    def _transition(self, state: JobState) -> None:
        if state != self.state:
            self.logger.debug(f"{self.request.display_name}: {self.state.value} -> {state.value}")
        self.state = state

    def _publish(self, event) -> None:
        if self.event_bus is not None:
            self.event_bus.publish(event)
