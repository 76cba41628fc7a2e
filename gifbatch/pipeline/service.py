import logging
from typing import Callable, List, Optional, Sequence

from gifbatch.config.models import AppConfig
from gifbatch.domain.events import CancelRequested, JobProgress
from gifbatch.domain.models import BatchResult, ConversionRequest, FileStats, JobOutcome
from gifbatch.infrastructure.event_bus import EventBus
from gifbatch.infrastructure.file_scanner import FileScanner
from gifbatch.infrastructure.paths import PathResolver
from gifbatch.pipeline.batch import BatchRunner, CancellationToken
from gifbatch.pipeline.job import ConversionJob


class ConversionService:
    """Entry point for callers (CLI, embedding apps): run, cancel, probe.

    Args:
        config: Application config (timings, binaries, extensions, temp root).
        event_bus: Shared bus; a private one is created when omitted.
        resolver: Encoder lookup; built from config.binaries when omitted.
    """

    def __init__(
        self,
        config: AppConfig,
        event_bus: Optional[EventBus] = None,
        resolver: Optional[PathResolver] = None,
    ):
        self.config = config
        self.event_bus = event_bus or EventBus()
        self.resolver = resolver or PathResolver(
            bin_dir=config.binaries.bin_dir,
            strip_quarantine=config.binaries.strip_quarantine,
        )
        self.scanner = FileScanner(config.general.extensions)
        self.logger = logging.getLogger(__name__)
        self._token = CancellationToken()

    def _convert(self, request: ConversionRequest) -> JobOutcome:
        job = ConversionJob(request, self.config, self.resolver, event_bus=self.event_bus)
        return job.run()

    def run_batch(
        self,
        plan: Sequence[ConversionRequest],
        on_progress: Optional[Callable[[JobProgress], None]] = None,
    ) -> BatchResult:
        # Every batch starts uncancelled
        self._token = CancellationToken()
        if on_progress is not None:
            self.event_bus.subscribe(JobProgress, on_progress)
        try:
            return BatchRunner(self.event_bus, self._convert).run(plan, self._token)
        finally:
            if on_progress is not None:
                self.event_bus.unsubscribe(JobProgress, on_progress)

    def request_cancel(self) -> None:
        if self._token.is_cancelled:
            return
        self._token.cancel()
        self.logger.info("Cancellation requested - stopping after the current file")
        self.event_bus.publish(CancelRequested(message="Stopping after the current file..."))

    def check_exists(self, path: str) -> FileStats:
        return self.scanner.check_exists(path)

    def list_video_files(self, folder: str) -> List[str]:
        return self.scanner.list_video_files(folder)
