"""Sequential batch execution of conversion requests.

Jobs run one at a time, in plan order. Cancellation is cooperative and only
checked between jobs: a running encoder is never interrupted, the next job is
simply not started. The first failing job aborts the whole batch and its error
propagates to the caller unchanged.
"""

import logging
import os
import threading
import time
from typing import Callable, List, Optional, Sequence, Set

from gifbatch.domain.errors import OutputDirectoryError
from gifbatch.domain.events import (
    BatchCancelled,
    BatchFinished,
    BatchStarted,
    JobConverted,
    JobFailed,
    JobProgress,
    JobSkipped,
)
from gifbatch.domain.models import BatchResult, ConversionRequest, JobOutcome, JobStatus
from gifbatch.infrastructure.event_bus import EventBus
from gifbatch.infrastructure.paths import normalize_path
from gifbatch.pipeline.skip_policy import should_skip

JobRunner = Callable[[ConversionRequest], JobOutcome]


class CancellationToken:
    """Cooperative stop flag, polled by BatchRunner at job boundaries."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()


class BatchRunner:
    """Runs a BatchPlan one job at a time and accumulates a BatchResult.

    Args:
        event_bus: Receives BatchStarted, JobProgress, JobSkipped, JobConverted,
            JobFailed, BatchCancelled and BatchFinished.
        job_runner: Converts one request (normally ConversionJob(...).run) and
            raises on failure.
    """

    def __init__(self, event_bus: EventBus, job_runner: JobRunner):
        self.event_bus = event_bus
        self.job_runner = job_runner
        self.logger = logging.getLogger(__name__)

    def run(self, plan: Sequence[ConversionRequest], token: Optional[CancellationToken] = None) -> BatchResult:
        token = token or CancellationToken()
        plan = list(plan)
        total = len(plan)
        result = BatchResult()
        start_time = time.monotonic()

        self.logger.info(f"BATCH_START: {total} file(s)")
        self.event_bus.publish(BatchStarted(total=total))
        failed_folders = self._prepare_output_folders(plan)

        for index, request in enumerate(plan, start=1):
            if token.is_cancelled:
                result.cancelled = True
                result.total_elapsed_seconds = time.monotonic() - start_time
                self.logger.info(
                    f"BATCH_CANCELLED: before {index}/{total} "
                    f"(converted={result.converted_count}, skipped={result.skipped_count})"
                )
                self.event_bus.publish(BatchCancelled(result=result))
                return result

            self.event_bus.publish(JobProgress(current=index, total=total, filename=request.display_name))

            output_path = normalize_path(request.output_path)
            if should_skip(output_path):
                result.skipped_count += 1
                result.outcomes.append(JobOutcome(request=request, status=JobStatus.SKIPPED, reason="destination exists"))
                self.logger.info(f"JOB_SKIP: {request.display_name} ({output_path} exists)")
                self.event_bus.publish(JobSkipped(request=request))
                continue

            try:
                self._ensure_output_folder(request, failed_folders)
                outcome = self.job_runner(request)
            except KeyboardInterrupt:
                reason = "Interrupted by user (Ctrl+C)"
                self.logger.info(f"JOB_INTERRUPTED: {request.display_name}")
                result.outcomes.append(JobOutcome(request=request, status=JobStatus.FAILED, reason=reason))
                self.event_bus.publish(JobFailed(request=request, error_message=reason))
                raise
            except Exception as e:
                self.logger.error(f"Conversion error: {e}")
                self.logger.error(f"Input: {request.input_path}")
                self.logger.error(f"Output: {request.output_path}")
                result.outcomes.append(JobOutcome(request=request, status=JobStatus.FAILED, reason=str(e)))
                self.event_bus.publish(JobFailed(request=request, error_message=str(e)))
                raise

            result.converted_count += 1
            result.outcomes.append(outcome)
            self.logger.info(f"Successfully converted: {request.input_path} -> {request.output_path}")
            self.event_bus.publish(JobConverted(request=request, outcome=outcome))

        result.total_elapsed_seconds = time.monotonic() - start_time
        self.logger.info(
            f"BATCH_END: converted={result.converted_count} skipped={result.skipped_count} "
            f"elapsed={result.total_elapsed_seconds:.2f}s"
        )
        self.event_bus.publish(BatchFinished(result=result))
        return result

    def _prepare_output_folders(self, plan: List[ConversionRequest]) -> Set[str]:
        """Creates every destination folder up front; returns the ones that failed."""
        failed: Set[str] = set()
        seen: Set[str] = set()
        for request in plan:
            folder = normalize_path(request.destination_folder)
            if not folder or folder in seen:
                continue
            seen.add(folder)
            try:
                os.makedirs(folder, exist_ok=True)
            except OSError as e:
                # Only fatal once the job writing there comes up
                self.logger.error(f"Error creating output directory {folder}: {e}")
                failed.add(folder)
        return failed

    def _ensure_output_folder(self, request: ConversionRequest, failed_folders: Set[str]) -> None:
        folder = normalize_path(request.destination_folder)
        if not folder or folder not in failed_folders:
            return
        try:
            os.makedirs(folder, exist_ok=True)
        except OSError as e:
            raise OutputDirectoryError(folder, e) from e
        failed_folders.discard(folder)
