import time
from gifbatch.infrastructure.event_bus import EventBus
from gifbatch.ui.state import UIState
from gifbatch.domain.events import (
    BatchStarted, BatchFinished, BatchCancelled, CancelRequested,
    JobProgress, JobSkipped, JobConverted, JobFailed,
    StageStarted, StageActivity,
)

STAGE_LABELS = {"extract": "extracting frames", "encode": "encoding GIF"}

class UIManager:
    """Subscribes to EventBus and updates UIState."""

    def __init__(self, bus: EventBus, state: UIState):
        self.bus = bus
        self.state = state
        self._setup_subscriptions()

    def _setup_subscriptions(self):
        self.bus.subscribe(BatchStarted, self.on_batch_started)
        self.bus.subscribe(JobProgress, self.on_job_progress)
        self.bus.subscribe(JobSkipped, self.on_job_skipped)
        self.bus.subscribe(JobConverted, self.on_job_converted)
        self.bus.subscribe(JobFailed, self.on_job_failed)
        self.bus.subscribe(StageStarted, self.on_stage_started)
        self.bus.subscribe(StageActivity, self.on_stage_activity)
        self.bus.subscribe(CancelRequested, self.on_cancel_requested)
        self.bus.subscribe(BatchCancelled, self.on_batch_cancelled)
        self.bus.subscribe(BatchFinished, self.on_batch_finished)

    def on_batch_started(self, event: BatchStarted):
        with self.state._lock:
            self.state.total = event.total
            self.state.current = 0
            self.state.start_time = time.monotonic()
            self.state.finished = False

    def on_job_progress(self, event: JobProgress):
        with self.state._lock:
            self.state.current = event.current
            self.state.total = event.total
            self.state.current_filename = event.filename
            self.state.current_stage = ""
            self.state.stage_progress = 0

    def on_job_skipped(self, event: JobSkipped):
        with self.state._lock:
            self.state.skipped_count += 1
        self.state.add_recent(f"= {event.request.display_name} (exists)")

    def on_job_converted(self, event: JobConverted):
        outcome = event.outcome
        size_mb = (outcome.output_size_bytes or 0) / 1024 / 1024
        with self.state._lock:
            self.state.converted_count += 1
        self.state.add_recent(f"✓ {event.request.display_name} ({size_mb:.2f} MB, {outcome.frame_count} frames)")

    def on_job_failed(self, event: JobFailed):
        with self.state._lock:
            self.state.failed_count += 1
            self.state.error_message = event.error_message
        self.state.add_recent(f"✗ {event.request.display_name}")

    def on_stage_started(self, event: StageStarted):
        with self.state._lock:
            self.state.current_stage = STAGE_LABELS.get(event.stage, event.stage)
            self.state.stage_progress = 0

    def on_stage_activity(self, event: StageActivity):
        with self.state._lock:
            self.state.stage_progress = event.progress

    def on_cancel_requested(self, event: CancelRequested):
        with self.state._lock:
            self.state.cancel_requested = True
            self.state.action_message = event.message

    def on_batch_cancelled(self, event: BatchCancelled):
        with self.state._lock:
            self.state.cancelled = True
            self.state.finished = True
            self.state.total_elapsed = event.result.total_elapsed_seconds

    def on_batch_finished(self, event: BatchFinished):
        with self.state._lock:
            self.state.finished = True
            self.state.total_elapsed = event.result.total_elapsed_seconds
