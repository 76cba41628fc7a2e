"""Domain events for the GIF conversion pipeline.

Events flow through the EventBus, decoupling the batch runner and conversion
jobs from whatever renders progress (the terminal dashboard, tests, or an
embedding application).

See `infrastructure/event_bus.py` for the pub/sub mechanism.
"""

from typing import Optional
from pydantic import BaseModel
from .models import BatchResult, ConversionRequest, JobOutcome


class Event(BaseModel):
    """Base class for all domain events."""

    pass


class BatchStarted(Event):
    """Emitted once per batch, before the first job."""

    total: int


class JobProgress(Event):
    """Emitted before any work for the job at 1-based position `current`.

    Also emitted for jobs that end up skipped, so `current` runs 1..total.
    """

    current: int
    total: int
    filename: str


class JobEvent(Event):
    """Base class for events related to a specific conversion request."""

    request: ConversionRequest


class JobSkipped(JobEvent):
    """Emitted when the destination already exists."""

    pass


class JobConverted(JobEvent):
    outcome: JobOutcome


class JobFailed(JobEvent):
    """Emitted right before the failure propagates and aborts the batch."""

    error_message: str


class StageStarted(JobEvent):
    stage: str


class StageActivity(JobEvent):
    """Emitted when the stage's progress signal grows (frames or bytes)."""

    stage: str
    progress: int


class StageFinished(JobEvent):
    stage: str
    ok: bool
    elapsed_s: float


class BatchCancelled(Event):
    """Emitted when a cancellation is observed at a job boundary."""

    result: BatchResult


class BatchFinished(Event):
    """Emitted when every job in the plan was converted or skipped."""

    result: BatchResult


class CancelRequested(Event):
    """Emitted by the caller layer when the user asks to stop."""

    message: Optional[str] = None
