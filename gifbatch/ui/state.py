import threading
import time
from collections import deque
from typing import Optional

def estimate_remaining(elapsed_s: float, current: int, total: int) -> Optional[float]:
    """Average time of the finished jobs times the jobs still to come.

    Returns None until at least one job has finished (current > 1).
    """
    if current <= 1 or total <= 0:
        return None
    avg = elapsed_s / (current - 1)
    return max(0.0, avg * (total - current))

def format_duration(seconds: float) -> str:
    mins = int(seconds // 60)
    secs = int(seconds % 60)
    return f"{mins}m {secs}s"

class UIState:
    """Thread-safe state shared by the UI manager and the dashboard renderer."""

    def __init__(self, activity_feed_max_items: int = 5):
        self._lock = threading.RLock()

        # Counters
        self.total = 0
        self.current = 0
        self.converted_count = 0
        self.skipped_count = 0
        self.failed_count = 0

        # Current job
        self.current_filename = ""
        self.current_stage = ""
        self.stage_progress = 0

        self.recent = deque(maxlen=activity_feed_max_items)

        # Global status
        self.start_time: Optional[float] = None
        self.finished = False
        self.cancel_requested = False
        self.cancelled = False
        self.error_message: Optional[str] = None
        self.total_elapsed: Optional[float] = None
        self.action_message: Optional[str] = None

    def elapsed(self) -> float:
        with self._lock:
            if self.total_elapsed is not None:
                return self.total_elapsed
            if self.start_time is None:
                return 0.0
            return time.monotonic() - self.start_time

    def remaining(self) -> Optional[float]:
        with self._lock:
            return estimate_remaining(self.elapsed(), self.current, self.total)

    def add_recent(self, line: str):
        with self._lock:
            self.recent.appendleft(line)
