import threading
import time
from typing import Optional
from rich.console import Console, Group, RenderableType
from rich.live import Live
from rich.panel import Panel
from rich.progress_bar import ProgressBar
from rich.table import Table
from rich.text import Text
from gifbatch.ui.state import UIState, format_duration

SPINNER = "|/-\\"

class Dashboard:
    """Live terminal view of one batch: progress, current file, counters, ETA."""

    def __init__(self, state: UIState, console: Optional[Console] = None, refresh_interval: float = 0.5):
        self.state = state
        self.console = console or Console()
        self.refresh_interval = refresh_interval
        self._live: Optional[Live] = None
        self._refresh_thread: Optional[threading.Thread] = None
        self._stop_refresh = threading.Event()
        self._ui_lock = threading.Lock()
        self._spinner_frame = 0

    # --- Rendering ---

    def _status_line(self) -> Text:
        state = self.state
        with state._lock:
            if state.error_message:
                return Text("• CONVERSION FAILED", style="bold red")
            if state.cancelled:
                return Text("• CONVERSION CANCELLED", style="bold red")
            if state.finished:
                parts = [f"✓ COMPLETED [{state.total}/{state.total}]"]
                if state.converted_count:
                    parts.append(f"{state.converted_count} CONVERTED")
                if state.skipped_count:
                    parts.append(f"{state.skipped_count} SKIPPED")
                return Text(" • ".join(parts), style="bold green")
            if state.cancel_requested:
                return Text("• CANCELLING...", style="bold yellow")
            if state.current == 0:
                return Text("• READY", style="dim")
            spinner = SPINNER[self._spinner_frame % len(SPINNER)]
            return Text(f"{spinner} CONVERTING [{state.current}/{state.total}] {state.current_filename}")

    def _detail_table(self) -> Table:
        state = self.state
        table = Table.grid(padding=(0, 2))
        table.add_column(style="dim")
        table.add_column()
        with state._lock:
            if state.current_stage and not state.finished:
                progress = f" ({state.stage_progress})" if state.stage_progress else ""
                table.add_row("Stage", f"{state.current_stage}{progress}")
            table.add_row(
                "Files",
                f"{state.converted_count} converted • {state.skipped_count} skipped • {state.failed_count} failed",
            )
            if state.finished:
                table.add_row("Total time", format_duration(state.elapsed()))
            else:
                table.add_row("Elapsed", format_duration(state.elapsed()))
                remaining = state.remaining()
                if remaining is not None:
                    table.add_row("Est. remaining", format_duration(remaining))
            if state.action_message and not state.finished:
                table.add_row("Note", state.action_message)
        return table

    def create_display(self) -> RenderableType:
        state = self.state
        with state._lock:
            total = max(state.total, 1)
            completed = state.total if state.finished and not state.cancelled and not state.error_message else state.current
            recent = list(state.recent)
        bar = ProgressBar(total=total, completed=completed)
        parts = [self._status_line(), bar, self._detail_table()]
        if recent:
            parts.append(Text("\n".join(recent), style="dim"))
        return Panel(Group(*parts), title="gifbatch", border_style="cyan")

    # --- Lifecycle ---

    def _refresh_loop(self):
        while not self._stop_refresh.is_set():
            if self._live:
                self._spinner_frame = (self._spinner_frame + 1) % len(SPINNER)
                display = self.create_display()
                with self._ui_lock:
                    self._live.update(display)
            time.sleep(self.refresh_interval)

    def start(self):
        self._live = Live(self.create_display(), console=self.console, refresh_per_second=4)
        self._live.start()
        self._stop_refresh.clear()
        self._refresh_thread = threading.Thread(target=self._refresh_loop, daemon=True)
        self._refresh_thread.start()
        return self

    def stop(self):
        self._stop_refresh.set()
        if self._refresh_thread:
            self._refresh_thread.join(timeout=1.0)
        if self._live:
            # Final frame shows the finished/cancelled/failed state
            with self._ui_lock:
                self._live.update(self.create_display())
            self._live.stop()

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.stop()
        return False
