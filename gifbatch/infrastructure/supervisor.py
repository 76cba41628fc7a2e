"""Supervision of a single external encoder process.

A ProcessSupervisor spawns one process, collects its output, and settles
exactly once with a SettleResult. Control flow is a small event loop in the
calling thread: daemon reader threads push output chunks into a queue, and the
loop alternates between consuming that queue and firing its own timers.

State machine::

    SPAWNING -> STARTING -> RUNNING -> SETTLING -> SUCCEEDED | FAILED | KILLED

- STARTING: no output and no progress yet. The startup timer terminates the
  process (then kills it after the grace window) if this lasts too long.
- RUNNING: entered on the first output byte or the first positive progress
  signal, whichever comes first. From here on the process gets unbounded time;
  stalls are only logged.
- SETTLING: the exit was observed. Timers are cancelled, remaining output is
  drained and the result is classified.
"""

import codecs
import logging
import queue
import subprocess
import sys
import threading
import time
from enum import Enum
from pathlib import Path
from typing import Callable, List, Optional, Sequence, Union

from pydantic import BaseModel

from gifbatch.config.models import ProcessConfig

STARTUP_TIMEOUT_REASON = "no output received before startup timeout"

# Upper bound for one wait on the output queue, so exits are noticed promptly
POLL_SLICE_S = 0.1
READ_CHUNK = 4096

ProgressSignal = Callable[[], int]


class SupervisorState(str, Enum):
    SPAWNING = "SPAWNING"
    STARTING = "STARTING"
    RUNNING = "RUNNING"
    SETTLING = "SETTLING"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"
    KILLED = "KILLED"


class SettleResult(BaseModel):
    ok: bool
    state: SupervisorState
    exit_code: Optional[int] = None
    exit_reason: str = ""
    stdout: str = ""
    stderr: str = ""
    timed_out: bool = False
    spawn_error: Optional[str] = None
    progress_count: int = 0
    elapsed_s: float = 0.0

    @property
    def captured_output(self) -> str:
        return self.stderr or self.stdout


class ProcessHandle:
    """Live view of one running process."""

    def __init__(self, process: subprocess.Popen):
        self.process = process
        self.pid = process.pid
        self.stdout_parts: List[str] = []
        self.stderr_parts: List[str] = []
        self.started = False
        self.last_activity = time.monotonic()
        self.progress_count = 0
        self.open_streams = 0

    @property
    def stdout_text(self) -> str:
        return "".join(self.stdout_parts)

    @property
    def stderr_text(self) -> str:
        return "".join(self.stderr_parts)

    def is_alive(self) -> bool:
        return self.process.poll() is None


class _Timer:
    """A cancellable deadline owned by one supervisor."""

    def __init__(self, name: str, delay: float, callback: Callable[[], None], repeat: bool = False):
        self.name = name
        self.delay = delay
        self.callback = callback
        self.repeat = repeat
        self.deadline = time.monotonic() + delay
        self.active = True

    def cancel(self) -> None:
        self.active = False

    def is_due(self, now: float) -> bool:
        return self.active and now >= self.deadline

    def fire(self, now: float) -> None:
        if self.repeat:
            self.deadline = now + self.delay
        else:
            self.active = False
        self.callback()


def _popen_kwargs() -> dict:
    # Keep the encoder out of the terminal's process group so Ctrl+C only
    # reaches us; cancellation never interrupts a running encoder.
    if sys.platform == "win32":
        return {"creationflags": subprocess.CREATE_NEW_PROCESS_GROUP}
    return {"start_new_session": True}


class ProcessSupervisor:
    """Runs one external process to completion under startup and stall watch."""

    def __init__(
        self,
        config: ProcessConfig,
        stage: str,
        on_activity: Optional[Callable[[int], None]] = None,
    ):
        self.config = config
        self.stage = stage
        self.on_activity = on_activity
        self.logger = logging.getLogger(__name__)

        self.state = SupervisorState.SPAWNING
        self.handle: Optional[ProcessHandle] = None
        self._progress_signal: Optional[ProgressSignal] = None
        self._queue: "queue.Queue[tuple]" = queue.Queue()
        self._readers: List[threading.Thread] = []
        self._timers: List[_Timer] = []
        self._startup_timer: Optional[_Timer] = None
        self._timed_out = False
        self._result: Optional[SettleResult] = None
        self._used = False
        self._start_time = 0.0

    # ------------------------------------------------------------------ run

    def run(
        self,
        binary: Union[str, Path],
        args: Sequence[Union[str, Path]],
        progress_signal: Optional[ProgressSignal] = None,
    ) -> SettleResult:
        if self._used:
            raise RuntimeError("ProcessSupervisor instances run a single process")
        self._used = True
        self._progress_signal = progress_signal
        self._start_time = time.monotonic()

        cmd = [str(binary), *[str(a) for a in args]]
        self.logger.info(f"STAGE_START: {self.stage} ({Path(cmd[0]).name})")
        self.logger.debug(f"STAGE_CMD: {self.stage}: {' '.join(cmd)}")

        try:
            process = subprocess.Popen(
                cmd,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                **_popen_kwargs(),
            )
        except (OSError, ValueError) as e:
            self.logger.error(f"{self.stage} spawn error: {e}")
            return self._settle_spawn_failure(e)

        self.handle = ProcessHandle(process)
        self.logger.debug(f"{self.stage} process spawned - PID: {process.pid}")
        self._transition(SupervisorState.STARTING)

        self._start_reader("stdout", process.stdout)
        self._start_reader("stderr", process.stderr)
        self._startup_timer = self._schedule("startup", self.config.startup_timeout_s, self._on_startup_timeout)
        self._schedule("activity", self.config.activity_poll_s, self._on_activity_tick, repeat=True)

        try:
            while self._result is None:
                self._fire_due_timers()
                try:
                    item = self._queue.get(timeout=self._next_wait())
                except queue.Empty:
                    item = None
                if item is not None:
                    self._on_stream_item(item)
                returncode = process.poll()
                if returncode is not None:
                    self._settle(returncode)
        except KeyboardInterrupt:
            self.logger.info(f"{self.stage}_INTERRUPTED: PID {process.pid} (KeyboardInterrupt)")
            self._cancel_timers()
            self._force_stop()
            raise

        return self._result

    # -------------------------------------------------------------- streams

    def _start_reader(self, name: str, stream) -> None:
        if stream is None:
            return
        self.handle.open_streams += 1

        def _reader():
            decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
            try:
                while True:
                    chunk = stream.read1(READ_CHUNK)
                    if not chunk:
                        break
                    text = decoder.decode(chunk)
                    if text:
                        self._queue.put((name, text))
            except (OSError, ValueError):
                pass
            tail = decoder.decode(b"", final=True)
            if tail:
                self._queue.put((name, tail))
            self._queue.put(("eof", name))

        thread = threading.Thread(target=_reader, name=f"{self.stage}-{name}", daemon=True)
        thread.start()
        self._readers.append(thread)

    def _on_stream_item(self, item: tuple) -> None:
        kind, payload = item
        handle = self.handle
        if kind == "eof":
            handle.open_streams -= 1
            return

        if kind == "stdout":
            handle.stdout_parts.append(payload)
        else:
            handle.stderr_parts.append(payload)
        handle.last_activity = time.monotonic()

        if self.state == SupervisorState.STARTING:
            self._mark_running(f"first {kind} output")

        for line in payload.splitlines():
            if line.strip():
                self.logger.debug(f"{self.stage} {kind}: {line.strip()}")

    # --------------------------------------------------------------- timers

    def _schedule(self, name: str, delay: float, callback: Callable[[], None], repeat: bool = False) -> _Timer:
        timer = _Timer(name, delay, callback, repeat=repeat)
        self._timers.append(timer)
        return timer

    def _cancel_timers(self) -> None:
        for timer in self._timers:
            timer.cancel()

    def _next_wait(self) -> float:
        now = time.monotonic()
        wait = POLL_SLICE_S
        for timer in self._timers:
            if timer.active:
                wait = min(wait, timer.deadline - now)
        return max(0.0, wait)

    def _fire_due_timers(self) -> None:
        now = time.monotonic()
        for timer in list(self._timers):
            if self._result is not None:
                return
            if timer.is_due(now):
                timer.fire(now)

    def _on_startup_timeout(self) -> None:
        if self.state != SupervisorState.STARTING:
            return
        # Frames may have appeared since the last activity tick
        self._on_activity_tick()
        if self.state != SupervisorState.STARTING:
            return
        self.logger.error(
            f"{self.stage} timeout - no output after {self.config.startup_timeout_s:g} seconds "
            f"(PID {self.handle.pid}); terminating"
        )
        self._timed_out = True
        self._terminate()

    def _on_activity_tick(self) -> None:
        handle = self.handle
        now = time.monotonic()
        value = self._read_progress_signal()

        if value is not None and value > handle.progress_count:
            handle.progress_count = value
            handle.last_activity = now
            self.logger.debug(f"{self.stage} progress: {value}")
            if self.state == SupervisorState.STARTING:
                self._mark_running("progress signal")
            if self.on_activity is not None:
                self.on_activity(value)

        idle = now - handle.last_activity
        if idle <= self.config.stall_threshold_s or not handle.is_alive():
            return
        if self.state == SupervisorState.RUNNING:
            # Never fatal once started: throughput varies too much by input
            self.logger.warning(
                f"{self.stage} appears stuck - no activity for {idle:.0f}s "
                f"(progress={handle.progress_count}, PID {handle.pid} alive)"
            )
        elif self.state == SupervisorState.STARTING and not self._timed_out:
            self.logger.warning(f"{self.stage} hasn't started outputting - waiting {idle:.0f}s")

    def _read_progress_signal(self) -> Optional[int]:
        if self._progress_signal is None:
            return None
        try:
            return int(self._progress_signal())
        except OSError as e:
            # Output location may not exist yet
            self.logger.debug(f"{self.stage} progress signal unavailable: {e}")
            return None

    def _mark_running(self, cause: str) -> None:
        self.handle.started = True
        if self._startup_timer is not None:
            self._startup_timer.cancel()
        self._transition(SupervisorState.RUNNING)
        self.logger.debug(f"{self.stage} started ({cause})")

    # ------------------------------------------------------------ stopping

    def _terminate(self) -> None:
        process = self.handle.process
        try:
            process.terminate()
        except OSError as e:
            self.logger.error(f"Error terminating {self.stage}: {e}")
        self._schedule("kill", self.config.kill_grace_s, self._kill_if_alive)

    def _kill_if_alive(self) -> None:
        process = self.handle.process
        if process.poll() is None:
            self.logger.warning(f"{self.stage} ignored terminate; killing PID {process.pid}")
            try:
                process.kill()
            except OSError as e:
                self.logger.error(f"Error killing {self.stage}: {e}")

    def _force_stop(self) -> None:
        process = self.handle.process
        if process.poll() is not None:
            return
        process.terminate()
        try:
            process.wait(timeout=self.config.kill_grace_s)
        except subprocess.TimeoutExpired:
            process.kill()
            process.wait()

    # ------------------------------------------------------------- settling

    def _transition(self, state: SupervisorState) -> None:
        if state != self.state:
            self.logger.debug(f"{self.stage} state: {self.state.value} -> {state.value}")
            self.state = state

    def _settle(self, returncode: Optional[int]) -> None:
        # Only the first terminal notification is acted on
        if self._result is not None:
            return
        self._transition(SupervisorState.SETTLING)
        self._cancel_timers()
        self._drain_output()

        handle = self.handle
        final_progress = self._read_progress_signal()
        if final_progress is not None and final_progress > handle.progress_count:
            handle.progress_count = final_progress

        stdout, stderr = handle.stdout_text, handle.stderr_text
        if self._timed_out:
            state, ok = SupervisorState.FAILED, False
            reason = STARTUP_TIMEOUT_REASON
        elif returncode is None or returncode < 0:
            state, ok = SupervisorState.KILLED, False
            signal_note = f" by signal {-returncode}" if returncode else ""
            reason = f"process was killed{signal_note}" + (f": {stderr.strip()}" if stderr.strip() else "")
        elif returncode != 0:
            state, ok = SupervisorState.FAILED, False
            reason = stderr.strip() or stdout.strip() or f"exited with code {returncode}"
        else:
            state, ok = SupervisorState.SUCCEEDED, True
            reason = ""

        elapsed = time.monotonic() - self._start_time
        self._result = SettleResult(
            ok=ok,
            state=state,
            exit_code=returncode,
            exit_reason=reason,
            stdout=stdout,
            stderr=stderr,
            timed_out=self._timed_out,
            progress_count=handle.progress_count,
            elapsed_s=elapsed,
        )
        self._transition(state)
        self._close_pipes()
        self.logger.info(
            f"STAGE_END: {self.stage} status={state.value.lower()} code={returncode} "
            f"progress={handle.progress_count} elapsed={elapsed:.2f}s"
        )

    def _settle_spawn_failure(self, error: BaseException) -> SettleResult:
        self._transition(SupervisorState.FAILED)
        self._result = SettleResult(
            ok=False,
            state=SupervisorState.FAILED,
            exit_reason=f"Failed to start: {error}",
            spawn_error=str(error),
            elapsed_s=time.monotonic() - self._start_time,
        )
        return self._result

    def _drain_output(self) -> None:
        for reader in self._readers:
            reader.join(timeout=self.config.kill_grace_s)
        while True:
            try:
                item = self._queue.get_nowait()
            except queue.Empty:
                break
            kind, payload = item
            if kind == "stdout":
                self.handle.stdout_parts.append(payload)
            elif kind == "stderr":
                self.handle.stderr_parts.append(payload)

    def _close_pipes(self) -> None:
        # A reader still blocked here means a grandchild holds the pipe open
        if any(reader.is_alive() for reader in self._readers):
            return
        for stream in (self.handle.process.stdout, self.handle.process.stderr):
            if stream is None:
                continue
            try:
                stream.close()
            except OSError:
                pass
