import pytest
from pathlib import Path
from gifbatch.domain.errors import NonZeroExitError, OutputDirectoryError
from gifbatch.domain.events import (
    BatchCancelled,
    BatchFinished,
    BatchStarted,
    JobConverted,
    JobFailed,
    JobProgress,
    JobSkipped,
)
from gifbatch.domain.models import ConversionRequest, JobOutcome, JobStatus
from gifbatch.pipeline.batch import BatchRunner, CancellationToken


class RecordingRunner:
    """Job runner stand-in: writes the GIF, or raises for inputs listed in `fail`."""

    def __init__(self, fail=()):
        self.fail = set(fail)
        self.calls = []
        self.on_call = None

    def __call__(self, request: ConversionRequest) -> JobOutcome:
        self.calls.append(Path(request.input_path).name)
        if self.on_call:
            self.on_call(request)
        if Path(request.input_path).name in self.fail:
            raise NonZeroExitError("extract", 1, "Invalid data found")
        Path(request.output_path).write_bytes(b"GIF89a")
        return JobOutcome(request=request, status=JobStatus.CONVERTED, frame_count=3, output_size_bytes=6)


def plan_for(tmp_path, names, folder=None):
    folder = Path(folder) if folder else tmp_path / "gifs"
    return [
        ConversionRequest(
            input_path=str(tmp_path / name),
            output_path=str(folder / (Path(name).stem + ".gif")),
            output_folder=str(folder),
            fps=10, width=320, quality=80,
        )
        for name in names
    ]


@pytest.fixture
def recorded(event_bus):
    events = []
    for event_type in (BatchStarted, JobProgress, JobSkipped, JobConverted, JobFailed, BatchCancelled, BatchFinished):
        event_bus.subscribe(event_type, events.append)
    return events


def test_batch_converts_all_in_order(tmp_path, event_bus, recorded):
    runner = RecordingRunner()
    plan = plan_for(tmp_path, ["a.mp4", "b.mp4", "c.mp4"])

    result = BatchRunner(event_bus, runner).run(plan)

    assert runner.calls == ["a.mp4", "b.mp4", "c.mp4"]
    assert result.converted_count == 3
    assert result.skipped_count == 0
    assert result.cancelled is False
    assert result.total_elapsed_seconds >= 0
    assert isinstance(recorded[0], BatchStarted) and recorded[0].total == 3
    assert isinstance(recorded[-1], BatchFinished)
    progress = [(e.current, e.total, e.filename) for e in recorded if isinstance(e, JobProgress)]
    assert progress == [(1, 3, "a.mp4"), (2, 3, "b.mp4"), (3, 3, "c.mp4")]


def test_output_folder_created_before_first_job(tmp_path, event_bus):
    folder = tmp_path / "nested" / "gifs"
    seen = []
    runner = RecordingRunner()
    runner.on_call = lambda request: seen.append(folder.is_dir())

    BatchRunner(event_bus, runner).run(plan_for(tmp_path, ["a.mp4"], folder=folder))

    assert seen == [True]


def test_existing_output_is_skipped(tmp_path, event_bus, recorded):
    plan = plan_for(tmp_path, ["a.mp4", "b.mp4"])
    (tmp_path / "gifs").mkdir()
    (tmp_path / "gifs" / "a.gif").write_bytes(b"old")
    runner = RecordingRunner()

    result = BatchRunner(event_bus, runner).run(plan)

    assert runner.calls == ["b.mp4"]
    assert result.skipped_count == 1
    assert result.converted_count == 1
    assert (tmp_path / "gifs" / "a.gif").read_bytes() == b"old"
    assert [o.status for o in result.outcomes] == [JobStatus.SKIPPED, JobStatus.CONVERTED]
    skipped = [e for e in recorded if isinstance(e, JobSkipped)]
    assert len(skipped) == 1
    # Skipped jobs still report progress
    assert len([e for e in recorded if isinstance(e, JobProgress)]) == 2


def test_rerun_skips_everything(tmp_path, event_bus):
    plan = plan_for(tmp_path, ["a.mp4", "b.mp4"])
    BatchRunner(event_bus, RecordingRunner()).run(plan)

    runner = RecordingRunner()
    result = BatchRunner(event_bus, runner).run(plan)

    assert runner.calls == []
    assert result.skipped_count == 2
    assert result.converted_count == 0


def test_first_failure_aborts_batch(tmp_path, event_bus, recorded):
    runner = RecordingRunner(fail={"b.mp4"})
    plan = plan_for(tmp_path, ["a.mp4", "b.mp4", "c.mp4"])

    with pytest.raises(NonZeroExitError):
        BatchRunner(event_bus, runner).run(plan)

    assert runner.calls == ["a.mp4", "b.mp4"]
    assert len([e for e in recorded if isinstance(e, JobConverted)]) == 1
    failed = [e for e in recorded if isinstance(e, JobFailed)]
    assert len(failed) == 1
    assert "Invalid data found" in failed[0].error_message
    assert not any(isinstance(e, (BatchFinished, BatchCancelled)) for e in recorded)
    assert not (tmp_path / "gifs" / "c.gif").exists()


def test_interrupt_publishes_failure_and_propagates(tmp_path, event_bus, recorded):
    runner = RecordingRunner()

    def interrupt(request):
        if Path(request.input_path).name == "b.mp4":
            raise KeyboardInterrupt

    runner.on_call = interrupt
    plan = plan_for(tmp_path, ["a.mp4", "b.mp4", "c.mp4"])

    with pytest.raises(KeyboardInterrupt):
        BatchRunner(event_bus, runner).run(plan)

    assert runner.calls == ["a.mp4", "b.mp4"]
    failed = [e for e in recorded if isinstance(e, JobFailed)]
    assert len(failed) == 1
    assert Path(failed[0].request.input_path).name == "b.mp4"
    assert "Interrupted" in failed[0].error_message
    assert not any(isinstance(e, (BatchFinished, BatchCancelled)) for e in recorded)


def test_cancel_during_job_stops_at_boundary(tmp_path, event_bus, recorded):
    token = CancellationToken()
    runner = RecordingRunner()
    runner.on_call = lambda request: token.cancel()
    plan = plan_for(tmp_path, ["a.mp4", "b.mp4", "c.mp4"])

    result = BatchRunner(event_bus, runner).run(plan, token)

    # The running job completes, the next one never starts
    assert runner.calls == ["a.mp4"]
    assert result.cancelled is True
    assert result.converted_count == 1
    assert (tmp_path / "gifs" / "a.gif").exists()
    assert isinstance(recorded[-1], BatchCancelled)
    assert recorded[-1].result.converted_count == 1


def test_cancel_before_start_runs_nothing(tmp_path, event_bus):
    token = CancellationToken()
    token.cancel()
    runner = RecordingRunner()

    result = BatchRunner(event_bus, runner).run(plan_for(tmp_path, ["a.mp4"]), token)

    assert runner.calls == []
    assert result.cancelled is True
    assert result.converted_count == 0


def test_empty_plan_finishes(event_bus, recorded):
    result = BatchRunner(event_bus, RecordingRunner()).run([])

    assert result.converted_count == 0
    assert result.cancelled is False
    assert isinstance(recorded[-1], BatchFinished)


def test_uncreatable_folder_fails_only_its_job(tmp_path, event_bus):
    blocker = tmp_path / "blocker"
    blocker.write_text("not a directory")
    good = plan_for(tmp_path, ["a.mp4"])
    bad = plan_for(tmp_path, ["b.mp4"], folder=blocker / "gifs")
    runner = RecordingRunner()

    with pytest.raises(OutputDirectoryError) as excinfo:
        BatchRunner(event_bus, runner).run(good + bad)

    assert runner.calls == ["a.mp4"]
    assert excinfo.value.folder == str(blocker / "gifs")


def test_token_is_idempotent():
    token = CancellationToken()
    assert token.is_cancelled is False
    token.cancel()
    token.cancel()
    assert token.is_cancelled is True
