import platform
import stat
import sys
import textwrap
import pytest
import yaml
from pathlib import Path
from gifbatch.config.models import AppConfig
from gifbatch.domain.models import ConversionRequest
from gifbatch.infrastructure.event_bus import EventBus
from gifbatch.infrastructure.paths import PathResolver, platform_folder

# ============================================================================
# Configuration Fixtures
# ============================================================================

@pytest.fixture
def scratch_root(tmp_path):
    root = tmp_path / "scratch"
    root.mkdir()
    return root

@pytest.fixture
def sample_config(scratch_root):
    """AppConfig with short supervision timings and a private scratch root."""
    return AppConfig(
        general={
            "fps": 10,
            "width": 320,
            "quality": 80,
            "temp_dir": str(scratch_root),
        },
        process={
            "startup_timeout_s": 5.0,
            "kill_grace_s": 1.0,
            "activity_poll_s": 0.05,
            "stall_threshold_s": 5.0,
        },
        binaries={"strip_quarantine": False},
    )

@pytest.fixture
def config_yaml_path(tmp_path):
    config_file = tmp_path / "gifbatch.yaml"
    config_file.write_text(yaml.dump({
        "general": {"fps": 12, "width": 400, "quality": 70, "extensions": ["MP4", ".mov"]},
        "process": {"startup_timeout_s": 3.0},
    }))
    return config_file

@pytest.fixture
def event_bus():
    return EventBus()

@pytest.fixture
def make_request(tmp_path):
    """Builds a ConversionRequest for <tmp>/videos/<name> -> <tmp>/videos/gifs/<stem>.gif."""
    def _make(name: str = "clip.mp4", content: str = "ok", fps: int = 10, width: int = 320, quality: int = 80):
        videos = tmp_path / "videos"
        videos.mkdir(exist_ok=True)
        source = videos / name
        source.write_text(content)
        folder = videos / "gifs"
        return ConversionRequest(
            input_path=str(source),
            output_path=str(folder / (source.stem + ".gif")),
            output_folder=str(folder),
            fps=fps,
            width=width,
            quality=quality,
        )
    return _make

# ============================================================================
# Fake Encoders
# ============================================================================

# Stage 1 stand-in: behaviour is picked by the content of the input "video".
FAKE_FFMPEG = """
import os, signal, sys, time

args = sys.argv[1:]
if "-version" in args:
    print("ffmpeg version 6.1-fake")
    sys.exit(0)

src = args[args.index("-i") + 1]
pattern = args[-1]
log = os.environ.get("FAKE_ENCODER_LOG")
if log:
    with open(log, "a") as f:
        f.write("ffmpeg " + os.path.basename(src) + "\\n")

with open(src) as f:
    mode = f.read().strip()

if mode == "fail":
    sys.stderr.write("Invalid data found when processing input\\n")
    sys.exit(1)
if mode == "empty":
    sys.exit(0)
if mode == "hang":
    time.sleep(30)
    sys.exit(0)
if mode == "killed":
    os.kill(os.getpid(), signal.SIGKILL)

sys.stderr.write("ffmpeg version 6.1-fake\\n")
sys.stderr.flush()
for i in range(1, 4):
    with open(pattern % i, "wb") as f:
        f.write(b"PNG")
"""

# Stage 2 stand-in: FAKE_GIFSKI_MODE selects fail / partial / nooutput.
FAKE_GIFSKI = """
import os, sys

args = sys.argv[1:]
if "--version" in args:
    print("gifski 1.32.0-fake")
    sys.exit(0)

out = args[args.index("-o") + 1]
frames = args[args.index("-o") + 2:]
log = os.environ.get("FAKE_ENCODER_LOG")
if log:
    with open(log, "a") as f:
        f.write("gifski " + os.path.basename(out) + "\\n")

mode = os.environ.get("FAKE_GIFSKI_MODE", "")
if mode == "fail":
    sys.stderr.write("error: unable to encode\\n")
    sys.exit(1)
if mode == "partial":
    with open(out, "wb") as f:
        f.write(b"GIF89a")
    sys.exit(2)
if mode == "nooutput":
    sys.exit(0)

with open(out, "wb") as f:
    f.write(b"GIF89a" + str(len(frames)).encode())
sys.stderr.write("%d frames\\n" % len(frames))
"""

def _write_script(path: Path, body: str) -> None:
    path.write_text(f"#!{sys.executable}\n" + textwrap.dedent(body))
    path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)

@pytest.fixture
def fake_bin_dir(tmp_path):
    """bin/<platform>/ with executable ffmpeg and gifski stand-ins."""
    if sys.platform == "win32":
        pytest.skip("fake encoder scripts need shebang support")
    bin_dir = tmp_path / "bin"
    folder = bin_dir / platform_folder(sys.platform, platform.machine())
    folder.mkdir(parents=True)
    _write_script(folder / "ffmpeg", FAKE_FFMPEG)
    _write_script(folder / "gifski", FAKE_GIFSKI)
    return bin_dir

@pytest.fixture
def fake_resolver(fake_bin_dir):
    return PathResolver(bin_dir=fake_bin_dir, strip_quarantine=False)

@pytest.fixture
def encoder_log(tmp_path, monkeypatch):
    """Path the fake encoders append one line per invocation to."""
    log = tmp_path / "encoder_calls.log"
    monkeypatch.setenv("FAKE_ENCODER_LOG", str(log))

    def _calls():
        if not log.exists():
            return []
        return log.read_text().splitlines()
    return _calls

@pytest.fixture
def workspaces_left(scratch_root):
    """Lists gifbatch_* scratch directories still present under the scratch root."""
    def _left():
        return [p for p in scratch_root.iterdir() if p.name.startswith("gifbatch_")]
    return _left

# ============================================================================
# Markers
# ============================================================================

def pytest_configure(config):
    config.addinivalue_line("markers", "integration: runs fake encoder subprocesses end to end")
    config.addinivalue_line("markers", "slow: waits on real process timeouts")
