import pytest
from pathlib import Path
from pydantic import ValidationError
from gifbatch.config.loader import load_config
from gifbatch.config.models import AppConfig, GeneralConfig, ProcessConfig

def test_defaults():
    config = AppConfig()
    assert config.general.fps == 15
    assert config.general.width == 480
    assert config.general.quality == 90
    assert config.general.output_subdir == "gifs"
    assert config.general.extensions == [".mp4", ".mov", ".avi", ".mkv"]
    assert config.process.startup_timeout_s == 10.0
    assert config.process.kill_grace_s == 2.0
    assert config.binaries.ffmpeg == "ffmpeg"
    assert config.binaries.gifski == "gifski"

def test_extensions_are_normalized():
    config = GeneralConfig(extensions=["MP4", ".Mov", " mkv "])
    assert config.extensions == [".mp4", ".mov", ".mkv"]

def test_empty_extensions_rejected():
    with pytest.raises(ValidationError):
        GeneralConfig(extensions=[" "])

@pytest.mark.parametrize("field, value", [
    ("fps", 0),
    ("width", -1),
    ("quality", 0),
    ("quality", 101),
    ("output_subdir", "  "),
])
def test_general_validation(field, value):
    with pytest.raises(ValidationError):
        GeneralConfig(**{field: value})

def test_process_timings_must_be_positive():
    with pytest.raises(ValidationError):
        ProcessConfig(startup_timeout_s=0)

def test_load_config(config_yaml_path):
    config = load_config(config_yaml_path)
    assert config.general.fps == 12
    assert config.general.extensions == [".mp4", ".mov"]
    assert config.process.startup_timeout_s == 3.0
    # Untouched sections keep defaults
    assert config.process.kill_grace_s == 2.0
    assert config.binaries.strip_quarantine is True

def test_load_flat_config(tmp_path):
    path = tmp_path / "flat.yaml"
    path.write_text("fps: 20\nquality: 60\n")
    config = load_config(path)
    assert config.general.fps == 20
    assert config.general.quality == 60

def test_load_empty_config(tmp_path):
    path = tmp_path / "empty.yaml"
    path.write_text("")
    assert load_config(path) == AppConfig()

def test_load_missing_config(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_config(tmp_path / "missing.yaml")

def test_load_invalid_config(tmp_path):
    path = tmp_path / "bad.yaml"
    path.write_text("general:\n  quality: 500\n")
    with pytest.raises(ValidationError):
        load_config(path)

def test_example_config_loads():
    repo_root = Path(__file__).resolve().parents[2]
    config = load_config(repo_root / "conf" / "gifbatch.yaml")
    assert config == AppConfig()
