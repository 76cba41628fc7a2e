from typing import List, Optional
from pydantic import BaseModel, Field, field_validator

DEFAULT_EXTENSIONS = [".mp4", ".mov", ".avi", ".mkv"]

class GeneralConfig(BaseModel):
    fps: int = Field(default=15, gt=0)
    width: int = Field(default=480, gt=0)
    quality: int = Field(default=90, ge=1, le=100)
    output_subdir: str = "gifs"
    extensions: List[str] = Field(default_factory=lambda: list(DEFAULT_EXTENSIONS))
    temp_dir: Optional[str] = None  # Scratch root; must be local storage
    log_path: Optional[str] = None
    debug: bool = False

    @field_validator("extensions")
    @classmethod
    def normalize_extensions(cls, v: List[str]) -> List[str]:
        normalized = []
        for ext in v:
            ext = ext.strip().lower()
            if not ext:
                continue
            normalized.append(ext if ext.startswith(".") else f".{ext}")
        if not normalized:
            raise ValueError("extensions must contain at least one entry")
        return normalized

    @field_validator("output_subdir")
    @classmethod
    def validate_output_subdir(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("output_subdir must not be empty")
        return v

class ProcessConfig(BaseModel):
    """Encoder supervision timings, in seconds."""
    startup_timeout_s: float = Field(default=10.0, gt=0)
    kill_grace_s: float = Field(default=2.0, gt=0)
    activity_poll_s: float = Field(default=2.0, gt=0)
    stall_threshold_s: float = Field(default=10.0, gt=0)

class BinariesConfig(BaseModel):
    bin_dir: Optional[str] = None  # Overrides the bundled bin/ directory
    ffmpeg: str = "ffmpeg"
    gifski: str = "gifski"
    strip_quarantine: bool = True

class AppConfig(BaseModel):
    general: GeneralConfig = Field(default_factory=GeneralConfig)
    process: ProcessConfig = Field(default_factory=ProcessConfig)
    binaries: BinariesConfig = Field(default_factory=BinariesConfig)
