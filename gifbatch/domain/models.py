import os
from enum import Enum
from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field

class JobStatus(str, Enum):
    CONVERTED = "CONVERTED"
    SKIPPED = "SKIPPED"
    FAILED = "FAILED"

class JobState(str, Enum):
    INIT = "INIT"
    EXTRACTING_FRAMES = "EXTRACTING_FRAMES"
    ENCODING = "ENCODING"
    DONE = "DONE"
    FAILED = "FAILED"

class ConversionRequest(BaseModel):
    """One input video and where its GIF goes. Never mutated once built."""
    model_config = ConfigDict(frozen=True)

    input_path: str
    output_path: str
    output_folder: Optional[str] = None
    fps: int = Field(gt=0)
    width: int = Field(gt=0)
    quality: int = Field(ge=1, le=100)

    @property
    def destination_folder(self) -> str:
        return self.output_folder or os.path.dirname(self.output_path)

    @property
    def display_name(self) -> str:
        return os.path.basename(self.input_path.replace("\\", "/"))

class JobOutcome(BaseModel):
    request: ConversionRequest
    status: JobStatus
    reason: Optional[str] = None
    frame_count: int = 0
    output_size_bytes: Optional[int] = None
    duration_seconds: Optional[float] = None

class BatchResult(BaseModel):
    converted_count: int = 0
    skipped_count: int = 0
    total_elapsed_seconds: float = 0.0
    cancelled: bool = False
    outcomes: List[JobOutcome] = Field(default_factory=list)

class FileStats(BaseModel):
    is_directory: bool = False
    is_file: bool = False
