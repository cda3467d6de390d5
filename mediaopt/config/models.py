import re
from pathlib import Path
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

MIB = 1024 * 1024

_BITRATE_RE = re.compile(r"^\d+[kKmM]?$")


class TimeoutConfig(BaseModel):
    """Per-class wall clock limits (seconds) for a running task."""
    model_config = ConfigDict(frozen=True)

    video: float = Field(default=900.0, gt=0)
    large: float = Field(default=1200.0, gt=0)
    medium: float = Field(default=300.0, gt=0)
    small: float = Field(default=120.0, gt=0)


class SizeClassConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    small_max_bytes: int = Field(default=5 * MIB, gt=0)
    medium_max_bytes: int = Field(default=20 * MIB, gt=0)

    @model_validator(mode="after")
    def validate_order(self):
        if self.small_max_bytes >= self.medium_max_bytes:
            raise ValueError("small_max_bytes must be < medium_max_bytes")
        return self


class RunConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    jpeg_quality: int = Field(default=80, ge=1, le=100)
    webp_quality: int = Field(default=80, ge=1, le=100)
    video_crf: int = Field(default=26, ge=0, le=51)
    audio_bitrate: str = "128k"
    size_threshold: float = Field(default=0.9, gt=0.0, le=1.0)
    workers: int = Field(default=4, gt=0)
    output_dir: Optional[Path] = None
    convert_to_webp: bool = False
    keep_existing: bool = False
    skip_video: bool = False
    dry_run: bool = False
    json_output: bool = False
    debug: bool = False
    log_path: Optional[Path] = None
    task_spawn_limit: int = Field(default=64, gt=0)
    timeouts: TimeoutConfig = Field(default_factory=TimeoutConfig)
    size_classes: SizeClassConfig = Field(default_factory=SizeClassConfig)

    @field_validator("audio_bitrate")
    @classmethod
    def validate_audio_bitrate(cls, v: str) -> str:
        v = v.strip()
        if not _BITRATE_RE.match(v):
            raise ValueError(f"Invalid audio bitrate: {v!r} (expected e.g. 128k)")
        return v

    @property
    def in_place(self) -> bool:
        return self.output_dir is None
