from enum import Enum
from pathlib import Path
from typing import Optional
from pydantic import BaseModel, ConfigDict
from mediaopt.domain.errors import ErrorKind

IMAGE_EXTENSIONS = frozenset({"jpg", "jpeg", "png", "webp"})
VIDEO_EXTENSIONS = frozenset({"mp4", "mov", "avi", "mkv", "webm"})


class MediaKind(str, Enum):
    IMAGE = "image"
    VIDEO = "video"

    @classmethod
    def from_path(cls, path: Path) -> Optional["MediaKind"]:
        ext = path.suffix.lower().lstrip(".")
        if ext in IMAGE_EXTENSIONS:
            return cls.IMAGE
        if ext in VIDEO_EXTENSIONS:
            return cls.VIDEO
        return None


class SizeClass(str, Enum):
    SMALL = "small"
    MEDIUM = "medium"
    LARGE = "large"
    VIDEO = "video"


class JobStatus(str, Enum):
    PENDING = "PENDING"        # discovered, not yet asking for permits
    WAITING = "WAITING"        # blocked on permit acquisition
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    SKIPPED = "SKIPPED"
    FAILED = "FAILED"
    TIMED_OUT = "TIMED_OUT"
    INTERRUPTED = "INTERRUPTED"


class DiscoveredFile(BaseModel):
    model_config = ConfigDict(frozen=True)

    path: Path
    size_bytes: int
    modified_time: int
    kind: MediaKind


class ProcessedRecord(BaseModel):
    """Ledger entry for one file. Field names are the on-disk JSON keys."""

    model_config = ConfigDict(frozen=True)

    path: Path
    modified_time: int
    original_size: int
    optimized_size: int
    reduction_percent: float
    processed_at: int

    @classmethod
    def create(cls, path: Path, modified_time: int, original_size: int,
               optimized_size: int, processed_at: int) -> "ProcessedRecord":
        return cls(
            path=path,
            modified_time=modified_time,
            original_size=original_size,
            optimized_size=optimized_size,
            reduction_percent=reduction_percent(original_size, optimized_size),
            processed_at=processed_at,
        )

    @property
    def bytes_saved(self) -> int:
        return max(0, self.original_size - self.optimized_size)


class OptimizationJob(BaseModel):
    source_file: DiscoveredFile
    status: JobStatus = JobStatus.PENDING
    output_path: Optional[Path] = None
    record: Optional[ProcessedRecord] = None
    kept: bool = False
    error_kind: Optional[ErrorKind] = None
    error_message: Optional[str] = None
    duration_seconds: Optional[float] = None


class HistoricalStats(BaseModel):
    total_files_ever_processed: int = 0
    total_bytes_saved_historically: int = 0
    average_historical_reduction: float = 0.0


class RunStats(BaseModel):
    files_processed: int = 0
    files_optimized: int = 0
    files_skipped: int = 0
    errors: int = 0
    total_bytes_saved: int = 0
    total_original_size: int = 0

    @property
    def overall_reduction_percent(self) -> float:
        if self.total_original_size == 0:
            return 0.0
        return self.total_bytes_saved / self.total_original_size * 100.0

    def summary(self) -> str:
        return (
            f"Processed: {self.files_processed} files | "
            f"Optimized: {self.files_optimized} | "
            f"Skipped: {self.files_skipped} | "
            f"Errors: {self.errors} | "
            f"Total saved: {format_size(self.total_bytes_saved)} "
            f"({self.overall_reduction_percent:.1f}%)"
        )


class RunReport(BaseModel):
    """What a finished run hands back to the caller."""

    total_files: int
    stats: RunStats
    historical: HistoricalStats
    duration_seconds: float


def reduction_percent(original_size: int, optimized_size: int) -> float:
    if original_size == 0:
        return 0.0
    return (1.0 - optimized_size / original_size) * 100.0


def format_size(size: float) -> str:
    """Human readable byte count: whole bytes below 1 KB, two decimals above."""
    units = ["B", "KB", "MB", "GB", "TB"]
    value = float(size)
    unit_index = 0
    while value >= 1024.0 and unit_index < len(units) - 1:
        value /= 1024.0
        unit_index += 1
    if unit_index == 0:
        return f"{int(value)} {units[0]}"
    return f"{value:.2f} {units[unit_index]}"
