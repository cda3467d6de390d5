"""Domain events for the media optimization pipeline.

Events flow through the EventBus and decouple the orchestrator from the
presentation layer. Field names match the structured (JSON lines) protocol,
see `ui/json_output.py` for the `type` tag each event is written with.
"""

from pathlib import Path
from typing import Optional
from pydantic import BaseModel
from .models import HistoricalStats


class Event(BaseModel):
    """Base class for all domain events."""

    pass


class RunConfigSummary(BaseModel):
    """Subset of RunConfig echoed in the start event."""

    jpeg_quality: int
    video_crf: int
    workers: int
    convert_to_webp: bool
    webp_quality: int
    dry_run: bool


class RunStarted(Event):
    """Emitted once discovery is done, before any task is launched."""

    input_dir: Path
    output_dir: Optional[Path] = None
    total_files: int
    config: RunConfigSummary


class FileStarted(Event):
    """Emitted when a task holds its permits and starts running."""

    path: Path
    size: int
    index: int
    total: int


class FileCompleted(Event):
    """Emitted once per settled task, whatever the outcome."""

    path: Path
    original_size: int
    optimized_size: int
    reduction_percent: float
    skipped: bool
    error: Optional[str] = None


class ProgressUpdated(Event):
    """Emitted after every FileCompleted with the running counters."""

    current: int
    total: int
    percentage: float
    files_optimized: int
    files_skipped: int
    errors: int
    bytes_saved: int


class RunCompleted(Event):
    """Emitted after every launched task has settled."""

    files_processed: int
    files_optimized: int
    files_skipped: int
    errors: int
    total_bytes_saved: int
    average_reduction: float
    duration_seconds: float
    historical_stats: HistoricalStats


class RunFailed(Event):
    """Emitted for run-level failures (missing tools, ledger unreadable, ...)."""

    message: str
    details: Optional[str] = None
