"""Error taxonomy for media optimization runs.

Per-file errors (Io, Encoder, Timeout, UnsupportedFormat, State) are caught at the
task boundary and recorded on the job. Run-level errors (Validation,
MissingDependency) abort the run before any file is scheduled.
"""

from enum import Enum
from typing import Iterable, Optional


class ErrorKind(str, Enum):
    IO = "io"
    ENCODER = "encoder"
    TIMEOUT = "timeout"
    UNSUPPORTED_FORMAT = "unsupported_format"
    VALIDATION = "validation"
    MISSING_DEPENDENCY = "missing_dependency"
    STATE = "state"
    CANCELLED = "cancelled"


class OptimizeError(Exception):
    """Base class for all errors raised by mediaopt."""

    kind: ErrorKind = ErrorKind.IO


class FileIOError(OptimizeError):
    kind = ErrorKind.IO


class EncoderError(OptimizeError):
    kind = ErrorKind.ENCODER


class ProcessingTimeout(OptimizeError):
    kind = ErrorKind.TIMEOUT

    def __init__(self, message: str, limit_seconds: Optional[float] = None):
        super().__init__(message)
        self.limit_seconds = limit_seconds


class UnsupportedFormatError(OptimizeError):
    kind = ErrorKind.UNSUPPORTED_FORMAT


class ConfigValidationError(OptimizeError):
    kind = ErrorKind.VALIDATION


class MissingDependencyError(OptimizeError):
    kind = ErrorKind.MISSING_DEPENDENCY

    def __init__(self, tools: Iterable[str]):
        self.tools = list(tools)
        super().__init__(f"Missing required tools: {', '.join(self.tools)}")


class StateError(OptimizeError):
    kind = ErrorKind.STATE


class Cancelled(OptimizeError):
    """Raised at a checkpoint once the run has been cancelled."""

    kind = ErrorKind.CANCELLED
