"""Cooperative cancellation and per-task deadlines.

Neither is preemptive: workers poll them at fixed checkpoints (before
starting, after directory setup, before and after the encoder call) and
encoders poll them while their child process runs.
"""

import threading
import time
from typing import Callable, Optional
from mediaopt.domain.errors import Cancelled, ProcessingTimeout


class CancellationToken:
    """Broadcast stop signal shared by every task of a run."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def wait(self, timeout: Optional[float] = None) -> bool:
        return self._event.wait(timeout)

    def checkpoint(self, where: str = "") -> None:
        if self._event.is_set():
            raise Cancelled(f"Cancelled{' ' + where if where else ''}")


class Deadline:
    """Wall clock budget for one running task."""

    def __init__(self, seconds: float, clock: Callable[[], float] = time.monotonic):
        self.seconds = seconds
        self._clock = clock
        self._expires_at = clock() + seconds

    def remaining(self) -> float:
        return max(0.0, self._expires_at - self._clock())

    @property
    def expired(self) -> bool:
        return self._clock() >= self._expires_at

    def check(self, what: str = "task") -> None:
        if self.expired:
            raise ProcessingTimeout(f"{what} exceeded {self.seconds:.0f}s", limit_seconds=self.seconds)
