"""Resource-classified permit scheduler.

Each file is classified into a SizeClass and must hold the permits of its
class before it may run. For a worker budget N:

- SMALL:  one of N small permits plus one global permit
- MEDIUM: one of max(1, N // 2) medium permits plus one global permit
- LARGE:  the single large permit, then every global permit that is free
          right now (non-blocking drain), so new small/medium tasks wait
          until the large file is done. Tasks already running are not touched.
- VIDEO:  the single video permit, independent of everything else

Waiting blocks only the calling worker thread and polls the cancellation
token, so a cancelled run never hangs on a semaphore.
"""

import logging
import threading
from typing import List, Optional
from mediaopt.config.models import SizeClassConfig
from mediaopt.domain.cancellation import CancellationToken
from mediaopt.domain.models import DiscoveredFile, MediaKind, SizeClass

_POLL_INTERVAL = 0.1


def classify(file: DiscoveredFile, thresholds: Optional[SizeClassConfig] = None) -> SizeClass:
    if file.kind == MediaKind.VIDEO:
        return SizeClass.VIDEO
    thresholds = thresholds or SizeClassConfig()
    if file.size_bytes < thresholds.small_max_bytes:
        return SizeClass.SMALL
    if file.size_bytes < thresholds.medium_max_bytes:
        return SizeClass.MEDIUM
    return SizeClass.LARGE


class Permit:
    """Permits held by one task. Released exactly once, on scope exit."""

    def __init__(self, size_class: SizeClass, semaphores: List[threading.Semaphore]):
        self.size_class = size_class
        self._semaphores = semaphores
        self._released = False
        self._lock = threading.Lock()

    @property
    def held(self) -> int:
        return 0 if self._released else len(self._semaphores)

    def release(self) -> None:
        with self._lock:
            if self._released:
                return
            self._released = True
            # reverse acquisition order
            for semaphore in reversed(self._semaphores):
                semaphore.release()

    def __enter__(self) -> "Permit":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.release()
        return False


class ConcurrencyScheduler:
    def __init__(self, workers: int, thresholds: Optional[SizeClassConfig] = None):
        if workers < 1:
            raise ValueError("workers must be >= 1")
        self.workers = workers
        self.thresholds = thresholds or SizeClassConfig()
        self.logger = logging.getLogger(__name__)
        self._class_semaphores = {
            SizeClass.SMALL: threading.Semaphore(workers),
            SizeClass.MEDIUM: threading.Semaphore(max(1, workers // 2)),
            SizeClass.LARGE: threading.Semaphore(1),
            SizeClass.VIDEO: threading.Semaphore(1),
        }
        self._global = threading.Semaphore(workers)

    def classify(self, file: DiscoveredFile) -> SizeClass:
        return classify(file, self.thresholds)

    def _acquire_blocking(self, semaphore: threading.Semaphore, cancel: Optional[CancellationToken]) -> None:
        while not semaphore.acquire(timeout=_POLL_INTERVAL):
            if cancel is not None:
                cancel.checkpoint("while waiting for a permit")

    def acquire(self, file: DiscoveredFile, cancel: Optional[CancellationToken] = None) -> Permit:
        """Blocks until the file's class permits are held. Raises Cancelled if the token fires."""
        size_class = self.classify(file)
        acquired: List[threading.Semaphore] = []
        try:
            class_semaphore = self._class_semaphores[size_class]
            self._acquire_blocking(class_semaphore, cancel)
            acquired.append(class_semaphore)

            if size_class in (SizeClass.SMALL, SizeClass.MEDIUM):
                self._acquire_blocking(self._global, cancel)
                acquired.append(self._global)
            elif size_class == SizeClass.LARGE:
                drained = 0
                while self._global.acquire(blocking=False):
                    acquired.append(self._global)
                    drained += 1
                self.logger.debug(f"PERMIT_DRAIN: {file.path.name} holds {drained}/{self.workers} global permits")
        except BaseException:
            for semaphore in reversed(acquired):
                semaphore.release()
            raise

        self.logger.debug(f"PERMIT_ACQUIRED: {file.path.name} class={size_class.value} permits={len(acquired)}")
        return Permit(size_class, acquired)
