import threading
from mediaopt.domain.events import FileCompleted, ProgressUpdated
from mediaopt.domain.models import JobStatus, OptimizationJob, RunStats
from mediaopt.infrastructure.event_bus import EventBus


class ProgressTracker:
    """Run-scoped counters, updated concurrently as jobs settle.

    Every recorded job produces one FileCompleted and one ProgressUpdated
    event; renderers (console, JSON lines) only ever see these events.
    """

    def __init__(self, event_bus: EventBus, total: int):
        self.event_bus = event_bus
        self.total = total
        self._stats = RunStats()
        self._lock = threading.Lock()

    def record(self, job: OptimizationJob) -> None:
        source = job.source_file
        with self._lock:
            stats = self._stats
            stats.files_processed += 1

            if job.status == JobStatus.COMPLETED and job.record is not None:
                stats.total_original_size += job.record.original_size
                if job.kept:
                    stats.files_optimized += 1
                    stats.total_bytes_saved += job.record.bytes_saved
                else:
                    stats.files_skipped += 1
            elif job.status == JobStatus.SKIPPED:
                stats.files_skipped += 1
            else:
                # FAILED, TIMED_OUT, INTERRUPTED
                stats.errors += 1

            if job.record is not None:
                completed = FileCompleted(
                    path=job.record.path,
                    original_size=job.record.original_size,
                    optimized_size=job.record.optimized_size,
                    reduction_percent=job.record.reduction_percent,
                    skipped=not job.kept,
                    error=job.error_message,
                )
            else:
                completed = FileCompleted(
                    path=source.path,
                    original_size=source.size_bytes,
                    optimized_size=source.size_bytes,
                    reduction_percent=0.0,
                    skipped=job.status == JobStatus.SKIPPED,
                    error=job.error_message,
                )

            current = stats.files_processed
            progress = ProgressUpdated(
                current=current,
                total=self.total,
                percentage=(current / self.total * 100.0) if self.total else 100.0,
                files_optimized=stats.files_optimized,
                files_skipped=stats.files_skipped,
                errors=stats.errors,
                bytes_saved=stats.total_bytes_saved,
            )
            # published under the lock so progress events stay in order
            self.event_bus.publish(completed)
            self.event_bus.publish(progress)

    def snapshot(self) -> RunStats:
        with self._lock:
            return self._stats.model_copy()
