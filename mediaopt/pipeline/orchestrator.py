"""Run orchestration for media optimization.

Key responsibilities:
- Housekeeping of work files left by an interrupted run
- Ledger garbage collection and discovery of the file list
- One worker task per file; each task blocks on its class permits, then runs
  the FileProcessor under its class timeout
- Graceful Ctrl+C: cancel the shared token, give running tasks 10s, shut down
- Final report combining run counters with the ledger's lifetime statistics
"""

import concurrent.futures
import logging
import time
from collections import Counter
from pathlib import Path
from typing import List, Optional
from mediaopt.config.models import RunConfig
from mediaopt.domain.cancellation import CancellationToken, Deadline
from mediaopt.domain.errors import Cancelled, ErrorKind
from mediaopt.domain.events import FileStarted, RunCompleted, RunConfigSummary, RunStarted
from mediaopt.domain.models import (
    DiscoveredFile,
    HistoricalStats,
    JobStatus,
    OptimizationJob,
    RunReport,
    SizeClass,
    format_size,
)
from mediaopt.infrastructure.event_bus import EventBus
from mediaopt.infrastructure.file_scanner import FileScanner
from mediaopt.infrastructure.housekeeping import HousekeepingService
from mediaopt.infrastructure.ledger import Ledger
from mediaopt.pipeline.file_processor import FileProcessor
from mediaopt.pipeline.progress import ProgressTracker
from mediaopt.pipeline.scheduler import ConcurrencyScheduler

SHUTDOWN_GRACE_SECONDS = 10.0


class Orchestrator:
    """Runs one optimization pass over a directory tree.

    Args:
        config: Validated RunConfig.
        event_bus: EventBus the progress events are published on.
        file_scanner: FileScanner producing the deduplicated file list.
        ledger: Ledger of the input root, already loaded.
        scheduler: ConcurrencyScheduler handing out permits.
        processor: FileProcessor running the per-file pipeline.
        housekeeper: Optional HousekeepingService run before discovery.
        cancel_token: Shared CancellationToken; one is created if omitted.
    """

    def __init__(
        self,
        config: RunConfig,
        event_bus: EventBus,
        file_scanner: FileScanner,
        ledger: Ledger,
        scheduler: ConcurrencyScheduler,
        processor: FileProcessor,
        housekeeper: Optional[HousekeepingService] = None,
        cancel_token: Optional[CancellationToken] = None,
    ):
        self.config = config
        self.event_bus = event_bus
        self.file_scanner = file_scanner
        self.ledger = ledger
        self.scheduler = scheduler
        self.processor = processor
        self.housekeeper = housekeeper
        self.cancel_token = cancel_token or CancellationToken()
        self.logger = logging.getLogger(__name__)

    def _timeout_for(self, size_class: SizeClass) -> float:
        timeouts = self.config.timeouts
        return {
            SizeClass.SMALL: timeouts.small,
            SizeClass.MEDIUM: timeouts.medium,
            SizeClass.LARGE: timeouts.large,
            SizeClass.VIDEO: timeouts.video,
        }[size_class]

    def _housekeeping(self, input_dir: Path) -> None:
        if self.housekeeper is None:
            return
        self.housekeeper.restore_backups(input_dir)
        self.housekeeper.cleanup_staging_files(input_dir)
        output_dir = self.config.output_dir
        if output_dir is not None and output_dir.exists():
            self.housekeeper.cleanup_staging_files(output_dir)

    def _log_distribution(self, files: List[DiscoveredFile]) -> None:
        counts = Counter(self.scheduler.classify(f) for f in files)
        total_bytes = sum(f.size_bytes for f in files)
        self.logger.info(
            f"Discovery finished: files={len(files)} size={format_size(total_bytes)} "
            f"small={counts[SizeClass.SMALL]} medium={counts[SizeClass.MEDIUM]} "
            f"large={counts[SizeClass.LARGE]} video={counts[SizeClass.VIDEO]}"
        )

    def _run_task(self, file: DiscoveredFile, index: int, total: int, tracker: ProgressTracker) -> OptimizationJob:
        """Task boundary: whatever happens here is recorded, never raised."""
        filename = file.path.name
        job = OptimizationJob(source_file=file, status=JobStatus.WAITING)
        try:
            permit = self.scheduler.acquire(file, self.cancel_token)
            with permit:
                job.status = JobStatus.PROCESSING
                if self.config.debug:
                    self.logger.debug(f"PROCESS_START: {filename} class={permit.size_class.value} permits={permit.held}")
                self.event_bus.publish(FileStarted(path=file.path, size=file.size_bytes, index=index, total=total))
                deadline = Deadline(self._timeout_for(permit.size_class))
                self.processor.process(job, deadline, self.cancel_token)
        except Cancelled as exc:
            job.status = JobStatus.INTERRUPTED
            job.error_kind = ErrorKind.CANCELLED
            job.error_message = str(exc)
        except Exception as exc:
            self.logger.exception(f"Exception processing {filename}: {exc}")
            job.status = JobStatus.FAILED
            job.error_message = f"Unexpected error: {exc}"

        if self.config.debug:
            duration = job.duration_seconds or 0.0
            self.logger.debug(f"PROCESS_END: {filename} status={job.status.value} elapsed={duration:.2f}s")
        tracker.record(job)
        return job

    def _run_all(self, files: List[DiscoveredFile], tracker: ProgressTracker) -> None:
        total = len(files)
        max_workers = max(1, min(self.config.task_spawn_limit, total))
        with concurrent.futures.ThreadPoolExecutor(max_workers=max_workers) as executor:
            in_flight = {
                executor.submit(self._run_task, file, index, total, tracker): file
                for index, file in enumerate(files)
            }
            try:
                pending = set(in_flight)
                while pending:
                    done, pending = concurrent.futures.wait(
                        pending,
                        timeout=1.0,
                        return_when=concurrent.futures.FIRST_COMPLETED
                    )
                    for future in done:
                        try:
                            future.result()
                        except Exception as e:
                            self.logger.error(f"Task for {in_flight[future].path} failed: {e}")
            except KeyboardInterrupt:
                self.logger.info("Ctrl+C detected - cancelling queued tasks and interrupting active ones...")
                self.cancel_token.cancel()
                for future in in_flight:
                    if not future.done():
                        future.cancel()

                deadline = time.monotonic() + SHUTDOWN_GRACE_SECONDS
                while True:
                    running = [future for future in in_flight if not future.done()]
                    if not running:
                        break
                    remaining = deadline - time.monotonic()
                    if remaining <= 0:
                        break
                    concurrent.futures.wait(
                        running,
                        timeout=min(0.2, remaining),
                        return_when=concurrent.futures.FIRST_COMPLETED
                    )

                executor.shutdown(wait=False, cancel_futures=True)
                self.logger.info("Shutdown complete")
                raise

    def run(self, input_dir: Path) -> RunReport:
        start_time = time.monotonic()
        input_dir = Path(input_dir).resolve()
        self.logger.info(f"Run started: input={input_dir} output={self.config.output_dir or 'in-place'} dry_run={self.config.dry_run}")

        self._housekeeping(input_dir)
        self.ledger.cleanup()

        files = self.file_scanner.scan_all(input_dir)
        self._log_distribution(files)

        config = self.config
        self.event_bus.publish(RunStarted(
            input_dir=input_dir,
            output_dir=config.output_dir,
            total_files=len(files),
            config=RunConfigSummary(
                jpeg_quality=config.jpeg_quality,
                video_crf=config.video_crf,
                workers=config.workers,
                convert_to_webp=config.convert_to_webp,
                webp_quality=config.webp_quality,
                dry_run=config.dry_run,
            ),
        ))

        tracker = ProgressTracker(self.event_bus, total=len(files))
        if files:
            self._run_all(files, tracker)
        else:
            self.logger.info("No files to process")

        stats = tracker.snapshot()
        count, saved, average = self.ledger.stats()
        historical = HistoricalStats(
            total_files_ever_processed=count,
            total_bytes_saved_historically=saved,
            average_historical_reduction=average,
        )
        duration = time.monotonic() - start_time

        self.event_bus.publish(RunCompleted(
            files_processed=stats.files_processed,
            files_optimized=stats.files_optimized,
            files_skipped=stats.files_skipped,
            errors=stats.errors,
            total_bytes_saved=stats.total_bytes_saved,
            average_reduction=stats.overall_reduction_percent,
            duration_seconds=duration,
            historical_stats=historical,
        ))
        self.logger.info(f"Run finished in {duration:.1f}s: {stats.summary()}")

        return RunReport(total_files=len(files), stats=stats, historical=historical, duration_seconds=duration)
