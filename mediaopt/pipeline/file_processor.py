"""Per-file pipeline: skip check, encode, threshold decision, commit, ledger.

Per-file errors are recorded on the job and never raised to the caller;
anything unexpected propagates to the orchestrator's task boundary.
"""

import logging
import tempfile
import time
from pathlib import Path
from typing import Callable, Dict, Optional, Protocol, Tuple
from mediaopt.config.models import RunConfig
from mediaopt.domain.cancellation import CancellationToken, Deadline
from mediaopt.domain.errors import (
    Cancelled,
    EncoderError,
    ErrorKind,
    FileIOError,
    OptimizeError,
    ProcessingTimeout,
    UnsupportedFormatError,
)
from mediaopt.domain.models import JobStatus, MediaKind, OptimizationJob, ProcessedRecord
from mediaopt.infrastructure.file_ops import (
    copy_original,
    remove_quietly,
    remove_scratch_dir,
    replace_file,
    staging_path_for,
)
from mediaopt.infrastructure.ledger import Ledger
from mediaopt.pipeline.path_resolver import resolve_output_path


class MediaEncoder(Protocol):
    def encode(
        self,
        source: Path,
        destination: Path,
        timeout: Optional[float] = None,
        cancel: Optional[CancellationToken] = None,
    ) -> None:
        ...


def should_replace(original_size: int, optimized_size: int, threshold: float) -> bool:
    """Keep the optimized result only when strictly below original * threshold."""
    return optimized_size < original_size * threshold


class FileProcessor:
    def __init__(
        self,
        config: RunConfig,
        input_root: Path,
        ledger: Ledger,
        encoders: Dict[MediaKind, MediaEncoder],
        clock: Callable[[], float] = time.time,
    ):
        self.config = config
        self.input_root = Path(input_root).resolve()
        self.ledger = ledger
        self.encoders = encoders
        self.clock = clock
        self.logger = logging.getLogger(__name__)

    def _stat(self, path: Path) -> Tuple[Path, int, int]:
        try:
            canonical = path.resolve(strict=True)
            st = canonical.stat()
        except OSError as exc:
            raise FileIOError(f"Cannot read {path}: {exc}") from exc
        return canonical, st.st_size, int(st.st_mtime)

    def _should_skip(self, path: Path, modified_time: int, output_path: Path) -> bool:
        if self.config.in_place:
            return self.ledger.is_processed(path, modified_time)
        return self.config.keep_existing and output_path.exists()

    def _encode(self, encoder: MediaEncoder, source: Path, staging: Path,
                deadline: Deadline, cancel: CancellationToken) -> None:
        try:
            encoder.encode(source, staging, timeout=deadline.remaining(), cancel=cancel)
        except OptimizeError:
            raise
        except Exception as exc:
            raise EncoderError(f"Encoder failed for {source}: {exc}") from exc
        if not staging.exists():
            raise EncoderError(f"Encoder produced no output for {source}")

    def _commit(self, source: Path, staging: Path, output_path: Path, keep: bool) -> None:
        name = source.name
        if self.config.dry_run:
            if not keep:
                self.logger.info(f"DRY_RUN: {name} would keep original")
            elif self.config.in_place:
                self.logger.info(f"DRY_RUN: {name} would replace with {output_path.name}")
            else:
                self.logger.info(f"DRY_RUN: {name} would save to {output_path}")
            return

        if self.config.in_place:
            if not keep:
                self.logger.info(f"KEEP_ORIGINAL: {name} insufficient reduction")
                return
            if output_path != source and output_path.exists():
                raise FileIOError(f"Refusing to overwrite existing {output_path} while converting {source}")
            replace_file(output_path, staging)
            if output_path != source:
                try:
                    source.unlink()
                except OSError as exc:
                    raise FileIOError(f"Converted {source} but could not remove it: {exc}") from exc
            self.logger.info(f"REPLACED: {name} -> {output_path.name}")
        elif keep:
            replace_file(output_path, staging)
            self.logger.info(f"SAVED: {name} -> {output_path}")
        else:
            copy_original(source, output_path)
            self.logger.info(f"COPIED_ORIGINAL: {name} -> {output_path} (insufficient reduction)")

    def _update_ledger(self, record: ProcessedRecord, source: Path, output_path: Path, keep: bool) -> None:
        committed = output_path if keep else source
        try:
            modified_time = int(committed.stat().st_mtime)
        except OSError as exc:
            raise FileIOError(f"Cannot stat committed file {committed}: {exc}") from exc
        self.ledger.mark_processed(record.model_copy(update={"path": committed, "modified_time": modified_time}))

    def _pass_through_video(self, job: OptimizationJob, source: Path, output_path: Path) -> OptimizationJob:
        job.status = JobStatus.SKIPPED
        if self.config.in_place:
            self.logger.info(f"VIDEO_SKIP: {source.name}")
            return job
        if self.config.dry_run:
            self.logger.info(f"DRY_RUN: {source.name} would copy video to {output_path}")
        else:
            copy_original(source, output_path)
            self.logger.info(f"VIDEO_COPY: {source.name} -> {output_path}")
        return job

    def _copy_on_timeout(self, source: Path, output_path: Optional[Path]) -> None:
        if self.config.in_place or self.config.dry_run or output_path is None:
            return
        try:
            copy_original(source, output_path)
            self.logger.info(f"TIMEOUT_COPY: {source.name} -> {output_path}")
        except FileIOError as exc:
            self.logger.error(f"TIMEOUT_COPY_FAILED: {source.name}: {exc}")

    def process(self, job: OptimizationJob, deadline: Deadline, cancel: CancellationToken) -> OptimizationJob:
        source_path = job.source_file.path
        filename = source_path.name
        start_time = time.monotonic()
        canonical = source_path
        try:
            cancel.checkpoint("before start")
            canonical, original_size, modified_time = self._stat(source_path)

            kind = MediaKind.from_path(canonical)
            if kind is None:
                raise UnsupportedFormatError(f"Unsupported file type: {canonical}")

            output_path = resolve_output_path(canonical, self.input_root, self.config)
            passthrough = kind == MediaKind.VIDEO and self.config.skip_video
            if passthrough:
                output_path = output_path.with_suffix(canonical.suffix)
            job.output_path = output_path

            if self._should_skip(canonical, modified_time, output_path):
                self.logger.info(f"PROCESS_SKIP: {filename} (already processed)")
                job.status = JobStatus.SKIPPED
                return job
            if passthrough:
                return self._pass_through_video(job, canonical, output_path)

            encoder = self.encoders.get(kind)
            if encoder is None:
                raise UnsupportedFormatError(f"No encoder for {kind.value} files: {canonical}")

            scratch_dir = None
            if self.config.dry_run:
                # dry runs stage outside both trees and create no directories
                try:
                    scratch_dir = Path(tempfile.mkdtemp(prefix="mediaopt-dry-run-"))
                except OSError as exc:
                    raise FileIOError(f"Cannot create scratch directory: {exc}") from exc
                staging = scratch_dir / staging_path_for(output_path).name
            else:
                try:
                    output_path.parent.mkdir(parents=True, exist_ok=True)
                except OSError as exc:
                    raise FileIOError(f"Cannot create {output_path.parent}: {exc}") from exc
                staging = staging_path_for(output_path)
            try:
                cancel.checkpoint("after directory setup")
                cancel.checkpoint("before encode")
                deadline.check(filename)
                self._encode(encoder, canonical, staging, deadline, cancel)
                cancel.checkpoint("after encode")
                deadline.check(filename)

                optimized_size = staging.stat().st_size
                keep = should_replace(original_size, optimized_size, self.config.size_threshold)
                self.logger.info(
                    f"ENCODED: {filename} {original_size} -> {optimized_size} bytes "
                    f"keep={keep} threshold={self.config.size_threshold}"
                )
                record = ProcessedRecord.create(
                    path=canonical,
                    modified_time=modified_time,
                    original_size=original_size,
                    optimized_size=optimized_size if keep else original_size,
                    processed_at=int(self.clock()),
                )
                self._commit(canonical, staging, output_path, keep)
            finally:
                if staging.exists():
                    remove_quietly(staging)
                if scratch_dir is not None:
                    remove_scratch_dir(scratch_dir)

            job.record = record
            job.kept = keep
            job.status = JobStatus.COMPLETED
            if self.config.in_place and not self.config.dry_run:
                self._update_ledger(record, canonical, output_path, keep)
            return job

        except ProcessingTimeout as exc:
            job.status = JobStatus.TIMED_OUT
            job.error_kind = ErrorKind.TIMEOUT
            job.error_message = str(exc)
            self.logger.error(f"PROCESS_TIMEOUT: {filename}: {exc}")
            self._copy_on_timeout(canonical, job.output_path)
            return job
        except Cancelled as exc:
            job.status = JobStatus.INTERRUPTED
            job.error_kind = ErrorKind.CANCELLED
            job.error_message = str(exc)
            self.logger.info(f"PROCESS_CANCELLED: {filename}")
            return job
        except OptimizeError as exc:
            job.status = JobStatus.FAILED
            job.error_kind = exc.kind
            job.error_message = str(exc)
            self.logger.error(f"PROCESS_FAILED: {filename} [{exc.kind.value}] {exc}")
            return job
        except OSError as exc:
            job.status = JobStatus.FAILED
            job.error_kind = ErrorKind.IO
            job.error_message = f"{canonical}: {exc}"
            self.logger.error(f"PROCESS_FAILED: {filename} [io] {exc}")
            return job
        finally:
            job.duration_seconds = time.monotonic() - start_time
