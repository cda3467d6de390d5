"""Persistent record of already-processed files, one JSON document per root.

Document layout::

    {"processed_files": {"<absolute-path>": {"path": ..., "modified_time": ...,
        "original_size": ..., "optimized_size": ..., "reduction_percent": ...,
        "processed_at": ...}}}

Every mutation is written through to disk immediately (temp file + rename).
"""

import hashlib
import logging
import os
import shutil
import threading
from pathlib import Path
from typing import Dict, Optional, Tuple
from pydantic import BaseModel, Field, ValidationError
from mediaopt.domain.errors import StateError
from mediaopt.domain.models import ProcessedRecord

DEFAULT_STATE_DIR = Path.home() / ".media-optimizer"


class LedgerDocument(BaseModel):
    processed_files: Dict[str, ProcessedRecord] = Field(default_factory=dict)


def ledger_path_for(root_dir: Path, state_dir: Path = DEFAULT_STATE_DIR) -> Path:
    """Ledger file for a root: sha256 of the canonical root path, first 16 hex chars."""
    canonical = Path(root_dir).resolve()
    digest = hashlib.sha256(str(canonical).encode("utf-8")).hexdigest()[:16]
    return Path(state_dir) / f"processed_files_{digest}.json"


class Ledger:
    """Idempotency ledger for one watched root directory.

    Reads (skip checks) are lock-free dict lookups; mutations and saves are
    serialized by a lock.
    """

    def __init__(self, state_file: Path):
        self.state_file = Path(state_file)
        self.logger = logging.getLogger(__name__)
        self._records: Dict[str, ProcessedRecord] = {}
        self._lock = threading.Lock()

    @classmethod
    def for_root(cls, root_dir: Path, state_dir: Path = DEFAULT_STATE_DIR) -> "Ledger":
        ledger = cls(ledger_path_for(root_dir, state_dir))
        ledger.load()
        return ledger

    def load(self) -> None:
        """Loads the document, or starts empty if it does not exist yet."""
        if not self.state_file.exists():
            self.logger.info(f"LEDGER_NEW: {self.state_file}")
            self._records = {}
            return

        try:
            text = self.state_file.read_text(encoding="utf-8")
        except OSError as exc:
            raise StateError(f"Cannot read ledger {self.state_file}: {exc}") from exc

        try:
            document = LedgerDocument.model_validate_json(text)
        except ValidationError as exc:
            corrupt = self.state_file.with_name(self.state_file.name + ".corrupt")
            self.logger.warning(
                f"LEDGER_CORRUPT: {self.state_file} is unreadable ({exc.error_count()} errors), "
                f"starting empty; previous content kept at {corrupt}"
            )
            try:
                shutil.copy2(self.state_file, corrupt)
            except OSError as copy_exc:
                self.logger.warning(f"Failed to preserve corrupt ledger: {copy_exc}")
            self._records = {}
            return

        self._records = dict(document.processed_files)
        self.logger.info(f"LEDGER_LOADED: {len(self._records)} records from {self.state_file}")

    def _save_locked(self) -> None:
        document = LedgerDocument(processed_files=self._records)
        tmp_file = self.state_file.with_name(self.state_file.name + ".tmp")
        try:
            self.state_file.parent.mkdir(parents=True, exist_ok=True)
            tmp_file.write_text(document.model_dump_json(indent=2), encoding="utf-8")
            os.replace(tmp_file, self.state_file)
        except OSError as exc:
            raise StateError(f"Cannot write ledger {self.state_file}: {exc}") from exc
        self.logger.debug(f"LEDGER_SAVE: {len(self._records)} records")

    def save(self) -> None:
        with self._lock:
            self._save_locked()

    def get(self, path: Path) -> Optional[ProcessedRecord]:
        return self._records.get(str(path))

    def is_processed(self, path: Path, modified_time: int) -> bool:
        record = self._records.get(str(path))
        return record is not None and record.modified_time == modified_time

    def mark_processed(self, record: ProcessedRecord) -> None:
        """Upserts the record and persists. Raises StateError if the write fails."""
        key = str(record.path)
        with self._lock:
            previous = self._records.get(key)
            self._records[key] = record
            try:
                self._save_locked()
            except StateError:
                # keep memory in line with what is on disk
                if previous is None:
                    self._records.pop(key, None)
                else:
                    self._records[key] = previous
                raise

    def cleanup(self) -> int:
        """Drops records whose file is gone. Returns the number removed."""
        with self._lock:
            stale = [key for key in self._records if not Path(key).exists()]
            for key in stale:
                del self._records[key]
            if stale:
                self._save_locked()
                self.logger.info(f"LEDGER_CLEANUP: removed {len(stale)} stale records")
            return len(stale)

    def stats(self) -> Tuple[int, int, float]:
        """(record count, total bytes saved, average reduction percent)."""
        records = list(self._records.values())
        if not records:
            return 0, 0, 0.0
        total_saved = sum(r.bytes_saved for r in records)
        average = sum(r.reduction_percent for r in records) / len(records)
        return len(records), total_saved, average

    def __len__(self) -> int:
        return len(self._records)
