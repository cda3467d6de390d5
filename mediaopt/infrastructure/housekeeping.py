import logging
import os
from pathlib import Path
from mediaopt.infrastructure.file_ops import BACKUP_SUFFIX, STAGING_MARKER


class HousekeepingService:
    """Cleans up work files left behind by an interrupted run."""

    def __init__(self):
        self.logger = logging.getLogger(__name__)

    def cleanup_staging_files(self, directory: Path) -> int:
        """Recursively removes encoder staging files. Returns how many were removed."""
        removed = 0
        for root, dirs, files in os.walk(directory):
            for file in files:
                if f"{STAGING_MARKER}." in file or file.endswith(STAGING_MARKER):
                    try:
                        (Path(root) / file).unlink()
                        removed += 1
                    except OSError as exc:
                        self.logger.warning(f"HOUSEKEEPING: cannot remove {file}: {exc}")
        if removed:
            self.logger.info(f"HOUSEKEEPING: removed {removed} stale staging files in {directory}")
        return removed

    def restore_backups(self, directory: Path) -> int:
        """Puts originals back from backups of an interrupted in-place replace.

        The ledger is only written after a replace completes, so a leftover
        backup always belongs to a file that was never recorded.
        """
        restored = 0
        for root, dirs, files in os.walk(directory):
            for file in files:
                if not file.endswith(BACKUP_SUFFIX):
                    continue
                backup = Path(root) / file
                original = backup.with_name(file[: -len(BACKUP_SUFFIX)])
                try:
                    os.replace(backup, original)
                    restored += 1
                    self.logger.warning(f"HOUSEKEEPING: restored {original} from interrupted replace")
                except OSError as exc:
                    self.logger.error(f"HOUSEKEEPING: cannot restore {original}: {exc}")
        return restored
