"""Filesystem primitives used by the commit step.

Work files created by a run:
- ``<stem>.mediaopt-tmp.<ext>``: encoder staging output, next to the final path
- ``<name>.mediaopt-backup``: copy of an original taken before an in-place swap
"""

import logging
import os
import shutil
from pathlib import Path
from mediaopt.domain.errors import FileIOError

STAGING_MARKER = ".mediaopt-tmp"
BACKUP_SUFFIX = ".mediaopt-backup"

logger = logging.getLogger(__name__)


def staging_path_for(output_path: Path) -> Path:
    return output_path.with_name(f"{output_path.stem}{STAGING_MARKER}{output_path.suffix}")


def backup_path_for(path: Path) -> Path:
    return path.with_name(path.name + BACKUP_SUFFIX)


def is_work_file(name: str) -> bool:
    return f"{STAGING_MARKER}." in name or name.endswith(STAGING_MARKER) or name.endswith(BACKUP_SUFFIX)


def replace_file(target: Path, replacement: Path) -> None:
    """Moves ``replacement`` onto ``target`` using backup, swap, verify, delete-backup.

    On any failure the original content of ``target`` is restored from the
    backup and FileIOError is raised. ``replacement`` must live on the same
    filesystem as ``target``.
    """
    if not target.exists():
        try:
            os.replace(replacement, target)
        except OSError as exc:
            raise FileIOError(f"Failed to move {replacement} to {target}: {exc}") from exc
        return

    backup = backup_path_for(target)
    try:
        shutil.copy2(target, backup)
    except OSError as exc:
        raise FileIOError(f"Failed to back up {target}: {exc}") from exc

    try:
        expected_size = replacement.stat().st_size
        os.replace(replacement, target)
        actual_size = target.stat().st_size
        if actual_size != expected_size:
            raise FileIOError(
                f"Size mismatch after replacing {target}: expected {expected_size}, got {actual_size}"
            )
    except (OSError, FileIOError) as exc:
        logger.error(f"REPLACE_FAILED: {target} ({exc}), restoring backup")
        try:
            os.replace(backup, target)
        except OSError as restore_exc:
            logger.critical(f"RESTORE_FAILED: {target} backup kept at {backup} ({restore_exc})")
            raise FileIOError(f"Failed to restore {target} from {backup}: {restore_exc}") from exc
        if isinstance(exc, FileIOError):
            raise
        raise FileIOError(f"Failed to replace {target}: {exc}") from exc

    try:
        backup.unlink()
    except OSError as exc:
        logger.warning(f"Failed to remove backup {backup}: {exc}")


def copy_original(source: Path, destination: Path) -> None:
    """Copies source verbatim to destination, creating parent directories."""
    try:
        destination.parent.mkdir(parents=True, exist_ok=True)
        shutil.copy2(source, destination)
    except OSError as exc:
        raise FileIOError(f"Failed to copy {source} to {destination}: {exc}") from exc


def remove_quietly(path: Path) -> None:
    try:
        path.unlink()
    except FileNotFoundError:
        pass
    except OSError as exc:
        logger.warning(f"Failed to remove {path}: {exc}")


def remove_scratch_dir(directory: Path) -> None:
    """Removes a private scratch directory and whatever an encoder left in it."""
    try:
        shutil.rmtree(directory)
    except FileNotFoundError:
        pass
    except OSError as exc:
        logger.warning(f"Failed to remove scratch directory {directory}: {exc}")
