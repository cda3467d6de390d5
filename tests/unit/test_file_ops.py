import os
import pytest
from pathlib import Path
from unittest.mock import patch
from mediaopt.domain.errors import FileIOError
from mediaopt.infrastructure.file_ops import (
    backup_path_for,
    copy_original,
    is_work_file,
    remove_quietly,
    remove_scratch_dir,
    replace_file,
    staging_path_for,
)


def test_staging_path_keeps_extension():
    staging = staging_path_for(Path("/media/x/photo.jpg"))
    assert staging == Path("/media/x/photo.mediaopt-tmp.jpg")


def test_backup_path_appends_suffix():
    assert backup_path_for(Path("/media/a.png")) == Path("/media/a.png.mediaopt-backup")


@pytest.mark.parametrize("name,expected", [
    ("photo.mediaopt-tmp.jpg", True),
    ("photo.jpg.mediaopt-backup", True),
    ("photo.jpg", False),
    ("mediaopt-tmp.jpg", False),
])
def test_is_work_file(name, expected):
    assert is_work_file(name) is expected


def test_replace_file_swaps_content(tmp_path):
    target = tmp_path / "a.jpg"
    target.write_bytes(b"original")
    replacement = tmp_path / "a.mediaopt-tmp.jpg"
    replacement.write_bytes(b"new")

    replace_file(target, replacement)

    assert target.read_bytes() == b"new"
    assert not replacement.exists()
    assert not backup_path_for(target).exists()


def test_replace_file_moves_onto_missing_target(tmp_path):
    target = tmp_path / "a.webp"
    replacement = tmp_path / "a.mediaopt-tmp.webp"
    replacement.write_bytes(b"new")

    replace_file(target, replacement)

    assert target.read_bytes() == b"new"
    assert not replacement.exists()


def test_replace_file_restores_original_on_failure(tmp_path):
    target = tmp_path / "a.jpg"
    target.write_bytes(b"original")
    replacement = tmp_path / "a.mediaopt-tmp.jpg"
    replacement.write_bytes(b"new")
    real_replace = os.replace

    def flaky_replace(src, dst):
        if Path(src) == replacement:
            raise OSError("device busy")
        return real_replace(src, dst)

    with patch("mediaopt.infrastructure.file_ops.os.replace", side_effect=flaky_replace):
        with pytest.raises(FileIOError, match="Failed to replace"):
            replace_file(target, replacement)

    assert target.read_bytes() == b"original"
    assert not backup_path_for(target).exists()


def test_replace_file_backup_failure_leaves_target(tmp_path):
    target = tmp_path / "a.jpg"
    target.write_bytes(b"original")
    replacement = tmp_path / "a.mediaopt-tmp.jpg"
    replacement.write_bytes(b"new")

    with patch("mediaopt.infrastructure.file_ops.shutil.copy2", side_effect=OSError("no space")):
        with pytest.raises(FileIOError, match="back up"):
            replace_file(target, replacement)

    assert target.read_bytes() == b"original"


def test_copy_original_creates_parents(tmp_path):
    src = tmp_path / "a.jpg"
    src.write_bytes(b"data")
    dst = tmp_path / "out" / "deep" / "a.jpg"

    copy_original(src, dst)

    assert dst.read_bytes() == b"data"


def test_copy_original_wraps_errors(tmp_path):
    with pytest.raises(FileIOError):
        copy_original(tmp_path / "missing.jpg", tmp_path / "out" / "a.jpg")


def test_remove_quietly_ignores_missing(tmp_path):
    remove_quietly(tmp_path / "nothing")


def test_remove_scratch_dir_removes_contents(tmp_path):
    scratch = tmp_path / "scratch"
    scratch.mkdir()
    (scratch / "a.mediaopt-tmp.jpg").write_bytes(b"half")

    remove_scratch_dir(scratch)

    assert not scratch.exists()


def test_remove_scratch_dir_ignores_missing(tmp_path):
    remove_scratch_dir(tmp_path / "nothing")
