import pytest
from pathlib import Path
from unittest.mock import patch
from mediaopt.infrastructure.housekeeping import HousekeepingService


def test_housekeeping_cleanup_staging(tmp_path):
    (tmp_path / "a.mediaopt-tmp.jpg").write_text("data")
    (tmp_path / "a.jpg").write_text("data")
    (tmp_path / "subdir").mkdir()
    (tmp_path / "subdir" / "clip.mediaopt-tmp.mp4").write_text("data")

    service = HousekeepingService()
    removed = service.cleanup_staging_files(tmp_path)

    assert removed == 2
    assert not (tmp_path / "a.mediaopt-tmp.jpg").exists()
    assert (tmp_path / "a.jpg").exists()
    assert not (tmp_path / "subdir" / "clip.mediaopt-tmp.mp4").exists()


def test_housekeeping_restores_backups(tmp_path):
    (tmp_path / "a.jpg").write_bytes(b"half written")
    (tmp_path / "a.jpg.mediaopt-backup").write_bytes(b"original")
    (tmp_path / "b.png.mediaopt-backup").write_bytes(b"lost")

    restored = HousekeepingService().restore_backups(tmp_path)

    assert restored == 2
    assert (tmp_path / "a.jpg").read_bytes() == b"original"
    assert (tmp_path / "b.png").read_bytes() == b"lost"
    assert not (tmp_path / "a.jpg.mediaopt-backup").exists()


def test_housekeeping_nothing_to_do(tmp_path):
    (tmp_path / "a.jpg").write_text("data")

    service = HousekeepingService()

    assert service.cleanup_staging_files(tmp_path) == 0
    assert service.restore_backups(tmp_path) == 0


def test_housekeeping_handles_oserror(tmp_path):
    f = tmp_path / "a.mediaopt-tmp.jpg"
    f.write_text("data")

    service = HousekeepingService()
    with patch.object(Path, 'unlink', side_effect=OSError("Permission denied")):
        # Should not raise exception
        assert service.cleanup_staging_files(tmp_path) == 0
        assert f.exists()
