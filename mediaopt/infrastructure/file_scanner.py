import logging
import os
from pathlib import Path
from typing import Generator, Iterable, List, Optional, Set
from mediaopt.domain.models import DiscoveredFile, MediaKind, IMAGE_EXTENSIONS, VIDEO_EXTENSIONS
from mediaopt.infrastructure.file_ops import is_work_file


class FileScanner:
    """Recursively scans a directory for supported media files."""

    def __init__(self, extensions: Optional[Iterable[str]] = None, exclude_dirs: Iterable[Path] = ()):
        if extensions is None:
            extensions = sorted(IMAGE_EXTENSIONS | VIDEO_EXTENSIONS)
        self.extensions = {ext.lower().lstrip(".") for ext in extensions}
        self.exclude_dirs = {Path(d).resolve() for d in exclude_dirs}
        self.logger = logging.getLogger(__name__)

    def scan(self, root_dir: Path) -> Generator[DiscoveredFile, None, None]:
        """Walks root_dir in sorted order and yields one DiscoveredFile per canonical path."""
        seen: Set[Path] = set()
        for root, dirs, files in os.walk(str(root_dir)):
            root_path = Path(root)

            # Never descend into the output tree when it lives under the input
            dirs[:] = sorted(d for d in dirs if (root_path / d).resolve() not in self.exclude_dirs)
            files.sort()

            for file_name in files:
                if is_work_file(file_name):
                    continue
                file_path = root_path / file_name
                if file_path.suffix.lower().lstrip(".") not in self.extensions:
                    continue
                kind = MediaKind.from_path(file_path)
                if kind is None:
                    continue

                try:
                    canonical = file_path.resolve(strict=True)
                    if canonical in seen or not canonical.is_file():
                        continue
                    st = canonical.stat()
                except OSError as exc:
                    self.logger.warning(f"SCAN_SKIP: {file_path} ({exc})")
                    continue

                seen.add(canonical)
                yield DiscoveredFile(
                    path=canonical,
                    size_bytes=st.st_size,
                    modified_time=int(st.st_mtime),
                    kind=kind,
                )

    def scan_all(self, root_dir: Path) -> List[DiscoveredFile]:
        return list(self.scan(root_dir))
