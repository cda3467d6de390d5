import logging
import os
import shutil
import sys
import threading
from pathlib import Path
from typing import Dict, List, Optional
from mediaopt.config.models import RunConfig
from mediaopt.domain.errors import MissingDependencyError

TOOLS_DIR_ENV = "MEDIAOPT_TOOLS_DIR"


class ToolResolver:
    """Locates external binaries: bundled tools directory first, then PATH.

    Bundled layouts searched, in order:
    ``<dir>/<tool>``, ``<dir>/<tool>/<tool>``, ``<dir>/<platform>/<tool>/<tool>``.
    """

    def __init__(self, tools_dir: Optional[Path] = None, search_path: bool = True):
        if tools_dir is None and os.environ.get(TOOLS_DIR_ENV):
            tools_dir = Path(os.environ[TOOLS_DIR_ENV])
        self.tools_dir = Path(tools_dir) if tools_dir else None
        self.search_path = search_path
        self.logger = logging.getLogger(__name__)
        self._cache: Dict[str, Optional[str]] = {}
        self._lock = threading.Lock()

    def _bundled_candidates(self, name: str) -> List[Path]:
        if self.tools_dir is None:
            return []
        exe = f"{name}.exe" if sys.platform == "win32" else name
        return [
            self.tools_dir / exe,
            self.tools_dir / name / exe,
            self.tools_dir / sys.platform / name / exe,
        ]

    def resolve(self, name: str) -> Optional[str]:
        """Returns the full path of the tool or None when it cannot be found."""
        with self._lock:
            if name in self._cache:
                return self._cache[name]

            found = None
            for candidate in self._bundled_candidates(name):
                if candidate.is_file() and os.access(candidate, os.X_OK):
                    found = str(candidate)
                    break
            if found is None and self.search_path:
                found = shutil.which(name)

            self._cache[name] = found
            self.logger.debug(f"TOOL_RESOLVE: {name} -> {found}")
            return found

    def require(self, name: str) -> str:
        path = self.resolve(name)
        if path is None:
            raise MissingDependencyError([name])
        return path


def required_tools(config: RunConfig) -> List[str]:
    # Images are encoded in-process; only video needs an external binary
    tools = []
    if not config.skip_video:
        tools.append("ffmpeg")
    return tools


def check_dependencies(config: RunConfig, resolver: ToolResolver) -> Dict[str, str]:
    """Resolves every tool the run needs; raises MissingDependencyError listing all missing ones."""
    resolved: Dict[str, str] = {}
    missing: List[str] = []
    for tool in required_tools(config):
        path = resolver.resolve(tool)
        if path is None:
            missing.append(tool)
        else:
            resolved[tool] = path
    if missing:
        raise MissingDependencyError(missing)
    return resolved
