import threading
import time
import pytest
import yaml
from pathlib import Path
from mediaopt.config.models import RunConfig
from mediaopt.domain.models import DiscoveredFile, MediaKind
from mediaopt.infrastructure.event_bus import EventBus
from mediaopt.infrastructure.ledger import Ledger

MIB = 1024 * 1024


# ============================================================================
# Fake encoder
# ============================================================================

class FakeEncoder:
    """Writes ``ratio`` of the source size to the destination.

    ``sizes`` maps a source file name to an exact output size and wins over
    ``ratio``. Tracks how many encodes overlap, for concurrency assertions.
    """

    def __init__(self, ratio=0.5, sizes=None, delay=0.0, error=None):
        self.ratio = ratio
        self.sizes = sizes or {}
        self.delay = delay
        self.error = error
        self.calls = []
        self.active = 0
        self.max_active = 0
        self._lock = threading.Lock()

    def encode(self, source, destination, timeout=None, cancel=None):
        with self._lock:
            self.calls.append((Path(source), Path(destination)))
            self.active += 1
            self.max_active = max(self.max_active, self.active)
        try:
            if self.error is not None:
                raise self.error
            if self.delay:
                time.sleep(self.delay)
            size = self.sizes.get(Path(source).name)
            if size is None:
                size = int(Path(source).stat().st_size * self.ratio)
            Path(destination).write_bytes(b"\0" * size)
        finally:
            with self._lock:
                self.active -= 1


@pytest.fixture
def fake_encoder_cls():
    return FakeEncoder


# ============================================================================
# Configuration Fixtures
# ============================================================================

@pytest.fixture
def sample_config():
    """Returns a default in-place RunConfig."""
    return RunConfig(workers=4, jpeg_quality=80, video_crf=26, size_threshold=0.9)


@pytest.fixture
def config_yaml_path(tmp_path):
    """Creates a temporary YAML config file."""
    conf_dir = tmp_path / "conf"
    conf_dir.mkdir()
    conf_file = conf_dir / "mediaopt.yaml"

    content = {
        'jpeg_quality': 70,
        'video_crf': 30,
        'workers': 2,
        'size_threshold': 0.8,
        'timeouts': {'small': 60},
    }

    with open(conf_file, 'w') as f:
        yaml.dump(content, f)

    return conf_file


# ============================================================================
# EventBus Fixtures
# ============================================================================

@pytest.fixture
def event_bus():
    """Returns a fresh EventBus instance."""
    return EventBus()


# ============================================================================
# File System Fixtures
# ============================================================================

@pytest.fixture
def test_input_dir(tmp_path):
    """Creates a test input directory (canonical path)."""
    input_dir = tmp_path / "media"
    input_dir.mkdir()
    return input_dir.resolve()


@pytest.fixture
def test_output_dir(tmp_path):
    output_dir = tmp_path / "out"
    output_dir.mkdir()
    return output_dir.resolve()


@pytest.fixture
def state_dir(tmp_path):
    return tmp_path / "state"


@pytest.fixture
def ledger(test_input_dir, state_dir):
    return Ledger.for_root(test_input_dir, state_dir=state_dir)


@pytest.fixture
def make_media_file():
    """Factory writing a file of the given size and returning its DiscoveredFile."""
    def _make(path: Path, size: int) -> DiscoveredFile:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(b"m" * size)
        path = path.resolve()
        st = path.stat()
        return DiscoveredFile(
            path=path,
            size_bytes=st.st_size,
            modified_time=int(st.st_mtime),
            kind=MediaKind.from_path(path),
        )
    return _make


# ============================================================================
# Markers
# ============================================================================

def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow"
    )
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests"
    )
    config.addinivalue_line(
        "markers", "unit: marks tests as unit tests"
    )
