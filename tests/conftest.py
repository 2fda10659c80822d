# tests/conftest.py
import pytest
from pathlib import Path
import sys

# Ensure the app package is findable by pytest by adding the project root to the path
project_root = Path(__file__).parent.parent.resolve()
sys.path.insert(0, str(project_root))

from metadata_renamer.catalog import CatalogSnapshot, SnapshotCatalog
from metadata_renamer.config_manager import RenamerSettings
from metadata_renamer.coordinator import RenameCoordinator
from metadata_renamer.observability import CollectingDecisionSink


class FakeClock:
    """Monotonic clock the tests move by hand."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def make_settings():
    """Live, cooldown-free settings unless a test says otherwise."""
    def _make(**overrides) -> RenamerSettings:
        values = {'dry_run': False, 'per_item_cooldown_seconds': 0, 'retry_min_delay_seconds': 0}
        values.update(overrides)
        return RenamerSettings(**values)
    return _make


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def sink():
    return CollectingDecisionSink()


@pytest.fixture
def make_catalog(tmp_path: Path):
    """Build a SnapshotCatalog from plain dicts; relative paths resolve against tmp_path."""
    def _make(shows=None, movies=None, library_roots=None) -> SnapshotCatalog:
        snapshot = CatalogSnapshot.model_validate({'shows': shows or [], 'movies': movies or [], 'library_roots': library_roots or {}})
        return SnapshotCatalog(snapshot, base_dir=tmp_path)
    return _make


@pytest.fixture
def make_coordinator(sink, clock):
    def _make(catalog) -> RenameCoordinator:
        return RenameCoordinator(catalog, sink=sink, clock=clock)
    return _make


@pytest.fixture
def touch():
    """Create a file (and its parent folders) with some content."""
    def _touch(path: Path, content: str = "x") -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content)
        return path
    return _touch
