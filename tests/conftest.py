"""Pytest configuration and fixtures."""

import sys
import tarfile
from pathlib import Path

import pytest

# Add src to path (for 'treepack.*' imports without an install)
repo_root = Path(__file__).parent.parent
sys.path.insert(0, str(repo_root / "src"))


@pytest.fixture(autouse=True)
def _isolate_buses():
    """Keep log/event subscribers and verbosity from leaking between tests."""
    from treepack.core.events import get_event_bus
    from treepack.core.log_bus import get_log_bus
    from treepack.core.logging import VerbosityLevel, set_verbosity

    get_log_bus().clear()
    get_event_bus().clear()
    set_verbosity(VerbosityLevel.NORMAL)
    yield
    get_log_bus().clear()
    get_event_bus().clear()
    set_verbosity(VerbosityLevel.NORMAL)


@pytest.fixture
def tree(tmp_path):
    """Create a small directory tree to archive.

    Layout:
        server.properties
        world/level.dat
        world/region/r.0.0.mca
        logs/latest.log
        empty.txt

    Returns:
        Path to the tree root
    """
    root = tmp_path / "tree"
    (root / "world" / "region").mkdir(parents=True)
    (root / "logs").mkdir()
    (root / "server.properties").write_text("motd=hello\n")
    (root / "world" / "level.dat").write_bytes(b"\x01\x02\x03" * 100)
    (root / "world" / "region" / "r.0.0.mca").write_bytes(bytes(range(256)) * 64)
    (root / "logs" / "latest.log").write_text("started\n")
    (root / "empty.txt").write_bytes(b"")
    return root


@pytest.fixture
def read_members():
    """Return a helper mapping member name -> TarInfo for a .tar.gz file."""

    def _read(path: Path) -> dict[str, tarfile.TarInfo]:
        with tarfile.open(path, "r:gz") as tf:
            return {m.name: m for m in tf.getmembers()}

    return _read
