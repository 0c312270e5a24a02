import os
import sys
import tempfile
from pathlib import Path

import pytest

# Add the src directory to the Python path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

# Set environment variables for testing
_test_root = tempfile.mkdtemp(prefix="giggityflix-catalog-test-")
os.environ["DATA_DIR"] = os.path.join(_test_root, "data")
os.environ["LOG_DIR"] = os.path.join(_test_root, "logs")
os.environ["LOG_LEVEL"] = "DEBUG"
os.environ["LOG_USE_COLOR"] = "false"
os.environ["SCAN_INTERVAL_MINUTES"] = "1"

from giggityflix_catalog.db.sqlite import Database  # noqa: E402
from giggityflix_catalog.models.media import CatalogRecord  # noqa: E402
from giggityflix_catalog.scanner.media_scanner import identify  # noqa: E402
from giggityflix_catalog.services.catalog_store import CatalogStore  # noqa: E402


def make_record(path: str) -> CatalogRecord:
    """Build the record the scanner would produce for a path."""
    return CatalogRecord(
        id=identify(path),
        name=os.path.basename(path),
        path=path,
        extension=os.path.splitext(path)[1].lower()
    )


@pytest.fixture
async def store(tmp_path):
    """A catalog store backed by a fresh database file."""
    catalog_store = CatalogStore(Database(tmp_path / "media.db"))
    await catalog_store.initialize()
    yield catalog_store
    await catalog_store.close()


@pytest.fixture
def media_dir(tmp_path):
    """A media directory holding one video and one text file."""
    root = tmp_path / "media"
    root.mkdir()
    (root / "a.mp4").write_bytes(b"\x00" * 1000)
    (root / "b.txt").write_text("not media")
    return root
