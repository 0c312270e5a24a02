import asyncio
import hashlib
import logging
import os
import time
from typing import Awaitable, Callable, Iterable, List, Optional

from giggityflix_catalog.errors import ScanError
from giggityflix_catalog.models.media import CatalogRecord, normalize_extension
from giggityflix_catalog.services.config_service import CatalogConfigStore

logger = logging.getLogger(__name__)


def identify(path: str) -> str:
    """
    Derive the catalog id of a file from its path.

    Only the path string is hashed, so a file moved elsewhere gets a new id
    and a file edited in place keeps its old one.
    """
    return hashlib.sha1(path.encode("utf-8")).hexdigest()


def _scan_root(root: str, allowed: frozenset) -> List[CatalogRecord]:
    """Walk a single root directory and collect matching files."""
    root = os.path.abspath(root)
    records = []

    def on_error(error: OSError) -> None:
        if error.filename and os.path.abspath(error.filename) == root:
            raise error
        logger.warning(f"Skipping unreadable entry {error.filename}: {error}")

    try:
        for dirpath, _dirnames, filenames in os.walk(root, onerror=on_error):
            for filename in filenames:
                ext = os.path.splitext(filename)[1].lower()
                if ext not in allowed:
                    continue

                path = os.path.join(dirpath, filename)
                records.append(CatalogRecord(
                    id=identify(path),
                    name=filename,
                    path=path,
                    extension=ext
                ))
    except OSError as e:
        raise ScanError(f"Failed to scan media directory {root}: {e}") from e

    return records


def scan(roots: Iterable[str], allowed_extensions: Iterable[str]) -> List[CatalogRecord]:
    """
    Scan root directories for files with an allowed extension.

    Errors on individual entries are skipped; an error enumerating a root
    aborts the scan with ScanError.
    """
    allowed = frozenset(normalize_extension(ext) for ext in allowed_extensions)
    allowed = allowed - {""}

    records: List[CatalogRecord] = []
    for root in roots:
        logger.info(f"Scanning directory: {root}")
        found = _scan_root(root, allowed)
        logger.info(f"Found {len(found)} media files in {root}")
        records.extend(found)

    return records


class MediaScanner:
    """Scans the configured media directories and schedules periodic cycles."""

    def __init__(self, config_store: CatalogConfigStore, scan_interval_minutes: int = 60,
                 on_interval: Optional[Callable[[], Awaitable[object]]] = None):
        """Initialize the media scanner."""
        self.config_store = config_store
        self._scan_interval = scan_interval_minutes * 60
        self._on_interval = on_interval

        self._task: Optional[asyncio.Task] = None
        self._stop_event = asyncio.Event()

    async def scan_now(self) -> List[CatalogRecord]:
        """Reload the catalog configuration and scan every media directory."""
        catalog_config = await self.config_store.load()

        start_time = time.time()
        records = await asyncio.to_thread(
            scan, catalog_config.media_dirs, catalog_config.supported_extensions
        )
        elapsed_time = time.time() - start_time

        logger.info(
            f"Scan completed in {elapsed_time:.2f} seconds. "
            f"Directories: {len(catalog_config.media_dirs)}, files: {len(records)}"
        )
        return records

    async def start(self) -> None:
        """Start the periodic scan loop."""
        if self._on_interval is None or self._task is not None:
            return

        logger.info(f"Starting media scanner, interval {self._scan_interval / 60} minutes")
        self._stop_event.clear()
        self._task = asyncio.create_task(self._periodic_scan())

    async def stop(self) -> None:
        """Stop the periodic scan loop and wait for a running cycle to finish."""
        if self._task is None:
            return

        logger.info("Stopping media scanner")
        self._stop_event.set()
        await self._task
        self._task = None

    async def _periodic_scan(self) -> None:
        """Run a cycle every scan interval until stopped."""
        while not self._stop_event.is_set():
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self._scan_interval)
            except asyncio.TimeoutError:
                try:
                    await self._on_interval()
                except Exception as e:
                    logger.error(f"Error during periodic media scan: {e}", exc_info=True)
