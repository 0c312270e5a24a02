import asyncio
import logging
import os
import signal
from typing import Optional

from giggityflix_catalog.api.server import ApiServer
from giggityflix_catalog.config import AppConfig, config as default_config
from giggityflix_catalog.db.sqlite import Database
from giggityflix_catalog.errors import CatalogError
from giggityflix_catalog.models.media import ReconcileResult
from giggityflix_catalog.scanner.media_scanner import MediaScanner, scan
from giggityflix_catalog.services.catalog_store import CatalogStore
from giggityflix_catalog.services.config_service import CatalogConfigStore
from giggityflix_catalog.services.reconcile_service import ReconciliationEngine
from giggityflix_catalog.services.stream_service import StreamService
from giggityflix_catalog.services.thumbnail_service import (
    FfmpegFrameDecoder, FrameDecoder, ThumbnailService
)

logger = logging.getLogger(__name__)


class CatalogApp:
    """Main application class for the catalog service."""

    def __init__(self, settings: Optional[AppConfig] = None,
                 decoder: Optional[FrameDecoder] = None):
        """Initialize the catalog application."""
        self.settings = settings or default_config

        os.makedirs(self.settings.data_dir, exist_ok=True)

        self.db = Database(
            self.settings.resolve(self.settings.db.path),
            self.settings.resolve(self.settings.db.backup_dir)
        )
        self.store = CatalogStore(self.db)
        self.config_store = CatalogConfigStore(
            self.settings.resolve(self.settings.scanner.catalog_config_path)
        )
        self.engine = ReconciliationEngine(
            self.store,
            sync_workers=self.settings.reconcile.sync_workers,
            prune_concurrency=self.settings.reconcile.prune_concurrency
        )
        self.stream_service = StreamService(self.store, self.settings.server.stream_chunk_size)

        thumbnails = self.settings.thumbnails
        self.thumbnail_service = ThumbnailService(
            self.store,
            decoder or FfmpegFrameDecoder(thumbnails.ffmpeg_binary, thumbnails.timeout_seconds),
            cache_dir=self.settings.resolve(thumbnails.cache_dir) if thumbnails.cache_dir else None,
            offset_seconds=thumbnails.offset_seconds
        )
        self.media_scanner = MediaScanner(
            self.config_store,
            self.settings.scanner.scan_interval_minutes,
            on_interval=self.reconcile
        )
        self.api_server = ApiServer(
            self.store,
            self.stream_service,
            self.thumbnail_service,
            self.config_store,
            self.reconcile,
            host=self.settings.server.host,
            port=self.settings.server.port
        )

        # Control flags
        self._running = False
        self._stop_event = asyncio.Event()
        self._reconcile_lock = asyncio.Lock()

    async def initialize(self) -> None:
        """Open the database and make sure a catalog configuration exists."""
        await self.store.initialize()
        await self.config_store.ensure_exists()

    async def start(self, serve: bool = True) -> None:
        """Start the catalog application."""
        if self._running:
            logger.warning("Catalog application is already running")
            return

        logger.info("Starting catalog application")

        await self.initialize()

        self._running = True
        self._stop_event.clear()

        # Bring the catalog up to date before serving
        try:
            await self.reconcile()
        except CatalogError as e:
            logger.error(f"Initial media scan failed: {e}", exc_info=True)

        await self.media_scanner.start()

        if serve:
            await self.api_server.start()

            loop = asyncio.get_running_loop()
            for sig in (signal.SIGINT, signal.SIGTERM):
                loop.add_signal_handler(sig, lambda s=sig: asyncio.create_task(self.stop(s)))

        logger.info("Catalog application started")

    async def stop(self, sig=None) -> None:
        """Stop the catalog application."""
        if not self._running:
            return

        if sig:
            logger.info(f"Received signal {sig.name}, shutting down")
        else:
            logger.info("Shutting down catalog application")

        self._running = False
        self._stop_event.set()

        await self.api_server.stop()
        await self.media_scanner.stop()
        await self.store.close()

        logger.info("Catalog application stopped")

    async def reconcile(self) -> ReconcileResult:
        """Scan the media directories and bring the catalog in line with them."""
        async with self._reconcile_lock:
            catalog_config = await self.config_store.load()
            candidates = await self.media_scanner.scan_now()

            result = await self.engine.reconcile(candidates)

            for media_id in result.prune.deleted_ids:
                await self.thumbnail_service.evict(media_id)

            if not catalog_config.on_demand:
                inserted = set(result.sync.inserted_ids)
                for record in candidates:
                    if record.id in inserted and await self.thumbnail_service.pregenerate(record):
                        result.thumbnails_generated += 1

            logger.info(f"Reconciliation finished: {result.to_dict()}")
            return result

    async def import_directory(self, directory: str) -> int:
        """
        Register a media directory and bulk-add its files in one transaction.

        Nothing is pruned; an already registered directory is only rescanned.
        """
        directory = os.path.normpath(os.path.abspath(directory))

        async with self._reconcile_lock:
            catalog_config = await self.config_store.load()
            records = await asyncio.to_thread(scan, [directory], catalog_config.supported_extensions)

            if directory not in catalog_config.media_dirs:
                await self.config_store.add_media_dir(directory)

            inserted = await self.store.insert_many(records)

        logger.info(f"Imported {inserted} of {len(records)} media files from {directory}")
        return inserted

    def is_running(self) -> bool:
        """Check if the catalog application is running."""
        return self._running

    async def wait_for_stop(self) -> None:
        """Wait for the application to stop."""
        await self._stop_event.wait()
