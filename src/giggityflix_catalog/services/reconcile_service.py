"""Reconcile a fresh directory scan against the persisted catalog."""
import asyncio
import logging
from typing import Iterable, List, Set

from giggityflix_catalog.errors import NotFoundError, SyncPassError
from giggityflix_catalog.models.media import (
    CatalogRecord, PruneResult, ReconcileResult, SyncResult
)
from giggityflix_catalog.services.catalog_store import CatalogStore

logger = logging.getLogger(__name__)

DEFAULT_SYNC_WORKERS = 4
DEFAULT_PRUNE_CONCURRENCY = 10


class ReconciliationEngine:
    """Applies inserts and deletes to the catalog with bounded concurrency."""

    def __init__(self, store: CatalogStore, sync_workers: int = DEFAULT_SYNC_WORKERS,
                 prune_concurrency: int = DEFAULT_PRUNE_CONCURRENCY):
        if sync_workers < 1:
            raise ValueError("sync_workers must be at least 1")
        if prune_concurrency < 1:
            raise ValueError("prune_concurrency must be at least 1")

        self.store = store
        self.sync_workers = sync_workers
        self.prune_concurrency = prune_concurrency

    async def sync_pass(self, candidates: Iterable[CatalogRecord]) -> SyncResult:
        """
        Insert every candidate that is not yet catalogued.

        Candidates are drained from a queue by a fixed pool of workers. Per-item
        failures never stop the other workers; once all of them are done a
        single SyncPassError is raised if anything failed.
        """
        # Shielded so a cancelled caller cannot leave the pass half-applied
        return await asyncio.shield(self._sync(list(candidates)))

    async def _sync(self, candidates: List[CatalogRecord]) -> SyncResult:
        queue: asyncio.Queue = asyncio.Queue()
        for record in candidates:
            queue.put_nowait(record)

        result = SyncResult()
        errors: List[BaseException] = []

        async def worker(worker_id: int) -> None:
            while True:
                try:
                    record = queue.get_nowait()
                except asyncio.QueueEmpty:
                    return

                try:
                    if await self.store.insert_if_absent(record):
                        result.inserted += 1
                        result.inserted_ids.append(record.id)
                    else:
                        result.already_present += 1
                except Exception as e:
                    logger.error(f"Sync worker {worker_id} failed to insert {record.path}: {e}")
                    result.failed += 1
                    errors.append(e)

        worker_count = min(self.sync_workers, len(candidates)) or 1
        await asyncio.gather(*(worker(i) for i in range(worker_count)))

        logger.info(
            f"Sync pass finished: {result.inserted} inserted, "
            f"{result.already_present} already present, {result.failed} failed"
        )

        if errors:
            raise SyncPassError(errors[0], len(errors), result)

        return result

    async def prune_pass(self, scanned_ids: Iterable[str]) -> PruneResult:
        """
        Delete catalogued records whose id is absent from the latest scan.

        Best effort: a failed delete is logged and left for the next cycle.
        """
        return await asyncio.shield(self._prune(set(scanned_ids)))

    async def _prune(self, scanned_ids: Set[str]) -> PruneResult:
        stored_ids = await self.store.list_ids()
        missing = stored_ids - scanned_ids

        result = PruneResult()
        if not missing:
            logger.info("Prune pass finished: nothing to delete")
            return result

        semaphore = asyncio.Semaphore(self.prune_concurrency)

        async def delete(media_id: str) -> None:
            async with semaphore:
                try:
                    await self.store.delete_by_id(media_id)
                except NotFoundError:
                    logger.debug(f"Media {media_id} already removed")
                except Exception as e:
                    logger.error(f"Failed to prune media {media_id}: {e}")
                    result.failed[media_id] = str(e)
                    return

                result.deleted += 1
                result.deleted_ids.append(media_id)

        await asyncio.gather(*(delete(media_id) for media_id in missing))

        logger.info(f"Prune pass finished: {result.deleted} deleted, {len(result.failed)} failed")
        return result

    async def reconcile(self, candidates: Iterable[CatalogRecord]) -> ReconcileResult:
        """Run a sync pass and then a prune pass against the same scan."""
        candidates = list(candidates)
        result = ReconcileResult(scanned=len(candidates))

        try:
            result.sync = await self.sync_pass(candidates)
        except SyncPassError as e:
            logger.error(f"Sync pass reported failures: {e}")
            result.sync = e.result or SyncResult(failed=e.failed)
            result.sync_error = str(e.cause)

        result.prune = await self.prune_pass(record.id for record in candidates)
        return result
