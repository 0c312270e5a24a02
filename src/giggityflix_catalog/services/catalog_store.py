import logging
import math
import sqlite3
from contextlib import contextmanager
from typing import Iterable, Iterator, List, Set

from giggityflix_catalog.db.sqlite import Database
from giggityflix_catalog.errors import InvalidArgumentError, NotFoundError, StoreError
from giggityflix_catalog.models.media import CatalogRecord, Page

logger = logging.getLogger(__name__)

INSERT_IF_ABSENT_SQL = "INSERT OR IGNORE INTO media (id, name, path, ext) VALUES (?, ?, ?, ?)"


@contextmanager
def _store_errors(action: str) -> Iterator[None]:
    """Re-raise driver errors as StoreError."""
    try:
        yield
    except sqlite3.Error as e:
        logger.error(f"Database error while {action}: {e}")
        raise StoreError(f"Database error while {action}: {e}") from e


class CatalogStore:
    """Persistent catalog of media records keyed by identifier."""

    def __init__(self, db: Database):
        self.db = db

    async def initialize(self) -> None:
        """Initialize the database."""
        await self.db.initialize()

    async def close(self) -> None:
        """Close the database connection."""
        await self.db.close()

    async def insert_if_absent(self, record: CatalogRecord) -> bool:
        """
        Insert a record unless one with the same id exists.

        Returns:
            True if the row was created, False if it was already present
        """
        with _store_errors(f"inserting {record.id}"):
            async with self.db.transaction() as tx:
                created = await tx.execute(INSERT_IF_ABSENT_SQL, self._record_params(record))

        if created:
            logger.debug(f"Inserted media {record.id} ({record.path})")
        else:
            logger.debug(f"Media {record.id} already present")
        return created > 0

    async def insert_many(self, records: Iterable[CatalogRecord]) -> int:
        """Insert-if-absent a batch of records in a single transaction."""
        created = 0
        with _store_errors("inserting batch"):
            async with self.db.transaction() as tx:
                for record in records:
                    created += await tx.execute(INSERT_IF_ABSENT_SQL, self._record_params(record))

        logger.info(f"Inserted {created} media records in batch")
        return created

    async def get_by_id(self, media_id: str) -> CatalogRecord:
        """Get a media record by its id."""
        with _store_errors(f"fetching {media_id}"):
            row = await self.db.execute_and_fetchone(
                "SELECT id, name, path, ext FROM media WHERE id = ?", (media_id,)
            )

        if not row:
            raise NotFoundError(f"Media not found: {media_id}")

        return self._row_to_record(row)

    async def list_paginated(self, page: int, page_size: int) -> Page:
        """Get one 1-based page of records."""
        if page < 1:
            raise InvalidArgumentError("page number can't be less than one")
        if page_size < 1:
            raise InvalidArgumentError("count number can't be less than one")

        offset = (page - 1) * page_size

        with _store_errors("listing page"):
            count_row = await self.db.execute_and_fetchone("SELECT COUNT(*) AS total FROM media")
            rows = await self.db.execute_and_fetchall(
                "SELECT id, name, path, ext FROM media ORDER BY rowid LIMIT ? OFFSET ?",
                (page_size, offset)
            )

        total = count_row["total"] if count_row else 0
        items = [self._row_to_record(row) for row in rows]

        return Page(
            items=items,
            number_of_elements=len(items),
            pages=math.ceil(total / page_size),
            page=page,
            count=page_size
        )

    async def list_all(self) -> List[CatalogRecord]:
        """Get all media records."""
        with _store_errors("listing media"):
            rows = await self.db.execute_and_fetchall(
                "SELECT id, name, path, ext FROM media ORDER BY rowid"
            )
        return [self._row_to_record(row) for row in rows]

    async def list_ids(self) -> Set[str]:
        """Get the ids of all stored records."""
        with _store_errors("listing ids"):
            rows = await self.db.execute_and_fetchall("SELECT id FROM media")
        return {row["id"] for row in rows}

    async def delete_by_id(self, media_id: str) -> None:
        """Delete a media record, raising NotFoundError if it does not exist."""
        with _store_errors(f"deleting {media_id}"):
            deleted = await self.db.execute("DELETE FROM media WHERE id = ?", (media_id,))

        if not deleted:
            raise NotFoundError(f"Media not found: {media_id}")

        logger.info(f"Deleted media {media_id}")

    async def delete_all(self) -> int:
        """Delete every media record in one transaction."""
        with _store_errors("deleting all media"):
            async with self.db.transaction() as tx:
                deleted = await tx.execute("DELETE FROM media")

        logger.info(f"Deleted all {deleted} media records")
        return deleted

    @staticmethod
    def _record_params(record: CatalogRecord) -> tuple:
        return (record.id, record.name, record.path, record.extension or None)

    @staticmethod
    def _row_to_record(row: sqlite3.Row) -> CatalogRecord:
        """Convert a database row to a CatalogRecord."""
        return CatalogRecord(
            id=row["id"],
            name=row["name"],
            path=row["path"],
            extension=row["ext"] or ""
        )
