import asyncio
import logging
import os
import sqlite3
from contextlib import asynccontextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, AsyncIterator, Dict, List, Optional, Tuple, Union

import aiosqlite

logger = logging.getLogger(__name__)

Params = Union[Tuple, Dict[str, Any], None]


class Transaction:
    """Statement runner bound to an open transaction.

    Only handed out by ``Database.transaction()``, which already holds the
    database lock, so it never acquires it itself.
    """

    def __init__(self, conn: aiosqlite.Connection):
        self._conn = conn

    async def execute(self, query: str, params: Params = None) -> int:
        """Execute a statement and return the affected row count."""
        cursor = await self._conn.execute(query, params or ())
        try:
            return cursor.rowcount
        finally:
            await cursor.close()


class Database:
    """Asynchronous SQLite database wrapper."""

    def __init__(self, db_path: Union[str, Path], backup_dir: Union[str, Path, None] = None):
        """Initialize the database."""
        self._db_path = Path(db_path)
        self._backup_dir = Path(backup_dir) if backup_dir else self._db_path.parent / "backups"
        self._conn: Optional[aiosqlite.Connection] = None
        self._initialized = False
        self._lock = asyncio.Lock()

    @property
    def path(self) -> Path:
        return self._db_path

    async def initialize(self) -> None:
        """Initialize the database connection and schema."""
        os.makedirs(self._db_path.parent, exist_ok=True)

        async with self._lock:
            if self._initialized:
                return

            logger.info(f"Initializing database at {self._db_path}")

            self._conn = await aiosqlite.connect(self._db_path)
            self._conn.row_factory = sqlite3.Row

            # Enable WAL mode for better concurrency
            await self._conn.execute("PRAGMA journal_mode = WAL")

            await self._create_tables()

            self._initialized = True
            logger.info("Database initialization complete")

    async def close(self) -> None:
        """Close the database connection."""
        async with self._lock:
            if self._conn:
                await self._conn.close()
                self._conn = None
                self._initialized = False
                logger.info("Database connection closed")

    async def backup(self) -> str:
        """Backup the database to a timestamped file."""
        os.makedirs(self._backup_dir, exist_ok=True)

        async with self._lock:
            if not self._conn:
                raise RuntimeError("Database not initialized")

            timestamp = datetime.now().strftime("%Y%m%d%H%M%S")
            backup_path = self._backup_dir / f"media_{timestamp}.db"

            # sqlite3's backup API is synchronous, run it on the thread pool
            await asyncio.to_thread(self._copy_to, backup_path)

            logger.info(f"Database backed up to {backup_path}")
            return str(backup_path)

    def _copy_to(self, backup_path: Path) -> None:
        source_conn = sqlite3.connect(self._db_path)
        dest_conn = sqlite3.connect(backup_path)
        try:
            source_conn.backup(dest_conn)
        finally:
            source_conn.close()
            dest_conn.close()

    async def _create_tables(self) -> None:
        """Create the database tables if they don't exist."""
        if not self._conn:
            raise RuntimeError("Database not initialized")

        await self._conn.execute("""
        CREATE TABLE IF NOT EXISTS media (
            id TEXT PRIMARY KEY,
            name TEXT NOT NULL,
            path TEXT NOT NULL,
            ext TEXT
        )
        """)

        await self._conn.commit()

    def _require_conn(self) -> aiosqlite.Connection:
        if not self._conn:
            raise RuntimeError("Database not initialized")
        return self._conn

    async def execute(self, query: str, params: Params = None) -> int:
        """Execute a single write statement, commit it and return the affected row count."""
        conn = self._require_conn()

        async with self._lock:
            try:
                cursor = await conn.execute(query, params or ())
                rowcount = cursor.rowcount
                await cursor.close()
                await conn.commit()
                return rowcount
            except BaseException:
                await conn.rollback()
                raise

    async def execute_and_fetchall(self, query: str, params: Params = None) -> List[sqlite3.Row]:
        """Execute a SQL query and fetch all results."""
        conn = self._require_conn()

        async with self._lock:
            cursor = await conn.execute(query, params or ())
            try:
                return await cursor.fetchall()
            finally:
                await cursor.close()

    async def execute_and_fetchone(self, query: str, params: Params = None) -> Optional[sqlite3.Row]:
        """Execute a SQL query and fetch one result."""
        conn = self._require_conn()

        async with self._lock:
            cursor = await conn.execute(query, params or ())
            try:
                return await cursor.fetchone()
            finally:
                await cursor.close()

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[Transaction]:
        """Run statements as one unit of work: commit on success, roll back on error."""
        conn = self._require_conn()

        async with self._lock:
            try:
                yield Transaction(conn)
            except BaseException:
                await conn.rollback()
                raise
            else:
                await conn.commit()
