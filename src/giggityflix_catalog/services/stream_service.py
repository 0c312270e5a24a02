"""Byte-range streaming of catalogued media files."""
import asyncio
import logging
import mimetypes
import os
import re
from typing import AsyncIterator, BinaryIO, Dict, Optional, Tuple
from urllib.parse import quote

from giggityflix_catalog.errors import RangeNotSatisfiableError, UnavailableError
from giggityflix_catalog.models.media import CatalogRecord
from giggityflix_catalog.services.catalog_store import CatalogStore

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 64 * 1024
DEFAULT_CONTENT_TYPE = "application/octet-stream"

_RANGE_RE = re.compile(r"^(\d*)-(\d*)$")


def parse_range(header: Optional[str], size: int) -> Optional[Tuple[int, int]]:
    """
    Resolve a Range header against a file size.

    Returns an inclusive (start, end) pair, or None when the whole file should
    be served: no header, a unit other than bytes, a malformed spec, or more
    than one range. Raises RangeNotSatisfiableError when the range lies
    outside the file.
    """
    if not header:
        return None

    unit, _, spec = header.strip().partition("=")
    if unit.strip().lower() != "bytes" or "," in spec:
        return None

    match = _RANGE_RE.match(spec.strip())
    if not match or match.group(0) == "-":
        return None

    first, last = match.groups()

    if not first:
        # Suffix range: the last N bytes
        suffix = int(last)
        if suffix == 0 or size == 0:
            raise RangeNotSatisfiableError(f"Unsatisfiable range {header!r}", size)
        return max(0, size - suffix), size - 1

    start = int(first)
    end = int(last) if last else size - 1

    if start >= size or start > end:
        raise RangeNotSatisfiableError(f"Unsatisfiable range {header!r}", size)

    return start, min(end, size - 1)


def content_disposition(name: str) -> str:
    """Build an inline Content-Disposition header that survives non-ASCII names."""
    fallback = name.encode("ascii", "replace").decode("ascii").replace('"', "'").replace("?", "_")
    return f"inline; filename=\"{fallback}\"; filename*=UTF-8''{quote(name)}"


class RangeStream:
    """An open file positioned for serving a single byte range."""

    def __init__(self, record: CatalogRecord, handle: BinaryIO, size: int,
                 byte_range: Optional[Tuple[int, int]], chunk_size: int = DEFAULT_CHUNK_SIZE):
        self.record = record
        self.size = size
        self.partial = byte_range is not None
        self.start, self.end = byte_range if byte_range else (0, size - 1)
        self.chunk_size = chunk_size
        self.content_type = mimetypes.guess_type(record.name)[0] or DEFAULT_CONTENT_TYPE
        self._handle: Optional[BinaryIO] = handle

    @property
    def status(self) -> int:
        return 206 if self.partial else 200

    @property
    def length(self) -> int:
        return max(0, self.end - self.start + 1)

    @property
    def closed(self) -> bool:
        return self._handle is None

    def headers(self) -> Dict[str, str]:
        headers = {
            "Content-Type": self.content_type,
            "Content-Length": str(self.length),
            "Accept-Ranges": "bytes",
            "Content-Disposition": content_disposition(self.record.name),
        }
        if self.partial:
            headers["Content-Range"] = f"bytes {self.start}-{self.end}/{self.size}"
        return headers

    async def iter_chunks(self) -> AsyncIterator[bytes]:
        """Yield the selected range in chunks, reading off the event loop."""
        if self._handle is None:
            raise ValueError("Stream is closed")

        handle = self._handle
        await asyncio.to_thread(handle.seek, self.start)

        remaining = self.length
        while remaining > 0:
            data = await asyncio.to_thread(handle.read, min(self.chunk_size, remaining))
            if not data:
                logger.warning(f"File {self.record.path} ended early, {remaining} bytes short")
                break
            remaining -= len(data)
            yield data

    async def close(self) -> None:
        """Release the file handle."""
        if self._handle is not None:
            handle, self._handle = self._handle, None
            await asyncio.to_thread(handle.close)


class StreamService:
    """Resolves catalog ids to range-capable file streams."""

    def __init__(self, store: CatalogStore, chunk_size: int = DEFAULT_CHUNK_SIZE):
        self.store = store
        self.chunk_size = chunk_size

    async def open_range_stream(self, media_id: str, range_header: Optional[str] = None) -> RangeStream:
        """
        Open the file behind a catalog entry for the requested range.

        Raises:
            NotFoundError: the id is not catalogued
            UnavailableError: the file cannot be opened
            RangeNotSatisfiableError: the range lies outside the file
        """
        record = await self.store.get_by_id(media_id)

        try:
            handle = await asyncio.to_thread(open, record.path, "rb")
        except OSError as e:
            logger.error(f"Media file unavailable: {record.path}: {e}")
            raise UnavailableError(f"Media file unavailable: {record.name}") from e

        try:
            size = os.fstat(handle.fileno()).st_size
            byte_range = parse_range(range_header, size)
        except BaseException:
            handle.close()
            raise

        stream = RangeStream(record, handle, size, byte_range, self.chunk_size)
        logger.debug(
            f"Streaming {record.id} bytes {stream.start}-{stream.end}/{size} (status {stream.status})"
        )
        return stream
