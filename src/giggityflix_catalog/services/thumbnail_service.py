import asyncio
import logging
import os
import subprocess
import tempfile
from pathlib import Path
from typing import Optional, Protocol, Union

from giggityflix_catalog.errors import ExtractionFailedError, UnavailableError
from giggityflix_catalog.models.media import CatalogRecord
from giggityflix_catalog.services.catalog_store import CatalogStore

logger = logging.getLogger(__name__)

DEFAULT_OFFSET_SECONDS = 4.0
DEFAULT_TIMEOUT_SECONDS = 30.0


class FrameDecoder(Protocol):
    """Decodes a single still frame from a media file."""

    def decode(self, path: str, offset_seconds: float) -> bytes:
        """
        Return one JPEG-encoded frame taken at the given offset.

        Raises:
            ExtractionFailedError: no frame could be produced
        """
        ...


class FfmpegFrameDecoder:
    """FrameDecoder backed by the ffmpeg command line tool."""

    def __init__(self, binary: str = "ffmpeg", timeout: float = DEFAULT_TIMEOUT_SECONDS):
        self.binary = binary
        self.timeout = timeout

    def build_command(self, path: str, offset_seconds: float) -> list:
        return [
            self.binary,
            "-v", "error",
            "-ss", f"{offset_seconds:g}",
            "-i", path,
            "-frames:v", "1",
            "-f", "mjpeg",
            "pipe:1",
        ]

    def decode(self, path: str, offset_seconds: float) -> bytes:
        command = self.build_command(path, offset_seconds)
        try:
            process = subprocess.run(command, capture_output=True, timeout=self.timeout, check=False)
        except FileNotFoundError as e:
            raise ExtractionFailedError(f"Decoder not found: {self.binary}") from e
        except subprocess.TimeoutExpired as e:
            raise ExtractionFailedError(
                f"Decoder timed out after {self.timeout}s on {path}"
            ) from e

        if process.returncode != 0:
            stderr = process.stderr.decode("utf-8", "replace").strip()
            raise ExtractionFailedError(
                f"Decoder exited with status {process.returncode} on {path}: {stderr}"
            )

        # ffmpeg exits cleanly but writes nothing when the offset is past the end
        if not process.stdout:
            raise ExtractionFailedError(f"No frame at {offset_seconds:g}s in {path}")

        return process.stdout


class ThumbnailService:
    """Service for extracting and caching thumbnail frames"""

    def __init__(self, store: CatalogStore, decoder: FrameDecoder,
                 cache_dir: Union[str, Path, None] = None,
                 offset_seconds: float = DEFAULT_OFFSET_SECONDS):
        self.store = store
        self.decoder = decoder
        self.cache_dir = Path(cache_dir) if cache_dir else None
        self.offset_seconds = offset_seconds

    def cache_path(self, media_id: str) -> Optional[Path]:
        if self.cache_dir is None:
            return None
        return self.cache_dir / f"{media_id}.jpg"

    async def extract_frame(self, media_id: str) -> bytes:
        """
        Get the thumbnail frame of a catalog entry.

        A cached frame is returned without running the decoder.
        """
        record = await self.store.get_by_id(media_id)

        cached = await asyncio.to_thread(self._read_cache, media_id)
        if cached is not None:
            logger.debug(f"Thumbnail cache hit for {media_id}")
            return cached

        if not os.path.isfile(record.path):
            logger.error(f"Media file does not exist: {record.path}")
            raise UnavailableError(f"Media file unavailable: {record.name}")

        image = await self._decode(record)
        try:
            await asyncio.to_thread(self._write_cache, media_id, image)
        except OSError as e:
            logger.warning(f"Could not cache thumbnail for {media_id}: {e}")
        return image

    async def pregenerate(self, record: CatalogRecord) -> bool:
        """Write the cached thumbnail for a record if it is not there yet."""
        cache_path = self.cache_path(record.id)
        if cache_path is None or cache_path.exists():
            return False

        try:
            image = await self._decode(record)
            await asyncio.to_thread(self._write_cache, record.id, image)
        except (ExtractionFailedError, OSError) as e:
            logger.error(f"Failed to pre-generate thumbnail for {record.path}: {e}")
            return False

        logger.info(f"Pre-generated thumbnail for {record.name}")
        return True

    async def evict(self, media_id: str) -> None:
        """Remove a cached thumbnail, if any."""
        cache_path = self.cache_path(media_id)
        if cache_path is None:
            return
        try:
            await asyncio.to_thread(cache_path.unlink)
            logger.debug(f"Evicted cached thumbnail for {media_id}")
        except FileNotFoundError:
            pass

    async def clear(self) -> int:
        """Remove every cached thumbnail."""
        if self.cache_dir is None:
            return 0

        removed = await asyncio.to_thread(self._clear_cache)
        logger.info(f"Cleared {removed} cached thumbnails")
        return removed

    async def _decode(self, record: CatalogRecord) -> bytes:
        logger.info(f"Extracting frame at {self.offset_seconds:g}s from: {record.path}")
        try:
            return await asyncio.to_thread(self.decoder.decode, record.path, self.offset_seconds)
        except ExtractionFailedError as e:
            logger.error(f"Frame extraction failed for {record.path}: {e}")
            raise

    def _read_cache(self, media_id: str) -> Optional[bytes]:
        cache_path = self.cache_path(media_id)
        if cache_path is None:
            return None
        try:
            return cache_path.read_bytes()
        except FileNotFoundError:
            return None

    def _write_cache(self, media_id: str, image: bytes) -> None:
        cache_path = self.cache_path(media_id)
        if cache_path is None:
            return

        os.makedirs(self.cache_dir, exist_ok=True)
        # Each writer fills its own temp file, the rename is atomic
        with tempfile.NamedTemporaryFile(dir=self.cache_dir, suffix=".tmp", delete=False) as tmp_file:
            tmp_file.write(image)
        try:
            os.replace(tmp_file.name, cache_path)
        except OSError:
            os.unlink(tmp_file.name)
            raise

    def _clear_cache(self) -> int:
        removed = 0
        for cache_path in self.cache_dir.glob("*.jpg"):
            try:
                cache_path.unlink()
                removed += 1
            except FileNotFoundError:
                pass
        return removed
