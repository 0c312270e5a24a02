import asyncio
import json
import logging
import os
from pathlib import Path
from typing import Callable, Optional, Union

from pydantic import ValidationError

from giggityflix_catalog.errors import ConfigError, ConflictError
from giggityflix_catalog.models.media import CatalogConfig

logger = logging.getLogger(__name__)


class CatalogConfigStore:
    """
    Owns the operator-editable catalog configuration file.

    Every mutation reloads the file, applies the change and writes it back
    while holding a single lock, so concurrent edits are never lost.
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        self._lock = asyncio.Lock()

    async def ensure_exists(self, defaults: Optional[CatalogConfig] = None) -> CatalogConfig:
        """Write a default configuration file if none exists yet."""
        async with self._lock:
            if self.path.exists():
                return self._read()

            catalog_config = defaults or CatalogConfig()
            self._write(catalog_config)
            logger.info(f"Created default catalog configuration at {self.path}")
            return catalog_config

    async def load(self) -> CatalogConfig:
        """Load the configuration from disk."""
        async with self._lock:
            return self._read()

    async def fetch(self) -> CatalogConfig:
        """Reload the configuration, picking up edits made by other writers."""
        return await self.load()

    async def save(self, catalog_config: CatalogConfig) -> None:
        async with self._lock:
            self._write(catalog_config)

    async def add_media_dir(self, folder: str) -> CatalogConfig:
        """Add a media directory."""
        folder = os.path.normpath(folder)

        def mutate(catalog_config: CatalogConfig) -> None:
            if folder in catalog_config.media_dirs:
                raise ConflictError("folder already exists")
            catalog_config.media_dirs.append(folder)

        catalog_config = await self._update(mutate)
        logger.info(f"Added media directory {folder}")
        return catalog_config

    async def remove_media_dir(self, folder: str) -> CatalogConfig:
        """Remove a media directory."""
        folder = os.path.normpath(folder)

        def mutate(catalog_config: CatalogConfig) -> None:
            if folder not in catalog_config.media_dirs:
                raise ConfigError("folder not found")
            catalog_config.media_dirs = [d for d in catalog_config.media_dirs if d != folder]

        catalog_config = await self._update(mutate)
        logger.info(f"Removed media directory {folder}")
        return catalog_config

    async def toggle_stream_on_demand(self) -> CatalogConfig:
        """Flip between lazy and pre-generated thumbnails."""
        def mutate(catalog_config: CatalogConfig) -> None:
            catalog_config.on_demand = not catalog_config.on_demand

        catalog_config = await self._update(mutate)
        logger.info(f"Stream on demand set to {catalog_config.on_demand}")
        return catalog_config

    async def _update(self, mutate: Callable[[CatalogConfig], None]) -> CatalogConfig:
        async with self._lock:
            catalog_config = self._read()
            mutate(catalog_config)
            self._write(catalog_config)
            return catalog_config

    def _read(self) -> CatalogConfig:
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
            return CatalogConfig.model_validate(data)
        except FileNotFoundError as e:
            raise ConfigError(f"Catalog configuration not found: {self.path}") from e
        except (OSError, ValueError, ValidationError) as e:
            raise ConfigError(f"Failed to load catalog configuration {self.path}: {e}") from e

    def _write(self, catalog_config: CatalogConfig) -> None:
        try:
            os.makedirs(self.path.parent, exist_ok=True)
            self.path.write_text(
                json.dumps(catalog_config.model_dump(), indent=2), encoding="utf-8"
            )
        except OSError as e:
            raise ConfigError(f"Failed to save catalog configuration {self.path}: {e}") from e
