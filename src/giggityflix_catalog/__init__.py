"""
Giggityflix Catalog service.

Keeps a catalog of the media files found on local storage and serves them
over HTTP with byte-range streaming and thumbnail frames.
"""

from giggityflix_catalog.scanner.media_scanner import identify, scan
from giggityflix_catalog.services.catalog_store import CatalogStore
from giggityflix_catalog.services.reconcile_service import ReconciliationEngine
from giggityflix_catalog.services.stream_service import StreamService
from giggityflix_catalog.services.thumbnail_service import ThumbnailService

__version__ = "0.1.0"

__all__ = [
    'identify',
    'scan',
    'CatalogStore',
    'ReconciliationEngine',
    'StreamService',
    'ThumbnailService',
]
