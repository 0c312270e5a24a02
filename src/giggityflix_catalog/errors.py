"""Error taxonomy shared by the catalog services and the API layer."""
from typing import Optional


class CatalogError(Exception):
    """Base class for catalog errors."""
    http_status = 500


class InvalidArgumentError(CatalogError):
    """A caller supplied a value outside the accepted range."""
    http_status = 400


class NotFoundError(CatalogError):
    """No catalog record exists for the given identifier."""
    http_status = 404


class UnavailableError(CatalogError):
    """The record is catalogued but its file cannot be read."""
    http_status = 503


class ConflictError(CatalogError):
    """The item being added is already present."""
    http_status = 409


class ExtractionFailedError(CatalogError):
    """The external decoder did not produce a frame."""
    http_status = 500


class StoreError(CatalogError):
    """The underlying database reported an error."""
    http_status = 500


class ScanError(CatalogError):
    """A configured root directory could not be enumerated."""
    http_status = 500


class ConfigError(CatalogError):
    """The catalog configuration could not be loaded or changed."""
    http_status = 400


class RangeNotSatisfiableError(CatalogError):
    """The requested byte range lies outside the file."""
    http_status = 416

    def __init__(self, message: str, size: int):
        super().__init__(message)
        self.size = size


class SyncPassError(CatalogError):
    """At least one insert failed during a sync pass.

    ``cause`` is the first error observed; the remaining failures are only
    counted, callers are not told which records they belonged to.
    """

    def __init__(self, cause: BaseException, failed: int, result: Optional[object] = None):
        super().__init__(f"{failed} insert(s) failed during sync pass: {cause}")
        self.cause = cause
        self.failed = failed
        self.result = result
