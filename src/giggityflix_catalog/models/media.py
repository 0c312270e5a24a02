from typing import Dict, List, Optional

from pydantic import BaseModel, Field, field_validator


class CatalogRecord(BaseModel):
    """Represents a media file known to the catalog."""
    id: str  # SHA-1 of the absolute path
    name: str  # Base file name
    path: str  # Absolute path to the file
    extension: str = ""  # Lower-cased, with leading dot

    def to_dict(self) -> Dict[str, str]:
        """Serialize using the wire field names."""
        return {
            "id": self.id,
            "name": self.name,
            "path": self.path,
            "ext": self.extension,
        }


def normalize_extension(ext: str) -> str:
    """Lower-case an extension and make sure it starts with a dot."""
    ext = ext.strip().lower()
    if ext and not ext.startswith("."):
        ext = "." + ext
    return ext


class CatalogConfig(BaseModel):
    """Operator-controlled scan configuration, persisted as JSON."""
    media_dirs: List[str] = Field(default_factory=list)
    supported_extensions: List[str] = Field(
        default_factory=lambda: [".mp4", ".mkv", ".avi", ".mov", ".webm"]
    )
    on_demand: bool = True
    allowed_origins: List[str] = Field(default_factory=list)

    @field_validator("supported_extensions")
    @classmethod
    def _normalize_extensions(cls, value: List[str]) -> List[str]:
        result = []
        for ext in value:
            ext = normalize_extension(ext)
            if ext and ext not in result:
                result.append(ext)
        return result


class Page(BaseModel):
    """One page of catalog records."""
    items: List[CatalogRecord]
    number_of_elements: int
    pages: int
    page: int
    count: int

    def to_dict(self) -> dict:
        return {
            "items": [item.to_dict() for item in self.items],
            "number_of_elements": self.number_of_elements,
            "pages": self.pages,
            "page": self.page,
            "count": self.count,
        }


class SyncResult(BaseModel):
    """Outcome of a sync pass."""
    inserted: int = 0
    already_present: int = 0
    failed: int = 0
    inserted_ids: List[str] = Field(default_factory=list)


class PruneResult(BaseModel):
    """Outcome of a prune pass."""
    deleted: int = 0
    deleted_ids: List[str] = Field(default_factory=list)
    failed: Dict[str, str] = Field(default_factory=dict)  # id -> error message


class ReconcileResult(BaseModel):
    """Outcome of a full scan/sync/prune cycle."""
    scanned: int = 0
    sync: SyncResult = Field(default_factory=SyncResult)
    prune: PruneResult = Field(default_factory=PruneResult)
    sync_error: Optional[str] = None
    thumbnails_generated: int = 0

    def to_dict(self) -> dict:
        return {
            "scanned": self.scanned,
            "inserted": self.sync.inserted,
            "already_present": self.sync.already_present,
            "insert_failures": self.sync.failed,
            "deleted": self.prune.deleted,
            "delete_failures": len(self.prune.failed),
            "sync_error": self.sync_error,
            "thumbnails_generated": self.thumbnails_generated,
        }
