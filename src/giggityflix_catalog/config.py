import os
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field


# Helper functions for parsing environment variables
def get_str_env(key: str, default: str = "") -> str:
    return os.environ.get(key, default)

def get_int_env(key: str, default: int) -> int:
    try:
        return int(os.environ.get(key, str(default)))
    except ValueError:
        return default

def get_float_env(key: str, default: float) -> float:
    try:
        return float(os.environ.get(key, str(default)))
    except ValueError:
        return default

def get_bool_env(key: str, default: bool) -> bool:
    value = os.environ.get(key, str(default)).lower()
    return value == "true"


# Default factory functions
def default_data_dir() -> str:
    return get_str_env("DATA_DIR", str(Path.home() / ".giggityflix_catalog"))

def default_db_path() -> str:
    return get_str_env("DB_PATH", "media.db")

def default_backup_dir() -> str:
    return get_str_env("DB_BACKUP_DIR", "backups")

def default_catalog_config_path() -> str:
    return get_str_env("CATALOG_CONFIG_PATH", "config.json")

def default_scan_interval() -> int:
    return get_int_env("SCAN_INTERVAL_MINUTES", 60)

def default_log_level() -> str:
    return get_str_env("LOG_LEVEL", "INFO")

def default_log_dir() -> str:
    return get_str_env("LOG_DIR", "logs")

def default_max_size_mb() -> int:
    return get_int_env("LOG_MAX_SIZE_MB", 10)

def default_backup_count() -> int:
    return get_int_env("LOG_BACKUP_COUNT", 5)

def default_use_color() -> bool:
    return get_bool_env("LOG_USE_COLOR", True)

def default_http_host() -> str:
    return get_str_env("HTTP_HOST", "0.0.0.0")

def default_http_port() -> int:
    return get_int_env("HTTP_PORT", 8080)

def default_stream_chunk_size() -> int:
    return get_int_env("STREAM_CHUNK_SIZE", 64 * 1024)

def default_ffmpeg_binary() -> str:
    return get_str_env("FFMPEG_BINARY", "ffmpeg")

def default_thumbnail_offset() -> float:
    return get_float_env("THUMBNAIL_OFFSET_SEC", 4.0)

def default_thumbnail_timeout() -> float:
    return get_float_env("THUMBNAIL_TIMEOUT_SEC", 30.0)

def default_thumbnail_cache_dir() -> Optional[str]:
    return get_str_env("THUMBNAIL_CACHE_DIR", "thumbnail_cache") or None

def default_sync_workers() -> int:
    return get_int_env("SYNC_WORKERS", 4)

def default_prune_concurrency() -> int:
    return get_int_env("PRUNE_CONCURRENCY", 10)


class DbConfig(BaseModel):
    """SQLite database configuration."""
    path: str = Field(default_factory=default_db_path)
    backup_dir: str = Field(default_factory=default_backup_dir)


class ScannerConfig(BaseModel):
    """Media scanner configuration."""
    catalog_config_path: str = Field(default_factory=default_catalog_config_path)
    scan_interval_minutes: int = Field(default_factory=default_scan_interval)


class LoggingConfig(BaseModel):
    """Logging configuration."""
    level: str = Field(default_factory=default_log_level)
    log_dir: str = Field(default_factory=default_log_dir)
    max_size_mb: int = Field(default_factory=default_max_size_mb)
    backup_count: int = Field(default_factory=default_backup_count)
    use_color: bool = Field(default_factory=default_use_color)


class ServerConfig(BaseModel):
    """HTTP server configuration."""
    host: str = Field(default_factory=default_http_host)
    port: int = Field(default_factory=default_http_port)
    stream_chunk_size: int = Field(default_factory=default_stream_chunk_size)


class ThumbnailConfig(BaseModel):
    """Frame extraction configuration."""
    ffmpeg_binary: str = Field(default_factory=default_ffmpeg_binary)
    offset_seconds: float = Field(default_factory=default_thumbnail_offset)
    timeout_seconds: float = Field(default_factory=default_thumbnail_timeout)
    cache_dir: Optional[str] = Field(default_factory=default_thumbnail_cache_dir)


class ReconcileConfig(BaseModel):
    """Reconciliation concurrency limits."""
    sync_workers: int = Field(default_factory=default_sync_workers)
    prune_concurrency: int = Field(default_factory=default_prune_concurrency)


class AppConfig(BaseModel):
    """Application configuration."""
    data_dir: str = Field(default_factory=default_data_dir)
    db: DbConfig = Field(default_factory=DbConfig)
    scanner: ScannerConfig = Field(default_factory=ScannerConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
    thumbnails: ThumbnailConfig = Field(default_factory=ThumbnailConfig)
    reconcile: ReconcileConfig = Field(default_factory=ReconcileConfig)

    def resolve(self, relative: str) -> Path:
        """Resolve a configured path against the data directory."""
        path = Path(relative)
        if path.is_absolute():
            return path
        return Path(self.data_dir) / path


# Create a singleton config instance
config = AppConfig()
