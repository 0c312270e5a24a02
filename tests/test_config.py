import os
from pathlib import Path
from unittest import mock

from giggityflix_catalog.config import AppConfig, get_bool_env, get_int_env


def test_env_overrides():
    env = {
        "DB_PATH": "catalog.db",
        "HTTP_PORT": "9090",
        "SYNC_WORKERS": "8",
        "THUMBNAIL_OFFSET_SEC": "2.5",
        "THUMBNAIL_CACHE_DIR": "",
    }
    with mock.patch.dict(os.environ, env):
        app_config = AppConfig()

    assert app_config.db.path == "catalog.db"
    assert app_config.server.port == 9090
    assert app_config.reconcile.sync_workers == 8
    assert app_config.thumbnails.offset_seconds == 2.5
    assert app_config.thumbnails.cache_dir is None


def test_defaults():
    with mock.patch.dict(os.environ, {}, clear=True):
        app_config = AppConfig()

    assert app_config.reconcile.sync_workers == 4
    assert app_config.reconcile.prune_concurrency == 10
    assert app_config.thumbnails.offset_seconds == 4.0
    assert app_config.thumbnails.cache_dir == "thumbnail_cache"
    assert app_config.scanner.catalog_config_path == "config.json"


def test_invalid_numbers_fall_back_to_default():
    with mock.patch.dict(os.environ, {"HTTP_PORT": "not-a-port"}):
        assert get_int_env("HTTP_PORT", 8080) == 8080


def test_get_bool_env():
    with mock.patch.dict(os.environ, {"FLAG": "TRUE"}):
        assert get_bool_env("FLAG", False) is True
    with mock.patch.dict(os.environ, {"FLAG": "no"}):
        assert get_bool_env("FLAG", True) is False


def test_resolve(tmp_path):
    app_config = AppConfig(data_dir=str(tmp_path))

    assert app_config.resolve("media.db") == tmp_path / "media.db"
    assert app_config.resolve("/var/lib/media.db") == Path("/var/lib/media.db")
