from unittest import mock

import pytest

from giggityflix_catalog.catalog_app import CatalogApp
from giggityflix_catalog.config import AppConfig
from giggityflix_catalog.errors import ScanError
from giggityflix_catalog.models.media import CatalogConfig
from giggityflix_catalog.scanner.media_scanner import identify

JPEG = b"\xff\xd8\xff\xe0fake-jpeg\xff\xd9"


@pytest.fixture
def settings(tmp_path):
    return AppConfig(data_dir=str(tmp_path / "data"))


@pytest.fixture
def decoder():
    fake = mock.MagicMock()
    fake.decode.return_value = JPEG
    return fake


@pytest.fixture
async def catalog_app(settings, decoder):
    app = CatalogApp(settings, decoder=decoder)
    await app.initialize()
    yield app
    await app.store.close()


async def _use_media_dir(catalog_app, media_dir, on_demand=True):
    await catalog_app.config_store.save(CatalogConfig(
        media_dirs=[str(media_dir)], supported_extensions=[".mp4"], on_demand=on_demand
    ))


@pytest.mark.asyncio
async def test_initialize_creates_files(catalog_app, settings):
    assert settings.resolve("config.json").exists()
    assert settings.resolve("media.db").exists()


@pytest.mark.asyncio
async def test_reconcile_syncs_scan(catalog_app, media_dir):
    await _use_media_dir(catalog_app, media_dir)

    result = await catalog_app.reconcile()

    assert result.scanned == 1
    assert result.sync.inserted == 1
    records = await catalog_app.store.list_all()
    assert [r.name for r in records] == ["a.mp4"]
    assert records[0].id == identify(str(media_dir / "a.mp4"))


@pytest.mark.asyncio
async def test_reconcile_prunes_removed_files(catalog_app, media_dir):
    (media_dir / "c.mp4").write_bytes(b"x")
    await _use_media_dir(catalog_app, media_dir)
    await catalog_app.reconcile()

    (media_dir / "c.mp4").unlink()
    result = await catalog_app.reconcile()

    assert result.prune.deleted == 1
    assert [r.name for r in await catalog_app.store.list_all()] == ["a.mp4"]


@pytest.mark.asyncio
async def test_reconcile_evicts_pruned_thumbnails(catalog_app, media_dir):
    await _use_media_dir(catalog_app, media_dir)
    await catalog_app.reconcile()
    media_id = identify(str(media_dir / "a.mp4"))
    await catalog_app.thumbnail_service.extract_frame(media_id)
    cache_path = catalog_app.thumbnail_service.cache_path(media_id)
    assert cache_path.exists()

    (media_dir / "a.mp4").unlink()
    await catalog_app.reconcile()

    assert not cache_path.exists()


@pytest.mark.asyncio
async def test_reconcile_pregenerates_when_not_on_demand(catalog_app, media_dir, decoder):
    await _use_media_dir(catalog_app, media_dir, on_demand=False)

    result = await catalog_app.reconcile()

    assert result.thumbnails_generated == 1
    media_id = identify(str(media_dir / "a.mp4"))
    assert catalog_app.thumbnail_service.cache_path(media_id).read_bytes() == JPEG

    # Already cached records are not decoded again
    second = await catalog_app.reconcile()
    assert second.thumbnails_generated == 0
    assert decoder.decode.call_count == 1


@pytest.mark.asyncio
async def test_reconcile_on_demand_skips_pregeneration(catalog_app, media_dir, decoder):
    await _use_media_dir(catalog_app, media_dir)

    result = await catalog_app.reconcile()

    assert result.thumbnails_generated == 0
    decoder.decode.assert_not_called()


@pytest.mark.asyncio
async def test_failed_scan_leaves_catalog_untouched(catalog_app, media_dir, tmp_path):
    await _use_media_dir(catalog_app, media_dir)
    await catalog_app.reconcile()

    await catalog_app.config_store.add_media_dir(str(tmp_path / "missing"))
    with pytest.raises(ScanError):
        await catalog_app.reconcile()

    assert len(await catalog_app.store.list_all()) == 1


@pytest.mark.asyncio
async def test_start_and_stop_without_server(settings, decoder, media_dir):
    app = CatalogApp(settings, decoder=decoder)
    await app.config_store.ensure_exists(CatalogConfig(media_dirs=[str(media_dir)]))

    await app.start(serve=False)
    try:
        assert app.is_running()
        assert len(await app.store.list_all()) == 1
    finally:
        await app.stop()

    assert not app.is_running()
    await app.wait_for_stop()


@pytest.mark.asyncio
async def test_start_survives_missing_root(settings, decoder, media_dir, tmp_path):
    """An unmounted root is logged; the service still comes up."""
    app = CatalogApp(settings, decoder=decoder)
    await app.config_store.ensure_exists(CatalogConfig(
        media_dirs=[str(media_dir), str(tmp_path / "unmounted")]
    ))

    await app.start(serve=False)
    try:
        assert app.is_running()
        assert await app.store.list_all() == []
    finally:
        await app.stop()


@pytest.mark.asyncio
async def test_failed_initialize_leaves_app_stopped(settings, decoder):
    app = CatalogApp(settings, decoder=decoder)

    with mock.patch.object(app.store, "initialize", side_effect=RuntimeError("disk gone")):
        with pytest.raises(RuntimeError):
            await app.start(serve=False)

    assert not app.is_running()


@pytest.mark.asyncio
async def test_import_directory(catalog_app, media_dir):
    (media_dir / "c.mp4").write_bytes(b"x")

    inserted = await catalog_app.import_directory(str(media_dir))

    assert inserted == 2
    assert sorted(r.name for r in await catalog_app.store.list_all()) == ["a.mp4", "c.mp4"]
    assert (await catalog_app.config_store.load()).media_dirs == [str(media_dir)]

    # A second import only reports new files and keeps the directory listed once
    assert await catalog_app.import_directory(str(media_dir)) == 0
    assert (await catalog_app.config_store.load()).media_dirs == [str(media_dir)]


@pytest.mark.asyncio
async def test_import_missing_directory(catalog_app, tmp_path):
    with pytest.raises(ScanError):
        await catalog_app.import_directory(str(tmp_path / "missing"))

    assert (await catalog_app.config_store.load()).media_dirs == []
