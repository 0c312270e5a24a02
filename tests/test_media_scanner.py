import asyncio
import hashlib
import os
from unittest import mock

import pytest

from giggityflix_catalog.errors import ScanError
from giggityflix_catalog.models.media import CatalogConfig
from giggityflix_catalog.scanner.media_scanner import MediaScanner, identify, scan
from giggityflix_catalog.services.config_service import CatalogConfigStore


def test_identify_is_sha1_of_path():
    """The id is the hex SHA-1 of the path string."""
    path = "/videos/a.mp4"

    assert identify(path) == hashlib.sha1(path.encode("utf-8")).hexdigest()
    assert len(identify(path)) == 40
    assert identify(path) == identify(path)


def test_identify_differs_per_path():
    assert identify("/videos/a.mp4") != identify("/videos/b.mp4")


def test_scan_filters_by_extension(media_dir):
    """Only files with an allowed extension are returned."""
    records = scan([str(media_dir)], [".mp4"])

    assert len(records) == 1
    record = records[0]
    expected_path = os.path.join(os.path.abspath(media_dir), "a.mp4")
    assert record.name == "a.mp4"
    assert record.path == expected_path
    assert record.extension == ".mp4"
    assert record.id == identify(expected_path)


def test_scan_matches_extensions_case_insensitively(tmp_path):
    (tmp_path / "CLIP.MP4").write_bytes(b"x")
    (tmp_path / "movie.Mkv").write_bytes(b"x")

    records = scan([str(tmp_path)], ["MP4", ".mkv"])

    assert sorted(r.name for r in records) == ["CLIP.MP4", "movie.Mkv"]
    assert {r.extension for r in records} == {".mp4", ".mkv"}


def test_scan_recurses_into_subdirectories(tmp_path):
    nested = tmp_path / "season1" / "disc2"
    nested.mkdir(parents=True)
    (nested / "episode.mp4").write_bytes(b"x")

    records = scan([str(tmp_path)], [".mp4"])

    assert [r.name for r in records] == ["episode.mp4"]
    assert records[0].path == os.path.join(str(nested), "episode.mp4")


def test_scan_multiple_roots(tmp_path):
    first = tmp_path / "one"
    second = tmp_path / "two"
    first.mkdir()
    second.mkdir()
    (first / "a.mp4").write_bytes(b"x")
    (second / "b.mp4").write_bytes(b"x")

    records = scan([str(first), str(second)], [".mp4"])

    assert sorted(r.name for r in records) == ["a.mp4", "b.mp4"]


def test_scan_missing_root_raises(tmp_path):
    with pytest.raises(ScanError):
        scan([str(tmp_path / "does-not-exist")], [".mp4"])


def test_scan_empty_extensions_matches_nothing(media_dir):
    assert scan([str(media_dir)], []) == []


def test_scan_skips_unreadable_subdirectory(tmp_path):
    """An error below the root is logged and skipped."""
    (tmp_path / "a.mp4").write_bytes(b"x")
    locked = tmp_path / "locked"
    locked.mkdir()

    real_walk = os.walk

    def failing_walk(top, onerror=None, **kwargs):
        onerror(PermissionError(13, "Permission denied", str(locked)))
        yield from real_walk(top, onerror=onerror, **kwargs)

    with mock.patch("giggityflix_catalog.scanner.media_scanner.os.walk", side_effect=failing_walk):
        records = scan([str(tmp_path)], [".mp4"])

    assert [r.name for r in records] == ["a.mp4"]


class TestMediaScanner:
    """Tests for the MediaScanner."""

    @pytest.fixture
    async def config_store(self, tmp_path, media_dir):
        store = CatalogConfigStore(tmp_path / "config.json")
        await store.ensure_exists(CatalogConfig(
            media_dirs=[str(media_dir)], supported_extensions=[".mp4"]
        ))
        return store

    @pytest.mark.asyncio
    async def test_scan_now_uses_current_configuration(self, config_store, media_dir, tmp_path):
        scanner = MediaScanner(config_store)

        records = await scanner.scan_now()
        assert [r.name for r in records] == ["a.mp4"]

        # Edits to the file are picked up on the next scan
        other = tmp_path / "other"
        other.mkdir()
        (other / "c.mp4").write_bytes(b"x")
        await config_store.add_media_dir(str(other))

        records = await scanner.scan_now()
        assert sorted(r.name for r in records) == ["a.mp4", "c.mp4"]

    @pytest.mark.asyncio
    async def test_start_without_callback_does_nothing(self, config_store):
        scanner = MediaScanner(config_store)

        await scanner.start()

        assert scanner._task is None
        await scanner.stop()

    @pytest.mark.asyncio
    async def test_periodic_scan_invokes_callback(self, config_store):
        on_interval = mock.AsyncMock()
        # Roughly 60ms between cycles
        scanner = MediaScanner(config_store, scan_interval_minutes=0.001, on_interval=on_interval)

        await scanner.start()
        await asyncio.sleep(0.3)
        await scanner.stop()

        assert on_interval.await_count >= 1
        assert scanner._task is None

    @pytest.mark.asyncio
    async def test_periodic_scan_survives_callback_errors(self, config_store):
        on_interval = mock.AsyncMock(side_effect=RuntimeError("boom"))
        scanner = MediaScanner(config_store, scan_interval_minutes=0.001, on_interval=on_interval)

        await scanner.start()
        await asyncio.sleep(0.3)

        assert not scanner._task.done()
        await scanner.stop()

        assert on_interval.await_count >= 2
