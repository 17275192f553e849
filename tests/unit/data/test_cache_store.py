"""
Unit tests for the file-backed TTL cache.
"""

import asyncio
import os
from pathlib import Path

import pytest

from tests.unit.fixtures.fakes import make_bars
from tvlite.config.configs import CacheConfig
from tvlite.data.cache import FileCacheStore, decode_bars, encode_bars


@pytest.fixture
def store(tmp_path: Path) -> FileCacheStore:
    return FileCacheStore(CacheConfig(cache_dir=tmp_path / "cache", ttl_s=300))


class TestFileCacheStore:
    def test_miss_when_absent(self, store: FileCacheStore) -> None:
        assert store.get("binance_BTCUSDT_1d_10") is None

    def test_put_then_get(self, store: FileCacheStore) -> None:
        bars = make_bars([1, 2, 3])
        store.put("binance_BTCUSDT_1d_3", bars)

        assert store.get("binance_BTCUSDT_1d_3") == bars
        assert store.path_for("binance_BTCUSDT_1d_3").read_bytes() == encode_bars(bars)

    def test_stale_entry_is_a_miss(self, store: FileCacheStore) -> None:
        key = "binance_BTCUSDT_1d_3"
        store.put(key, make_bars([1, 2, 3]))
        fp = store.path_for(key)
        old = fp.stat().st_mtime - 301
        os.utime(fp, (old, old))

        assert store.get(key) is None
        # left in place for the next write to overwrite
        assert fp.exists()

    def test_ttl_boundary_uses_clock(self, tmp_path: Path) -> None:
        now = [0.0]
        store = FileCacheStore(CacheConfig(cache_dir=tmp_path, ttl_s=300), clock=lambda: now[0])
        store.put("k", make_bars([1]))
        mtime = store.path_for("k").stat().st_mtime

        now[0] = mtime + 299.9
        assert store.get("k") is not None
        now[0] = mtime + 300
        assert store.get("k") is None

    def test_overwrite_refreshes(self, store: FileCacheStore) -> None:
        store.put("k", make_bars([1]))
        store.put("k", make_bars([1, 2]))
        assert len(store.get("k") or ()) == 2

    def test_corrupt_entry_is_a_miss(self, store: FileCacheStore) -> None:
        fp = store.path_for("k")
        fp.parent.mkdir(parents=True)
        fp.write_bytes(b"{not json")
        assert store.get("k") is None

    def test_write_failure_is_swallowed(self, tmp_path: Path) -> None:
        blocker = tmp_path / "file"
        blocker.write_text("x")
        # cache_dir under a regular file cannot be created
        store = FileCacheStore(CacheConfig(cache_dir=blocker / "cache"))

        store.put("k", make_bars([1, 2]))
        assert store.get("k") is None

    def test_key_cannot_escape_cache_dir(self, store: FileCacheStore, tmp_path: Path) -> None:
        fp = store.path_for("yahoo_../../etc/passwd_1d_10")
        assert fp.parent == tmp_path / "cache"

    def test_round_trip_encoding(self) -> None:
        bars = make_bars([1.5, 2.25])
        assert decode_bars(encode_bars(bars)) == bars


class TestAsyncAccess:
    @pytest.mark.asyncio
    async def test_put_then_get_on_worker_thread(
        self, store: FileCacheStore, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        offloaded: list[str] = []
        real_to_thread = asyncio.to_thread

        async def recording_to_thread(func, /, *args, **kwargs):
            offloaded.append(func.__name__)
            return await real_to_thread(func, *args, **kwargs)

        monkeypatch.setattr("tvlite.data.cache.asyncio.to_thread", recording_to_thread)
        bars = make_bars([1, 2, 3])

        await store.put_async("k", bars)

        assert await store.get_async("k") == bars
        assert offloaded == ["put", "get"]
