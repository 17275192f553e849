"""
Cache Store.

TTL-bounded, file-backed store for normalized bar sequences. One JSON file per
key; the file's modification time is the freshness clock. Reads older than the
TTL are misses (the file is left in place and overwritten by the next write).

Best effort: storage failures never reach the caller. No locking; concurrent
writers for the same key race and the last one wins.
"""

from __future__ import annotations

import asyncio
import logging
import os
import re
import time
from pathlib import Path
from typing import Callable, Optional, Sequence

import orjson

from tvlite.config.configs import CacheConfig
from tvlite.errors.errors import CacheIOError
from tvlite.types.types import Bar, BarSequence

logger = logging.getLogger(__name__)

_UNSAFE = re.compile(r"[^A-Za-z0-9._=^-]")


def encode_bars(bars: Sequence[Bar]) -> bytes:
    """Canonical JSON encoding shared by the cache files and the HTTP layer."""
    return orjson.dumps([b.to_dict() for b in bars])


def decode_bars(raw: bytes) -> BarSequence:
    return tuple(Bar.from_dict(d) for d in orjson.loads(raw))


class FileCacheStore:
    def __init__(self, cfg: CacheConfig, clock: Callable[[], float] = time.time) -> None:
        self._cfg = cfg
        self._dir = Path(cfg.cache_dir)
        self._ttl_s = cfg.ttl_s
        self._clock = clock

    @property
    def ttl_s(self) -> float:
        return self._ttl_s

    def path_for(self, key: str) -> Path:
        # Keys embed user-supplied symbols; keep them inside the cache dir.
        return self._dir / f"{_UNSAFE.sub('_', key)}.json"

    def get(self, key: str) -> Optional[BarSequence]:
        """Return the cached bars for `key`, or None when absent or stale."""
        fp = self.path_for(key)
        try:
            age_s = self._clock() - fp.stat().st_mtime
            if age_s >= self._ttl_s:
                logger.debug(f"[cache] stale key={key} age={age_s:.1f}s")
                return None
            bars = decode_bars(fp.read_bytes())
        except FileNotFoundError:
            return None
        except (OSError, ValueError, KeyError, TypeError) as e:
            logger.warning(f"[cache] unreadable entry key={key}: {e}")
            return None
        logger.debug(f"[cache] hit key={key} bars={len(bars)}")
        return bars

    def put(self, key: str, bars: Sequence[Bar]) -> None:
        """Write-through; failures are logged and dropped."""
        try:
            self._write(key, encode_bars(bars))
        except CacheIOError as e:
            logger.warning(f"[cache] write failed: {e.describe()}")

    async def get_async(self, key: str) -> Optional[BarSequence]:
        """`get` on a worker thread, for callers on the event loop."""
        return await asyncio.to_thread(self.get, key)

    async def put_async(self, key: str, bars: Sequence[Bar]) -> None:
        await asyncio.to_thread(self.put, key, bars)

    def _write(self, key: str, payload: bytes) -> None:
        fp = self.path_for(key)
        tmp = fp.with_name(f"{fp.name}.{os.getpid()}.tmp")
        try:
            self._dir.mkdir(parents=True, exist_ok=True)
            tmp.write_bytes(payload)
            os.replace(tmp, fp)
        except OSError as e:
            raise CacheIOError(f"Cannot write cache entry: {e}", key=key, component="cache") from e
