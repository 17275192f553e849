"""BarProvider Port Interface.

Contract: fetch up to `limit` bars of `symbol` at `interval` from one upstream
source, normalized and in strictly increasing time order (UTC seconds).
"""

from __future__ import annotations

from typing import Protocol

from tvlite.types.types import BarSequence


class BarProvider(Protocol):
    name: str
    requires_credentials: bool

    async def fetch(self, symbol: str, interval: str, limit: int) -> BarSequence:
        """Raise ProviderError / MissingCredential / MalformedResponse on failure."""
        ...

    def has_credentials(self) -> bool: ...


class BarLoader(Protocol):
    """Client-side history source for the live view (HTTP proxy or in-process service)."""

    async def load(self, source: str, symbol: str, interval: str, limit: int) -> BarSequence:
        """Raise BarFeedError on failure."""
        ...
