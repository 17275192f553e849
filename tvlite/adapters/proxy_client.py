from __future__ import annotations

import asyncio
import logging
from typing import Optional

import aiohttp

from tvlite.adapters.aiohttp_transport import AiohttpTransport
from tvlite.errors.errors import MalformedResponse, ProviderError
from tvlite.ports.http_transport import HttpTransport
from tvlite.ports.market_data import BarLoader
from tvlite.types.types import Bar, BarSequence

logger = logging.getLogger(__name__)


class ProxyBarClient(BarLoader):
    """
    BarLoader that asks a running tvlite server (GET /bars).

    Any non-2xx answer becomes ProviderError("Proxy API <status>"); the server's
    own error body is not inspected.
    """

    def __init__(self, transport: HttpTransport, base_url: str = "http://127.0.0.1:3000") -> None:
        self._transport = transport
        self._base_url = base_url.rstrip("/")

    async def load(self, source: str, symbol: str, interval: str, limit: int) -> BarSequence:
        url = f"{self._base_url}/bars"
        params = {"source": source, "symbol": symbol, "interval": interval, "limit": str(limit)}
        try:
            status, body = await self._transport.get_json(url, params=params)
        except (aiohttp.ClientError, asyncio.TimeoutError, OSError) as e:
            raise ProviderError(
                f"Proxy request failed: {str(e) or type(e).__name__}",
                provider="proxy",
                url=url,
            ) from e
        if not 200 <= status < 300:
            logger.debug(f"[proxy] GET {url} {params} -> {status}")
            raise ProviderError(f"Proxy API {status}", status=status, provider="proxy", url=url)
        if not isinstance(body, list):
            raise MalformedResponse("Expected array of bars", provider="proxy")
        try:
            return tuple(Bar.from_dict(d) for d in body)
        except (KeyError, TypeError, ValueError) as e:
            raise MalformedResponse(f"Invalid bar: {e}", provider="proxy") from e

    async def close(self) -> None:
        await self._transport.close()


def proxy_client(base_url: str, timeout_s: Optional[float] = None) -> ProxyBarClient:
    return ProxyBarClient(AiohttpTransport(timeout_s=timeout_s), base_url=base_url)
