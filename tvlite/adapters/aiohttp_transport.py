from __future__ import annotations

import logging
from typing import Any, Mapping, Optional

import aiohttp
import orjson

from tvlite.ports.http_transport import HttpTransport

logger = logging.getLogger(__name__)


class AiohttpTransport(HttpTransport):
    """
    HttpTransport backed by one shared aiohttp.ClientSession.

    The session is created lazily on first use so the transport can be
    constructed outside a running event loop. `timeout_s=None` disables the
    total timeout entirely (aiohttp's own default would be 300s).
    """

    def __init__(self, timeout_s: Optional[float] = None, user_agent: Optional[str] = None) -> None:
        self._timeout = aiohttp.ClientTimeout(total=timeout_s)
        self._user_agent = user_agent
        self._session: Optional[aiohttp.ClientSession] = None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            headers = {"User-Agent": self._user_agent} if self._user_agent else None
            self._session = aiohttp.ClientSession(timeout=self._timeout, headers=headers)
        return self._session

    async def get_json(
        self,
        url: str,
        *,
        params: Optional[Mapping[str, str]] = None,
        headers: Optional[Mapping[str, str]] = None,
    ) -> tuple[int, Any]:
        session = self._get_session()
        async with session.get(url, params=params, headers=headers) as resp:
            if not 200 <= resp.status < 300:
                logger.debug(f"GET {url} -> {resp.status}")
                return resp.status, None
            raw = await resp.read()
        return resp.status, orjson.loads(raw)

    async def close(self) -> None:
        if self._session and not self._session.closed:
            await self._session.close()
        self._session = None
