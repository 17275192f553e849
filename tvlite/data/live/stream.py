"""
Kline websocket stream for one (symbol, interval).

Handles:
- Connection to the Binance single-stream kline endpoint
- Decoding frames (orjson) into Bars and handing them to a callback
- Dropping unparseable frames and connection failures at the boundary

No reconnect/backoff: when the socket drops the stream simply ends. Changing
symbol or interval means closing this stream and opening a new one.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

import aiohttp
import orjson

from tvlite.data.live.handlers import parse_kline_message
from tvlite.errors.errors import BarFeedError
from tvlite.types.types import Bar

logger = logging.getLogger(__name__)

DEFAULT_WS_BASE = "wss://stream.binance.com:9443/ws"


def stream_url(symbol: str, interval: str, ws_base: str = DEFAULT_WS_BASE) -> str:
    return f"{ws_base.rstrip('/')}/{symbol.lower()}@kline_{interval.lower()}"


@dataclass
class StreamStats:
    """Counters for one stream."""

    messages_received: int = 0
    bars_emitted: int = 0
    parse_errors: int = 0


class KlineStream:
    """
    Usage:
        async def on_bar(bar: Bar) -> None:
            ...

        stream = KlineStream("BTCUSDT", "1m", on_bar)
        await stream.open()
        # ... later ...
        await stream.close()

    A caller-provided ClientSession is borrowed and left open on close();
    otherwise the stream owns (and closes) its own session.
    """

    def __init__(
        self,
        symbol: str,
        interval: str,
        on_bar: Callable[[Bar], Awaitable[None]],
        ws_base: str = DEFAULT_WS_BASE,
        session: Optional[aiohttp.ClientSession] = None,
    ) -> None:
        self._symbol = symbol
        self._interval = interval
        self._on_bar = on_bar
        self._url = stream_url(symbol, interval, ws_base)
        self._name = f"kline:{symbol.lower()}@{interval}"

        self._session = session
        self._owns_session = session is None
        self._ws: Optional[aiohttp.ClientWebSocketResponse] = None
        self._receive_task: Optional[asyncio.Task[None]] = None
        self._stats = StreamStats()

    @property
    def url(self) -> str:
        return self._url

    @property
    def key(self) -> tuple[str, str]:
        return (self._symbol, self._interval)

    @property
    def stats(self) -> StreamStats:
        return self._stats

    @property
    def is_open(self) -> bool:
        return self._ws is not None and not self._ws.closed

    async def open(self) -> bool:
        """Connect and start receiving. Returns False if the connection failed."""
        if self.is_open:
            logger.warning(f"[{self._name}] Already open")
            return True
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
            self._owns_session = True

        logger.info(f"[{self._name}] Connecting to {self._url}")
        try:
            self._ws = await self._session.ws_connect(self._url)
        except (aiohttp.ClientError, asyncio.TimeoutError, OSError) as e:
            logger.debug(f"[{self._name}] Connection failed: {e}")
            await self._close_session()
            return False

        self._receive_task = asyncio.create_task(self._receive_loop(), name=f"{self._name}_receive")
        return True

    async def _receive_loop(self) -> None:
        if self._ws is None:
            return
        try:
            async for msg in self._ws:
                if msg.type == aiohttp.WSMsgType.TEXT:
                    await self.handle_frame(msg.data)
                elif msg.type == aiohttp.WSMsgType.ERROR:
                    logger.debug(f"[{self._name}] WebSocket error: {self._ws.exception()}")
                    break
                elif msg.type in (aiohttp.WSMsgType.CLOSE, aiohttp.WSMsgType.CLOSED):
                    break
        except asyncio.CancelledError:
            logger.debug(f"[{self._name}] Receive loop cancelled")
            raise
        except (aiohttp.ClientError, OSError) as e:
            logger.debug(f"[{self._name}] Receive loop error: {e}")
        logger.info(f"[{self._name}] Stream ended")

    async def handle_frame(self, raw: str | bytes) -> None:
        """Decode one text frame and forward its bar, if any."""
        self._stats.messages_received += 1
        try:
            bar = parse_kline_message(orjson.loads(raw))
        except (orjson.JSONDecodeError, BarFeedError) as e:
            self._stats.parse_errors += 1
            logger.debug(f"[{self._name}] Dropped frame: {e}")
            return
        if bar is None:
            return
        self._stats.bars_emitted += 1
        await self._on_bar(bar)

    async def close(self) -> None:
        task, self._receive_task = self._receive_task, None
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

        ws, self._ws = self._ws, None
        if ws is not None and not ws.closed:
            await ws.close()
        await self._close_session()
        logger.info(f"[{self._name}] Closed")

    async def _close_session(self) -> None:
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()
        if self._owns_session:
            self._session = None
