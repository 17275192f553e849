"""
Chart session: the client-side live view for one (source, symbol, interval).

Owns the BarBuffer, IndicatorEngine and Viewport, and drives the render surface:
    load()           -> BarLoader -> buffer.reset -> batch indicators -> set_series
    on_stream_bar()  -> merge -> incremental indicators -> apply_update -> clamp

A newer load() cancels the one in flight; the superseded load is dropped
silently and never sets `error`. The live stream is only opened for sources in
ChartConfig.stream_sources, one stream per (symbol, interval).
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional, Protocol

from tvlite.chart.buffer import BarBuffer
from tvlite.chart.indicators import IndicatorEngine
from tvlite.chart.viewport import Viewport
from tvlite.config.configs import ChartConfig
from tvlite.data.live.stream import KlineStream
from tvlite.errors.errors import BarFeedError
from tvlite.ports.market_data import BarLoader
from tvlite.ports.render_surface import RenderSurface
from tvlite.types.aliases import INTERVALS
from tvlite.types.types import Bar, IndicatorPoint, MergeOutcome, ViewportRange

logger = logging.getLogger(__name__)

CANDLES_SERIES_ID = "candles"
CLOSE_SERIES_ID = "close"

# Preset namespace -> source id. Unknown namespaces fall back to binance.
PRESET_SOURCES: dict[str, str] = {
    "BINANCE": "binance",
    "YF": "yahoo",
}


def parse_preset(preset: str) -> tuple[str, str, str]:
    """
    "BINANCE:BTCUSDT|1h" -> ("binance", "BTCUSDT", "1h")
    "YF:AAPL|1d"         -> ("yahoo", "AAPL", "1d")
    """
    namespaced, sep, interval = preset.strip().partition("|")
    provider, colon, symbol = namespaced.partition(":")
    if not sep or not colon or not symbol or interval not in INTERVALS:
        raise ValueError(f"Invalid preset: {preset!r} (expected NS:SYMBOL|interval)")
    return PRESET_SOURCES.get(provider.upper(), "binance"), symbol, interval


class LiveStream(Protocol):
    async def open(self) -> bool: ...

    async def close(self) -> None: ...


StreamFactory = Callable[[str, str, Callable[[Bar], Awaitable[None]]], LiveStream]


def _close_points(bars: list[Bar] | tuple[Bar, ...]) -> list[IndicatorPoint]:
    return [IndicatorPoint(time=b.time, value=b.close) for b in bars]


class ChartSession:
    def __init__(
        self,
        loader: BarLoader,
        surface: RenderSurface,
        cfg: Optional[ChartConfig] = None,
        stream_factory: Optional[StreamFactory] = None,
        source: str = "binance",
        symbol: str = "BTCUSDT",
        interval: str = "1d",
    ) -> None:
        self._cfg = cfg or ChartConfig()
        self._loader = loader
        self._surface = surface
        self._stream_factory = stream_factory or self._default_stream

        self._source = source.lower()
        self._symbol = symbol
        self._interval = self._check_interval(interval)

        self.buffer = BarBuffer()
        self.indicators = IndicatorEngine(self._cfg)
        self.viewport = Viewport(
            surface, last_index=lambda: self.buffer.last_index, right_pad=self._cfg.right_pad
        )

        self.error: Optional[str] = None
        self.loading = False
        self._load_task: Optional[asyncio.Task[None]] = None
        self._stream: Optional[LiveStream] = None

    @staticmethod
    def _check_interval(interval: str) -> str:
        if interval not in INTERVALS:
            raise ValueError(f"Unsupported interval: {interval!r} (expected one of {INTERVALS})")
        return interval

    def _default_stream(
        self, symbol: str, interval: str, on_bar: Callable[[Bar], Awaitable[None]]
    ) -> LiveStream:
        return KlineStream(symbol, interval, on_bar, ws_base=self._cfg.ws_base)

    @property
    def params(self) -> tuple[str, str, str]:
        return self._source, self._symbol, self._interval

    @property
    def streaming(self) -> bool:
        return self._stream is not None

    # --- Lifecycle ---

    async def start(self) -> None:
        await self.load()
        await self._restart_stream()

    async def close(self) -> None:
        task, self._load_task = self._load_task, None
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        await self._close_stream()

    async def set_params(
        self,
        source: Optional[str] = None,
        symbol: Optional[str] = None,
        interval: Optional[str] = None,
    ) -> None:
        """
        Switch what the view shows.

        The old stream is closed and the view emptied before the new history is
        loaded, so no bar of one (symbol, interval) is merged into another's
        history. The new stream opens once the load has finished.
        """
        if interval is not None:
            self._interval = self._check_interval(interval)
        if source is not None:
            self._source = source.lower()
        if symbol is not None:
            self._symbol = symbol
        await self._close_stream()
        self._clear_history()
        await self.load()
        await self._restart_stream()

    async def apply_preset(self, preset: str) -> None:
        source, symbol, interval = parse_preset(preset)
        await self.set_params(source=source, symbol=symbol, interval=interval)

    def set_right_pad(self, value: int) -> None:
        self.viewport.set_right_pad(value)

    def on_user_range(self, rng: ViewportRange) -> None:
        self.viewport.on_user_range(rng)

    # --- History ---

    async def load(self) -> None:
        """Fetch history and redraw. Supersedes any load still in flight."""
        previous = self._load_task
        if previous is not None and not previous.done():
            previous.cancel()
            logger.debug("[session] superseding in-flight load")

        task = asyncio.create_task(self._load_once(*self.params), name="chart_load")
        self._load_task = task
        try:
            await task
        except asyncio.CancelledError:
            if task.cancelled() and self._load_task is not task:
                return
            raise

    async def _load_once(self, source: str, symbol: str, interval: str) -> None:
        self.loading = True
        self.error = None
        try:
            bars = await self._loader.load(source, symbol, interval, self._cfg.default_limit)
        except BarFeedError as e:
            self.error = str(e)
            logger.warning(f"[session] load failed for {source}:{symbol} {interval}: {e}")
            return
        finally:
            if self._load_task is asyncio.current_task():
                self.loading = False

        try:
            self._apply_history(bars, interval)
        except ValueError as e:
            # out-of-order or duplicate bar times from the loader
            self.error = str(e)
            logger.warning(f"[session] rejected history for {source}:{symbol} {interval}: {e}")

    def _clear_history(self) -> None:
        self.buffer.reset(())
        self._surface.set_series(CANDLES_SERIES_ID, [])
        self._surface.set_series(CLOSE_SERIES_ID, [])
        for series_id, points in self.indicators.clear().items():
            self._surface.set_series(series_id, points)

    def _apply_history(self, bars: tuple[Bar, ...], interval: str) -> None:
        self.buffer.reset(bars)
        self._surface.set_series(CANDLES_SERIES_ID, list(bars))
        self._surface.set_series(CLOSE_SERIES_ID, _close_points(bars))
        for series_id, points in self.indicators.recompute(self.buffer).items():
            self._surface.set_series(series_id, points)
        self.viewport.apply_initial(interval)
        logger.info(f"[session] loaded {len(bars)} bars {self._symbol} {interval}")

    # --- Live ---

    async def on_stream_bar(self, bar: Bar) -> None:
        outcome = self.buffer.merge(bar)
        if outcome is MergeOutcome.IGNORED:
            return
        self._surface.apply_update(CANDLES_SERIES_ID, [bar])
        self._surface.apply_update(CLOSE_SERIES_ID, _close_points([bar]))
        for series_id, points in self.indicators.update(self.buffer, outcome).items():
            self._surface.apply_update(series_id, points)
        self.viewport.after_merge()

    async def _restart_stream(self) -> None:
        await self._close_stream()
        if self._source not in self._cfg.stream_sources:
            return
        stream = self._stream_factory(self._symbol, self._interval, self.on_stream_bar)
        if await stream.open():
            self._stream = stream
        else:
            logger.info(f"[session] live stream unavailable for {self._symbol} {self._interval}")

    async def _close_stream(self) -> None:
        stream, self._stream = self._stream, None
        if stream is not None:
            await stream.close()
