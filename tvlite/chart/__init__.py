"""
Client-side live view.

Components:
- BarBuffer / merge: growable bar history with the replace-tail / append / ignore rule
- IndicatorEngine: SMA, EMA, RSI, MACD and volume series (batch + incremental)
- Viewport: right-edge clamp of the visible range
- ChartSession: wires loader, live stream, buffer, indicators and viewport to a render surface

Usage:
    from tvlite.chart import ChartSession

    session = ChartSession(loader, surface, source="binance", symbol="BTCUSDT", interval="1m")
    await session.start()
"""

from tvlite.chart.buffer import BarBuffer, merge
from tvlite.chart.indicators import IndicatorEngine
from tvlite.chart.session import ChartSession, parse_preset
from tvlite.chart.viewport import Viewport, clamp, default_window

__all__ = [
    "BarBuffer",
    "ChartSession",
    "IndicatorEngine",
    "Viewport",
    "clamp",
    "default_window",
    "merge",
    "parse_preset",
]
