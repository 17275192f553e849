"""
Live kline feed.

Components:
- KlineStream: one websocket per (symbol, interval), frames decoded with orjson
- parse_kline_message: Binance kline payload -> Bar

Usage:
    from tvlite.data.live import KlineStream

    stream = KlineStream("BTCUSDT", "1m", on_bar)
    await stream.open()
"""

from tvlite.data.live.handlers import parse_kline_message
from tvlite.data.live.stream import KlineStream, StreamStats, stream_url

__all__ = [
    "KlineStream",
    "StreamStats",
    "parse_kline_message",
    "stream_url",
]
