"""
Kline message parsing for the live feed.

Binance kline stream payload (single-stream endpoint):
{
    "e": "kline",
    "E": 1672515782136,      // Event time
    "s": "BTCUSDT",
    "k": {
        "t": 1672515780000,  // Kline start time (ms)
        "T": 1672515839999,  // Kline close time
        "i": "1m",
        "o": "16800.00",
        "c": "16850.50",
        "h": "16860.00",
        "l": "16790.00",
        "v": "100.5",
        "x": false           // Is this kline closed?
    }
}

Forming (x=false) klines are emitted too: the merge rule replaces the tail
while the interval is still open.
"""

from __future__ import annotations

from typing import Any, Optional

from tvlite.data.normalizer import make_bar, safe_int
from tvlite.errors.errors import MalformedResponse
from tvlite.types.types import Bar

PROVIDER = "binance-ws"


def parse_kline_message(data: Any) -> Optional[Bar]:
    """
    Return the Bar carried by one decoded kline message.

    Returns None for frames without a `k` block (subscription acks, pings).

    Raises:
        MalformedResponse: `k` present but a field is missing or non-numeric
    """
    if not isinstance(data, dict):
        return None
    k = data.get("k")
    if not isinstance(k, dict):
        return None
    try:
        start_ms = safe_int(k["t"], "t", PROVIDER)
        return make_bar(PROVIDER, start_ms // 1000, k["o"], k["h"], k["l"], k["c"], k.get("v", 0))
    except KeyError as e:
        raise MalformedResponse(
            f"Missing required kline field: {e}", provider=PROVIDER, field=str(e.args[0])
        ) from e
