from typing import Any, Literal

# -------- Aliases (clarify intent) --------
UnixSeconds = int
UnixMillis = int
Symbol = str
SourceId = str  # "binance", "binanceus", "yahoo", "polygon", "twelvedata" or "auto"
Interval = Literal["1m", "5m", "15m", "1h", "4h", "1d"]
JsonObj = dict[str, Any]

INTERVALS: tuple[str, ...] = ("1m", "5m", "15m", "1h", "4h", "1d")
AUTO_SOURCE: SourceId = "auto"
