"""
Bar Normalizer.

Converts one provider's raw (already JSON-decoded) response into the canonical
Bar sequence. Pure functions: no I/O, no business logic, only unit and shape
conversion.

Layouts:
- binance / binanceus: [[openTimeMs, "o", "h", "l", "c", "v", ...], ...]
- yahoo: {"chart": {"result": [{"timestamp": [...], "indicators": {"quote": [{...}]}}]}}
- polygon: {"results": [{"t": ms, "o", "h", "l", "c", "v"}, ...]}
- twelvedata: {"values": [{"datetime", "open", "high", "low", "close", "volume"}, ...]}
  (newest first)
"""

from __future__ import annotations

import datetime as dt
import math
from typing import Any, Callable, Optional, Sequence

from tvlite.errors.errors import MalformedResponse, UnknownSource
from tvlite.types.types import Bar, BarSequence


def _safe_float(value: Any, field_name: str, provider: str) -> float:
    """Convert to a finite float or raise MalformedResponse."""
    try:
        out = value if isinstance(value, float) else float(value)
    except (ValueError, TypeError) as e:
        raise MalformedResponse(
            f"Invalid float value for {field_name}: {value!r}",
            provider=provider,
            field=field_name,
        ) from e
    if not math.isfinite(out):
        raise MalformedResponse(
            f"Non-finite value for {field_name}: {value!r}",
            provider=provider,
            field=field_name,
        )
    return out


def safe_int(value: Any, field_name: str, provider: str) -> int:
    """Convert to int or raise MalformedResponse."""
    if isinstance(value, bool):
        raise MalformedResponse(
            f"Invalid integer value for {field_name}: {value!r}",
            provider=provider,
            field=field_name,
        )
    try:
        return int(value)
    except (ValueError, TypeError, OverflowError) as e:
        raise MalformedResponse(
            f"Invalid integer value for {field_name}: {value!r}",
            provider=provider,
            field=field_name,
        ) from e


def _optional_float(value: Any) -> Optional[float]:
    """None for null / non-numeric / non-finite values."""
    if value is None or isinstance(value, bool):
        return None
    try:
        out = float(value)
    except (ValueError, TypeError):
        return None
    return out if math.isfinite(out) else None


def make_bar(
    provider: str,
    time_s: int,
    open_: Any,
    high: Any,
    low: Any,
    close: Any,
    volume: Any,
) -> Bar:
    vol = _safe_float(volume, "volume", provider)
    if vol < 0:
        raise MalformedResponse(f"Negative volume: {vol}", provider=provider, field="volume")
    return Bar(
        time=time_s,
        open=_safe_float(open_, "open", provider),
        high=_safe_float(high, "high", provider),
        low=_safe_float(low, "low", provider),
        close=_safe_float(close, "close", provider),
        volume=vol,
    )


def _require(raw: Any, kind: type, what: str, provider: str) -> Any:
    if not isinstance(raw, kind):
        raise MalformedResponse(
            f"Expected {what}, got {type(raw).__name__}",
            provider=provider,
        )
    return raw


# --- Per-layout parsers ---


def _parse_klines(provider: str, raw: Any) -> BarSequence:
    rows = _require(raw, list, "array of kline rows", provider)
    bars: list[Bar] = []
    for row in rows:
        if not isinstance(row, (list, tuple)) or len(row) < 6:
            raise MalformedResponse("Kline row must have at least 6 fields", provider=provider)
        open_time_ms = safe_int(row[0], "open_time", provider)
        bars.append(make_bar(provider, open_time_ms // 1000, *row[1:6]))
    return tuple(bars)


def _parse_yahoo_chart(provider: str, raw: Any) -> BarSequence:
    payload = _require(raw, dict, "chart object", provider)
    chart = payload.get("chart") or {}
    results = chart.get("result") if isinstance(chart, dict) else None
    if not results:
        raise MalformedResponse("Yahoo chart empty", provider=provider, field="chart.result")
    r = results[0]
    if not isinstance(r, dict):
        raise MalformedResponse("Yahoo chart empty", provider=provider, field="chart.result")

    timestamps: Sequence[Any] = r.get("timestamp") or []
    quotes = (r.get("indicators") or {}).get("quote") or [{}]
    q = quotes[0] or {}

    def col(name: str, i: int) -> Any:
        values = q.get(name) or []
        return values[i] if i < len(values) else None

    bars: list[Bar] = []
    for i, ts in enumerate(timestamps):
        o, h, l, c = (_optional_float(col(f, i)) for f in ("open", "high", "low", "close"))
        # Rows with gaps (non-finite close, halted sessions) are dropped.
        if c is None or o is None or h is None or l is None:
            continue
        volume = _optional_float(col("volume", i)) or 0.0
        bars.append(make_bar(provider, safe_int(ts, "timestamp", provider), o, h, l, c, volume))
    return tuple(bars)


def _parse_aggregates(provider: str, raw: Any) -> BarSequence:
    payload = _require(raw, dict, "aggregates object", provider)
    results = payload.get("results") or []
    bars: list[Bar] = []
    for item in _require(results, list, "results array", provider):
        if not isinstance(item, dict):
            raise MalformedResponse("Aggregate entry must be an object", provider=provider)
        try:
            t_ms = safe_int(item["t"], "t", provider)
            bars.append(
                make_bar(
                    provider,
                    t_ms // 1000,
                    item["o"],
                    item["h"],
                    item["l"],
                    item["c"],
                    item.get("v", 0),
                )
            )
        except KeyError as e:
            raise MalformedResponse(
                f"Missing required aggregate field: {e}", provider=provider, field=str(e)
            ) from e
    return tuple(bars)


def _parse_datetime(value: Any, provider: str) -> int:
    if not isinstance(value, str):
        raise MalformedResponse(
            f"Invalid datetime: {value!r}", provider=provider, field="datetime"
        )
    try:
        parsed = dt.datetime.fromisoformat(value)
    except ValueError as e:
        raise MalformedResponse(
            f"Invalid datetime: {value!r}", provider=provider, field="datetime"
        ) from e
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=dt.timezone.utc)
    return int(parsed.timestamp())


def _parse_time_series(provider: str, raw: Any) -> BarSequence:
    payload = _require(raw, dict, "time series object", provider)
    values = payload.get("values") or []
    bars: list[Bar] = []
    for item in _require(values, list, "values array", provider):
        if not isinstance(item, dict):
            raise MalformedResponse("Time series entry must be an object", provider=provider)
        try:
            bars.append(
                make_bar(
                    provider,
                    _parse_datetime(item["datetime"], provider),
                    item["open"],
                    item["high"],
                    item["low"],
                    item["close"],
                    # forex / index series carry no volume
                    _optional_float(item.get("volume")) or 0.0,
                )
            )
        except KeyError as e:
            raise MalformedResponse(
                f"Missing required time series field: {e}", provider=provider, field=str(e)
            ) from e
    bars.reverse()  # delivered newest-first
    return tuple(bars)


_PARSERS: dict[str, Callable[[str, Any], BarSequence]] = {
    "binance": _parse_klines,
    "binanceus": _parse_klines,
    "yahoo": _parse_yahoo_chart,
    "polygon": _parse_aggregates,
    "twelvedata": _parse_time_series,
}


def _ordered(bars: BarSequence) -> BarSequence:
    """Sort by time; a repeated time keeps the bar delivered last."""
    by_time: dict[int, Bar] = {}
    for bar in bars:
        by_time[bar.time] = bar
    return tuple(by_time[t] for t in sorted(by_time))


def normalize(provider_id: str, raw: Any) -> BarSequence:
    """Convert a provider response into canonical bars (strictly increasing time)."""
    parser = _PARSERS.get(provider_id)
    if parser is None:
        raise UnknownSource(f"No normalizer for provider: {provider_id}", source=provider_id)
    return _ordered(parser(provider_id, raw))
