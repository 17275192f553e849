"""
define canonical types
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Mapping

from pydantic import BaseModel, ConfigDict, Field, field_validator

from tvlite.types.aliases import Interval, JsonObj, SourceId, Symbol, UnixSeconds

# -------- Enums --------


class MergeOutcome(str, Enum):
    UPDATED_TAIL = "updated-tail"  # in-progress interval still forming
    APPENDED = "appended"
    IGNORED = "ignored"  # stale / out-of-order


class IndicatorKind(str, Enum):
    SMA = "sma"
    EMA = "ema"
    RSI = "rsi"
    MACD = "macd"
    MACD_SIGNAL = "macd_signal"
    MACD_HIST = "macd_hist"
    VOLUME = "volume"


# -------- Market data --------


@dataclass(frozen=True, slots=True)
class Bar:
    """One OHLCV sample. `time` is the interval open time in UTC seconds."""

    time: UnixSeconds
    open: float
    high: float
    low: float
    close: float
    volume: float = 0.0

    def to_dict(self) -> JsonObj:
        return asdict(self)

    @classmethod
    def from_dict(cls, d: Mapping[str, Any]) -> Bar:
        return cls(
            time=int(d["time"]),
            open=float(d["open"]),
            high=float(d["high"]),
            low=float(d["low"]),
            close=float(d["close"]),
            volume=float(d.get("volume") or 0.0),
        )


# Immutable snapshot handed out by the request service
BarSequence = tuple[Bar, ...]


class ProviderRequest(BaseModel):
    """Request for `limit` bars of `symbol` at `interval` from `source`."""

    model_config = ConfigDict(frozen=True)

    source: SourceId = "binance"
    symbol: Symbol = "BTCUSDT"
    interval: Interval = "1d"
    limit: int = Field(default=800, gt=0)

    @field_validator("source")
    @classmethod
    def _lower_source(cls, v: str) -> str:
        return v.strip().lower()

    @field_validator("symbol")
    @classmethod
    def _non_empty_symbol(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("symbol must be non-empty")
        return v

    @property
    def cache_key(self) -> str:
        return "_".join([self.source, self.symbol, self.interval, str(self.limit)])


# -------- Indicators --------


@dataclass(frozen=True, slots=True)
class IndicatorKey:
    """Identifies one derived series, e.g. (SMA, 20) or (MACD_SIGNAL, 26)."""

    kind: IndicatorKind
    period: int

    @property
    def series_id(self) -> str:
        return f"{self.kind.value}_{self.period}"


@dataclass(frozen=True, slots=True)
class IndicatorPoint:
    time: UnixSeconds
    value: float


@dataclass(frozen=True, slots=True)
class VolumePoint:
    time: UnixSeconds
    value: float
    rising: bool  # close >= open


# -------- Viewport --------


@dataclass(frozen=True, slots=True)
class ViewportRange:
    """Visible logical range over bar indices (fractional values allowed)."""

    from_: float
    to: float

    @property
    def width(self) -> float:
        return self.to - self.from_
