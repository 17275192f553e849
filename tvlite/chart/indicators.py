"""
Indicator Engine.

Two modes over the same formulas:
- batch: full-history recompute with Polars expressions (on load / reload)
- incremental: tail-only recompute in plain Python after each merged live bar,
  O(period) instead of O(n)

Alignment (shared by both modes, so incremental points land on the same times):
- SMA(p):  n-p+1 points, value i at time[i+p-1]
- EMA(p):  seeded with values[0], recursion over the whole input, first p-1
           outputs dropped; value i at time[i+p-1]
- RSI(p):  plain sums of the gains/losses inside the last p closes, divided by p
           (not Wilder smoothing); n-p+1 points, value j at time[j+p-1]; RS is
           pinned to 100 when avg loss is 0
- MACD(f,s,g): (EMA_f - EMA_s)[s-1:], signal = EMA_g of that line seeded with its
           first value, histogram = macd - signal; value i at time[i+s-1]

Incremental EMA/MACD re-seed at the start of their window, so long-running
streamed values drift slightly from a fresh batch recompute. Reload is the
correction.
"""

from __future__ import annotations

import logging
from typing import Sequence

import polars as pl

from tvlite.chart.buffer import BarBuffer
from tvlite.config.configs import ChartConfig
from tvlite.types.types import (
    Bar,
    IndicatorKey,
    IndicatorKind,
    IndicatorPoint,
    MergeOutcome,
    VolumePoint,
)

logger = logging.getLogger(__name__)

# RS substituted when the trailing average loss is zero (RSI ~ 99.0099, not 100).
RS_ZERO_LOSS = 100.0

VOLUME_SERIES_ID = "volume"

# -------------------------------------------------------------------------
# Batch (Polars)
# -------------------------------------------------------------------------


def _aligned(times: Sequence[int], values: Sequence[float], offset: int) -> list[IndicatorPoint]:
    return [IndicatorPoint(time=t, value=v) for t, v in zip(times[offset:], values)]


def sma(times: Sequence[int], closes: Sequence[float], period: int) -> list[IndicatorPoint]:
    if len(closes) < period:
        return []
    s = pl.Series("close", closes, dtype=pl.Float64)
    values = s.rolling_mean(period).slice(period - 1).to_list()
    return _aligned(times, values, period - 1)


def _ema_series(s: pl.Series, period: int) -> pl.Series:
    # adjust=False gives the plain recursion e_i = x_i*k + e_{i-1}*(1-k), e_0 = x_0
    return s.ewm_mean(span=period, adjust=False)


def ema(times: Sequence[int], closes: Sequence[float], period: int) -> list[IndicatorPoint]:
    if len(closes) < period:
        return []
    s = pl.Series("close", closes, dtype=pl.Float64)
    values = _ema_series(s, period).slice(period - 1).to_list()
    return _aligned(times, values, period - 1)


def rsi(times: Sequence[int], closes: Sequence[float], period: int = 14) -> list[IndicatorPoint]:
    if len(closes) < period:
        return []
    # The window is the last `period` closes, i.e. period-1 changes, averaged over `period`.
    delta = pl.col("close").diff()
    avg_gain = delta.clip(lower_bound=0.0).rolling_sum(period - 1) / period
    avg_loss = (-delta).clip(lower_bound=0.0).rolling_sum(period - 1) / period
    rs = pl.when(avg_loss == 0).then(pl.lit(RS_ZERO_LOSS)).otherwise(avg_gain / avg_loss)
    frame = pl.DataFrame({"close": pl.Series(closes, dtype=pl.Float64)})
    values = frame.select((100.0 - 100.0 / (1.0 + rs)).alias("rsi"))["rsi"]
    return _aligned(times, values.slice(period - 1).to_list(), period - 1)


def macd(
    times: Sequence[int],
    closes: Sequence[float],
    fast: int = 12,
    slow: int = 26,
    signal: int = 9,
) -> tuple[list[IndicatorPoint], list[IndicatorPoint], list[IndicatorPoint]]:
    """Return (macd_line, signal_line, histogram), all aligned to time[i+slow-1]."""
    if len(closes) < slow:
        return [], [], []
    s = pl.Series("close", closes, dtype=pl.Float64)
    line = (_ema_series(s, fast) - _ema_series(s, slow)).slice(slow - 1)
    sig = _ema_series(line, signal)
    hist = line - sig
    offset = slow - 1
    return (
        _aligned(times, line.to_list(), offset),
        _aligned(times, sig.to_list(), offset),
        _aligned(times, hist.to_list(), offset),
    )


def volume(bars: Sequence[Bar]) -> list[VolumePoint]:
    return [VolumePoint(time=b.time, value=b.volume, rising=b.close >= b.open) for b in bars]


# -------------------------------------------------------------------------
# Incremental (tail-only, plain Python)
# -------------------------------------------------------------------------


def _ema_values(values: Sequence[float], period: int) -> list[float]:
    k = 2 / (period + 1)
    out: list[float] = []
    e = 0.0
    for i, v in enumerate(values):
        e = v if i == 0 else v * k + e * (1 - k)
        out.append(e)
    return out


def sma_last(closes: Sequence[float], period: int) -> float | None:
    if len(closes) < period:
        return None
    window = closes[-period:]
    return sum(window) / period


def ema_last(closes: Sequence[float], period: int) -> float | None:
    if len(closes) < period:
        return None
    return _ema_values(closes[-period:], period)[-1]


def rsi_last(closes: Sequence[float], period: int = 14) -> float | None:
    if len(closes) < period:
        return None
    window = closes[-period:]
    gains = 0.0
    losses = 0.0
    for prev, cur in zip(window, window[1:]):
        ch = cur - prev
        gains += max(ch, 0.0)
        losses += max(-ch, 0.0)
    avg_gain = gains / period
    avg_loss = losses / period
    rs = RS_ZERO_LOSS if avg_loss == 0 else avg_gain / avg_loss
    return 100.0 - 100.0 / (1.0 + rs)


def macd_last(
    closes: Sequence[float],
    fast: int = 12,
    slow: int = 26,
    signal: int = 9,
) -> tuple[float, float, float] | None:
    if len(closes) < slow:
        return None
    window = closes[-(slow + signal - 1) :]
    ema_fast = _ema_values(window, fast)
    ema_slow = _ema_values(window, slow)
    line = [f - s for f, s in zip(ema_fast, ema_slow)][slow - 1 :]
    sig = _ema_values(line, signal)[-1]
    return line[-1], sig, line[-1] - sig


# -------------------------------------------------------------------------
# Engine
# -------------------------------------------------------------------------

Points = list[IndicatorPoint] | list[VolumePoint]


def _upsert(series: list, point: IndicatorPoint | VolumePoint) -> None:
    """Same replace-tail / append rule as the bar merge."""
    if series and series[-1].time == point.time:
        series[-1] = point
    elif not series or point.time > series[-1].time:
        series.append(point)


class IndicatorEngine:
    """
    Holds the derived series for one BarBuffer.

    `recompute` rebuilds everything from the buffer; `update` refreshes only the
    point(s) for the buffer's last bar after a merge. Both return
    {series_id: points} describing what changed, ready for the render surface.
    """

    def __init__(self, cfg: ChartConfig) -> None:
        self._cfg = cfg
        self.sma_key = IndicatorKey(IndicatorKind.SMA, cfg.sma_period)
        self.ema_key = IndicatorKey(IndicatorKind.EMA, cfg.ema_period)
        self.rsi_key = IndicatorKey(IndicatorKind.RSI, cfg.rsi_period)
        self.macd_key = IndicatorKey(IndicatorKind.MACD, cfg.macd_slow)
        self.signal_key = IndicatorKey(IndicatorKind.MACD_SIGNAL, cfg.macd_signal)
        self.hist_key = IndicatorKey(IndicatorKind.MACD_HIST, cfg.macd_signal)
        self._series: dict[IndicatorKey, list[IndicatorPoint]] = {k: [] for k in self.keys}
        self._volume: list[VolumePoint] = []

    @property
    def keys(self) -> tuple[IndicatorKey, ...]:
        return (
            self.sma_key,
            self.ema_key,
            self.rsi_key,
            self.macd_key,
            self.signal_key,
            self.hist_key,
        )

    def series(self, key: IndicatorKey) -> list[IndicatorPoint]:
        return list(self._series[key])

    def volume_series(self) -> list[VolumePoint]:
        return list(self._volume)

    def recompute(self, buffer: BarBuffer) -> dict[str, Points]:
        cfg = self._cfg
        times = buffer.times()
        closes = buffer.closes()
        line, sig, hist = macd(times, closes, cfg.macd_fast, cfg.macd_slow, cfg.macd_signal)
        self._series = {
            self.sma_key: sma(times, closes, cfg.sma_period),
            self.ema_key: ema(times, closes, cfg.ema_period),
            self.rsi_key: rsi(times, closes, cfg.rsi_period),
            self.macd_key: line,
            self.signal_key: sig,
            self.hist_key: hist,
        }
        self._volume = volume(list(buffer))
        logger.debug(f"[indicators] batch recompute over {len(times)} bars")

        out: dict[str, Points] = {k.series_id: list(v) for k, v in self._series.items()}
        out[VOLUME_SERIES_ID] = list(self._volume)
        return out

    def clear(self) -> dict[str, Points]:
        """Drop every derived series (params switch); returns the now-empty series."""
        self._series = {k: [] for k in self.keys}
        self._volume = []
        out: dict[str, Points] = {k.series_id: [] for k in self.keys}
        out[VOLUME_SERIES_ID] = []
        return out

    def update(self, buffer: BarBuffer, outcome: MergeOutcome) -> dict[str, Points]:
        bar = buffer.last
        if outcome is MergeOutcome.IGNORED or bar is None:
            return {}
        cfg = self._cfg
        # Longest window any indicator needs.
        need = max(cfg.sma_period, cfg.ema_period, cfg.rsi_period, cfg.macd_slow + cfg.macd_signal - 1)
        closes = buffer.closes(tail=need)

        fresh: dict[IndicatorKey, float | None] = {
            self.sma_key: sma_last(closes, cfg.sma_period),
            self.ema_key: ema_last(closes, cfg.ema_period),
            self.rsi_key: rsi_last(closes, cfg.rsi_period),
        }
        m = macd_last(closes, cfg.macd_fast, cfg.macd_slow, cfg.macd_signal)
        if m is not None:
            fresh[self.macd_key], fresh[self.signal_key], fresh[self.hist_key] = m

        changed: dict[str, Points] = {}
        for key, value in fresh.items():
            if value is None:
                continue
            point = IndicatorPoint(time=bar.time, value=value)
            _upsert(self._series[key], point)
            changed[key.series_id] = [point]

        vol = VolumePoint(time=bar.time, value=bar.volume, rising=bar.close >= bar.open)
        _upsert(self._volume, vol)
        changed[VOLUME_SERIES_ID] = [vol]
        return changed
