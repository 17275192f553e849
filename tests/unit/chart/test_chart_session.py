"""
Unit tests for ChartSession (load/supersede, live merge, stream lifecycle, presets).
"""

import asyncio
from typing import Awaitable, Callable, Optional

import pytest

from tests.unit.fixtures.fakes import RecordingSurface, make_bars
from tvlite.chart.session import ChartSession, parse_preset
from tvlite.config.configs import ChartConfig
from tvlite.errors.errors import ProviderError
from tvlite.types.types import Bar, ViewportRange


class FakeLoader:
    def __init__(self, bars=None, error: Optional[Exception] = None) -> None:
        self.bars = bars if bars is not None else make_bars([float(i) for i in range(1, 61)])
        self.error = error
        self.calls: list[tuple[str, str, str, int]] = []
        self.gate: Optional[asyncio.Event] = None

    async def load(self, source: str, symbol: str, interval: str, limit: int):
        self.calls.append((source, symbol, interval, limit))
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        return self.bars


class FakeStream:
    def __init__(self, symbol: str, interval: str, on_bar: Callable[[Bar], Awaitable[None]], ok: bool = True):
        self.key = (symbol, interval)
        self.on_bar = on_bar
        self.ok = ok
        self.opened = False
        self.closed = False

    async def open(self) -> bool:
        self.opened = True
        return self.ok

    async def close(self) -> None:
        self.closed = True


class StreamRecorder:
    def __init__(self, ok: bool = True) -> None:
        self.streams: list[FakeStream] = []
        self.ok = ok

    def __call__(self, symbol, interval, on_bar) -> FakeStream:
        stream = FakeStream(symbol, interval, on_bar, ok=self.ok)
        self.streams.append(stream)
        return stream


def _session(loader=None, streams=None, **kwargs) -> tuple[ChartSession, RecordingSurface]:
    surface = RecordingSurface()
    session = ChartSession(
        loader or FakeLoader(),
        surface,
        ChartConfig(),
        stream_factory=streams or StreamRecorder(),
        **kwargs,
    )
    return session, surface


class TestParsePreset:
    def test_binance(self) -> None:
        assert parse_preset("BINANCE:BTCUSDT|1h") == ("binance", "BTCUSDT", "1h")

    def test_yahoo(self) -> None:
        assert parse_preset("YF:AAPL|1d") == ("yahoo", "AAPL", "1d")

    def test_unknown_namespace_defaults_to_binance(self) -> None:
        assert parse_preset("FOO:ETHUSDT|4h") == ("binance", "ETHUSDT", "4h")

    @pytest.mark.parametrize("bad", ["", "BTCUSDT", "BINANCE:BTCUSDT", "BINANCE:|1h", "BINANCE:BTCUSDT|2h"])
    def test_invalid(self, bad: str) -> None:
        with pytest.raises(ValueError):
            parse_preset(bad)


class TestLoad:
    @pytest.mark.asyncio
    async def test_load_draws_everything(self) -> None:
        session, surface = _session(interval="1h")
        await session.load()

        assert session.error is None
        assert session.loading is False
        assert len(session.buffer) == 60
        assert len(surface.series["candles"]) == 60
        assert len(surface.series["close"]) == 60
        assert {"sma_20", "ema_50", "rsi_14", "macd_26", "volume"} <= set(surface.series)
        assert surface.ranges == [ViewportRange(from_=0, to=61)]

    @pytest.mark.asyncio
    async def test_load_uses_default_limit(self) -> None:
        loader = FakeLoader()
        session, _ = _session(loader, source="AUTO", symbol="ETHUSDT", interval="4h")
        await session.load()
        assert loader.calls == [("auto", "ETHUSDT", "4h", 800)]

    @pytest.mark.asyncio
    async def test_failed_load_sets_error(self) -> None:
        loader = FakeLoader(error=ProviderError("Proxy API 500", status=500))
        session, surface = _session(loader)
        await session.load()

        assert session.error == "Proxy API 500"
        assert session.loading is False
        assert surface.series == {}

    @pytest.mark.asyncio
    async def test_superseded_load_is_not_an_error(self) -> None:
        loader = FakeLoader()
        loader.gate = asyncio.Event()
        session, surface = _session(loader)

        first = asyncio.create_task(session.load())
        await asyncio.sleep(0)
        await asyncio.sleep(0)
        await asyncio.sleep(0)
        loader.gate = None  # second load completes immediately
        await session.load()
        await first

        assert first.exception() is None
        assert session.error is None
        assert len(loader.calls) == 2
        assert len(surface.series["candles"]) == 60

    @pytest.mark.asyncio
    async def test_duplicate_bar_times_set_error(self) -> None:
        bars = make_bars([float(i) for i in range(1, 11)])
        loader = FakeLoader(bars=bars + (bars[-1],))
        session, surface = _session(loader)

        await session.load()

        assert session.error is not None
        assert "strictly increase" in session.error
        assert session.loading is False
        assert surface.series == {}

    @pytest.mark.asyncio
    async def test_reload_preserves_user_range(self) -> None:
        session, surface = _session()
        await session.load()
        session.on_user_range(ViewportRange(from_=10, to=30))
        await session.load()
        assert session.viewport.range == ViewportRange(from_=10, to=30)


class TestLive:
    @pytest.mark.asyncio
    async def test_stream_bar_updates_surface(self) -> None:
        session, surface = _session()
        await session.load()
        last = session.buffer.last
        bar = Bar(time=last.time + 60, open=60.0, high=62.0, low=59.0, close=61.0, volume=1.0)

        await session.on_stream_bar(bar)

        assert session.buffer.last == bar
        ids = surface.updated_ids()
        assert ids[:2] == ["candles", "close"]
        assert {"sma_20", "ema_50", "rsi_14", "macd_26", "volume"} <= set(ids)

    @pytest.mark.asyncio
    async def test_stale_bar_is_ignored(self) -> None:
        session, surface = _session()
        await session.load()
        first = session.buffer[0]

        await session.on_stream_bar(first)

        assert surface.updates == []
        assert session.buffer.ignored_count == 1

    @pytest.mark.asyncio
    async def test_right_pad_change_reclamps_view(self) -> None:
        session, surface = _session(interval="1m")
        await session.load()
        session.on_user_range(ViewportRange(from_=0, to=61))
        session.set_right_pad(0)
        assert surface.ranges[-1] == ViewportRange(from_=-2, to=59)


class TestStreamLifecycle:
    @pytest.mark.asyncio
    async def test_binance_opens_one_stream(self) -> None:
        streams = StreamRecorder()
        session, _ = _session(streams=streams, symbol="BTCUSDT", interval="1m")
        await session.start()

        assert [s.key for s in streams.streams] == [("BTCUSDT", "1m")]
        assert session.streaming is True

    @pytest.mark.asyncio
    async def test_non_stream_source_has_no_stream(self) -> None:
        streams = StreamRecorder()
        session, _ = _session(streams=streams, source="yahoo", symbol="AAPL")
        await session.start()

        assert streams.streams == []
        assert session.streaming is False

    @pytest.mark.asyncio
    async def test_param_change_closes_old_before_new(self) -> None:
        streams = StreamRecorder()
        loader = FakeLoader()
        session, _ = _session(loader, streams=streams)
        await session.start()

        await session.set_params(interval="5m")

        old, new = streams.streams
        assert old.closed is True
        assert new.key == ("BTCUSDT", "5m")
        assert new.closed is False
        assert loader.calls[-1] == ("binance", "BTCUSDT", "5m", 800)

    @pytest.mark.asyncio
    async def test_switch_to_yahoo_drops_stream(self) -> None:
        streams = StreamRecorder()
        session, _ = _session(streams=streams)
        await session.start()
        await session.apply_preset("YF:AAPL|1d")

        assert streams.streams[0].closed is True
        assert len(streams.streams) == 1
        assert session.params == ("yahoo", "AAPL", "1d")

    @pytest.mark.asyncio
    async def test_failed_open_is_not_kept(self) -> None:
        session, _ = _session(streams=StreamRecorder(ok=False))
        await session.start()
        assert session.streaming is False

    @pytest.mark.asyncio
    async def test_close(self) -> None:
        streams = StreamRecorder()
        session, _ = _session(streams=streams)
        await session.start()
        await session.close()
        assert streams.streams[0].closed is True
        assert session.streaming is False

    @pytest.mark.asyncio
    async def test_switch_with_failed_load_keeps_no_old_history(self) -> None:
        streams = StreamRecorder()
        loader = FakeLoader()
        session, surface = _session(loader, streams=streams, symbol="BTCUSDT")
        await session.start()
        btc_last = session.buffer.last

        loader.error = ProviderError("Proxy API 500", status=500)
        await session.set_params(symbol="ETHUSDT")

        assert session.error == "Proxy API 500"
        assert len(session.buffer) == 0
        assert surface.series["candles"] == []
        assert surface.series["sma_20"] == []

        eth = Bar(time=btc_last.time, open=3000.0, high=3001.0, low=2999.0, close=3000.5, volume=2.0)
        await streams.streams[-1].on_bar(eth)

        assert list(session.buffer) == [eth]

    @pytest.mark.asyncio
    async def test_new_stream_opens_after_history_is_replaced(self) -> None:
        streams = StreamRecorder()
        seen: list[tuple[int, int]] = []

        class OrderingLoader(FakeLoader):
            async def load(self, source, symbol, interval, limit):
                # (streams created so far, bars left in the buffer) at fetch time
                seen.append((len(streams.streams), len(session.buffer)))
                return await super().load(source, symbol, interval, limit)

        loader = OrderingLoader()
        session, _ = _session(loader, streams=streams)
        await session.start()
        await session.set_params(symbol="ETHUSDT")

        assert seen == [(0, 0), (1, 0)]
        assert streams.streams[0].closed is True
        assert streams.streams[1].key == ("ETHUSDT", "1d")
        assert len(session.buffer) == 60

    def test_invalid_interval(self) -> None:
        with pytest.raises(ValueError):
            _session(interval="2h")
