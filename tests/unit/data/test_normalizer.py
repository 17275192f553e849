"""
Unit tests for the bar normalizer (one parser per provider layout).
"""

import math

import pytest

from tests.unit.fixtures.fakes import DAY_MS, START_MS, kline_rows
from tvlite.data.normalizer import make_bar, normalize, safe_int
from tvlite.errors.errors import MalformedResponse, UnknownSource
from tvlite.types.types import Bar


class TestSafeConversions:
    """Tests for conversion helpers."""

    def test_safe_int_from_string(self) -> None:
        assert safe_int("123", "t", "binance") == 123

    def test_safe_int_rejects_bool(self) -> None:
        with pytest.raises(MalformedResponse):
            safe_int(True, "t", "binance")

    def test_make_bar_rejects_nan(self) -> None:
        with pytest.raises(MalformedResponse) as exc_info:
            make_bar("binance", 1, "1", "2", "0.5", "nan", "1")
        assert exc_info.value.field == "close"

    def test_make_bar_rejects_negative_volume(self) -> None:
        with pytest.raises(MalformedResponse):
            make_bar("binance", 1, 1, 2, 0.5, 1.5, -3)

    def test_make_bar_converts_strings(self) -> None:
        bar = make_bar("binance", 60, "1.5", "2", "1", "1.75", "10")
        assert bar == Bar(time=60, open=1.5, high=2.0, low=1.0, close=1.75, volume=10.0)


class TestKlines:
    """Binance / BinanceUS array-of-arrays layout."""

    def test_milliseconds_to_seconds(self) -> None:
        bars = normalize("binance", kline_rows(3))

        assert [b.time for b in bars] == [(START_MS + i * DAY_MS) // 1000 for i in range(3)]
        assert bars[0].open == 100.0
        assert bars[0].close == 101.0
        assert bars[0].volume == 10.5

    def test_binanceus_shares_layout(self) -> None:
        assert normalize("binanceus", kline_rows(2)) == normalize("binance", kline_rows(2))

    def test_short_row_is_malformed(self) -> None:
        with pytest.raises(MalformedResponse):
            normalize("binance", [[START_MS, "1", "2", "0.5"]])

    def test_non_list_is_malformed(self) -> None:
        with pytest.raises(MalformedResponse):
            normalize("binance", {"code": -1121, "msg": "Invalid symbol."})

    def test_empty_array(self) -> None:
        assert normalize("binance", []) == ()


class TestYahooChart:
    """Yahoo v8 chart layout."""

    @staticmethod
    def _chart(timestamps, quote) -> dict:
        return {"chart": {"result": [{"timestamp": timestamps, "indicators": {"quote": [quote]}}]}}

    def test_parallel_arrays(self) -> None:
        raw = self._chart(
            [1700000000, 1700086400],
            {
                "open": [1.0, 2.0],
                "high": [1.5, 2.5],
                "low": [0.5, 1.5],
                "close": [1.2, 2.2],
                "volume": [100, 200],
            },
        )
        bars = normalize("yahoo", raw)

        assert [b.time for b in bars] == [1700000000, 1700086400]
        assert bars[1].close == 2.2
        assert bars[1].volume == 200.0

    def test_rows_with_null_close_are_dropped(self) -> None:
        raw = self._chart(
            [1, 2, 3],
            {
                "open": [1.0, 2.0, 3.0],
                "high": [1.0, 2.0, 3.0],
                "low": [1.0, 2.0, 3.0],
                "close": [1.0, None, 3.0],
                "volume": [None, 5, 6],
            },
        )
        bars = normalize("yahoo", raw)

        assert [b.time for b in bars] == [1, 3]
        # null volume becomes 0
        assert bars[0].volume == 0.0

    def test_empty_result_is_malformed(self) -> None:
        with pytest.raises(MalformedResponse, match="Yahoo chart empty"):
            normalize("yahoo", {"chart": {"result": None, "error": {"code": "Not Found"}}})


class TestAggregates:
    """Polygon v2 aggregates layout."""

    def test_results(self) -> None:
        raw = {"results": [{"t": 1700000000000, "o": 1, "h": 2, "l": 0.5, "c": 1.5, "v": 7}]}
        bars = normalize("polygon", raw)
        assert bars == (Bar(time=1700000000, open=1.0, high=2.0, low=0.5, close=1.5, volume=7.0),)

    def test_missing_results_is_empty(self) -> None:
        assert normalize("polygon", {"status": "OK", "resultsCount": 0}) == ()

    def test_missing_field_is_malformed(self) -> None:
        with pytest.raises(MalformedResponse):
            normalize("polygon", {"results": [{"t": 1, "o": 1, "h": 1, "l": 1}]})


class TestTimeSeries:
    """TwelveData time_series layout (newest first)."""

    def test_reversed_to_chronological(self) -> None:
        raw = {
            "values": [
                {"datetime": "2024-01-03", "open": "3", "high": "3", "low": "3", "close": "3", "volume": "30"},
                {"datetime": "2024-01-02", "open": "2", "high": "2", "low": "2", "close": "2", "volume": "20"},
            ]
        }
        bars = normalize("twelvedata", raw)

        assert [b.close for b in bars] == [2.0, 3.0]
        assert bars[0].time == 1704153600  # 2024-01-02T00:00:00Z

    def test_intraday_datetime_and_missing_volume(self) -> None:
        raw = {"values": [{"datetime": "2024-01-02 09:30:00", "open": 1, "high": 1, "low": 1, "close": 1}]}
        bars = normalize("twelvedata", raw)

        assert bars[0].time == 1704153600 + 9 * 3600 + 30 * 60
        assert bars[0].volume == 0.0

    def test_bad_datetime_is_malformed(self) -> None:
        raw = {"values": [{"datetime": "yesterday", "open": 1, "high": 1, "low": 1, "close": 1}]}
        with pytest.raises(MalformedResponse):
            normalize("twelvedata", raw)


class TestDispatch:
    def test_unknown_provider(self) -> None:
        with pytest.raises(UnknownSource):
            normalize("kraken", [])

    def test_all_outputs_finite(self) -> None:
        for b in normalize("binance", kline_rows(5)):
            assert all(math.isfinite(v) for v in (b.open, b.high, b.low, b.close, b.volume))


class TestOrdering:
    """Every layout comes out with strictly increasing times."""

    def test_yahoo_duplicate_trailing_timestamp_keeps_last(self) -> None:
        raw = TestYahooChart._chart(
            [100, 200, 200],
            {
                "open": [1.0, 2.0, 2.0],
                "high": [1.5, 2.5, 2.8],
                "low": [0.5, 1.5, 1.5],
                "close": [1.2, 2.2, 2.6],
                "volume": [10, 20, 25],
            },
        )
        bars = normalize("yahoo", raw)

        assert [b.time for b in bars] == [100, 200]
        assert bars[-1].close == 2.6
        assert bars[-1].volume == 25.0

    def test_unordered_klines_are_sorted(self) -> None:
        rows = kline_rows(4)
        shuffled = [rows[2], rows[0], rows[3], rows[1]]
        assert normalize("binance", shuffled) == normalize("binance", rows)

    def test_duplicate_klines_collapse(self) -> None:
        rows = kline_rows(3)
        bars = normalize("binance", rows + [rows[1]])
        times = [b.time for b in bars]

        assert len(bars) == 3
        assert all(a < b for a, b in zip(times, times[1:]))

    def test_polygon_out_of_order(self) -> None:
        raw = {
            "results": [
                {"t": 2_000_000, "o": 2, "h": 2, "l": 2, "c": 2, "v": 1},
                {"t": 1_000_000, "o": 1, "h": 1, "l": 1, "c": 1, "v": 1},
            ]
        }
        assert [b.time for b in normalize("polygon", raw)] == [1000, 2000]
