"""Tests for bar, pair and snapshot models."""

import math

import pytest

from core.errors import InvalidBarError, InvalidSymbolError
from core.models import BollingerBands, Bar, IndicatorSnapshot, PairKey, Side, Signal, SignalReason


class TestPairKey:
    """Tests for PairKey."""

    def test_of_normalizes_symbol(self):
        pair = PairKey.of(" btcusdt ", "1m")
        assert pair == ("BTCUSDT", "1m")
        assert str(pair) == "BTCUSDT::1m"
        assert pair.stream_name == "btcusdt@kline_1m"

    @pytest.mark.parametrize(
        "symbol,interval",
        [
            ("BT", "1m"),
            ("BTC-USDT", "1m"),
            ("ABCDEFGHIJKLM", "1m"),
            ("", "1m"),
            (None, "1m"),
            ("BTCUSDT", "7m"),
            ("BTCUSDT", ""),
        ],
    )
    def test_of_rejects_invalid(self, symbol, interval):
        with pytest.raises(InvalidSymbolError):
            PairKey.of(symbol, interval)

    def test_pairs_are_hashable_keys(self):
        assert {PairKey.of("ethusdt", "5m"): 1}[PairKey.of("ETHUSDT", "5m")] == 1


class TestBar:
    """Tests for Bar parsing and serialization."""

    def test_parse_valid(self):
        bar = Bar.parse({"time": 60, "open": 1, "high": 2, "low": 0.5, "close": 1.5, "volume": 10})
        assert bar.time == 60
        assert bar.close == 1.5
        assert bar.is_final

    def test_parse_volume_defaults_to_zero(self):
        bar = Bar.parse({"time": 60, "open": 1, "high": 2, "low": 0.5, "close": 1.5})
        assert bar.volume == 0.0

    @pytest.mark.parametrize(
        "data",
        [
            {"time": 60, "open": 1},
            {"time": 60, "open": 1, "high": 2, "low": 0.5, "close": "abc"},
            {"time": 60, "open": 1, "high": 2, "low": 0.5, "close": math.nan},
            {"time": -1, "open": 1, "high": 2, "low": 0.5, "close": 1},
            [60, 1, 2, 0.5, 1.5],
        ],
    )
    def test_parse_rejects_malformed(self, data):
        with pytest.raises(InvalidBarError):
            Bar.parse(data)

    def test_from_exchange_converts_ms_and_final_flag(self):
        bar = Bar.from_exchange({
            "t": 1700000000000, "o": "1", "h": "2", "l": "0.5", "c": "1.5", "v": "3", "x": True,
        })
        assert bar.time == 1700000000
        assert bar.close == 1.5
        assert bar.is_final

    def test_from_exchange_open_bar(self):
        bar = Bar.from_exchange({
            "t": 1700000000000, "o": "1", "h": "2", "l": "0.5", "c": "1.5", "v": "3", "x": False,
        })
        assert not bar.is_final

    def test_from_exchange_missing_field(self):
        with pytest.raises(InvalidBarError):
            Bar.from_exchange({"t": 1700000000000})

    def test_from_rest_row(self):
        row = [1700000060000, "1.0", "2.0", "0.5", "1.5", "3.0", 1700000119999, "4.5", 10]
        bar = Bar.from_rest_row(row)
        assert bar.time == 1700000060
        assert bar.volume == 3.0
        assert bar.is_final

    def test_from_rest_row_too_short(self):
        with pytest.raises(InvalidBarError):
            Bar.from_rest_row([1700000060000, "1.0"])

    def test_to_wire_omits_is_final(self, make_bar):
        wire = make_bar(60, 1.5, is_final=False).to_wire()
        assert set(wire) == {"time", "open", "high", "low", "close", "volume"}


class TestIndicatorSnapshot:
    """Tests for IndicatorSnapshot wire forms."""

    def test_to_wire_camel_case_and_omits_missing(self):
        snapshot = IndicatorSnapshot(time=60, close=1.0, sma_short=1.0)
        assert snapshot.to_wire() == {"time": 60, "close": 1.0, "smaShort": 1.0}

    def test_indicator_payloads_skip_warming_up(self):
        snapshot = IndicatorSnapshot(
            time=60,
            close=1.0,
            sma_short=1.0,
            sma_long=2.0,
            rsi=55.0,
            bollinger=BollingerBands(upper=3.0, middle=2.0, lower=1.0),
        )
        payloads = snapshot.indicator_payloads()

        assert set(payloads) == {"sma", "rsi", "bollinger"}
        assert payloads["sma"] == {"time": 60, "close": 1.0, "smaShort": 1.0, "smaLong": 2.0}
        assert payloads["bollinger"]["bollinger"] == {"upper": 3.0, "middle": 2.0, "lower": 1.0}

    def test_signal_wire_form(self):
        signal = Signal(side=Side.BUY, reason=SignalReason.SMA_CROSS, time=60, price=1.0)
        assert signal.to_wire() == {"side": "buy", "reason": "sma_cross", "time": 60, "price": 1.0}
