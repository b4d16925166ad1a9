"""Tests for the incremental indicator engine."""

import random
from unittest.mock import MagicMock

import pytest

from core.indicators import IndicatorEngine, compute_values, ema, rsi, sma
from core.models import IndicatorConfig, PairKey, Side, SignalReason

# Short periods so a handful of bars warms everything up
SHORT_CONFIG = IndicatorConfig(
    sma_short=2,
    sma_long=3,
    ema_short=2,
    ema_long=3,
    rsi_period=2,
    bollinger_period=2,
)


@pytest.fixture
def engine():
    return IndicatorEngine(SHORT_CONFIG)


def feed(engine, pair, bars):
    return [engine.on_bar(pair, bar) for bar in bars]


class TestIndicatorEngine:
    """Tests for IndicatorEngine.on_bar."""

    def test_warm_up_leaves_values_unset(self, engine, pair, make_bars):
        first, second, third = feed(engine, pair, make_bars([3.0, 2.0, 1.0]))

        assert first.ok and first.snapshot.sma_short is None
        assert second.snapshot.sma_short == pytest.approx(2.5)
        assert second.snapshot.sma_long is None
        assert third.snapshot.sma_long == pytest.approx(2.0)
        assert third.snapshot.rsi == pytest.approx(0.0)

    def test_values_match_full_window_math(self, engine, pair, make_bars):
        closes = [10.0, 10.5, 9.8, 11.2, 11.0, 12.4, 12.1]
        results = feed(engine, pair, make_bars(closes))
        last = results[-1].snapshot

        assert last.sma_short == pytest.approx(sma(closes, 2))
        assert last.ema_long == pytest.approx(ema(closes, 3))
        assert last.rsi == pytest.approx(rsi(closes, 2))
        assert last.bollinger.middle == pytest.approx(sma(closes, 2))

    def test_stale_bar_rejected_without_state_change(self, engine, pair, make_bar):
        engine.on_bar(pair, make_bar(60, 1.0))
        engine.on_bar(pair, make_bar(120, 2.0))
        before = engine.latest(pair)

        result = engine.on_bar(pair, make_bar(60, 5.0))

        assert not result.ok
        assert result.error == "stale_bar"
        assert engine.closes(pair) == [1.0, 2.0]
        assert engine.latest(pair) is before

    def test_same_time_revises_in_place(self, engine, pair, make_bar):
        engine.on_bar(pair, make_bar(60, 1.0))
        engine.on_bar(pair, make_bar(120, 2.0))

        result = engine.on_bar(pair, make_bar(120, 4.0))

        assert result.ok
        assert engine.closes(pair) == [1.0, 4.0]
        assert result.snapshot.sma_short == pytest.approx(2.5)

    def test_close_buffer_is_bounded(self, pair, make_bars):
        engine = IndicatorEngine(IndicatorConfig(max_closes=3))
        feed(engine, pair, make_bars([1.0, 2.0, 3.0, 4.0, 5.0]))
        assert engine.closes(pair) == [3.0, 4.0, 5.0]

    def test_pairs_are_independent(self, engine, make_bar):
        btc = PairKey.of("BTCUSDT", "1m")
        eth = PairKey.of("ETHUSDT", "1m")

        engine.on_bar(btc, make_bar(120, 1.0))
        result = engine.on_bar(eth, make_bar(60, 2.0))

        assert result.ok
        assert engine.closes(btc) == [1.0]
        assert engine.closes(eth) == [2.0]

    def test_failure_leaves_state_untouched(self, pair, make_bar):
        detector = MagicMock()
        detector.detect.side_effect = ValueError("boom")
        engine = IndicatorEngine(SHORT_CONFIG, detector=detector)

        result = engine.on_bar(pair, make_bar(60, 1.0))

        assert result.error == "indicator_failed"
        assert result.message == "boom"
        assert engine.closes(pair) == []
        assert engine.latest(pair) is None

    def test_reset_drops_pair_state(self, engine, pair, make_bar):
        engine.on_bar(pair, make_bar(120, 1.0))
        engine.reset(pair)

        assert pair not in engine
        assert engine.on_bar(pair, make_bar(60, 1.0)).ok


class TestEngineSignals:
    """Signals attached to snapshots."""

    def test_last_rule_wins_on_the_same_bar(self, engine, pair, make_bars):
        # Bar 4 crosses SMA and EMA upward and lifts RSI out of oversold
        results = feed(engine, pair, make_bars([3.0, 2.0, 1.0, 5.0]))

        assert [r.snapshot.signal for r in results[:3]] == [None, None, None]
        signal = results[3].snapshot.signal
        assert signal.side is Side.BUY
        assert signal.reason is SignalReason.RSI_OVERSOLD
        assert signal.price == 5.0
        assert signal.time == results[3].snapshot.time

    def test_all_qualifying_rules_available_from_detector(self, engine):
        closes = [3.0, 2.0, 1.0, 5.0]
        found = engine.detector.evaluate(
            compute_values(closes[:-1], SHORT_CONFIG),
            compute_values(closes, SHORT_CONFIG),
            close=5.0,
            time=240,
        )
        assert [s.reason for s in found] == [
            SignalReason.SMA_CROSS,
            SignalReason.EMA_CROSS,
            SignalReason.RSI_OVERSOLD,
        ]


class TestDefaultConfig:
    """Engine behaviour at the default periods (SMA 10/30, RSI 14)."""

    @pytest.fixture
    def engine(self):
        return IndicatorEngine()

    @pytest.fixture
    def recorded(self, engine, monkeypatch):
        """Every signal the detector finds, not only the one surfaced per bar."""
        found = []
        evaluate = engine.detector.evaluate

        def recording(prev, cur, close, time):
            signals = evaluate(prev, cur, close, time)
            found.extend(signals)
            return signals

        monkeypatch.setattr(engine.detector, "evaluate", recording)
        return found

    def test_single_sma_cross_on_ramp(self, engine, recorded, pair, make_bars):
        # 30 flat bars, then a steady climb: the short SMA crosses above
        # the long SMA on the first rising bar and stays above it
        closes = [100.0] * 30 + [100.0 + i for i in range(1, 31)]
        bars = make_bars(closes)

        results = feed(engine, pair, bars)

        assert all(r.ok for r in results)
        sma_signals = [s for s in recorded if s.reason is SignalReason.SMA_CROSS]
        assert len(sma_signals) == 1
        assert sma_signals[0].side is Side.BUY
        assert sma_signals[0].time == bars[30].time
        assert sma_signals[0].price == 101.0

    def test_no_sma_cross_before_long_window_fills(self, engine, recorded, pair, make_bars):
        feed(engine, pair, make_bars([100.0 - i for i in range(30)]))
        assert [s for s in recorded if s.reason is SignalReason.SMA_CROSS] == []

    @pytest.mark.parametrize("seed", [1, 7, 42, 2024])
    def test_rsi_stays_in_range(self, engine, pair, make_bars, seed):
        rng = random.Random(seed)
        closes = []
        price = 100.0
        for _ in range(300):
            move = rng.choice([0.0, rng.uniform(-5, 5), rng.uniform(-0.001, 0.001), rng.uniform(-50, 50)])
            price = max(0.01, price + move)
            closes.append(price)

        for result in feed(engine, pair, make_bars(closes)):
            assert result.ok
            value = result.snapshot.rsi
            if value is not None:
                assert 0.0 <= value <= 100.0

    @pytest.mark.parametrize(
        "closes",
        [
            [50.0] * 40,
            [float(i) for i in range(1, 41)],
            [float(40 - i) for i in range(40)],
            [1e-6, 1e6] * 20,
        ],
    )
    def test_rsi_in_range_on_edge_sequences(self, engine, pair, make_bars, closes):
        values = [r.snapshot.rsi for r in feed(engine, pair, make_bars(closes))]
        assert values[-1] is not None
        assert all(0.0 <= v <= 100.0 for v in values if v is not None)
