"""Tests for the deterministic backtest simulator."""

import json
import math

import httpx
import pytest
from pydantic import ValidationError

from backtest import BacktestConfig, BacktestSimulator, MIN_BARS, run_backtest
from backtest.__main__ import EXIT_FAILED, EXIT_INVALID_ARGS, main
from backtest.downloader import BarDownloader, load_bars_file
from core.errors import InsufficientDataError, InvalidBarError, UpstreamError
from core.models import Side
from core.strategy import Strategy, create_strategy, get_strategy_class, list_strategies, register_strategy

ENTRY_FILL = 100 * 1.0005 * 1.0005
EXIT_FILL = 101 * 0.9995 * 0.9995


@pytest.fixture
def step_bars(make_bars):
    """30 bars opening at 100; close steps from 100 to 101 at index 5.

    With SMA 1/2 that is a single golden cross on bar 5, filled at the
    open of bar 6, and no death cross afterwards.
    """
    closes = [100.0] * 5 + [101.0] * 25
    return make_bars(closes, opens=[100.0] * 30)


@pytest.fixture
def step_config():
    return BacktestConfig(sma_short=1, sma_long=2)


class TestBacktestConfig:
    """Tests for BacktestConfig validation."""

    def test_defaults(self):
        config = BacktestConfig()
        assert config.strategy == "sma"
        assert (config.sma_short, config.sma_long) == (10, 30)
        assert config.slippage_bps == 5.0
        assert config.commission_pct == 0.0005
        assert config.pair == ("BTCUSDT", "1m")

    def test_unknown_strategy(self):
        with pytest.raises(ValidationError):
            BacktestConfig(strategy="macd")

    def test_short_window_must_be_shorter(self):
        with pytest.raises(ValidationError):
            BacktestConfig(sma_short=30, sma_long=10)

    def test_invalid_symbol(self):
        with pytest.raises(ValidationError):
            BacktestConfig(symbol="B!")


class TestBacktestSimulator:
    """Tests for BacktestSimulator.run."""

    def test_fill_prices_and_force_close(self, step_bars, step_config):
        result = BacktestSimulator().run(step_config, step_bars)
        entry, exit_ = result.trades

        assert entry.side is Side.BUY
        assert entry.time == step_bars[6].time
        assert entry.entry_price == pytest.approx(ENTRY_FILL)
        assert entry.qty == pytest.approx(10000 * 0.1 / ENTRY_FILL)
        assert entry.note == "sma_buy"

        assert exit_.side is Side.SELL
        assert exit_.note == "exit_on_finish"
        assert exit_.time == step_bars[-1].time
        assert exit_.exit_price == pytest.approx(EXIT_FILL)
        assert exit_.pnl == pytest.approx(entry.qty * (EXIT_FILL - ENTRY_FILL))

    def test_metrics(self, step_bars, step_config):
        result = BacktestSimulator().run(step_config, step_bars)
        qty = 1000 / ENTRY_FILL
        final = 9000 + qty * EXIT_FILL

        assert result.metrics.final_equity == pytest.approx(final)
        assert result.metrics.total_return_pct == pytest.approx((final / 10000 - 1) * 100)
        assert result.metrics.trade_count == 2
        assert result.metrics.start_time == step_bars[0].time
        assert result.metrics.end_time == step_bars[-1].time

    def test_equity_curve(self, step_bars, step_config):
        result = BacktestSimulator().run(step_config, step_bars)

        # One point per walked bar (1 .. n-2) plus the final point
        assert len(result.equity) == len(step_bars) - 1
        assert result.equity[0].equity == pytest.approx(10000)
        assert result.equity[-1].time == step_bars[-1].time
        assert result.equity[-1].equity == pytest.approx(result.metrics.final_equity)

    def test_no_signal_no_trades(self, make_bars):
        result = run_backtest(BacktestConfig(), make_bars([100.0] * 40))

        assert result.trades == []
        assert result.metrics.final_equity == pytest.approx(10000)
        assert result.metrics.total_return_pct == pytest.approx(0.0)

    def test_deterministic(self, make_bars):
        closes = [100 + 10 * math.sin(i / 4) for i in range(200)]
        bars = make_bars(closes)
        config = BacktestConfig(strategy="rsi", rsi_period=5)

        first = run_backtest(config, bars).to_dict()
        second = run_backtest(config, bars).to_dict()

        assert first == second
        assert first["metrics"]["tradeCount"] > 0

    def test_one_position_at_a_time(self, make_bars):
        closes = [100 + 10 * math.sin(i / 3) for i in range(300)]
        result = run_backtest(BacktestConfig(sma_short=2, sma_long=5), make_bars(closes))

        sides = [t.side for t in result.trades]
        assert sides[::2] == [Side.BUY] * len(sides[::2])
        assert sides[1::2] == [Side.SELL] * len(sides[1::2])
        assert sides[-1] is Side.SELL

    def test_insufficient_data(self, make_bars):
        with pytest.raises(InsufficientDataError):
            run_backtest(BacktestConfig(), make_bars([100.0] * (MIN_BARS - 1)))

    def test_bars_must_ascend(self, make_bars):
        bars = make_bars([100.0] * 40)
        bars[10], bars[11] = bars[11], bars[10]

        with pytest.raises(InvalidBarError):
            run_backtest(BacktestConfig(), bars)

    def test_to_dict_shape(self, step_bars, step_config):
        data = run_backtest(step_config, step_bars).to_dict()

        assert set(data) == {"metrics", "trades", "equity"}
        assert set(data["metrics"]) == {"finalEquity", "totalReturnPct", "tradeCount", "startTime", "endTime"}
        assert data["trades"][0]["side"] == "buy"
        assert data["trades"][0]["exit_price"] is None


class TestBacktestCli:
    """Tests for ``python -m backtest``."""

    @pytest.fixture
    def bars_file(self, tmp_path, step_bars):
        path = tmp_path / "bars.json"
        path.write_text(json.dumps({"data": [b.to_wire() for b in step_bars]}))
        return path

    def test_load_bars_file(self, bars_file, step_bars):
        assert load_bars_file(bars_file) == step_bars

    def test_run_from_file_writes_json(self, bars_file, tmp_path, capsys):
        out = tmp_path / "out" / "result.json"

        code = main(["--bars", str(bars_file), "--sma-short", "1", "--sma-long", "2", "-o", str(out)])

        assert code == 0
        data = json.loads(out.read_text())
        assert data["metrics"]["tradeCount"] == 2
        assert data["metadata"]["strategy"] == "sma"
        assert "BACKTEST RESULTS" in capsys.readouterr().out

    def test_invalid_arguments(self, bars_file):
        assert main(["--bars", str(bars_file), "--symbol", "B!"]) == EXIT_INVALID_ARGS

    def test_insufficient_bars_fails(self, tmp_path, make_bars):
        path = tmp_path / "short.json"
        path.write_text(json.dumps([b.to_wire() for b in make_bars([100.0] * 10)]))

        assert main(["--bars", str(path)]) == EXIT_FAILED


class TestStrategyRegistry:
    """Tests for the strategy registry."""

    def test_builtin_strategies(self):
        assert list_strategies() == ["rsi", "sma"]

    def test_created_strategies_follow_protocol(self):
        config = BacktestConfig()
        for name in list_strategies():
            strategy = create_strategy(name, config=config)
            assert isinstance(strategy, Strategy)
            assert strategy.name == name

    def test_unknown_strategy(self):
        with pytest.raises(KeyError, match="Available: rsi, sma"):
            get_strategy_class("macd")

    def test_sma_signal_at_cross(self, step_bars):
        strategy = create_strategy("sma", config=BacktestConfig(sma_short=1, sma_long=2))
        closes = [b.close for b in step_bars]

        assert strategy.signal_at(closes, 5) is Side.BUY
        assert strategy.signal_at(closes, 6) is None

    def test_duplicate_name_rejected(self):
        class Other:
            def signal_at(self, closes, index):
                return None

        with pytest.raises(ValueError, match="already registered"):
            register_strategy("sma")(Other)
        assert list_strategies() == ["rsi", "sma"]

    def test_class_without_signal_at_rejected(self):
        class Broken:
            pass

        with pytest.raises(TypeError):
            register_strategy("broken")(Broken)
        assert "broken" not in list_strategies()


class TestBarDownloader:
    """Tests for BarDownloader paging and retries."""

    AVAILABLE = 2500  # bars the fake exchange holds, one per minute

    @classmethod
    def exchange(cls, requests):
        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(dict(request.url.params))
            limit = int(request.url.params["limit"])
            end_ms = int(request.url.params.get("endTime", cls.AVAILABLE * 60_000))
            last = min(cls.AVAILABLE, end_ms // 60_000)
            first = max(1, last - limit + 1)
            rows = [
                [i * 60_000, "1", "1", "1", str(float(i)), "1", i * 60_000 + 59_999]
                for i in range(first, last + 1)
            ]
            return httpx.Response(200, json=rows)

        return httpx.MockTransport(handler)

    @pytest.mark.asyncio
    async def test_pages_past_exchange_limit(self, pair):
        requests = []
        downloader = BarDownloader(transport=self.exchange(requests))

        bars = await downloader.fetch(pair, 2200)
        await downloader.close()

        assert len(bars) == 2200
        assert [b.time for b in bars] == [i * 60 for i in range(301, 2501)]
        assert [int(r["limit"]) for r in requests] == [1000, 1000, 200]
        assert "endTime" not in requests[0]

    @pytest.mark.asyncio
    async def test_stops_when_history_runs_out(self, pair):
        downloader = BarDownloader(transport=self.exchange([]))

        bars = await downloader.fetch(pair, 5000)
        await downloader.close()

        assert len(bars) == self.AVAILABLE
        assert bars[0].time == 60

    @pytest.mark.asyncio
    async def test_retries_then_fails(self, pair):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(503)

        downloader = BarDownloader(retries=2, retry_delay=0, transport=httpx.MockTransport(handler))

        with pytest.raises(UpstreamError):
            await downloader.fetch(pair, 10)
        await downloader.close()
        assert len(calls) == 2
