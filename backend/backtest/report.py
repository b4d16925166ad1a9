"""Report formatting for backtest results.

Outputs results to console (formatted tables) and JSON files.
"""

from __future__ import annotations

import json
import os
import tempfile
from datetime import datetime, timezone

from backtest.models import BacktestResult


def _fmt_time(ts: int) -> str:
    return datetime.fromtimestamp(ts, tz=timezone.utc).strftime("%Y-%m-%d %H:%M")


class ReportFormatter:
    """Format backtest results for display and export."""

    @staticmethod
    def print_console(result: BacktestResult, max_trades: int = 20) -> None:
        """Print formatted report to console."""
        cfg = result.config
        m = result.metrics

        print("\n" + "=" * 70)
        print(f"  BACKTEST RESULTS: {cfg.symbol} {cfg.interval} [{cfg.strategy}]")
        print("=" * 70)
        print(f"  Period: {_fmt_time(m.start_time)} → {_fmt_time(m.end_time)} UTC")
        if cfg.strategy == "sma":
            print(f"  SMA windows:     {cfg.sma_short}/{cfg.sma_long}")
        else:
            print(f"  RSI:             period {cfg.rsi_period}, zones {cfg.rsi_lower:g}/{cfg.rsi_upper:g}")
        print(
            f"  Execution:       size {cfg.size_pct:.0%}, slippage {cfg.slippage_bps:g} bps, "
            f"commission {cfg.commission_pct:.4%}"
        )

        print("\n" + "-" * 70)
        print("  OVERALL")
        print("-" * 70)
        print(f"  Initial capital: {cfg.initial_capital:,.2f}")
        print(f"  Final equity:    {m.final_equity:,.2f}")
        print(f"  Total return:    {m.total_return_pct:+.2f}%")
        print(f"  Trades:          {m.trade_count}")

        exits = [t for t in result.trades if t.pnl is not None]
        if exits:
            wins = sum(1 for t in exits if t.pnl > 0)
            print(f"  Round trips:     {len(exits)} ({wins} profitable)")

        if result.trades:
            print("\n" + "-" * 70)
            print(f"  TRADES (last {min(max_trades, len(result.trades))})")
            print("-" * 70)
            print(f"  {'Time':<17} {'Side':<5} {'Qty':>12} {'Entry':>12} {'Exit':>12} {'PnL':>10}  Note")
            for t in result.trades[-max_trades:]:
                exit_price = f"{t.exit_price:>12.4f}" if t.exit_price is not None else f"{'':>12}"
                pnl = f"{t.pnl:>+10.2f}" if t.pnl is not None else f"{'':>10}"
                print(
                    f"  {_fmt_time(t.time):<17} {t.side.value:<5} {t.qty:>12.6f} "
                    f"{t.entry_price:>12.4f} {exit_price} {pnl}  {t.note}"
                )

        print("\n" + "=" * 70)

    @staticmethod
    def to_dict(result: BacktestResult) -> dict:
        """Convert results to JSON-serializable dict."""
        cfg = result.config
        return {
            "metadata": {
                "symbol": cfg.symbol,
                "interval": cfg.interval,
                "strategy": cfg.strategy,
                "generated_at": datetime.now(timezone.utc).isoformat(),
                "params": cfg.model_dump(),
            },
            **result.to_dict(),
        }

    @staticmethod
    def save_json(result: BacktestResult, filepath: str) -> None:
        """Save results to a JSON file, replacing it atomically."""
        data = ReportFormatter.to_dict(result)
        directory = os.path.dirname(os.path.abspath(filepath))
        os.makedirs(directory, exist_ok=True)

        fd, tmp_path = tempfile.mkstemp(dir=directory, prefix=".backtest-", suffix=".json")
        try:
            with os.fdopen(fd, "w") as f:
                json.dump(data, f, indent=2)
            os.replace(tmp_path, filepath)
        except BaseException:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise
        print(f"\nResults saved to {filepath}")
