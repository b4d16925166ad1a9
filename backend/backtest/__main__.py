"""CLI entry point for the backtesting system.

Completely independent of app/: bars are fetched with backtest's own
REST downloader or read from a JSON file.

Usage:
    python -m backtest --symbol BTCUSDT --interval 1m --limit 1000
    python -m backtest --strategy rsi --rsi-period 14 --output results.json
    python -m backtest --bars history.json --sma-short 5 --sma-long 20
"""

import argparse
import asyncio
import logging
import sys

from pydantic import ValidationError

from backtest.config import get_backtest_settings
from backtest.downloader import BarDownloader, load_bars_file
from backtest.models import BacktestConfig
from backtest.report import ReportFormatter
from backtest.simulator import BacktestSimulator
from core.errors import RelayError
from core.models import Bar

# Exit codes
EXIT_INVALID_ARGS = 2
EXIT_FAILED = 3


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Backtest SMA-cross or RSI-reversal strategies on kline history",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m backtest --symbol BTCUSDT --interval 1m --limit 1000
  python -m backtest --strategy rsi --rsi-lower 25 --rsi-upper 75
  python -m backtest --bars history.json --output results.json
        """,
    )

    # Data source
    parser.add_argument("--symbol", type=str, default=None, help="Symbol (default: BACKTEST_DEFAULT_SYMBOL)")
    parser.add_argument("--interval", type=str, default=None, help="Kline interval (default: BACKTEST_DEFAULT_INTERVAL)")
    parser.add_argument("--limit", type=int, default=1000, help="Number of bars (default: 1000)")
    parser.add_argument(
        "--bars",
        type=str,
        default=None,
        help="Read bars from a JSON file instead of fetching them",
    )

    # Strategy
    parser.add_argument("--strategy", type=str, default="sma", help="sma or rsi (default: sma)")
    parser.add_argument("--sma-short", type=int, default=10)
    parser.add_argument("--sma-long", type=int, default=30)
    parser.add_argument("--rsi-period", type=int, default=14)
    parser.add_argument("--rsi-lower", type=float, default=30.0)
    parser.add_argument("--rsi-upper", type=float, default=70.0)

    # Execution model
    parser.add_argument("--initial-capital", type=float, default=10000.0)
    parser.add_argument("--size-pct", type=float, default=0.1)
    parser.add_argument("--slippage-bps", type=float, default=5.0)
    parser.add_argument("--commission-pct", type=float, default=0.0005)

    parser.add_argument(
        "--output", "-o",
        type=str,
        default=None,
        help="Output file path for JSON results",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Verbose logging",
    )
    return parser.parse_args(argv)


def build_config(args: argparse.Namespace) -> BacktestConfig:
    settings = get_backtest_settings()
    return BacktestConfig(
        symbol=args.symbol or settings.default_symbol,
        interval=args.interval or settings.default_interval,
        strategy=args.strategy,
        sma_short=args.sma_short,
        sma_long=args.sma_long,
        rsi_period=args.rsi_period,
        rsi_lower=args.rsi_lower,
        rsi_upper=args.rsi_upper,
        initial_capital=args.initial_capital,
        size_pct=args.size_pct,
        slippage_bps=args.slippage_bps,
        commission_pct=args.commission_pct,
        limit=args.limit,
    )


async def fetch_bars(config: BacktestConfig) -> list[Bar]:
    settings = get_backtest_settings()
    downloader = BarDownloader(
        base_url=settings.rest_url,
        timeout=settings.request_timeout,
        retries=settings.fetch_retries,
        retry_delay=settings.fetch_retry_delay,
    )
    try:
        return await downloader.fetch(config.pair, config.limit)
    finally:
        await downloader.close()


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)

    # Configure logging
    level = logging.DEBUG if args.verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )
    logging.getLogger("asyncio").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)

    try:
        config = build_config(args)
    except ValidationError as e:
        print(f"Error: invalid arguments: {e}", file=sys.stderr)
        return EXIT_INVALID_ARGS

    try:
        if args.bars:
            bars = load_bars_file(args.bars)[-config.limit:]
        else:
            print(f"\nFetching {config.limit} {config.interval} bars for {config.symbol}...")
            bars = asyncio.run(fetch_bars(config))

        print("\nRunning backtest...")
        result = BacktestSimulator().run(config, bars)
    except (RelayError, OSError, ValueError) as e:
        print(f"Error: backtest failed: {e}", file=sys.stderr)
        return EXIT_FAILED

    # Print console report
    ReportFormatter.print_console(result)

    # Optional: save JSON
    if args.output:
        ReportFormatter.save_json(result, args.output)
    return 0


if __name__ == "__main__":
    sys.exit(main())
