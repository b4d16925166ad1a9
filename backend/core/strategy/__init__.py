"""Signal rules, the live detector and the strategy registry.

Public API:
- SignalDetector: live edge-triggered detector used by the indicator engine
- cross_side / rsi_side / band_side: rule functions shared with the backtester
- Strategy: Protocol for backtest strategies
- register_strategy / create_strategy / list_strategies / get_strategy_class
"""

from core.strategy.detector import SignalDetector
from core.strategy.protocol import Strategy
from core.strategy.registry import (
    create_strategy,
    get_strategy_class,
    list_strategies,
    register_strategy,
)
from core.strategy.rules import band_side, cross_side, rsi_side

__all__ = [
    "SignalDetector",
    "Strategy",
    "create_strategy",
    "get_strategy_class",
    "list_strategies",
    "register_strategy",
    "band_side",
    "cross_side",
    "rsi_side",
]
