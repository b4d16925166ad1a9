"""Backtest strategies by name.

``BacktestConfig.strategy`` is validated against ``list_strategies()``, and
the simulator builds its strategy with ``create_strategy``:

    @register_strategy("sma")
    class SmaCrossStrategy:
        name = "sma"

        def signal_at(self, closes, index): ...

    strategy = create_strategy(config.strategy, config=config)
"""

from __future__ import annotations

import logging
from typing import Any

logger = logging.getLogger(__name__)

_REGISTRY: dict[str, type] = {}


def register_strategy(name: str):
    """Class decorator adding a strategy under ``name``.

    Raises:
        ValueError: ``name`` is taken by another class.
        TypeError: The class has no ``signal_at`` method.
    """

    def decorator(cls: type) -> type:
        existing = _REGISTRY.get(name)
        if existing is not None and existing is not cls:
            raise ValueError(f"Strategy '{name}' is already registered by {existing.__name__}")
        if not callable(getattr(cls, "signal_at", None)):
            raise TypeError(f"{cls.__name__} must define signal_at(closes, index)")
        _REGISTRY[name] = cls
        logger.debug(f"Registered backtest strategy {name!r} ({cls.__name__})")
        return cls

    return decorator


def get_strategy_class(name: str) -> type:
    try:
        return _REGISTRY[name]
    except KeyError:
        available = ", ".join(list_strategies()) or "(none)"
        raise KeyError(f"Unknown strategy '{name}'. Available: {available}") from None


def create_strategy(name: str, **kwargs: Any):
    """Build the strategy registered under ``name`` with ``kwargs``."""
    return get_strategy_class(name)(**kwargs)


def list_strategies() -> list[str]:
    return sorted(_REGISTRY)
