"""Core logic for bars, indicators and signals.

This package is pure business logic with no I/O (no network, no
database). It is shared between the live relay (app/) and the
backtester (backtest/).
"""
