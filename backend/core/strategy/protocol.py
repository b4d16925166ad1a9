"""Interface that backtest strategies implement."""

from __future__ import annotations

from typing import Protocol, Sequence, runtime_checkable

from core.models import Side


@runtime_checkable
class Strategy(Protocol):
    """A rule evaluated bar by bar over a full close history.

    Strategies are stateless between calls: ``signal_at`` rescans the
    windows it needs for ``index`` and ``index - 1`` every time, so the
    same input always gives the same output.
    """

    @property
    def name(self) -> str:
        """Registered strategy name (e.g. ``'sma'``)."""
        ...

    def signal_at(self, closes: Sequence[float], index: int) -> Side | None:
        """Signal for bar ``index`` given every close up to the end of the run.

        Only ``closes[: index + 1]`` may be read.
        """
        ...
