"""Bounded, time-ordered bar store per (symbol, interval) pair.

Each pair keeps at most ``capacity`` bars in a deque. A bar with the same
time as the newest stored bar replaces it in place (the period is still
open and updating); a newer bar is appended and the oldest bar is evicted
once capacity is exceeded. Bars older than the newest stored bar are
rejected so the sequence is always strictly ascending by time.
"""

from __future__ import annotations

import logging
from collections import deque
from enum import Enum
from itertools import islice
from typing import Iterable

from core.models import Bar, PairKey

logger = logging.getLogger(__name__)

# Default capacity for live pairs
DEFAULT_CAPACITY = 2000


class MergeResult(str, Enum):
    APPENDED = "appended"
    REPLACED = "replaced"
    REJECTED = "rejected"


class CandleCache:
    """Per-pair bounded bar history.

    Parameters
    ----------
    capacity : int
        Maximum bars kept per pair. Oldest bars are evicted first.
    """

    def __init__(self, capacity: int = DEFAULT_CAPACITY):
        if capacity < 1:
            raise ValueError("capacity must be positive")
        self.capacity = capacity
        self._bars: dict[PairKey, deque[Bar]] = {}

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def merge(self, pair: PairKey, bar: Bar) -> MergeResult:
        """Replace the newest bar if times match, otherwise append."""
        bars = self._bars.get(pair)
        if bars is None:
            bars = deque(maxlen=self.capacity)
            self._bars[pair] = bars

        if bars:
            last_time = bars[-1].time
            if bar.time == last_time:
                bars[-1] = bar
                return MergeResult.REPLACED
            if bar.time < last_time:
                logger.debug(f"{pair}: dropped out-of-order bar {bar.time} < {last_time}")
                return MergeResult.REJECTED

        bars.append(bar)
        return MergeResult.APPENDED

    def seed(self, pair: PairKey, bars: Iterable[Bar]) -> int:
        """Fold a batch of historical bars into the pair's store.

        The result is the union of the history and the bars already held,
        ordered by time and trimmed to ``capacity``. Bars already held (live
        stream updates) win over history bars with the same time.

        Returns:
            Number of history bars added.
        """
        current = self._bars.get(pair)
        by_time = {bar.time: bar for bar in bars}
        held = set()
        if current:
            for bar in current:
                by_time[bar.time] = bar
                held.add(bar.time)
        if not by_time:
            return 0

        merged = deque(
            (by_time[t] for t in sorted(by_time)[-self.capacity:]),
            maxlen=self.capacity,
        )
        self._bars[pair] = merged
        return sum(1 for bar in merged if bar.time not in held)

    def clear(self, pair: PairKey) -> None:
        self._bars.pop(pair, None)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def snapshot(self, pair: PairKey, limit: int | None = None) -> list[Bar]:
        """Most recent ``limit`` bars, oldest first (all bars when ``limit`` is None)."""
        bars = self._bars.get(pair)
        if not bars:
            return []
        if limit is None or limit >= len(bars):
            return list(bars)
        if limit <= 0:
            return []
        return list(islice(bars, len(bars) - limit, None))

    def last(self, pair: PairKey) -> Bar | None:
        bars = self._bars.get(pair)
        return bars[-1] if bars else None

    def size(self, pair: PairKey) -> int:
        bars = self._bars.get(pair)
        return len(bars) if bars else 0

    def pairs(self) -> list[PairKey]:
        return list(self._bars)

    def __contains__(self, pair: object) -> bool:
        return pair in self._bars
