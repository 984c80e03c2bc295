"""Polling rate and jitter statistics from input report timestamps."""

from __future__ import annotations

import math
from collections import deque
from dataclasses import dataclass


MAX_SAMPLES: int = 500
"""Intervals kept for statistics and graphing."""

STATS_WINDOW: int = 100
"""Most recent intervals used for the live statistics."""

MIN_SAMPLES: int = 10
"""Intervals required before statistics are reported."""

MAX_INTERVAL_MS: float = 1000.0
"""Gaps above this are pauses (backgrounded window, sleep) and are dropped."""


@dataclass(frozen=True, slots=True)
class TimingStats:
    """Input timing statistics.

    - `rate` and `max_rate` are in Hz.
    - `avg_interval` and `jitter` are in milliseconds.
    """

    rate: float
    max_rate: float
    avg_interval: float
    jitter: float


class TimingAnalyzer:
    """Rolling statistics over the intervals between input reports."""

    def __init__(self, max_samples: int = MAX_SAMPLES) -> None:
        self._intervals: deque[float] = deque(maxlen=max_samples)
        self._last_timestamp: float | None = None
        self._max_rate = 0.0

    def __len__(self) -> int:
        return len(self._intervals)

    @property
    def max_rate(self) -> float:
        return self._max_rate

    def reset(self) -> None:
        self._intervals.clear()
        self._last_timestamp = None
        self._max_rate = 0.0

    def on_input(self, timestamp: float) -> None:
        """Record the arrival time (ms) of one input report."""
        if self._last_timestamp is None:
            self._last_timestamp = timestamp
            return

        interval = timestamp - self._last_timestamp
        self._last_timestamp = timestamp
        if interval > MAX_INTERVAL_MS:
            return
        self._intervals.append(interval)

    def recent_intervals(self, count: int | None = None) -> list[float]:
        """Return the newest `count` intervals, oldest first."""
        if count is None or count >= len(self._intervals):
            return list(self._intervals)
        if count <= 0:
            return []
        return list(self._intervals)[-count:]

    def compute_stats(self) -> TimingStats | None:
        """Compute live statistics, or None while too few samples exist."""
        if len(self._intervals) < MIN_SAMPLES:
            return None

        window = self.recent_intervals(STATS_WINDOW)
        avg_interval = sum(window) / len(window)
        rate = 1000.0 / avg_interval if avg_interval > 0 else 0.0
        self._max_rate = max(self._max_rate, rate)
        jitter = math.sqrt(sum((v - avg_interval) ** 2 for v in window) / len(window))

        return TimingStats(
            rate=rate,
            max_rate=self._max_rate,
            avg_interval=avg_interval,
            jitter=jitter,
        )
