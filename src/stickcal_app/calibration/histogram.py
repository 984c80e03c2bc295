"""Polar extent histogram of stick movement.

Each bucket covers an equal slice of the circle and stores the largest
radius ever observed at that angle. The histogram drives range calibration
cycle detection and the finetune circularity display.
"""

from __future__ import annotations

import math
from collections.abc import Iterable, Sequence


HISTOGRAM_SIZE: int = 64
"""Number of angle buckets."""

EXTREME_THRESHOLD: float = 0.95
"""Radius above which a bucket counts as reaching the stick's edge."""

_TRIM_TOLERANCE = 1e-12


def _round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def angle_index(x: float, y: float, size: int = HISTOGRAM_SIZE) -> int:
    """Return the bucket index for the direction of (x, y).

    Args:
        x: Horizontal deflection.
        y: Vertical deflection.
        size: Number of buckets.

    Returns:
        Index in [0, size). (1, 0) maps to 0 and (0, 1) to size / 4.
    """
    return _round_half_up(math.atan2(y, x) * size / (2.0 * math.pi)) % size


def trim_radius_to_square(angle: float, radius: float) -> float:
    """Clip a polar point to the [-1, 1] square and return its new radius.

    The point is pulled back along its own ray, so the stored radius stays
    valid for the bucket angle and trimming an already trimmed value is a
    no-op. Clipping x and y separately instead would agree on the axes and
    diagonals but move off-axis points to a different angle, so repeated
    trims would keep shrinking the radius.
    """
    x = radius * math.cos(angle)
    y = radius * math.sin(angle)
    overshoot = max(abs(x), abs(y))
    if overshoot <= 1.0 + _TRIM_TOLERANCE:
        return radius
    x /= overshoot
    y /= overshoot
    return math.sqrt(x * x + y * y)


def trim_to_square(values: Sequence[float]) -> list[float]:
    """Apply `trim_radius_to_square` to every bucket of a histogram."""
    size = len(values)
    return [
        trim_radius_to_square(i * 2.0 * math.pi / size, radius)
        for i, radius in enumerate(values)
    ]


class PolarHistogram:
    """Fixed-size circular buffer of the max radius seen per angle."""

    def __init__(self, size: int = HISTOGRAM_SIZE) -> None:
        if size <= 0:
            raise ValueError("PolarHistogram size must be positive")
        self._buckets: list[float] = [0.0] * size

    def __len__(self) -> int:
        return len(self._buckets)

    def __getitem__(self, index: int) -> float:
        return self._buckets[index]

    @property
    def size(self) -> int:
        return len(self._buckets)

    def sample(self, x: float, y: float) -> None:
        """Record one stick position."""
        distance = math.sqrt(x * x + y * y)
        idx = angle_index(x, y, len(self._buckets))
        if distance > self._buckets[idx]:
            self._buckets[idx] = distance

    def reset(self) -> None:
        self._buckets = [0.0] * len(self._buckets)

    def fill_count(self, threshold: float = EXTREME_THRESHOLD) -> int:
        return sum(1 for v in self._buckets if v > threshold)

    def fill_ratio(self, threshold: float = EXTREME_THRESHOLD) -> float:
        """Fraction of buckets whose radius exceeds `threshold`."""
        return self.fill_count(threshold) / len(self._buckets)

    def has_full_coverage(self) -> bool:
        """True when every angle has seen some movement."""
        return all(v != 0 for v in self._buckets)

    def snapshot(self) -> tuple[float, ...]:
        return tuple(self._buckets)

    def load(self, values: Iterable[float]) -> None:
        """Replace all buckets, e.g. to restore a snapshot."""
        new_values = [max(0.0, float(v)) for v in values]
        if len(new_values) != len(self._buckets):
            raise ValueError(
                f"Expected {len(self._buckets)} histogram values, got {len(new_values)}"
            )
        self._buckets = new_values

    def trim_to_square(self) -> None:
        self._buckets = trim_to_square(self._buckets)
