from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

from stickcal_app.errors import InvalidStick

STICKS: tuple[str, str] = ("left", "right")

# Raw stick bytes are unsigned 8-bit with the center between 127 and 128.
_RAW_HALF_RANGE = 127.5


@dataclass(frozen=True, slots=True)
class StickSample:
    """Deflection of one stick.

    - `x` is -1 (left) .. 1 (right).
    - `y` is -1 (up) .. 1 (down).
    """

    x: float
    y: float


@dataclass(frozen=True, slots=True)
class StickPair:
    """Left and right stick samples taken from the same input report."""

    left: StickSample
    right: StickSample

    def get(self, stick: str) -> StickSample:
        return getattr(self, validate_stick(stick))


def validate_stick(stick: str) -> str:
    """Return `stick` unchanged or raise InvalidStick."""
    if stick not in STICKS:
        raise InvalidStick(f"Invalid stick: {stick!r}. Must be 'left' or 'right'")
    return stick


def normalize_axis(raw: int) -> float:
    """Map a raw 0..255 axis byte onto -1..1."""
    value = (int(raw) - _RAW_HALF_RANGE) / _RAW_HALF_RANGE
    return max(-1.0, min(1.0, value))


def decode_sticks(report: Sequence[int], offsets: Sequence[int]) -> StickPair | None:
    """Decode a stick pair from an input report.

    Args:
        report: Raw input report bytes.
        offsets: Byte offsets of LX, LY, RX, RY in the report.

    Returns:
        The decoded pair, or None if the report is too short.
    """
    lx, ly, rx, ry = offsets
    if max(offsets) >= len(report):
        return None
    return StickPair(
        left=StickSample(normalize_axis(report[lx]), normalize_axis(report[ly])),
        right=StickSample(normalize_axis(report[rx]), normalize_axis(report[ry])),
    )


def is_in_extreme_position(sample: StickSample) -> bool:
    """True when the stick is pushed out along one axis and not the other."""
    prime_axis = max(abs(sample.x), abs(sample.y))
    other_axis = min(abs(sample.x), abs(sample.y))
    return prime_axis >= 0.5 and other_axis < 0.2


def is_away_from_center(sample: StickSample, deadzone: float = 0.2) -> bool:
    return abs(sample.x) >= deadzone or abs(sample.y) >= deadzone


def is_near_center(sample: StickSample, limit: float = 0.5) -> bool:
    return abs(sample.x) <= limit and abs(sample.y) <= limit


def looks_like_failed_range_calibration(pair: StickPair) -> bool:
    """A stick sitting in a square corner means its range data was lost."""
    return any(abs(s.x) + abs(s.y) >= 2.0 for s in (pair.left, pair.right))
