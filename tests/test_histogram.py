"""Tests for the polar extent histogram and the trim-to-square operation."""

from __future__ import annotations

import math

import pytest

from stickcal_app.calibration.histogram import (
    EXTREME_THRESHOLD,
    HISTOGRAM_SIZE,
    PolarHistogram,
    angle_index,
    trim_radius_to_square,
    trim_to_square,
)


# ============================================================================
# Angle Index Tests
# ============================================================================


class TestAngleIndex:
    """Tests for mapping a direction onto a bucket."""

    def test_positive_x_is_bucket_zero(self) -> None:
        """(1, 0) points at the first bucket."""
        assert angle_index(1.0, 0.0, HISTOGRAM_SIZE) == 0

    def test_positive_y_is_quarter_turn(self) -> None:
        """(0, 1) points a quarter of the way round."""
        assert angle_index(0.0, 1.0, HISTOGRAM_SIZE) == HISTOGRAM_SIZE // 4

    def test_negative_angles_wrap_into_range(self) -> None:
        """(0, -1) maps to three quarters, never a negative index."""
        assert angle_index(0.0, -1.0, HISTOGRAM_SIZE) == 3 * HISTOGRAM_SIZE // 4

    def test_negative_x_is_half_turn(self) -> None:
        """(-1, 0) maps to the opposite bucket."""
        assert angle_index(-1.0, 0.0, HISTOGRAM_SIZE) == HISTOGRAM_SIZE // 2

    def test_index_always_in_range(self) -> None:
        """Every direction lands in [0, size)."""
        for step in range(360):
            a = math.radians(step)
            idx = angle_index(math.cos(a), math.sin(a), 64)
            assert 0 <= idx < 64


# ============================================================================
# Histogram Tests
# ============================================================================


class TestPolarHistogram:
    """Tests for sampling, reset and fill statistics."""

    def test_new_histogram_is_zero(self) -> None:
        """A fresh histogram has all buckets at zero."""
        h = PolarHistogram()
        assert len(h) == HISTOGRAM_SIZE
        assert all(v == 0.0 for v in h.snapshot())

    def test_invalid_size_raises(self) -> None:
        """Size must be positive."""
        with pytest.raises(ValueError):
            PolarHistogram(0)

    def test_sample_records_distance(self) -> None:
        """Sampling stores the radius in the bucket of its angle."""
        h = PolarHistogram(64)
        h.sample(0.6, 0.8)
        idx = angle_index(0.6, 0.8, 64)
        assert h[idx] == pytest.approx(1.0)

    def test_sample_keeps_maximum(self) -> None:
        """A smaller radius at the same angle does not lower the bucket."""
        h = PolarHistogram(64)
        h.sample(0.9, 0.0)
        h.sample(0.3, 0.0)
        assert h[0] == pytest.approx(0.9)

    def test_same_sample_twice_is_idempotent(self) -> None:
        """Sampling the same point twice leaves the same snapshot."""
        h = PolarHistogram(64)
        h.sample(0.4, -0.7)
        first = h.snapshot()
        h.sample(0.4, -0.7)
        assert h.snapshot() == first

    def test_reset_zeroes_buckets(self) -> None:
        """Reset clears every bucket."""
        h = PolarHistogram(16)
        h.sample(1.0, 0.0)
        h.reset()
        assert h.snapshot() == (0.0,) * 16

    def test_fill_ratio_is_strict(self) -> None:
        """Buckets exactly at the threshold do not count."""
        h = PolarHistogram(4)
        h.sample(EXTREME_THRESHOLD, 0.0)
        h.sample(0.0, 1.0)
        assert h.fill_count() == 1
        assert h.fill_ratio() == pytest.approx(0.25)

    def test_fill_ratio_monotone_without_reset(self) -> None:
        """Fill ratio never decreases while sampling."""
        h = PolarHistogram(64)
        previous = 0.0
        for step in range(0, 360, 7):
            a = math.radians(step)
            h.sample(math.cos(a), math.sin(a))
            ratio = h.fill_ratio(0.5)
            assert ratio >= previous
            previous = ratio

    def test_full_rotation_fills_histogram(self) -> None:
        """A full circle at the rim fills every bucket."""
        h = PolarHistogram(64)
        for step in range(64 * 4):
            a = step * 2 * math.pi / (64 * 4)
            h.sample(math.cos(a), math.sin(a))
        assert h.fill_ratio() == pytest.approx(1.0)

    def test_full_coverage_needs_every_bucket(self) -> None:
        """Coverage needs movement at every angle."""
        h = PolarHistogram(4)
        h.sample(1.0, 0.0)
        h.sample(0.0, 1.0)
        h.sample(-1.0, 0.0)
        assert not h.has_full_coverage()
        h.sample(0.0, -0.1)
        assert h.has_full_coverage()

    def test_load_restores_snapshot(self) -> None:
        """A snapshot can be loaded back."""
        h = PolarHistogram(4)
        h.load([0.1, 0.2, 0.3, 0.4])
        assert h.snapshot() == (0.1, 0.2, 0.3, 0.4)

    def test_load_rejects_wrong_length(self) -> None:
        """Loading a snapshot of another size fails."""
        h = PolarHistogram(4)
        with pytest.raises(ValueError):
            h.load([0.1, 0.2])

    def test_load_clamps_negative_values(self) -> None:
        """Buckets stay non-negative."""
        h = PolarHistogram(2)
        h.load([-0.5, 0.5])
        assert h.snapshot() == (0.0, 0.5)


# ============================================================================
# Trim Tests
# ============================================================================


class TestTrimToSquare:
    """Tests for clipping polar values to the unit square."""

    def test_inside_square_unchanged(self) -> None:
        """A radius inside the square is kept."""
        assert trim_radius_to_square(0.0, 0.8) == pytest.approx(0.8)

    def test_axis_overshoot_clipped_to_one(self) -> None:
        """On an axis the radius is clipped to 1."""
        assert trim_radius_to_square(0.0, 1.2) == pytest.approx(1.0)
        assert trim_radius_to_square(math.pi / 2, 1.2) == pytest.approx(1.0)

    def test_diagonal_clipped_to_corner(self) -> None:
        """On the diagonal the square corner is at sqrt(2)."""
        assert trim_radius_to_square(math.pi / 4, 2.0) == pytest.approx(math.sqrt(2))

    def test_diagonal_inside_corner_unchanged(self) -> None:
        """A diagonal radius below sqrt(2) is inside the square."""
        assert trim_radius_to_square(math.pi / 4, 1.3) == pytest.approx(1.3)

    def test_trim_is_idempotent(self) -> None:
        """Trimming twice equals trimming once."""
        values = [1.0 + 0.01 * i for i in range(64)]
        once = trim_to_square(values)
        twice = trim_to_square(once)
        assert twice == pytest.approx(once)

    def test_histogram_trim_in_place(self) -> None:
        """PolarHistogram.trim_to_square clips its own buckets."""
        h = PolarHistogram(4)
        h.load([1.5, 1.5, 0.5, 1.0])
        h.trim_to_square()
        assert h.snapshot() == pytest.approx((1.0, 1.0, 0.5, 1.0))
