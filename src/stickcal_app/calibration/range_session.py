"""Stick range calibration session.

The user rotates both sticks around their full range while the device is in
range calibration mode. Completed rotations are detected from the polar
histograms and turned into a 0..100 progress value; the session can be
finished once enough rotations were seen or a fixed countdown ran out.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Callable
from dataclasses import dataclass

from PySide6.QtCore import QTimer

from stickcal_app.calibration.histogram import EXTREME_THRESHOLD, PolarHistogram
from stickcal_app.errors import DeviceUnavailable, SessionStateError
from stickcal_app.input.device import CalibrationDevice, CalibrationOutcome

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

REQUIRED_FULL_CYCLES: int = 4
"""Full rotations per stick for complete progress."""

CIRCLE_FILL_THRESHOLD: float = 0.95
"""Fraction of buckets that must be beyond the extreme radius for one rotation."""

SECONDS_UNTIL_UNLOCK: int = 15
"""Countdown after which the session may be finished regardless of progress."""

POLL_INTERVAL_MS: int = 100
COUNTDOWN_INTERVAL_MS: int = 1000

HINT_SHOW_AFTER_S: int = 5
HINT_BLINK_AFTER_S: int = 7
HINT_PROGRESS_LIMIT: float = 10.0

STICK_PROGRESS_SHARE: float = 50.0


# ---------------------------------------------------------------------------
# Progress math
# ---------------------------------------------------------------------------

def cycle_progress(cycles: int, required: int = REQUIRED_FULL_CYCLES) -> float:
    """Progress (0..50) earned by completed rotations of one stick."""
    return min(1.0, cycles / required) * STICK_PROGRESS_SHARE


def stick_progress(
    cycles: int,
    fill_count: int,
    size: int,
    required: int = REQUIRED_FULL_CYCLES,
) -> float:
    """Progress (0..50) of one stick including the rotation in progress."""
    partial = (fill_count / size) * (STICK_PROGRESS_SHARE / required)
    return min(STICK_PROGRESS_SHARE, cycle_progress(cycles, required) + partial)


def total_progress(left: float, right: float) -> int:
    """Combine per-stick progress into a rounded 0..100 value."""
    return int(math.floor(left + right + 0.5))


# ---------------------------------------------------------------------------
# Session
# ---------------------------------------------------------------------------

@dataclass
class RangeCalibrationState:
    """Observable state of a running range calibration."""

    left_cycles: int = 0
    right_cycles: int = 0
    left_fill_count: int = 0
    right_fill_count: int = 0
    seconds_remaining: int = SECONDS_UNTIL_UNLOCK
    unlocked: bool = False
    progress: int = 0
    hint_level: int = 0

    @property
    def left_cycle_progress(self) -> float:
        return cycle_progress(self.left_cycles)

    @property
    def right_cycle_progress(self) -> float:
        return cycle_progress(self.right_cycles)


class RangeCalibrationSession:
    """Drives one range calibration over a pair of polar histograms.

    Histogram sampling is done by the caller as input reports arrive; the
    session only polls the histograms on its own timers.
    """

    def __init__(
        self,
        device: CalibrationDevice,
        left: PolarHistogram,
        right: PolarHistogram,
        *,
        on_progress: Callable[[int], None] | None = None,
        on_countdown: Callable[[int], None] | None = None,
        on_unlocked: Callable[[], None] | None = None,
        on_hint: Callable[[int], None] | None = None,
        on_done: Callable[[CalibrationOutcome], None] | None = None,
    ) -> None:
        """Initialize the session.

        Args:
            device: Device link used for the begin/end round-trips.
            left: Histogram fed with left stick samples.
            right: Histogram fed with right stick samples.
            on_progress: Called with the 0..100 total whenever it changes.
            on_countdown: Called with the seconds left on every countdown tick.
            on_unlocked: Called once when the session may be finished.
            on_hint: Called with the rotation hint level (1 show, 2 blink).
            on_done: Called with the outcome once the session is closed.
        """
        self._device = device
        self._left = left
        self._right = right
        self._on_progress = on_progress or (lambda _: None)
        self._on_countdown = on_countdown or (lambda _: None)
        self._on_unlocked = on_unlocked or (lambda: None)
        self._on_hint = on_hint or (lambda _: None)
        self._on_done = on_done or (lambda _: None)

        self.state = RangeCalibrationState()
        self._active = False
        self._closed = False

        self._poll_timer = QTimer()
        self._poll_timer.setInterval(POLL_INTERVAL_MS)
        self._poll_timer.timeout.connect(self.poll)

        self._countdown_timer = QTimer()
        self._countdown_timer.setInterval(COUNTDOWN_INTERVAL_MS)
        self._countdown_timer.timeout.connect(self.tick_countdown)

    @property
    def is_active(self) -> bool:
        return self._active

    @property
    def timers_running(self) -> bool:
        return self._poll_timer.isActive() or self._countdown_timer.isActive()

    def open(self) -> None:
        """Reset the histograms, start the timers and enter range calibration."""
        if self._active or self._closed:
            raise SessionStateError("Range calibration session was already opened")

        self._left.reset()
        self._right.reset()
        self.state = RangeCalibrationState()
        self._active = True
        self._on_progress(0)
        self._on_countdown(self.state.seconds_remaining)
        self._poll_timer.start()
        self._countdown_timer.start()

        try:
            self._device.begin_range_calibration()
        except DeviceUnavailable as exc:
            logger.warning("Range calibration could not start: %s", exc)
            self._teardown()
            self._on_done(CalibrationOutcome(success=False, message=str(exc)))
            raise
        logger.info("Range calibration started")

    def poll(self) -> None:
        """Detect completed rotations and update progress."""
        if not self._active:
            return

        state = self.state
        size = self._left.size

        left_count = self._left.fill_count(EXTREME_THRESHOLD)
        if left_count / size >= CIRCLE_FILL_THRESHOLD:
            state.left_cycles += 1
            self._left.reset()
            left_count = 0
            logger.debug("Left stick rotation %d detected", state.left_cycles)

        right_count = self._right.fill_count(EXTREME_THRESHOLD)
        if right_count / self._right.size >= CIRCLE_FILL_THRESHOLD:
            state.right_cycles += 1
            self._right.reset()
            right_count = 0
            logger.debug("Right stick rotation %d detected", state.right_cycles)

        state.left_fill_count = left_count
        state.right_fill_count = right_count

        progress = total_progress(
            stick_progress(state.left_cycles, left_count, size),
            stick_progress(state.right_cycles, right_count, self._right.size),
        )
        if progress != state.progress:
            state.progress = progress
            self._on_progress(progress)

        if progress >= 100:
            self._unlock()

    def tick_countdown(self) -> None:
        """Advance the unlock countdown by one second."""
        if not self._active or self.state.unlocked:
            return

        state = self.state
        state.seconds_remaining -= 1
        if state.seconds_remaining <= 0 or state.progress >= 100:
            self._unlock()
            return

        self._on_countdown(state.seconds_remaining)
        self._update_hint()

    def close(self) -> CalibrationOutcome:
        """Stop the timers and store the calibration on the device."""
        if self._closed:
            raise SessionStateError("Range calibration session is already closed")
        if not self._active:
            raise SessionStateError("Range calibration session was never opened")

        self._teardown()
        try:
            message = self._device.end_range_calibration()
        except DeviceUnavailable as exc:
            logger.warning("Range calibration could not be stored: %s", exc)
            outcome = CalibrationOutcome(success=False, message=str(exc))
        else:
            logger.info("Range calibration stored")
            outcome = CalibrationOutcome(success=True, message=message)

        self._on_done(outcome)
        return outcome

    def abort(self) -> None:
        """Tear the session down without any device round-trip."""
        if self._closed:
            return
        self._teardown()
        logger.info("Range calibration aborted")

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _teardown(self) -> None:
        self._poll_timer.stop()
        self._countdown_timer.stop()
        self._active = False
        self._closed = True

    def _unlock(self) -> None:
        if self.state.unlocked:
            return
        self._countdown_timer.stop()
        self.state.unlocked = True
        self.state.seconds_remaining = 0
        self._on_countdown(0)
        self._on_unlocked()
        logger.info("Range calibration may now be finished")

    def _update_hint(self) -> None:
        state = self.state
        elapsed = SECONDS_UNTIL_UNLOCK - state.seconds_remaining
        lagging = (
            state.left_cycle_progress < HINT_PROGRESS_LIMIT
            or state.right_cycle_progress < HINT_PROGRESS_LIMIT
        )
        if not lagging:
            return

        level = state.hint_level
        if elapsed >= HINT_BLINK_AFTER_S:
            level = 2
        elif elapsed >= HINT_SHOW_AFTER_S:
            level = max(level, 1)
        if level != state.hint_level:
            state.hint_level = level
            self._on_hint(level)
