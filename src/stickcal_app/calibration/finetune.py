"""Finetuning of the raw stick calibration parameters.

The device keeps 12 raw integers per controller: four axis limits and two
raw centers for each stick. This module adjusts them in small steps (button
driven, with auto repeat) or in bulk through the error slack slider, always
clamped to the device range, and can restore the values read at open time.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, replace
from enum import Enum

from PySide6.QtCore import QTimer

from stickcal_app.calibration.histogram import HISTOGRAM_SIZE, PolarHistogram
from stickcal_app.config import FinetuneConfig
from stickcal_app.errors import (
    CalibrationError,
    DeviceUnavailable,
    InvalidMode,
    MalformedParameterSet,
    PreconditionFailed,
    SessionStateError,
)
from stickcal_app.input.device import CalibrationDevice, CalibrationOutcome
from stickcal_app.sticks import (
    STICKS,
    StickPair,
    StickSample,
    is_away_from_center,
    is_in_extreme_position,
    is_near_center,
    validate_stick,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

FINETUNE_PARAMETER_NAMES: tuple[str, ...] = (
    "LL", "LT", "RL", "RT", "LR", "LB", "RR", "RB", "LX", "LY", "RX", "RY",
)
"""Device order of the parameter set."""

PARAMETER_COUNT: int = len(FINETUNE_PARAMETER_NAMES)

MODE_CENTER = "center"
MODE_CIRCULARITY = "circularity"
MODES: tuple[str, str] = (MODE_CENTER, MODE_CIRCULARITY)

INCREASE = "increase"
DECREASE = "decrease"

QUADRANTS: tuple[str, ...] = ("left", "up", "right", "down")
"""Quadrant order matches the per-stick limit order (Low, Top, Right, Bottom)."""

INITIAL_REPEAT_DELAY_MS: int = 400
REPEAT_INTERVAL_MS: int = 150

SLACK_MAX_ADJUSTMENT: float = 175.0
"""Raw adjustment applied to each axis limit at slider position 100."""

SLACK_HISTOGRAM_SCALE: float = 0.00085
"""Histogram radius change per raw unit of slack adjustment."""

STICK_SELECT_DEADZONE: float = 0.2
CENTER_MODE_MOVE_LIMIT: float = 0.5
PHYSICAL_LIMIT: float = 1.0

HORIZONTAL_BUTTONS: tuple[str, ...] = ("left", "right", "square", "circle")
VERTICAL_BUTTONS: tuple[str, ...] = ("up", "down", "triangle", "cross")
NAVIGATION_BUTTONS: tuple[str, ...] = HORIZONTAL_BUTTONS + VERTICAL_BUTTONS


@dataclass(frozen=True, slots=True)
class StickParameters:
    """Names of the parameters that belong to one stick."""

    limits: tuple[str, str, str, str]
    center_x: str
    center_y: str


STICK_PARAMETERS: dict[str, StickParameters] = {
    "left": StickParameters(limits=("LL", "LT", "LR", "LB"), center_x="LX", center_y="LY"),
    "right": StickParameters(limits=("RL", "RT", "RR", "RB"), center_x="RX", center_y="RY"),
}


def is_increasing_limit(name: str) -> bool:
    """Low and Top limits grow with slack, Right and Bottom limits shrink."""
    return name.endswith(("L", "T"))


def quadrant_of(x: float, y: float) -> str:
    """Return 'left', 'right', 'up' or 'down' for a stick position.

    The axis with the larger magnitude wins; ties go to the vertical axis.
    """
    if abs(x) > abs(y):
        return "right" if x > 0 else "left"
    return "down" if y > 0 else "up"


def parameter_for(stick: str, axis: str) -> str:
    """Map a stick and an axis ('X', 'Y' or a quadrant) to a parameter name."""
    params = STICK_PARAMETERS[validate_stick(stick)]
    key = axis.upper() if axis.upper() in ("X", "Y") else axis.lower()
    if key == "X":
        return params.center_x
    if key == "Y":
        return params.center_y
    if key in QUADRANTS:
        return params.limits[QUADRANTS.index(key)]
    raise InvalidMode(f"Invalid axis: {axis!r}. Must be 'X', 'Y' or one of {QUADRANTS}")


def _validate_mode(mode: str) -> str:
    if mode not in MODES:
        raise InvalidMode(f"Invalid finetune mode: {mode!r}. Must be 'center' or 'circularity'")
    return mode


def _signed_step(direction: str, step_size: int) -> int:
    if direction == INCREASE:
        return int(step_size)
    if direction == DECREASE:
        return -int(step_size)
    raise InvalidMode(f"Invalid direction: {direction!r}. Must be 'increase' or 'decrease'")


def _clamp(value: int, max_value: int) -> int:
    return max(0, min(max_value, int(value)))


# ---------------------------------------------------------------------------
# Parameter set
# ---------------------------------------------------------------------------

@dataclass(frozen=True, slots=True)
class FinetuneParameterSet:
    """Immutable snapshot of the raw calibration parameters."""

    values: tuple[int, ...]
    max_value: int

    @classmethod
    def from_values(cls, values: Sequence[int], max_value: int) -> "FinetuneParameterSet":
        """Build a set from device data, clamping every value into range."""
        return cls(tuple(_clamp(v, max_value) for v in values), int(max_value))

    @property
    def is_well_formed(self) -> bool:
        return len(self.values) == PARAMETER_COUNT

    def __len__(self) -> int:
        return len(self.values)

    def __getitem__(self, key: int | str) -> int:
        if isinstance(key, str):
            self.require_well_formed()
            key = FINETUNE_PARAMETER_NAMES.index(key)
        return self.values[key]

    def with_value(self, name: str, value: int) -> "FinetuneParameterSet":
        """Return a copy with one parameter replaced (clamped)."""
        self.require_well_formed()
        idx = FINETUNE_PARAMETER_NAMES.index(name)
        values = list(self.values)
        values[idx] = _clamp(value, self.max_value)
        return replace(self, values=tuple(values))

    def with_values(self, updates: Mapping[str, int]) -> "FinetuneParameterSet":
        result = self
        for name, value in updates.items():
            result = result.with_value(name, value)
        return result

    def as_dict(self) -> dict[str, int]:
        self.require_well_formed()
        return dict(zip(FINETUNE_PARAMETER_NAMES, self.values))

    def as_list(self) -> list[int]:
        return list(self.values)

    def require_well_formed(self) -> None:
        if not self.is_well_formed:
            raise MalformedParameterSet(
                f"Expected {PARAMETER_COUNT} calibration values, got {len(self.values)}"
            )


# ---------------------------------------------------------------------------
# Lock precondition
# ---------------------------------------------------------------------------

def ensure_locked(device: CalibrationDevice) -> None:
    """Make sure the calibration memory is write-protected before finetuning.

    Raises:
        PreconditionFailed: If the lock state cannot be confirmed as locked.
    """
    try:
        state = device.query_lock_state()
        if not state.locked:
            if not device.set_lock(True):
                raise PreconditionFailed("Cannot lock calibration memory")
            state = device.query_lock_state()
            if not state.locked:
                raise PreconditionFailed(f"Cannot lock calibration memory ({state.describe()})")
        elif state.status != "locked":
            raise PreconditionFailed(
                "Cannot read lock status. Finetuning is not safe on this device."
            )
    except DeviceUnavailable as exc:
        raise PreconditionFailed(f"Cannot query lock status: {exc}") from exc


# ---------------------------------------------------------------------------
# Continuous adjustment
# ---------------------------------------------------------------------------

class RepeatState(Enum):
    IDLE = "idle"
    ARMED_INITIAL = "armed_initial"
    REPEATING = "repeating"


class ContinuousAdjuster:
    """Auto repeat for a held adjustment button.

    The action fires immediately on start, again after the initial delay and
    then at a fixed interval. `should_stop` is consulted before every timed
    action and whenever `check()` is called; a True result returns to IDLE.
    A device failure inside a timed action stops the repeat and is handed to
    `on_error`.
    """

    def __init__(
        self,
        should_stop: Callable[[], bool],
        *,
        on_error: Callable[[DeviceUnavailable], None] | None = None,
        initial_delay_ms: int = INITIAL_REPEAT_DELAY_MS,
        interval_ms: int = REPEAT_INTERVAL_MS,
    ) -> None:
        self._should_stop = should_stop
        self._on_error = on_error or (lambda _: None)
        self._action: Callable[[], None] | None = None
        self.state = RepeatState.IDLE

        self._initial_timer = QTimer()
        self._initial_timer.setSingleShot(True)
        self._initial_timer.setInterval(initial_delay_ms)
        self._initial_timer.timeout.connect(self.on_initial_delay)

        self._repeat_timer = QTimer()
        self._repeat_timer.setInterval(interval_ms)
        self._repeat_timer.timeout.connect(self.on_repeat_tick)

    @property
    def is_active(self) -> bool:
        return self.state is not RepeatState.IDLE

    @property
    def timers_running(self) -> bool:
        return self._initial_timer.isActive() or self._repeat_timer.isActive()

    def start(self, action: Callable[[], None]) -> None:
        """Run `action` now and arm the initial delay.

        Raises:
            DeviceUnavailable: If the first action fails; nothing is armed.
        """
        self.stop()
        action()
        self._action = action
        self.state = RepeatState.ARMED_INITIAL
        self._initial_timer.start()

    def stop(self) -> None:
        self._initial_timer.stop()
        self._repeat_timer.stop()
        self._action = None
        self.state = RepeatState.IDLE

    def check(self) -> None:
        if self.is_active and self._should_stop():
            self.stop()

    def on_initial_delay(self) -> None:
        if self.state is not RepeatState.ARMED_INITIAL:
            return
        if self._fire():
            self.state = RepeatState.REPEATING
            self._repeat_timer.start()

    def on_repeat_tick(self) -> None:
        if self.state is not RepeatState.REPEATING:
            return
        self._fire()

    def _fire(self) -> bool:
        if self._action is None or self._should_stop():
            self.stop()
            return False
        try:
            self._action()
        except DeviceUnavailable as exc:
            logger.warning("Continuous adjustment stopped: %s", exc)
            self.stop()
            self._on_error(exc)
            return False
        return True


@dataclass(frozen=True, slots=True)
class _RepeatRequest:
    stick: str
    mode: str
    parameter: str
    delta: int


@dataclass(frozen=True, slots=True)
class SlackBaseline:
    """Values captured when the slack slider is pressed."""

    limits: tuple[tuple[str, int], ...]
    histogram: tuple[float, ...]


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------

class FinetuneEngine:
    """One finetuning session over the device's raw calibration parameters.

    Create it with `FinetuneEngine.open()`, which verifies the lock state
    and reads the current parameters. Every adjustment is written to the
    device immediately; `commit()` keeps the result, `cancel()` writes back
    the values read at open time.
    """

    def __init__(
        self,
        device: CalibrationDevice,
        parameters: FinetuneParameterSet,
        *,
        settings: FinetuneConfig | None = None,
        histogram_size: int = HISTOGRAM_SIZE,
        on_change: Callable[[FinetuneParameterSet], None] | None = None,
        on_warning: Callable[[str], None] | None = None,
        on_settings_changed: Callable[[FinetuneConfig], None] | None = None,
        on_error: Callable[[CalibrationError], None] | None = None,
        on_done: Callable[[CalibrationOutcome], None] | None = None,
    ) -> None:
        """Initialize the engine. Prefer `FinetuneEngine.open()`.

        Args:
            device: Device link for parameter writes.
            parameters: Parameter set read from the device.
            settings: Persisted step sizes.
            histogram_size: Buckets of the per-stick visualization histograms.
            on_change: Called with the parameter set after every change.
            on_warning: Called with the mode when the stick is in the wrong
                zone for the pressed button.
            on_settings_changed: Called when a step size changes.
            on_error: Called when an adjustment driven by controller input
                fails on the device. The session is closed first.
            on_done: Called when the session is committed, cancelled or
                closed by a device failure.
        """
        self._device = device
        self._original = parameters
        self._current = parameters
        self._settings = settings or FinetuneConfig()
        self._on_change = on_change or (lambda _: None)
        self._on_warning = on_warning or (lambda _: None)
        self._on_settings_changed = on_settings_changed or (lambda _: None)
        self._on_error = on_error or (lambda _: None)
        self._on_done = on_done or (lambda _: None)

        self._histograms = {stick: PolarHistogram(histogram_size) for stick in STICKS}
        self._mode = MODE_CENTER
        self._active_stick: str | None = "left"
        self._active = True
        self._committed = False

        self._sticks: dict[str, StickSample] = {s: StickSample(0.0, 0.0) for s in STICKS}
        self._previous_sticks: dict[str, StickSample] = dict(self._sticks)
        self._held: set[str] = set()

        self._repeat_request: _RepeatRequest | None = None
        self._adjuster = ContinuousAdjuster(self._repeat_should_stop, on_error=self._device_failed)

        self._slack_baselines: dict[str, SlackBaseline | None] = {s: None for s in STICKS}
        self._slack_used: dict[str, bool] = {s: False for s in STICKS}

    @classmethod
    def open(cls, device: CalibrationDevice, **kwargs) -> "FinetuneEngine":
        """Verify the lock state, read the parameter set and start a session.

        Raises:
            PreconditionFailed: If the calibration memory is not locked.
            DeviceUnavailable: If the parameters cannot be read.
        """
        ensure_locked(device)
        values = device.read_parameter_set()
        if values is None:
            raise DeviceUnavailable("Cannot read calibration data")
        parameters = FinetuneParameterSet.from_values(values, device.max_parameter_value())
        if not parameters.is_well_formed:
            logger.warning("Calibration data has %d values, expected %d", len(parameters), PARAMETER_COUNT)
        logger.info("Finetuning opened")
        return cls(device, parameters, **kwargs)

    # -------------------------------------------------------------------------
    # Properties
    # -------------------------------------------------------------------------

    @property
    def parameters(self) -> FinetuneParameterSet:
        return self._current

    @property
    def original(self) -> FinetuneParameterSet:
        return self._original

    @property
    def max_value(self) -> int:
        return self._current.max_value

    @property
    def is_active(self) -> bool:
        return self._active

    @property
    def committed(self) -> bool:
        return self._committed

    @property
    def mode(self) -> str:
        return self._mode

    @property
    def active_stick(self) -> str | None:
        return self._active_stick

    @property
    def settings(self) -> FinetuneConfig:
        return self._settings

    @property
    def step_size(self) -> int:
        """Step size of the current mode."""
        if self._mode == MODE_CENTER:
            return self._settings.center_step
        return self._settings.circularity_step

    @step_size.setter
    def step_size(self, size: int) -> None:
        if int(size) <= 0:
            raise ValueError("Step size must be positive")
        if self._mode == MODE_CENTER:
            self._settings = replace(self._settings, center_step=int(size))
        else:
            self._settings = replace(self._settings, circularity_step=int(size))
        self._on_settings_changed(self._settings)

    @property
    def adjuster(self) -> ContinuousAdjuster:
        return self._adjuster

    @property
    def repeat_state(self) -> RepeatState:
        return self._adjuster.state

    @property
    def timers_running(self) -> bool:
        return self._adjuster.timers_running

    def histogram(self, stick: str) -> PolarHistogram:
        return self._histograms[validate_stick(stick)]

    def clear_histograms(self) -> None:
        for histogram in self._histograms.values():
            histogram.reset()

    quadrant_of = staticmethod(quadrant_of)

    # -------------------------------------------------------------------------
    # Mode and stick selection
    # -------------------------------------------------------------------------

    def set_mode(self, mode: str) -> None:
        _validate_mode(mode)
        self._require_active()
        if mode == self._mode:
            return
        self.stop_repeat()
        self._mode = mode
        self.clear_histograms()
        if mode == MODE_CENTER:
            self._slack_used = {s: False for s in STICKS}
        logger.debug("Finetune mode %s", mode)

    def set_active_stick(self, stick: str | None) -> None:
        if stick is not None:
            validate_stick(stick)
        if stick == self._active_stick:
            return
        self.stop_repeat()
        self._active_stick = stick

    # -------------------------------------------------------------------------
    # Input
    # -------------------------------------------------------------------------

    def on_sticks(self, pair: StickPair) -> None:
        """Feed one input report's stick positions."""
        if not self._active:
            return
        for stick in STICKS:
            sample = pair.get(stick)
            self._sticks[stick] = sample
            self._histograms[stick].sample(sample.x, sample.y)
        self._adjuster.check()
        if self._repeat_request is not None:
            stick = self._repeat_request.stick
            self._previous_sticks[stick] = self._sticks[stick]

    def handle_input(self, changes: Mapping[str, bool], sticks: StickPair | None = None) -> None:
        """Route controller buttons and sticks.

        Args:
            changes: Buttons that changed in this report, True for pressed and
                False for released.
            sticks: Stick positions of the report, if they changed.
        """
        if not self._active:
            return
        for button, pressed in changes.items():
            if pressed:
                self._held.add(button)
            else:
                self._held.discard(button)

        if changes.get("l1"):
            self.set_mode(MODE_CENTER)
        elif changes.get("r1"):
            self.set_mode(MODE_CIRCULARITY)

        if sticks is not None:
            self.on_sticks(sticks)
            self._select_stick_from_movement()

        if self._active_stick is None:
            return
        try:
            if self._mode == MODE_CENTER:
                self._handle_center_buttons(changes)
            else:
                self._handle_circularity_buttons(changes)
        except DeviceUnavailable as exc:
            self._device_failed(exc)

    def _select_stick_from_movement(self) -> None:
        left_away = is_away_from_center(self._sticks["left"], STICK_SELECT_DEADZONE)
        right_away = is_away_from_center(self._sticks["right"], STICK_SELECT_DEADZONE)
        if left_away and right_away:
            self.set_active_stick(None)
        elif left_away:
            self.set_active_stick("left")
        elif right_away:
            self.set_active_stick("right")

    def _navigation_held(self) -> bool:
        return any(button in self._held for button in NAVIGATION_BUTTONS)

    def _handle_center_buttons(self, changes: Mapping[str, bool]) -> None:
        if any(changes.get(button) is False for button in NAVIGATION_BUTTONS):
            self.stop_repeat()
            return

        stick = self._active_stick
        sample = self._sticks[stick]
        if not is_near_center(sample, CENTER_MODE_MOVE_LIMIT) and self._navigation_held():
            self._on_warning(MODE_CENTER)
            return

        mappings = (
            (("left", "square"), "X", INCREASE),
            (("right", "circle"), "X", DECREASE),
            (("up", "triangle"), "Y", INCREASE),
            (("down", "cross"), "Y", DECREASE),
        )
        for buttons, axis, direction in mappings:
            if any(changes.get(button) for button in buttons):
                self.start_repeat(stick, axis, direction)
                return

    def _handle_circularity_buttons(self, changes: Mapping[str, bool]) -> None:
        stick = self._active_stick
        sample = self._sticks[stick]
        if not is_in_extreme_position(sample):
            self.stop_repeat()
            if self._navigation_held():
                self._on_warning(MODE_CIRCULARITY)
            return

        quadrant = quadrant_of(sample.x, sample.y)
        if quadrant in ("left", "right"):
            relevant = HORIZONTAL_BUTTONS
            increase = ("left", "square")
            decrease = ("right", "circle")
        else:
            relevant = VERTICAL_BUTTONS
            increase = ("up", "triangle")
            decrease = ("down", "cross")

        if any(changes.get(button) is False for button in relevant):
            self.stop_repeat()
            return

        if any(changes.get(button) for button in increase):
            self.start_repeat(stick, quadrant, INCREASE)
        elif any(changes.get(button) for button in decrease):
            self.start_repeat(stick, quadrant, DECREASE)

    # -------------------------------------------------------------------------
    # Stepped adjustment
    # -------------------------------------------------------------------------

    def apply_step(
        self,
        stick: str,
        axis: str,
        direction: str,
        step_size: int | None = None,
    ) -> int:
        """Adjust one parameter by one step and write the set to the device.

        Args:
            stick: 'left' or 'right'.
            axis: 'X'/'Y' for the raw center, or a quadrant for an axis limit.
            direction: 'increase' or 'decrease'.
            step_size: Raw units; defaults to the current mode's step size.

        Returns:
            The new (clamped) parameter value.
        """
        name = parameter_for(stick, axis)
        delta = _signed_step(direction, self.step_size if step_size is None else step_size)
        self._require_active()
        self._current.require_well_formed()
        return self._adjust(name, delta)

    def start_repeat(
        self,
        stick: str,
        axis: str,
        direction: str,
        step_size: int | None = None,
    ) -> None:
        """Apply a step now and keep repeating it until stopped."""
        name = parameter_for(stick, axis)
        delta = _signed_step(direction, self.step_size if step_size is None else step_size)
        self._require_active()
        self._current.require_well_formed()

        self._adjuster.stop()
        self._repeat_request = _RepeatRequest(stick=stick, mode=self._mode, parameter=name, delta=delta)
        self._previous_sticks[stick] = self._sticks[stick]

        try:
            self._adjuster.start(lambda: self._adjust(name, delta))
        except DeviceUnavailable:
            self._repeat_request = None
            raise

    def stop_repeat(self) -> None:
        self._adjuster.stop()
        self._repeat_request = None

    def _repeat_should_stop(self) -> bool:
        request = self._repeat_request
        if request is None or not self._active:
            return True
        if request.stick != self._active_stick or request.mode != self._mode:
            return True

        current = self._sticks[request.stick]
        if request.mode == MODE_CIRCULARITY and not is_in_extreme_position(current):
            return True

        previous = self._previous_sticks[request.stick]
        x_dropped = abs(previous.x) >= PHYSICAL_LIMIT and abs(current.x) < PHYSICAL_LIMIT
        y_dropped = abs(previous.y) >= PHYSICAL_LIMIT and abs(current.y) < PHYSICAL_LIMIT
        if x_dropped or y_dropped:
            logger.info("Stopping continuous adjustment: %s stick dropped below its limit", request.stick)
            return True
        return False

    def _adjust(self, name: str, delta: int) -> int:
        updated = self._current.with_value(name, self._current[name] + delta)
        self._store(updated)
        self.clear_histograms()
        return updated[name]

    # -------------------------------------------------------------------------
    # Error slack
    # -------------------------------------------------------------------------

    def slack_available(self, stick: str) -> bool:
        """Slack needs a histogram with movement recorded at every angle."""
        return self.histogram(stick).has_full_coverage()

    def slack_used(self, stick: str) -> bool:
        return self._slack_used[validate_stick(stick)]

    def begin_slack(self, stick: str) -> SlackBaseline:
        """Capture the baseline for a slider gesture."""
        validate_stick(stick)
        self._require_active()
        self._current.require_well_formed()
        limits = STICK_PARAMETERS[stick].limits
        baseline = SlackBaseline(
            limits=tuple((name, self._current[name]) for name in limits),
            histogram=self._histograms[stick].snapshot(),
        )
        self._slack_baselines[stick] = baseline
        return baseline

    def apply_slack(self, stick: str, slider_position: float) -> float:
        """Apply the slider position relative to the gesture baseline.

        Returns:
            The total raw adjustment applied to each limit.
        """
        validate_stick(stick)
        if not 0 <= slider_position <= 100:
            raise ValueError("Slider position must be within 0..100")
        self._require_active()
        self.stop_repeat()

        baseline = self._slack_baselines[stick] or self.begin_slack(stick)
        total_adjustment = (slider_position / 100.0) * SLACK_MAX_ADJUSTMENT

        updates = {}
        for name, base in baseline.limits:
            if is_increasing_limit(name):
                updates[name] = int(base + total_adjustment)
            else:
                updates[name] = int(base - total_adjustment)
        self._set_current(self._current.with_values(updates))

        radius_delta = total_adjustment * SLACK_HISTOGRAM_SCALE
        histogram = self._histograms[stick]
        histogram.load(max(0.0, value + radius_delta) for value in baseline.histogram)
        histogram.trim_to_square()
        return total_adjustment

    def release_slack(self, stick: str) -> None:
        """End the slider gesture: clear the histogram and write the set."""
        validate_stick(stick)
        self._require_active()
        self._slack_used[stick] = True
        self._histograms[stick].reset()
        self._store(self._current)

    def reset_slack(self, stick: str) -> None:
        """Undo the slack gesture, restoring the baseline values."""
        validate_stick(stick)
        self._require_active()
        if self._slack_baselines[stick] is not None:
            self.apply_slack(stick, 0)
        self._slack_used[stick] = False
        self.clear_histograms()
        self._store(self._current)

    # -------------------------------------------------------------------------
    # Session lifecycle
    # -------------------------------------------------------------------------

    def reload(self) -> None:
        """Re-read the parameters after a quick calibration.

        The original snapshot used by `cancel()` is kept.
        """
        self._require_active()
        self.stop_repeat()
        values = self._device.read_parameter_set()
        if values is None:
            raise DeviceUnavailable("Cannot read calibration data")
        self._set_current(FinetuneParameterSet.from_values(values, self._device.max_parameter_value()))
        self.clear_histograms()

    def commit(self) -> FinetuneParameterSet:
        """Keep the adjusted parameters. The caller persists them."""
        self._require_active()
        self._current.require_well_formed()
        self._teardown()
        self._committed = True
        logger.info("Finetuning committed")
        self._on_done(CalibrationOutcome(success=True))
        return self._current

    def cancel(self) -> None:
        """Discard all adjustments and restore the values read at open time."""
        if not self._active:
            return
        self._teardown()
        if self._original.is_well_formed:
            self._device.write_parameter_set(self._original.as_list())
            self._current = self._original
            self._on_change(self._current)
        logger.info("Finetuning cancelled")
        self._on_done(CalibrationOutcome(success=False))

    def abort(self) -> None:
        """Stop all timers without touching the device."""
        self._teardown()

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _require_active(self) -> None:
        if not self._active:
            raise SessionStateError("Finetuning session is closed")

    def _teardown(self) -> None:
        self.stop_repeat()
        self._active = False

    def _device_failed(self, exc: DeviceUnavailable) -> None:
        """Close the session after a failed input-driven adjustment."""
        if not self._active:
            return
        logger.warning("Finetuning closed after device failure: %s", exc)
        self._teardown()
        self._on_done(CalibrationOutcome(success=False, message=str(exc)))
        self._on_error(exc)

    def _set_current(self, parameters: FinetuneParameterSet) -> None:
        self._current = parameters
        self._on_change(parameters)

    def _store(self, parameters: FinetuneParameterSet) -> None:
        """Write a parameter set to the device, keeping the old one on failure."""
        if not parameters.is_well_formed:
            return
        try:
            self._device.write_parameter_set(parameters.as_list())
        except DeviceUnavailable:
            logger.warning("Writing calibration parameters failed")
            raise
        self._set_current(parameters)
