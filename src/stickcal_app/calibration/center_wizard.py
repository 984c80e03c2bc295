"""Stick center calibration.

Provides the step-by-step wizard (one device round-trip per step, the user
confirms each step) and the fully automatic variant that runs every step
back-to-back.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

from stickcal_app.errors import DeviceUnavailable, SessionStateError
from stickcal_app.input.device import CalibrationDevice, CalibrationOutcome

logger = logging.getLogger(__name__)


SAMPLE_STEPS: int = 3
"""Number of center samples taken by the wizard."""


class StepKind(Enum):
    START = "start"
    INITIALIZING = "initializing"
    SAMPLING = "sampling"
    FINALIZING = "finalizing"
    DONE = "done"


@dataclass(frozen=True, slots=True)
class CalibrationStep:
    """One wizard step. `sample` is 1..3 for SAMPLING and 0 otherwise."""

    kind: StepKind
    sample: int = 0

    @property
    def number(self) -> int:
        """1-based position of the step, used for stepper highlighting."""
        if self.kind is StepKind.START:
            return 1
        if self.kind is StepKind.INITIALIZING:
            return 2
        if self.kind is StepKind.SAMPLING:
            return 2 + self.sample
        if self.kind is StepKind.FINALIZING:
            return 3 + SAMPLE_STEPS
        return 4 + SAMPLE_STEPS

    def __str__(self) -> str:
        if self.kind is StepKind.SAMPLING:
            return f"sampling({self.sample})"
        return self.kind.value


START = CalibrationStep(StepKind.START)
INITIALIZING = CalibrationStep(StepKind.INITIALIZING)
FINALIZING = CalibrationStep(StepKind.FINALIZING)
DONE = CalibrationStep(StepKind.DONE)


def sampling(n: int) -> CalibrationStep:
    if not 1 <= n <= SAMPLE_STEPS:
        raise ValueError(f"Sample step must be within 1..{SAMPLE_STEPS}")
    return CalibrationStep(StepKind.SAMPLING, n)


class CenterCalibrationWizard:
    """Linear center calibration state machine.

    Each call to `advance()` moves exactly one step forward and performs the
    device round-trip that belongs to it:

    START -> INITIALIZING (begin), INITIALIZING -> SAMPLING(1..3) (sample),
    SAMPLING(3) -> FINALIZING -> DONE (end).
    """

    def __init__(
        self,
        device: CalibrationDevice,
        *,
        on_step: Callable[[CalibrationStep], None] | None = None,
        on_done: Callable[[CalibrationOutcome], None] | None = None,
    ) -> None:
        self._device = device
        self._on_step = on_step or (lambda _: None)
        self._on_done = on_done or (lambda _: None)
        self._step = START
        self._active = True
        self._busy = False
        self.outcome: CalibrationOutcome | None = None

    @property
    def step(self) -> CalibrationStep:
        return self._step

    @property
    def is_active(self) -> bool:
        return self._active

    @property
    def can_cancel(self) -> bool:
        """Dismissing is offered at the start and once calibration is stored."""
        return self._step in (START, DONE)

    def advance(self) -> bool:
        """Perform the next step.

        Returns:
            True if the step succeeded, False if the device failed and the
            wizard was aborted.
        """
        if not self._active:
            raise SessionStateError("Center calibration wizard is no longer active")
        if self._busy:
            raise SessionStateError("Center calibration is waiting for the device")

        current = self._step
        if current == START:
            return self._run(INITIALIZING, self._device.begin_center_calibration)
        if current == INITIALIZING:
            return self._run(sampling(1), self._device.sample_center_calibration)
        if current.kind is StepKind.SAMPLING and current.sample < SAMPLE_STEPS:
            return self._run(sampling(current.sample + 1), self._device.sample_center_calibration)
        if current.kind is StepKind.SAMPLING:
            if not self._run(FINALIZING, self._device.end_center_calibration):
                return False
            self._enter(DONE)
            self._finish(CalibrationOutcome(success=True))
            return True
        raise SessionStateError(f"Cannot advance from step {current}")

    def cancel(self) -> None:
        """Close the wizard before it is done. No round-trip is performed."""
        if not self._active:
            return
        self._active = False
        logger.info("Center calibration cancelled at step %s", self._step)

    def _enter(self, step: CalibrationStep) -> None:
        self._step = step
        logger.debug("Center calibration step %s", step)
        self._on_step(step)

    def _run(self, step: CalibrationStep, round_trip: Callable[[], None]) -> bool:
        """Perform `round_trip` and move to `step` once the device confirmed it."""
        self._busy = True
        try:
            round_trip()
        except DeviceUnavailable as exc:
            logger.warning("Center calibration failed entering step %s: %s", step, exc)
            self._finish(CalibrationOutcome(success=False, message=str(exc)))
            return False
        finally:
            self._busy = False
        self._enter(step)
        return True

    def _finish(self, outcome: CalibrationOutcome) -> None:
        self._active = False
        self.outcome = outcome
        self._on_done(outcome)


def run_automatic_center_calibration(
    device: CalibrationDevice,
    on_progress: Callable[[int], None] | None = None,
    *,
    on_step: Callable[[CalibrationStep], None] | None = None,
) -> CalibrationOutcome:
    """Run the whole center calibration without pausing between steps.

    Args:
        device: Device link for the round-trips.
        on_progress: Called with coarse 0..100 progress.
        on_step: Called on every step transition.

    Returns:
        The terminal outcome of the calibration.
    """
    report = on_progress or (lambda _: None)
    wizard = CenterCalibrationWizard(device, on_step=on_step)

    report(0)
    report(10)
    total_steps = 2 + SAMPLE_STEPS
    for done_steps in range(1, total_steps + 1):
        if not wizard.advance():
            break
        report(10 + (90 * done_steps) // total_steps)

    outcome = wizard.outcome or CalibrationOutcome(success=False, message="Calibration did not finish")
    logger.info("Automatic center calibration finished: success=%s", outcome.success)
    return outcome
