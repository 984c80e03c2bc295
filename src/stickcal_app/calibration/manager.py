"""Owner of the device link, the shared histograms and the active session."""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from typing import Union

from stickcal_app.calibration.center_wizard import (
    CenterCalibrationWizard,
    run_automatic_center_calibration,
)
from stickcal_app.calibration.finetune import FinetuneEngine
from stickcal_app.calibration.histogram import HISTOGRAM_SIZE, PolarHistogram
from stickcal_app.calibration.range_session import RangeCalibrationSession
from stickcal_app.calibration.timing import TimingAnalyzer
from stickcal_app.config import FinetuneConfig, load_finetune_config, save_finetune_config
from stickcal_app.errors import CalibrationError, DeviceUnavailable, SessionStateError
from stickcal_app.input.device import CalibrationDevice, CalibrationOutcome
from stickcal_app.sticks import StickPair, looks_like_failed_range_calibration, validate_stick

logger = logging.getLogger(__name__)

Session = Union[RangeCalibrationSession, CenterCalibrationWizard, FinetuneEngine]

RANGE_FAILED_WARNING = (
    "Range calibration appears to have failed. "
    "Please try again and make sure you rotate the sticks."
)


class CalibrationManager:
    """Routes input to the calibration sessions and keeps at most one open.

    Opening a session aborts the previous one. The main-display histograms
    and the timing analyzer are fed on every input report; the range
    session polls the same histograms. Finetune step sizes come from
    config.ini and are saved back there unless other settings or an
    `on_settings_changed` callback are passed in.
    """

    def __init__(
        self,
        device: CalibrationDevice,
        *,
        histogram_size: int = HISTOGRAM_SIZE,
        finetune_settings: FinetuneConfig | None = None,
        on_settings_changed: Callable[[FinetuneConfig], None] | None = None,
        on_warning: Callable[[str], None] | None = None,
    ) -> None:
        self.device = device
        self.histograms = {
            "left": PolarHistogram(histogram_size),
            "right": PolarHistogram(histogram_size),
        }
        self.timing = TimingAnalyzer()
        self.finetune_settings = finetune_settings or load_finetune_config()
        self._on_settings_changed = on_settings_changed or save_finetune_config
        self._on_warning = on_warning or (lambda _: None)

        self._session: Session | None = None
        self._suspended: FinetuneEngine | None = None
        self._range_warning_shown = False

    # -------------------------------------------------------------------------
    # State
    # -------------------------------------------------------------------------

    @property
    def active_session(self) -> Session | None:
        if self._session is not None and not self._session.is_active:
            self._session = None
        return self._session

    @property
    def finetune(self) -> FinetuneEngine | None:
        session = self.active_session
        return session if isinstance(session, FinetuneEngine) else None

    @property
    def finetune_suspended(self) -> bool:
        return self._suspended is not None

    def histogram(self, stick: str) -> PolarHistogram:
        return self.histograms[validate_stick(stick)]

    # -------------------------------------------------------------------------
    # Input
    # -------------------------------------------------------------------------

    def on_input(
        self,
        sticks: StickPair | None,
        timestamp: float,
        changes: Mapping[str, bool] | None = None,
    ) -> None:
        """Handle one input report.

        Args:
            sticks: Decoded stick positions, or None if the report had none.
            timestamp: Arrival time of the report in milliseconds.
            changes: Buttons that changed in this report (True = pressed).
        """
        self.timing.on_input(timestamp)
        if sticks is not None:
            self.histograms["left"].sample(sticks.left.x, sticks.left.y)
            self.histograms["right"].sample(sticks.right.x, sticks.right.y)

        engine = self.finetune
        if engine is not None:
            engine.handle_input(changes or {}, sticks)
            return

        if sticks is not None and self.active_session is None and self._suspended is None:
            self._detect_failed_range_calibration(sticks)

    def _detect_failed_range_calibration(self, sticks: StickPair) -> None:
        if self._range_warning_shown or not looks_like_failed_range_calibration(sticks):
            return
        self._range_warning_shown = True
        logger.warning("Stick reports a square corner; range calibration data looks lost")
        self._on_warning(RANGE_FAILED_WARNING)

    # -------------------------------------------------------------------------
    # Sessions
    # -------------------------------------------------------------------------

    def close_active(self) -> None:
        """Abort whatever session is open. Finetuning restores its original values.

        A finetuning session suspended by a quick calibration is closed too.
        """
        session = self._session
        suspended = self._suspended
        self._session = None
        self._suspended = None

        if isinstance(session, CenterCalibrationWizard):
            session.cancel()
        elif isinstance(session, RangeCalibrationSession):
            session.abort()
        for engine in (session, suspended):
            if isinstance(engine, FinetuneEngine):
                self._cancel_finetune(engine)

    def _cancel_finetune(self, engine: FinetuneEngine) -> None:
        try:
            engine.cancel()
        except DeviceUnavailable as exc:
            logger.warning("Could not restore calibration values: %s", exc)
            engine.abort()

    def open_range_calibration(self, **callbacks) -> RangeCalibrationSession:
        """Start a range calibration over the main-display histograms."""
        self.close_active()
        session = RangeCalibrationSession(
            self.device, self.histograms["left"], self.histograms["right"], **callbacks
        )
        self._session = session
        try:
            session.open()
        except DeviceUnavailable:
            self._session = None
            raise
        return session

    def open_center_wizard(self, **callbacks) -> CenterCalibrationWizard:
        self.close_active()
        wizard = CenterCalibrationWizard(self.device, **callbacks)
        self._session = wizard
        return wizard

    def run_auto_center_calibration(
        self, on_progress: Callable[[int], None] | None = None
    ) -> CalibrationOutcome:
        self.close_active()
        return run_automatic_center_calibration(self.device, on_progress)

    def open_finetune(self, **callbacks) -> FinetuneEngine:
        """Open a finetuning session; see `FinetuneEngine.open` for failures."""
        self.close_active()
        engine = FinetuneEngine.open(
            self.device,
            settings=self.finetune_settings,
            on_settings_changed=self._store_settings,
            **callbacks,
        )
        self._session = engine
        return engine

    # -------------------------------------------------------------------------
    # Quick calibration from finetuning
    # -------------------------------------------------------------------------

    def quick_center_calibration(
        self, on_progress: Callable[[int], None] | None = None
    ) -> CalibrationOutcome:
        """Run an automatic center calibration without leaving finetuning."""
        engine = self._suspend_finetune()
        try:
            outcome = run_automatic_center_calibration(self.device, on_progress)
        finally:
            self._resume_finetune(engine)
        return outcome

    def quick_range_calibration(self, **callbacks) -> RangeCalibrationSession:
        """Start a range calibration; finetuning resumes once it is closed."""
        engine = self._suspend_finetune()
        on_done = callbacks.pop("on_done", None) or (lambda _: None)

        def finished(outcome: CalibrationOutcome) -> None:
            self._resume_finetune(engine)
            on_done(outcome)

        session = RangeCalibrationSession(
            self.device,
            self.histograms["left"],
            self.histograms["right"],
            on_done=finished,
            **callbacks,
        )
        self._session = session
        session.open()
        return session

    def _suspend_finetune(self) -> FinetuneEngine:
        engine = self.finetune
        if engine is None:
            raise SessionStateError("Quick calibration needs an open finetuning session")
        engine.stop_repeat()
        self._suspended = engine
        self._session = None
        logger.info("Finetuning suspended for quick calibration")
        return engine

    def _resume_finetune(self, engine: FinetuneEngine) -> None:
        if self._suspended is not engine:
            return
        self._suspended = None
        self._session = engine
        try:
            engine.reload()
        except CalibrationError as exc:
            logger.warning("Could not reload calibration values after quick calibration: %s", exc)
        logger.info("Finetuning resumed")

    def _store_settings(self, settings: FinetuneConfig) -> None:
        self.finetune_settings = settings
        self._on_settings_changed(settings)
