"""Calibration engine for controller thumbsticks.

Exports:
    PolarHistogram: Max radius per angle bucket of stick movement.
    TimingAnalyzer: Polling rate and jitter from report timestamps.
    RangeCalibrationSession: Rotation-driven range calibration.
    CenterCalibrationWizard: Step-by-step center calibration.
    FinetuneEngine: Raw calibration parameter adjustment.
    CalibrationManager: Owner of the single active session.
"""

from .center_wizard import CenterCalibrationWizard, run_automatic_center_calibration
from .finetune import FinetuneEngine, FinetuneParameterSet
from .histogram import PolarHistogram
from .manager import CalibrationManager
from .range_session import RangeCalibrationSession
from .timing import TimingAnalyzer, TimingStats

__all__ = [
    "PolarHistogram",
    "TimingAnalyzer",
    "TimingStats",
    "RangeCalibrationSession",
    "CenterCalibrationWizard",
    "run_automatic_center_calibration",
    "FinetuneEngine",
    "FinetuneParameterSet",
    "CalibrationManager",
]
