"""Error types raised by the calibration engine."""

from __future__ import annotations


class CalibrationError(Exception):
    """Base class for all calibration engine errors."""


class DeviceUnavailable(CalibrationError):
    """A device round-trip failed or timed out."""


class PreconditionFailed(CalibrationError):
    """The device is not in a state where the operation is safe."""


class MalformedParameterSet(CalibrationError):
    """The calibration parameter set read from the device has the wrong shape."""


class InvalidMode(CalibrationError, ValueError):
    """An unknown finetune mode, axis or direction was requested."""


class InvalidStick(CalibrationError, ValueError):
    """A stick other than 'left' or 'right' was requested."""


class SessionStateError(CalibrationError):
    """The session is closed, finished, or already waiting on the device."""
