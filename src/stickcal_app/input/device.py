"""Device collaborator interface used by the calibration engine.

The engine never encodes calibration bytes itself. Any transport that can
perform the round-trips below (USB/Bluetooth feature reports, a simulator)
can drive every calibration session.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Protocol, runtime_checkable


LOCK_STATUSES: frozenset[str] = frozenset(
    {"locked", "unlocked", "pending_reboot", "unknown", "error"}
)


@dataclass(frozen=True, slots=True)
class LockState:
    """Write-protection state of the device calibration memory."""

    locked: bool
    status: str
    raw: int | None = None

    def __post_init__(self) -> None:
        if self.status not in LOCK_STATUSES:
            raise ValueError(f"Unknown lock status: {self.status!r}")

    def describe(self) -> str:
        if self.raw is not None:
            return f"{self.status} (0x{self.raw:08X})"
        return self.status


@dataclass(frozen=True, slots=True)
class CalibrationOutcome:
    """Terminal result of a calibration session."""

    success: bool
    message: str | None = None


@runtime_checkable
class CalibrationDevice(Protocol):
    """Round-trips the calibration engine needs from a connected controller.

    Every method blocks until the device answers and raises
    `stickcal_app.errors.DeviceUnavailable` when it does not.
    """

    def read_parameter_set(self) -> Sequence[int] | None: ...

    def write_parameter_set(self, values: Sequence[int]) -> None: ...

    def max_parameter_value(self) -> int: ...

    def begin_center_calibration(self) -> None: ...

    def sample_center_calibration(self) -> None: ...

    def end_center_calibration(self) -> None: ...

    def begin_range_calibration(self) -> None: ...

    def end_range_calibration(self) -> str | None: ...

    def query_lock_state(self) -> LockState: ...

    def set_lock(self, locked: bool) -> bool: ...
