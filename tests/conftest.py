"""Shared fixtures: a Qt core application for timers and a recording fake device."""

from __future__ import annotations

from collections.abc import Sequence

import pytest
from PySide6.QtCore import QCoreApplication

import stickcal_app.config as config
from stickcal_app.errors import DeviceUnavailable
from stickcal_app.input.device import LockState

DEFAULT_PARAMETERS = [
    1000, 1000, 1000, 1000,  # LL LT RL RT
    60000, 60000, 60000, 60000,  # LR LB RR RB
    32768, 32768, 32768, 32768,  # LX LY RX RY
]


class FakeDevice:
    """In-memory CalibrationDevice that records every round-trip."""

    def __init__(
        self,
        parameters: Sequence[int] | None = None,
        *,
        max_value: int = 65535,
        lock_state: LockState | None = None,
    ) -> None:
        self.parameters = list(DEFAULT_PARAMETERS if parameters is None else parameters)
        self.max_value = max_value
        self.lock_state = lock_state or LockState(locked=True, status="locked")
        self.lock_result = True
        self.lock_after_set: LockState | None = LockState(locked=True, status="locked")
        self.calls: list[str] = []
        self.writes: list[list[int]] = []
        self.fail_on: set[str] = set()
        self.read_result_none = False
        self.range_message: str | None = "ok"

    def _call(self, name: str) -> None:
        self.calls.append(name)
        if name in self.fail_on:
            raise DeviceUnavailable(f"{name} failed")

    def read_parameter_set(self):
        self._call("read")
        if self.read_result_none:
            return None
        return list(self.parameters)

    def write_parameter_set(self, values) -> None:
        self._call("write")
        self.parameters = list(values)
        self.writes.append(list(values))

    def max_parameter_value(self) -> int:
        return self.max_value

    def begin_center_calibration(self) -> None:
        self._call("center_begin")

    def sample_center_calibration(self) -> None:
        self._call("center_sample")

    def end_center_calibration(self) -> None:
        self._call("center_end")

    def begin_range_calibration(self) -> None:
        self._call("range_begin")

    def end_range_calibration(self):
        self._call("range_end")
        return self.range_message

    def query_lock_state(self) -> LockState:
        self._call("query_lock")
        return self.lock_state

    def set_lock(self, locked: bool) -> bool:
        self._call("set_lock")
        if self.lock_result and self.lock_after_set is not None:
            self.lock_state = self.lock_after_set
        return self.lock_result


@pytest.fixture(scope="session")
def qapp() -> QCoreApplication:
    """Qt core application so QTimer objects can be created."""
    return QCoreApplication.instance() or QCoreApplication([])


@pytest.fixture
def device() -> FakeDevice:
    return FakeDevice()


@pytest.fixture(autouse=True)
def isolated_config(tmp_path, monkeypatch):
    """Keep config.ini reads and writes inside the test's tmp_path."""
    path = tmp_path / "config.ini"
    monkeypatch.setattr(config, "config_path", lambda: path)
    return path

