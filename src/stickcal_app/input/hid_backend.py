from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

try:
    import hid
except ImportError:
    hid = None


# Dongles that enumerate as HID but never carry controller sticks.
_FILTERED_DEVICE_NAMES: frozenset[str] = frozenset(
    {"usb receiver", "wireless receiver", "nano receiver", "unifying receiver"}
)


@dataclass(frozen=True, slots=True)
class HidDeviceId:
    vendor_id: int
    product_id: int


@dataclass(frozen=True, slots=True)
class HidDeviceInfo:
    """Minimal HID device info needed for selection/opening."""

    device_id: HidDeviceId
    product_string: str
    path: Any  # hidapi uses an opaque bytes-ish path on Windows


def hid_available() -> bool:
    return hid is not None


def enumerate_controllers(vendor_id: int | None = None) -> list[HidDeviceInfo]:
    """Return HID devices with a product name, optionally for one vendor.

    Receivers and nameless interfaces are skipped, and each physical
    controller is listed once even if it exposes several interfaces.
    """
    if hid is None:
        return []
    devices = []
    seen: set[tuple[int, int, str]] = set()
    for d in hid.enumerate():
        product = (d.get("product_string") or "").strip()
        if not product or product.lower() in _FILTERED_DEVICE_NAMES:
            continue
        vid = int(d.get("vendor_id") or 0)
        pid = int(d.get("product_id") or 0)
        if vendor_id and vid != vendor_id:
            continue
        key = (vid, pid, product)
        if key in seen:
            continue
        seen.add(key)
        devices.append(
            HidDeviceInfo(
                device_id=HidDeviceId(vendor_id=vid, product_id=pid),
                product_string=product,
                path=d.get("path"),
            )
        )
    return devices


def find_controller(vendor_id: int, product_id: int) -> Optional[HidDeviceInfo]:
    """Return the first enumerated controller matching the ids, if any."""
    for device in enumerate_controllers(vendor_id):
        if product_id in (0, device.device_id.product_id):
            return device
    return None


class HidSession:
    """Manage a single opened controller for reading input reports."""

    def __init__(self) -> None:
        self._handle = None
        self._device: Optional[HidDeviceInfo] = None

    @property
    def is_open(self) -> bool:
        return self._handle is not None

    @property
    def device(self) -> Optional[HidDeviceInfo]:
        return self._device

    def open(self, device: HidDeviceInfo) -> None:
        if hid is None:
            raise RuntimeError("hidapi is not installed")
        self.close()
        handle = hid.device()
        if device.path:
            handle.open_path(device.path)
        else:
            handle.open(device.device_id.vendor_id, device.device_id.product_id)
        handle.set_nonblocking(True)
        self._handle = handle
        self._device = device

    def close(self) -> None:
        if self._handle is None:
            return
        try:
            self._handle.close()
        finally:
            self._handle = None
            self._device = None

    def read_reports(self, *, report_len: int, max_reads: int = 50) -> list[list[int]]:
        """Drain the read queue and return every pending report, oldest first.

        Timing analysis needs each report, not just the newest one.
        """
        if self._handle is None:
            return []
        reports: list[list[int]] = []
        for _ in range(max_reads):
            data = self._handle.read(int(report_len), timeout_ms=0)
            if not data:
                break
            reports.append(list(data))
        return reports
