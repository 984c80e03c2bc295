"""Headless input monitor.

Polls the configured controller, feeds the stick histograms and the timing
analyzer, and logs the polling rate once per second.
"""

import logging
import time

from PySide6.QtCore import QTimer, Qt

# Use absolute import so it works when frozen as a script entrypoint.
from stickcal_app.app import create_application
from stickcal_app.calibration.histogram import PolarHistogram
from stickcal_app.calibration.timing import TimingAnalyzer
from stickcal_app.config import (
    ControllerConfig,
    default_controller_config,
    ensure_config_exists,
    load_controller_config,
)
from stickcal_app.input.hid_backend import HidSession, find_controller, hid_available
from stickcal_app.sticks import decode_sticks

logger = logging.getLogger(__name__)

POLL_INTERVAL_MS = 1
STATS_INTERVAL_MS = 1000


class InputMonitor:
    """Read input reports on a timer and keep stick and timing statistics."""

    def __init__(self, session: HidSession, cfg: ControllerConfig) -> None:
        self._session = session
        self._cfg = cfg
        self.timing = TimingAnalyzer()
        self.histograms = {"left": PolarHistogram(), "right": PolarHistogram()}

        self._poll_timer = QTimer()
        self._poll_timer.setTimerType(Qt.PreciseTimer)
        self._poll_timer.setInterval(POLL_INTERVAL_MS)
        self._poll_timer.timeout.connect(self.poll)

        self._stats_timer = QTimer()
        self._stats_timer.setInterval(STATS_INTERVAL_MS)
        self._stats_timer.timeout.connect(self.log_stats)

    def start(self) -> None:
        self._poll_timer.start()
        self._stats_timer.start()

    def stop(self) -> None:
        self._poll_timer.stop()
        self._stats_timer.stop()

    def poll(self) -> None:
        for report in self._session.read_reports(report_len=self._cfg.report_len):
            self.on_report(report, time.perf_counter() * 1000.0)

    def on_report(self, report: list[int], timestamp: float) -> None:
        self.timing.on_input(timestamp)
        sticks = decode_sticks(report, self._cfg.stick_offsets)
        if sticks is None:
            return
        self.histograms["left"].sample(sticks.left.x, sticks.left.y)
        self.histograms["right"].sample(sticks.right.x, sticks.right.y)

    def log_stats(self) -> None:
        stats = self.timing.compute_stats()
        if stats is None:
            return
        logger.info(
            "%.0f Hz (max %.0f Hz), interval %.2f ms, jitter %.2f ms, coverage L %.0f%% R %.0f%%",
            stats.rate,
            stats.max_rate,
            stats.avg_interval,
            stats.jitter,
            self.histograms["left"].fill_ratio() * 100,
            self.histograms["right"].fill_ratio() * 100,
        )


def main() -> int:
    app = create_application()
    if not hid_available():
        logger.error("hidapi is not installed")
        return 1

    ensure_config_exists()
    cfg = load_controller_config() or default_controller_config()
    device = find_controller(cfg.vendor_id, cfg.product_id)
    if device is None:
        logger.error("No controller found for vendor 0x%04X", cfg.vendor_id)
        return 1

    session = HidSession()
    session.open(device)
    logger.info("Monitoring %s", device.product_string)
    monitor = InputMonitor(session, cfg)
    monitor.start()
    try:
        return app.exec()
    finally:
        monitor.stop()
        session.close()


if __name__ == "__main__":
    raise SystemExit(main())
