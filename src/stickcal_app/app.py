import logging
import sys
from pathlib import Path

from PySide6.QtCore import QCoreApplication, QStandardPaths

APP_NAME = "Stick Calibrator"
APP_VERSION = "0.1.0"


def ensure_user_config_dir() -> Path:
    """Ensure a writable config directory exists and return it."""
    config_dir = Path(QStandardPaths.writableLocation(QStandardPaths.AppConfigLocation))
    config_dir.mkdir(parents=True, exist_ok=True)
    return config_dir


def create_application(argv: list[str] | None = None) -> QCoreApplication:
    """Create the Qt event loop every calibration timer runs on."""
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s - %(message)s")
    app = QCoreApplication.instance() or QCoreApplication(sys.argv if argv is None else argv)
    app.setApplicationName(APP_NAME)
    app.setApplicationVersion(APP_VERSION)
    ensure_user_config_dir()
    return app
