from __future__ import annotations

import configparser
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from PySide6.QtCore import QStandardPaths


@dataclass(frozen=True)
class ControllerConfig:
    """Controller selection and input report layout."""

    vendor_id: int
    product_id: int
    product_string: str
    report_len: int
    left_x_offset: int
    left_y_offset: int
    right_x_offset: int
    right_y_offset: int

    @property
    def stick_offsets(self) -> tuple[int, int, int, int]:
        return (self.left_x_offset, self.left_y_offset, self.right_x_offset, self.right_y_offset)


@dataclass(frozen=True)
class FinetuneConfig:
    """Finetuning settings persisted to config.ini."""

    center_step: int = 5
    circularity_step: int = 5
    show_raw_numbers: bool = False


# -------------------------------------------------------------------------
# Default values for all settings
# -------------------------------------------------------------------------

# Sony vendor id; DualShock 4 and DualSense report sticks at bytes 1..4 over USB.
DEFAULT_VENDOR_ID: int = 0x054C
DEFAULT_REPORT_LEN: int = 64
DEFAULT_LEFT_X_OFFSET: int = 1
DEFAULT_LEFT_Y_OFFSET: int = 2
DEFAULT_RIGHT_X_OFFSET: int = 3
DEFAULT_RIGHT_Y_OFFSET: int = 4

DEFAULT_CENTER_STEP: int = 5
DEFAULT_CIRCULARITY_STEP: int = 5
MAX_STEP: int = 100


def config_path() -> Path:
    # e.g., ~/.config/Stick Calibrator/config.ini on Linux
    config_dir = Path(QStandardPaths.writableLocation(QStandardPaths.AppConfigLocation))
    config_dir.mkdir(parents=True, exist_ok=True)
    return config_dir / "config.ini"


def default_controller_config() -> ControllerConfig:
    return ControllerConfig(
        vendor_id=DEFAULT_VENDOR_ID,
        product_id=0,
        product_string="",
        report_len=DEFAULT_REPORT_LEN,
        left_x_offset=DEFAULT_LEFT_X_OFFSET,
        left_y_offset=DEFAULT_LEFT_Y_OFFSET,
        right_x_offset=DEFAULT_RIGHT_X_OFFSET,
        right_y_offset=DEFAULT_RIGHT_Y_OFFSET,
    )


def ensure_config_exists() -> None:
    """Create config.ini with all default values if it doesn't exist."""
    path = config_path()
    if path.exists():
        return

    parser = configparser.ConfigParser()
    _write_controller_section(parser, default_controller_config())
    _write_finetune_section(parser, FinetuneConfig())

    with path.open("w", encoding="utf-8") as f:
        parser.write(f)


def _read_parser() -> configparser.ConfigParser:
    parser = configparser.ConfigParser()
    parser.read(config_path(), encoding="utf-8")
    return parser


def _save_parser(parser: configparser.ConfigParser) -> None:
    path = config_path()
    with path.open("w", encoding="utf-8") as f:
        parser.write(f)


def _clamp_step(value: int) -> int:
    return max(1, min(MAX_STEP, int(value)))


# -------------------------------------------------------------------------
# Controller
# -------------------------------------------------------------------------

def _write_controller_section(parser: configparser.ConfigParser, cfg: ControllerConfig) -> None:
    parser["controller"] = {
        "vendor_id": hex(cfg.vendor_id),
        "product_id": hex(cfg.product_id),
        "product_string": cfg.product_string,
        "report_len": str(cfg.report_len),
        "left_x_offset": str(cfg.left_x_offset),
        "left_y_offset": str(cfg.left_y_offset),
        "right_x_offset": str(cfg.right_x_offset),
        "right_y_offset": str(cfg.right_y_offset),
    }


def load_controller_config() -> Optional[ControllerConfig]:
    path = config_path()
    if not path.exists():
        return None

    parser = _read_parser()
    if "controller" not in parser:
        return None
    section = parser["controller"]
    try:
        return ControllerConfig(
            vendor_id=int(section.get("vendor_id", "0x0").strip(), 0),
            product_id=int(section.get("product_id", "0x0").strip(), 0),
            product_string=section.get("product_string", "").strip(),
            report_len=int(section.get("report_len", str(DEFAULT_REPORT_LEN))),
            left_x_offset=int(section.get("left_x_offset", str(DEFAULT_LEFT_X_OFFSET))),
            left_y_offset=int(section.get("left_y_offset", str(DEFAULT_LEFT_Y_OFFSET))),
            right_x_offset=int(section.get("right_x_offset", str(DEFAULT_RIGHT_X_OFFSET))),
            right_y_offset=int(section.get("right_y_offset", str(DEFAULT_RIGHT_Y_OFFSET))),
        )
    except ValueError:
        return None


def save_controller_config(cfg: ControllerConfig) -> None:
    parser = _read_parser()
    _write_controller_section(parser, cfg)
    _save_parser(parser)


# -------------------------------------------------------------------------
# Finetune
# -------------------------------------------------------------------------

def _write_finetune_section(parser: configparser.ConfigParser, cfg: FinetuneConfig) -> None:
    parser["finetune"] = {
        "center_step": str(int(cfg.center_step)),
        "circularity_step": str(int(cfg.circularity_step)),
        "show_raw_numbers": "true" if bool(cfg.show_raw_numbers) else "false",
    }


def load_finetune_config() -> FinetuneConfig:
    parser = _read_parser()
    section = parser["finetune"] if "finetune" in parser else {}
    try:
        center_step = int(section.get("center_step", str(DEFAULT_CENTER_STEP)))
    except ValueError:
        center_step = DEFAULT_CENTER_STEP
    try:
        circularity_step = int(section.get("circularity_step", str(DEFAULT_CIRCULARITY_STEP)))
    except ValueError:
        circularity_step = DEFAULT_CIRCULARITY_STEP
    show_raw = str(section.get("show_raw_numbers", "false")).strip().lower() == "true"
    return FinetuneConfig(
        center_step=_clamp_step(center_step),
        circularity_step=_clamp_step(circularity_step),
        show_raw_numbers=show_raw,
    )


def save_finetune_config(cfg: FinetuneConfig) -> None:
    parser = _read_parser()
    _write_finetune_section(parser, cfg)
    _save_parser(parser)
