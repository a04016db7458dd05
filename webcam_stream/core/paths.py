"""Centralized path constants for the webcam stream server."""

from __future__ import annotations

import os
from pathlib import Path

PACKAGE_ROOT = Path(__file__).resolve().parents[1]
PROJECT_ROOT = PACKAGE_ROOT.parent

# Configuration
CONFIG_PATH = PROJECT_ROOT / "config.txt"

# User-specific state (allows running from read-only project directories)
_USER_STATE_ENV = os.environ.get("WEBCAM_STREAM_STATE_DIR")
USER_STATE_DIR = Path(_USER_STATE_ENV).expanduser() if _USER_STATE_ENV else (Path.home() / ".webcam_stream")
USER_CONFIG_OVERRIDES_DIR = USER_STATE_DIR / "config_overrides"
LOGS_DIR = USER_STATE_DIR / "logs"
SERVER_LOG_FILE = LOGS_DIR / "webcam.log"


def ensure_directories() -> None:
    """Create the per-user state directories if they don't exist."""
    LOGS_DIR.mkdir(parents=True, exist_ok=True)
    USER_CONFIG_OVERRIDES_DIR.mkdir(parents=True, exist_ok=True)


__all__ = [
    "PACKAGE_ROOT",
    "PROJECT_ROOT",
    "CONFIG_PATH",
    "USER_STATE_DIR",
    "USER_CONFIG_OVERRIDES_DIR",
    "LOGS_DIR",
    "SERVER_LOG_FILE",
    "ensure_directories",
]
