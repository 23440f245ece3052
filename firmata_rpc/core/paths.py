"""Centralized path constants for the bridge."""

from __future__ import annotations

import os
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[2]
PACKAGE_ROOT = PROJECT_ROOT / "firmata_rpc"

CONFIG_PATH = PROJECT_ROOT / "config.txt"

_USER_STATE_ENV = os.environ.get("FIRMATA_RPC_STATE_DIR")
USER_STATE_DIR = Path(_USER_STATE_ENV).expanduser() if _USER_STATE_ENV else (Path.home() / ".firmata_rpc")
LOGS_DIR = USER_STATE_DIR / "logs"
BRIDGE_LOG_FILE = LOGS_DIR / "bridge.log"


def ensure_directories() -> None:
    """Create the per-user state directories if they don't exist."""
    LOGS_DIR.mkdir(parents=True, exist_ok=True)


__all__ = [
    "PROJECT_ROOT",
    "PACKAGE_ROOT",
    "CONFIG_PATH",
    "USER_STATE_DIR",
    "LOGS_DIR",
    "BRIDGE_LOG_FILE",
    "ensure_directories",
]
