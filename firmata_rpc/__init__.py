"""Firmata RPC bridge: manage Firmata boards over serial and expose them over a local WebSocket."""

from __future__ import annotations

from importlib import metadata

from .app.bridge import main, run

try:
    __version__ = metadata.version("firmata-rpc")
except metadata.PackageNotFoundError:  # pragma: no cover - local dev
    __version__ = "0.0.0"


__all__ = ["__version__", "main", "run"]
