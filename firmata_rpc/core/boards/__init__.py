"""
Board management: discovery, probing, connection ownership and scanning.

Components (leaves first):
    PortEnumerator     - lists candidate serial ports
    BoardProbe         - opens a port and handshakes it
    ConnectionRegistry - owns the live connections
    ScanOrchestrator   - probes all candidate ports concurrently
"""

from .connection import BoardConnection
from .firmata import FirmataParser, FirmataSession
from .port_enumerator import PortEnumerator, is_candidate_port
from .probe import BoardProbe
from .registry import ConnectionRegistry
from .scanner import ScanOrchestrator
from .transport import SerialTransport
from .types import (
    MODES,
    BoardInfo,
    BoardState,
    FirmwareInfo,
    PinInfo,
    PinMode,
    PortDescriptor,
    TransportSummary,
    resolve_pin_mode,
)

__all__ = [
    "BoardConnection",
    "BoardInfo",
    "BoardProbe",
    "BoardState",
    "ConnectionRegistry",
    "FirmataParser",
    "FirmataSession",
    "FirmwareInfo",
    "MODES",
    "PinInfo",
    "PinMode",
    "PortDescriptor",
    "PortEnumerator",
    "ScanOrchestrator",
    "SerialTransport",
    "TransportSummary",
    "is_candidate_port",
    "resolve_pin_mode",
]
