"""
Serializable board projections.

These are the only shapes that cross the RPC boundary. They are built from a
live BoardConnection on demand so internal handles (transport, session,
reader task) never leak to clients.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, Dict, List, Optional


class PinMode(IntEnum):
    """Firmata pin modes as reported in capability responses."""
    INPUT = 0x00
    OUTPUT = 0x01
    ANALOG = 0x02
    PWM = 0x03
    SERVO = 0x04
    SHIFT = 0x05
    I2C = 0x06
    ONEWIRE = 0x07
    STEPPER = 0x08
    SERIAL = 0x0A
    PULLUP = 0x0B
    IGNORE = 0x7F
    UNKNOWN = 0x10


# Mode name -> number table handed to clients as ``MODES``.
MODES: Dict[str, int] = {mode.name: int(mode) for mode in PinMode}

# Analog channel value meaning "this pin has no analog input".
NO_ANALOG_CHANNEL = 127


@dataclass(frozen=True)
class PortDescriptor:
    """One candidate serial port from an enumeration pass."""
    path: str                           # e.g. "/dev/ttyACM0" or "COM3"
    manufacturer: Optional[str] = None


@dataclass
class PinInfo:
    """Capability and last known state of a single pin."""
    supported_modes: List[int] = field(default_factory=list)
    resolutions: Dict[int, int] = field(default_factory=dict)
    analog_channel: int = NO_ANALOG_CHANNEL
    mode: Optional[int] = None
    value: int = 0
    report: int = 1

    def to_dict(self) -> Dict[str, Any]:
        return {
            "supportedModes": list(self.supported_modes),
            "resolutions": {str(mode): bits for mode, bits in self.resolutions.items()},
            "analogChannel": self.analog_channel,
            "mode": self.mode,
            "value": self.value,
            "report": self.report,
        }


@dataclass(frozen=True)
class FirmwareInfo:
    name: str
    major: int
    minor: int

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "version": {"major": self.major, "minor": self.minor}}


@dataclass(frozen=True)
class TransportSummary:
    path: str
    baud_rate: int
    is_open: bool

    def to_dict(self) -> Dict[str, Any]:
        return {"path": self.path, "baudRate": self.baud_rate, "isOpen": self.is_open}


@dataclass(frozen=True)
class BoardInfo:
    """Identity of a board as returned by ``scan`` and ``connect``."""
    firmware: Optional[FirmwareInfo]
    pins: List[PinInfo]
    analog_pins: List[int]
    transport: TransportSummary

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.transport.path,
            "peripheralId": self.transport.path,
            "firmware": self.firmware.to_dict() if self.firmware else None,
            "pins": [pin.to_dict() for pin in self.pins],
            "analogPins": list(self.analog_pins),
            "transport": self.transport.to_dict(),
        }


@dataclass(frozen=True)
class BoardState:
    """Read-only snapshot returned by ``getBoardState``."""
    pins: List[PinInfo]
    analog_pins: List[int]
    transport: TransportSummary

    def to_dict(self) -> Dict[str, Any]:
        return {
            "MODES": dict(MODES),
            "pins": [pin.to_dict() for pin in self.pins],
            "analogPins": list(self.analog_pins),
            "transport": self.transport.to_dict(),
        }


def resolve_pin_mode(mode: Any) -> int:
    """Accept a mode number or name ("OUTPUT", "pwm") and return its number.

    Raises:
        ValueError: if ``mode`` names no known pin mode.
    """
    if isinstance(mode, bool):
        raise ValueError(f"Invalid pin mode: {mode!r}")
    if isinstance(mode, int):
        return int(PinMode(mode))
    if isinstance(mode, str):
        key = mode.strip().upper()
        if key in MODES:
            return MODES[key]
        if key.isdigit():
            return int(PinMode(int(key)))
    raise ValueError(f"Invalid pin mode: {mode!r}")
