"""
Serial port enumeration filtered to plausible Arduino-compatible boards.
"""

import asyncio
import re
from typing import Any, Callable, Iterable, List, Optional

import serial.tools.list_ports

from firmata_rpc.core.errors import EnumerationError
from firmata_rpc.core.logging_utils import get_module_logger
from .types import PortDescriptor

logger = get_module_logger("PortEnumerator")

ARDUINO_MANUFACTURER_PATTERN = re.compile(r"Arduino")
ARDUINO_PORT_PATH_PATTERN = re.compile(r"usb|acm|^com", re.IGNORECASE)


def is_candidate_port(port: PortDescriptor) -> bool:
    """True if the manufacturer looks like Arduino or the path looks like a USB/ACM/COM port."""
    if port.manufacturer and ARDUINO_MANUFACTURER_PATTERN.search(port.manufacturer):
        return True
    return ARDUINO_PORT_PATH_PATTERN.search(port.path) is not None


class PortEnumerator:
    """Lists candidate serial ports. No side effects beyond the OS query."""

    def __init__(self, list_ports: Optional[Callable[[], Iterable[Any]]] = None):
        self._list_ports = list_ports or serial.tools.list_ports.comports

    async def list_ports(self) -> List[PortDescriptor]:
        """Return candidate ports.

        Raises:
            EnumerationError: if the OS port listing fails.
        """
        try:
            raw_ports = await asyncio.to_thread(lambda: list(self._list_ports()))
        except Exception as exc:
            logger.error("Serial port enumeration failed: %s", exc)
            raise EnumerationError(f"Failed to list serial ports: {exc}") from exc

        candidates = [
            port for port in (self._describe(info) for info in raw_ports)
            if is_candidate_port(port)
        ]
        logger.debug(
            "Enumerated %d serial ports, %d candidates: %s",
            len(raw_ports), len(candidates), [p.path for p in candidates],
        )
        return candidates

    @staticmethod
    def _describe(port_info: Any) -> PortDescriptor:
        return PortDescriptor(
            path=port_info.device,
            manufacturer=getattr(port_info, "manufacturer", None),
        )
