"""
Serial transport for Firmata boards.

Wraps pyserial-asyncio streams. The port is never opened implicitly:
callers construct the transport and then ``await open()``.
"""

from __future__ import annotations

import asyncio
import contextlib
from typing import Optional

import serial_asyncio

from firmata_rpc.core.logging_utils import get_module_logger
from .types import TransportSummary

logger = get_module_logger("SerialTransport")

DEFAULT_BAUD_RATE = 57600
DEFAULT_READ_BUFFER_SIZE = 256
CLOSE_TIMEOUT = 1.0


class SerialTransport:
    """Async byte stream over one serial port."""

    def __init__(
        self,
        path: str,
        baud_rate: int = DEFAULT_BAUD_RATE,
        read_buffer_size: int = DEFAULT_READ_BUFFER_SIZE,
    ):
        self.path = path
        self.baud_rate = baud_rate
        self.read_buffer_size = read_buffer_size

        self._reader: Optional[asyncio.StreamReader] = None
        self._writer: Optional[asyncio.StreamWriter] = None

    @property
    def is_open(self) -> bool:
        return self._writer is not None and not self._writer.is_closing()

    def summary(self) -> TransportSummary:
        return TransportSummary(path=self.path, baud_rate=self.baud_rate, is_open=self.is_open)

    async def open(self) -> None:
        """Open the port.

        Raises:
            serial.SerialException: if the port cannot be opened (an OSError subclass).
        """
        if self.is_open:
            return
        self._reader, self._writer = await serial_asyncio.open_serial_connection(
            url=self.path,
            baudrate=self.baud_rate,
            limit=self.read_buffer_size,
        )
        logger.debug("Opened %s at %d baud", self.path, self.baud_rate)

    async def read(self) -> bytes:
        """Read up to one buffer of bytes. Returns ``b""`` at EOF or when closed."""
        if self._reader is None:
            return b""
        return await self._reader.read(self.read_buffer_size)

    async def write(self, data: bytes) -> None:
        if not self.is_open:
            raise ConnectionResetError(f"Serial port {self.path} is not open")
        self._writer.write(data)
        await self._writer.drain()

    async def close(self) -> None:
        """Close the port. Safe to call more than once."""
        writer = self._writer
        self._writer = None
        self._reader = None
        if writer is None:
            return

        with contextlib.suppress(OSError):
            writer.close()
        try:
            await asyncio.wait_for(writer.wait_closed(), timeout=CLOSE_TIMEOUT)
        except asyncio.TimeoutError:
            logger.debug("Timeout waiting for serial close on %s", self.path)
        except OSError as exc:
            logger.debug("Error closing serial on %s: %s", self.path, exc)
        logger.debug("Closed %s", self.path)
