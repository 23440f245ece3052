"""
Board probe: open a port and attempt a bounded Firmata handshake.
"""

import asyncio
from typing import Any, Callable, Optional

from firmata_rpc.core.errors import HandshakeRejection
from firmata_rpc.core.logging_utils import get_module_logger
from .connection import BoardConnection
from .firmata import FirmataSession
from .transport import DEFAULT_BAUD_RATE, DEFAULT_READ_BUFFER_SIZE, SerialTransport

logger = get_module_logger("BoardProbe")

DEFAULT_HANDSHAKE_TIMEOUT = 5.0

TransportFactory = Callable[..., Any]
SessionFactory = Callable[[Any], Any]


class BoardProbe:
    """
    Opens a transport on one port and handshakes it.

    ``probe()`` returns an open :class:`BoardConnection` or raises
    :class:`HandshakeRejection`. On rejection the transport is always closed
    before the exception leaves this method, including when the probe task
    itself is cancelled.
    """

    def __init__(
        self,
        baud_rate: int = DEFAULT_BAUD_RATE,
        read_buffer_size: int = DEFAULT_READ_BUFFER_SIZE,
        handshake_timeout: float = DEFAULT_HANDSHAKE_TIMEOUT,
        transport_factory: Optional[TransportFactory] = None,
        session_factory: Optional[SessionFactory] = None,
    ):
        self.baud_rate = baud_rate
        self.read_buffer_size = read_buffer_size
        self.handshake_timeout = handshake_timeout
        self._transport_factory = transport_factory or SerialTransport
        self._session_factory = session_factory or FirmataSession

    async def probe(self, port_path: str) -> BoardConnection:
        transport = self._transport_factory(
            port_path,
            baud_rate=self.baud_rate,
            read_buffer_size=self.read_buffer_size,
        )
        try:
            await transport.open()
        except (OSError, ValueError) as exc:
            logger.debug("Cannot open %s: %s", port_path, exc)
            await transport.close()
            raise HandshakeRejection(f"Cannot open {port_path}: {exc}", port_path=port_path) from exc

        session = self._session_factory(transport)
        try:
            await session.handshake(self.handshake_timeout)
        except HandshakeRejection as exc:
            logger.debug("Handshake rejected on %s: %s", port_path, exc)
            await session.close()
            raise
        except asyncio.CancelledError:
            await session.close()
            raise

        return BoardConnection(port_path, transport, session)
