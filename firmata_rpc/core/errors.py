"""Error taxonomy for board management.

Every error carries a stable ``code`` so the RPC layer can turn it into a
structured error reply without inspecting message text.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class FirmataRpcError(Exception):
    """Base class for errors that terminate at the RPC boundary."""

    code = "INTERNAL_ERROR"

    def __init__(self, message: str, *, port_path: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.port_path = port_path

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code, "message": self.message}


class EnumerationError(FirmataRpcError):
    """The OS refused to list serial ports."""

    code = "ENUMERATION_FAILED"


class HandshakeRejection(FirmataRpcError):
    """A port did not complete the Firmata handshake (failure or timeout)."""

    code = "HANDSHAKE_REJECTED"


class BoardConnectionError(FirmataRpcError):
    """An explicit connect could not open or handshake the board."""

    code = "CONNECTION_FAILED"


class NotFoundError(FirmataRpcError):
    """No open connection is registered for the requested port."""

    code = "NOT_FOUND"


class InvalidParamsError(FirmataRpcError):
    """A request is missing a required parameter or carries a bad value."""

    code = "INVALID_PARAMS"


class MethodNotFoundError(FirmataRpcError):
    code = "METHOD_NOT_FOUND"


class ParseError(FirmataRpcError):
    code = "PARSE_ERROR"


__all__ = [
    "FirmataRpcError",
    "EnumerationError",
    "HandshakeRejection",
    "BoardConnectionError",
    "NotFoundError",
    "InvalidParamsError",
    "MethodNotFoundError",
    "ParseError",
]
