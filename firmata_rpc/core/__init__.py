"""Board management core and its RPC surface."""

from .config_manager import BridgeSettings, ConfigManager, get_config_manager
from .errors import (
    BoardConnectionError,
    EnumerationError,
    FirmataRpcError,
    HandshakeRejection,
    InvalidParamsError,
    NotFoundError,
)

__all__ = [
    "BoardConnectionError",
    "BridgeSettings",
    "ConfigManager",
    "EnumerationError",
    "FirmataRpcError",
    "HandshakeRejection",
    "InvalidParamsError",
    "NotFoundError",
    "get_config_manager",
]
