"""RPC surface: envelope codec, gateway method table and WebSocket server."""

from .envelope import RpcReply, RpcRequest, parse_request
from .gateway import RpcGateway
from .server import DEFAULT_HOST, DEFAULT_PORT, RpcServer

__all__ = [
    "DEFAULT_HOST",
    "DEFAULT_PORT",
    "RpcGateway",
    "RpcReply",
    "RpcRequest",
    "RpcServer",
    "parse_request",
]
