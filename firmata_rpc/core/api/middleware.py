"""
RPC server middleware.

The RPC channel has no authentication; its trust boundary is the local
machine, enforced here.
"""

from typing import Callable

from aiohttp import web

from firmata_rpc.core.logging_utils import get_module_logger


logger = get_module_logger("RpcMiddleware")

LOCALHOST_IPS = frozenset({"127.0.0.1", "::1", "::ffff:127.0.0.1"})


@web.middleware
async def localhost_only_middleware(request: web.Request, handler: Callable) -> web.StreamResponse:
    """Reject requests from any peer other than the loopback interface."""
    peername = request.transport.get_extra_info("peername") if request.transport else None
    if peername:
        remote_ip = peername[0]
        if remote_ip not in LOCALHOST_IPS:
            logger.warning("Rejected connection from non-localhost IP: %s", remote_ip)
            return web.json_response(
                {
                    "error": {
                        "code": "ACCESS_DENIED",
                        "message": "RPC access is restricted to localhost only",
                    },
                },
                status=403,
            )

    return await handler(request)
