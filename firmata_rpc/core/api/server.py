"""
RPC Server - aiohttp WebSocket endpoint for the board gateway.

Clients connect to ``ws://<host>:<port>/`` and exchange JSON envelopes:

    -> {"id": 1, "method": "connect", "params": {"portPath": "/dev/ttyACM0"}}
    <- {"id": 1, "result": {...}}      or      {"id": 1, "error": {"code": ..., "message": ...}}

Each request runs as its own task, so a slow ``scan`` does not hold up other
calls on the same socket.
"""

import asyncio
import weakref
from typing import Optional

from aiohttp import WSCloseCode, WSMsgType, web

from firmata_rpc.core.asyncio_utils import create_logged_task
from firmata_rpc.core.logging_utils import get_module_logger

from .gateway import RpcGateway
from .middleware import localhost_only_middleware


logger = get_module_logger("RpcServer")

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 2020


class RpcServer:
    """WebSocket server exposing :class:`RpcGateway` on a fixed TCP port."""

    def __init__(
        self,
        gateway: RpcGateway,
        host: str = DEFAULT_HOST,
        port: int = DEFAULT_PORT,
        localhost_only: bool = True,
    ):
        self.gateway = gateway
        self.host = host
        self.port = port
        self.localhost_only = localhost_only

        self._runner: Optional[web.AppRunner] = None
        self._site: Optional[web.TCPSite] = None
        self._sockets: "weakref.WeakSet[web.WebSocketResponse]" = weakref.WeakSet()
        self._running = False

    def create_app(self) -> web.Application:
        middlewares = [localhost_only_middleware] if self.localhost_only else []
        app = web.Application(middlewares=middlewares)
        app["gateway"] = self.gateway
        app.router.add_get("/", self._websocket_handler)
        app.on_shutdown.append(self._close_sockets)
        return app

    async def start(self) -> None:
        """Start listening (non-blocking)."""
        if self._running:
            logger.warning("RPC server already running")
            return

        self._runner = web.AppRunner(self.create_app())
        await self._runner.setup()
        self._site = web.TCPSite(self._runner, self.host, self.port)
        await self._site.start()

        self._running = True
        logger.info("Firmata RPC server started on %s", self.url)

    async def stop(self) -> None:
        if not self._running:
            return

        logger.info("Stopping RPC server...")
        if self._runner:
            await self._runner.cleanup()
        self._runner = None
        self._site = None
        self._running = False
        logger.info("RPC server stopped")

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def url(self) -> str:
        return f"ws://{self.host}:{self.port}/"

    # ------------------------------------------------------------------
    # WebSocket handling

    async def _websocket_handler(self, request: web.Request) -> web.WebSocketResponse:
        ws = web.WebSocketResponse()
        await ws.prepare(request)
        self._sockets.add(ws)
        logger.debug("Client connected: %s", request.remote)

        send_lock = asyncio.Lock()
        in_flight: set[asyncio.Task] = set()
        try:
            async for msg in ws:
                if msg.type == WSMsgType.TEXT:
                    create_logged_task(
                        self._serve_request(ws, send_lock, msg.data),
                        logger=logger,
                        context="rpc-request",
                        pending=in_flight,
                    )
                elif msg.type == WSMsgType.ERROR:
                    logger.warning("WebSocket error from %s: %s", request.remote, ws.exception())
        finally:
            # Calls already started finish; their replies are dropped if the socket is gone.
            if in_flight:
                await asyncio.gather(*list(in_flight), return_exceptions=True)
            logger.debug("Client disconnected: %s", request.remote)
        return ws

    async def _serve_request(self, ws: web.WebSocketResponse, send_lock: asyncio.Lock, text: str) -> None:
        reply = await self.gateway.handle_text(text)
        if ws.closed:
            logger.debug("Dropping reply %r: socket closed", reply.id)
            return
        async with send_lock:
            try:
                await ws.send_str(reply.to_json())
            except ConnectionResetError as exc:
                logger.debug("Failed to send reply %r: %s", reply.id, exc)

    async def _close_sockets(self, app: web.Application) -> None:
        for ws in list(self._sockets):
            await ws.close(code=WSCloseCode.GOING_AWAY, message=b"Server shutdown")
