"""
RPC gateway: the fixed remote-procedure surface over the board core.

Every handler validates its parameters before touching the registry, and
``dispatch`` turns every failure into an error reply. Nothing raised by a
handler crosses the RPC boundary.
"""

from __future__ import annotations

from typing import Any, Awaitable, Callable, Dict

from firmata_rpc.core.boards import ConnectionRegistry, ScanOrchestrator, resolve_pin_mode
from firmata_rpc.core.errors import FirmataRpcError, InvalidParamsError, MethodNotFoundError
from firmata_rpc.core.logging_utils import get_module_logger
from .envelope import RpcReply, RpcRequest, parse_request, request_id_of

logger = get_module_logger("RpcGateway")

Handler = Callable[[Dict[str, Any]], Awaitable[Any]]


def _require(params: Dict[str, Any], *names: str) -> None:
    missing = [name for name in names if params.get(name) is None]
    if missing:
        raise InvalidParamsError(f"{', '.join(missing)} is null")


def _require_int(params: Dict[str, Any], name: str, minimum: int = 0) -> int:
    value = params[name]
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidParamsError(f"{name} must be an integer, got {value!r}")
    if value < minimum:
        raise InvalidParamsError(f"{name} must be >= {minimum}, got {value}")
    return value


def _require_port_path(params: Dict[str, Any]) -> str:
    _require(params, "portPath")
    port_path = params["portPath"]
    if not isinstance(port_path, str) or not port_path:
        raise InvalidParamsError(f"portPath must be a non-empty string, got {port_path!r}")
    return port_path


class RpcGateway:
    """Maps method names to handlers over a registry and scanner."""

    def __init__(self, registry: ConnectionRegistry, scanner: ScanOrchestrator):
        self.registry = registry
        self.scanner = scanner
        self._methods: Dict[str, Handler] = {
            "scan": self.scan,
            "connect": self.connect,
            "disconnect": self.disconnect,
            "getBoardState": self.get_board_state,
            "digitalWrite": self.digital_write,
            "pwmWrite": self.pwm_write,
            "pinMode": self.pin_mode,
            "servoWrite": self.servo_write,
        }

    @property
    def methods(self) -> list[str]:
        return sorted(self._methods)

    # ------------------------------------------------------------------
    # Dispatch

    async def handle_text(self, text: str) -> RpcReply:
        """Parse and dispatch one raw request."""
        try:
            request = parse_request(text)
        except FirmataRpcError as exc:
            logger.warning("Rejected malformed request: %s", exc)
            return RpcReply.failure(request_id_of(text), exc)
        return await self.dispatch(request)

    async def dispatch(self, request: RpcRequest) -> RpcReply:
        handler = self._methods.get(request.method)
        try:
            if handler is None:
                raise MethodNotFoundError(f"Unknown method: {request.method}")
            result = await handler(request.params)
        except FirmataRpcError as exc:
            logger.debug("%s failed: %s", request.method, exc)
            return RpcReply.failure(request.id, exc)
        except Exception as exc:
            logger.exception("Unexpected error in %s: %s", request.method, exc)
            return RpcReply.failure(request.id, FirmataRpcError(f"Internal error: {exc}"))
        return RpcReply.success(request.id, result)

    # ------------------------------------------------------------------
    # Methods

    async def scan(self, params: Dict[str, Any]) -> Dict[str, Any]:
        boards = await self.scanner.scan()
        return {board.port_path: board.info().to_dict() for board in boards}

    async def connect(self, params: Dict[str, Any]) -> Dict[str, Any]:
        port_path = _require_port_path(params)
        connection = await self.registry.connect(port_path)
        return connection.info().to_dict()

    async def disconnect(self, params: Dict[str, Any]) -> Dict[str, Any]:
        port_path = params.get("portPath")
        if isinstance(port_path, str) and port_path:
            await self.registry.disconnect(port_path)
        return params

    async def get_board_state(self, params: Dict[str, Any]) -> Dict[str, Any]:
        port_path = params.get("portPath")
        if not isinstance(port_path, str):
            return {}
        state = self.registry.get_state(port_path)
        return state.to_dict() if state is not None else {}

    async def digital_write(self, params: Dict[str, Any]) -> Dict[str, Any]:
        port_path = _require_port_path(params)
        _require(params, "pin", "value")
        pin = _require_int(params, "pin")
        value = _require_int(params, "value")
        await self.registry.require(port_path).digital_write(pin, value)
        return params

    async def pwm_write(self, params: Dict[str, Any]) -> Dict[str, Any]:
        port_path = _require_port_path(params)
        _require(params, "pin", "value")
        pin = _require_int(params, "pin")
        value = _require_int(params, "value")
        await self.registry.require(port_path).pwm_write(pin, value)
        return params

    async def pin_mode(self, params: Dict[str, Any]) -> Dict[str, Any]:
        port_path = _require_port_path(params)
        _require(params, "pin", "mode")
        pin = _require_int(params, "pin")
        try:
            mode = resolve_pin_mode(params["mode"])
        except ValueError as exc:
            raise InvalidParamsError(str(exc)) from exc
        await self.registry.require(port_path).pin_mode(pin, mode)
        return params

    async def servo_write(self, params: Dict[str, Any]) -> Dict[str, Any]:
        port_path = _require_port_path(params)
        _require(params, "pin", "value")
        pin = _require_int(params, "pin")
        value = _require_int(params, "value")
        await self.registry.require(port_path).servo_write(pin, value)
        return params
