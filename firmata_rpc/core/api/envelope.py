"""JSON request/reply envelopes carried over the RPC WebSocket."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from firmata_rpc.core.errors import FirmataRpcError, InvalidParamsError, ParseError


@dataclass(frozen=True)
class RpcRequest:
    method: str
    params: Dict[str, Any] = field(default_factory=dict)
    id: Any = None


@dataclass(frozen=True)
class RpcReply:
    """Either ``result`` or ``error`` is set, never both."""
    id: Any = None
    result: Any = None
    error: Optional[Dict[str, str]] = None

    @classmethod
    def success(cls, request_id: Any, result: Any) -> "RpcReply":
        return cls(id=request_id, result=result)

    @classmethod
    def failure(cls, request_id: Any, error: FirmataRpcError) -> "RpcReply":
        return cls(id=request_id, error=error.to_dict())

    @property
    def is_error(self) -> bool:
        return self.error is not None

    def to_dict(self) -> Dict[str, Any]:
        if self.error is not None:
            return {"id": self.id, "error": self.error}
        return {"id": self.id, "result": self.result}

    def to_json(self) -> str:
        return json.dumps(self.to_dict())


def parse_request(text: str) -> RpcRequest:
    """Decode one request envelope.

    Raises:
        ParseError: if ``text`` is not a JSON object.
        InvalidParamsError: if ``method`` or ``params`` has the wrong shape.
    """
    try:
        payload = json.loads(text)
    except (TypeError, ValueError) as exc:
        raise ParseError(f"Invalid JSON: {exc}") from exc
    if not isinstance(payload, dict):
        raise ParseError("Request must be a JSON object")

    method = payload.get("method")
    if not isinstance(method, str) or not method:
        raise InvalidParamsError("Request is missing 'method'")

    params = payload.get("params")
    if params is None:
        params = {}
    if not isinstance(params, dict):
        raise InvalidParamsError("'params' must be an object")

    return RpcRequest(method=method, params=params, id=payload.get("id"))


def request_id_of(text: str) -> Any:
    """Best-effort id extraction so even malformed requests get a correlated reply."""
    try:
        payload = json.loads(text)
    except (TypeError, ValueError):
        return None
    return payload.get("id") if isinstance(payload, dict) else None
