"""Tests for the RPC method table."""

import json

import pytest

from firmata_rpc.core.api.envelope import RpcRequest
from firmata_rpc.core.api.gateway import RpcGateway
from firmata_rpc.core.boards.types import PinMode

from tests.unit.conftest import run_async

PORT = "/dev/ttyACM0"


async def call(gateway: RpcGateway, method: str, **params):
    reply = await gateway.dispatch(RpcRequest(method=method, params=params, id=1))
    payload = reply.to_dict()
    # A reply is a success or a failure, never both or neither.
    assert ("result" in payload) != ("error" in payload)
    return payload


def call_once(gateway: RpcGateway, method: str, **params):
    return run_async(call(gateway, method, **params))


class TestMethodTable:

    def test_exact_surface(self, gateway):
        assert gateway.methods == sorted([
            "scan", "connect", "disconnect", "getBoardState",
            "digitalWrite", "pwmWrite", "pinMode", "servoWrite",
        ])

    def test_unknown_method(self, gateway):
        payload = call_once(gateway, "reboot")
        assert payload["error"]["code"] == "METHOD_NOT_FOUND"

    def test_handle_text_parse_error(self, gateway):
        reply = run_async(gateway.handle_text("{oops"))
        assert reply.error["code"] == "PARSE_ERROR"

    def test_handle_text_keeps_request_id(self, gateway):
        reply = run_async(gateway.handle_text('{"id": "abc", "method": "disconnect", "params": {}}'))
        assert reply.to_dict() == {"id": "abc", "result": {}}


class TestScan:

    def test_scan_maps_port_to_board_info(self, gateway):
        result = call_once(gateway, "scan")["result"]

        assert list(result) == [PORT]
        assert result[PORT]["firmware"]["name"] == "StandardFirmata.ino"
        assert result[PORT]["transport"]["isOpen"] is False
        json.dumps(result)

    def test_scan_enumeration_failure(self, gateway):
        def broken():
            raise OSError("boom")

        gateway.scanner._enumerator._list_ports = broken
        payload = call_once(gateway, "scan")
        assert payload["error"]["code"] == "ENUMERATION_FAILED"


class TestConnect:

    def test_connect_returns_board_info(self, gateway):
        info = call_once(gateway, "connect", portPath=PORT)["result"]

        assert info["peripheralId"] == PORT
        assert info["transport"] == {"path": PORT, "baudRate": 57600, "isOpen": True}

    def test_connect_missing_port_path_fails_fast(self, gateway, fake_probe):
        payload = call_once(gateway, "connect")

        assert payload["error"]["code"] == "INVALID_PARAMS"
        assert "portPath" in payload["error"]["message"]
        assert fake_probe.calls == []

    def test_connect_rejected(self, gateway):
        payload = call_once(gateway, "connect", portPath="/dev/ttyUSB3")
        assert payload["error"]["code"] == "CONNECTION_FAILED"


class TestDisconnectAndState:

    def test_disconnect_echoes_params(self, gateway, registry):
        async def do_test():
            await call(gateway, "connect", portPath=PORT)
            return await call(gateway, "disconnect", portPath=PORT)

        payload = run_async(do_test())
        assert payload["result"] == {"portPath": PORT}
        assert PORT not in registry

    def test_disconnect_unknown_port_succeeds(self, gateway):
        assert call_once(gateway, "disconnect", portPath="COM9")["result"] == {"portPath": "COM9"}

    def test_disconnect_without_port_path_succeeds(self, gateway):
        assert call_once(gateway, "disconnect")["result"] == {}

    def test_board_state_unknown_port_is_empty_object(self, gateway):
        assert call_once(gateway, "getBoardState", portPath=PORT)["result"] == {}

    def test_board_state_connected(self, gateway):
        async def do_test():
            await call(gateway, "connect", portPath=PORT)
            return await call(gateway, "getBoardState", portPath=PORT)

        state = run_async(do_test())["result"]
        assert state["MODES"]["OUTPUT"] == 1
        assert state["transport"]["isOpen"] is True
        assert state["analogPins"] == list(range(14, 20))


class TestPinMethods:

    def test_pin_mode_then_digital_write(self, gateway, registry):
        async def do_test():
            await call(gateway, "connect", portPath=PORT)
            mode = await call(gateway, "pinMode", portPath=PORT, pin=13, mode=int(PinMode.OUTPUT))
            write = await call(gateway, "digitalWrite", portPath=PORT, pin=13, value=1)
            return mode, write

        mode, write = run_async(do_test())
        assert mode["result"] == {"portPath": PORT, "pin": 13, "mode": 1}
        assert write["result"] == {"portPath": PORT, "pin": 13, "value": 1}
        session = registry.get(PORT).session
        assert session.calls[-2:] == [("pin_mode", 13, 1), ("digital_write", 13, 1)]

    def test_pin_mode_by_name(self, gateway, registry):
        async def do_test():
            await call(gateway, "connect", portPath=PORT)
            await call(gateway, "pinMode", portPath=PORT, pin=3, mode="pwm")

        run_async(do_test())
        assert registry.get(PORT).session.calls[-1] == ("pin_mode", 3, PinMode.PWM)

    def test_unknown_mode(self, gateway):
        async def do_test():
            await call(gateway, "connect", portPath=PORT)
            return await call(gateway, "pinMode", portPath=PORT, pin=3, mode="LASER")

        assert run_async(do_test())["error"]["code"] == "INVALID_PARAMS"

    @pytest.mark.parametrize("method,value", [
        ("digitalWrite", 1),
        ("pwmWrite", 128),
        ("servoWrite", 90),
    ])
    def test_write_without_connection_names_port(self, gateway, method, value):
        payload = call_once(gateway, method, portPath=PORT, pin=13, value=value)

        assert payload["error"]["code"] == "NOT_FOUND"
        assert PORT in payload["error"]["message"]

    def test_pin_mode_without_connection(self, gateway):
        payload = call_once(gateway, "pinMode", portPath=PORT, pin=13, mode=1)
        assert payload["error"]["code"] == "NOT_FOUND"

    @pytest.mark.parametrize("params", [
        {"pin": 13, "value": 1},
        {"portPath": PORT, "value": 1},
        {"portPath": PORT, "pin": 13},
        {"portPath": PORT, "pin": "13", "value": 1},
        {"portPath": PORT, "pin": -1, "value": 1},
        {"portPath": PORT, "pin": True, "value": 1},
    ])
    def test_invalid_params_rejected_before_lookup(self, gateway, params):
        payload = call_once(gateway, "digitalWrite", **params)
        assert payload["error"]["code"] == "INVALID_PARAMS"

    def test_pwm_and_servo_reach_board(self, gateway, registry):
        async def do_test():
            await call(gateway, "connect", portPath=PORT)
            await call(gateway, "pwmWrite", portPath=PORT, pin=3, value=200)
            await call(gateway, "servoWrite", portPath=PORT, pin=9, value=45)

        run_async(do_test())
        assert registry.get(PORT).session.calls[-2:] == [
            ("pwm_write", 3, 200),
            ("servo_write", 9, 45),
        ]

    def test_hardware_failure_is_an_error_reply(self, gateway, registry):
        async def do_test():
            await call(gateway, "connect", portPath=PORT)
            registry.get(PORT).session.fail_writes = OSError("write failed")
            return await call(gateway, "digitalWrite", portPath=PORT, pin=13, value=1)

        assert run_async(do_test())["error"]["code"] == "CONNECTION_FAILED"

    def test_unexpected_exception_is_an_internal_error(self, gateway, registry):
        async def do_test():
            await call(gateway, "connect", portPath=PORT)
            registry.get(PORT).session.fail_writes = RuntimeError("bug")
            return await call(gateway, "digitalWrite", portPath=PORT, pin=13, value=1)

        assert run_async(do_test())["error"]["code"] == "INTERNAL_ERROR"
