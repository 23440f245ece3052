"""Tests for the WebSocket RPC server."""

import json
from unittest.mock import MagicMock

from aiohttp import web
from aiohttp.test_utils import TestClient, TestServer, make_mocked_request

from firmata_rpc.core.api.middleware import localhost_only_middleware
from firmata_rpc.core.api.server import DEFAULT_PORT, RpcServer
from tests.unit.conftest import run_async
from tests.unit.fakes import ProbeScript


class TestRpcServerWebSocket:

    def test_connect_and_write(self, rpc_server):
        async def do_test():
            async with TestClient(TestServer(rpc_server.create_app())) as client:
                ws = await client.ws_connect("/")
                await ws.send_str(json.dumps(
                    {"id": 1, "method": "connect", "params": {"portPath": "/dev/ttyACM0"}}
                ))
                connected = await ws.receive_json(timeout=2.0)
                await ws.send_str(json.dumps({
                    "id": 2,
                    "method": "digitalWrite",
                    "params": {"portPath": "/dev/ttyACM0", "pin": 13, "value": 1},
                }))
                written = await ws.receive_json(timeout=2.0)
                await ws.close()
                return connected, written

        connected, written = run_async(do_test())
        assert connected["id"] == 1
        assert connected["result"]["transport"]["isOpen"] is True
        assert written == {
            "id": 2,
            "result": {"portPath": "/dev/ttyACM0", "pin": 13, "value": 1},
        }

    def test_malformed_request_gets_error_reply(self, rpc_server):
        async def do_test():
            async with TestClient(TestServer(rpc_server.create_app())) as client:
                ws = await client.ws_connect("/")
                await ws.send_str("not json")
                reply = await ws.receive_json(timeout=2.0)
                await ws.close()
                return reply

        reply = run_async(do_test())
        assert reply["id"] is None
        assert reply["error"]["code"] == "PARSE_ERROR"

    def test_write_without_board_is_not_found(self, rpc_server):
        async def do_test():
            async with TestClient(TestServer(rpc_server.create_app())) as client:
                ws = await client.ws_connect("/")
                await ws.send_str(json.dumps({
                    "id": 5,
                    "method": "pwmWrite",
                    "params": {"portPath": "COM4", "pin": 3, "value": 10},
                }))
                reply = await ws.receive_json(timeout=2.0)
                await ws.close()
                return reply

        reply = run_async(do_test())
        assert reply["error"]["code"] == "NOT_FOUND"
        assert "COM4" in reply["error"]["message"]

    def test_slow_scan_does_not_block_other_calls(self, rpc_server, fake_probe):
        fake_probe.scripts["/dev/ttyACM0"] = ProbeScript(delay=0.3)

        async def do_test():
            async with TestClient(TestServer(rpc_server.create_app())) as client:
                ws = await client.ws_connect("/")
                await ws.send_str(json.dumps({"id": 1, "method": "scan"}))
                await ws.send_str(json.dumps({"id": 2, "method": "getBoardState", "params": {}}))
                first = await ws.receive_json(timeout=2.0)
                second = await ws.receive_json(timeout=2.0)
                await ws.close()
                return first, second

        first, second = run_async(do_test())
        assert first == {"id": 2, "result": {}}
        assert list(second["result"]) == ["/dev/ttyACM0"]


class TestRpcServerLifecycle:

    def test_defaults(self, gateway):
        server = RpcServer(gateway)
        assert server.port == DEFAULT_PORT == 2020
        assert server.url == "ws://127.0.0.1:2020/"
        assert not server.is_running

    def test_start_and_stop(self, rpc_server):
        async def do_test():
            await rpc_server.start()
            running = rpc_server.is_running
            await rpc_server.start()
            await rpc_server.stop()
            return running

        assert run_async(do_test()) is True
        assert not rpc_server.is_running

    def test_stop_when_not_running(self, rpc_server):
        run_async(rpc_server.stop())
        assert not rpc_server.is_running


class TestLocalhostMiddleware:

    @staticmethod
    def _request(peer: str):
        transport = MagicMock()
        transport.get_extra_info.return_value = (peer, 50000)
        return make_mocked_request("GET", "/", transport=transport)

    def test_rejects_remote_peer(self):
        async def handler(request):
            return web.Response(text="ok")

        async def do_test():
            return await localhost_only_middleware(self._request("192.168.1.20"), handler)

        response = run_async(do_test())
        assert response.status == 403
        assert json.loads(response.body)["error"]["code"] == "ACCESS_DENIED"

    def test_allows_loopback(self):
        async def handler(request):
            return web.Response(text="ok")

        async def do_test():
            return await localhost_only_middleware(self._request("127.0.0.1"), handler)

        assert run_async(do_test()).status == 200
