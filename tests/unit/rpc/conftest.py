"""Fixtures for RPC gateway and server tests."""

from __future__ import annotations

import pytest

from firmata_rpc.core.api import RpcGateway, RpcServer


@pytest.fixture
def gateway(registry, scanner) -> RpcGateway:
    return RpcGateway(registry, scanner)


@pytest.fixture
def rpc_server(gateway) -> RpcServer:
    return RpcServer(gateway, port=0)
