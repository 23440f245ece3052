"""Unit test fixtures: no serial ports, no sockets beyond localhost test servers."""

from __future__ import annotations

import asyncio
from typing import Any, Coroutine, TypeVar

import pytest

from firmata_rpc.core.boards import ConnectionRegistry, PortEnumerator, ScanOrchestrator

from tests.unit.fakes import FakePortInfo, FakeProbe, ProbeScript


T = TypeVar("T")


def run_async(coro: Coroutine[Any, Any, T]) -> T:
    """Run an async coroutine synchronously for testing."""
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


@pytest.fixture
def fake_probe() -> FakeProbe:
    """Probe that finds an Uno on /dev/ttyACM0 and nothing anywhere else."""
    return FakeProbe(scripts={"/dev/ttyACM0": ProbeScript()})


@pytest.fixture
def registry(fake_probe: FakeProbe) -> ConnectionRegistry:
    return ConnectionRegistry(fake_probe)


@pytest.fixture
def port_list() -> list:
    """Raw OS port list; tests may append to it."""
    return [
        FakePortInfo("/dev/ttyACM0", "Arduino (www.arduino.cc)"),
        FakePortInfo("/dev/ttyS0", None),
    ]


@pytest.fixture
def scanner(fake_probe: FakeProbe, registry: ConnectionRegistry, port_list: list) -> ScanOrchestrator:
    return ScanOrchestrator(
        PortEnumerator(list_ports=lambda: list(port_list)),
        fake_probe,
        registry,
        timeout=0.5,
    )
