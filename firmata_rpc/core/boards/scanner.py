"""
Scan orchestration: probe every candidate port concurrently.

All probes are started before any is awaited, and each is raced against its
own timer. A probe that loses its race keeps running; a reaper task waits for
it. Every finished probe is settled through the registry, which closes the
result unless a concurrent connect adopted it.
"""

import asyncio
from typing import List, Optional

from firmata_rpc.core.asyncio_utils import create_logged_task, drain_tasks
from firmata_rpc.core.errors import HandshakeRejection
from firmata_rpc.core.logging_utils import get_module_logger
from .connection import BoardConnection
from .port_enumerator import PortEnumerator
from .probe import BoardProbe
from .registry import ConnectionRegistry

logger = get_module_logger("ScanOrchestrator")

DEFAULT_SCAN_TIMEOUT = 5.0


class ScanOrchestrator:
    """Runs BoardProbe on every enumerated port, reusing registered boards."""

    def __init__(
        self,
        enumerator: PortEnumerator,
        probe: BoardProbe,
        registry: ConnectionRegistry,
        timeout: float = DEFAULT_SCAN_TIMEOUT,
    ):
        self._enumerator = enumerator
        self._probe = probe
        self._registry = registry
        self.timeout = timeout
        self._stragglers: set[asyncio.Task] = set()

    @property
    def straggler_count(self) -> int:
        """Number of timed-out probes still being reaped."""
        return len(self._stragglers)

    async def scan(self) -> List[BoardConnection]:
        """Return every board found.

        Boards already held by the registry are returned open; freshly probed
        boards are returned with their transport closed again, except those a
        concurrent ``connect()`` adopted.

        Raises:
            EnumerationError: if the port listing fails.
        """
        ports = await self._enumerator.list_ports()

        # Fan out: every probe is started before any race is awaited.
        races = []
        for port in ports:
            live = self._registry.get(port.path)
            if live is not None:
                races.append(self._reuse(live))
                continue
            in_flight = self._registry.pending(port.path)
            if in_flight is not None:
                races.append(self._await_pending(port.path, in_flight))
                continue
            probe_task = asyncio.create_task(self._probe.probe(port.path), name=f"probe:{port.path}")
            self._registry.track_probe(port.path, probe_task)
            races.append(self._race(port.path, probe_task))

        results = await asyncio.gather(*races)
        boards = [board for board in results if board is not None]
        logger.info("Scan finished: %d of %d candidate ports answered", len(boards), len(ports))
        return boards

    async def _reuse(self, connection: BoardConnection) -> BoardConnection:
        logger.debug("Reusing open connection on %s", connection.port_path)
        return connection

    async def _await_pending(self, port_path: str, task: asyncio.Task) -> Optional[BoardConnection]:
        # The registry owns this connect; never close its result here.
        done, _ = await asyncio.wait({task}, timeout=self.timeout)
        if not done or task.cancelled() or task.exception() is not None:
            return None
        return task.result()

    async def _race(self, port_path: str, probe_task: asyncio.Task) -> Optional[BoardConnection]:
        done, _ = await asyncio.wait({probe_task}, timeout=self.timeout)
        if not done:
            logger.debug("Probe on %s timed out after %.1fs", port_path, self.timeout)
            create_logged_task(
                self._reap(port_path, probe_task),
                logger=logger,
                context=f"reap:{port_path}",
                pending=self._stragglers,
            )
            return None

        adopted = await self._registry.settle_probe(port_path, probe_task)
        try:
            connection = probe_task.result()
        except HandshakeRejection as exc:
            logger.debug("No Firmata on %s: %s", port_path, exc)
            return None
        except Exception as exc:
            logger.warning("Probe on %s failed unexpectedly: %s", port_path, exc)
            return None

        firmware = connection.firmware
        logger.info(
            "Found Firmata on %s : %s v.%d.%d",
            port_path,
            firmware.name if firmware else "?",
            firmware.major if firmware else 0,
            firmware.minor if firmware else 0,
        )
        if adopted:
            logger.debug("Probe result on %s handed to a pending connect", port_path)
        return connection

    async def _reap(self, port_path: str, probe_task: asyncio.Task) -> None:
        await asyncio.wait({probe_task})
        if not await self._registry.settle_probe(port_path, probe_task):
            logger.debug("Settled late probe on %s", port_path)

    async def wait_for_stragglers(self, timeout: Optional[float] = None) -> None:
        """Wait for reaper tasks of timed-out probes (used at shutdown)."""
        await drain_tasks(self._stragglers, timeout=timeout)
