"""
Connection registry: the single authoritative map of port path -> live board.

Per-port lifecycle:
    Unregistered -> Probing -> Connected | Rejected
    Connected -> Unregistered   (disconnect, transport loss, release_all)

Concurrent ``connect()`` calls for one port share a single in-flight probe
task, and a connect that arrives while a scan is probing the port adopts the
scan's probe, so the hardware is opened at most once.
"""

import asyncio
from typing import Dict, List, Optional

from firmata_rpc.core.asyncio_utils import create_logged_task, drain_tasks
from firmata_rpc.core.errors import BoardConnectionError, HandshakeRejection, NotFoundError
from firmata_rpc.core.logging_utils import get_module_logger
from .connection import BoardConnection
from .probe import BoardProbe
from .types import BoardState

logger = get_module_logger("ConnectionRegistry")


class ConnectionRegistry:
    """
    Owns every open board connection.

    Usage:
        registry = ConnectionRegistry(BoardProbe())
        board = await registry.connect("/dev/ttyACM0")
        await registry.require("/dev/ttyACM0").digital_write(13, 1)
        await registry.release_all()
    """

    def __init__(self, probe: BoardProbe):
        self._probe = probe
        self._connections: Dict[str, BoardConnection] = {}
        self._pending: Dict[str, asyncio.Task] = {}
        self._scan_probes: Dict[str, asyncio.Task] = {}
        self._adopted: set[asyncio.Task] = set()
        self._releasing: Dict[str, asyncio.Task] = {}
        self._cleanup_tasks: set[asyncio.Task] = set()

    def __contains__(self, port_path: str) -> bool:
        return port_path in self._connections

    def __len__(self) -> int:
        return len(self._connections)

    @property
    def ports(self) -> List[str]:
        return list(self._connections)

    # ------------------------------------------------------------------
    # Lookup

    def get(self, port_path: str) -> Optional[BoardConnection]:
        """Return the open connection for ``port_path``, or None."""
        connection = self._connections.get(port_path)
        if connection is not None and connection.is_open:
            return connection
        return None

    def require(self, port_path: str) -> BoardConnection:
        connection = self.get(port_path)
        if connection is None:
            raise NotFoundError(f"Board not found on {port_path}", port_path=port_path)
        return connection

    def pending(self, port_path: str) -> Optional[asyncio.Task]:
        """Return the in-flight connect task for ``port_path``, if any."""
        return self._pending.get(port_path)

    def get_state(self, port_path: str) -> Optional[BoardState]:
        """Snapshot of a registered board, or None when nothing is registered."""
        connection = self.get(port_path)
        return connection.state() if connection is not None else None

    # ------------------------------------------------------------------
    # Connect / disconnect

    async def connect(self, port_path: str) -> BoardConnection:
        """Return the open connection for ``port_path``, probing it if needed.

        A scan probe already running on the port is adopted instead of
        opening the port a second time.

        Raises:
            BoardConnectionError: if the port cannot be opened or handshaken.
        """
        existing = self.get(port_path)
        if existing is not None:
            return existing
        self._drop_stale(port_path)

        task = self._pending.get(port_path)
        if task is None:
            scan_probe = self._scan_probes.get(port_path)
            if scan_probe is not None:
                self._adopted.add(scan_probe)
            task = asyncio.create_task(self._open(port_path, scan_probe), name=f"connect:{port_path}")
            self._pending[port_path] = task
            task.add_done_callback(lambda done, path=port_path: self._finish_pending(path, done))
        return await asyncio.shield(task)

    async def _open(self, port_path: str, scan_probe: Optional[asyncio.Task]) -> BoardConnection:
        try:
            if scan_probe is not None:
                connection = await self._adopt(port_path, scan_probe)
            else:
                await self._wait_for_release(port_path)
                connection = await self._probe.probe(port_path)
        except HandshakeRejection as exc:
            logger.error("Connect to %s failed: %s", port_path, exc)
            raise BoardConnectionError(str(exc), port_path=port_path) from exc

        try:
            await connection.enable_reporting()
        except OSError as exc:
            await connection.close()
            logger.error("Failed to initialize reporting on %s: %s", port_path, exc)
            raise BoardConnectionError(
                f"Failed to initialize {port_path}: {exc}", port_path=port_path
            ) from exc
        except asyncio.CancelledError:
            await connection.close()
            raise

        connection.set_lost_handler(self._handle_transport_lost)
        self._connections[port_path] = connection
        firmware = connection.firmware
        logger.info(
            "Connect to %s : %s v.%d.%d",
            port_path,
            firmware.name if firmware else "?",
            firmware.major if firmware else 0,
            firmware.minor if firmware else 0,
        )
        return connection

    async def _adopt(self, port_path: str, scan_probe: asyncio.Task) -> BoardConnection:
        logger.debug("Adopting in-flight scan probe on %s", port_path)
        try:
            return await asyncio.shield(scan_probe)
        except asyncio.CancelledError:
            if scan_probe in self._adopted:
                # Not handed over yet: the scan closes its own result.
                self._adopted.discard(scan_probe)
            elif scan_probe.done() and not scan_probe.cancelled() and scan_probe.exception() is None:
                self._schedule_close(scan_probe.result())
            raise

    async def _wait_for_release(self, port_path: str) -> None:
        releasing = self._releasing.get(port_path)
        if releasing is not None:
            await asyncio.wait({releasing})

    def _finish_pending(self, port_path: str, task: asyncio.Task) -> None:
        if self._pending.get(port_path) is task:
            del self._pending[port_path]
        if not task.cancelled():
            # Retrieved here so a caller that went away never leaves it unobserved.
            task.exception()

    # ------------------------------------------------------------------
    # Scan probes

    def track_probe(self, port_path: str, probe_task: asyncio.Task) -> None:
        """Record a scan probe so a concurrent ``connect()`` can adopt it."""
        self._scan_probes[port_path] = probe_task

    async def settle_probe(self, port_path: str, probe_task: asyncio.Task) -> bool:
        """Hand a finished scan probe back to the registry.

        Returns True when a ``connect()`` adopted the result; the registry
        then owns the connection. Otherwise a successful result is closed
        before this returns, and connects on the port wait for that close.
        """
        if self._scan_probes.get(port_path) is probe_task:
            del self._scan_probes[port_path]
        if probe_task in self._adopted:
            self._adopted.discard(probe_task)
            return True
        if probe_task.cancelled() or probe_task.exception() is not None:
            return False

        releasing = create_logged_task(
            probe_task.result().close(),
            logger=logger,
            context=f"release:{port_path}",
            pending=self._cleanup_tasks,
        )
        self._releasing[port_path] = releasing
        try:
            await asyncio.shield(releasing)
        finally:
            if self._releasing.get(port_path) is releasing:
                del self._releasing[port_path]
        return False

    # ------------------------------------------------------------------
    # Teardown

    def _drop_stale(self, port_path: str) -> None:
        stale = self._connections.pop(port_path, None)
        if stale is not None:
            logger.debug("Dropping closed connection on %s", port_path)
            self._schedule_close(stale)

    async def disconnect(self, port_path: str) -> None:
        """Close and unregister ``port_path``. A no-op for unknown ports."""
        connection = self._connections.pop(port_path, None)
        if connection is None:
            return
        connection.set_lost_handler(None)
        await connection.close()
        logger.info("Close board on %s", port_path)

    async def release_all(self) -> None:
        """Cancel in-flight connects and disconnect every port. Used at shutdown."""
        pending = list(self._pending.values())
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

        for port_path in list(self._connections):
            await self.disconnect(port_path)
        await drain_tasks(self._cleanup_tasks)

    # ------------------------------------------------------------------
    # Transport loss

    def _handle_transport_lost(self, connection: BoardConnection) -> None:
        if self._connections.get(connection.port_path) is not connection:
            return
        del self._connections[connection.port_path]
        logger.warning("Lost connection to board on %s", connection.port_path)
        self._schedule_close(connection)

    def _schedule_close(self, connection: BoardConnection) -> None:
        create_logged_task(
            connection.close(),
            logger=logger,
            context=f"close:{connection.port_path}",
            pending=self._cleanup_tasks,
        )
