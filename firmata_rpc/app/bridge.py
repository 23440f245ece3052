import argparse
import asyncio
import signal
from dataclasses import replace
from pathlib import Path
from typing import Optional

from firmata_rpc.core.api import RpcGateway, RpcServer
from firmata_rpc.core.boards import BoardProbe, ConnectionRegistry, PortEnumerator, ScanOrchestrator
from firmata_rpc.core.config_manager import BridgeSettings, get_config_manager
from firmata_rpc.core.errors import EnumerationError
from firmata_rpc.core.logging_config import configure_logging
from firmata_rpc.core.logging_utils import get_module_logger
from firmata_rpc.core.paths import BRIDGE_LOG_FILE, CONFIG_PATH, ensure_directories


logger = get_module_logger(__name__)

# Upper bound on waiting for timed-out probes to finish during shutdown.
STRAGGLER_SHUTDOWN_TIMEOUT = 10.0


def parse_args(argv: Optional[list[str]] = None, config_path: Path = CONFIG_PATH) -> argparse.Namespace:
    """Parse command-line arguments with config file defaults."""
    config_manager = get_config_manager()
    config = config_manager.read_config(config_path)
    settings = config_manager.load_settings(config)

    parser = argparse.ArgumentParser(
        description="Firmata RPC bridge - scan, connect and drive Firmata boards over a local WebSocket"
    )
    parser.add_argument("--host", default=settings.host, help=f"Interface to bind (default: {settings.host})")
    parser.add_argument("--port", type=int, default=settings.port, help=f"RPC port (default: {settings.port})")
    parser.add_argument(
        "--scan-timeout",
        type=float,
        default=settings.scan_timeout,
        help="Per-port scan timeout in seconds (default: %(default)s)",
    )
    parser.add_argument(
        "--log-level",
        choices=['debug', 'info', 'warning', 'error', 'critical'],
        default=config_manager.get_str(config, 'log_level', default='info'),
        help="Logging level (default: %(default)s)",
    )
    parser.add_argument(
        "--log-file",
        type=Path,
        default=None,
        help=f"Write a rotating log file (e.g. {BRIDGE_LOG_FILE})",
    )
    parser.add_argument(
        "--console",
        dest="console_output",
        action="store_true",
        default=config_manager.get_bool(config, 'console_output', default=True),
        help="Log to console",
    )
    parser.add_argument(
        "--no-console",
        dest="console_output",
        action="store_false",
        help="Log to file only",
    )
    parser.add_argument(
        "--scan-on-startup",
        action="store_true",
        default=settings.scan_on_startup,
        help="Scan for boards once the server is up and log what was found",
    )

    args = parser.parse_args(argv)
    args.settings = replace(
        settings,
        host=args.host,
        port=args.port,
        scan_timeout=args.scan_timeout,
        scan_on_startup=args.scan_on_startup,
    )
    return args


class Bridge:
    """Wires the board core to the RPC server and owns their lifecycle."""

    def __init__(self, settings: BridgeSettings):
        self.settings = settings
        self.probe = BoardProbe(
            baud_rate=settings.baud_rate,
            read_buffer_size=settings.read_buffer_size,
            handshake_timeout=settings.handshake_timeout,
        )
        self.registry = ConnectionRegistry(self.probe)
        self.scanner = ScanOrchestrator(
            PortEnumerator(),
            self.probe,
            self.registry,
            timeout=settings.scan_timeout,
        )
        self.gateway = RpcGateway(self.registry, self.scanner)
        self.server = RpcServer(
            self.gateway,
            host=settings.host,
            port=settings.port,
            localhost_only=settings.localhost_only,
        )

    async def start(self) -> None:
        await self.server.start()
        if self.settings.scan_on_startup:
            await self.startup_scan()

    async def startup_scan(self) -> None:
        try:
            boards = await self.scanner.scan()
        except EnumerationError as exc:
            logger.error("Startup scan failed: %s", exc)
            return
        for board in boards:
            logger.debug("Startup scan: %s", board.info().to_dict())

    async def shutdown(self) -> None:
        logger.info("Shutting down bridge...")
        await self.server.stop()
        await self.registry.release_all()
        await self.scanner.wait_for_stragglers(timeout=STRAGGLER_SHUTDOWN_TIMEOUT)
        logger.info("Bridge stopped")


async def main(argv: Optional[list[str]] = None) -> int:
    args = parse_args(argv)
    if args.log_file:
        ensure_directories()
    configure_logging(args.log_level, console=args.console_output, log_file=args.log_file)

    bridge = Bridge(args.settings)
    stop_event = asyncio.Event()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except NotImplementedError:
            pass  # Windows doesn't support add_signal_handler

    try:
        await bridge.start()
    except OSError as exc:
        logger.error("Cannot start RPC server on %s:%d: %s", args.settings.host, args.settings.port, exc)
        await bridge.shutdown()
        return 1

    try:
        await stop_event.wait()
    finally:
        await bridge.shutdown()
    return 0


def run(argv: Optional[list[str]] = None) -> int:
    try:
        return asyncio.run(main(argv))
    except KeyboardInterrupt:
        return 130
