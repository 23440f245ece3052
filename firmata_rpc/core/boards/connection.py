"""A live (or just-probed) board bound to one serial port."""

from __future__ import annotations

from typing import Any, Callable, List, Optional

from firmata_rpc.core.errors import BoardConnectionError, InvalidParamsError
from firmata_rpc.core.logging_utils import get_module_logger
from .types import BoardInfo, BoardState, FirmwareInfo, PinInfo, PinMode

logger = get_module_logger("BoardConnection")


class BoardConnection:
    """Transport + handshaken Firmata session for one port path."""

    def __init__(self, port_path: str, transport: Any, session: Any):
        self.port_path = port_path
        self.transport = transport
        self.session = session

    def __repr__(self) -> str:
        return f"BoardConnection({self.port_path!r}, open={self.is_open})"

    @property
    def is_open(self) -> bool:
        return self.transport.is_open and not self.session.is_lost

    @property
    def firmware(self) -> Optional[FirmwareInfo]:
        return self.session.firmware

    @property
    def pins(self) -> List[PinInfo]:
        return self.session.pins

    @property
    def analog_pins(self) -> List[int]:
        return self.session.analog_pins

    def set_lost_handler(self, handler: Optional[Callable[["BoardConnection"], None]]) -> None:
        self.session.on_lost = (lambda: handler(self)) if handler else None

    # ------------------------------------------------------------------
    # Projections

    def info(self) -> BoardInfo:
        return BoardInfo(
            firmware=self.firmware,
            pins=[_copy_pin(pin) for pin in self.pins],
            analog_pins=list(self.analog_pins),
            transport=self.transport.summary(),
        )

    def state(self) -> BoardState:
        return BoardState(
            pins=[_copy_pin(pin) for pin in self.pins],
            analog_pins=list(self.analog_pins),
            transport=self.transport.summary(),
        )

    # ------------------------------------------------------------------
    # Pin operations

    def _check_pin(self, pin: int) -> None:
        if pin >= self.session.pin_count():
            raise InvalidParamsError(
                f"Pin {pin} out of range on {self.port_path} ({self.session.pin_count()} pins)",
                port_path=self.port_path,
            )

    async def _write(self, label: str, operation) -> None:
        try:
            await operation
        except OSError as exc:
            logger.error("%s failed on %s: %s", label, self.port_path, exc)
            raise BoardConnectionError(f"{label} failed on {self.port_path}: {exc}", port_path=self.port_path) from exc

    async def pin_mode(self, pin: int, mode: int) -> None:
        self._check_pin(pin)
        await self._write("pinMode", self.session.pin_mode(pin, mode))
        logger.debug("pinMode(%d, %s) on %s", pin, _mode_name(mode), self.port_path)

    async def digital_write(self, pin: int, value: int) -> None:
        self._check_pin(pin)
        await self._write("digitalWrite", self.session.digital_write(pin, value))
        logger.debug("digitalWrite(%d, %d) on %s", pin, value, self.port_path)

    async def pwm_write(self, pin: int, value: int) -> None:
        self._check_pin(pin)
        await self._write("pwmWrite", self.session.pwm_write(pin, value))
        logger.debug("pwmWrite(%d, %d) on %s", pin, value, self.port_path)

    async def servo_write(self, pin: int, value: int) -> None:
        self._check_pin(pin)
        await self._write("servoWrite", self.session.servo_write(pin, value))
        logger.debug("servoWrite(%d, %d) on %s", pin, value, self.port_path)

    async def enable_reporting(self) -> None:
        """Turn on change reporting: analog for analog pins, digital for the rest."""
        digital_ports = set()
        for index, pin in enumerate(self.pins):
            if index in self.analog_pins:
                await self.session.report_analog(pin.analog_channel, True)
            else:
                digital_ports.add(index // 8)
        for port in sorted(digital_ports):
            await self.session.report_digital(port, True)

    async def close(self) -> None:
        try:
            await self.session.close()
        except OSError as exc:
            logger.warning("Error closing %s: %s", self.port_path, exc)


def _copy_pin(pin: PinInfo) -> PinInfo:
    return PinInfo(
        supported_modes=list(pin.supported_modes),
        resolutions=dict(pin.resolutions),
        analog_channel=pin.analog_channel,
        mode=pin.mode,
        value=pin.value,
        report=pin.report,
    )


def _mode_name(mode: int) -> str:
    try:
        return PinMode(mode).name
    except ValueError:
        return str(mode)
