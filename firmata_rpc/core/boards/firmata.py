"""
Firmata session over an open transport.

Provides the handshake (firmware identity, capability table, analog mapping)
and the pin primitives the bridge needs. Only the subset of the protocol used
by the RPC surface is implemented.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Callable, List, Optional, Tuple

from firmata_rpc.core.asyncio_utils import create_logged_task
from firmata_rpc.core.errors import HandshakeRejection
from firmata_rpc.core.logging_utils import get_module_logger
from .types import NO_ANALOG_CHANNEL, FirmwareInfo, PinInfo, PinMode

logger = get_module_logger("Firmata")

# Channel commands (low nibble carries the port/pin/channel)
DIGITAL_MESSAGE = 0x90
ANALOG_MESSAGE = 0xE0
REPORT_ANALOG = 0xC0
REPORT_DIGITAL = 0xD0

# Single commands
SET_PIN_MODE = 0xF4
REPORT_VERSION = 0xF9
START_SYSEX = 0xF0
END_SYSEX = 0xF7

# Sysex commands
ANALOG_MAPPING_QUERY = 0x69
ANALOG_MAPPING_RESPONSE = 0x6A
CAPABILITY_QUERY = 0x6B
CAPABILITY_RESPONSE = 0x6C
EXTENDED_ANALOG = 0x6F
SERVO_CONFIG = 0x70
REPORT_FIRMWARE = 0x79

CAPABILITY_PIN_END = 0x7F

SERVO_MIN_PULSE = 544
SERVO_MAX_PULSE = 2400

# Resend interval for handshake queries. A board that resets when the port
# opens ignores anything sent while its bootloader runs.
QUERY_RESEND_INTERVAL = 1.0

# Data byte counts for channel/single commands we may receive.
_COMMAND_DATA_LENGTH = {
    DIGITAL_MESSAGE: 2,
    ANALOG_MESSAGE: 2,
    REPORT_ANALOG: 1,
    REPORT_DIGITAL: 1,
    SET_PIN_MODE: 2,
    REPORT_VERSION: 2,
}


@dataclass(frozen=True)
class FirmataMessage:
    """One decoded inbound message."""
    command: int
    channel: int = 0
    data: bytes = b""


def _decode_7bit_pairs(data: bytes) -> List[int]:
    return [data[i] | (data[i + 1] << 7) for i in range(0, len(data) - 1, 2)]


def _encode_14bit(value: int) -> Tuple[int, int]:
    return value & 0x7F, (value >> 7) & 0x7F


class FirmataParser:
    """Incremental decoder for the inbound Firmata byte stream."""

    def __init__(self) -> None:
        self._command: Optional[int] = None
        self._channel = 0
        self._buffer = bytearray()
        self._in_sysex = False

    def feed(self, chunk: bytes) -> List[FirmataMessage]:
        messages: List[FirmataMessage] = []
        for byte in chunk:
            if self._in_sysex:
                if byte == END_SYSEX:
                    self._in_sysex = False
                    if self._buffer:
                        messages.append(FirmataMessage(START_SYSEX, self._buffer[0], bytes(self._buffer[1:])))
                    self._buffer.clear()
                else:
                    self._buffer.append(byte)
                continue

            if byte & 0x80:
                self._buffer.clear()
                if byte == START_SYSEX:
                    self._in_sysex = True
                    self._command = None
                    continue
                if byte < 0xF0:
                    self._command, self._channel = byte & 0xF0, byte & 0x0F
                else:
                    self._command, self._channel = byte, 0
                if self._command not in _COMMAND_DATA_LENGTH:
                    # Unknown command: drop its data bytes until the next command.
                    self._command = None
                continue

            if self._command is None:
                continue
            self._buffer.append(byte)
            if len(self._buffer) == _COMMAND_DATA_LENGTH[self._command]:
                messages.append(FirmataMessage(self._command, self._channel, bytes(self._buffer)))
                self._buffer.clear()
        return messages


def parse_capabilities(data: bytes) -> List[PinInfo]:
    pins: List[PinInfo] = []
    current = PinInfo()
    index = 0
    while index < len(data):
        byte = data[index]
        if byte == CAPABILITY_PIN_END:
            pins.append(current)
            current = PinInfo()
            index += 1
            continue
        if index + 1 >= len(data):
            break
        current.supported_modes.append(byte)
        current.resolutions[byte] = data[index + 1]
        index += 2
    return pins


class FirmataSession:
    """
    Firmata client bound to one open transport.

    Usage:
        session = FirmataSession(transport)
        await session.handshake(timeout=5.0)
        await session.pin_mode(13, PinMode.OUTPUT)
        await session.digital_write(13, 1)
        await session.close()
    """

    def __init__(self, transport, on_lost: Optional[Callable[[], None]] = None):
        self._transport = transport
        self.on_lost = on_lost

        self.firmware: Optional[FirmwareInfo] = None
        self.protocol_version: Optional[Tuple[int, int]] = None
        self.pins: List[PinInfo] = []
        self.analog_pins: List[int] = []

        self._parser = FirmataParser()
        self._reader_task: Optional[asyncio.Task] = None
        self._firmware_ready = asyncio.Event()
        self._capabilities_ready = asyncio.Event()
        self._mapping_ready = asyncio.Event()
        self._lost = False
        self._closing = False

    @property
    def is_lost(self) -> bool:
        return self._lost

    # ------------------------------------------------------------------
    # Handshake

    async def handshake(self, timeout: float) -> None:
        """Query firmware, capabilities and analog mapping.

        Raises:
            HandshakeRejection: on timeout, EOF or transport failure.
        """
        path = self._transport.path
        if self._reader_task is None:
            self._reader_task = create_logged_task(
                self._read_loop(), logger=logger, context=f"firmata-reader:{path}"
            )
        try:
            await asyncio.wait_for(self._negotiate(), timeout=timeout)
        except asyncio.TimeoutError as exc:
            raise HandshakeRejection(
                f"No Firmata handshake on {path} within {timeout:.1f}s", port_path=path
            ) from exc
        except OSError as exc:
            raise HandshakeRejection(f"Handshake I/O error on {path}: {exc}", port_path=path) from exc

    async def _negotiate(self) -> None:
        await self._query_until(self._firmware_ready, bytes([START_SYSEX, REPORT_FIRMWARE, END_SYSEX]))
        await self._query_until(self._capabilities_ready, bytes([START_SYSEX, CAPABILITY_QUERY, END_SYSEX]))
        await self._query_until(self._mapping_ready, bytes([START_SYSEX, ANALOG_MAPPING_QUERY, END_SYSEX]))

    async def _query_until(self, ready: asyncio.Event, query: bytes) -> None:
        while not ready.is_set():
            if self._lost:
                raise HandshakeRejection(
                    f"Transport closed during handshake on {self._transport.path}",
                    port_path=self._transport.path,
                )
            await self._transport.write(query)
            try:
                await asyncio.wait_for(ready.wait(), timeout=QUERY_RESEND_INTERVAL)
            except asyncio.TimeoutError:
                continue
        if self._lost:
            raise HandshakeRejection(
                f"Transport closed during handshake on {self._transport.path}",
                port_path=self._transport.path,
            )

    # ------------------------------------------------------------------
    # Inbound stream

    async def _read_loop(self) -> None:
        try:
            while True:
                chunk = await self._transport.read()
                if not chunk:
                    break
                for message in self._parser.feed(chunk):
                    self._dispatch(message)
        except OSError as exc:
            logger.warning("Serial read failed on %s: %s", self._transport.path, exc)
        self._handle_lost()

    def _handle_lost(self) -> None:
        self._lost = True
        # Wake handshake waiters so they observe the loss.
        for event in (self._firmware_ready, self._capabilities_ready, self._mapping_ready):
            event.set()
        if not self._closing and self.on_lost is not None:
            self.on_lost()

    def _dispatch(self, message: FirmataMessage) -> None:
        if message.command == START_SYSEX:
            self._dispatch_sysex(message.channel, message.data)
        elif message.command == REPORT_VERSION:
            self.protocol_version = (message.data[0], message.data[1])
        elif message.command == ANALOG_MESSAGE:
            value = message.data[0] | (message.data[1] << 7)
            for pin in self.pins:
                if pin.analog_channel == message.channel:
                    pin.value = value
                    break
        elif message.command == DIGITAL_MESSAGE:
            mask = message.data[0] | (message.data[1] << 7)
            base = message.channel * 8
            for offset in range(8):
                index = base + offset
                if index >= len(self.pins):
                    break
                pin = self.pins[index]
                if pin.mode in (PinMode.INPUT, PinMode.PULLUP):
                    pin.value = (mask >> offset) & 0x01

    def _dispatch_sysex(self, command: int, data: bytes) -> None:
        if command == REPORT_FIRMWARE and len(data) >= 2:
            name = "".join(chr(code) for code in _decode_7bit_pairs(data[2:]))
            self.firmware = FirmwareInfo(name=name, major=data[0], minor=data[1])
            self._firmware_ready.set()
        elif command == CAPABILITY_RESPONSE:
            self.pins = parse_capabilities(data)
            self._capabilities_ready.set()
        elif command == ANALOG_MAPPING_RESPONSE:
            self.analog_pins = []
            for index, channel in enumerate(data):
                if index < len(self.pins):
                    self.pins[index].analog_channel = channel
                if channel != NO_ANALOG_CHANNEL:
                    self.analog_pins.append(index)
            self._mapping_ready.set()

    # ------------------------------------------------------------------
    # Primitives

    async def pin_mode(self, pin: int, mode: int) -> None:
        await self._transport.write(bytes([SET_PIN_MODE, pin, mode]))
        self.pins[pin].mode = mode

    async def digital_write(self, pin: int, value: int) -> None:
        self.pins[pin].value = 1 if value else 0
        port = pin // 8
        mask = 0
        for offset in range(8):
            index = port * 8 + offset
            if index < len(self.pins) and self.pins[index].value:
                mask |= 1 << offset
        await self._transport.write(bytes([DIGITAL_MESSAGE | port, *_encode_14bit(mask)]))

    async def pwm_write(self, pin: int, value: int) -> None:
        self.pins[pin].value = value
        if pin > 15:
            payload = []
            remaining = value
            while True:
                payload.append(remaining & 0x7F)
                remaining >>= 7
                if not remaining:
                    break
            await self._transport.write(bytes([START_SYSEX, EXTENDED_ANALOG, pin, *payload, END_SYSEX]))
        else:
            await self._transport.write(bytes([ANALOG_MESSAGE | pin, *_encode_14bit(value)]))

    async def servo_config(self, pin: int, min_pulse: int = SERVO_MIN_PULSE, max_pulse: int = SERVO_MAX_PULSE) -> None:
        await self._transport.write(
            bytes([START_SYSEX, SERVO_CONFIG, pin, *_encode_14bit(min_pulse), *_encode_14bit(max_pulse), END_SYSEX])
        )
        self.pins[pin].mode = PinMode.SERVO

    async def servo_write(self, pin: int, value: int) -> None:
        """Write a servo angle, configuring the pin for servo output on first use."""
        if self.pins[pin].mode != PinMode.SERVO:
            await self.servo_config(pin)
        await self.pwm_write(pin, value)

    async def report_analog(self, channel: int, enable: bool) -> None:
        await self._transport.write(bytes([REPORT_ANALOG | (channel & 0x0F), 1 if enable else 0]))

    async def report_digital(self, port: int, enable: bool) -> None:
        await self._transport.write(bytes([REPORT_DIGITAL | (port & 0x0F), 1 if enable else 0]))

    def pin_count(self) -> int:
        return len(self.pins)

    # ------------------------------------------------------------------
    # Teardown

    async def close(self) -> None:
        """Stop the reader and close the transport without firing ``on_lost``."""
        self._closing = True
        task = self._reader_task
        self._reader_task = None
        if task is not None and not task.done():
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
        await self._transport.close()
