"""
ESP ROM Loader Transport Layer

Handles low-level serial communication with a target sitting in its ROM
serial loader.

This module provides:
- Serial port initialization and configuration
- SLIP-framed request/response exchange
- Per-call timeout handling
- Mapping of serial failures onto the flasher error hierarchy
"""

import time
import logging
from typing import Optional

import serial

from esp_rom_flasher.errors import (
    DeviceConnectionError,
    ProtocolError,
    StepTimeoutError,
)
from esp_rom_flasher.protocol import slip
from esp_rom_flasher.protocol.commands import SYNC, Request, Response

logger = logging.getLogger(__name__)

DEFAULT_BAUDRATE = 115200

# Longest single blocking read; keeps the deadline check responsive
_POLL_INTERVAL = 0.05


def _preview(data: bytes, limit: int = 32) -> str:
    return data[:limit].hex().upper() + ("..." if len(data) > limit else "")


class LoaderTransport:
    """
    Serial transport for the ESP ROM loader.

    Handles:
    - Serial port management
    - SLIP framing of requests and responses
    - Matching responses to the request that was sent
    - Timeout and error handling

    Example:
        transport = LoaderTransport(port="/dev/ttyUSB0")
        transport.open()
        transport.exchange(commands.sync(), timeout=0.05, max_responses=50)
        resp = transport.exchange(commands.read_reg(0x40001000), timeout=3.0)
        transport.close()
    """

    def __init__(
        self,
        port: str,
        baudrate: int = DEFAULT_BAUDRATE,
        status_bytes: int = 4,
    ):
        """
        Initialize transport layer.

        Args:
            port: Serial port (e.g., "/dev/ttyUSB0", "COM3")
            baudrate: Serial baud rate (default 115200)
            status_bytes: Length of the status trailer in ROM responses
        """
        self.port = port
        self.baudrate = baudrate
        self.status_bytes = status_bytes
        self.ser: Optional[serial.Serial] = None
        self._decoder = slip.SlipDecoder()

    @property
    def is_open(self) -> bool:
        return bool(self.ser and self.ser.is_open)

    def open(self) -> None:
        """
        Open serial port.

        Raises:
            DeviceConnectionError: If port cannot be opened
        """
        try:
            self.ser = serial.Serial(
                port=self.port,
                baudrate=self.baudrate,
                bytesize=8,
                parity='N',
                stopbits=1,
                timeout=_POLL_INTERVAL,
                write_timeout=1.0,
            )
        except (serial.SerialException, ValueError) as e:
            raise DeviceConnectionError(f"Cannot open port {self.port}: {e}") from e

        self.ser.reset_input_buffer()
        self.ser.reset_output_buffer()
        self._decoder.reset()
        logger.debug(f"Opened {self.port} at {self.baudrate} bps")

    def close(self) -> None:
        """Close serial port."""
        if self.ser and self.ser.is_open:
            self.ser.close()
            logger.debug(f"Closed {self.port}")

    def __enter__(self) -> "LoaderTransport":
        self.open()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def _write(self, data: bytes) -> None:
        if not self.is_open:
            raise DeviceConnectionError("Serial port not open")
        try:
            written = self.ser.write(data)
        except serial.SerialException as e:
            raise DeviceConnectionError(f"Write error on {self.port}: {e}") from e
        if written is not None and written != len(data):
            raise ProtocolError(f"Incomplete write: sent {written}/{len(data)} bytes")

    def _read_available(self, timeout: float) -> bytes:
        if not self.is_open:
            raise DeviceConnectionError("Serial port not open")
        try:
            self.ser.timeout = max(min(timeout, _POLL_INTERVAL), 0.0)
            return self.ser.read(self.ser.in_waiting or 1)
        except serial.SerialException as e:
            raise DeviceConnectionError(f"Read error on {self.port}: {e}") from e

    def _drain_junk(self) -> None:
        """Discard anything still queued (the ROM answers SYNC several times)."""
        try:
            self.ser.timeout = 0.005
            junk = self.ser.read(self.ser.in_waiting or 1)
            self.ser.reset_input_buffer()
        except serial.SerialException as e:
            raise DeviceConnectionError(f"Read error on {self.port}: {e}") from e
        self._decoder.reset()
        if junk:
            logger.debug(f"Drained {len(junk)} bytes of junk from buffer")

    def exchange(
        self,
        request: Request,
        timeout: float,
        max_responses: int = 1,
    ) -> Response:
        """
        Send one request and wait for its response.

        Frames answering a different opcode are skipped, up to
        max_responses - 1 of them. The request itself is never re-sent.

        Args:
            request: Request to send
            timeout: Seconds to wait for the matching response
            max_responses: Response frames to read before giving up

        Returns:
            The matching Response

        Raises:
            StepTimeoutError: If no matching response arrives in time
            ProtocolError: On a mismatched, malformed or failed response
            DeviceConnectionError: If the port fails
        """
        max_responses = max(max_responses, 1)
        what = request.description or f"op 0x{request.op:02X}"

        packet = request.to_bytes()
        logger.debug(f">>> [{what}] {_preview(packet)}")
        self._write(slip.encode(packet))

        deadline = time.monotonic() + timeout
        seen = 0
        while True:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                state = "mid-frame" if self._decoder.in_packet else "no frame"
                raise StepTimeoutError(
                    f"Timed out after {timeout:.3f}s waiting for response to {what} ({state})"
                )

            chunk = self._read_available(remaining)
            if not chunk:
                continue

            for frame in self._decoder.feed(chunk):
                logger.debug(f"<<< {_preview(frame)}")
                seen += 1
                try:
                    response = Response.parse(frame, self.status_bytes)
                except ProtocolError as e:
                    logger.debug(f"Ignoring frame: {e}")
                    response = None

                if response is not None and response.op == request.op:
                    if not response.ok:
                        raise ProtocolError(f"Failed to {what}: {response.describe_error()}")
                    if request.op == SYNC:
                        self._drain_junk()
                    return response

                if seen >= max_responses:
                    raise ProtocolError(f"Response doesn't match request ({what})")


def open_device(port: str, baudrate: int = DEFAULT_BAUDRATE) -> LoaderTransport:
    """
    Open a loader transport connection.

    Args:
        port: Serial port name
        baudrate: Baud rate (default 115200)

    Returns:
        LoaderTransport instance (already open)
    """
    transport = LoaderTransport(port, baudrate)
    transport.open()
    return transport
