"""
ESP ROM loader request/response packets.

Request packet (little-endian):
    [ 0x00 | op | data_len (u16) | checksum (u32) | data... ]
Response packet:
    [ 0x01 | op | data_len (u16) | value (u32) | data... | status bytes ]

The status bytes trail the data: 4 bytes on the ESP32 family ROMs, 2 on the
ESP8266. A non-zero first status byte means the ROM rejected the request and
the second byte carries the reason.
"""

import struct
from dataclasses import dataclass
from typing import Optional

from esp_rom_flasher.errors import ProtocolError

# Opcodes
FLASH_BEGIN = 0x02
FLASH_DATA = 0x03
FLASH_END = 0x04
SYNC = 0x08
READ_REG = 0x0A
SPI_SET_PARAMS = 0x0B
SPI_ATTACH = 0x0D
READ_FLASH_SLOW = 0x0E

CHECKSUM_MAGIC = 0xEF
SYNC_PAYLOAD = b"\x07\x07\x12\x20" + 32 * b"\x55"

DEFAULT_FLASH_SIZE = 4 * 1024 * 1024
FLASH_BLOCK_SIZE = 64 * 1024
FLASH_SECTOR_SIZE = 4 * 1024
FLASH_PAGE_SIZE = 256
FLASH_STATUS_MASK = 0xFFFF

_HEADER = struct.Struct("<BBHI")

ROM_ERRORS = {
    0x05: "received message is invalid",
    0x06: "failed to act on received message",
    0x07: "invalid CRC in message",
    0x08: "flash write error",
    0x09: "flash read error",
    0x0A: "flash read length error",
    0x0B: "deflate error",
}


def checksum(data: bytes, state: int = CHECKSUM_MAGIC) -> int:
    """XOR checksum the ROM expects over FLASH_DATA payloads."""
    for b in data:
        state ^= b
    return state


@dataclass(frozen=True)
class Request:
    """One loader request."""

    op: int
    data: bytes = b""
    checksum: int = 0
    description: str = ""

    def to_bytes(self) -> bytes:
        return _HEADER.pack(0x00, self.op, len(self.data), self.checksum) + self.data


@dataclass(frozen=True)
class Response:
    """One parsed loader response."""

    op: int
    value: int
    data: bytes
    status: bytes

    @property
    def ok(self) -> bool:
        return not self.status or self.status[0] == 0

    @property
    def error_code(self) -> Optional[int]:
        if self.ok or len(self.status) < 2:
            return None
        return self.status[1]

    def describe_error(self) -> str:
        code = self.error_code
        if code is None:
            return f"status {self.status.hex()}"
        return f"error 0x{code:02X} ({ROM_ERRORS.get(code, 'unknown error')})"

    @classmethod
    def parse(cls, packet: bytes, status_bytes: int = 4) -> "Response":
        """
        Parse a decoded SLIP packet.

        Raises:
            ProtocolError: If the packet is not a response or is truncated
        """
        if len(packet) < _HEADER.size:
            raise ProtocolError(f"Response too short ({len(packet)} bytes): {packet.hex()}")
        direction, op, length, value = _HEADER.unpack_from(packet)
        if direction != 0x01:
            raise ProtocolError(f"Not a response packet (direction 0x{direction:02X})")
        body = packet[_HEADER.size:]
        if len(body) < length:
            raise ProtocolError(
                f"Response for op 0x{op:02X} truncated: declared {length} bytes, got {len(body)}"
            )
        body = body[:length]
        # Short bodies (READ_REG on some ROMs) carry only status
        split = max(len(body) - status_bytes, 0)
        return cls(op=op, value=value, data=body[:split], status=body[split:])


def sync() -> Request:
    return Request(SYNC, SYNC_PAYLOAD, description="synchronize")


def read_reg(addr: int) -> Request:
    return Request(READ_REG, struct.pack("<I", addr), description=f"read register 0x{addr:08X}")


def spi_attach(hspi_arg: int = 0) -> Request:
    """Attach the SPI flash; ROM loaders take an extra 'is legacy' word."""
    return Request(
        SPI_ATTACH,
        struct.pack("<I", hspi_arg) + struct.pack("BBBB", 0, 0, 0, 0),
        description="attach SPI flash",
    )


def spi_set_params(total_size: int = DEFAULT_FLASH_SIZE) -> Request:
    """Tell the ROM the flash chip parameters (mirrors its 'flashchip' struct)."""
    data = struct.pack(
        "<IIIIII",
        0,
        total_size,
        FLASH_BLOCK_SIZE,
        FLASH_SECTOR_SIZE,
        FLASH_PAGE_SIZE,
        FLASH_STATUS_MASK,
    )
    return Request(SPI_SET_PARAMS, data, description="set SPI flash parameters")


def read_flash_slow(offset: int, length: int) -> Request:
    return Request(
        READ_FLASH_SLOW,
        struct.pack("<II", offset, length),
        description=f"read {length} bytes of flash at 0x{offset:08X}",
    )


def flash_begin(
    total_size: int,
    block_count: int,
    block_size: int,
    offset: int,
    encrypt_word: bool = False,
) -> Request:
    """
    Start a flash download; the ROM erases total_size bytes before answering.

    ROMs with flash encryption support read a fifth word (0 = plain write)
    and need encrypt_word set.
    """
    if block_size <= 0:
        raise ValueError(f"block_size must be positive, got {block_size}")
    data = struct.pack("<IIII", total_size, block_count, block_size, offset)
    if encrypt_word:
        data += struct.pack("<I", 0)
    return Request(
        FLASH_BEGIN,
        data,
        description=f"begin flash of {total_size} bytes at 0x{offset:08X}",
    )


def flash_data(byte_count: int, sequence: int, block_size: int, payload: bytes) -> Request:
    """
    Write one block.

    Only the first byte_count bytes of payload go on the wire; the ROM
    programs exactly that many bytes.
    """
    if not 0 < byte_count <= block_size:
        raise ValueError(f"byte_count {byte_count} outside 1..{block_size}")
    if byte_count > len(payload):
        raise ValueError(f"byte_count {byte_count} exceeds payload of {len(payload)} bytes")
    if sequence < 0:
        raise ValueError(f"sequence must be >= 0, got {sequence}")
    data = bytes(payload[:byte_count])
    return Request(
        FLASH_DATA,
        struct.pack("<IIII", byte_count, sequence, 0, 0) + data,
        checksum(data),
        description=f"write block {sequence}",
    )


def flash_end(reboot: bool = True) -> Request:
    """Leave flash mode; the ROM encodes 'stay in loader' as 1."""
    return Request(
        FLASH_END,
        struct.pack("<I", int(not reboot)),
        description="end flash and reboot" if reboot else "end flash",
    )
