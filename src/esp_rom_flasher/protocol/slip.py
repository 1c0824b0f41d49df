"""
SLIP framing used by the ESP ROM serial loader.

Every request and response travels as one SLIP packet:
    0xC0 | payload (0xDB -> DB DD, 0xC0 -> DB DC) | 0xC0
"""

import logging
from typing import Iterator, List

from esp_rom_flasher.errors import ProtocolError

logger = logging.getLogger(__name__)

END = 0xC0
ESC = 0xDB
ESC_END = 0xDC
ESC_ESC = 0xDD


def encode(packet: bytes) -> bytes:
    """
    Wrap a packet in SLIP delimiters, escaping reserved bytes.

    Args:
        packet: Raw packet bytes

    Returns:
        Framed bytes ready to write to the port
    """
    body = packet.replace(b"\xdb", b"\xdb\xdd").replace(b"\xc0", b"\xdb\xdc")
    return b"\xc0" + body + b"\xc0"


class SlipDecoder:
    """
    Incremental SLIP decoder.

    Feed it whatever the port returned; it yields every packet completed so
    far and keeps any partial packet for the next call. Bytes seen outside a
    frame (boot messages, line noise) are dropped.
    """

    def __init__(self) -> None:
        self._packet: "bytearray | None" = None
        self._in_escape = False
        self._dropped = 0

    @property
    def in_packet(self) -> bool:
        """True while a frame has been opened but not closed."""
        return self._packet is not None

    def reset(self) -> None:
        self._packet = None
        self._in_escape = False
        self._dropped = 0

    def feed(self, data: bytes) -> List[bytes]:
        """
        Decode a run of received bytes.

        Returns:
            List of complete packets (possibly empty)

        Raises:
            ProtocolError: On an invalid escape sequence
        """
        return list(self._iter_packets(data))

    def _iter_packets(self, data: bytes) -> Iterator[bytes]:
        for b in data:
            if self._packet is None:
                if b == END:
                    if self._dropped:
                        logger.debug(f"Dropped {self._dropped} bytes outside SLIP frame")
                        self._dropped = 0
                    self._packet = bytearray()
                else:
                    self._dropped += 1
            elif self._in_escape:
                self._in_escape = False
                if b == ESC_END:
                    self._packet.append(END)
                elif b == ESC_ESC:
                    self._packet.append(ESC)
                else:
                    self._packet = None
                    raise ProtocolError(f"Invalid SLIP escape (0xDB, 0x{b:02X})")
            elif b == ESC:
                self._in_escape = True
            elif b == END:
                if not self._packet:
                    # Back-to-back delimiters: treat the second as a new frame start
                    continue
                packet = bytes(self._packet)
                self._packet = None
                yield packet
            else:
                self._packet.append(b)
