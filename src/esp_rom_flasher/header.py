"""
Firmware image header patching.

The ROM reads the first bytes of the application image to configure its own
flash access at boot, so the values baked in at build time have to match the
flash chip actually fitted. Layout of the common header:

    offset 0   magic (0xE9)
    offset 1   segment count
    offset 2   SPI flash mode
    offset 3   high nibble: flash size code, low nibble: flash frequency code
    offset 4   entry point (u32)

Images for the ESP32 family follow it with a 16-byte extended header holding
the target chip id (u16 LE at offset 12) and, at offset 23, a flag saying a
SHA-256 digest of the whole image is appended.
"""

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional

from esp_rom_flasher.errors import ProtocolError

if TYPE_CHECKING:
    from esp_rom_flasher.image import Block
    from esp_rom_flasher.models.registry import HeaderVariant

logger = logging.getLogger(__name__)

IMAGE_MAGIC = 0xE9
COMMON_HEADER_LEN = 8
EXTENDED_HEADER_LEN = 16
CHIP_ID_OFFSET = 12
HASH_APPENDED_OFFSET = 23


@dataclass(frozen=True)
class GeometryOverride:
    """Operator-supplied flash parameters; None keeps the probed value."""

    spi_mode: Optional[int] = None
    spi_speed: Optional[int] = None
    flash_size: Optional[int] = None

    @property
    def is_empty(self) -> bool:
        return self.spi_mode is None and self.spi_speed is None and self.flash_size is None

    @property
    def is_complete(self) -> bool:
        return None not in (self.spi_mode, self.spi_speed, self.flash_size)


@dataclass(frozen=True)
class FlashGeometry:
    """SPI mode, frequency code and size code the target flash is set up for."""

    spi_mode: int
    spi_speed: int
    flash_size: int

    def __post_init__(self) -> None:
        if not 0 <= self.spi_mode <= 0xFF:
            raise ValueError(f"spi_mode out of range: {self.spi_mode}")
        if not 0 <= self.spi_speed <= 0x0F:
            raise ValueError(f"spi_speed code out of range: {self.spi_speed}")
        if not 0 <= self.flash_size <= 0x0F:
            raise ValueError(f"flash_size code out of range: {self.flash_size}")

    @classmethod
    def from_header(cls, header: bytes) -> "FlashGeometry":
        """Decode geometry from the first 4+ bytes of an image header."""
        if len(header) < 4:
            raise ProtocolError(f"Header too short to hold flash parameters ({len(header)} bytes)")
        return cls(
            spi_mode=header[2],
            spi_speed=header[3] & 0x0F,
            flash_size=header[3] >> 4,
        )

    def merged(self, override: Optional[GeometryOverride]) -> "FlashGeometry":
        if override is None:
            return self
        return FlashGeometry(
            spi_mode=self.spi_mode if override.spi_mode is None else override.spi_mode,
            spi_speed=self.spi_speed if override.spi_speed is None else override.spi_speed,
            flash_size=self.flash_size if override.flash_size is None else override.flash_size,
        )

    @property
    def size_freq_byte(self) -> int:
        return (self.flash_size << 4) | self.spi_speed


def header_length(variant: "HeaderVariant") -> int:
    return COMMON_HEADER_LEN + (EXTENDED_HEADER_LEN if variant.extended_header else 0)


def patch_header(block: "Block", geometry: FlashGeometry, variant: "HeaderVariant") -> bool:
    """
    Rewrite flash parameters (and chip id) in the first block, in place.

    Args:
        block: Block to patch; anything but sequence 0 is left untouched
        geometry: Discovered (or overridden) flash geometry
        variant: Header layout of the selected chip

    Returns:
        True if the block was patched

    Raises:
        ProtocolError: If the first block is too short to hold the header
    """
    if not block.is_first:
        return False

    buf = block.payload
    needed = header_length(variant)
    if len(buf) < needed:
        raise ProtocolError(
            f"First block holds {len(buf)} bytes, too short for a {needed}-byte {variant.name} image header"
        )

    if buf[0] != IMAGE_MAGIC:
        logger.warning(
            f"Image does not start with magic 0x{IMAGE_MAGIC:02X} (got 0x{buf[0]:02X}); "
            "patching flash parameters anyway"
        )

    before = bytes(buf[2:4])
    buf[2] = geometry.spi_mode
    buf[3] = geometry.size_freq_byte
    if variant.extended_header:
        buf[CHIP_ID_OFFSET:CHIP_ID_OFFSET + 2] = variant.image_chip_id.to_bytes(2, "little")
        if buf[HASH_APPENDED_OFFSET] == 1 and before != bytes(buf[2:4]):
            logger.warning(
                "Image carries an appended SHA-256 digest; changing flash parameters "
                "invalidates it and secure boot will reject the image"
            )

    logger.debug(f"Header flash params {before.hex()} -> {bytes(buf[2:4]).hex()}")
    return True
