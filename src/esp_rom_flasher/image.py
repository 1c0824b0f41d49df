"""
Flat binary firmware images.

Only raw .bin style images are sent; container formats the ROM cannot
consume are refused before any device I/O.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterator, Optional, Union

from esp_rom_flasher.errors import ConfigurationError, FlasherError, ImageReadError

logger = logging.getLogger(__name__)

BLOCK_SIZE = 4096

UNSUPPORTED_EXTENSIONS = {
    ".elf": "ELF executable",
    ".axf": "ELF executable",
    ".out": "ELF executable",
    ".hex": "Intel HEX",
    ".ihex": "Intel HEX",
    ".srec": "Motorola S-record",
    ".s19": "Motorola S-record",
    ".uf2": "UF2 container",
}


@dataclass
class Block:
    """One chunk of the image on its way to the target."""

    sequence: int
    payload: bytearray

    @property
    def byte_count(self) -> int:
        return len(self.payload)

    @property
    def is_first(self) -> bool:
        return self.sequence == 0


def block_count_for(size: int, block_size: int = BLOCK_SIZE) -> int:
    """Number of blocks needed for size bytes (ceil division)."""
    if block_size <= 0:
        raise ValueError(f"block_size must be positive, got {block_size}")
    return (size + block_size - 1) // block_size


class FirmwareImage:
    """
    A firmware file opened for a single forward pass.

    The size is captured at open time; blocks() can be iterated once.
    """

    def __init__(self, path: Path, size: int):
        self.path = path
        self.size = size
        self._consumed = False

    def block_count(self, block_size: int = BLOCK_SIZE) -> int:
        return block_count_for(self.size, block_size)

    def blocks(self, block_size: int = BLOCK_SIZE) -> Iterator[Block]:
        """
        Yield the image as Blocks numbered from 0.

        Every block is block_size bytes except possibly the last, which holds
        exactly the remaining bytes. No empty trailing block is produced.

        Raises:
            ImageReadError: On a second pass, or if the file can no longer
                supply the size recorded at open time
        """
        if self._consumed:
            raise ImageReadError(f"Image {self.path} already streamed; reopen it to write again")
        self._consumed = True
        return self._iter_blocks(block_size)

    def _iter_blocks(self, block_size: int) -> Iterator[Block]:
        if block_size <= 0:
            raise ValueError(f"block_size must be positive, got {block_size}")

        remaining = self.size
        sequence = 0
        try:
            with self.path.open("rb") as f:
                while remaining > 0:
                    want = min(block_size, remaining)
                    data = f.read(want)
                    if len(data) != want:
                        raise ImageReadError(
                            f"{self.path} ended early: expected {want} bytes for block {sequence}, "
                            f"got {len(data)}"
                        )
                    yield Block(sequence=sequence, payload=bytearray(data))
                    remaining -= want
                    sequence += 1
        except OSError as e:
            if isinstance(e, ImageReadError):
                raise
            raise ImageReadError(f"Cannot read {self.path}: {e}") from e


@dataclass
class ImageOpenResult:
    """Outcome of open_image(); check ok before touching the device."""

    path: Path
    image: Optional[FirmwareImage] = None
    error: Optional[FlasherError] = field(default=None)

    @property
    def ok(self) -> bool:
        return self.image is not None and self.error is None

    def unwrap(self) -> FirmwareImage:
        """Return the image or raise the recorded error."""
        if self.error is not None:
            raise self.error
        assert self.image is not None
        return self.image


def open_image(path: Union[str, Path]) -> ImageOpenResult:
    """
    Open a flat binary image.

    Args:
        path: Image file path

    Returns:
        ImageOpenResult carrying either the image or the error:
        ConfigurationError for unsupported formats, ImageReadError when
        the file is missing or unreadable
    """
    path = Path(path)

    kind = UNSUPPORTED_EXTENSIONS.get(path.suffix.lower())
    if kind is not None:
        return ImageOpenResult(
            path=path,
            error=ConfigurationError(
                f"Unsupported image format: {path.name} looks like {kind}; "
                "only flat binary (.bin) images can be flashed"
            ),
        )

    try:
        if not path.is_file():
            return ImageOpenResult(path=path, error=ImageReadError(f"Image not found: {path}"))
        with path.open("rb") as f:
            f.seek(0, 2)
            size = f.tell()
    except OSError as e:
        return ImageOpenResult(path=path, error=ImageReadError(f"Cannot open {path}: {e}"))

    logger.debug(f"Opened image {path} ({size} bytes)")
    return ImageOpenResult(path=path, image=FirmwareImage(path, size))
