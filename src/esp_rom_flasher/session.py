"""
Flash session orchestration.

A session drives one target through the ROM loader in strict order:

    HANDSHAKE -> IDENTIFY -> PROBE -> PROGRAM -> FINALIZE

1. HANDSHAKE: SYNC; proves the port is right and the chip is in loader mode
2. IDENTIFY:  read the chip detect register and resolve it in the registry
3. PROBE:     attach SPI flash, set default parameters, read back the header
              already in flash to learn SPI mode / frequency / size codes
4. PROGRAM:   FLASH_BEGIN (erases, slow), then FLASH_DATA per block in order;
              block 0 gets the probed geometry written into its header
5. FINALIZE:  FLASH_END with reboot into the new firmware

Nothing is erased before PROGRAM, so a failure in steps 1-3 leaves the
target untouched. A failure during PROGRAM leaves the erased region
partially written; the only recovery is a full re-run.
"""

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, Optional, Union

from esp_rom_flasher.core.results import OperationResult
from esp_rom_flasher.errors import ConfigurationError, FlasherError, ProtocolError
from esp_rom_flasher.header import FlashGeometry, GeometryOverride, IMAGE_MAGIC, header_length
from esp_rom_flasher.image import BLOCK_SIZE, Block, FirmwareImage, open_image
from esp_rom_flasher.models.registry import (
    CHIP_DETECT_MAGIC_REG_ADDR,
    DEFAULT_CHIP,
    ChipProfile,
    ChipRegistry,
    FlashStrategy,
    build_default_registry,
)
from esp_rom_flasher.protocol import commands
from esp_rom_flasher.protocol.transport import DEFAULT_BAUDRATE, LoaderTransport

logger = logging.getLogger(__name__)

# Bytes of existing flash read back during PROBE
PROBE_READ_LEN = 16

# The ROM answers SYNC several times; read this many frames looking for it
SYNC_RESPONSES = 50

ERASE_SECONDS_PER_MIB = 30.0
MIB = 1024 * 1024


@dataclass(frozen=True)
class StepTimeouts:
    """Per-step response budgets in seconds."""
    sync: float = 0.05
    register: float = 3.0
    attach: float = 3.0
    set_params: float = 3.0
    flash_read: float = 2.0
    begin_min: float = 15.0
    data: float = 1.5
    end: float = 3.0

    def begin(self, size: int) -> float:
        """FLASH_BEGIN erases the whole region first; scale with its size."""
        return max(self.begin_min, ERASE_SECONDS_PER_MIB * size / MIB)


@dataclass
class SessionConfig:
    """Everything the CLI hands to a session."""
    port: str
    image_path: Union[str, Path]
    baudrate: int = DEFAULT_BAUDRATE
    chip: str = DEFAULT_CHIP
    flash_offset: int = 0
    geometry_override: Optional[GeometryOverride] = None
    block_size: int = BLOCK_SIZE
    timeouts: StepTimeouts = field(default_factory=StepTimeouts)


class SessionState(Enum):
    IDLE = 0
    HANDSHAKE = 1
    IDENTIFY = 2
    PROBE = 3
    PROGRAM = 4
    FINALIZE = 5
    DONE = 6
    FAILED = -1


class FlashSession:
    """
    One flashing run against one serial endpoint.

    The transport is owned by the session: it is opened when run() reaches
    the device and closed before run() returns or raises.

    Example:
        session = FlashSession(SessionConfig(port="/dev/ttyUSB0", image_path="app.bin"))
        result = session.run()
    """

    def __init__(
        self,
        config: SessionConfig,
        registry: Optional[ChipRegistry] = None,
        transport: Optional[LoaderTransport] = None,
    ):
        self.config = config
        self.registry = registry or build_default_registry()
        self._transport = transport
        self.state = SessionState.IDLE

        self.strategy: Optional[FlashStrategy] = None
        self.image: Optional[FirmwareImage] = None
        self.profile: Optional[ChipProfile] = None
        self.geometry: Optional[FlashGeometry] = None
        self.block_count = 0

    # ------------------------------------------------------------------
    # State machine
    # ------------------------------------------------------------------

    def _enter(self, state: SessionState) -> None:
        if state.value != self.state.value + 1:
            raise ProtocolError(f"Illegal session transition {self.state.name} -> {state.name}")
        logger.debug(f"Session state {self.state.name} -> {state.name}")
        self.state = state

    def _exchange(self, request: commands.Request, timeout: float, max_responses: int = 1):
        return self._transport.exchange(request, timeout=timeout, max_responses=max_responses)

    def _validate(self) -> None:
        """Resolve chip tag and image; no device I/O happens here."""
        cfg = self.config
        if not cfg.port:
            raise ConfigurationError("No serial port given (use --port)")
        if cfg.block_size <= 0:
            raise ConfigurationError(f"Block size must be positive, got {cfg.block_size}")
        if cfg.flash_offset < 0:
            raise ConfigurationError(f"Flash offset must not be negative, got {cfg.flash_offset}")

        self.strategy = self.registry.strategy_for(cfg.chip)

        opened = open_image(cfg.image_path)
        if not opened.ok:
            raise opened.error
        self.image = opened.image

        needed = header_length(self.strategy.header_variant)
        if 0 < self.image.size < needed:
            raise ConfigurationError(
                f"Image {self.image.path} is {self.image.size} bytes, shorter than the "
                f"{needed}-byte {self.strategy.header_variant.name} image header"
            )
        if self.image.size and cfg.block_size < needed:
            raise ConfigurationError(
                f"Block size {cfg.block_size} cannot hold the {needed}-byte image header"
            )

    def run(self, progress_cb: Optional[Callable[[int, int], None]] = None) -> OperationResult:
        """
        Flash the configured image.

        Args:
            progress_cb: Optional callback(bytes_written, total_bytes)

        Returns:
            OperationResult describing the completed flash

        Raises:
            ConfigurationError: Bad chip tag / image format (before any I/O)
            ImageReadError: Image missing or unreadable
            DeviceConnectionError: Port cannot be opened
            ProtocolError: Unexpected or failed response, unknown chip
            StepTimeoutError: A step exceeded its time budget
        """
        if self.state is not SessionState.IDLE:
            raise ProtocolError("Flash session already used; create a new one")

        self._validate()
        if self._transport is None:
            self._transport = LoaderTransport(self.config.port, self.config.baudrate)

        started = time.monotonic()
        try:
            self._transport.open()
            self._handshake()
            self._identify()
            self._probe()
            self._program(progress_cb)
            self._finalize()
        except FlasherError as e:
            logger.debug(f"Session failed in {self.state.name}: {e}")
            self.state = SessionState.FAILED
            raise
        finally:
            self._transport.close()

        self.state = SessionState.DONE
        return self._result(time.monotonic() - started)

    def _handshake(self) -> None:
        self._enter(SessionState.HANDSHAKE)
        logger.info(f"Connecting to {self.config.port} at {self.config.baudrate} baud...")
        self._exchange(commands.sync(), self.config.timeouts.sync, SYNC_RESPONSES)
        logger.debug("Loader synchronized")

    def _identify(self) -> None:
        self._enter(SessionState.IDENTIFY)
        response = self._exchange(
            commands.read_reg(CHIP_DETECT_MAGIC_REG_ADDR),
            self.config.timeouts.register,
            SYNC_RESPONSES,
        )
        self.profile = self.registry.identify(response.value)
        logger.info(f"ESP chip detected, (id, chip name) = (0x{response.value:08X}, {self.profile.name})")

        if not self.strategy.accepts(self.profile):
            raise ProtocolError(
                f"Connected chip is {self.profile.name} but --chip {self.strategy.tag} was selected"
            )
        self._transport.status_bytes = self.profile.status_bytes

    def _probe(self) -> None:
        self._enter(SessionState.PROBE)
        timeouts = self.config.timeouts
        override = self.config.geometry_override

        self._exchange(commands.spi_attach(), timeouts.attach)
        self._exchange(commands.spi_set_params(), timeouts.set_params)
        response = self._exchange(commands.read_flash_slow(0, PROBE_READ_LEN), timeouts.flash_read)

        header = response.data
        if len(header) < 4:
            raise ProtocolError(f"Flash read returned {len(header)} bytes, expected {PROBE_READ_LEN}")

        if header[0] != IMAGE_MAGIC:
            if override is None or not override.is_complete:
                raise ProtocolError(
                    f"Flash at 0x0 holds no image header (magic 0x{header[0]:02X}); "
                    "pass --flash-param MODE,FREQ,SIZE to set flash parameters explicitly"
                )
            logger.warning("No image header in flash; using --flash-param values only")
            self.geometry = FlashGeometry(override.spi_mode, override.spi_speed, override.flash_size)
        else:
            self.geometry = FlashGeometry.from_header(header).merged(override)

        mode, freq, size = self.strategy.header_variant.describe(self.geometry)
        logger.info(f"Using flash mode: {mode}, flash speed: {freq}, flash chip size: {size}")

    def _program(self, progress_cb: Optional[Callable[[int, int], None]]) -> None:
        self._enter(SessionState.PROGRAM)
        cfg = self.config
        total = self.image.size
        block_size = cfg.block_size
        self.block_count = self.image.block_count(block_size)

        logger.info(f"Reading file: {self.image.path}, file size: {total}")
        logger.info(f"Erasing {total} bytes in flash at offset 0x{cfg.flash_offset:08X}")
        self._exchange(
            commands.flash_begin(
                total,
                self.block_count,
                block_size,
                cfg.flash_offset,
                encrypt_word=self.profile.begin_encrypt_word,
            ),
            cfg.timeouts.begin(total),
        )

        expected = 0
        written = 0
        for block in self.image.blocks(block_size):
            self._send_block(block, expected)
            expected += 1
            written += block.byte_count
            if progress_cb:
                progress_cb(written, total)

        if expected != self.block_count or written != total:
            raise ProtocolError(
                f"Sent {expected} blocks / {written} bytes, announced {self.block_count} / {total}"
            )

    def _send_block(self, block: Block, expected_sequence: int) -> None:
        if block.sequence != expected_sequence:
            raise ProtocolError(
                f"Block sequence {block.sequence} out of order (expected {expected_sequence})"
            )
        if block.is_first:
            self.strategy.patch_header(block, self.geometry)

        self._exchange(
            commands.flash_data(block.byte_count, block.sequence, self.config.block_size, block.payload),
            self.config.timeouts.data,
        )
        logger.debug(f"Block {block.sequence + 1}/{self.block_count} written ({block.byte_count} bytes)")

    def _finalize(self) -> None:
        self._enter(SessionState.FINALIZE)
        self._exchange(commands.flash_end(reboot=True), self.config.timeouts.end)
        logger.info("Flash complete, rebooting target")

    def _result(self, elapsed: float) -> OperationResult:
        cfg = self.config
        result = OperationResult.success(
            "flash",
            chip=self.profile.name,
            offset=cfg.flash_offset,
            bytes_len=self.image.size,
            blocks=self.block_count,
            block_size=cfg.block_size,
            flash_params=self.strategy.header_variant.describe(self.geometry),
            elapsed=elapsed,
        )
        if cfg.geometry_override is not None and not cfg.geometry_override.is_empty:
            result.add_warning("Flash parameters overridden from the command line")
        if self.image.size == 0:
            result.add_warning("Image is empty; nothing was written")
        return result


def flash_image(
    port: str,
    image_path: Union[str, Path],
    *,
    baudrate: int = DEFAULT_BAUDRATE,
    chip: str = DEFAULT_CHIP,
    flash_offset: int = 0,
    geometry_override: Optional[GeometryOverride] = None,
    registry: Optional[ChipRegistry] = None,
    progress_cb: Optional[Callable[[int, int], None]] = None,
) -> OperationResult:
    """Top-level flash helper used by the CLI."""
    config = SessionConfig(
        port=port,
        image_path=image_path,
        baudrate=baudrate,
        chip=chip,
        flash_offset=flash_offset,
        geometry_override=geometry_override,
    )
    return FlashSession(config, registry=registry).run(progress_cb=progress_cb)
