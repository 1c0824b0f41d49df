"""
Chip registry for ESP ROM loader targets.

Provides a single source of truth for:
- Header variants (image header layout and flash parameter codes)
- Chip profiles (detect-register value -> display name)
- Flash strategies (user-facing chip tag -> header variant)

The registry is built once and handed to the flash session; it is never
mutated afterwards.

Usage:
    from esp_rom_flasher.models import build_default_registry

    registry = build_default_registry()

    # Resolve the --chip option before touching the port
    strategy = registry.strategy_for("esp32c3")

    # Identify the chip from the detect register
    profile = registry.identify(0x1B31506F)
"""

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Dict, Iterable, List, Mapping, Tuple

from esp_rom_flasher.errors import ConfigurationError, ProtocolError
from esp_rom_flasher.header import FlashGeometry, patch_header

# Register whose value identifies the chip family
CHIP_DETECT_MAGIC_REG_ADDR = 0x40001000

FLASH_MODES: Mapping[str, int] = MappingProxyType({
    "qio": 0,
    "qout": 1,
    "dio": 2,
    "dout": 3,
})


@dataclass(frozen=True)
class HeaderVariant:
    """Image header layout and flash parameter encoding for one chip family."""
    name: str
    image_chip_id: int
    extended_header: bool = True
    flash_modes: Mapping[str, int] = field(default_factory=lambda: FLASH_MODES)
    flash_frequencies: Mapping[str, int] = field(default_factory=dict)
    flash_sizes: Mapping[str, int] = field(default_factory=dict)

    def describe(self, geometry: FlashGeometry) -> Tuple[str, str, str]:
        """Human-readable (mode, frequency, size), falling back to raw codes."""
        def _name(table: Mapping[str, int], code: int) -> str:
            for key, value in table.items():
                if value == code:
                    return key
            return f"code {code}"

        return (
            _name(self.flash_modes, geometry.spi_mode),
            _name(self.flash_frequencies, geometry.spi_speed),
            _name(self.flash_sizes, geometry.flash_size),
        )


@dataclass(frozen=True)
class ChipProfile:
    """A chip as reported by the detect register."""
    name: str
    magic_values: Tuple[int, ...]
    header_variant: HeaderVariant
    status_bytes: int = 4
    # ROM FLASH_BEGIN takes a trailing "encrypted write" word
    begin_encrypt_word: bool = True


@dataclass(frozen=True)
class FlashStrategy:
    """
    Per-chip flashing behaviour selected by tag.

    The session's control flow is the same for every chip; only the header
    layout differs.
    """
    tag: str
    header_variant: HeaderVariant

    def patch_header(self, block, geometry: FlashGeometry) -> bool:
        return patch_header(block, geometry, self.header_variant)

    def accepts(self, profile: ChipProfile) -> bool:
        return profile.header_variant == self.header_variant


def normalize_chip_tag(value: str) -> str:
    """'ESP32-C3' / 'esp32_c3' / ' esp32c3 ' -> 'esp32c3'"""
    return value.strip().lower().replace("-", "").replace("_", "")


class ChipRegistry:
    """Read-only lookup of flash strategies by tag and chip profiles by detect value."""

    def __init__(
        self,
        strategies: Iterable[FlashStrategy],
        profiles: Iterable[ChipProfile],
    ):
        by_tag: Dict[str, FlashStrategy] = {}
        for strategy in strategies:
            key = normalize_chip_tag(strategy.tag)
            if key in by_tag:
                raise ValueError(f"Duplicate chip tag: {strategy.tag}")
            by_tag[key] = strategy

        by_magic: Dict[int, ChipProfile] = {}
        for profile in profiles:
            for magic in profile.magic_values:
                if magic in by_magic:
                    raise ValueError(f"Duplicate detect value 0x{magic:08X}")
                by_magic[magic] = profile

        self._strategies: Mapping[str, FlashStrategy] = MappingProxyType(by_tag)
        self._profiles: Mapping[int, ChipProfile] = MappingProxyType(by_magic)

    def tags(self) -> List[str]:
        return sorted(self._strategies)

    def profiles(self) -> List[ChipProfile]:
        """Known chip profiles, each listed once."""
        unique: List[ChipProfile] = []
        for profile in self._profiles.values():
            if profile not in unique:
                unique.append(profile)
        return unique

    def strategy_for(self, tag: str) -> FlashStrategy:
        """
        Resolve a chip tag.

        Raises:
            ConfigurationError: If the tag is unknown
        """
        strategy = self._strategies.get(normalize_chip_tag(tag or ""))
        if strategy is None:
            raise ConfigurationError(
                f"Unknown chip '{tag}'. Supported: {', '.join(self.tags()) or 'none'}"
            )
        return strategy

    def identify(self, magic_value: int) -> ChipProfile:
        """
        Resolve the detect-register value.

        Raises:
            ProtocolError: If the value belongs to no known chip
        """
        profile = self._profiles.get(magic_value)
        if profile is None:
            raise ProtocolError(
                f"Unrecognized chip (detect register 0x{magic_value:08X}); refusing to flash"
            )
        return profile


# ============================================================================
# KNOWN CHIPS
# ============================================================================

ESP32C3_HEADER = HeaderVariant(
    name="ESP32-C3",
    image_chip_id=5,
    flash_frequencies=MappingProxyType({"80m": 0xF, "40m": 0x0, "26m": 0x1, "20m": 0x2}),
    flash_sizes=MappingProxyType({
        "1MB": 0x0,
        "2MB": 0x1,
        "4MB": 0x2,
        "8MB": 0x3,
        "16MB": 0x4,
    }),
)

ESP32_HEADER = HeaderVariant(
    name="ESP32",
    image_chip_id=0,
    flash_frequencies=MappingProxyType({"80m": 0xF, "40m": 0x0, "26m": 0x1, "20m": 0x2}),
    flash_sizes=MappingProxyType({
        "1MB": 0x0,
        "2MB": 0x1,
        "4MB": 0x2,
        "8MB": 0x3,
        "16MB": 0x4,
    }),
)

ESP32S2_HEADER = HeaderVariant(name="ESP32-S2", image_chip_id=2)
ESP32S3_HEADER = HeaderVariant(name="ESP32-S3", image_chip_id=9)
ESP32C2_HEADER = HeaderVariant(name="ESP32-C2", image_chip_id=12)
ESP32C6_HEADER = HeaderVariant(name="ESP32-C6", image_chip_id=13)
ESP8266_HEADER = HeaderVariant(name="ESP8266", image_chip_id=0, extended_header=False)

KNOWN_PROFILES: Tuple[ChipProfile, ...] = (
    ChipProfile("ESP32-C3", (0x6921506F, 0x1B31506F, 0x4881606F, 0x4361606F), ESP32C3_HEADER),
    ChipProfile("ESP32", (0x00F01D83,), ESP32_HEADER, begin_encrypt_word=False),
    ChipProfile("ESP32-S2", (0x000007C6,), ESP32S2_HEADER),
    ChipProfile("ESP32-S3", (0x00000009,), ESP32S3_HEADER),
    ChipProfile("ESP32-C2", (0x6F51306F, 0x7C41A06F), ESP32C2_HEADER),
    ChipProfile("ESP32-C6", (0x2CE0806F,), ESP32C6_HEADER),
    ChipProfile("ESP8266", (0xFFF0C101,), ESP8266_HEADER, status_bytes=2, begin_encrypt_word=False),
)

# Only these tags can be flashed; other profiles exist for diagnostics
SUPPORTED_STRATEGIES: Tuple[FlashStrategy, ...] = (
    FlashStrategy(tag="esp32c3", header_variant=ESP32C3_HEADER),
)

DEFAULT_CHIP = "esp32c3"


def build_default_registry() -> ChipRegistry:
    """Build the registry of supported strategies and known chips."""
    return ChipRegistry(SUPPORTED_STRATEGIES, KNOWN_PROFILES)
