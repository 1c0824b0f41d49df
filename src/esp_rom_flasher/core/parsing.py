"""
Centralized parsing helpers for flash offsets and flash parameters.

The CLI must import these helpers rather than re-implement.
"""

from typing import Optional

from esp_rom_flasher.header import GeometryOverride
from esp_rom_flasher.models.registry import HeaderVariant, normalize_chip_tag

__all__ = ["parse_offset", "parse_flash_params", "normalize_chip_tag"]


def parse_offset(value: Optional[str]) -> int:
    """
    Parse a flash offset. Offsets are hexadecimal.

    This is the single source of truth for offset parsing.

    Accepts:
        - Bare hex: "1000" (= 0x1000)
        - Hex with 0x prefix: "0x1000" or "0X1000"
        - Hex with h suffix: "1000h" or "1000H"
        - None or empty for offset 0

    Returns:
        Parsed integer offset

    Raises:
        ValueError: If value cannot be parsed or is negative.
    """
    if value is None:
        return 0

    value = value.strip()
    if not value:
        return 0

    digits = value
    if digits.lower().startswith("0x"):
        digits = digits[2:]
    elif digits.lower().endswith("h"):
        digits = digits[:-1]

    if not digits or digits.startswith(("-", "+")):
        raise ValueError(f"Invalid offset '{value}'. Use hex: 10000, 0x10000 or 10000h.")
    try:
        return int(digits, 16)
    except ValueError:
        raise ValueError(
            f"Invalid offset '{value}'. Use hex: 10000, 0x10000 or 10000h."
        )


def _parse_param(raw: str, table, label: str, limit: int) -> Optional[int]:
    raw = raw.strip()
    if not raw or raw.lower() == "keep":
        return None

    for name, code in table.items():
        if name.lower() == raw.lower():
            return code

    try:
        code = int(raw, 0)
    except ValueError:
        choices = ", ".join(list(table) + ["keep"])
        raise ValueError(f"Invalid flash {label} '{raw}'. Use one of: {choices}, or a numeric code.")
    if not 0 <= code <= limit:
        raise ValueError(f"Flash {label} code {code} out of range 0..{limit}")
    return code


def parse_flash_params(value: Optional[str], variant: HeaderVariant) -> Optional[GeometryOverride]:
    """
    Parse a --flash-param value of the form "mode,freq,size".

    Each field is a name from the chip's tables (e.g. "dio", "80m", "4MB"),
    a numeric header code, or "keep" to use the value read from the target.
    Trailing fields may be omitted.

    Returns:
        GeometryOverride, or None if value is None/empty

    Raises:
        ValueError: If a field is not recognized or there are too many fields.
    """
    if value is None or not value.strip():
        return None

    parts = value.split(",")
    if len(parts) > 3:
        raise ValueError(
            f"Invalid flash parameters '{value}'. Use MODE,FREQ,SIZE (e.g. dio,80m,4MB)."
        )
    parts += ["keep"] * (3 - len(parts))

    return GeometryOverride(
        spi_mode=_parse_param(parts[0], variant.flash_modes, "mode", 0xFF),
        spi_speed=_parse_param(parts[1], variant.flash_frequencies, "frequency", 0x0F),
        flash_size=_parse_param(parts[2], variant.flash_sizes, "size", 0x0F),
    )
