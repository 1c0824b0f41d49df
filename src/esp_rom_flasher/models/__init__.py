"""
Chip registry for ROM loader targets.

Provides a unified layer for chip identification and per-chip flashing strategy.
"""

from .registry import (
    ChipRegistry,
    ChipProfile,
    FlashStrategy,
    HeaderVariant,
    CHIP_DETECT_MAGIC_REG_ADDR,
    DEFAULT_CHIP,
    build_default_registry,
    normalize_chip_tag,
)

__all__ = [
    "ChipRegistry",
    "ChipProfile",
    "FlashStrategy",
    "HeaderVariant",
    "CHIP_DETECT_MAGIC_REG_ADDR",
    "DEFAULT_CHIP",
    "build_default_registry",
    "normalize_chip_tag",
]
