"""
Core module for the ESP ROM flasher.

This module provides the single source of truth for:
- Offset and flash parameter parsing (parsing.py)
- Result objects (results.py)

The CLI should call into this module rather than implementing its own logic.
"""

from .parsing import parse_offset, parse_flash_params, normalize_chip_tag
from .results import OperationResult

__all__ = [
    # Parsing
    "parse_offset",
    "parse_flash_params",
    "normalize_chip_tag",
    # Results
    "OperationResult",
]
