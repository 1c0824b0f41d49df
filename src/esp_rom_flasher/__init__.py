"""
ESP ROM Flasher - raw firmware flashing through the ESP serial ROM loader

Handshake, chip identification, flash parameter discovery and chunked
programming over a plain serial port.
"""

__version__ = "0.1.0"

from esp_rom_flasher.errors import (
    FlasherError,
    ConfigurationError,
    DeviceConnectionError,
    ProtocolError,
    StepTimeoutError,
    ImageReadError,
)
from esp_rom_flasher.session import FlashSession, SessionConfig, flash_image

__all__ = [
    "FlasherError",
    "ConfigurationError",
    "DeviceConnectionError",
    "ProtocolError",
    "StepTimeoutError",
    "ImageReadError",
    "FlashSession",
    "SessionConfig",
    "flash_image",
    "__version__",
]
