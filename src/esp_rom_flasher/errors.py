"""
Exception hierarchy shared by every layer of the flasher.

All fatal conditions derive from FlasherError so the CLI can report them
uniformly. Nothing below the CLI catches these to carry on.
"""


class FlasherError(Exception):
    """Base exception for flasher errors"""
    pass


class ConfigurationError(FlasherError):
    """Bad chip tag, unsupported image format or missing option (before any I/O)"""
    pass


class DeviceConnectionError(FlasherError):
    """Serial endpoint could not be opened"""
    pass


class ProtocolError(FlasherError):
    """Target answered with something we cannot accept"""
    pass


class StepTimeoutError(FlasherError, TimeoutError):
    """No response inside the step's time budget"""
    pass


class ImageReadError(FlasherError, OSError):
    """Firmware image could not be read"""
    pass
