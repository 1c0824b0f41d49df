"""Loader protocol layer - SLIP framing, ROM commands and serial transport."""

from . import commands
from .commands import Request, Response
from .transport import LoaderTransport, open_device, DEFAULT_BAUDRATE

__all__ = [
    "commands",
    "Request",
    "Response",
    "LoaderTransport",
    "open_device",
    "DEFAULT_BAUDRATE",
]
