"""Client and MCP server for the WEY keyboard bootloader and file service."""

from .client import KeyboardClient
from .errors import (
    KeyboardError,
    NotFound,
    ProtocolError,
    ShortWriteError,
    SizeLimitError,
    TransportError,
    TransportTimeout,
)

__version__ = "0.1.0"
