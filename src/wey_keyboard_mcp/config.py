"""Configuration for the keyboard client and MCP server.

Device identifiers, endpoint addresses, timeouts, and transfer sizes are
fixed by the keyboard firmware. The server defaults at the bottom can be
overridden from the environment:

    WEYKB_SERIAL_PORT   serial device used by ``connect_serial`` when no
                        port is given (default ``/dev/ttyUSB0``)
    WEYKB_BAUDRATE      serial baud rate (default 115200)
    WEYKB_OUTPUT_DIR    directory downloaded files are written to
                        (default: current directory)
    WEYKB_LOG_LEVEL     logging level for ``main()`` (default INFO)
"""

from __future__ import annotations

import os

# USB identification
VENDOR_ID = 0x0744
PRODUCT_ID_APP = 0x003F         # normal keyboard mode
PRODUCT_ID_BOOTLOADER = 0x003E  # dynamic bootloader mode

# USB bulk interface
USB_CONFIGURATION = 1
USB_INTERFACE = 1
EP_OUT = 0x06
EP_IN = 0x85
USB_MAX_PACKET_SIZE = 64
USB_TIMEOUT_MS = 1000
USB_STREAM_TIMEOUT_MS = 10_000   # memory dumps can take a while to start
USB_READ_CHUNK = 4096

# Delay between the mode-switch opcode and reopening the device
MODE_SETTLE_SECONDS = 1.0

# Serial line
SERIAL_BAUDRATE = 115200
SERIAL_TIMEOUT = 1.0             # seconds
SERIAL_IDLE_GAP = 0.1            # inter-byte gap that ends a transfer
SERIAL_WRITE_TIMEOUT = 5.0

# Transfer sizing
FILE_CHUNK_SIZE = 512
MEMORY_CHUNK_SIZE = 4096
MAX_PAYLOAD_SIZE = 1 << 20       # 1 MiB cap on any device-declared length


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw, 0)
    except ValueError as e:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from e


# Server defaults
DEFAULT_SERIAL_PORT = os.environ.get("WEYKB_SERIAL_PORT", "/dev/ttyUSB0")
DEFAULT_BAUDRATE = _env_int("WEYKB_BAUDRATE", SERIAL_BAUDRATE)
OUTPUT_DIR = os.environ.get("WEYKB_OUTPUT_DIR", ".")
LOG_LEVEL = os.environ.get("WEYKB_LOG_LEVEL", "INFO").upper()
