"""Fixed wire layouts for keyboard requests and replies.

Every multi-byte integer on the wire is big-endian (network order) and
every structure is packed. The bootloader commands share a 0xA0 prefix
followed by an ASCII opcode; the file commands are a single opcode byte
followed by 16-bit index/subindex fields::

    read memory   +----+---------+--------+--------+
                  | A0 | "pREAD  "|  base  | length |
                  | 1  |    7    |   4    |   4    |
                  +----+---------+--------+--------+

    file op reply +-----+-------+----------+--------+
                  | cmd | index | subindex | status |
                  |  1  |   2   |    2     |   2    |
                  +-----+-------+----------+--------+

Name fields are fixed-width, zero padded, and NUL terminated when shorter
than their slot.
"""

from __future__ import annotations

import struct

# Bootloader (dynbl) requests: A0 <opcode> ...
MODULE_REQUEST = struct.Struct(">Bc3xB")     # A0 'q' 00 00 00 index
RESTART_REQUEST = struct.Struct(">Bc3xB")    # A0 's' 00 00 00 mode
READ_MEMORY_REQUEST = struct.Struct(">B7sII")
MODULE_DESCRIPTOR = struct.Struct(">4sI64s12s2sIII")
MODULE_REPLY_SIZE = 258                      # 2-byte echo + 256-byte record

# File service requests and replies
LIST_REQUEST = struct.Struct(">B3x")
LIST_HEADER = struct.Struct(">B2xII")
FILE_ENTRY = struct.Struct(">HH32s")
FILE_REQUEST = struct.Struct(">BHH")         # read and delete
FILEOP_REPLY = struct.Struct(">BHHH")
READ_FILE_TAIL = struct.Struct(">30sI")      # name bytes 2..31 + size
WRITE_REQUEST = struct.Struct(">BHH32sI")
GRAPH_REQUEST = struct.Struct(">BHHI")
GRAPH_HEADER = struct.Struct(">4xI")         # follows the 1-byte status

NAME_SIZE = 32
NAME_ENCODING = "latin-1"

U16_MAX = 0xFFFF
U32_MAX = 0xFFFFFFFF


def pack_name(name: str | bytes, width: int = NAME_SIZE) -> bytes:
    """Encode a name into a zero-padded slot of ``width`` bytes.

    The name is truncated to ``width - 1`` bytes so the slot always keeps
    a terminating NUL.
    """
    raw = name if isinstance(name, bytes) else name.encode(NAME_ENCODING, errors="replace")
    raw = raw.split(b"\x00", 1)[0][: width - 1]
    return raw.ljust(width, b"\x00")


def unpack_name(raw: bytes) -> str:
    """Decode a NUL-terminated name field."""
    return raw.split(b"\x00", 1)[0].decode(NAME_ENCODING)


def check_u16(label: str, value: int) -> int:
    if not 0 <= value <= U16_MAX:
        raise ValueError(f"{label} must be 0-{U16_MAX}, got {value}")
    return value


def check_u32(label: str, value: int) -> int:
    if not 0 <= value <= U32_MAX:
        raise ValueError(f"{label} must be 0-{U32_MAX:#x}, got {value}")
    return value


def check_u8(label: str, value: int) -> int:
    if not 0 <= value <= 0xFF:
        raise ValueError(f"{label} must be 0-255, got {value}")
    return value
