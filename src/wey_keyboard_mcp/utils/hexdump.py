"""Hex dump formatting for memory dumps and wire logging."""

from __future__ import annotations

from collections.abc import Iterator

BYTES_PER_LINE = 16


def _line(offset: int, chunk: bytes) -> str:
    groups = []
    for start in range(0, BYTES_PER_LINE, 4):
        cells = [
            f"{chunk[i]:02X}" if i < len(chunk) else "  "
            for i in range(start, start + 4)
        ]
        groups.append(" ".join(cells))
    text = "".join(chr(b) if 0x20 <= b < 0x7F else "." for b in chunk)
    return f"{offset:04x}:  {'  '.join(groups)}  {text}"


def iter_hexdump(data: bytes, base: int = 0) -> Iterator[str]:
    """Yield one formatted line per 16 bytes of ``data``."""
    for offset in range(0, len(data), BYTES_PER_LINE):
        yield _line(base + offset, data[offset : offset + BYTES_PER_LINE])


def hexdump(data: bytes, base: int = 0) -> str:
    """Format ``data`` as offset, four groups of four hex bytes, and text.

    Example::

        0000:  A0 70 52 45  41 44 20 20  00 00 00 00  00 00 01 00  .pREAD  ........
    """
    return "\n".join(iter_hexdump(data, base))
