"""File service models: listing entries, transfers, and graph resources.

Files are addressed by an (index, subindex) pair. Two indices are not
regular files but graph resources served by a separate command:

    4: keyboard bitmaps, saved as ``BMP<subindex>.BMP``
    6: the color parameter block, saved as ``Colorparm.par``

Layout files named ``LAYERnn.LAY`` always live at index 9.
"""

from __future__ import annotations

import re
from collections.abc import Iterator
from dataclasses import dataclass, field

GRAPH_BITMAP = 4
GRAPH_COLOR_PARAMS = 6
GRAPH_INDICES = (GRAPH_BITMAP, GRAPH_COLOR_PARAMS)

LAYER_INDEX = 9
_LAYER_NAME = re.compile(r"LAYER(\d{1,2})\.LAY")


@dataclass
class FileEntry:
    """One row of a file listing."""

    index: int
    subindex: int
    name: str

    def to_dict(self) -> dict:
        return {"index": self.index, "subindex": self.subindex, "name": self.name}


@dataclass
class GraphTarget:
    """Request parameters for one graph resource."""

    index: int
    subindex: int
    magic: int
    subindex_field: int
    output_name: str


def graph_target(index: int, subindex: int) -> GraphTarget:
    """Resolve the request fields and output name for a graph resource.

    Raises:
        ValueError: If ``index`` is not a graph domain or the subindex does
            not fit the domain's encoding.
    """
    if index == GRAPH_BITMAP:
        slot = subindex + 0x70
        if not 0 <= slot <= 0xFF:
            raise ValueError(f"Bitmap subindex must be 0-{0xFF - 0x70}, got {subindex}")
        return GraphTarget(
            index=index,
            subindex=subindex,
            magic=0xA054,
            subindex_field=slot << 8,
            output_name=f"BMP{subindex}.BMP",
        )
    if index == GRAPH_COLOR_PARAMS:
        return GraphTarget(
            index=index,
            subindex=subindex,
            magic=0x0101,
            subindex_field=subindex,
            output_name="Colorparm.par",
        )
    raise ValueError(f"Index {index} is not a graph resource (valid: {GRAPH_INDICES})")


def layer_target(name: str) -> tuple[int, int] | None:
    """Return ``(index, subindex)`` for a ``LAYERnn.LAY`` file name, else None."""
    match = _LAYER_NAME.fullmatch(name)
    if match is None:
        return None
    return LAYER_INDEX, int(match.group(1))


@dataclass
class FileTransfer:
    """A download whose header has been validated and whose body is pending.

    ``chunks`` reads the body from the device lazily; it must be consumed
    before the next request is sent on the same transport.
    """

    index: int
    subindex: int
    name: str
    size: int
    chunks: Iterator[bytes] = field(repr=False)

    def read_all(self) -> bytes:
        return b"".join(self.chunks)
