"""Protocol layer: wire layouts, request builders, and reply parsing."""

from .commands import Command
from .framing import pack_name, unpack_name
