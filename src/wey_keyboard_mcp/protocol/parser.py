"""Reply decoding and validation, plus request decoding.

Reply parsers raise :class:`ProtocolError` when the echo, magic, or status
does not match the command that was sent, and :class:`SizeLimitError` when
a length field falls outside the accepted range. Request parsers are the
inverse of the builders in :mod:`.commands`.
"""

from __future__ import annotations

from dataclasses import dataclass

from ..config import MAX_PAYLOAD_SIZE
from ..errors import NotFound, ProtocolError, SizeLimitError
from ..models.files import FileEntry
from ..models.module import ModuleInfo
from .commands import (
    BOOTLOADER_PREFIX,
    IDENTIFY_QUERY,
    MODULE_MAGIC,
    MODULE_OPCODE,
    READ_MEMORY_OPCODE,
    RESTART_OPCODE,
    STATUS_ERROR_CLASS,
    STATUS_OK,
    UNLOCK_RESPONSE,
    Command,
)
from .framing import (
    FILE_ENTRY,
    FILE_REQUEST,
    FILEOP_REPLY,
    GRAPH_HEADER,
    GRAPH_REQUEST,
    LIST_HEADER,
    LIST_REQUEST,
    MODULE_DESCRIPTOR,
    MODULE_REPLY_SIZE,
    MODULE_REQUEST,
    READ_FILE_TAIL,
    READ_MEMORY_REQUEST,
    RESTART_REQUEST,
    WRITE_REQUEST,
    unpack_name,
)


@dataclass
class ListHeader:
    """Parsed reply header of a List Files (0xA9) request."""

    command: int
    length: int
    count: int


@dataclass
class FileOpReply:
    """Parsed 7-byte reply shared by read, write, and delete."""

    command: int
    index: int
    subindex: int
    status: int

    @property
    def status_bytes(self) -> bytes:
        return self.status.to_bytes(2, "big")


@dataclass
class FileRequest:
    command: int
    index: int
    subindex: int


@dataclass
class WriteRequest:
    index: int
    subindex: int
    name: str
    size: int


@dataclass
class GraphRequest:
    magic: int
    subindex_field: int
    max_size: int


@dataclass
class MemoryRequest:
    base: int
    length: int


def check_size(operation: str, size: int, allow_zero: bool = False) -> int:
    """Reject a length outside ``1..MAX_PAYLOAD_SIZE`` (or ``0..`` if allowed)."""
    lower = 0 if allow_zero else 1
    if not lower <= size <= MAX_PAYLOAD_SIZE:
        raise SizeLimitError(operation, size, MAX_PAYLOAD_SIZE)
    return size


def _require_length(operation: str, data: bytes, expected: int) -> None:
    if len(data) != expected:
        raise ProtocolError(
            operation, "unexpected reply length", expected=expected, actual=len(data)
        )


# ─── BOOTLOADER REPLIES ──────────────────────────────────────────────

def parse_unlock_reply(data: bytes) -> None:
    """Validate the unlock reply: exactly the 5-byte magic echo."""
    if data != UNLOCK_RESPONSE:
        raise ProtocolError("unlock", "invalid response", expected=UNLOCK_RESPONSE, actual=data)


def parse_identify_reply(data: bytes) -> str:
    """Return the keyboard ID text following the echoed 8-byte query."""
    if len(data) < len(IDENTIFY_QUERY) or not data.startswith(IDENTIFY_QUERY):
        raise ProtocolError(
            "identify", "invalid response", expected=IDENTIFY_QUERY, actual=data[:8]
        )
    return data[len(IDENTIFY_QUERY):].split(b"\x00", 1)[0].decode("ascii", errors="replace")


def parse_module_info(slot: int, data: bytes) -> ModuleInfo:
    """Decode a 258-byte module descriptor reply.

    The reply starts with ``A0 71`` (the prefix and the ``q`` opcode)
    followed by the descriptor record starting with ``MK06``.
    """
    _require_length("module_info", data, MODULE_REPLY_SIZE)
    echo = bytes([BOOTLOADER_PREFIX]) + MODULE_OPCODE
    if data[:2] != echo:
        raise ProtocolError("module_info", "bad command echo", expected=echo, actual=data[:2])
    if data[2:6] != MODULE_MAGIC:
        raise ProtocolError(
            "module_info", "bad module magic", expected=MODULE_MAGIC, actual=data[2:6]
        )

    magic, number, name, date, unknown, base, end, checksum = MODULE_DESCRIPTOR.unpack_from(
        data, 2
    )
    return ModuleInfo(
        slot=slot,
        magic=magic.decode("ascii"),
        number=number,
        name=unpack_name(name),
        date=unpack_name(date),
        base=base,
        end=end,
        checksum=checksum,
        unknown=unknown,
    )


# ─── FILE SERVICE REPLIES ────────────────────────────────────────────

def parse_list_header(data: bytes) -> ListHeader:
    _require_length("list_files", data, LIST_HEADER.size)
    command, length, count = LIST_HEADER.unpack(data)
    if command != Command.LIST_FILES:
        raise ProtocolError(
            "list_files", "bad command echo", expected=Command.LIST_FILES, actual=command
        )
    return ListHeader(command=command, length=length, count=count)


def listing_size(header: ListHeader) -> int:
    """Return the number of entry bytes that follow a listing header.

    Must be called before anything is allocated or read for the entries.
    """
    return check_size("list_files", header.count * FILE_ENTRY.size)


def parse_file_entries(data: bytes, count: int) -> list[FileEntry]:
    _require_length("list_files", data, count * FILE_ENTRY.size)
    return [
        FileEntry(index=index, subindex=subindex, name=unpack_name(name))
        for index, subindex, name in FILE_ENTRY.iter_unpack(data)
    ]


def parse_fileop_reply(operation: str, data: bytes, command: Command) -> FileOpReply:
    """Decode a 7-byte file operation reply and check its command echo."""
    _require_length(operation, data, FILEOP_REPLY.size)
    cmd, index, subindex, status = FILEOP_REPLY.unpack(data)
    if cmd != command:
        raise ProtocolError(operation, "bad command echo", expected=int(command), actual=cmd)
    return FileOpReply(command=cmd, index=index, subindex=subindex, status=status)


def check_read_status(reply: FileOpReply) -> None:
    """A read reply whose status high byte is 0xD0 means the file is absent."""
    if reply.status >> 8 == STATUS_ERROR_CLASS:
        raise NotFound("read_file", reply.index, reply.subindex, reply.status)


def check_write_status(reply: FileOpReply) -> None:
    if reply.status != STATUS_OK:
        raise ProtocolError(
            "write_file", "device rejected upload", expected=STATUS_OK, actual=reply.status
        )


def check_delete_status(reply: FileOpReply) -> None:
    if reply.status != STATUS_OK:
        raise NotFound("delete_file", reply.index, reply.subindex, reply.status)


def parse_read_file_tail(name_prefix: bytes, data: bytes) -> tuple[str, int]:
    """Decode the filename and size that follow a successful read reply.

    Args:
        name_prefix: The first two filename bytes, which the device sends in
            the status field of the preceding reply.
        data: The remaining 30 name bytes plus the 4-byte size.

    Returns:
        ``(name, size)``.
    """
    _require_length("read_file", data, READ_FILE_TAIL.size)
    rest, size = READ_FILE_TAIL.unpack(data)
    return unpack_name(name_prefix + rest), size


def parse_graph_status(data: bytes) -> None:
    _require_length("read_graph", data, 1)
    if data[0] != Command.READ_GRAPH:
        raise ProtocolError(
            "read_graph", "device rejected request", expected=int(Command.READ_GRAPH), actual=data[0]
        )


def parse_graph_header(data: bytes) -> int:
    """Return the body size from the 8 bytes following the graph status."""
    _require_length("read_graph", data, GRAPH_HEADER.size)
    (size,) = GRAPH_HEADER.unpack(data)
    return size


# ─── REQUEST DECODING ────────────────────────────────────────────────

def parse_file_request(data: bytes) -> FileRequest:
    """Decode a read or delete request."""
    command, index, subindex = FILE_REQUEST.unpack(data)
    return FileRequest(command=command, index=index, subindex=subindex)


def parse_write_request(data: bytes) -> WriteRequest:
    command, index, subindex, name, size = WRITE_REQUEST.unpack(data)
    if command != Command.WRITE_FILE:
        raise ValueError(f"Not a write request: 0x{command:02X}")
    return WriteRequest(index=index, subindex=subindex, name=unpack_name(name), size=size)


def parse_graph_request(data: bytes) -> GraphRequest:
    command, magic, subindex_field, max_size = GRAPH_REQUEST.unpack(data)
    if command != Command.READ_GRAPH:
        raise ValueError(f"Not a graph request: 0x{command:02X}")
    return GraphRequest(magic=magic, subindex_field=subindex_field, max_size=max_size)


def parse_read_memory_request(data: bytes) -> MemoryRequest:
    prefix, opcode, base, length = READ_MEMORY_REQUEST.unpack(data)
    if prefix != BOOTLOADER_PREFIX or opcode != READ_MEMORY_OPCODE:
        raise ValueError("Not a memory read request")
    return MemoryRequest(base=base, length=length)


def _parse_slot_request(data: bytes, layout, opcode: bytes, what: str) -> int:
    prefix, op, value = layout.unpack(data)
    if prefix != BOOTLOADER_PREFIX or op != opcode:
        raise ValueError(f"Not a {what} request")
    return value


def parse_module_request(data: bytes) -> int:
    """Return the slot index of a module info request."""
    return _parse_slot_request(data, MODULE_REQUEST, MODULE_OPCODE, "module info")


def parse_restart_request(data: bytes) -> int:
    """Return the mode byte of a restart request."""
    return _parse_slot_request(data, RESTART_REQUEST, RESTART_OPCODE, "restart")


def parse_list_request(data: bytes) -> int:
    (command,) = LIST_REQUEST.unpack(data)
    if command != Command.LIST_FILES:
        raise ValueError(f"Not a list request: 0x{command:02X}")
    return command
