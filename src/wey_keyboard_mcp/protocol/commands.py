"""Command identifiers and request builders.

Two command families exist. The dynamic bootloader understands
``0xA0``-prefixed ASCII opcodes plus two ``0x7F``-prefixed service
sequences (unlock and enter-bootloader). The file service in the
application firmware uses the single-byte :class:`Command` opcodes, which
the device echoes in the first byte of its reply.
"""

from __future__ import annotations

from collections.abc import Iterable
from enum import IntEnum

from ..config import MAX_PAYLOAD_SIZE
from .framing import (
    FILE_REQUEST,
    GRAPH_REQUEST,
    LIST_REQUEST,
    MODULE_REQUEST,
    NAME_SIZE,
    READ_MEMORY_REQUEST,
    RESTART_REQUEST,
    WRITE_REQUEST,
    check_u8,
    check_u16,
    check_u32,
    pack_name,
)


class Command(IntEnum):
    """File service opcodes."""

    WRITE_GRAPH = 0xA2
    READ_GRAPH = 0xA3
    WRITE_FILE = 0xA5
    READ_FILE = 0xA6
    DELETE_FILE = 0xA8
    LIST_FILES = 0xA9


BOOTLOADER_PREFIX = 0xA0
MODULE_OPCODE = b"q"
RESTART_OPCODE = b"s"
READ_MEMORY_OPCODE = b"pREAD  "

ENTER_BOOTLOADER = b"\x7f\xeego-DynBl"
UNLOCK_CHALLENGE = b"\x7f\xe0gMk_eLeCtRoNiC-DeSiGn_gMbH-WeRnB\x00"
UNLOCK_RESPONSE = b"\x7f\xe0GMK"
IDENTIFY_QUERY = b"\xa0pID    "
MODULE_MAGIC = b"MK06"
MODULE_SLOTS = 64

STATUS_OK = 0xD000
STATUS_ERROR_CLASS = 0xD0    # high byte of a failed read-file status

GRAPH_MAX_SIZE = 1_000_000


def build_enter_bootloader() -> bytes:
    """Build the sequence that switches the keyboard into bootloader mode."""
    return ENTER_BOOTLOADER


def build_restart(mode: int) -> bytes:
    """Build a restart request into the given firmware mode."""
    return RESTART_REQUEST.pack(BOOTLOADER_PREFIX, RESTART_OPCODE, check_u8("mode", mode))


def build_unlock() -> bytes:
    """Build the unlock challenge (sent with its trailing NUL)."""
    return UNLOCK_CHALLENGE


def build_identify() -> bytes:
    """Build the keyboard ID query (sent with its trailing NUL)."""
    return IDENTIFY_QUERY + b"\x00"


def build_read_memory(base: int, length: int) -> bytes:
    """Build a memory read request.

    Args:
        base: Start address.
        length: Number of bytes to read.
    """
    return READ_MEMORY_REQUEST.pack(
        BOOTLOADER_PREFIX,
        READ_MEMORY_OPCODE,
        check_u32("base", base),
        check_u32("length", length),
    )


def build_module_info(index: int) -> bytes:
    """Build a module descriptor query for slot 0-63."""
    if not 0 <= index < MODULE_SLOTS:
        raise ValueError(f"Module index must be 0-{MODULE_SLOTS - 1}, got {index}")
    return MODULE_REQUEST.pack(BOOTLOADER_PREFIX, MODULE_OPCODE, index)


def build_list_files() -> bytes:
    return LIST_REQUEST.pack(Command.LIST_FILES)


def build_read_file(index: int, subindex: int) -> bytes:
    return FILE_REQUEST.pack(
        Command.READ_FILE, check_u16("index", index), check_u16("subindex", subindex)
    )


def build_delete_file(index: int, subindex: int) -> bytes:
    return FILE_REQUEST.pack(
        Command.DELETE_FILE, check_u16("index", index), check_u16("subindex", subindex)
    )


def build_write_file(index: int, subindex: int, name: str, size: int) -> bytes:
    """Build the header sent ahead of a file upload.

    Args:
        index: Target file index.
        subindex: Target file subindex.
        name: File name stored on the device (at most 31 bytes).
        size: Number of body bytes that will follow.
    """
    return WRITE_REQUEST.pack(
        Command.WRITE_FILE,
        check_u16("index", index),
        check_u16("subindex", subindex),
        pack_name(name, NAME_SIZE),
        check_u32("size", size),
    )


def build_read_graph(magic: int, subindex_field: int) -> bytes:
    """Build a graph resource read request.

    ``magic`` and ``subindex_field`` are the request-specific values chosen
    by the graph domain (see ``models.files.graph_target``).
    """
    return GRAPH_REQUEST.pack(
        Command.READ_GRAPH,
        check_u16("magic", magic),
        check_u16("subindex", subindex_field),
        GRAPH_MAX_SIZE,
    )


def build_raw(data: Iterable[int]) -> bytes:
    """Build a raw passthrough request from a list of byte values."""
    values = [check_u8("byte", b) for b in data]
    if not values:
        raise ValueError("Raw request must contain at least one byte")
    if len(values) > MAX_PAYLOAD_SIZE:
        raise ValueError(f"Raw request larger than {MAX_PAYLOAD_SIZE} bytes")
    return bytes(values)
