"""Tests for wire layouts and name field helpers."""

import pytest

from wey_keyboard_mcp.protocol.framing import (
    FILE_ENTRY,
    FILE_REQUEST,
    FILEOP_REPLY,
    GRAPH_HEADER,
    GRAPH_REQUEST,
    LIST_HEADER,
    LIST_REQUEST,
    MODULE_DESCRIPTOR,
    MODULE_REQUEST,
    READ_FILE_TAIL,
    READ_MEMORY_REQUEST,
    WRITE_REQUEST,
    check_u16,
    pack_name,
    unpack_name,
)


def test_struct_sizes():
    """Packed layouts must match the device structures byte for byte."""
    assert MODULE_REQUEST.size == 6
    assert READ_MEMORY_REQUEST.size == 16
    assert MODULE_DESCRIPTOR.size == 98
    assert LIST_REQUEST.size == 4
    assert LIST_HEADER.size == 11
    assert FILE_ENTRY.size == 36
    assert FILE_REQUEST.size == 5
    assert FILEOP_REPLY.size == 7
    assert READ_FILE_TAIL.size == 34
    assert WRITE_REQUEST.size == 41
    assert GRAPH_REQUEST.size == 9
    assert GRAPH_HEADER.size == 8


def test_big_endian_fields():
    """Multi-byte fields are in network byte order."""
    assert FILE_REQUEST.pack(0xA6, 0x0102, 0x0304) == b"\xa6\x01\x02\x03\x04"


def test_pack_name_pads_with_zeros():
    assert pack_name("LAYER01.LAY") == b"LAYER01.LAY" + b"\x00" * 21


def test_pack_name_keeps_terminator():
    """A name filling the slot is cut to leave room for the NUL."""
    packed = pack_name("x" * 40)
    assert len(packed) == 32
    assert packed[:31] == b"x" * 31
    assert packed[31] == 0


def test_unpack_name_stops_at_nul():
    assert unpack_name(b"abc\x00garbage") == "abc"
    assert unpack_name(b"\x00" * 32) == ""


def test_check_u16_bounds():
    assert check_u16("index", 0xFFFF) == 0xFFFF
    with pytest.raises(ValueError):
        check_u16("index", 0x10000)
    with pytest.raises(ValueError):
        check_u16("index", -1)
