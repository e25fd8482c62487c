"""Tests for the request/response engine against a scripted transport."""

import io
import struct

import pytest

from conftest import fileop, module_reply
from wey_keyboard_mcp.errors import (
    NotFound,
    ProtocolError,
    ShortWriteError,
    SizeLimitError,
    TransportTimeout,
)


def _listing(*entries):
    body = b"".join(struct.pack(">HH32s", i, s, n) for i, s, n in entries)
    return struct.pack(">B2xII", 0xA9, len(body), len(entries)) + body


# ─── BOOTLOADER ──────────────────────────────────────────────────────

def test_module_info(make_client):
    client, transport = make_client(transfers=[module_reply(base=0, end=0x1000)])
    info = client.module_info(0)
    assert transport.sent == [b"\xa0q\x00\x00\x00\x00"]
    assert info.base == 0
    assert info.end == 0x1000
    assert info.name == "DynBl"


def test_iter_modules_skips_empty_slots(make_client):
    """Slots with an invalid reply are left out of the listing."""
    transfers = [module_reply(name=b"boot"), b"\xa0q"] + [module_reply(name=b"app")] + [b""] * 61
    client, transport = make_client(transfers=transfers)
    modules = list(client.iter_modules())
    assert [(m.slot, m.name) for m in modules] == [(0, "boot"), (2, "app")]
    assert len(transport.sent) == 64


def test_unlock(make_client):
    client, transport = make_client(transfers=[b"\x7f\xe0GMK"])
    client.unlock()
    assert transport.sent[0].startswith(b"\x7f\xe0gMk_")


def test_unlock_rejected(make_client):
    client, _ = make_client(transfers=[b"\x7f\xe0NAK"])
    with pytest.raises(ProtocolError):
        client.unlock()


def test_identify(make_client):
    client, transport = make_client(transfers=[b"\xa0pID    WEY MK06\x00"])
    assert client.identify() == "WEY MK06"
    assert transport.sent == [b"\xa0pID    \x00"]


def test_enter_bootloader_and_restart(make_client):
    client, transport = make_client()
    client.enter_bootloader()
    client.restart(1)
    assert transport.sent == [b"\x7f\xeego-DynBl", b"\xa0s\x00\x00\x00\x01"]


# ─── MEMORY ──────────────────────────────────────────────────────────

def test_read_memory_chunks(make_client):
    client, transport = make_client(transfers=[b"\x11" * 4096, b"\x22" * 904])
    data = client.read_memory(0x08000000, 5000)
    assert data == b"\x11" * 4096 + b"\x22" * 904
    assert transport.transfer_limits == [4096, 904]


def test_read_memory_stops_on_short_transfer(make_client):
    """A transfer shorter than requested ends the dump."""
    client, transport = make_client(transfers=[b"\x11" * 4096, b"\x22" * 100, b"\x33" * 4096])
    data = client.read_memory(0, 3 * 4096)
    assert len(data) == 4196
    assert transport.transfer_limits == [4096, 4096]


def test_read_memory_rejects_oversized_length(make_client):
    client, transport = make_client()
    with pytest.raises(SizeLimitError):
        client.read_memory(0, (1 << 20) + 1)
    assert transport.sent == []


# ─── LIST FILES ──────────────────────────────────────────────────────

def test_list_files(make_client):
    client, transport = make_client(
        stream=_listing((1, 2, b"a.bin"), (0x0102, 3, b"LAYER03.LAY"))
    )
    entries = client.list_files()
    assert transport.sent == [b"\xa9\x00\x00\x00"]
    assert [(e.index, e.subindex, e.name) for e in entries] == [
        (1, 2, "a.bin"),
        (258, 3, "LAYER03.LAY"),
    ]
    assert transport.receives == [11, 72]


@pytest.mark.parametrize("count", [0, 40000])
def test_list_files_size_limit(make_client, count):
    """An out-of-range entry count fails before the entries are read."""
    client, transport = make_client(stream=struct.pack(">B2xII", 0xA9, 0, count))
    with pytest.raises(SizeLimitError):
        client.list_files()
    assert transport.receives == [11]


# ─── READ FILE ───────────────────────────────────────────────────────

def test_read_file_splices_name(make_client):
    """Status bytes 'fo' plus tail 'o.txt' name the file foo.txt."""
    tail = b"o.txt".ljust(30, b"\x00") + struct.pack(">I", 5)
    client, transport = make_client(stream=fileop(0xA6, 1, 1, 0x666F) + tail + b"hello")
    transfer = client.read_file(1, 1)
    assert transport.sent == [b"\xa6\x00\x01\x00\x01"]
    assert transfer.name == "foo.txt"
    assert transfer.size == 5
    assert transfer.read_all() == b"hello"


def test_read_file_chunks_and_progress(make_client):
    body = bytes(range(256)) * 5
    tail = b"le".ljust(30, b"\x00") + struct.pack(">I", len(body))
    client, transport = make_client(stream=fileop(0xA6, 2, 0, 0x6669) + tail + body)
    seen = []
    transfer = client.read_file(2, 0, progress=lambda done, total: seen.append((done, total)))
    assert transfer.read_all() == body
    assert transport.receives == [7, 34, 512, 512, 256]
    assert seen == [(512, 1280), (1024, 1280), (1280, 1280)]


def test_read_file_empty(make_client):
    tail = b"".ljust(30, b"\x00") + struct.pack(">I", 0)
    client, _ = make_client(stream=fileop(0xA6, 1, 1, 0x6100) + tail)
    transfer = client.read_file(1, 1)
    assert transfer.name == "a"
    assert transfer.read_all() == b""


def test_read_file_not_found(make_client):
    client, transport = make_client(stream=fileop(0xA6, 1, 1, 0xD001))
    with pytest.raises(NotFound) as exc:
        client.read_file(1, 1)
    assert exc.value.index == 1
    assert transport.receives == [7]


def test_read_file_bad_echo(make_client):
    client, _ = make_client(stream=fileop(0xA5, 1, 1, 0x666F))
    with pytest.raises(ProtocolError):
        client.read_file(1, 1)


def test_read_file_size_limit(make_client):
    tail = b"x".ljust(30, b"\x00") + struct.pack(">I", (1 << 20) + 1)
    client, transport = make_client(stream=fileop(0xA6, 1, 1, 0x6162) + tail)
    with pytest.raises(SizeLimitError):
        client.read_file(1, 1)
    assert transport.receives == [7, 34]


def test_read_file_dispatches_bitmap(make_client):
    header = b"\x00" * 4 + struct.pack(">I", 3)
    client, transport = make_client(stream=b"\xa3" + header + b"BMP")
    transfer = client.read_file(4, 2)
    assert transport.sent == [b"\xa3\xa0\x54\x72\x00\x00\x0f\x42\x40"]
    assert transfer.name == "BMP2.BMP"
    assert transfer.read_all() == b"BMP"


def test_read_graph_color_params(make_client):
    header = b"\x00" * 4 + struct.pack(">I", 2)
    client, transport = make_client(stream=b"\xa3" + header + b"\x01\x02")
    transfer = client.read_graph(6, 1)
    assert transport.sent == [b"\xa3\x01\x01\x00\x01\x00\x0f\x42\x40"]
    assert transfer.name == "Colorparm.par"
    assert transfer.read_all() == b"\x01\x02"


def test_read_graph_rejected(make_client):
    client, transport = make_client(stream=b"\xd0")
    with pytest.raises(ProtocolError):
        client.read_graph(4, 0)
    assert transport.receives == [1]


# ─── WRITE / DELETE ──────────────────────────────────────────────────

def test_write_file_chunks(make_client):
    body = b"\x5a" * 1300
    client, transport = make_client(stream=fileop(0xA5, 9, 3, 0xD000))
    seen = []
    client.write_file(9, 3, "LAYER03.LAY", body, progress=lambda d, t: seen.append((d, t)))

    header, *chunks = transport.sent
    assert len(header) == 41
    assert [len(c) for c in chunks] == [512, 512, 276]
    assert b"".join(chunks) == body
    assert seen == [(512, 1300), (1024, 1300), (1300, 1300)]


def test_write_file_from_stream(make_client):
    client, transport = make_client(stream=fileop(0xA5, 1, 0, 0xD000))
    client.write_file(1, 0, "cfg.bin", io.BytesIO(b"abcdef"), size=6)
    assert transport.sent[1:] == [b"abcdef"]


def test_write_file_rejected(make_client):
    client, _ = make_client(stream=fileop(0xA5, 9, 3, 0xD002))
    with pytest.raises(ProtocolError):
        client.write_file(9, 3, "LAYER03.LAY", b"data")


def test_write_file_short_source(make_client):
    client, _ = make_client()
    with pytest.raises(ShortWriteError):
        client.write_file(1, 0, "cfg.bin", io.BytesIO(b"abc"), size=10)


def test_write_file_name_too_long(make_client):
    """Names over 31 bytes are refused before anything is sent."""
    client, transport = make_client()
    with pytest.raises(ValueError):
        client.write_file(1, 0, "n" * 32, b"data")
    assert transport.sent == []


def test_write_file_stream_needs_size(make_client):
    client, transport = make_client()
    with pytest.raises(ValueError):
        client.write_file(1, 0, "cfg.bin", io.BytesIO(b"abc"))
    assert transport.sent == []


@pytest.mark.parametrize("size", [3, 5])
def test_write_file_size_must_match_body(make_client, size):
    client, transport = make_client()
    with pytest.raises(ValueError):
        client.write_file(1, 0, "cfg.bin", b"data", size=size)
    assert transport.sent == []


def test_delete_file(make_client):
    client, transport = make_client(stream=fileop(0xA8, 5, 6, 0xD000))
    reply = client.delete_file(5, 6)
    assert transport.sent == [b"\xa8\x00\x05\x00\x06"]
    assert reply.status == 0xD000


def test_delete_file_not_found(make_client):
    client, _ = make_client(stream=fileop(0xA8, 5, 6, 0xD001))
    with pytest.raises(NotFound):
        client.delete_file(5, 6)


# ─── RAW / ERRORS ────────────────────────────────────────────────────

def test_raw(make_client):
    client, transport = make_client(transfers=[b"\xa9\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00"])
    reply = client.raw([0xA9, 0, 0, 0], rx_length=64)
    assert transport.sent == [b"\xa9\x00\x00\x00"]
    assert transport.transfer_limits == [64]
    assert reply[0] == 0xA9


def test_raw_without_reply(make_client):
    client, transport = make_client()
    assert client.raw([1, 2, 3]) == b""
    assert transport.transfer_limits == []


def test_raw_receive_cap(make_client):
    client, transport = make_client()
    with pytest.raises(SizeLimitError):
        client.raw([1], rx_length=(1 << 20) + 1)
    assert transport.sent == []


def test_transport_errors_name_operation(make_client):
    client, _ = make_client(stream=b"\xa9\x00")
    with pytest.raises(TransportTimeout, match="^list_files: "):
        client.list_files()


def test_short_write_is_reported(make_client):
    client, transport = make_client()
    transport.send = lambda data: len(data) - 1
    with pytest.raises(ShortWriteError) as exc:
        client.delete_file(1, 1)
    assert exc.value.operation == "delete_file"


def test_context_manager_closes_transport(make_client):
    client, transport = make_client()
    with client:
        pass
    assert transport.closed
