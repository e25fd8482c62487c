"""Shared fixtures: a scripted in-memory transport."""

from __future__ import annotations

import struct

import pytest

from wey_keyboard_mcp.client import KeyboardClient
from wey_keyboard_mcp.errors import TransportTimeout


class FakeTransport:
    """Transport that records what is sent and replays scripted replies.

    ``stream`` feeds :meth:`receive` (exact reads); ``transfers`` feeds
    :meth:`receive_transfer`, one queued transfer per call.
    """

    kind = "fake"

    def __init__(self, stream: bytes = b"", transfers: list[bytes] | None = None) -> None:
        self.sent: list[bytes] = []
        self.receives: list[int] = []
        self.transfer_limits: list[int] = []
        self.closed = False
        self._stream = bytearray(stream)
        self._transfers = list(transfers or [])

    def send(self, data: bytes) -> int:
        self.sent.append(bytes(data))
        return len(data)

    def receive(self, count: int, timeout_ms: int | None = None) -> bytes:
        self.receives.append(count)
        if len(self._stream) < count:
            raise TransportTimeout(f"only {len(self._stream)} of {count} bytes scripted")
        data = bytes(self._stream[:count])
        del self._stream[:count]
        return data

    def receive_transfer(self, limit: int, timeout_ms: int | None = None) -> bytes:
        self.transfer_limits.append(limit)
        if not self._transfers:
            raise TransportTimeout("no transfer scripted")
        return self._transfers.pop(0)[:limit]

    @property
    def connected(self) -> bool:
        return not self.closed

    def close(self) -> None:
        self.closed = True


def fileop(command: int, index: int, subindex: int, status: int) -> bytes:
    return struct.pack(">BHHH", command, index, subindex, status)


def module_reply(base: int = 0, end: int = 0x1000, name: bytes = b"DynBl") -> bytes:
    record = (
        b"MK06"
        + struct.pack(">I", 7)
        + name.ljust(64, b"\x00")
        + b"2021-03-04\x00\x00"
        + b"\x00\x00"
        + struct.pack(">III", base, end, 0x12345678)
    )
    return b"\xa0\x71" + record.ljust(256, b"\x00")


@pytest.fixture
def make_client():
    def factory(stream: bytes = b"", transfers: list[bytes] | None = None):
        transport = FakeTransport(stream, transfers)
        return KeyboardClient(transport), transport

    return factory
