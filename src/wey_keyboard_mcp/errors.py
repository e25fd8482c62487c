"""Exception hierarchy shared by the transports, codec, and client.

Transport failures are fatal to the current run. Protocol failures abort
one operation only. Nothing here is retried automatically: file writes and
deletes are not idempotent on the device.
"""

from __future__ import annotations


class KeyboardError(Exception):
    """Base class for every error raised by this package."""


class TransportError(KeyboardError):
    """The channel could not be opened, claimed, or used."""


class TransportTimeout(TransportError):
    """An underlying read or write did not complete within its timeout."""


class ShortWriteError(TransportError):
    """Fewer bytes were sent than requested.

    A partial command leaves the device in an undefined state, so this is
    treated as fatal like any other transport failure.
    """

    def __init__(self, operation: str, expected: int, actual: int) -> None:
        self.operation = operation
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"{operation}: short write, sent {actual} of {expected} bytes"
        )


class ProtocolError(KeyboardError):
    """A reply failed its echo, magic, status, or length check."""

    def __init__(
        self,
        operation: str,
        message: str,
        expected: object = None,
        actual: object = None,
    ) -> None:
        self.operation = operation
        self.expected = expected
        self.actual = actual
        detail = f"{operation}: {message}"
        if expected is not None or actual is not None:
            detail += f" (expected {_fmt(expected)}, got {_fmt(actual)})"
        super().__init__(detail)


class SizeLimitError(KeyboardError):
    """A length field is zero or exceeds the absolute cap."""

    def __init__(self, operation: str, size: int, limit: int) -> None:
        self.operation = operation
        self.size = size
        self.limit = limit
        super().__init__(
            f"{operation}: length {size} outside accepted range 1..{limit}"
        )


class NotFound(KeyboardError):
    """The device reported that the addressed file does not exist."""

    def __init__(self, operation: str, index: int, subindex: int, status: int) -> None:
        self.operation = operation
        self.index = index
        self.subindex = subindex
        self.status = status
        super().__init__(
            f"{operation}: {index},{subindex} rejected by device "
            f"(status 0x{status:04X})"
        )


def _fmt(value: object) -> str:
    if isinstance(value, (bytes, bytearray)):
        return value.hex(" ") if value else "(empty)"
    if isinstance(value, int) and not isinstance(value, bool):
        return f"0x{value:X}"
    return repr(value)
