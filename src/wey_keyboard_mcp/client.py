"""Request/response engine for the keyboard protocol.

Every operation follows the same pattern: build the request, send it in
full, read the reply header, validate it against the request, then stream
any payload. Nothing is retried; uploads and deletes are not idempotent.
"""

from __future__ import annotations

import io
import logging
from collections.abc import Callable, Iterable, Iterator
from typing import BinaryIO

from .config import (
    FILE_CHUNK_SIZE,
    MEMORY_CHUNK_SIZE,
    USB_STREAM_TIMEOUT_MS,
)
from .errors import ProtocolError, ShortWriteError, TransportError
from .models.files import GRAPH_INDICES, FileEntry, FileTransfer, graph_target
from .models.module import ModuleInfo
from .protocol.commands import (
    MODULE_SLOTS,
    Command,
    build_delete_file,
    build_enter_bootloader,
    build_identify,
    build_list_files,
    build_module_info,
    build_raw,
    build_read_file,
    build_read_graph,
    build_read_memory,
    build_restart,
    build_unlock,
    build_write_file,
)
from .protocol.framing import (
    FILEOP_REPLY,
    GRAPH_HEADER,
    LIST_HEADER,
    MODULE_REPLY_SIZE,
    NAME_ENCODING,
    NAME_SIZE,
    READ_FILE_TAIL,
)
from .protocol.parser import (
    FileOpReply,
    check_delete_status,
    check_read_status,
    check_size,
    check_write_status,
    listing_size,
    parse_file_entries,
    parse_fileop_reply,
    parse_graph_header,
    parse_graph_status,
    parse_identify_reply,
    parse_list_header,
    parse_module_info,
    parse_read_file_tail,
    parse_unlock_reply,
)
from .transport import Transport

logger = logging.getLogger(__name__)

# (bytes done, bytes total)
ProgressCallback = Callable[[int, int], None]

BOOTLOADER_REPLY_MAX = 256


class KeyboardClient:
    """Protocol operations over one open transport.

    The client owns the transport and closes it on :meth:`close` or when
    used as a context manager::

        with KeyboardClient(transport) as kb:
            for entry in kb.list_files():
                print(entry)
    """

    def __init__(self, transport: Transport) -> None:
        self._transport = transport

    @property
    def transport(self) -> Transport:
        return self._transport

    def close(self) -> None:
        self._transport.close()

    def __enter__(self) -> KeyboardClient:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    # ─── WIRE HELPERS ─────────────────────────────────────────────────

    def _send(self, operation: str, data: bytes) -> None:
        logger.debug("%s >> %s", operation, data[:64].hex(" "))
        try:
            sent = self._transport.send(data)
        except ShortWriteError as e:
            raise ShortWriteError(operation, e.expected, e.actual) from e
        except TransportError as e:
            raise type(e)(f"{operation}: {e}") from e
        if sent != len(data):
            raise ShortWriteError(operation, len(data), sent)

    def _receive(self, operation: str, count: int) -> bytes:
        try:
            data = self._transport.receive(count)
        except TransportError as e:
            raise type(e)(f"{operation}: {e}") from e
        logger.debug("%s << %s", operation, data[:64].hex(" "))
        return data

    def _receive_transfer(
        self, operation: str, limit: int, timeout_ms: int | None = None
    ) -> bytes:
        try:
            data = self._transport.receive_transfer(limit, timeout_ms)
        except TransportError as e:
            raise type(e)(f"{operation}: {e}") from e
        logger.debug("%s << %s", operation, data[:64].hex(" "))
        return data

    # ─── BOOTLOADER / MODE CONTROL ────────────────────────────────────

    def enter_bootloader(self) -> None:
        """Ask the application firmware to restart into the bootloader.

        The keyboard re-enumerates under the bootloader product ID; no reply
        is sent.
        """
        self._send("enter_bootloader", build_enter_bootloader())

    def restart(self, mode: int) -> None:
        """Restart the keyboard into ``mode`` (fire and forget)."""
        self._send("restart", build_restart(mode))
        logger.info("Restart into mode %d requested", mode)

    def unlock(self) -> None:
        """Send the unlock challenge and check the 5-byte answer."""
        self._send("unlock", build_unlock())
        parse_unlock_reply(self._receive_transfer("unlock", BOOTLOADER_REPLY_MAX))
        logger.info("Bootloader unlocked")

    def identify(self) -> str:
        """Return the keyboard ID string."""
        self._send("identify", build_identify())
        return parse_identify_reply(self._receive_transfer("identify", BOOTLOADER_REPLY_MAX))

    def module_info(self, index: int) -> ModuleInfo:
        """Query the descriptor of one firmware module slot (0-63)."""
        self._send("module_info", build_module_info(index))
        reply = self._receive_transfer("module_info", MODULE_REPLY_SIZE + 2)
        return parse_module_info(index, reply)

    def iter_modules(self) -> Iterator[ModuleInfo]:
        """Yield the descriptor of every populated module slot.

        Slots whose reply fails validation are empty and skipped.
        """
        for index in range(MODULE_SLOTS):
            try:
                yield self.module_info(index)
            except ProtocolError as e:
                logger.debug("Module slot %d skipped: %s", index, e)

    def iter_memory(
        self, base: int, length: int, timeout_ms: int = USB_STREAM_TIMEOUT_MS
    ) -> Iterator[bytes]:
        """Request ``length`` bytes at ``base`` and return a chunk iterator.

        The stream ends early when the device ends a transfer short, so the
        chunks may add up to less than ``length``.
        """
        check_size("read_memory", length)
        self._send("read_memory", build_read_memory(base, length))
        return self._memory_chunks(length, timeout_ms)

    def _memory_chunks(self, length: int, timeout_ms: int) -> Iterator[bytes]:
        remaining = length
        while remaining > 0:
            wanted = min(remaining, MEMORY_CHUNK_SIZE)
            chunk = self._receive_transfer("read_memory", wanted, timeout_ms)
            remaining -= len(chunk)
            if chunk:
                yield chunk
            if len(chunk) < wanted:
                logger.debug("read_memory: transfer ended, %d bytes not sent", remaining)
                break

    def read_memory(
        self, base: int, length: int, timeout_ms: int = USB_STREAM_TIMEOUT_MS
    ) -> bytes:
        data = b"".join(self.iter_memory(base, length, timeout_ms))
        logger.info("Read %d bytes at 0x%08X", len(data), base)
        return data

    # ─── FILE SERVICE ─────────────────────────────────────────────────

    def list_files(self) -> list[FileEntry]:
        """Return the keyboard's file table."""
        self._send("list_files", build_list_files())
        header = parse_list_header(self._receive("list_files", LIST_HEADER.size))
        size = listing_size(header)
        entries = parse_file_entries(self._receive("list_files", size), header.count)
        logger.info("Listed %d files", len(entries))
        return entries

    def read_file(
        self, index: int, subindex: int, progress: ProgressCallback | None = None
    ) -> FileTransfer:
        """Start downloading a file and return its header and body stream.

        Graph resources (indices 4 and 6) are served by :meth:`read_graph`.

        Raises:
            NotFound: If the device reports the file as absent.
            ProtocolError: If the reply echoes another command.
            SizeLimitError: If the declared size exceeds the cap.
        """
        if index in GRAPH_INDICES:
            return self.read_graph(index, subindex, progress)

        self._send("read_file", build_read_file(index, subindex))
        reply = parse_fileop_reply(
            "read_file", self._receive("read_file", FILEOP_REPLY.size), Command.READ_FILE
        )
        check_read_status(reply)

        # On success the device puts the first two name bytes in the status
        # field; they have to go back in front of the remaining 30.
        name, size = parse_read_file_tail(
            reply.status_bytes, self._receive("read_file", READ_FILE_TAIL.size)
        )
        check_size("read_file", size, allow_zero=True)
        logger.info("%d,%d: %s %d bytes", reply.index, reply.subindex, name, size)
        return FileTransfer(
            index=reply.index,
            subindex=reply.subindex,
            name=name,
            size=size,
            chunks=self._body_chunks("read_file", size, progress),
        )

    def read_graph(
        self, index: int, subindex: int, progress: ProgressCallback | None = None
    ) -> FileTransfer:
        """Start downloading a bitmap (4) or color parameter (6) resource."""
        target = graph_target(index, subindex)
        self._send("read_graph", build_read_graph(target.magic, target.subindex_field))
        parse_graph_status(self._receive("read_graph", 1))
        size = parse_graph_header(self._receive("read_graph", GRAPH_HEADER.size))
        check_size("read_graph", size, allow_zero=True)
        logger.info("%s: %d bytes", target.output_name, size)
        return FileTransfer(
            index=index,
            subindex=subindex,
            name=target.output_name,
            size=size,
            chunks=self._body_chunks("read_graph", size, progress),
        )

    def _body_chunks(
        self, operation: str, size: int, progress: ProgressCallback | None
    ) -> Iterator[bytes]:
        done = 0
        while done < size:
            chunk = self._receive(operation, min(FILE_CHUNK_SIZE, size - done))
            done += len(chunk)
            if progress is not None:
                progress(done, size)
            yield chunk

    def write_file(
        self,
        index: int,
        subindex: int,
        name: str,
        source: BinaryIO | bytes,
        size: int | None = None,
        progress: ProgressCallback | None = None,
    ) -> FileOpReply:
        """Upload ``size`` bytes from ``source`` as file ``index,subindex``.

        Args:
            index: Target file index.
            subindex: Target file subindex.
            name: Name stored on the device, at most 31 bytes.
            source: Readable binary stream, or the body itself.
            size: Body length; required for streams.
            progress: Called after each chunk with (bytes sent, total).

        Raises:
            ValueError: If the name is too long, or the size is missing or
                disagrees with a bytes body.
            ShortWriteError: If ``source`` ends before ``size`` bytes.
            ProtocolError: If the device does not confirm the upload.
        """
        encoded = name.encode(NAME_ENCODING, errors="replace")
        if len(encoded) > NAME_SIZE - 1:
            raise ValueError(f"Filename {name!r} too long (max {NAME_SIZE - 1} bytes)")
        if isinstance(source, (bytes, bytearray)):
            if size is not None and size != len(source):
                raise ValueError(f"size {size} does not match the {len(source)}-byte body")
            size = len(source)
            source = io.BytesIO(source)
        if size is None:
            raise ValueError("size is required when uploading from a stream")

        self._send("write_file", build_write_file(index, subindex, name, size))

        remaining = size
        while remaining > 0:
            chunk = source.read(min(FILE_CHUNK_SIZE, remaining))
            if not chunk:
                raise ShortWriteError("write_file", size, size - remaining)
            self._send("write_file", chunk)
            remaining -= len(chunk)
            logger.debug("sent %d bytes, %d remaining", len(chunk), remaining)
            if progress is not None:
                progress(size - remaining, size)

        reply = parse_fileop_reply(
            "write_file", self._receive("write_file", FILEOP_REPLY.size), Command.WRITE_FILE
        )
        check_write_status(reply)
        logger.info("Wrote %s as %d,%d (%d bytes)", name, index, subindex, size)
        return reply

    def delete_file(self, index: int, subindex: int) -> FileOpReply:
        """Delete file ``index,subindex``.

        Raises:
            NotFound: If the device does not confirm the delete.
        """
        self._send("delete_file", build_delete_file(index, subindex))
        reply = parse_fileop_reply(
            "delete_file", self._receive("delete_file", FILEOP_REPLY.size), Command.DELETE_FILE
        )
        check_delete_status(reply)
        logger.info("Deleted %d,%d", index, subindex)
        return reply

    # ─── RAW ──────────────────────────────────────────────────────────

    def raw(self, data: Iterable[int], rx_length: int = 0) -> bytes:
        """Send arbitrary bytes and read back up to ``rx_length`` bytes."""
        request = build_raw(data)
        if rx_length:
            check_size("raw", rx_length)
        self._send("raw", request)
        if not rx_length:
            return b""
        return self._receive_transfer("raw", rx_length)

