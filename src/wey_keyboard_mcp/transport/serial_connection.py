"""Serial connection to the keyboard's file service.

The line runs 8N1 without flow control. Serial has no packet boundaries,
so the caller always asks for an exact byte count; the one exception is
:meth:`SerialTransport.receive_transfer`, which treats the line going idle
for ``idle_gap`` seconds as the end of a transfer.
"""

from __future__ import annotations

import logging

import serial

from ..config import SERIAL_BAUDRATE, SERIAL_IDLE_GAP, SERIAL_TIMEOUT, SERIAL_WRITE_TIMEOUT
from ..errors import ShortWriteError, TransportError, TransportTimeout

logger = logging.getLogger(__name__)


class SerialTransport:
    """Byte stream over a serial port.

    Usage::

        transport = SerialTransport("/dev/ttyUSB0")
        transport.open()
        transport.send(request)
        header = transport.receive(11)
        transport.close()
    """

    kind = "serial"

    def __init__(
        self,
        port: str,
        baudrate: int = SERIAL_BAUDRATE,
        timeout: float = SERIAL_TIMEOUT,
        idle_gap: float = SERIAL_IDLE_GAP,
    ) -> None:
        self.port = port
        self.baudrate = baudrate
        self.timeout = timeout
        self.idle_gap = idle_gap
        self._serial: serial.Serial | None = None

    @property
    def connected(self) -> bool:
        return self._serial is not None and self._serial.is_open

    def open(self) -> None:
        """Open the port with 8 data bits, no parity, no flow control.

        Raises:
            TransportError: If the port cannot be opened.
        """
        try:
            self._serial = serial.Serial(
                port=self.port,
                baudrate=self.baudrate,
                bytesize=serial.EIGHTBITS,
                parity=serial.PARITY_NONE,
                stopbits=serial.STOPBITS_ONE,
                xonxoff=False,
                rtscts=False,
                dsrdtr=False,
                timeout=self.timeout,
                write_timeout=SERIAL_WRITE_TIMEOUT,
                inter_byte_timeout=self.idle_gap,
            )
        except (serial.SerialException, ValueError) as e:
            raise TransportError(f"Could not open {self.port}: {e}") from e
        logger.info("Connected to %s at %d baud", self.port, self.baudrate)

    def close(self) -> None:
        if self._serial is None:
            return
        try:
            self._serial.close()
        except serial.SerialException as e:
            logger.warning("Error closing %s: %s", self.port, e)
        finally:
            self._serial = None
            logger.info("Disconnected from %s", self.port)

    def send(self, data: bytes) -> int:
        """Write ``data`` in a single call.

        Raises:
            ShortWriteError: If the port accepted fewer bytes than offered.
            TransportTimeout: If the write timed out.
            TransportError: On any other port failure.
        """
        port = self._require_open()
        try:
            # Anything still buffered is left over from an earlier exchange.
            if port.in_waiting:
                logger.debug("Dropping %d unread bytes", port.in_waiting)
                port.reset_input_buffer()
            written = port.write(data)
            port.flush()
        except serial.SerialTimeoutException as e:
            raise TransportTimeout(f"Write to {self.port} timed out") from e
        except serial.SerialException as e:
            raise TransportError(f"Write to {self.port} failed: {e}") from e
        if written != len(data):
            raise ShortWriteError("serial_send", len(data), written or 0)
        return written

    def receive(self, count: int, timeout_ms: int | None = None) -> bytes:
        """Read exactly ``count`` bytes.

        Raises:
            TransportTimeout: If a read returns nothing (timeout or EOF).
            TransportError: On port failure.
        """
        port = self._require_open()
        buf = bytearray()
        while len(buf) < count:
            chunk = self._read(port, count - len(buf), timeout_ms)
            if not chunk:
                raise TransportTimeout(
                    f"Read from {self.port} timed out ({len(buf)} of {count} bytes)"
                )
            buf.extend(chunk)
        return bytes(buf)

    def receive_transfer(self, limit: int, timeout_ms: int | None = None) -> bytes:
        """Read up to ``limit`` bytes, stopping when the line goes idle."""
        port = self._require_open()
        chunk = self._read(port, limit, timeout_ms)
        if not chunk:
            raise TransportTimeout(f"Read from {self.port} timed out")
        return chunk

    def _read(self, port: serial.Serial, count: int, timeout_ms: int | None) -> bytes:
        if timeout_ms is not None:
            port.timeout = timeout_ms / 1000
        try:
            return port.read(count)
        except serial.SerialException as e:
            raise TransportError(f"Read from {self.port} failed: {e}") from e
        finally:
            if timeout_ms is not None:
                port.timeout = self.timeout

    def _require_open(self) -> serial.Serial:
        if self._serial is None:
            raise TransportError("Not connected to device")
        return self._serial
