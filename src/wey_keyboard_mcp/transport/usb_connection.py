"""USB bulk connection to the keyboard.

The keyboard exposes a vendor bulk interface (interface 1) with endpoints
0x06 (OUT) and 0x85 (IN), 64-byte max packet size. Bulk IN data arrives in
packet-sized bursts, so reads accumulate into a staging buffer. A packet
shorter than the max packet size (including a zero-length packet) marks
the end of one logical transfer.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

import usb.core
import usb.util

from ..config import (
    EP_IN,
    EP_OUT,
    PRODUCT_ID_BOOTLOADER,
    USB_CONFIGURATION,
    USB_INTERFACE,
    USB_MAX_PACKET_SIZE,
    USB_READ_CHUNK,
    USB_TIMEOUT_MS,
    VENDOR_ID,
)
from ..errors import ShortWriteError, TransportError, TransportTimeout

logger = logging.getLogger(__name__)


@dataclass
class DeviceInfo:
    """Basic device identification from USB descriptors."""

    vendor_id: int = VENDOR_ID
    product_id: int = PRODUCT_ID_BOOTLOADER
    manufacturer: str = ""
    product: str = ""
    path: str = ""


class UsbBulkTransport:
    """Bulk endpoint pair on a claimed keyboard interface.

    Usage::

        transport = UsbBulkTransport(product_id=PRODUCT_ID_BOOTLOADER)
        transport.open()
        transport.send(request)
        reply = transport.receive_transfer(256)
        transport.close()
    """

    kind = "usb"

    def __init__(
        self,
        vendor_id: int = VENDOR_ID,
        product_id: int = PRODUCT_ID_BOOTLOADER,
        timeout_ms: int = USB_TIMEOUT_MS,
        max_packet_size: int = USB_MAX_PACKET_SIZE,
    ) -> None:
        self._vendor_id = vendor_id
        self._product_id = product_id
        self._timeout_ms = timeout_ms
        self.max_packet_size = max_packet_size
        self._device = None
        self._connected = False
        self._pending = bytearray()
        self._device_info = DeviceInfo(vendor_id=vendor_id, product_id=product_id)

    @property
    def connected(self) -> bool:
        return self._connected

    @property
    def device_info(self) -> DeviceInfo:
        return self._device_info

    def open(self) -> DeviceInfo:
        """Find the device, select its configuration, and claim the interface.

        Raises:
            TransportError: If the device is absent or cannot be claimed.
        """
        ident = f"{self._vendor_id:04x}:{self._product_id:04x}"
        try:
            dev = usb.core.find(idVendor=self._vendor_id, idProduct=self._product_id)
        except usb.core.NoBackendError as e:
            raise TransportError(f"No libusb backend available: {e}") from e
        if dev is None:
            raise TransportError(f"Keyboard {ident} not found")

        try:
            if dev.is_kernel_driver_active(USB_INTERFACE):
                dev.detach_kernel_driver(USB_INTERFACE)
        except (NotImplementedError, usb.core.USBError) as e:
            # Not supported on every platform; claiming reports real failures.
            logger.debug("Kernel driver check skipped: %s", e)

        try:
            dev.set_configuration(USB_CONFIGURATION)
            usb.util.claim_interface(dev, USB_INTERFACE)
        except usb.core.USBError as e:
            raise TransportError(f"Could not claim interface {USB_INTERFACE} on {ident}: {e}") from e

        self._device = dev
        self._connected = True
        self._pending.clear()
        self._device_info = DeviceInfo(
            vendor_id=self._vendor_id,
            product_id=self._product_id,
            manufacturer=_descriptor_string(dev, dev.iManufacturer),
            product=_descriptor_string(dev, dev.iProduct),
            path=f"bus {dev.bus} address {dev.address}",
        )

        logger.info(
            "Connected via pyusb: %s %s (%s)",
            self._device_info.manufacturer,
            self._device_info.product,
            ident,
        )
        return self._device_info

    def close(self) -> None:
        """Release the interface and free the device handle."""
        if not self._connected:
            return

        try:
            usb.util.release_interface(self._device, USB_INTERFACE)
            usb.util.dispose_resources(self._device)
        except usb.core.USBError as e:
            logger.warning("Error closing device: %s", e)
        finally:
            self._device = None
            self._connected = False
            self._pending.clear()
            logger.info("Disconnected")

    def send(self, data: bytes) -> int:
        """Write ``data`` to the OUT endpoint, one max-size packet per call.

        Returns:
            Number of bytes written (always ``len(data)``).

        Raises:
            ShortWriteError: If the device accepted fewer bytes than offered.
            TransportTimeout: If a packet write timed out.
            TransportError: On any other USB failure.
        """
        self._require_open()
        # A new request starts a new exchange; nothing staged belongs to it.
        if self._pending:
            logger.debug("Dropping %d unread bytes", len(self._pending))
            self._pending.clear()
        sent = 0
        while sent < len(data):
            packet = data[sent : sent + self.max_packet_size]
            try:
                written = self._device.write(EP_OUT, packet, timeout=self._timeout_ms)
            except usb.core.USBTimeoutError as e:
                raise TransportTimeout(f"USB write timed out after {sent} bytes") from e
            except usb.core.USBError as e:
                raise TransportError(f"USB write failed: {e}") from e
            if written != len(packet):
                raise ShortWriteError("usb_send", len(data), sent + written)
            sent += written
        return sent

    def receive(self, count: int, timeout_ms: int | None = None) -> bytes:
        """Read exactly ``count`` bytes, spanning as many packets as needed.

        Bytes read beyond ``count`` stay staged for the next receive until
        another request is sent.

        Raises:
            TransportTimeout: If the device stops sending.
            TransportError: On USB failure or a zero-length read.
        """
        self._require_open()
        while len(self._pending) < count:
            packet = self._read(count - len(self._pending), timeout_ms)
            if not packet:
                raise TransportError(
                    f"USB read made no progress ({len(self._pending)} of {count} bytes)"
                )
            self._pending.extend(packet)
        return self._take(count)

    def receive_transfer(self, limit: int, timeout_ms: int | None = None) -> bytes:
        """Read one logical transfer of at most ``limit`` bytes.

        Reading stops as soon as a short packet arrives, without issuing
        another read, or once ``limit`` bytes are available. Bytes of a
        finished transfer beyond ``limit`` are discarded.
        """
        self._require_open()
        ended = False
        while len(self._pending) < limit:
            packet = self._read(limit - len(self._pending), timeout_ms)
            self._pending.extend(packet)
            if self._is_short(packet):
                ended = True
                break
        data = self._take(min(limit, len(self._pending)))
        if ended and self._pending:
            logger.debug("Discarding %d bytes past the %d-byte limit", len(self._pending), limit)
            self._pending.clear()
        return data

    def _read(self, wanted: int, timeout_ms: int | None) -> bytes:
        # Requests are whole packets so the host never overflows on a full one.
        packets = max(1, -(-wanted // self.max_packet_size))
        size = min(packets * self.max_packet_size, USB_READ_CHUNK)
        try:
            data = self._device.read(
                EP_IN, size, timeout=self._timeout_ms if timeout_ms is None else timeout_ms
            )
        except usb.core.USBTimeoutError as e:
            raise TransportTimeout("USB read timed out") from e
        except usb.core.USBError as e:
            raise TransportError(f"USB read failed: {e}") from e
        return bytes(data)

    def _is_short(self, packet: bytes) -> bool:
        return not packet or len(packet) % self.max_packet_size != 0

    def _take(self, count: int) -> bytes:
        data = bytes(self._pending[:count])
        del self._pending[:count]
        return data

    def _require_open(self) -> None:
        if not self._connected:
            raise TransportError("Not connected to device")


def _descriptor_string(dev, index: int) -> str:
    if not index:
        return ""
    try:
        return usb.util.get_string(dev, index) or ""
    except (usb.core.USBError, ValueError) as e:
        logger.debug("Could not read string descriptor %d: %s", index, e)
        return ""
