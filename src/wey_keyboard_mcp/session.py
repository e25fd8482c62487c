"""Opening a keyboard session over USB or serial.

Over USB the keyboard first has to be switched into its dynamic bootloader:
it is opened under the application product ID, sent the enter-bootloader
sequence, and reopened under the bootloader product ID once it has
re-enumerated. Serial sessions assume the keyboard already runs the mode
the caller wants. A failure to open or claim at any phase is fatal; there
is no retry.
"""

from __future__ import annotations

import logging
import time

from .client import KeyboardClient
from .config import (
    DEFAULT_BAUDRATE,
    MODE_SETTLE_SECONDS,
    PRODUCT_ID_APP,
    PRODUCT_ID_BOOTLOADER,
    VENDOR_ID,
)
from .transport import SerialTransport, UsbBulkTransport

logger = logging.getLogger(__name__)


def open_usb(
    bootloader: bool = True,
    settle_seconds: float = MODE_SETTLE_SECONDS,
    vendor_id: int = VENDOR_ID,
) -> KeyboardClient:
    """Open the keyboard over USB bulk transfers.

    Args:
        bootloader: Switch the keyboard into bootloader mode first and
            address it there. When False the application-mode device is
            opened directly.
        settle_seconds: Delay between the mode switch and reopening.
        vendor_id: USB vendor ID of the keyboard.

    Raises:
        TransportError: If the device cannot be opened or claimed.
    """
    if not bootloader:
        transport = UsbBulkTransport(vendor_id=vendor_id, product_id=PRODUCT_ID_APP)
        transport.open()
        return KeyboardClient(transport)

    app = KeyboardClient(UsbBulkTransport(vendor_id=vendor_id, product_id=PRODUCT_ID_APP))
    app.transport.open()
    try:
        app.enter_bootloader()
    finally:
        app.close()

    logger.info("Waiting %.1fs for bootloader to enumerate", settle_seconds)
    time.sleep(settle_seconds)

    transport = UsbBulkTransport(vendor_id=vendor_id, product_id=PRODUCT_ID_BOOTLOADER)
    transport.open()
    return KeyboardClient(transport)


def open_serial(port: str, baudrate: int = DEFAULT_BAUDRATE) -> KeyboardClient:
    """Open the keyboard's file service on a serial port.

    Raises:
        TransportError: If the port cannot be opened.
    """
    transport = SerialTransport(port, baudrate=baudrate)
    transport.open()
    return KeyboardClient(transport)
