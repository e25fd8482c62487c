"""Transports: the keyboard is reached over USB bulk or a serial line.

Both classes expose the same ``send`` / ``receive`` / ``receive_transfer`` /
``close`` surface; the client only ever sees one of the two.
"""

from typing import Union

from .serial_connection import SerialTransport
from .usb_connection import DeviceInfo, UsbBulkTransport

Transport = Union[SerialTransport, UsbBulkTransport]
