"""MCP server entry point for WEY keyboards.

Exposes the keyboard's bootloader and file service as tools and resources
via the Model Context Protocol, using the official Python MCP SDK with
stdio transport.
"""

from __future__ import annotations

import functools
import json
import logging
from pathlib import Path
from typing import Any

from mcp.server.fastmcp import FastMCP

from . import config
from .client import KeyboardClient
from .errors import KeyboardError, NotFound, TransportError
from .models.files import FileEntry, layer_target
from .session import open_serial, open_usb
from .utils.hexdump import hexdump

logger = logging.getLogger(__name__)

mcp = FastMCP(
    "wey-keyboard",
    instructions="MCP server for WEY keyboard firmware modules and files",
)

# Global connection state
_client: KeyboardClient | None = None
_file_cache: list[FileEntry] = []

INLINE_DUMP_LIMIT = 4096


def _get_client() -> KeyboardClient:
    """Get the active keyboard client, raising if not connected."""
    if _client is None:
        raise RuntimeError(
            "Not connected to keyboard. Use 'connect_usb' or 'connect_serial' first."
        )
    return _client


def _drop_client() -> None:
    global _client
    if _client is None:
        return
    try:
        _client.close()
    finally:
        _client = None


def _device_errors(fn):
    """Report protocol failures and invalid arguments as tool errors.

    Transport failures leave the keyboard in an unknown state, so the
    connection is dropped as well.
    """

    @functools.wraps(fn)
    def wrapper(*args, **kwargs):
        try:
            return fn(*args, **kwargs)
        except NotFound as e:
            logger.warning("%s", e)
            return {"error": str(e), "not_found": True}
        except TransportError as e:
            logger.error("Transport failure, closing connection: %s", e)
            _drop_client()
            return {"error": str(e), "disconnected": True}
        except KeyboardError as e:
            logger.warning("%s", e)
            return {"error": str(e)}
        except ValueError as e:
            return {"error": str(e)}

    return wrapper


def _output_path(name: str, output_dir: str | None) -> Path:
    # Device-supplied names must not escape the output directory.
    safe = Path(name).name or "unnamed.bin"
    directory = Path(output_dir or config.OUTPUT_DIR)
    directory.mkdir(parents=True, exist_ok=True)
    return directory / safe


def _log_progress(label: str):
    def report(done: int, total: int) -> None:
        logger.debug("%s: %5.1f%% done", label, done * 100 / total if total else 100.0)

    return report


# ─── CONNECTION TOOLS ─────────────────────────────────────────────────

@mcp.tool()
@_device_errors
def connect_usb(bootloader: bool = True) -> dict[str, Any]:
    """Connect to the keyboard over USB bulk transfers.

    Args:
        bootloader: Switch the keyboard into its dynamic bootloader first
            (required for module, memory, and unlock tools).
    """
    global _client
    if _client is not None:
        return {"connected": True, "message": "Already connected", "transport": _client.transport.kind}

    _client = open_usb(bootloader=bootloader)
    info = _client.transport.device_info
    return {
        "connected": True,
        "transport": "usb",
        "product_id": f"0x{info.product_id:04X}",
        "manufacturer": info.manufacturer,
        "product": info.product,
    }


@mcp.tool()
@_device_errors
def connect_serial(port: str | None = None, baudrate: int | None = None) -> dict[str, Any]:
    """Connect to the keyboard's file service over a serial line.

    Args:
        port: Serial device (default from WEYKB_SERIAL_PORT).
        baudrate: Baud rate (default from WEYKB_BAUDRATE, 115200).
    """
    global _client
    if _client is not None:
        return {"connected": True, "message": "Already connected", "transport": _client.transport.kind}

    port = port or config.DEFAULT_SERIAL_PORT
    baudrate = baudrate or config.DEFAULT_BAUDRATE
    _client = open_serial(port, baudrate)
    return {"connected": True, "transport": "serial", "port": port, "baudrate": baudrate}


@mcp.tool()
def disconnect() -> dict[str, bool]:
    """Close the connection to the keyboard."""
    _drop_client()
    _file_cache.clear()
    return {"disconnected": True}


# ─── BOOTLOADER TOOLS ─────────────────────────────────────────────────

@mcp.tool()
@_device_errors
def list_modules() -> dict[str, Any]:
    """List the firmware modules reported by the bootloader (slots 0-63)."""
    client = _get_client()
    modules = [info.to_dict() for info in client.iter_modules()]
    return {"modules": modules, "count": len(modules)}


@mcp.tool()
@_device_errors
def get_module_info(slot: int) -> dict[str, Any]:
    """Read the descriptor of one firmware module slot.

    Args:
        slot: Module slot (0-63).
    """
    if not 0 <= slot <= 63:
        return {"error": "Slot must be 0-63"}
    return _get_client().module_info(slot).to_dict()


@mcp.tool()
@_device_errors
def unlock() -> dict[str, Any]:
    """Unlock the bootloader for memory access."""
    _get_client().unlock()
    return {"unlocked": True}


@mcp.tool()
@_device_errors
def identify() -> dict[str, Any]:
    """Read the keyboard ID string from the bootloader."""
    return {"keyboard_id": _get_client().identify()}


@mcp.tool()
@_device_errors
def dump_memory(base: int, length: int, output_path: str | None = None) -> dict[str, Any]:
    """Read keyboard memory.

    Small reads without an output path are returned as a hex dump.

    Args:
        base: Start address.
        length: Number of bytes (at most 1 MiB).
        output_path: Optional file to write the raw bytes to.
    """
    client = _get_client()
    if output_path is None and length > INLINE_DUMP_LIMIT:
        return {"error": f"Reads over {INLINE_DUMP_LIMIT} bytes need an output_path"}

    data = client.read_memory(base, length)
    result: dict[str, Any] = {"base": f"0x{base:08X}", "requested": length, "received": len(data)}
    if output_path is None:
        result["hexdump"] = hexdump(data, base)
    else:
        path = Path(output_path)
        path.write_bytes(data)
        result["path"] = str(path)
    return result


@mcp.tool()
@_device_errors
def restart(mode: int) -> dict[str, Any]:
    """Restart the keyboard into a firmware mode.

    The connection is closed afterwards since the keyboard re-enumerates.

    Args:
        mode: Mode byte (0-255).
    """
    if not 0 <= mode <= 255:
        return {"error": "Mode must be 0-255"}
    _get_client().restart(mode)
    _drop_client()
    return {"restarted": True, "mode": mode}


# ─── FILE TOOLS ───────────────────────────────────────────────────────

@mcp.tool()
@_device_errors
def list_files() -> dict[str, Any]:
    """List the files stored on the keyboard."""
    entries = _get_client().list_files()
    _file_cache[:] = entries
    rows = [dict(number=i, **entry.to_dict()) for i, entry in enumerate(entries)]
    return {"files": rows, "count": len(rows)}


@mcp.tool()
@_device_errors
def read_file(index: int, subindex: int, output_dir: str | None = None) -> dict[str, Any]:
    """Download a file from the keyboard.

    Index 4 downloads bitmap ``BMP<subindex>.BMP`` and index 6 the color
    parameter block ``Colorparm.par``; other indices use the name the
    keyboard reports.

    Args:
        index: File index.
        subindex: File subindex.
        output_dir: Directory to save into (default from WEYKB_OUTPUT_DIR).
    """
    client = _get_client()
    transfer = client.read_file(index, subindex, progress=_log_progress(f"{index},{subindex}"))
    path = _output_path(transfer.name, output_dir)
    partial = path.with_name(path.name + ".part")
    try:
        with partial.open("wb") as out:
            for chunk in transfer.chunks:
                out.write(chunk)
    except BaseException:
        partial.unlink(missing_ok=True)
        raise
    partial.replace(path)
    return {"path": str(path), "name": transfer.name, "size": transfer.size}


@mcp.tool()
@_device_errors
def write_file(
    file_path: str,
    index: int | None = None,
    subindex: int | None = None,
    name: str | None = None,
) -> dict[str, Any]:
    """Upload a local file to the keyboard.

    A file named ``LAYERnn.LAY`` is stored as index 9, subindex nn unless
    index and subindex are given.

    Args:
        file_path: Local file to upload.
        index: Target file index.
        subindex: Target file subindex.
        name: Name on the keyboard (default: the local file name).
    """
    path = Path(file_path)
    if not path.is_file():
        return {"error": f"File not found: {file_path}"}

    if index is None or subindex is None:
        target = layer_target(path.name)
        if target is None:
            return {"error": "index and subindex are required unless the file is LAYERnn.LAY"}
        index, subindex = target

    stored_name = name or path.name
    size = path.stat().st_size
    client = _get_client()
    with path.open("rb") as source:
        client.write_file(
            index, subindex, stored_name, source, size,
            progress=_log_progress(stored_name),
        )
    return {"written": True, "index": index, "subindex": subindex, "name": stored_name, "size": size}


@mcp.tool()
@_device_errors
def delete_file(index: int, subindex: int) -> dict[str, Any]:
    """Delete a file from the keyboard.

    Args:
        index: File index.
        subindex: File subindex.
    """
    _get_client().delete_file(index, subindex)
    return {"deleted": True, "index": index, "subindex": subindex}


@mcp.tool()
@_device_errors
def raw_command(data: list[int], rx_length: int = 0) -> dict[str, Any]:
    """Send raw bytes to the keyboard and read back a reply.

    Args:
        data: Byte values to send.
        rx_length: Number of reply bytes to read (0 for none, at most 1 MiB).
    """
    reply = _get_client().raw(data, rx_length)
    return {"sent": len(data), "received": len(reply), "reply": reply.hex(" ")}


# ─── MCP RESOURCES ───────────────────────────────────────────────────

@mcp.resource("weykb://device/status")
def resource_device_status() -> str:
    """Connection state and transport."""
    if _client is None:
        return json.dumps({"connected": False})

    transport = _client.transport
    status: dict[str, Any] = {"connected": transport.connected, "transport": transport.kind}
    if transport.kind == "usb":
        info = transport.device_info
        status.update(
            vendor_id=f"0x{info.vendor_id:04X}",
            product_id=f"0x{info.product_id:04X}",
            product=info.product,
            path=info.path,
        )
    else:
        status.update(port=transport.port, baudrate=transport.baudrate)
    return json.dumps(status)


@mcp.resource("weykb://files/list")
def resource_files_list() -> str:
    """File listing from the last list_files call."""
    return json.dumps({"files": [entry.to_dict() for entry in _file_cache]})


# ─── ENTRY POINT ─────────────────────────────────────────────────────

def main():
    """Run the MCP server with stdio transport."""
    logging.basicConfig(level=config.LOG_LEVEL)
    mcp.run(transport="stdio")


if __name__ == "__main__":
    main()
