"""Firmware module descriptor reported by the bootloader."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class ModuleInfo:
    """One firmware module slot (fields are host-order after decoding)."""

    slot: int
    magic: str
    number: int
    name: str
    date: str
    base: int
    end: int
    checksum: int
    unknown: bytes = field(default=b"\x00\x00", repr=False)

    @property
    def size(self) -> int:
        return max(self.end - self.base, 0)

    def to_dict(self) -> dict:
        return {
            "slot": self.slot,
            "magic": self.magic,
            "number": self.number,
            "name": self.name,
            "date": self.date,
            "base": f"0x{self.base:08X}",
            "end": f"0x{self.end:08X}",
            "size": self.size,
            "checksum": f"0x{self.checksum:08X}",
        }

    def __str__(self) -> str:
        return f"{self.slot:2d}: {self.base:08x} - {self.end:08x} {self.name}"
