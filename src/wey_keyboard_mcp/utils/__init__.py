"""Formatting helpers."""

from .hexdump import hexdump
