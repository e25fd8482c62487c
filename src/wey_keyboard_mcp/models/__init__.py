"""Data models for firmware modules and keyboard files."""

from .module import ModuleInfo
from .files import (
    FileEntry,
    FileTransfer,
    GraphTarget,
    graph_target,
    layer_target,
)
