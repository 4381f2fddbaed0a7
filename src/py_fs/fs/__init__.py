"""File system subsystem — entries, block chains, persistence, and the engine.

Re-exports public symbols so callers can write::

    from py_fs.fs import StorageEngine, Geometry
"""

from py_fs.fs.allocator import BlockAllocator
from py_fs.fs.engine import StorageEngine
from py_fs.fs.errors import ErrorKind, FileSystemError, ProtocolError
from py_fs.fs.persistence import DiskImage, ImageError, dump_image, load_image
from py_fs.fs.structures import (
    MAX_FILENAME_LENGTH,
    NO_REF,
    ChainNode,
    DiskUsage,
    FileEntry,
    FileInfo,
    Geometry,
)
from py_fs.fs.table import FileTable

__all__ = [
    "MAX_FILENAME_LENGTH",
    "NO_REF",
    "BlockAllocator",
    "ChainNode",
    "DiskImage",
    "DiskUsage",
    "ErrorKind",
    "FileEntry",
    "FileInfo",
    "FileSystemError",
    "FileTable",
    "Geometry",
    "ImageError",
    "ProtocolError",
    "StorageEngine",
    "dump_image",
    "load_image",
]
