"""Backing image — save and load the three tables to/from disk.

The image is a fixed-size binary snapshot of the whole file system, in
a fixed order::

    header      magic "PYFS", max_files, max_blocks, block_size
    entries     max_files  x (name[44], size u32, first_node i32)
    nodes       max_blocks x (data_block i32, next_node i32)
    payload     max_blocks x block_size raw bytes

All integers are little-endian and fixed-width, so the image never
grows once the geometry is chosen.  Every mutation rewrites the whole
image (``dump_image``); there is no incremental log to replay, so
recovery is simply "load the last image".

Key concepts:
    - **Serialization** — packing in-memory tables with ``struct``.
    - **Validation** — a loaded image must describe well-formed chains
      (in range, acyclic, unshared) or it is rejected as corrupt.
    - **Atomic replace** — the new image is written beside the old one
      and renamed over it, so a reader never sees half an image.
"""

from __future__ import annotations

import struct
from dataclasses import dataclass
from typing import TYPE_CHECKING

from py_fs.fs.structures import MAX_FILENAME_LENGTH, NO_REF, ChainNode, FileEntry, Geometry

if TYPE_CHECKING:
    from pathlib import Path

MAGIC = b"PYFS"

HEADER_STRUCT = struct.Struct("<4sIII")
# 11 characters of up to 4 UTF-8 bytes each.
ENTRY_STRUCT = struct.Struct(f"<{MAX_FILENAME_LENGTH * 4}sIi")
NODE_STRUCT = struct.Struct("<ii")


class ImageError(Exception):
    """Raise when a backing image is truncated, corrupt, or mismatched."""


@dataclass
class DiskImage:
    """The complete persisted state: geometry plus the three tables."""

    geometry: Geometry
    entries: list[FileEntry]
    nodes: list[ChainNode]
    blocks: list[bytearray]

    @classmethod
    def blank(cls, geometry: Geometry) -> DiskImage:
        """Create an image with every entry, node, and block unused."""
        return cls(
            geometry=geometry,
            entries=[FileEntry() for _ in range(geometry.max_files)],
            nodes=[ChainNode() for _ in range(geometry.max_blocks)],
            blocks=[bytearray(geometry.block_size) for _ in range(geometry.max_blocks)],
        )


def image_size(geometry: Geometry) -> int:
    """Return the exact byte length of an image with this geometry."""
    return (
        HEADER_STRUCT.size
        + geometry.max_files * ENTRY_STRUCT.size
        + geometry.max_blocks * NODE_STRUCT.size
        + geometry.total_bytes
    )


def encode_image(image: DiskImage) -> bytes:
    """Pack an image into its on-disk byte layout."""
    geo = image.geometry
    out = bytearray(HEADER_STRUCT.pack(MAGIC, geo.max_files, geo.max_blocks, geo.block_size))
    for entry in image.entries:
        out += ENTRY_STRUCT.pack(entry.name.encode("utf-8"), entry.size, entry.first_node)
    for node in image.nodes:
        out += NODE_STRUCT.pack(node.data_block, node.next_node)
    for block in image.blocks:
        out += block
    return bytes(out)


def decode_image(data: bytes, geometry: Geometry) -> DiskImage:
    """Unpack and validate an image.

    Args:
        data: The raw image bytes.
        geometry: The geometry the image must have been written with.

    Returns:
        The decoded image.

    Raises:
        ImageError: If the image is truncated, was written with a
            different geometry, or describes malformed chains.

    """
    expected = image_size(geometry)
    if len(data) != expected:
        msg = f"Image is {len(data)} bytes, expected {expected}"
        raise ImageError(msg)

    magic, max_files, max_blocks, block_size = HEADER_STRUCT.unpack_from(data, 0)
    if magic != MAGIC:
        msg = f"Bad magic {magic!r}"
        raise ImageError(msg)
    found = (max_files, max_blocks, block_size)
    wanted = (geometry.max_files, geometry.max_blocks, geometry.block_size)
    if found != wanted:
        msg = f"Image geometry {found} does not match configured {wanted}"
        raise ImageError(msg)

    offset = HEADER_STRUCT.size
    entries: list[FileEntry] = []
    for _ in range(max_files):
        raw_name, size, first_node = ENTRY_STRUCT.unpack_from(data, offset)
        offset += ENTRY_STRUCT.size
        try:
            name = raw_name.rstrip(b"\0").decode("utf-8")
        except UnicodeDecodeError as e:
            msg = f"Undecodable filename {raw_name!r}"
            raise ImageError(msg) from e
        entries.append(FileEntry(name=name, size=size, first_node=first_node))

    nodes: list[ChainNode] = []
    for _ in range(max_blocks):
        data_block, next_node = NODE_STRUCT.unpack_from(data, offset)
        offset += NODE_STRUCT.size
        nodes.append(ChainNode(data_block=data_block, next_node=next_node))

    blocks = [
        bytearray(data[offset + i * block_size : offset + (i + 1) * block_size])
        for i in range(max_blocks)
    ]

    image = DiskImage(geometry=geometry, entries=entries, nodes=nodes, blocks=blocks)
    _check_consistency(image)
    return image


def _check_consistency(image: DiskImage) -> None:
    """Verify every chain is in range, acyclic, unshared, and fully owned.

    Raises:
        ImageError: On the first violation found.

    """
    geo = image.geometry
    seen_names: set[str] = set()
    seen_nodes: set[int] = set()
    seen_blocks: set[int] = set()

    for entry in image.entries:
        if not entry.in_use:
            entry.clear()
            continue
        if len(entry.name) > MAX_FILENAME_LENGTH or entry.name in seen_names:
            msg = f"Invalid or duplicate filename {entry.name!r}"
            raise ImageError(msg)
        seen_names.add(entry.name)

        length = 0
        current = entry.first_node
        while current != NO_REF:
            if not 0 <= current < geo.max_blocks or current in seen_nodes:
                msg = f"Chain of {entry.name!r} reaches bad or shared node {current}"
                raise ImageError(msg)
            seen_nodes.add(current)
            block = image.nodes[current].data_block
            if not 0 <= block < geo.max_blocks or block in seen_blocks:
                msg = f"Node {current} references bad or shared block {block}"
                raise ImageError(msg)
            seen_blocks.add(block)
            length += 1
            current = image.nodes[current].next_node

        if length != -(-entry.size // geo.block_size):
            msg = f"File {entry.name!r} of {entry.size} bytes has {length} blocks"
            raise ImageError(msg)

    orphans = [i for i, node in enumerate(image.nodes) if node.in_use and i not in seen_nodes]
    if orphans:
        msg = f"Nodes {orphans} are in use but belong to no file"
        raise ImageError(msg)


def dump_image(image: DiskImage, path: Path) -> None:
    """Rewrite the whole image file.

    The bytes go to a sibling temporary file which then replaces
    *path*, so the previous image stays intact if the write fails.  A
    failed write removes the temporary file.

    Raises:
        OSError: If the file cannot be written.
        ValueError: If an entry cannot be encoded.

    """
    data = encode_image(image)
    tmp = path.with_name(path.name + ".tmp")
    try:
        tmp.write_bytes(data)
        tmp.replace(path)
    except OSError:
        tmp.unlink(missing_ok=True)
        raise


def load_image(path: Path, geometry: Geometry) -> DiskImage:
    """Read and validate an image file.

    Raises:
        FileNotFoundError: If the path does not exist.
        OSError: If the file cannot be read.
        ImageError: If the contents are not a valid image.

    """
    return decode_image(path.read_bytes(), geometry)
