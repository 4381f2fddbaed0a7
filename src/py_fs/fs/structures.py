"""On-disk structures — file entries, chain nodes, and disk geometry.

The file system is three fixed-size tables addressed by integer index:

- **File entries** — one slot per file: name, logical size, and the index
  of the first chain node.  An empty name means the slot is free.

- **Chain nodes** — one link per stored block: which raw block holds the
  bytes, and which node comes next.  Following ``next_node`` from a
  file's ``first_node`` walks the file's data in order.

- **Raw blocks** — ``block_size`` bytes of payload each.

This is the classic *linked allocation* scheme (FAT is the best known
example): files need not be contiguous, and growing or shrinking a file
only means relinking nodes.

Indices are meaningless on their own; they only make sense inside the
engine that owns the tables.
"""

from __future__ import annotations

from dataclasses import dataclass

NO_REF = -1
"""Sentinel index meaning "no such node/block" (end of chain, unused slot)."""

MAX_FILENAME_LENGTH = 11
"""Maximum filename length in characters — the old DOS 8.3 budget."""


@dataclass(frozen=True)
class Geometry:
    """Capacity of a disk image.

    Attributes:
        max_files: Number of file entry slots.
        max_blocks: Number of chain nodes, and of raw blocks.
        block_size: Size of each raw block in bytes.

    """

    max_files: int
    max_blocks: int
    block_size: int

    def __post_init__(self) -> None:
        """Reject non-positive capacities."""
        for label in ("max_files", "max_blocks", "block_size"):
            value = getattr(self, label)
            if value <= 0:
                msg = f"{label} must be positive, got {value}"
                raise ValueError(msg)

    @property
    def total_bytes(self) -> int:
        """Return the raw payload capacity in bytes."""
        return self.max_blocks * self.block_size


@dataclass
class FileEntry:
    """One slot in the file table.

    A slot with an empty ``name`` is free.  An in-use entry with
    ``size == 0`` owns no blocks, so its ``first_node`` is ``NO_REF``.
    """

    name: str = ""
    size: int = 0
    first_node: int = NO_REF

    @property
    def in_use(self) -> bool:
        """Return whether this slot holds a file."""
        return bool(self.name)

    def clear(self) -> None:
        """Reset the slot to the unused state."""
        self.name = ""
        self.size = 0
        self.first_node = NO_REF


@dataclass
class ChainNode:
    """One link in a file's block chain."""

    data_block: int = NO_REF
    next_node: int = NO_REF

    @property
    def in_use(self) -> bool:
        """Return whether this node currently points at a raw block."""
        return self.data_block != NO_REF

    def clear(self) -> None:
        """Reset the node to the unused state."""
        self.data_block = NO_REF
        self.next_node = NO_REF


@dataclass(frozen=True)
class FileInfo:
    """Read-only snapshot of a file's metadata (returned by stat)."""

    name: str
    size: int
    block_count: int


@dataclass(frozen=True)
class DiskUsage:
    """File list and free-block count taken under one read lock."""

    files: tuple[str, ...]
    free_blocks: int
