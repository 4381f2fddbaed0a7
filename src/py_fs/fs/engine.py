"""Storage engine — the file system every client connection shares.

The engine composes the pieces:

- ``FileTable`` — named entries, each owning at most one chain.
- ``BlockAllocator`` — chain nodes and raw blocks.
- ``dump_image`` / ``load_image`` — the backing image.
- ``ReadWriteLock`` — one gate around all of the above.

Reads (``read_file``, ``list_files``, ``stat``, ``free_blocks``,
``usage``) share the gate; mutations (``create_file``, ``write_file``,
``delete_file``) hold it exclusively and finish by rewriting the entire
image.  If that rewrite fails the lock is still released and the caller sees
PERSISTENCE_FAILURE; the in-memory tables stay authoritative until the
next successful write.
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from typing import TYPE_CHECKING

from py_fs.fs.allocator import BlockAllocator
from py_fs.fs.errors import ErrorKind, FileSystemError
from py_fs.fs.persistence import DiskImage, ImageError, dump_image, load_image
from py_fs.fs.structures import DiskUsage, FileInfo, Geometry
from py_fs.fs.table import FileTable
from py_fs.logging import Logger, LogLevel
from py_fs.sync.rwlock import ReadWriteLock

if TYPE_CHECKING:
    from pathlib import Path

_SOURCE = "engine"


class StorageEngine:
    """Thread-safe block-chain file system backed by a single image file.

    Construct one engine per image and hand it to every connection
    handler; it is not a singleton.
    """

    def __init__(
        self,
        image_path: Path,
        geometry: Geometry,
        *,
        logger: Logger | None = None,
    ) -> None:
        """Open (or initialise) the file system stored at *image_path*.

        A missing, truncated, corrupt, or differently-shaped image is
        treated as a first run: the tables start empty and a fresh
        image is written.

        Args:
            image_path: The backing image file.
            geometry: Table capacities and block size.
            logger: Optional logger for engine events.

        Raises:
            FileSystemError: PERSISTENCE_FAILURE if a fresh image cannot
                be written.

        """
        self._path = image_path
        self._geometry = geometry
        self._logger = logger
        self._lock = ReadWriteLock(name="engine")

        try:
            image = load_image(image_path, geometry)
            self._log(LogLevel.INFO, f"Loaded image {image_path}")
            fresh = False
        except (OSError, ImageError) as e:
            self._log(LogLevel.WARNING, f"Cannot load image {image_path} ({e}); starting empty")
            image = DiskImage.blank(geometry)
            fresh = True

        self._allocator = BlockAllocator(
            block_size=geometry.block_size,
            nodes=image.nodes,
            blocks=image.blocks,
        )
        self._table = FileTable(entries=image.entries, allocator=self._allocator)
        self._image = image

        if fresh:
            self._persist()

    # -- Helpers -------------------------------------------------------------

    def _log(self, level: LogLevel, message: str) -> None:
        if self._logger is not None:
            self._logger.log(level, message, source=_SOURCE)

    def _persist(self) -> None:
        """Rewrite the whole backing image from the in-memory tables.

        Raises:
            FileSystemError: PERSISTENCE_FAILURE if the image cannot be
                encoded or written.

        """
        try:
            dump_image(self._image, self._path)
        except (OSError, ValueError) as e:
            self._log(LogLevel.ERROR, f"Cannot write image {self._path}: {e}")
            raise FileSystemError(ErrorKind.PERSISTENCE_FAILURE, detail=str(e)) from e

    @contextmanager
    def _mutation(self) -> Iterator[None]:
        """Hold the write gate, then persist if the body succeeded."""
        with self._lock.write_locked():
            yield
            self._persist()

    # -- Properties ----------------------------------------------------------

    @property
    def geometry(self) -> Geometry:
        """Return the disk geometry."""
        return self._geometry

    @property
    def image_path(self) -> Path:
        """Return the backing image path."""
        return self._path

    @property
    def lock(self) -> ReadWriteLock:
        """Return the gate guarding all engine state."""
        return self._lock

    # -- Mutations -----------------------------------------------------------

    def create_file(self, name: str) -> None:
        """Create an empty file.

        Raises:
            FileSystemError: NAME_TOO_LONG, INVALID_NAME, ALREADY_EXISTS,
                TABLE_FULL, or PERSISTENCE_FAILURE.

        """
        with self._mutation():
            slot = self._table.create(name)
        self._log(LogLevel.INFO, f"Created {name!r} in slot {slot}")

    def delete_file(self, name: str) -> None:
        """Delete a file and zero its blocks.

        Raises:
            FileSystemError: NOT_FOUND or PERSISTENCE_FAILURE.

        """
        with self._mutation():
            self._table.delete(name)
        self._log(LogLevel.INFO, f"Deleted {name!r}")

    def write_file(self, name: str, data: bytes) -> None:
        """Replace a file's entire content.

        A file may reuse its own blocks, so the space check counts the
        file's current chain as available.  The check runs before the
        old chain is released: a write that does not fit leaves the
        previous content untouched.

        Raises:
            FileSystemError: NOT_FOUND, INSUFFICIENT_SPACE, or
                PERSISTENCE_FAILURE.

        """
        with self._mutation():
            entry = self._table.get(name)
            needed = self._allocator.blocks_needed(len(data))
            available = self._allocator.free_count() + self._allocator.chain_length(
                entry.first_node
            )
            if needed > available:
                raise FileSystemError(
                    ErrorKind.INSUFFICIENT_SPACE,
                    name,
                    detail=f"need {needed} blocks, {available} available",
                )
            self._allocator.release_chain(entry.first_node)
            entry.first_node = self._allocator.allocate_chain(data)
            entry.size = len(data)
        self._log(LogLevel.DEBUG, f"Wrote {len(data)} bytes to {name!r}")

    # -- Queries -------------------------------------------------------------

    def read_file(self, name: str) -> bytes:
        """Return a file's entire content.

        Raises:
            FileSystemError: NOT_FOUND if the file does not exist.

        """
        with self._lock.read_locked():
            entry = self._table.get(name)
            if entry.size == 0:
                return b""
            return self._allocator.read_chain(entry.first_node, entry.size)

    def list_files(self) -> list[str]:
        """Return all filenames in table-slot order."""
        with self._lock.read_locked():
            return self._table.list_names()

    def stat(self, name: str) -> FileInfo:
        """Return metadata for a file.

        Raises:
            FileSystemError: NOT_FOUND if the file does not exist.

        """
        with self._lock.read_locked():
            entry = self._table.get(name)
            return FileInfo(
                name=entry.name,
                size=entry.size,
                block_count=self._allocator.chain_length(entry.first_node),
            )

    def free_blocks(self) -> int:
        """Return the number of free blocks."""
        with self._lock.read_locked():
            return self._allocator.free_count()

    def usage(self) -> DiskUsage:
        """Return the file list and free-block count as one consistent view."""
        with self._lock.read_locked():
            return DiskUsage(
                files=tuple(self._table.list_names()),
                free_blocks=self._allocator.free_count(),
            )

    def __repr__(self) -> str:
        """Return a developer-friendly representation."""
        return f"StorageEngine('{self._path}', {self._geometry})"
