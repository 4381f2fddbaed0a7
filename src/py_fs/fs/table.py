"""File table — the bounded set of named entries.

The table is a fixed array of ``FileEntry`` slots.  Lookups are a
linear scan by exact (case-sensitive) name, and new files take the
first free slot, so ``list_names()`` reports files in slot order rather than
creation order: a file created after a delete may appear before older
files.
"""

from __future__ import annotations

from py_fs.fs.allocator import BlockAllocator
from py_fs.fs.errors import ErrorKind, FileSystemError
from py_fs.fs.structures import MAX_FILENAME_LENGTH, NO_REF, FileEntry


def _validate_name(name: str) -> None:
    """Reject names the table cannot store or the protocol cannot address."""
    if len(name) > MAX_FILENAME_LENGTH:
        raise FileSystemError(ErrorKind.NAME_TOO_LONG, name)
    if not name or "\0" in name or any(ch.isspace() for ch in name):
        raise FileSystemError(ErrorKind.INVALID_NAME, name)
    try:
        name.encode("utf-8")
    except UnicodeEncodeError as e:
        raise FileSystemError(ErrorKind.INVALID_NAME, name) from e


class FileTable:
    """Fixed-capacity table of file entries.

    Deleting a file hands its chain back to the allocator, so the table
    holds a reference to it.
    """

    def __init__(self, *, entries: list[FileEntry], allocator: BlockAllocator) -> None:
        """Wrap an existing entry table (mutated in place)."""
        self._entries = entries
        self._allocator = allocator

    def find(self, name: str) -> int | None:
        """Return the slot index of *name*, or None."""
        for index, entry in enumerate(self._entries):
            if entry.in_use and entry.name == name:
                return index
        return None

    def get(self, name: str) -> FileEntry:
        """Return the entry for *name*.

        Raises:
            FileSystemError: NOT_FOUND if no such file exists.

        """
        index = self.find(name)
        if index is None:
            raise FileSystemError(ErrorKind.NOT_FOUND, name)
        return self._entries[index]

    def create(self, name: str) -> int:
        """Create an empty file in the first free slot.

        Returns:
            The slot index of the new entry.

        Raises:
            FileSystemError: NAME_TOO_LONG, INVALID_NAME, ALREADY_EXISTS
                or TABLE_FULL.

        """
        _validate_name(name)
        if self.find(name) is not None:
            raise FileSystemError(ErrorKind.ALREADY_EXISTS, name)
        for index, entry in enumerate(self._entries):
            if not entry.in_use:
                entry.name = name
                entry.size = 0
                entry.first_node = NO_REF
                return index
        raise FileSystemError(ErrorKind.TABLE_FULL, name)

    def delete(self, name: str) -> None:
        """Release a file's chain and free its slot.

        Raises:
            FileSystemError: NOT_FOUND if no such file exists.

        """
        entry = self.get(name)
        self._allocator.release_chain(entry.first_node)
        entry.clear()

    def list_names(self) -> list[str]:
        """Return the names of all files in slot order."""
        return [entry.name for entry in self._entries if entry.in_use]
