"""Reader-writer lock — multiple readers OR one exclusive writer.

Many threads may look at the file system at once, but a thread that
changes it needs the room to itself.  Think of a museum exhibit: any
number of visitors can look at the painting together, but when a
restorer needs to work on it, they close the room — visitors already
inside finish, no new visitors enter until the restorer is done.

Acquisition blocks the calling thread until access is granted; there
is no timeout and no cancellation.

Writer-preference: once a writer is waiting, new readers queue behind
it.  A steady stream of readers therefore cannot starve a writer.
"""

from __future__ import annotations

import threading
from collections.abc import Iterator
from contextlib import contextmanager


class ReadWriteLock:
    """Blocking reader-writer lock with writer preference.

    Usage::

        lock = ReadWriteLock(name="engine")
        with lock.read_locked():
            ...  # shared access
        with lock.write_locked():
            ...  # exclusive access

    """

    def __init__(self, *, name: str) -> None:
        """Create an unlocked reader-writer lock with the given name."""
        self._name = name
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer: int | None = None
        self._waiting_writers = 0

    @property
    def name(self) -> str:
        """Return the lock name."""
        return self._name

    @property
    def reader_count(self) -> int:
        """Return the number of active readers."""
        with self._cond:
            return self._readers

    @property
    def is_writing(self) -> bool:
        """Return whether a writer currently holds the lock."""
        with self._cond:
            return self._writer is not None

    @property
    def writer_tid(self) -> int | None:
        """Return the thread ident of the active writer, or None."""
        with self._cond:
            return self._writer

    @property
    def waiting_writers(self) -> int:
        """Return the number of writers blocked in ``acquire_write``."""
        with self._cond:
            return self._waiting_writers

    def acquire_read(self) -> None:
        """Block until read access is granted.

        Waits while a writer is active OR any writer is waiting.
        """
        with self._cond:
            while self._writer is not None or self._waiting_writers:
                self._cond.wait()
            self._readers += 1

    def release_read(self) -> None:
        """Release read access, waking waiters when the last reader leaves.

        Raises:
            ValueError: If no reader holds the lock.

        """
        with self._cond:
            if self._readers == 0:
                msg = f"No reader holds '{self._name}'"
                raise ValueError(msg)
            self._readers -= 1
            if self._readers == 0:
                self._cond.notify_all()

    def acquire_write(self) -> None:
        """Block until exclusive access is granted.

        Waits while there are active readers or an active writer.
        """
        with self._cond:
            self._waiting_writers += 1
            try:
                while self._writer is not None or self._readers:
                    self._cond.wait()
            finally:
                self._waiting_writers -= 1
            self._writer = threading.get_ident()

    def release_write(self) -> None:
        """Release exclusive access and wake every waiter.

        Raises:
            ValueError: If the calling thread is not the active writer.

        """
        with self._cond:
            if self._writer != threading.get_ident():
                msg = f"Thread {threading.get_ident()} is not the writer of '{self._name}'"
                raise ValueError(msg)
            self._writer = None
            self._cond.notify_all()

    @contextmanager
    def read_locked(self) -> Iterator[None]:
        """Hold read access for the duration of a ``with`` block."""
        self.acquire_read()
        try:
            yield
        finally:
            self.release_read()

    @contextmanager
    def write_locked(self) -> Iterator[None]:
        """Hold write access for the duration of a ``with`` block."""
        self.acquire_write()
        try:
            yield
        finally:
            self.release_write()

    def __repr__(self) -> str:
        """Return a developer-friendly representation."""
        with self._cond:
            if self._writer is not None:
                state = f"writing by {self._writer}"
            elif self._readers:
                word = "reader" if self._readers == 1 else "readers"
                state = f"{self._readers} {word}"
            else:
                state = "idle"
        return f"ReadWriteLock('{self._name}', {state})"
