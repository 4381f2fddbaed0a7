"""Synchronization subsystem — the reader-writer gate around the engine.

Re-exports public symbols so callers can write::

    from py_fs.sync import ReadWriteLock
"""

from py_fs.sync.rwlock import ReadWriteLock

__all__ = ["ReadWriteLock"]
