"""Network subsystem — the line protocol and the threaded TCP server.

Re-exports public symbols so callers can write::

    from py_fs.server import FileServer, CommandDispatcher
"""

from py_fs.server.protocol import CommandDispatcher, Reply
from py_fs.server.tcp import FileServer

__all__ = [
    "CommandDispatcher",
    "FileServer",
    "Reply",
]
