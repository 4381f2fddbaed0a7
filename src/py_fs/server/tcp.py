"""Threaded TCP file server — one thread per client connection.

The server lifecycle is the standard socket dance::

    socket() → bind(host, port) → listen() → accept() → thread per client

Each client thread reads newline-terminated request lines, hands each
one to the shared ``CommandDispatcher``, and writes back exactly one
reply line.  All threads share a single ``StorageEngine``, which does
its own locking; the server itself holds no file-system state.

A client that sends garbage only ever gets ``ERROR:`` replies; a
client whose socket breaks only ends its own thread.
"""

from __future__ import annotations

import socket
import threading
from typing import TYPE_CHECKING

from py_fs.logging import LogLevel
from py_fs.server.protocol import CommandDispatcher

if TYPE_CHECKING:
    from py_fs.fs.engine import StorageEngine
    from py_fs.logging import Logger

_SOURCE = "server"
_BACKLOG = 64
_POLL_INTERVAL = 0.2


class FileServer:
    """Accept connections and serve the line protocol.

    Usage::

        server = FileServer(engine=engine, host="127.0.0.1", port=12345)
        server.start()          # bind + listen
        server.serve_forever()  # blocks until shutdown()

    Pass ``port=0`` to let the OS pick a free port; ``address`` then
    reports the real one.
    """

    def __init__(
        self,
        *,
        engine: StorageEngine,
        host: str = "127.0.0.1",
        port: int = 12345,
        logger: Logger | None = None,
    ) -> None:
        """Create a server for an engine; nothing is bound yet."""
        self._engine = engine
        self._host = host
        self._port = port
        self._logger = logger
        self._dispatcher = CommandDispatcher(engine=engine, logger=logger)
        self._listener: socket.socket | None = None
        self._stopping = threading.Event()
        self._clients: set[socket.socket] = set()
        self._clients_lock = threading.Lock()

    @property
    def engine(self) -> StorageEngine:
        """Return the shared storage engine."""
        return self._engine

    @property
    def dispatcher(self) -> CommandDispatcher:
        """Return the shared command dispatcher."""
        return self._dispatcher

    @property
    def address(self) -> tuple[str, int]:
        """Return the bound (host, port).

        Raises:
            RuntimeError: If the server has not been started.

        """
        if self._listener is None:
            msg = "Server is not started"
            raise RuntimeError(msg)
        host, port = self._listener.getsockname()[:2]
        return host, port

    @property
    def client_count(self) -> int:
        """Return the number of connected clients."""
        with self._clients_lock:
            return len(self._clients)

    def _log(self, level: LogLevel, message: str) -> None:
        if self._logger is not None:
            self._logger.log(level, message, source=_SOURCE)

    def start(self) -> socket.socket:
        """Bind and listen, returning the listening socket.

        Raises:
            RuntimeError: If the server is already started.
            OSError: If the address cannot be bound.

        """
        if self._listener is not None:
            msg = "Server is already started"
            raise RuntimeError(msg)
        listener = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        listener.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        try:
            listener.bind((self._host, self._port))
            listener.listen(_BACKLOG)
        except OSError:
            listener.close()
            raise
        # A timeout lets the accept loop notice shutdown().
        listener.settimeout(_POLL_INTERVAL)
        self._listener = listener
        host, port = self.address
        self._log(LogLevel.INFO, f"Listening on {host}:{port}")
        return listener

    def serve_forever(self) -> None:
        """Accept clients until ``shutdown`` is called.

        Each accepted connection is handled on its own daemon thread.
        """
        listener = self._listener if self._listener is not None else self.start()
        while not self._stopping.is_set():
            try:
                conn, addr = listener.accept()
            except TimeoutError:
                continue
            except OSError:
                if self._stopping.is_set():
                    break
                raise
            conn.settimeout(None)
            peer = f"{addr[0]}:{addr[1]}"
            self._log(LogLevel.INFO, f"Client connected: {peer}")
            thread = threading.Thread(
                target=self._handle_client,
                args=(conn, peer),
                name=f"client-{peer}",
                daemon=True,
            )
            thread.start()

    def serve_in_background(self) -> threading.Thread:
        """Start the server and run the accept loop on a daemon thread."""
        if self._listener is None:
            self.start()
        thread = threading.Thread(target=self.serve_forever, name="accept-loop", daemon=True)
        thread.start()
        return thread

    def shutdown(self) -> None:
        """Stop accepting, disconnect every client, and close the listener."""
        self._stopping.set()
        with self._clients_lock:
            clients = list(self._clients)
        for conn in clients:
            try:
                conn.shutdown(socket.SHUT_RDWR)
            except OSError:
                self._log(LogLevel.DEBUG, "Client socket already closed")
        if self._listener is not None:
            self._listener.close()
        self._log(LogLevel.INFO, "Server stopped")

    def _handle_client(self, conn: socket.socket, peer: str) -> None:
        """Serve one client until it quits or disconnects."""
        with self._clients_lock:
            self._clients.add(conn)
        try:
            with (
                conn,
                conn.makefile("r", encoding="utf-8", errors="replace", newline="\n") as reader,
                conn.makefile("w", encoding="utf-8", errors="replace", newline="\n") as writer,
            ):
                for line in reader:
                    self._log(LogLevel.DEBUG, f"{peer} → {line.rstrip()!r}")
                    reply = self._dispatcher.execute(line)
                    writer.write(f"{reply}\n")
                    writer.flush()
                    if reply.close:
                        break
        except OSError as e:
            self._log(LogLevel.ERROR, f"Connection error with {peer}: {e}")
        finally:
            with self._clients_lock:
                self._clients.discard(conn)
            self._log(LogLevel.INFO, f"Client disconnected: {peer}")
