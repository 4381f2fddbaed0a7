"""Interactive client for the PyFS server.

The client is the terminal interface to a running server.  It connects
over TCP and enters the classic loop:

    1. **Read** — display a prompt and read a command.
    2. **Send** — write the command as one line to the server.
    3. **Print** — display the single reply line.
    4. **Loop** — repeat until ``quit``/``exit`` or the server hangs up.

``FileClient`` is the testable part (one request, one reply); ``run()``
is the thin I/O wrapper that connects it to ``stdin``/``stdout``.
"""

from __future__ import annotations

import argparse
import readline
import socket
from types import TracebackType

from py_fs.completer import Completer
from py_fs.server.protocol import SUCCESS_PREFIX

_LIST_PREFIX = f"{SUCCESS_PREFIX} Files on server: "
_QUIT_WORDS = frozenset({"quit", "exit"})


class FileClient:
    """A connection to a PyFS server speaking the line protocol."""

    def __init__(
        self,
        host: str = "127.0.0.1",
        port: int = 12345,
        *,
        timeout: float | None = None,
    ) -> None:
        """Connect to the server.

        Raises:
            OSError: If the connection cannot be established.

        """
        self._sock = socket.create_connection((host, port), timeout=timeout)
        self._reader = self._sock.makefile("r", encoding="utf-8", errors="replace", newline="\n")
        self._writer = self._sock.makefile("w", encoding="utf-8", newline="\n")

    def send(self, command: str) -> str:
        """Send one command line and return the reply line (no newline).

        Raises:
            ConnectionError: If the server closed the connection.

        """
        self._writer.write(command.rstrip("\r\n") + "\n")
        self._writer.flush()
        reply = self._reader.readline()
        if not reply:
            msg = "Server closed the connection"
            raise ConnectionError(msg)
        return reply.rstrip("\n")

    def list_files(self) -> list[str]:
        """Return the filenames on the server, in server order."""
        reply = self.send("LIST")
        if not reply.startswith(_LIST_PREFIX):
            return []
        return reply.removeprefix(_LIST_PREFIX).split(", ")

    def close(self) -> None:
        """Close the connection."""
        for stream in (self._writer, self._reader):
            try:
                stream.close()
            except OSError:
                continue
        self._sock.close()

    def __enter__(self) -> FileClient:
        """Return self for use in a ``with`` block."""
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        """Close the connection on leaving a ``with`` block."""
        self.close()


def run(host: str = "127.0.0.1", port: int = 12345) -> None:
    """Connect and run the interactive loop.

    Blank lines are ignored.  ``quit``/``exit`` sends ``QUIT``, prints
    the server's acknowledgement, and stops.  Ctrl+C and Ctrl+D exit
    gracefully.
    """
    try:
        client = FileClient(host, port)
    except OSError as e:
        print(f"Cannot connect to {host}:{port}: {e}")  # noqa: T201
        return

    completer = Completer(client.list_files)
    readline.set_completer(completer.complete)
    readline.set_completer_delims(" \t")
    readline.parse_and_bind("tab: complete")

    print(f"Connected to {host}:{port}.")  # noqa: T201
    print("Commands: CREATE, WRITE, READ, DELETE, LIST, QUIT.")  # noqa: T201

    with client:
        try:
            while True:
                try:
                    command = input("pyfs> ").strip()
                except EOFError:
                    print()  # noqa: T201
                    break
                if not command:
                    continue
                if command.lower() in _QUIT_WORDS:
                    print(client.send("QUIT"))  # noqa: T201
                    break
                print(client.send(command))  # noqa: T201
        except KeyboardInterrupt:
            print("\nInterrupted.")  # noqa: T201
        except ConnectionError as e:
            print(f"{e}.")  # noqa: T201
    print("Connection closed.")  # noqa: T201


def main(argv: list[str] | None = None) -> int:
    """Console entry point for ``py-fs-client``."""
    parser = argparse.ArgumentParser(description="Interactive PyFS client")
    parser.add_argument("--host", default="127.0.0.1", help="server address")
    parser.add_argument("--port", type=int, default=12345, help="server port")
    args = parser.parse_args(argv)
    run(args.host, args.port)
    return 0
