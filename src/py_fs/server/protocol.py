"""Wire protocol — turn one request line into one reply line.

Requests are ``COMMAND [ARG1] [ARG2...]`` with a case-insensitive
keyword.  The line is split on whitespace at most twice, so everything
after a ``WRITE`` filename (spaces included) is the content::

    WRITE notes.txt hello there   →  ["WRITE", "notes.txt", "hello there"]

Every reply is a single line starting with ``SUCCESS:`` or ``ERROR:`` so
a client can branch on the prefix without parsing the message.

Design choices:
    - **Command dispatch via a dict.**  Adding a command means writing
      a handler and adding one dict entry.
    - **Returns replies, never writes to sockets.**  The dispatcher is
      fully testable; the TCP server is the thin I/O wrapper around it.
    - **Error kinds become text only here.**  The engine raises typed
      errors; this module owns every human-readable message.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, TypeAlias

from py_fs.fs.errors import ErrorKind, FileSystemError, ProtocolError
from py_fs.fs.structures import MAX_FILENAME_LENGTH
from py_fs.logging import LogLevel

if TYPE_CHECKING:
    from py_fs.fs.engine import StorageEngine
    from py_fs.logging import Logger

SUCCESS_PREFIX = "SUCCESS:"
ERROR_PREFIX = "ERROR:"

_MAX_SPLITS = 2
_SOURCE = "server"

_ERROR_MESSAGES: dict[ErrorKind, str] = {
    ErrorKind.NAME_TOO_LONG: (
        f"Filename '{{name}}' is longer than {MAX_FILENAME_LENGTH} characters."
    ),
    ErrorKind.INVALID_NAME: "Invalid filename '{name}'.",
    ErrorKind.ALREADY_EXISTS: "File '{name}' already exists.",
    ErrorKind.TABLE_FULL: "No free file entries, cannot create '{name}'.",
    ErrorKind.NOT_FOUND: "File '{name}' does not exist.",
    ErrorKind.INSUFFICIENT_SPACE: "Not enough free space to write '{name}'.",
    ErrorKind.PERSISTENCE_FAILURE: "Storage failure: {detail}",
}

_USAGE: dict[str, str] = {
    "CREATE": "filename",
    "WRITE": "filename and content",
    "READ": "filename",
    "DELETE": "filename",
}


@dataclass(frozen=True)
class Reply:
    """One response line.

    Attributes:
        ok: True for success, False for an error.
        message: Text after the prefix.
        close: True if the connection should close after sending.

    """

    ok: bool
    message: str
    close: bool = False

    def __str__(self) -> str:
        """Render as the wire line (without the trailing newline)."""
        prefix = SUCCESS_PREFIX if self.ok else ERROR_PREFIX
        return f"{prefix} {self.message}"


def escape_line(text: str) -> str:
    """Escape characters that would split a reply across lines."""
    return text.replace("\r", "\\r").replace("\n", "\\n")


def parse_line(line: str) -> tuple[str, list[str]]:
    """Split a request line into an upper-cased keyword and its arguments.

    Raises:
        ProtocolError: MALFORMED_COMMAND if the line is blank.

    """
    parts = line.strip().split(maxsplit=_MAX_SPLITS)
    if not parts:
        raise ProtocolError(ErrorKind.MALFORMED_COMMAND)
    return parts[0].upper(), parts[1:]


def describe_error(error: FileSystemError) -> str:
    """Return the wire message for an engine error."""
    template = _ERROR_MESSAGES.get(error.kind, "{kind}")
    return template.format(name=error.name, detail=error.detail, kind=error.kind)


_Handler: TypeAlias = Callable[[list[str]], Reply]


class CommandDispatcher:
    """Map protocol commands onto a storage engine.

    One dispatcher may serve every connection: it holds no per-client
    state, and the engine does its own locking.
    """

    def __init__(self, *, engine: StorageEngine, logger: Logger | None = None) -> None:
        """Create a dispatcher bound to an engine."""
        self._engine = engine
        self._logger = logger

        self._commands: dict[str, _Handler] = {
            "CREATE": self._cmd_create,
            "WRITE": self._cmd_write,
            "READ": self._cmd_read,
            "DELETE": self._cmd_delete,
            "LIST": self._cmd_list,
            "QUIT": self._cmd_quit,
            "EXIT": self._cmd_quit,
        }

    @property
    def command_names(self) -> list[str]:
        """Return every supported keyword, sorted."""
        return sorted(self._commands)

    def execute(self, line: str) -> Reply:
        """Run one request line and return its reply.

        Never raises for bad input or failed operations — every error
        kind becomes an ``ERROR:`` reply so one bad request cannot take
        down the connection.
        """
        try:
            command, args = parse_line(line)
            handler = self._commands.get(command)
            if handler is None:
                raise ProtocolError(ErrorKind.UNKNOWN_COMMAND, command)
            return handler(args)
        except ProtocolError as e:
            return self._protocol_error(e)
        except FileSystemError as e:
            if self._logger is not None:
                failed = e.kind is ErrorKind.PERSISTENCE_FAILURE
                level = LogLevel.ERROR if failed else LogLevel.DEBUG
                self._logger.log(level, f"{line.strip()!r} failed: {e}", source=_SOURCE)
            return Reply(ok=False, message=describe_error(e))

    @staticmethod
    def _protocol_error(error: ProtocolError) -> Reply:
        if error.kind is ErrorKind.UNKNOWN_COMMAND:
            return Reply(ok=False, message=f"Unknown command '{error.command}'")
        if error.command:
            usage = _USAGE[error.command]
            return Reply(ok=False, message=f"{error.command} command requires {usage}")
        return Reply(ok=False, message="Empty command.")

    @staticmethod
    def _require(command: str, args: list[str], count: int) -> None:
        if len(args) < count:
            raise ProtocolError(ErrorKind.MALFORMED_COMMAND, command)

    # -- Command handlers ----------------------------------------------------

    def _cmd_create(self, args: list[str]) -> Reply:
        self._require("CREATE", args, 1)
        self._engine.create_file(args[0])
        return Reply(ok=True, message=f"File '{args[0]}' created.")

    def _cmd_write(self, args: list[str]) -> Reply:
        self._require("WRITE", args, 2)
        name, content = args[0], args[1].encode("utf-8", errors="replace")
        self._engine.write_file(name, content)
        return Reply(ok=True, message=f"Written {len(content)} bytes to '{name}'.")

    def _cmd_read(self, args: list[str]) -> Reply:
        self._require("READ", args, 1)
        data = self._engine.read_file(args[0])
        text = escape_line(data.decode("utf-8", errors="replace"))
        return Reply(ok=True, message=f"Content of '{args[0]}': {text}")

    def _cmd_delete(self, args: list[str]) -> Reply:
        self._require("DELETE", args, 1)
        self._engine.delete_file(args[0])
        return Reply(ok=True, message=f"File '{args[0]}' deleted.")

    def _cmd_list(self, _args: list[str]) -> Reply:
        names = self._engine.list_files()
        if not names:
            return Reply(ok=True, message="No files on server.")
        return Reply(ok=True, message="Files on server: " + ", ".join(names))

    def _cmd_quit(self, _args: list[str]) -> Reply:
        return Reply(ok=True, message="Disconnecting.", close=True)

