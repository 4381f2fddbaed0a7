"""Error kinds shared by the storage engine and the wire protocol.

Every failure the server can report has a kind.  The engine raises
``FileSystemError`` and the command dispatcher raises ``ProtocolError``;
both carry an ``ErrorKind`` so callers branch on the kind, never on the
message text.  Turning a kind into words is the dispatcher's job.
"""

from enum import StrEnum


class ErrorKind(StrEnum):
    """Every failure class the server distinguishes."""

    NAME_TOO_LONG = "name_too_long"
    INVALID_NAME = "invalid_name"
    ALREADY_EXISTS = "already_exists"
    TABLE_FULL = "table_full"
    NOT_FOUND = "not_found"
    INSUFFICIENT_SPACE = "insufficient_space"
    MALFORMED_COMMAND = "malformed_command"
    UNKNOWN_COMMAND = "unknown_command"
    PERSISTENCE_FAILURE = "persistence_failure"


class FileSystemError(Exception):
    """Raise when a storage engine operation fails.

    Attributes:
        kind: The failure class.
        name: The filename involved, if any.

    """

    def __init__(self, kind: ErrorKind, name: str = "", *, detail: str = "") -> None:
        """Create an error of the given kind for an optional filename."""
        self.kind = kind
        self.name = name
        self.detail = detail
        text = f"{kind}: {name}" if name else str(kind)
        if detail:
            text = f"{text} ({detail})"
        super().__init__(text)


class ProtocolError(Exception):
    """Raise when a request line cannot be turned into an engine call."""

    def __init__(self, kind: ErrorKind, command: str = "") -> None:
        """Create an error of the given kind for an optional command keyword."""
        self.kind = kind
        self.command = command
        super().__init__(f"{kind}: {command}" if command else str(kind))
