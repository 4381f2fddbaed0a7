"""Server logging and audit trail.

The logger records structured log entries for server events — an audit
trail of what happened, when, and which part of the server did it.

Real servers keep a log buffer and usually mirror it to a console or a
file.  Our logger mirrors this concept:

- **LogLevel** — severity levels ordered for filtering (DEBUG < ERROR).
- **LogEntry** — a single structured record (level, message, source, time).
- **Logger** — an append-only, bounded log with filtering, clearing, and
  an optional sink that sees every entry as it is recorded.

Design choices:
    - **IntEnum for levels** so they compare naturally with ``<``.
    - **Frozen dataclass for entries** — log records should be immutable.
    - **One lock around the buffer** — every client thread logs through
      the same logger.
    - **Bounded deque** — the oldest entries fall off once ``capacity``
      is reached, so a long-running server keeps constant memory.
"""

import threading
from collections import deque
from collections.abc import Callable
from typing import TypeAlias
from dataclasses import dataclass, field
from enum import IntEnum
from time import time

DEFAULT_CAPACITY = 10_000


class LogLevel(IntEnum):
    """Severity levels for log entries.

    Using IntEnum means levels compare with ``<`` / ``>`` naturally,
    which makes minimum-level filtering trivial.
    """

    DEBUG = 0
    INFO = 1
    WARNING = 2
    ERROR = 3


@dataclass(frozen=True)
class LogEntry:
    """A single structured log record.

    Attributes:
        level: The severity of this event.
        message: A human-readable description of what happened.
        source: The subsystem that generated the event (e.g. "engine").
        timestamp: Wall-clock time the entry was recorded.

    """

    level: LogLevel
    message: str
    source: str
    timestamp: float = field(default_factory=time)

    def __str__(self) -> str:
        """Format as ``[LEVEL] source: message``."""
        return f"[{self.level.name}] {self.source}: {self.message}"


LogSink: TypeAlias = Callable[[LogEntry], None]


class Logger:
    """Append-only log buffer with filtering.

    The logger collects ``LogEntry`` records and provides simple
    querying by level and/or source.  If a sink is given, every new
    entry is also passed to it (the entry point uses this to print to
    stderr).
    """

    def __init__(self, *, sink: LogSink | None = None, capacity: int = DEFAULT_CAPACITY) -> None:
        """Create an empty logger.

        Args:
            sink: Optional callable invoked with each new entry.
            capacity: Maximum number of entries kept in memory.

        """
        self._entries: deque[LogEntry] = deque(maxlen=capacity)
        self._sink = sink
        self._lock = threading.Lock()

    @property
    def entries(self) -> list[LogEntry]:
        """Return all log entries in chronological order."""
        with self._lock:
            return list(self._entries)

    def log(self, level: LogLevel, message: str, *, source: str) -> None:
        """Append a new entry to the log.

        Args:
            level: Severity of the event.
            message: Human-readable event description.
            source: Subsystem that generated the event.

        """
        entry = LogEntry(level=level, message=message, source=source)
        with self._lock:
            self._entries.append(entry)
        if self._sink is not None:
            self._sink(entry)

    def filter(
        self,
        *,
        min_level: LogLevel | None = None,
        source: str | None = None,
    ) -> list[LogEntry]:
        """Return entries matching the given criteria.

        Args:
            min_level: If set, only return entries at or above this level.
            source: If set, only return entries from this source.

        Returns:
            A filtered list of log entries.

        """
        result = self.entries
        if min_level is not None:
            result = [e for e in result if e.level >= min_level]
        if source is not None:
            result = [e for e in result if e.source == source]
        return result

    def clear(self) -> None:
        """Remove all log entries."""
        with self._lock:
            self._entries.clear()
